"""Tests for ContextToken and the root token registry."""

import os
import pickle

import pytest

from offload.core import ContextToken, clear_root_token, current_token, install_root_token


class TestContextToken:

    def test_defaults(self):
        token = ContextToken(address="ipc:///tmp/a.sock")
        assert token.host_pid == os.getpid()
        assert len(token.token_id) == 32

    def test_ids_are_unique(self):
        assert ContextToken("ipc:///tmp/a.sock") != ContextToken("ipc:///tmp/a.sock")

    def test_pickle_round_trip(self):
        token = ContextToken(address="ipc:///tmp/a.sock")
        assert pickle.loads(pickle.dumps(token)) == token

    def test_immutable(self):
        token = ContextToken(address="ipc:///tmp/a.sock")
        with pytest.raises(AttributeError):
            token.address = "ipc:///tmp/b.sock"


class TestRootTokenRegistry:

    def test_absent_by_default(self):
        assert current_token() is None

    def test_install_and_clear(self):
        token = ContextToken(address="ipc:///tmp/a.sock")
        install_root_token(token)
        assert current_token() == token

        clear_root_token()
        assert current_token() is None

    def test_install_same_token_twice(self):
        token = ContextToken(address="ipc:///tmp/a.sock")
        install_root_token(token)
        install_root_token(token)
        assert current_token() == token

    def test_install_different_token_rejected(self):
        install_root_token(ContextToken(address="ipc:///tmp/a.sock"))
        with pytest.raises(RuntimeError, match="already installed"):
            install_root_token(ContextToken(address="ipc:///tmp/b.sock"))

    def test_clear_other_token_is_noop(self):
        token = ContextToken(address="ipc:///tmp/a.sock")
        install_root_token(token)
        clear_root_token(ContextToken(address="ipc:///tmp/b.sock"))
        assert current_token() == token

    def test_token_from_other_process_is_not_current(self):
        """A token inherited by a forked child is not reported there."""
        install_root_token(ContextToken(address="ipc:///tmp/a.sock", host_pid=os.getpid() + 1))
        assert current_token() is None
