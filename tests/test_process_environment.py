"""End-to-end tests with real worker processes.

Units of work are built from library and standard-library callables, or
from functions defined at module level here, so they can be imported by a
freshly spawned interpreter.
"""

import asyncio
import functools
import operator
import os

import pytest

import offload
from offload.core import (
    ContextToken,
    InitializationError,
    OffloadConfig,
    RemoteWorkError,
    SpawnError,
    TransferError,
    install_root_token,
)
from offload.ipc import generate_ipc_address
from offload.process import Offloader, ProcessEnvironment


class CodedError(Exception):
    """Exception whose constructor does not match its args."""

    def __init__(self, code, message):
        super().__init__(message)
        self.code = code


def raise_coded():
    raise CodedError(7, "boom")


@pytest.fixture
def offloader():
    return Offloader(config=OffloadConfig(handshake_timeout_sec=10.0))


class TestProcessEnvironment:
    """Behaviour of the default environment without real spawning."""

    def test_no_binding_no_token(self):
        assert ProcessEnvironment().current_token() is None

    def test_token_from_binding(self, host_binding):
        assert ProcessEnvironment().current_token() == host_binding.token

    def test_uses_given_config(self):
        config = OffloadConfig(start_method="spawn", call_timeout_sec=1.0)
        assert ProcessEnvironment(config).config is config

    def test_offloader_builds_environment_from_config(self):
        config = OffloadConfig(force_local=True)
        offloader = Offloader(config=config)
        assert isinstance(offloader.environment, ProcessEnvironment)
        assert offloader.environment.config is config


class TestLocalFallback:
    """Without a host binding everything runs in the calling process."""

    def test_runs_in_calling_process(self, offloader):
        assert offloader.run_sync(os.getpid) == os.getpid()

    def test_result(self, offloader):
        assert offloader.run_sync(functools.partial(operator.add, 2, 2)) == 4

    def test_error(self, offloader):
        with pytest.raises(ValueError, match="boom"):
            offloader.run_sync(functools.partial(int, "boom"))


class TestWorkerProcess:
    """With a host binding work runs in a separate process."""

    def test_runs_in_other_process(self, host_binding, offloader):
        assert offloader.run_sync(os.getpid) != os.getpid()

    def test_each_call_gets_fresh_process(self, host_binding, offloader):
        first = offloader.run_sync(os.getpid)
        second = offloader.run_sync(os.getpid)
        assert first != second

    def test_result(self, host_binding, offloader):
        assert offloader.run_sync(functools.partial(operator.add, 2, 2)) == 4

    def test_error(self, host_binding, offloader):
        with pytest.raises(ValueError, match="boom"):
            offloader.run_sync(functools.partial(int, "boom"))

    def test_async_unit_of_work(self, host_binding, offloader):
        assert offloader.run_sync(functools.partial(asyncio.sleep, 0, 42)) == 42

    def test_worker_has_no_token(self, host_binding, offloader):
        assert offloader.run_sync(offload.current_token) is None

    def test_plugin_call_from_worker(self, host_binding, offloader):
        fn = functools.partial(offload.invoke, "greet", "worker")
        assert offloader.run_sync(fn) == "hello worker"

    def test_plugin_error_from_worker(self, host_binding, offloader):
        fn = functools.partial(offload.invoke, "missing")
        with pytest.raises(offload.ChannelError, match="LookupError"):
            offloader.run_sync(fn)

    def test_unpicklable_error_keeps_type_name_and_message(self, host_binding, offloader):
        with pytest.raises(RemoteWorkError, match="boom") as exc_info:
            offloader.run_sync(raise_coded)
        assert exc_info.value.error_type == "CodedError"

    def test_pool_survives_unpicklable_error(self, host_binding, offloader):
        with pytest.raises(RemoteWorkError):
            offloader.run_sync(raise_coded)
        assert offloader.run_sync(functools.partial(operator.add, 2, 2)) == 4

    def test_concurrent_runs(self, host_binding, offloader):
        async def main():
            return await asyncio.gather(
                offloader.run(functools.partial(operator.mul, 6, 7)),
                offloader.run(functools.partial(operator.sub, 10, 3)),
            )

        assert asyncio.run(main()) == [42, 7]

    def test_unpicklable_work_item(self, host_binding, offloader):
        with pytest.raises(TransferError):
            offloader.run_sync(lambda: 4)

    def test_worker_crash_is_spawn_error(self, host_binding, offloader):
        with pytest.raises(SpawnError):
            offloader.run_sync(functools.partial(os._exit, 3))

    def test_module_level_helpers(self, host_binding):
        assert offload.run_sync(functools.partial(operator.add, 1, 1)) == 2


class TestWorkerInitialization:
    """Initialization failures in a real worker."""

    def test_unreachable_host(self):
        address, _ = generate_ipc_address(prefix="gone")
        install_root_token(ContextToken(address=address))
        offloader = Offloader(config=OffloadConfig(handshake_timeout_sec=0.3))

        with pytest.raises(InitializationError, match="timed out"):
            offloader.run_sync(functools.partial(operator.add, 2, 2))
