"""Tests for OffloadConfig."""

import pytest

from offload.core import OffloadConfig


class TestOffloadConfig:
    """Defaults, validation and derived values."""

    def test_defaults(self):
        config = OffloadConfig()
        assert config.start_method == "spawn"
        assert config.handshake_timeout_sec == 5.0
        assert config.call_timeout_sec == 30.0
        assert config.force_local is False

    def test_millisecond_properties(self):
        config = OffloadConfig(handshake_timeout_sec=0.25, call_timeout_sec=2)
        assert config.handshake_timeout_ms == 250
        assert config.call_timeout_ms == 2000

    def test_unknown_start_method(self):
        with pytest.raises(ValueError, match="Unknown start method"):
            OffloadConfig(start_method="teleport")

    @pytest.mark.parametrize("field", ["handshake_timeout_sec", "call_timeout_sec"])
    @pytest.mark.parametrize("value", [0, -1.5])
    def test_non_positive_timeouts(self, field, value):
        with pytest.raises(ValueError, match=field):
            OffloadConfig(**{field: value})

    def test_frozen(self):
        config = OffloadConfig()
        with pytest.raises(AttributeError):
            config.force_local = True


class TestFromEnv:
    """Environment variable overrides."""

    def test_empty_environment_gives_defaults(self):
        assert OffloadConfig.from_env({}) == OffloadConfig()

    def test_all_overrides(self):
        config = OffloadConfig.from_env({
            "OFFLOAD_START_METHOD": " spawn ",
            "OFFLOAD_HANDSHAKE_TIMEOUT": "1.5",
            "OFFLOAD_CALL_TIMEOUT": "12",
            "OFFLOAD_FORCE_LOCAL": "yes",
        })
        assert config == OffloadConfig(
            start_method="spawn",
            handshake_timeout_sec=1.5,
            call_timeout_sec=12.0,
            force_local=True,
        )

    @pytest.mark.parametrize("value,expected", [
        ("1", True), ("TRUE", True), ("on", True),
        ("0", False), ("false", False), ("", False), ("Off", False),
    ])
    def test_force_local_values(self, value, expected):
        config = OffloadConfig.from_env({"OFFLOAD_FORCE_LOCAL": value})
        assert config.force_local is expected

    def test_invalid_boolean(self):
        with pytest.raises(ValueError, match="OFFLOAD_FORCE_LOCAL"):
            OffloadConfig.from_env({"OFFLOAD_FORCE_LOCAL": "maybe"})

    def test_invalid_number(self):
        with pytest.raises(ValueError, match="OFFLOAD_CALL_TIMEOUT"):
            OffloadConfig.from_env({"OFFLOAD_CALL_TIMEOUT": "soon"})

    def test_invalid_start_method(self):
        with pytest.raises(ValueError, match="Unknown start method"):
            OffloadConfig.from_env({"OFFLOAD_START_METHOD": "teleport"})

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("OFFLOAD_FORCE_LOCAL", "1")
        assert OffloadConfig.from_env().force_local is True
