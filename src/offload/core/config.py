"""Runtime configuration for offload.

OffloadConfig holds the few knobs the executor and the host channel
need. Defaults suit most programs; ``from_env()`` lets deployments
override them without code changes.

Environment variables:
    OFFLOAD_START_METHOD: multiprocessing start method ("spawn", "fork", ...).
    OFFLOAD_HANDSHAKE_TIMEOUT: Worker handshake timeout in seconds.
    OFFLOAD_CALL_TIMEOUT: Plugin call timeout in seconds.
    OFFLOAD_FORCE_LOCAL: Run every work item on the caller's context
        ("1", "true", "yes", "on"). Useful for debugging.

Example:
    >>> config = OffloadConfig(start_method="fork", force_local=True)
    >>> config.handshake_timeout_ms
    5000
"""

import multiprocessing
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def _parse_seconds(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid number of seconds for {name}: {value!r}") from None


@dataclass(frozen=True)
class OffloadConfig:
    """Configuration for offloaded execution.

    Attributes:
        start_method: multiprocessing start method for worker processes.
        handshake_timeout_sec: Time a worker waits for the host channel
            to answer its initial handshake.
        call_timeout_sec: Time a worker waits for a plugin call reply.
        force_local: Always take the local path, even with a token.
    """

    start_method: str = "spawn"
    handshake_timeout_sec: float = 5.0
    call_timeout_sec: float = 30.0
    force_local: bool = False

    def __post_init__(self) -> None:
        valid = multiprocessing.get_all_start_methods()
        if self.start_method not in valid:
            raise ValueError(
                f"Unknown start method: {self.start_method}. "
                f"Valid methods: {', '.join(valid)}"
            )
        if self.handshake_timeout_sec <= 0:
            raise ValueError("handshake_timeout_sec must be positive")
        if self.call_timeout_sec <= 0:
            raise ValueError("call_timeout_sec must be positive")

    @property
    def handshake_timeout_ms(self) -> int:
        return int(self.handshake_timeout_sec * 1000)

    @property
    def call_timeout_ms(self) -> int:
        return int(self.call_timeout_sec * 1000)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OffloadConfig":
        """Build a config from environment variables.

        Unset variables keep their defaults.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            OffloadConfig with overrides applied.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        config = cls()
        overrides = {}

        if "OFFLOAD_START_METHOD" in env:
            overrides["start_method"] = env["OFFLOAD_START_METHOD"].strip()
        if "OFFLOAD_HANDSHAKE_TIMEOUT" in env:
            overrides["handshake_timeout_sec"] = _parse_seconds(
                "OFFLOAD_HANDSHAKE_TIMEOUT", env["OFFLOAD_HANDSHAKE_TIMEOUT"]
            )
        if "OFFLOAD_CALL_TIMEOUT" in env:
            overrides["call_timeout_sec"] = _parse_seconds(
                "OFFLOAD_CALL_TIMEOUT", env["OFFLOAD_CALL_TIMEOUT"]
            )
        if "OFFLOAD_FORCE_LOCAL" in env:
            overrides["force_local"] = _parse_bool(
                "OFFLOAD_FORCE_LOCAL", env["OFFLOAD_FORCE_LOCAL"]
            )

        return replace(config, **overrides) if overrides else config


__all__ = ["OffloadConfig"]
