"""Execution environments for offloaded work.

An Environment supplies the three capabilities the executor relies on:

- ``current_token()``: the caller's ContextToken, or None when no host
  binding is active (scripts, tests, code already inside a worker).
- ``initialize_worker(token)``: one-time setup inside a new worker,
  run before the work item.
- ``spawn(entry, payload)``: run ``entry(payload)`` in a new isolated
  worker and return its result.

ProcessEnvironment is the default. It spawns one process per call
through a single-use ProcessPoolExecutor and initializes workers by
connecting them to the host plugin channel.
"""

import asyncio
import logging
import multiprocessing
from abc import ABC, abstractmethod
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from typing import Any, Callable, Optional, TypeVar

from offload.core.config import OffloadConfig
from offload.core.errors import SpawnError
from offload.core.token import ContextToken, current_token

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Environment(ABC):
    """Capabilities supplied by the hosting environment."""

    @abstractmethod
    def current_token(self) -> Optional[ContextToken]:
        """Return the caller's context token, or None if unavailable."""
        ...

    @abstractmethod
    def initialize_worker(self, token: ContextToken) -> None:
        """Prepare a freshly spawned worker. Runs inside the worker.

        Raises:
            Exception: Any failure; the executor reports it as
                InitializationError.
        """
        ...

    @abstractmethod
    async def spawn(self, entry: Callable[[bytes], T], payload: bytes) -> T:
        """Run ``entry(payload)`` in a new isolated worker.

        Raises:
            SpawnError: If the worker cannot be created or dies abruptly.
            Exception: Whatever ``entry`` raised, unchanged.
        """
        ...


class ProcessEnvironment(Environment):
    """Environment backed by worker processes and the host plugin channel.

    Instances are pickled together with the worker entry point, so they
    hold nothing but their configuration.

    Args:
        config: Runtime configuration. Defaults to ``OffloadConfig.from_env()``.
    """

    def __init__(self, config: Optional[OffloadConfig] = None):
        self._config = config or OffloadConfig.from_env()

    @property
    def config(self) -> OffloadConfig:
        return self._config

    def current_token(self) -> Optional[ContextToken]:
        return current_token()

    def initialize_worker(self, token: ContextToken) -> None:
        from offload.process.channel import ensure_initialized

        ensure_initialized(
            token,
            handshake_timeout_ms=self._config.handshake_timeout_ms,
            call_timeout_ms=self._config.call_timeout_ms,
        )

    async def spawn(self, entry: Callable[[bytes], Any], payload: bytes) -> Any:
        loop = asyncio.get_running_loop()
        mp_context = multiprocessing.get_context(self._config.start_method)
        executor = ProcessPoolExecutor(max_workers=1, mp_context=mp_context)

        try:
            try:
                future = loop.run_in_executor(executor, entry, payload)
            except OSError as e:
                raise SpawnError(f"Failed to start worker process: {e}") from e

            logger.debug(f"Worker process spawned ({self._config.start_method})")
            try:
                return await future
            except BrokenProcessPool as e:
                raise SpawnError(f"Worker process terminated abruptly: {e}") from e
        finally:
            # Worker exits on its own once the result is delivered
            executor.shutdown(wait=False)


__all__ = ["Environment", "ProcessEnvironment"]
