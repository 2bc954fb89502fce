"""Offloader - run a single unit of work in an isolated worker.

When the environment reports a context token (a host binding is active),
the unit of work is pickled, sent to a fresh worker process, run there
after the worker has connected back to the host, and its result is
returned to the awaiting caller. Without a token the unit of work runs
right away on the caller's context. Either way the caller gets the same
return value and the same exceptions.

Architecture:
    caller ──→ Offloader.run(fn)
                  │
                  ├── no token ──→ fn() on this context
                  │
                  └── token ──→ WorkItem(fn, token) ──→ pickle
                                   │
                                   ▼
                           worker process
                           1. initialize_worker(token)
                           2. fn()  (awaited if it returns an awaitable)
                           3. result pickled back

Work items must be picklable when a token is present. Use module-level
functions, optionally bound to their inputs with functools.partial:

Example:
    >>> import functools
    >>> from offload import Offloader
    >>>
    >>> def checksum(data: bytes) -> int:
    ...     return sum(data) % 65521
    >>>
    >>> offloader = Offloader()
    >>> offloader.run_sync(functools.partial(checksum, b"payload"))
    746

Limitations:
    One worker per call, no reuse. A running work item cannot be
    cancelled or timed out; cancelling the awaiting task leaves the
    worker running to completion.
"""

import asyncio
import functools
import inspect
import logging
import pickle
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from offload.core.config import OffloadConfig
from offload.core.errors import InitializationError, RemoteWorkError
from offload.core.token import ContextToken
from offload.process.environment import Environment, ProcessEnvironment
from offload.process.serialization import pack_payload, unpack_payload

logger = logging.getLogger(__name__)

T = TypeVar("T")

UnitOfWork = Callable[[], Union[T, Awaitable[T]]]


@dataclass(frozen=True)
class WorkItem(Generic[T]):
    """A unit of work and the token needed to initialize its worker.

    Attributes:
        fn: Zero-argument callable producing the result or an awaitable of it.
        token: Caller's context token, or None.
    """
    fn: UnitOfWork
    token: Optional[ContextToken] = None


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _worker_main(initialize: Callable[[ContextToken], None], payload: bytes) -> Any:
    """Worker entry point. Must stay module-level so it can be pickled."""
    item = unpack_payload(payload)

    if item.token is not None:
        try:
            initialize(item.token)
        except InitializationError:
            raise
        except Exception as e:
            raise InitializationError(f"Worker context initialization failed: {e}") from e

    try:
        result = item.fn()
        if inspect.isawaitable(result):
            result = asyncio.run(_await(result))
    except Exception as e:
        if _survives_pickling(e):
            raise
        logger.debug(f"Work failure {type(e).__name__} cannot be pickled, sending a stand-in")
        raise RemoteWorkError(str(e), type(e).__name__) from None
    return result


def _survives_pickling(error: BaseException) -> bool:
    # The pool pickles failures back; one that cannot be rebuilt breaks the pool
    try:
        pickle.loads(pickle.dumps(error))
    except Exception:
        return False
    return True


class Offloader:
    """Runs units of work in an isolated worker, or locally as a fallback.

    Args:
        environment: Capability provider. Defaults to a ProcessEnvironment
            built from ``config``.
        config: Runtime configuration. Defaults to ``OffloadConfig.from_env()``.
    """

    def __init__(
        self,
        environment: Optional[Environment] = None,
        config: Optional[OffloadConfig] = None,
    ):
        self._config = config or OffloadConfig.from_env()
        self._environment = environment or ProcessEnvironment(self._config)

    @property
    def environment(self) -> Environment:
        return self._environment

    @property
    def config(self) -> OffloadConfig:
        return self._config

    async def run(self, fn: UnitOfWork) -> T:
        """Run ``fn`` and return its result.

        Args:
            fn: Zero-argument callable. May return a value or an awaitable.
                Must be picklable if a context token is available.

        Returns:
            The value produced by ``fn``.

        Raises:
            TransferError: ``fn`` could not be sent to or restored in the worker.
            InitializationError: Worker initialization failed; ``fn`` did not run.
            SpawnError: The worker could not be created or died.
            Exception: Anything raised by ``fn``, unchanged.
            RemoteWorkError: ``fn`` failed in the worker with an exception
                that cannot be pickled; carries its type name and message.
        """
        token = None if self._config.force_local else self._environment.current_token()

        if token is None:
            logger.debug("No context token, running work item on the current context")
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result

        payload = pack_payload(WorkItem(fn, token))
        entry = functools.partial(_worker_main, self._environment.initialize_worker)
        logger.debug(f"Offloading work item ({len(payload)} bytes) to a worker context")
        return await self._environment.spawn(entry, payload)

    def run_sync(self, fn: UnitOfWork) -> T:
        """Blocking variant of ``run`` for callers without an event loop.

        Raises:
            RuntimeError: If called from a running event loop.
        """
        coro = self.run(fn)
        try:
            return asyncio.run(coro)
        finally:
            coro.close()


class OffloadMixin:
    """Gives a class a ``run_offloaded`` method.

    Set ``offload_environment`` on the class to use a custom Environment.

    Example:
        >>> class ReportService(OffloadMixin):
        ...     async def build(self, rows):
        ...         return await self.run_offloaded(functools.partial(render_report, rows))

    Do not pass bound methods of the service itself unless the instance
    is picklable.
    """

    offload_environment: Optional[Environment] = None
    _offloader: Optional[Offloader] = None

    @property
    def offloader(self) -> Offloader:
        if self._offloader is None:
            self._offloader = Offloader(self.offload_environment)
        return self._offloader

    async def run_offloaded(self, fn: UnitOfWork) -> T:
        """Run ``fn`` through this object's Offloader."""
        return await self.offloader.run(fn)


_default_offloader: Optional[Offloader] = None


def get_default_offloader() -> Offloader:
    """Return the process-wide Offloader, creating it on first use."""
    global _default_offloader
    if _default_offloader is None:
        _default_offloader = Offloader()
    return _default_offloader


async def run(fn: UnitOfWork) -> T:
    """Run ``fn`` with the default Offloader. See ``Offloader.run``."""
    return await get_default_offloader().run(fn)


def run_sync(fn: UnitOfWork) -> T:
    """Blocking ``run`` with the default Offloader."""
    return get_default_offloader().run_sync(fn)


__all__ = [
    "WorkItem",
    "UnitOfWork",
    "Offloader",
    "OffloadMixin",
    "get_default_offloader",
    "run",
    "run_sync",
]
