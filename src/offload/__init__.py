"""offload - run a unit of work in an isolated worker process.

``run(fn)`` sends ``fn`` to a fresh worker process when a host binding
is active, and runs it on the caller's context otherwise. Workers can
call back into host plugin handlers with ``invoke()``.

Example:
    >>> import functools
    >>> import offload
    >>>
    >>> with offload.bind_host({"scale": lambda x: x * 10}):
    ...     value = offload.run_sync(functools.partial(pow, 2, 10))
    >>> value
    1024
"""

from offload.core import (
    OffloadConfig,
    OffloadError,
    InitializationError,
    SpawnError,
    TransferError,
    ChannelError,
    RemoteWorkError,
    ContextToken,
    current_token,
)
from offload.process import (
    WorkItem,
    Offloader,
    OffloadMixin,
    Environment,
    ProcessEnvironment,
    HostBinding,
    bind_host,
    invoke,
    run,
    run_sync,
)

__version__ = "0.1.0"

__all__ = [
    # Primary interface
    "run",
    "run_sync",
    "Offloader",
    "OffloadMixin",
    # Host binding
    "bind_host",
    "HostBinding",
    "invoke",
    # Environment
    "Environment",
    "ProcessEnvironment",
    "ContextToken",
    "current_token",
    "WorkItem",
    # Config
    "OffloadConfig",
    # Errors
    "OffloadError",
    "InitializationError",
    "SpawnError",
    "TransferError",
    "ChannelError",
    "RemoteWorkError",
]
