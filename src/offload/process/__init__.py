"""Offloaded execution in isolated worker processes.

Components:
- Offloader: Runs one unit of work in a worker, or locally as a fallback
- Environment: Capability provider (token lookup, worker init, spawning)
- Channel: Host plugin channel reachable from workers
- Serialization: Payload pickling and JSON value conversion
"""

from offload.process.executor import (
    WorkItem,
    UnitOfWork,
    Offloader,
    OffloadMixin,
    get_default_offloader,
    run,
    run_sync,
)
from offload.process.environment import Environment, ProcessEnvironment
from offload.process.channel import (
    HostBinding,
    PluginHandler,
    bind_host,
    get_host_binding,
    ensure_initialized,
    is_initialized,
    invoke,
)

__all__ = [
    # Executor
    "WorkItem",
    "UnitOfWork",
    "Offloader",
    "OffloadMixin",
    "get_default_offloader",
    "run",
    "run_sync",
    # Environment
    "Environment",
    "ProcessEnvironment",
    # Channel
    "HostBinding",
    "PluginHandler",
    "bind_host",
    "get_host_binding",
    "ensure_initialized",
    "is_initialized",
    "invoke",
]
