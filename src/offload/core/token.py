"""Context tokens and the per-process root token registry.

A ContextToken identifies the host process that owns a plugin channel.
The host installs a root token when it binds its channel; worker
processes receive a copy of the token with each work item and use it to
connect back to the host.

The registry is process-local. A token installed in one process is never
reported as current in another, including children created with fork,
so code already running in a worker always sees ``None``.

Example:
    >>> from offload.core.token import current_token
    >>> current_token() is None  # no host binding installed
    True
"""

import os
import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ContextToken:
    """Opaque capability identifying a host execution context.

    Attributes:
        address: ZMQ address of the host plugin channel.
        host_pid: PID of the process that installed the token.
        token_id: Random identifier checked by the host during handshake.
    """
    address: str
    host_pid: int = field(default_factory=os.getpid)
    token_id: str = field(default_factory=lambda: uuid.uuid4().hex)


_lock = threading.Lock()
_root: Optional[ContextToken] = None


def install_root_token(token: ContextToken) -> None:
    """Install ``token`` as the root token of the current process.

    Raises:
        RuntimeError: If a different root token is already installed.
    """
    global _root
    with _lock:
        if _root is not None and _root.host_pid == os.getpid() and _root != token:
            raise RuntimeError("A root context token is already installed")
        _root = token


def clear_root_token(token: Optional[ContextToken] = None) -> None:
    """Remove the root token.

    Args:
        token: If given, only clear when it is the installed token.
    """
    global _root
    with _lock:
        if token is None or _root == token:
            _root = None


def current_token() -> Optional[ContextToken]:
    """Return the root token of the current process, or None."""
    root = _root
    if root is None or root.host_pid != os.getpid():
        return None
    return root


__all__ = [
    "ContextToken",
    "install_root_token",
    "clear_root_token",
    "current_token",
]
