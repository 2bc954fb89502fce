"""Core types for offload.

- ContextToken: Capability identifying the host context
- OffloadConfig: Runtime configuration
- Errors: OffloadError and its subclasses
"""

from offload.core.config import OffloadConfig
from offload.core.errors import (
    OffloadError,
    InitializationError,
    SpawnError,
    TransferError,
    ChannelError,
    RemoteWorkError,
)
from offload.core.token import (
    ContextToken,
    install_root_token,
    clear_root_token,
    current_token,
)

__all__ = [
    # Config
    "OffloadConfig",
    # Errors
    "OffloadError",
    "InitializationError",
    "SpawnError",
    "TransferError",
    "ChannelError",
    "RemoteWorkError",
    # Tokens
    "ContextToken",
    "install_root_token",
    "clear_root_token",
    "current_token",
]
