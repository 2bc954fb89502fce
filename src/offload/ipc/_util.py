"""IPC utility functions."""

import os
import tempfile


def generate_ipc_address(prefix: str = "offload") -> tuple[str, str]:
    """Generate a unique IPC address for ZMQ communication.

    Args:
        prefix: Prefix for the socket file name.

    Returns:
        Tuple of (zmq_address, file_path) where zmq_address is like
        "ipc:///tmp/offload-12345-xxxx.sock" and file_path is the
        underlying socket file path.
    """
    ipc_file = tempfile.mktemp(
        prefix=f"{prefix}-{os.getpid()}-",
        suffix=".sock",
    )
    return f"ipc://{ipc_file}", ipc_file


def remove_ipc_file(path: str) -> None:
    """Remove an IPC socket file if it still exists."""
    if path and os.path.exists(path):
        os.unlink(path)
