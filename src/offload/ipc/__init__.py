"""IPC transport for the host plugin channel.

- RPCServer / RPCClient: ZeroMQ REQ-REP with JSON messages
- Utilities: IPC address generation and cleanup
"""

from offload.ipc._util import generate_ipc_address, remove_ipc_file
from offload.ipc.rpc import RPCServer, RPCClient

__all__ = [
    "RPCServer",
    "RPCClient",
    "generate_ipc_address",
    "remove_ipc_file",
]
