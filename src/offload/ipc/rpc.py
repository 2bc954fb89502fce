"""ZMQ REQ-REP transport for the host plugin channel.

The host binds one RPCServer; each worker process connects one
RPCClient. Messages are JSON objects encoded as UTF-8 bytes. Each
instance owns its own zmq.Context so that nothing is shared across a
fork.

Example:
    Host side:
        >>> server = RPCServer()
        >>> server.bind("ipc:///tmp/host.sock")
        >>> request = server.recv_json(timeout_ms=100)
        >>> server.send_json({"type": "pong"})
        >>> server.close()

    Worker side:
        >>> client = RPCClient(recv_timeout_ms=5000)
        >>> client.connect("ipc:///tmp/host.sock")
        >>> client.request({"type": "ping"})
        {'type': 'pong'}
        >>> client.close()

Requires: pyzmq
"""

import json
import logging
from typing import Any, Dict, Optional

import zmq

logger = logging.getLogger(__name__)


class RPCServer:
    """ZMQ REP socket server.

    Args:
        linger_ms: Socket linger time on close (milliseconds).
    """

    def __init__(self, linger_ms: int = 0):
        self._linger_ms = linger_ms
        self._context: Optional[zmq.Context] = None
        self._socket: Optional[zmq.Socket] = None
        self._is_bound = False

    def bind(self, address: str) -> None:
        """Bind the REP socket to an address."""
        if self._is_bound:
            return

        self._context = zmq.Context()
        self._socket = self._context.socket(zmq.REP)
        self._socket.setsockopt(zmq.LINGER, self._linger_ms)
        self._socket.bind(address)
        self._is_bound = True
        logger.info(f"RPC server bound to {address}")

    def recv_json(self, timeout_ms: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Receive a request.

        Args:
            timeout_ms: Receive timeout. None for blocking wait.

        Returns:
            Decoded request, or None on timeout.
        """
        if not self._is_bound or self._socket is None:
            return None

        if timeout_ms is not None and self._socket.poll(timeout_ms, zmq.POLLIN) == 0:
            return None
        return json.loads(self._socket.recv())

    def send_json(self, message: Dict[str, Any]) -> None:
        """Send a reply to the last request."""
        if self._socket is None:
            raise RuntimeError("Server not bound")
        self._socket.send(json.dumps(message).encode())

    def close(self) -> None:
        """Close the socket and terminate the context."""
        if self._socket is not None:
            self._socket.close(linger=self._linger_ms)
            self._socket = None

        if self._context is not None:
            self._context.term()
            self._context = None

        self._is_bound = False

    @property
    def is_bound(self) -> bool:
        return self._is_bound


class RPCClient:
    """ZMQ REQ socket client.

    The socket is created relaxed and correlated, so a request that timed
    out does not wedge the socket and a late reply to it is discarded.

    Args:
        send_timeout_ms: Send timeout (milliseconds).
        recv_timeout_ms: Default receive timeout (milliseconds).
        linger_ms: Socket linger time on close (milliseconds).
    """

    def __init__(
        self,
        send_timeout_ms: int = 30000,
        recv_timeout_ms: int = 30000,
        linger_ms: int = 0,
    ):
        self._send_timeout_ms = send_timeout_ms
        self._recv_timeout_ms = recv_timeout_ms
        self._linger_ms = linger_ms
        self._context: Optional[zmq.Context] = None
        self._socket: Optional[zmq.Socket] = None
        self._is_connected = False

    def connect(self, address: str) -> None:
        """Connect the REQ socket to a server address."""
        if self._is_connected:
            return

        self._context = zmq.Context()
        self._socket = self._context.socket(zmq.REQ)
        self._socket.setsockopt(zmq.SNDTIMEO, self._send_timeout_ms)
        self._socket.setsockopt(zmq.RCVTIMEO, self._recv_timeout_ms)
        self._socket.setsockopt(zmq.LINGER, self._linger_ms)
        self._socket.setsockopt(zmq.REQ_RELAXED, 1)
        self._socket.setsockopt(zmq.REQ_CORRELATE, 1)
        self._socket.connect(address)
        self._is_connected = True
        logger.debug(f"RPC client connected to {address}")

    def request(
        self,
        message: Dict[str, Any],
        timeout_ms: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """Send a request and wait for its reply.

        Args:
            message: JSON-serializable request.
            timeout_ms: Override receive timeout. None uses default.

        Returns:
            Decoded reply, or None on timeout.
        """
        if not self._is_connected or self._socket is None:
            raise RuntimeError("Client not connected")

        try:
            self._socket.send(json.dumps(message).encode())
        except zmq.Again:
            return None

        if timeout_ms is not None:
            old_timeout = self._socket.getsockopt(zmq.RCVTIMEO)
            self._socket.setsockopt(zmq.RCVTIMEO, timeout_ms)
        try:
            return json.loads(self._socket.recv())
        except zmq.Again:
            return None
        finally:
            if timeout_ms is not None:
                self._socket.setsockopt(zmq.RCVTIMEO, old_timeout)

    def close(self) -> None:
        """Close the socket and terminate the context."""
        if self._socket is not None:
            self._socket.close(linger=self._linger_ms)
            self._socket = None

        if self._context is not None:
            self._context.term()
            self._context = None

        self._is_connected = False

    @property
    def is_connected(self) -> bool:
        return self._is_connected
