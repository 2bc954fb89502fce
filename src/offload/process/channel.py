"""Host plugin channel.

Lets code running in a worker process call plugin handlers that live in
the host process.

Architecture:
    Host process                          Worker process
    ────────────                          ──────────────
    HostBinding ── RPCServer (REP) ◄────── RPCClient (REQ)
        │                                     ▲
        └── handlers {"name": callable}       └── invoke("name", *args)

The host calls ``bind_host()`` once. This binds the server, starts a
serving thread and installs the root ContextToken for the process. A
worker that receives the token calls ``ensure_initialized(token)``
before running its work item; after that ``invoke()`` reaches the host.
In the host process itself ``invoke()`` dispatches directly.

Example:
    >>> binding = bind_host({"greet": lambda name: f"hello {name}"})
    >>> invoke("greet", "world")  # works in the host and in workers
    'hello world'
    >>> binding.close()
"""

import atexit
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

import zmq

from offload.core.errors import ChannelError, InitializationError
from offload.core.token import (
    ContextToken,
    clear_root_token,
    install_root_token,
)
from offload.ipc import RPCClient, RPCServer, generate_ipc_address, remove_ipc_file
from offload.process.serialization import restore_value, serialize_value

logger = logging.getLogger(__name__)

PluginHandler = Callable[..., Any]

# Serving thread wakes up this often to check for shutdown
_POLL_INTERVAL_MS = 100


# =============================================================================
# Host side
# =============================================================================


class HostBinding:
    """Host end of the plugin channel.

    Owns the REP server, the serving thread and the table of plugin
    handlers. Handlers are called on the serving thread, one request at
    a time.
    """

    def __init__(self):
        self._handlers: Dict[str, PluginHandler] = {}
        self._lock = threading.Lock()
        self._server: Optional[RPCServer] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._ipc_file = ""
        self._token: Optional[ContextToken] = None

    def register(self, name: str, handler: PluginHandler) -> None:
        """Register a plugin handler under ``name``, replacing any previous one."""
        with self._lock:
            self._handlers[name] = handler

    def unregister(self, name: str) -> None:
        with self._lock:
            self._handlers.pop(name, None)

    @property
    def handler_names(self) -> List[str]:
        with self._lock:
            return sorted(self._handlers)

    @property
    def token(self) -> Optional[ContextToken]:
        return self._token

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> ContextToken:
        """Bind the server, start serving and install the root token.

        Returns:
            The token workers use to reach this binding.
        """
        global _host

        if self._token is not None:
            return self._token

        address, self._ipc_file = generate_ipc_address(prefix="offload-host")
        server = RPCServer()
        server.bind(address)

        token = ContextToken(address=address)
        try:
            install_root_token(token)
        except RuntimeError:
            server.close()
            remove_ipc_file(self._ipc_file)
            raise

        self._server = server
        self._token = token
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._serve,
            name="offload-host-channel",
            daemon=True,
        )
        self._thread.start()
        _host = self
        logger.info(f"Host channel started at {address}")
        return token

    def close(self) -> None:
        """Stop serving, release the socket and uninstall the token."""
        global _host

        if self._token is None:
            return

        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=_POLL_INTERVAL_MS / 1000 * 20)
            if self._thread.is_alive():
                logger.warning("Host channel thread still busy, it will close the socket itself")
            self._thread = None
        self._server = None

        try:
            remove_ipc_file(self._ipc_file)
        except OSError as e:
            logger.warning(f"Could not remove IPC file {self._ipc_file}: {e}")
        self._ipc_file = ""

        clear_root_token(self._token)
        if _host is self:
            _host = None
        logger.info(f"Host channel at {self._token.address} closed")
        self._token = None

    def dispatch(self, method: str, args: List[Any]) -> Any:
        """Call the handler registered under ``method``.

        Raises:
            LookupError: If no handler is registered under that name.
        """
        with self._lock:
            handler = self._handlers.get(method)
        if handler is None:
            raise LookupError(f"No plugin handler registered for '{method}'")
        return handler(*args)

    def _handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if self._token is None or message.get("token") != self._token.token_id:
            return {"error": "Unknown context token", "error_type": "InvalidToken"}

        msg_type = message.get("type")

        if msg_type == "ping":
            return {"type": "pong", "host_pid": os.getpid()}

        if msg_type == "call":
            method = message.get("method", "")
            try:
                result = self.dispatch(method, restore_value(message.get("args") or []))
                return {"result": serialize_value(result)}
            except Exception as e:
                logger.debug(f"Plugin handler '{method}' failed: {e}")
                return {"error": str(e), "error_type": type(e).__name__}

        logger.warning(f"Unknown message type: {msg_type}")
        return {"error": f"Unknown message type: {msg_type}", "error_type": "ProtocolError"}

    def _serve(self) -> None:
        # The serving thread owns the socket and closes it on exit
        server = self._server
        try:
            while not self._stop_event.is_set():
                try:
                    message = server.recv_json(timeout_ms=_POLL_INTERVAL_MS)
                except ValueError as e:
                    reply = {"error": f"Malformed request: {e}", "error_type": "ProtocolError"}
                except zmq.ZMQError as e:
                    logger.error(f"Host channel receive error: {e}")
                    break
                else:
                    if message is None:
                        continue
                    reply = self._reply(message)

                try:
                    server.send_json(reply)
                except (zmq.ZMQError, RuntimeError) as e:
                    logger.error(f"Host channel send error: {e}")
                    break
        finally:
            server.close()

    def _reply(self, message: Any) -> Dict[str, Any]:
        if not isinstance(message, dict):
            logger.warning(f"Rejected non-object request: {type(message).__name__}")
            return {"error": "Request must be a JSON object", "error_type": "ProtocolError"}

        logger.debug(f"Host channel request: {message.get('type')} {message.get('method', '')}")
        try:
            return self._handle(message)
        except Exception as e:
            logger.error(f"Host channel failed to handle request: {e}")
            return {"error": str(e), "error_type": type(e).__name__}

    def __enter__(self) -> "HostBinding":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


_host: Optional[HostBinding] = None


def bind_host(
    handlers: Optional[Mapping[str, PluginHandler]] = None,
) -> HostBinding:
    """Create and start the host binding for this process.

    Args:
        handlers: Initial plugin handlers by name.

    Returns:
        The started HostBinding.

    Raises:
        RuntimeError: If this process already has a running host binding.
    """
    if get_host_binding() is not None:
        raise RuntimeError("A host binding is already active in this process")

    binding = HostBinding()
    for name, handler in (handlers or {}).items():
        binding.register(name, handler)
    binding.start()
    return binding


def get_host_binding() -> Optional[HostBinding]:
    """Return the active host binding of this process, if any."""
    host = _host
    if host is None or host.token is None or host.token.host_pid != os.getpid():
        return None
    return host


# =============================================================================
# Worker side
# =============================================================================


_worker_lock = threading.Lock()
_worker_client: Optional[RPCClient] = None
_worker_token: Optional[ContextToken] = None


def ensure_initialized(
    token: ContextToken,
    handshake_timeout_ms: int = 5000,
    call_timeout_ms: int = 30000,
) -> None:
    """Connect this process to the host channel identified by ``token``.

    Safe to call more than once with the same token; only the first call
    connects.

    Raises:
        InitializationError: If the host does not answer or rejects the token.
        RuntimeError: If the process is already bound to a different token.
    """
    global _worker_client, _worker_token

    with _worker_lock:
        if _worker_token is not None:
            if _worker_token == token:
                return
            raise RuntimeError("Worker channel is already initialized with a different token")

        client = RPCClient(
            send_timeout_ms=handshake_timeout_ms,
            recv_timeout_ms=call_timeout_ms,
        )
        client.connect(token.address)
        reply = client.request(
            {"type": "ping", "token": token.token_id},
            timeout_ms=handshake_timeout_ms,
        )

        if reply is None:
            client.close()
            raise InitializationError(
                f"Host channel handshake timed out after {handshake_timeout_ms}ms"
            )
        if reply.get("type") != "pong":
            client.close()
            raise InitializationError(
                f"Host channel rejected handshake: {reply.get('error', reply)}"
            )

        _worker_client = client
        _worker_token = token
        logger.debug(f"Worker channel connected to host pid {reply.get('host_pid')}")


def is_initialized() -> bool:
    """Check whether this process can reach a host channel."""
    return get_host_binding() is not None or _worker_client is not None


def invoke(method: str, *args: Any) -> Any:
    """Call a host plugin handler.

    Arguments and the result are converted with ``serialize_value`` /
    ``restore_value`` in both the host and worker processes, so callers
    see the same values either way.

    Raises:
        ChannelError: If the channel is not initialized, the call times
            out, or the handler raised.
    """
    host = get_host_binding()
    if host is not None:
        try:
            result = host.dispatch(method, restore_value(serialize_value(list(args))))
        except Exception as e:
            raise ChannelError(f"Plugin call '{method}' failed: {type(e).__name__}: {e}") from e
        return restore_value(serialize_value(result))

    with _worker_lock:
        client = _worker_client
        if client is None:
            raise ChannelError("Plugin channel is not initialized in this process")
        reply = client.request({
            "type": "call",
            "token": _worker_token.token_id,
            "method": method,
            "args": serialize_value(list(args)),
        })

    if reply is None:
        raise ChannelError(f"Plugin call '{method}' timed out")
    if "error" in reply:
        raise ChannelError(
            f"Plugin call '{method}' failed: {reply.get('error_type', 'Error')}: {reply['error']}"
        )
    return restore_value(reply.get("result"))


def _close_worker_channel() -> None:
    global _worker_client, _worker_token

    with _worker_lock:
        if _worker_client is not None:
            _worker_client.close()
        _worker_client = None
        _worker_token = None


atexit.register(_close_worker_channel)


__all__ = [
    "HostBinding",
    "PluginHandler",
    "bind_host",
    "get_host_binding",
    "ensure_initialized",
    "is_initialized",
    "invoke",
]
