"""Serialization for data crossing a process boundary.

Two formats are used:

- Work item payloads are pickled. Callables travel by reference, so a
  unit of work must be a module-level function (or a functools.partial
  over one) whose arguments are themselves picklable.
- Plugin channel messages are JSON. ``serialize_value`` turns numpy
  arrays, dataclasses and containers into JSON-safe values and
  ``restore_value`` reverses the numpy part.
"""

import base64
import json
import pickle
from typing import Any

import numpy as np

from offload.core.errors import TransferError


# ---------------------------------------------------------------------------
# Work item payloads
# ---------------------------------------------------------------------------

def pack_payload(obj: Any) -> bytes:
    """Pickle a work item for transfer to a worker.

    Raises:
        TransferError: If the object (usually the callable) cannot be pickled.
    """
    try:
        return pickle.dumps(obj, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, TypeError, AttributeError) as e:
        raise TransferError(
            f"Work item cannot be transferred to a worker process: {e}. "
            "Use a module-level function or functools.partial with picklable arguments."
        ) from e


def unpack_payload(payload: bytes) -> Any:
    """Unpickle a work item inside a worker.

    Raises:
        TransferError: If the payload cannot be reconstructed, for example
            because the callable's module is not importable in the worker.
    """
    try:
        return pickle.loads(payload)
    except Exception as e:
        raise TransferError(f"Work item cannot be restored in worker: {e}") from e


# ---------------------------------------------------------------------------
# JSON values for the plugin channel
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> Any:
    """Recursively serialize a value for JSON transmission.

    Handles numpy arrays and scalars, dataclasses, lists, tuples and
    dicts. Falls back to repr() or str() for anything else.

    Args:
        value: Any value to serialize.

    Returns:
        JSON-serializable representation.
    """
    if value is None:
        return None

    if isinstance(value, np.ndarray):
        return {
            "__numpy__": True,
            "dtype": str(value.dtype),
            "shape": list(value.shape),
            "data": base64.b64encode(value.tobytes()).decode("ascii"),
        }

    if isinstance(value, (np.integer, np.floating, np.bool_)):
        return value.item()

    # Fast path: already JSON-serializable
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        pass

    if hasattr(value, "__dataclass_fields__"):
        return {
            k: serialize_value(getattr(value, k))
            for k in value.__dataclass_fields__
        }

    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]

    if isinstance(value, dict):
        return {str(k): serialize_value(v) for k, v in value.items()}

    if hasattr(value, "__dict__"):
        return repr(value)

    return str(value)


def restore_value(value: Any) -> Any:
    """Recursively restore numpy arrays serialized by ``serialize_value``."""
    if isinstance(value, dict):
        if value.get("__numpy__"):
            dtype = np.dtype(value["dtype"])
            shape = tuple(value["shape"])
            buf = base64.b64decode(value["data"])
            return np.frombuffer(buf, dtype=dtype).reshape(shape).copy()
        return {k: restore_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [restore_value(item) for item in value]
    return value


__all__ = [
    "pack_payload",
    "unpack_payload",
    "serialize_value",
    "restore_value",
]
