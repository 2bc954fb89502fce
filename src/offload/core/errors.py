"""Exceptions raised by offload.

Failures of the unit of work itself are never wrapped: the caller sees
the original exception, or a RemoteWorkError naming it when the original
cannot be pickled back from the worker. The other types cover the
infrastructure around it. Each carries its message as the first argument
so it survives pickling across the process boundary.
"""


class OffloadError(Exception):
    """Base class for offload infrastructure errors."""


class InitializationError(OffloadError):
    """Raised when per-context initialization fails in a worker.

    The unit of work is never invoked when this is raised.
    """


class SpawnError(OffloadError):
    """Raised when a worker context cannot be created or dies abruptly."""


class TransferError(SpawnError):
    """Raised when a work item cannot cross the process boundary.

    Usually means the callable is a lambda, a nested function, or
    captures something that cannot be pickled.
    """


class ChannelError(OffloadError):
    """Raised when a plugin call through the host channel fails."""


class RemoteWorkError(OffloadError):
    """Stands in for a work failure whose exception cannot be pickled.

    Raised in the caller when the unit of work failed in a worker with an
    exception that cannot be rebuilt on this side. The message is the
    original message; ``error_type`` names the original class.
    """

    def __init__(self, message: str, error_type: str = "Exception"):
        super().__init__(message)
        self.error_type = error_type

    def __reduce__(self):
        return type(self), (str(self), self.error_type)


__all__ = [
    "OffloadError",
    "InitializationError",
    "SpawnError",
    "TransferError",
    "ChannelError",
    "RemoteWorkError",
]
