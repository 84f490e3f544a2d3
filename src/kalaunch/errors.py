"""Exception types raised by the launcher."""

from __future__ import annotations


class ShapeMismatchError(ValueError):
    """Buffers participating in one launch disagree in shape."""


class BackendMismatchError(ValueError):
    """A launch mixes host and device buffers."""


class DeviceBufferNotReadyError(RuntimeError):
    """A buffer was accessed while an unwaited launch still writes to it."""


class ScalarIndexingError(RuntimeError):
    """Element-wise indexing of a device buffer while scalar access is off."""


class BackendUnavailableError(RuntimeError):
    """The requested backend cannot run in this process."""


class KernelExecutionError(RuntimeError):
    """A kernel body raised while executing a work group."""


__all__ = [
    "BackendMismatchError",
    "BackendUnavailableError",
    "DeviceBufferNotReadyError",
    "KernelExecutionError",
    "ScalarIndexingError",
    "ShapeMismatchError",
]
