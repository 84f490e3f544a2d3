"""Device-portable elementwise kernel launcher for torch tensors."""

from __future__ import annotations

from .buffers import BackendTag, Buffer, allowscalar, device, full, host, ones, zeros
from .completion import CompletionHandle, CompletionState, wait
from .config import LauncherConfig, get_config, set_config
from .errors import (
    BackendMismatchError,
    BackendUnavailableError,
    DeviceBufferNotReadyError,
    KernelExecutionError,
    ScalarIndexingError,
    ShapeMismatchError,
)
from .kernel import ConfiguredKernel, Kernel, kernel
from .launcher import launch
from .ndrange import LaunchConfig, NDRange

__version__ = "0.1.0"

__all__ = [
    "BackendMismatchError",
    "BackendTag",
    "BackendUnavailableError",
    "Buffer",
    "CompletionHandle",
    "CompletionState",
    "ConfiguredKernel",
    "DeviceBufferNotReadyError",
    "Kernel",
    "KernelExecutionError",
    "LaunchConfig",
    "LauncherConfig",
    "NDRange",
    "ScalarIndexingError",
    "ShapeMismatchError",
    "allowscalar",
    "device",
    "full",
    "get_config",
    "host",
    "kernel",
    "launch",
    "ones",
    "set_config",
    "wait",
    "zeros",
    "__version__",
]
