from __future__ import annotations

import os
from dataclasses import dataclass, field, replace


def _default_workers() -> int:
    return os.cpu_count() or 1


@dataclass
class LauncherConfig:
    """Process-wide launch defaults.

    Attributes:
        host_workers: Size of the host worker pool.
        host_workgroupsize: Work-group size used by ``vadd`` on host buffers.
        device_workgroupsize: Work-group size used by ``vadd`` on device buffers.
        device: Torch device string that device buffers are allocated on.
        nvtx: If True, wrap device launches in NVTX ranges named after the kernel.
        allow_scalar: If True, permit element indexing of device buffers.
    """

    host_workers: int = field(default_factory=_default_workers)
    host_workgroupsize: int = 4
    device_workgroupsize: int = 256
    device: str = "cuda"
    nvtx: bool = True
    allow_scalar: bool = False


_CONFIG = LauncherConfig()


def get_config() -> LauncherConfig:
    """Return the active process-wide configuration."""

    return _CONFIG


def set_config(config: LauncherConfig | None = None, **overrides) -> LauncherConfig:
    """Install a new process-wide configuration.

    Args:
        config: Replacement config. Defaults to the current one.
        **overrides: Field values applied on top of ``config``.

    Returns:
        The previously active configuration, so callers can restore it.
    """

    global _CONFIG
    previous = _CONFIG
    base = config if config is not None else _CONFIG
    _CONFIG = replace(base, **overrides) if overrides else base
    return previous
