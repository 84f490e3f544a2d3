from __future__ import annotations

from typing import Callable

import torch


def has_cuda_device() -> bool:
    """Return ``True`` when at least one CUDA device is usable."""

    return torch.cuda.is_available() and torch.cuda.device_count() > 0


def has_host_backend() -> bool:
    """Return ``True``; the host thread pool is always available."""

    return True


def _backend_checks() -> dict[str, Callable[[], bool]]:
    """Return availability predicates for the known backends."""

    return {
        "device": has_cuda_device,
        "host": has_host_backend,
    }


def get_available_backend(preferred: str | None = None) -> str:
    """Return the best available backend.

    The search defaults to the CUDA device, then the host pool. A caller may
    supply a ``preferred`` backend; if that backend is unavailable the
    function falls back to the default order.

    Args:
        preferred: Optional backend name to prioritize (``"device"`` or
            ``"host"``).

    Returns:
        The name of the first available backend.

    Raises:
        ValueError: If ``preferred`` names an unknown backend.
        RuntimeError: If no backend is available.
    """

    checks = _backend_checks()
    order: list[str] = []
    if preferred is not None:
        if preferred not in checks:
            raise ValueError(f"unknown backend preference: {preferred}")
        order.append(preferred)
    order.extend(name for name in ("device", "host") if name not in order)

    for backend in order:
        if checks[backend]():
            return backend

    raise RuntimeError("no available backend detected")
