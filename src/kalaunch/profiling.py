"""Profiler-facing annotations.

Nsight Systems and Nsight Compute see launches from this package as anonymous
elementwise kernels. Device launches are wrapped in NVTX ranges named after the
kernel body so they can be located in a timeline, or selected with
``ncu --nvtx --nvtx-include "<name>/"``.
"""

from __future__ import annotations

import warnings
from contextlib import contextmanager
from typing import Iterator

import torch

_NVTX_BROKEN = False


def nvtx_available() -> bool:
    """Return ``True`` if NVTX ranges can be emitted in this process."""

    return not _NVTX_BROKEN and torch.cuda.is_available()


@contextmanager
def nvtx_range(name: str, enabled: bool = True) -> Iterator[None]:
    """Push an NVTX range around the enclosed block when ``enabled``."""

    global _NVTX_BROKEN
    pushed = False
    if enabled and nvtx_available():
        try:
            torch.cuda.nvtx.range_push(name)
            pushed = True
        except RuntimeError as exc:
            _NVTX_BROKEN = True
            warnings.warn(
                f"NVTX ranges requested but unavailable ({exc}); launches will not be annotated",
                RuntimeWarning,
                stacklevel=3,
            )
    try:
        yield
    finally:
        if pushed:
            torch.cuda.nvtx.range_pop()
