"""Host and device execution backends."""

from __future__ import annotations

import functools
import os
import time
import warnings
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from math import prod
from typing import Callable, Sequence

import torch

from .buffers import BackendTag
from .completion import CompletionHandle, DeviceCompletion, HostCompletion
from .config import LauncherConfig, get_config
from .errors import BackendUnavailableError, KernelExecutionError
from .ndrange import NDRange, Slab, WorkgroupSize, normalize_workgroupsize

KernelBody = Callable[..., None]


def _clip_workgroupsize(sizes: tuple[int, ...], limit: int) -> tuple[int, ...]:
    clipped = list(sizes)
    while prod(clipped) > limit:
        largest = max(range(len(clipped)), key=lambda dim: clipped[dim])
        clipped[largest] = max(1, clipped[largest] // 2)
    return tuple(clipped)


class Backend(ABC):
    """Execution target for kernel launches.

    Attributes:
        tag: Buffer tag this backend accepts.
        max_workgroupsize: Upper bound on work items per group, or ``None``.
    """

    tag: BackendTag
    max_workgroupsize: int | None = None

    @property
    def name(self) -> str:
        return self.tag.value

    @abstractmethod
    def default_workgroupsize(self, config: LauncherConfig) -> int:
        """Return the work-group size used when a launch does not give one."""

    def plan(self, extent: Sequence[int], workgroupsize: WorkgroupSize) -> NDRange:
        """Build the index space for a launch, clipping oversized work groups."""

        sizes = normalize_workgroupsize(workgroupsize, len(extent))
        limit = self.max_workgroupsize
        if limit is not None and prod(sizes) > limit:
            clipped = _clip_workgroupsize(sizes, limit)
            warnings.warn(
                f"workgroupsize {sizes} exceeds the {self.name} limit of {limit} "
                f"work items; using {clipped}",
                RuntimeWarning,
                stacklevel=3,
            )
            sizes = clipped
        return NDRange(extent, sizes)

    @abstractmethod
    def submit(
        self,
        body: KernelBody,
        ndrange: NDRange,
        out: torch.Tensor,
        inputs: Sequence[torch.Tensor],
        *,
        name: str,
    ) -> CompletionHandle:
        """Start ``body`` over ``ndrange`` and return without waiting."""


def _run_slab(
    body: KernelBody,
    ndrange: NDRange,
    slab: Slab,
    out: torch.Tensor,
    inputs: Sequence[torch.Tensor],
) -> None:
    body(ndrange.indices(slab), out, *inputs)


class HostBackend(Backend):
    """Runs slabs of work groups on a fixed-size thread pool.

    Torch kernels release the GIL, so slabs execute concurrently. No ordering
    is guaranteed between slabs.

    Args:
        workers: Number of pool threads.
    """

    tag = BackendTag.HOST

    def default_workgroupsize(self, config: LauncherConfig) -> int:
        return config.host_workgroupsize

    def __init__(self, workers: int) -> None:
        if workers < 1:
            raise ValueError("host backend needs at least one worker.")
        cpus = os.cpu_count() or 1
        if workers > cpus:
            warnings.warn(
                f"host backend configured with {workers} workers on {cpus} CPUs",
                RuntimeWarning,
                stacklevel=2,
            )
        self.workers = workers
        self._pool = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="kalaunch-host"
        )

    def submit(
        self,
        body: KernelBody,
        ndrange: NDRange,
        out: torch.Tensor,
        inputs: Sequence[torch.Tensor],
        *,
        name: str,
    ) -> CompletionHandle:
        started = time.perf_counter()
        futures = [
            self._pool.submit(_run_slab, body, ndrange, slab, out, inputs)
            for slab in ndrange.partition(self.workers)
        ]
        return HostCompletion(name, futures, started=started)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)


class DeviceBackend(Backend):
    """Enqueues launches on a dedicated CUDA stream.

    The stream first waits for the caller's current stream, so buffers filled
    there are visible to the kernel. Submission returns as soon as the work and
    its completion event are enqueued.

    Args:
        device: CUDA device the stream belongs to.

    Raises:
        BackendUnavailableError: If CUDA is not available.
    """

    tag = BackendTag.DEVICE
    max_workgroupsize = 1024

    def default_workgroupsize(self, config: LauncherConfig) -> int:
        return config.device_workgroupsize

    def __init__(self, device: str | torch.device = "cuda") -> None:
        if not torch.cuda.is_available():
            raise BackendUnavailableError("CUDA is not available")
        device = torch.device(device)
        if device.index is None:
            device = torch.device("cuda", torch.cuda.current_device())
        self.device = device
        self._stream = torch.cuda.Stream(device=device)

    @property
    def stream(self) -> torch.cuda.Stream:
        return self._stream

    def submit(
        self,
        body: KernelBody,
        ndrange: NDRange,
        out: torch.Tensor,
        inputs: Sequence[torch.Tensor],
        *,
        name: str,
    ) -> CompletionHandle:
        start = torch.cuda.Event(enable_timing=True)
        end = torch.cuda.Event(enable_timing=True)
        with torch.cuda.device(self.device):
            self._stream.wait_stream(torch.cuda.current_stream(self.device))
            with torch.cuda.stream(self._stream):
                start.record(self._stream)
                try:
                    body(ndrange.indices(device=self.device), out, *inputs)
                except Exception as exc:
                    raise KernelExecutionError(
                        f"kernel '{name}' failed during submission: {exc}"
                    ) from exc
                end.record(self._stream)
        for tensor in (out, *inputs):
            tensor.record_stream(self._stream)
        return DeviceCompletion(name, start, end)


@functools.lru_cache(maxsize=None)
def _host_backend(workers: int) -> HostBackend:
    return HostBackend(workers)


@functools.lru_cache(maxsize=None)
def _device_backend(device: str) -> DeviceBackend:
    return DeviceBackend(device)


def get_backend(
    tag: BackendTag | str,
    *,
    workers: int | None = None,
    device: str | torch.device | None = None,
) -> Backend:
    """Return the shared backend instance for ``tag``.

    Args:
        tag: Backend tag taken from the launch's buffers.
        workers: Host pool size; defaults to the configured value.
        device: CUDA device for device launches; defaults to the configured one.

    Returns:
        A cached :class:`HostBackend` or :class:`DeviceBackend`.

    Raises:
        BackendUnavailableError: If a device backend is requested without CUDA.
    """

    tag = BackendTag(tag)
    config = get_config()
    if tag is BackendTag.HOST:
        return _host_backend(workers if workers is not None else config.host_workers)
    if not torch.cuda.is_available():
        raise BackendUnavailableError("CUDA is not available")
    target = torch.device(device if device is not None else config.device)
    if target.index is None:
        target = torch.device("cuda", torch.cuda.current_device())
    return _device_backend(str(target))
