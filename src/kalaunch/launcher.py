"""Launch entry point: validate buffers, pick a backend, dispatch."""

from __future__ import annotations

from typing import Sequence

from .backends import KernelBody, get_backend
from .buffers import BackendTag, Buffer
from .completion import CompletionHandle
from .config import LauncherConfig, get_config
from .errors import BackendMismatchError, DeviceBufferNotReadyError, ShapeMismatchError
from .ndrange import LaunchConfig
from .profiling import nvtx_range


def _check_buffers(buffers: Sequence[Buffer]) -> None:
    for position, buffer in enumerate(buffers):
        if not isinstance(buffer, Buffer):
            raise TypeError(
                f"launch argument {position} must be a Buffer, got {type(buffer)!r}"
            )

    shape = buffers[0].shape
    for buffer in buffers[1:]:
        if buffer.shape != shape:
            raise ShapeMismatchError(
                f"all buffers must share shape {shape}, got {buffer.shape}"
            )

    backend = buffers[0].backend
    for buffer in buffers[1:]:
        if buffer.backend is not backend:
            raise BackendMismatchError(
                f"cannot mix {backend.value} and {buffer.backend.value} buffers in one launch"
            )

    for buffer in buffers:
        if not buffer.ready:
            raise DeviceBufferNotReadyError(
                "launch argument is written by a launch that has not been waited on"
            )
    # the output must also be free of unwaited readers
    buffers[0]._check_writable()

    device = buffers[0].device
    for buffer in buffers[1:]:
        if buffer.device != device:
            raise BackendMismatchError(
                f"buffers live on different devices: {device} and {buffer.device}"
            )


def _resolve_extent(
    ndrange: Sequence[int] | None, shape: tuple[int, ...]
) -> tuple[int, ...]:
    if ndrange is None:
        return shape
    extent = tuple(int(e) for e in ndrange)
    if len(extent) != len(shape) or any(e > s for e, s in zip(extent, shape)):
        raise ShapeMismatchError(
            f"ndrange {extent} does not fit within buffer shape {shape}"
        )
    return extent


def launch(
    body: KernelBody,
    output: Buffer,
    *inputs: Buffer,
    config: LaunchConfig | None = None,
    name: str | None = None,
    launcher_config: LauncherConfig | None = None,
) -> CompletionHandle:
    """Launch ``body`` over the index space of ``output``.

    The backend is chosen from the buffers' tag: host buffers run on the host
    worker pool, device buffers on a CUDA stream. ``body`` is called as
    ``body(index, out, *inputs)`` where ``index`` is a tuple of broadcastable
    int64 index tensors and ``out``/``inputs`` are the buffers' tensors. It
    must only write ``out[index]``.

    All validation happens before any work is submitted.

    Args:
        body: Kernel body.
        output: Buffer written by the kernel.
        *inputs: Buffers read by the kernel.
        config: Optional work-group size and ndrange overrides.
        name: Kernel name for errors and NVTX ranges; defaults to the body's name.
        launcher_config: Overrides the process-wide :class:`LauncherConfig`.

    Returns:
        A :class:`CompletionHandle`. ``output`` is unreadable until it is waited.

    Raises:
        ShapeMismatchError: If buffer shapes differ or the ndrange does not fit.
        BackendMismatchError: If host and device buffers are mixed.
        DeviceBufferNotReadyError: If a buffer is still written by an unwaited
            launch, or ``output`` is still read by one.
        BackendUnavailableError: If device buffers are given but CUDA is missing.
    """

    buffers = (output, *inputs)
    _check_buffers(buffers)
    settings = launcher_config if launcher_config is not None else get_config()
    config = config if config is not None else LaunchConfig()

    tag = output.backend
    extent = _resolve_extent(config.ndrange, output.shape)
    backend = get_backend(tag, workers=settings.host_workers, device=output.device)
    workgroupsize = (
        config.workgroupsize
        if config.workgroupsize is not None
        else backend.default_workgroupsize(settings)
    )
    ndrange = backend.plan(extent, workgroupsize)
    kernel_name = name if name is not None else getattr(body, "__name__", "kernel")

    with nvtx_range(kernel_name, enabled=settings.nvtx and tag is BackendTag.DEVICE):
        handle = backend.submit(
            body,
            ndrange,
            output._raw(),
            [buffer._raw() for buffer in inputs],
            name=kernel_name,
        )
    handle.attach(output)
    for buffer in inputs:
        if buffer is not output:
            handle.attach_input(buffer)
    return handle
