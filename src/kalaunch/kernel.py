"""Kernel objects bound to a backend and work-group size."""

from __future__ import annotations

import functools
from typing import Sequence

from .backends import KernelBody
from .buffers import BackendTag, Buffer
from .completion import CompletionHandle
from .config import LauncherConfig
from .errors import BackendMismatchError
from .launcher import launch
from .ndrange import LaunchConfig, WorkgroupSize


class Kernel:
    """A backend-agnostic kernel body.

    Instantiate it for a backend to obtain something launchable::

        @kernel
        def scale(index, out, x):
            out[index] = 2 * x[index]

        handle = scale(BackendTag.HOST, 4)(out, x, ndrange=out.shape)

    Args:
        body: Callable ``body(index, out, *inputs)``.
    """

    def __init__(self, body: KernelBody) -> None:
        self.body = body
        self.name = getattr(body, "__name__", "kernel")
        functools.update_wrapper(self, body)

    def __call__(
        self,
        backend: BackendTag | str,
        workgroupsize: WorkgroupSize | None = None,
        *,
        launcher_config: LauncherConfig | None = None,
    ) -> "ConfiguredKernel":
        return ConfiguredKernel(
            self, BackendTag(backend), workgroupsize, launcher_config
        )

    def __repr__(self) -> str:
        return f"Kernel({self.name})"


class ConfiguredKernel:
    """A :class:`Kernel` bound to a backend and optional work-group size."""

    def __init__(
        self,
        kernel: Kernel,
        backend: BackendTag,
        workgroupsize: WorkgroupSize | None,
        launcher_config: LauncherConfig | None = None,
    ) -> None:
        self.kernel = kernel
        self.backend = backend
        self.workgroupsize = workgroupsize
        self.launcher_config = launcher_config

    def __call__(
        self,
        output: Buffer,
        *inputs: Buffer,
        ndrange: Sequence[int] | None = None,
    ) -> CompletionHandle:
        """Launch over ``ndrange`` (default: the output shape).

        Args:
            output: Buffer written by the kernel.
            *inputs: Buffers read by the kernel.
            ndrange: Global extent.

        Returns:
            The launch's :class:`CompletionHandle`.
        """

        for buffer in (output, *inputs):
            if isinstance(buffer, Buffer) and buffer.backend is not self.backend:
                raise BackendMismatchError(
                    f"kernel '{self.kernel.name}' was instantiated for "
                    f"{self.backend.value} but received a {buffer.backend.value} buffer"
                )
        return launch(
            self.kernel.body,
            output,
            *inputs,
            config=LaunchConfig(
                workgroupsize=self.workgroupsize,
                ndrange=tuple(ndrange) if ndrange is not None else None,
            ),
            name=self.kernel.name,
            launcher_config=self.launcher_config,
        )

    def __repr__(self) -> str:
        return (
            f"ConfiguredKernel({self.kernel.name}, backend={self.backend.value}, "
            f"workgroupsize={self.workgroupsize})"
        )


def kernel(body: KernelBody) -> Kernel:
    """Decorate ``body`` as a :class:`Kernel`."""

    return Kernel(body)
