"""Example kernels built on the launcher."""

from __future__ import annotations

from ..buffers import BackendTag, Buffer
from ..completion import CompletionHandle
from ..config import get_config
from ..kernel import kernel
from . import reference as reference_ops


@kernel
def vadd_kernel(index, c, a, b):
    c[index] = a[index] + b[index]


def vadd(a: Buffer, b: Buffer, c: Buffer) -> CompletionHandle:
    """Launch ``c = a + b`` on whichever backend holds the buffers.

    Host buffers use the configured host work-group size (4 by default) and
    device buffers the device one (256 by default).

    Args:
        a: Left operand.
        b: Right operand.
        c: Output buffer, same shape and backend as the operands.

    Returns:
        The launch's :class:`~kalaunch.completion.CompletionHandle`; wait on it
        before reading ``c``.
    """

    config = get_config()
    if a.backend is BackendTag.HOST:
        launcher = vadd_kernel(BackendTag.HOST, config.host_workgroupsize)
    else:
        launcher = vadd_kernel(BackendTag.DEVICE, config.device_workgroupsize)
    return launcher(c, a, b, ndrange=c.shape)


__all__ = ["reference_ops", "vadd", "vadd_kernel"]
