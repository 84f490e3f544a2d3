from __future__ import annotations

import torch

from ..buffers import Buffer


def _as_tensor(value: Buffer | torch.Tensor) -> torch.Tensor:
    if isinstance(value, Buffer):
        return value.tensor
    return value


def vadd(a: Buffer | torch.Tensor, b: Buffer | torch.Tensor) -> torch.Tensor:
    """Elementwise sum computed directly with torch.

    Args:
        a: Left operand.
        b: Right operand, same shape as ``a``.

    Returns:
        A new tensor ``a + b`` on the operands' device.
    """

    return _as_tensor(a) + _as_tensor(b)
