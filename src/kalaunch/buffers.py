"""Backend-tagged buffers.

A :class:`Buffer` owns exactly one torch tensor and tags it with the backend
that kernels touching it must run on. Buffers written by an unwaited launch
refuse to be read until the launch's :class:`~kalaunch.completion.CompletionHandle`
has been waited on.
"""

from __future__ import annotations

import operator
from enum import Enum
from typing import TYPE_CHECKING, Any, Sequence

import torch

from .config import get_config, set_config
from .errors import (
    BackendUnavailableError,
    DeviceBufferNotReadyError,
    ScalarIndexingError,
)

if TYPE_CHECKING:  # pragma: no cover
    import numpy as np

    from .completion import CompletionHandle


class BackendTag(str, Enum):
    HOST = "host"
    DEVICE = "device"


def _tag_for(device: torch.device) -> BackendTag:
    if device.type == "cpu":
        return BackendTag.HOST
    if device.type == "cuda":
        return BackendTag.DEVICE
    raise ValueError(f"unsupported tensor device: {device}")


def _require_cuda() -> None:
    if not torch.cuda.is_available():
        raise BackendUnavailableError("CUDA is not available")


def _resolve_device(backend: BackendTag | str, device: str | torch.device | None):
    tag = BackendTag(backend)
    if tag is BackendTag.HOST:
        return torch.device("cpu")
    _require_cuda()
    return torch.device(device if device is not None else get_config().device)


def _owned_tensor(
    data: Any, dtype: torch.dtype | None, device: torch.device
) -> torch.Tensor:
    if isinstance(data, Buffer):
        data = data.tensor
    if isinstance(data, torch.Tensor):
        return data.detach().to(device=device, dtype=dtype, copy=True)
    return torch.as_tensor(data, dtype=dtype, device=device).clone()


def _is_scalar_index(k: Any) -> bool:
    if isinstance(k, torch.Tensor) and k.dim() != 0:
        return False
    try:
        operator.index(k)
    except TypeError:
        return False
    return True


def _is_scalar_key(key: Any, rank: int) -> bool:
    if not isinstance(key, tuple):
        key = (key,)
    return len(key) == rank and all(_is_scalar_index(k) for k in key)


class allowscalar:
    """Toggle element indexing of device buffers.

    Calling ``allowscalar(True)`` flips the process-wide flag immediately; used
    as a context manager it restores the previous value on exit.

    Args:
        flag: Whether scalar indexing of device buffers is permitted.
    """

    def __init__(self, flag: bool = True) -> None:
        self._previous = set_config(allow_scalar=bool(flag)).allow_scalar

    def __enter__(self) -> "allowscalar":
        return self

    def __exit__(self, *exc_info: object) -> None:
        set_config(allow_scalar=self._previous)


class Buffer:
    """A tensor tagged with the backend that owns it.

    The buffer takes ownership of ``tensor``; callers should not keep mutating
    it through other references. Use :func:`host` or :func:`device` to build a
    buffer from a private copy of existing data.

    Args:
        tensor: A CPU or CUDA tensor with rank >= 1 and no zero-size dimension.

    Attributes:
        backend: :class:`BackendTag` derived from the tensor's device.
        shape: Tuple of positive dimension sizes.
        dtype: Element type of the storage.
        device: Torch device holding the storage.
    """

    __slots__ = ("_tensor", "_backend", "_pending", "_readers")

    def __init__(self, tensor: torch.Tensor) -> None:
        if not isinstance(tensor, torch.Tensor):
            raise TypeError(f"Buffer expects a torch.Tensor, got {type(tensor)!r}")
        if tensor.dim() == 0:
            raise ValueError("Buffer requires a tensor of rank >= 1.")
        if any(size <= 0 for size in tensor.shape):
            raise ValueError(f"Buffer dimensions must be positive, got {tuple(tensor.shape)}.")
        self._tensor = tensor
        self._backend = _tag_for(tensor.device)
        self._pending: CompletionHandle | None = None
        self._readers: list[CompletionHandle] = []

    @property
    def backend(self) -> BackendTag:
        return self._backend

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._tensor.shape)

    @property
    def dtype(self) -> torch.dtype:
        return self._tensor.dtype

    @property
    def device(self) -> torch.device:
        return self._tensor.device

    @property
    def ndim(self) -> int:
        return self._tensor.dim()

    @property
    def ready(self) -> bool:
        """``False`` while an unwaited launch writes to this buffer."""

        return self._pending is None or self._pending.waited

    @property
    def tensor(self) -> torch.Tensor:
        """The owned tensor. Raises if an unwaited launch writes to it."""

        self._check_ready()
        return self._tensor

    def _check_ready(self) -> None:
        if not self.ready:
            name = self._pending.name if self._pending is not None else "kernel"
            raise DeviceBufferNotReadyError(
                f"buffer is written by launch '{name}' which has not been waited on"
            )

    def _raw(self) -> torch.Tensor:
        return self._tensor

    @property
    def writable(self) -> bool:
        """``False`` while any unwaited launch reads or writes this buffer."""

        return self.ready and not any(not h.waited for h in self._readers)

    def _check_writable(self) -> None:
        self._check_ready()
        for handle in self._readers:
            if not handle.waited:
                raise DeviceBufferNotReadyError(
                    f"buffer is read by launch '{handle.name}' which has not been waited on"
                )

    def _mark_pending(self, handle: CompletionHandle) -> None:
        self._pending = handle

    def _mark_reader(self, handle: CompletionHandle) -> None:
        self._readers = [h for h in self._readers if not h.waited]
        self._readers.append(handle)

    def _release(self, handle: CompletionHandle) -> None:
        if self._pending is handle:
            self._pending = None
        self._readers = [h for h in self._readers if h is not handle]

    def __getitem__(self, key: Any) -> Any:
        self._check_ready()
        if (
            self._backend is BackendTag.DEVICE
            and not get_config().allow_scalar
            and _is_scalar_key(key, self.ndim)
        ):
            raise ScalarIndexingError(
                "scalar indexing of a device buffer is disallowed; "
                "copy it with to_host() or wrap the access in allowscalar(True)"
            )
        value = self._tensor[key]
        if value.dim() == 0:
            return value.item()
        return value.clone()

    def __len__(self) -> int:
        return self.shape[0]

    def numpy(self) -> "np.ndarray":
        """Return a host-side NumPy copy of the buffer contents."""

        self._check_ready()
        return self._tensor.detach().cpu().clone().numpy()

    def to_host(self) -> "Buffer":
        """Copy the buffer into a new host buffer."""

        self._check_ready()
        return Buffer(self._tensor.detach().to("cpu", copy=True))

    def to_device(self, device: str | torch.device | None = None) -> "Buffer":
        """Copy the buffer into a new device buffer.

        Args:
            device: Target CUDA device. Defaults to the configured device.

        Returns:
            A new :class:`Buffer` tagged :attr:`BackendTag.DEVICE`.

        Raises:
            BackendUnavailableError: If CUDA is not available.
        """

        self._check_ready()
        target = _resolve_device(BackendTag.DEVICE, device)
        return Buffer(self._tensor.detach().to(target, copy=True))

    def isapprox(
        self,
        other: "Buffer | torch.Tensor",
        *,
        rtol: float | None = None,
        atol: float | None = None,
    ) -> bool:
        """Return ``True`` when both buffers hold numerically close values."""

        mine = self.to_host().tensor
        theirs = other.to_host().tensor if isinstance(other, Buffer) else other.detach().cpu()
        if mine.shape != theirs.shape:
            return False
        kwargs: dict[str, float] = {}
        if rtol is not None:
            kwargs["rtol"] = rtol
        if atol is not None:
            kwargs["atol"] = atol
        return bool(torch.allclose(mine, theirs.to(mine.dtype), **kwargs))

    def __repr__(self) -> str:
        state = "ready" if self.ready else "pending"
        return (
            f"Buffer(backend={self._backend.value}, shape={self.shape}, "
            f"dtype={self.dtype}, device={self.device}, {state})"
        )


def host(data: Any, dtype: torch.dtype | None = None) -> Buffer:
    """Build a host buffer from a private copy of ``data``."""

    return Buffer(_owned_tensor(data, dtype, torch.device("cpu")))


def device(
    data: Any,
    dtype: torch.dtype | None = None,
    device: str | torch.device | None = None,
) -> Buffer:
    """Build a device buffer from a private copy of ``data``.

    Args:
        data: Array-like, tensor, or buffer to copy.
        dtype: Optional element type override.
        device: CUDA device. Defaults to :attr:`LauncherConfig.device`.

    Returns:
        A new :class:`Buffer` tagged :attr:`BackendTag.DEVICE`.

    Raises:
        BackendUnavailableError: If CUDA is not available.
    """

    target = _resolve_device(BackendTag.DEVICE, device)
    return Buffer(_owned_tensor(data, dtype, target))


def full(
    shape: Sequence[int],
    value: float,
    *,
    dtype: torch.dtype | None = None,
    backend: BackendTag | str = BackendTag.HOST,
    device: str | torch.device | None = None,
) -> Buffer:
    target = _resolve_device(backend, device)
    # torch.full infers an integer dtype from an integer fill value
    dtype = dtype if dtype is not None else torch.get_default_dtype()
    return Buffer(torch.full(tuple(shape), value, dtype=dtype, device=target))


def zeros(
    shape: Sequence[int],
    *,
    dtype: torch.dtype | None = None,
    backend: BackendTag | str = BackendTag.HOST,
    device: str | torch.device | None = None,
) -> Buffer:
    return full(shape, 0, dtype=dtype, backend=backend, device=device)


def ones(
    shape: Sequence[int],
    *,
    dtype: torch.dtype | None = None,
    backend: BackendTag | str = BackendTag.HOST,
    device: str | torch.device | None = None,
) -> Buffer:
    return full(shape, 1, dtype=dtype, backend=backend, device=device)
