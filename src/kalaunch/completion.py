"""Completion handles for asynchronous launches."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from concurrent import futures as _futures
from enum import Enum
from typing import TYPE_CHECKING, Sequence

import torch

from .errors import KernelExecutionError

if TYPE_CHECKING:  # pragma: no cover
    from .buffers import Buffer


class CompletionState(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class CompletionHandle(ABC):
    """Synchronization token returned by every launch.

    The handle moves from ``PENDING`` to ``COMPLETE`` exactly once. Buffers the
    launch writes to stay unreadable until :meth:`wait` has returned.

    Args:
        name: Kernel name, used in error messages and NVTX ranges.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._state = CompletionState.PENDING
        self._waited = False
        self._error: BaseException | None = None
        self._buffers: list[Buffer] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def waited(self) -> bool:
        return self._waited

    @abstractmethod
    def _poll(self) -> bool:
        """Return ``True`` once the underlying work has finished."""

    @abstractmethod
    def _block(self) -> None:
        """Block until the work has finished, raising the first failure."""

    @abstractmethod
    def elapsed_time(self) -> float:
        """Return the launch duration in milliseconds."""

    def attach(self, buffer: Buffer) -> None:
        """Mark ``buffer`` as written by this launch."""

        self._buffers.append(buffer)
        buffer._mark_pending(self)

    def attach_input(self, buffer: Buffer) -> None:
        """Mark ``buffer`` as read by this launch; it cannot be written until waited."""

        self._buffers.append(buffer)
        buffer._mark_reader(self)

    def _complete(self) -> None:
        if self._state is CompletionState.PENDING:
            self._state = CompletionState.COMPLETE

    def done(self) -> bool:
        """Return ``True`` when the work has finished, without blocking."""

        if self._state is CompletionState.PENDING and self._poll():
            self._complete()
        return self._state is CompletionState.COMPLETE

    def wait(self) -> None:
        """Block until the launch finishes and release its buffers.

        Waiting again is a no-op, except that a failed launch raises its
        :class:`KernelExecutionError` every time.

        Raises:
            KernelExecutionError: If the kernel body raised on any work group.
        """

        with self._lock:
            if not self._waited:
                try:
                    self._block()
                except Exception as exc:
                    self._error = exc
                # interrupts propagate above, leaving the handle unwaited
                self._complete()
                self._waited = True
                for buffer in self._buffers:
                    buffer._release(self)
        if self._error is not None:
            raise KernelExecutionError(
                f"kernel '{self.name}' failed: {self._error}"
            ) from self._error

    def _require_complete(self) -> None:
        if not self.done():
            raise RuntimeError(f"launch '{self.name}' has not completed")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, state={self._state.value})"


class HostCompletion(CompletionHandle):
    """Completion of a launch running on the host worker pool."""

    def __init__(
        self,
        name: str,
        futures: Sequence[_futures.Future],
        started: float | None = None,
    ) -> None:
        super().__init__(name)
        self._futures = list(futures)
        self._started = started if started is not None else time.perf_counter()
        self._finished: float | None = None
        self._remaining = len(self._futures)
        self._count_lock = threading.Lock()
        for future in self._futures:
            future.add_done_callback(self._on_done)

    def _on_done(self, _future: _futures.Future) -> None:
        with self._count_lock:
            self._remaining -= 1
            if self._remaining == 0:
                self._finished = time.perf_counter()

    def _poll(self) -> bool:
        return all(future.done() for future in self._futures)

    def _block(self) -> None:
        _futures.wait(self._futures)
        for future in self._futures:
            exc = future.exception()
            if exc is not None:
                raise exc

    def elapsed_time(self) -> float:
        self._require_complete()
        finished = self._finished if self._finished is not None else time.perf_counter()
        return (finished - self._started) * 1000.0


class DeviceCompletion(CompletionHandle):
    """Completion of a launch enqueued on a CUDA stream."""

    def __init__(
        self, name: str, start: torch.cuda.Event, end: torch.cuda.Event
    ) -> None:
        super().__init__(name)
        self._start = start
        self._end = end

    def _poll(self) -> bool:
        return bool(self._end.query())

    def _block(self) -> None:
        self._end.synchronize()

    def elapsed_time(self) -> float:
        self._require_complete()
        return float(self._start.elapsed_time(self._end))


def wait(*handles: CompletionHandle) -> None:
    """Wait on every handle, then raise the first failure if any.

    Args:
        *handles: Handles returned by launches.

    Returns:
        ``None`` once all handles are complete.

    Raises:
        KernelExecutionError: If any launch failed.
    """

    errors: list[KernelExecutionError] = []
    for handle in handles:
        try:
            handle.wait()
        except KernelExecutionError as exc:
            errors.append(exc)
    if errors:
        raise errors[0]
