"""Index-space computation for kernel launches."""

from __future__ import annotations

from dataclasses import dataclass
from math import prod
from typing import Sequence

import torch


WorkgroupSize = int | Sequence[int]


@dataclass(frozen=True)
class LaunchConfig:
    """Optional per-launch overrides.

    Attributes:
        workgroupsize: Positive int or tuple; ``None`` selects the backend default.
        ndrange: Global extent; ``None`` uses the output buffer's shape.
    """

    workgroupsize: WorkgroupSize | None = None
    ndrange: tuple[int, ...] | None = None


def normalize_workgroupsize(workgroupsize: WorkgroupSize, rank: int) -> tuple[int, ...]:
    """Expand ``workgroupsize`` to one entry per dimension.

    An integer applies to the first dimension; missing trailing entries are 1.

    Args:
        workgroupsize: Positive int or sequence of positive ints.
        rank: Rank of the index space.

    Returns:
        Tuple of ``rank`` positive ints.

    Raises:
        ValueError: If an entry is not positive or the tuple exceeds ``rank``.
    """

    if isinstance(workgroupsize, int):
        sizes: tuple[int, ...] = (workgroupsize,)
    else:
        sizes = tuple(int(s) for s in workgroupsize)
    if not sizes:
        raise ValueError("workgroupsize must not be empty.")
    if len(sizes) > rank:
        raise ValueError(
            f"workgroupsize {sizes} has more dimensions than the ndrange rank {rank}."
        )
    if any(s <= 0 for s in sizes):
        raise ValueError(f"workgroupsize entries must be positive, got {sizes}.")
    return sizes + (1,) * (rank - len(sizes))


@dataclass(frozen=True)
class Slab:
    """A contiguous block of whole work groups, clipped to the extent."""

    start: tuple[int, ...]
    stop: tuple[int, ...]
    groups: int

    @property
    def size(self) -> int:
        return prod(hi - lo for lo, hi in zip(self.start, self.stop))


class NDRange:
    """Global index space partitioned into work groups.

    The extent is rounded up to a whole number of work groups per dimension.
    Work items in the rounded-up tail fall outside the extent and are masked.

    Args:
        extent: Global extent, one positive int per dimension.
        workgroupsize: Work-group size, see :func:`normalize_workgroupsize`.
    """

    def __init__(self, extent: Sequence[int], workgroupsize: WorkgroupSize) -> None:
        extent = tuple(int(e) for e in extent)
        if not extent:
            raise ValueError("ndrange must have rank >= 1.")
        if any(e <= 0 for e in extent):
            raise ValueError(f"ndrange entries must be positive, got {extent}.")
        self.extent = extent
        self.workgroupsize = normalize_workgroupsize(workgroupsize, len(extent))
        self.groups = tuple(-(-e // w) for e, w in zip(extent, self.workgroupsize))

    @property
    def rank(self) -> int:
        return len(self.extent)

    @property
    def padded_extent(self) -> tuple[int, ...]:
        return tuple(g * w for g, w in zip(self.groups, self.workgroupsize))

    @property
    def num_groups(self) -> int:
        return prod(self.groups)

    @property
    def num_workitems(self) -> int:
        return prod(self.padded_extent)

    @property
    def num_active(self) -> int:
        return prod(self.extent)

    def whole(self) -> Slab:
        return Slab(start=(0,) * self.rank, stop=self.extent, groups=self.num_groups)

    def partition(self, parts: int) -> list[Slab]:
        """Split the work groups along dimension 0 into contiguous slabs.

        Args:
            parts: Upper bound on the number of slabs.

        Returns:
            Between 1 and ``parts`` slabs covering every in-bounds index once.
        """

        if parts < 1:
            raise ValueError("parts must be >= 1.")
        rows = self.groups[0]
        parts = min(parts, rows)
        per_row = prod(self.groups[1:])
        base, extra = divmod(rows, parts)
        step = self.workgroupsize[0]

        slabs: list[Slab] = []
        first = 0
        for part in range(parts):
            count = base + (1 if part < extra else 0)
            lo = first * step
            hi = min((first + count) * step, self.extent[0])
            slabs.append(
                Slab(
                    start=(lo,) + (0,) * (self.rank - 1),
                    stop=(hi,) + self.extent[1:],
                    groups=count * per_row,
                )
            )
            first += count
        return slabs

    def indices(
        self, slab: Slab | None = None, device: torch.device | str | None = None
    ) -> tuple[torch.Tensor, ...]:
        """Return open-grid global indices for ``slab``.

        The tensors broadcast against each other like ``numpy.ix_`` so
        ``out[index]`` addresses the slab as a dense block.

        Args:
            slab: Block to index; defaults to the whole range.
            device: Device the index tensors are created on.

        Returns:
            Tuple of ``rank`` int64 tensors.
        """

        slab = slab if slab is not None else self.whole()
        grids = []
        for dim, (lo, hi) in enumerate(zip(slab.start, slab.stop)):
            # stop is already clipped to the extent, masking the padded tail
            axis = torch.arange(lo, hi, dtype=torch.long, device=device)
            shape = [1] * self.rank
            shape[dim] = -1
            grids.append(axis.view(shape))
        return tuple(grids)

    def __repr__(self) -> str:
        return (
            f"NDRange(extent={self.extent}, workgroupsize={self.workgroupsize}, "
            f"groups={self.groups})"
        )
