import pytest
import torch

from kalaunch.ndrange import LaunchConfig, NDRange, normalize_workgroupsize


@pytest.mark.parametrize(
    "workgroupsize, rank, expected",
    [
        (4, 2, (4, 1)),
        (256, 1, (256,)),
        ((2,), 3, (2, 1, 1)),
        ((8, 8), 2, (8, 8)),
    ],
)
def test_normalize_workgroupsize(workgroupsize, rank, expected):
    assert normalize_workgroupsize(workgroupsize, rank) == expected


@pytest.mark.parametrize("workgroupsize", [0, -1, (4, 0), (1, 2, 3), ()])
def test_normalize_workgroupsize_rejects(workgroupsize):
    with pytest.raises(ValueError):
        normalize_workgroupsize(workgroupsize, 2)


def test_rounding_up_and_counts():
    nd = NDRange((10, 7), (4, 3))
    assert nd.groups == (3, 3)
    assert nd.padded_extent == (12, 9)
    assert nd.num_groups == 9
    assert nd.num_workitems == 108
    assert nd.num_active == 70


@pytest.mark.parametrize("parts", [1, 2, 3, 8])
def test_partition_covers_each_index_once(parts):
    nd = NDRange((10, 7), (4, 3))
    counts = torch.zeros(10, 7, dtype=torch.long)
    slabs = nd.partition(parts)
    assert 1 <= len(slabs) <= min(parts, nd.groups[0])
    assert sum(slab.groups for slab in slabs) == nd.num_groups
    for slab in slabs:
        index = nd.indices(slab)
        counts[index] += 1
    assert torch.equal(counts, torch.ones(10, 7, dtype=torch.long))


def test_indices_never_exceed_extent():
    nd = NDRange((5,), 4)
    (axis,) = nd.indices()
    assert axis.tolist() == [0, 1, 2, 3, 4]
    assert nd.padded_extent == (8,)


def test_indices_are_open_grids():
    nd = NDRange((3, 2, 4), 2)
    index = nd.indices()
    assert [tuple(t.shape) for t in index] == [(3, 1, 1), (1, 2, 1), (1, 1, 4)]
    assert all(t.dtype == torch.long for t in index)


def test_partition_slabs_align_to_workgroups():
    nd = NDRange((9, 2), 2)
    slabs = nd.partition(2)
    assert [slab.start[0] for slab in slabs] == [0, 6]
    assert [slab.stop[0] for slab in slabs] == [6, 9]
    assert sum(slab.size for slab in slabs) == nd.num_active


@pytest.mark.parametrize("extent", [(), (0, 4), (3, -1)])
def test_ndrange_rejects_bad_extent(extent):
    with pytest.raises(ValueError):
        NDRange(extent, 1)


def test_partition_requires_positive_parts():
    with pytest.raises(ValueError):
        NDRange((4,), 1).partition(0)


def test_launch_config_defaults():
    cfg = LaunchConfig()
    assert cfg.workgroupsize is None and cfg.ndrange is None
