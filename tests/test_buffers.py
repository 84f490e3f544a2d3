import numpy as np
import pytest
import torch

import kalaunch
from kalaunch import BackendTag, Buffer
from kalaunch.buffers import _is_scalar_key
from kalaunch.errors import BackendUnavailableError, ScalarIndexingError


def test_host_buffer_metadata():
    buf = kalaunch.zeros((4, 3), dtype=torch.float64)
    assert buf.backend is BackendTag.HOST
    assert buf.shape == (4, 3)
    assert buf.dtype == torch.float64
    assert buf.device == torch.device("cpu")
    assert buf.ready
    assert len(buf) == 4


def test_constructors_use_default_float_dtype():
    assert kalaunch.zeros((2,)).dtype == torch.get_default_dtype()
    assert kalaunch.ones((2,)).dtype == torch.get_default_dtype()
    assert kalaunch.full((2,), 3).tensor.tolist() == [3.0, 3.0]


def test_host_copies_its_input():
    source = torch.arange(6.0).view(2, 3)
    buf = kalaunch.host(source)
    source.zero_()
    assert buf.tensor.sum().item() == 15.0


def test_host_accepts_array_likes():
    buf = kalaunch.host([[1, 2], [3, 4]], dtype=torch.float32)
    assert buf.shape == (2, 2)
    assert buf.dtype == torch.float32
    np.testing.assert_array_equal(buf.numpy(), np.array([[1, 2], [3, 4]], dtype=np.float32))


def test_numpy_returns_a_copy():
    buf = kalaunch.ones((3,))
    arr = buf.numpy()
    arr[0] = 42
    assert buf[0] == 1.0


@pytest.mark.parametrize(
    "tensor",
    [torch.tensor(1.0), torch.zeros(0), torch.zeros(3, 0)],
)
def test_rejects_rank0_and_empty(tensor):
    with pytest.raises(ValueError):
        Buffer(tensor)


def test_rejects_non_tensor():
    with pytest.raises(TypeError):
        Buffer([1, 2, 3])


def test_rejects_unsupported_device():
    with pytest.raises(ValueError):
        Buffer(torch.empty(2, device="meta"))


def test_host_scalar_and_slice_indexing():
    buf = kalaunch.host(torch.arange(6.0).view(2, 3))
    assert buf[1, 2] == 5.0
    row = buf[0]
    assert row.tolist() == [0.0, 1.0, 2.0]
    row.zero_()
    assert buf[0, 1] == 1.0


def test_to_host_is_independent_copy():
    buf = kalaunch.ones((2, 2))
    copy = buf.to_host()
    copy.tensor.zero_()
    assert buf.tensor.sum().item() == 4.0


def test_isapprox():
    a = kalaunch.full((2, 2), 1.0)
    assert a.isapprox(kalaunch.full((2, 2), 1.0 + 1e-9))
    assert not a.isapprox(kalaunch.full((2, 2), 1.5))
    assert not a.isapprox(kalaunch.full((4,), 1.0))
    assert a.isapprox(torch.ones(2, 2))


def test_repr_mentions_backend_and_state():
    text = repr(kalaunch.zeros((2,)))
    assert "host" in text and "ready" in text


def test_allowscalar_restores_previous_flag():
    assert kalaunch.get_config().allow_scalar is False
    with kalaunch.allowscalar(True):
        assert kalaunch.get_config().allow_scalar is True
    assert kalaunch.get_config().allow_scalar is False


def test_allowscalar_call_sets_flag():
    kalaunch.allowscalar(True)
    assert kalaunch.get_config().allow_scalar is True


@pytest.mark.skipif(torch.cuda.is_available(), reason="needs a host without CUDA")
def test_device_buffer_requires_cuda():
    with pytest.raises(BackendUnavailableError):
        kalaunch.device([1.0, 2.0])
    with pytest.raises(BackendUnavailableError):
        kalaunch.zeros((2,), backend="device")
    with pytest.raises(BackendUnavailableError):
        kalaunch.ones((2,)).to_device()


@pytest.mark.cuda
def test_device_round_trip():
    host_buf = kalaunch.host(torch.arange(4.0))
    dev = host_buf.to_device()
    assert dev.backend is BackendTag.DEVICE
    assert dev.device.type == "cuda"
    back = dev.to_host()
    assert back.backend is BackendTag.HOST
    assert torch.equal(back.tensor, host_buf.tensor)


@pytest.mark.cuda
def test_device_scalar_indexing_disallowed_by_default():
    dev = kalaunch.ones((2, 2), backend="device")
    with pytest.raises(ScalarIndexingError):
        dev[0, 0]
    # slices stay legal
    assert dev[0].shape == (2,)
    with kalaunch.allowscalar(True):
        assert dev[0, 0] == 1.0


@pytest.mark.parametrize(
    "key",
    [(0, 1), (np.int64(0), 1), (torch.tensor(1), np.int32(0))],
)
def test_integer_like_keys_count_as_scalar(key):
    assert _is_scalar_key(key, 2)


@pytest.mark.parametrize(
    "key",
    [0, (0, slice(None)), (torch.tensor([0, 1]), 0), (0.0, 1), (0, Ellipsis)],
)
def test_non_scalar_keys(key):
    assert not _is_scalar_key(key, 2)


@pytest.mark.cuda
def test_device_scalar_indexing_rejects_numpy_and_tensor_keys():
    dev = kalaunch.ones((2, 2), backend="device")
    with pytest.raises(ScalarIndexingError):
        dev[np.int64(0), np.int64(1)]
    with pytest.raises(ScalarIndexingError):
        dev[torch.tensor(0), 1]
