import pytest
import torch

import kalaunch
from kalaunch import profiling
from kalaunch.ops import vadd


def _record(monkeypatch):
    calls = []
    monkeypatch.setattr(torch.cuda.nvtx, "range_push", lambda name: calls.append(name))
    monkeypatch.setattr(torch.cuda.nvtx, "range_pop", lambda: calls.append("<pop>"))
    return calls


def test_disabled_range_emits_nothing(monkeypatch):
    calls = _record(monkeypatch)
    monkeypatch.setattr(torch.cuda, "is_available", lambda: True)
    with profiling.nvtx_range("k", enabled=False):
        pass
    assert calls == []


def test_enabled_range_pushes_and_pops(monkeypatch):
    calls = _record(monkeypatch)
    monkeypatch.setattr(torch.cuda, "is_available", lambda: True)
    monkeypatch.setattr(profiling, "_NVTX_BROKEN", False)
    with pytest.raises(KeyError):
        with profiling.nvtx_range("k"):
            raise KeyError("inner")
    assert calls == ["k", "<pop>"]


def test_missing_nvtx_warns_once(monkeypatch):
    monkeypatch.setattr(torch.cuda, "is_available", lambda: True)
    monkeypatch.setattr(profiling, "_NVTX_BROKEN", False)

    def broken(name):
        raise RuntimeError("NVTX functions not installed")

    monkeypatch.setattr(torch.cuda.nvtx, "range_push", broken)
    with pytest.warns(RuntimeWarning, match="NVTX"):
        with profiling.nvtx_range("k"):
            pass
    assert profiling.nvtx_available() is False


def test_host_launch_never_pushes_ranges(monkeypatch):
    calls = _record(monkeypatch)
    a = kalaunch.ones((4,))
    c = kalaunch.zeros((4,))
    kalaunch.wait(vadd(a, a, c))
    assert calls == []
