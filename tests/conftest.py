import sys
from pathlib import Path

import pytest


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "cuda: marks tests that need a CUDA device (skipped without one)"
    )
    # Ensure src/ is importable without installing the package
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def pytest_collection_modifyitems(config, items):
    import torch

    if torch.cuda.is_available():
        return
    skip_cuda = pytest.mark.skip(reason="CUDA device unavailable")
    for item in items:
        if item.get_closest_marker("cuda") is not None:
            item.add_marker(skip_cuda)


@pytest.fixture(autouse=True)
def _restore_launcher_config():
    from kalaunch.config import get_config, set_config

    previous = get_config()
    yield
    set_config(previous)
