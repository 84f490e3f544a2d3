"""Run the vector-addition example on the host and, if present, the GPU.

Usage:
  python scripts/vadd_example.py --size 1024 1024

Under Nsight Systems the device launch shows up inside an NVTX range named
``vadd_kernel``:
  nsys profile -t cuda,nvtx -o vadd python scripts/vadd_example.py
Nsight Compute can be scoped to the same range:
  ncu --nvtx --nvtx-include "vadd_kernel/" --set full -o vadd \\
      python scripts/vadd_example.py --skip-host
"""

from __future__ import annotations

import argparse

import torch

import kalaunch
from kalaunch.ops import reference_ops, vadd
from kalaunch.utils import get_available_backend


def _run(a: kalaunch.Buffer, b: kalaunch.Buffer, c: kalaunch.Buffer) -> float:
    handle = vadd(a, b, c)
    kalaunch.wait(handle)
    return handle.elapsed_time()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--size", type=int, nargs="+", default=[1024, 1024])
    parser.add_argument("--dtype", type=str, default="float64")
    parser.add_argument("--skip-host", action="store_true")
    parser.add_argument("--no-nvtx", action="store_true")
    args = parser.parse_args()

    dtype = getattr(torch, args.dtype)
    if args.no_nvtx:
        kalaunch.set_config(nvtx=False)

    a = kalaunch.ones(args.size, dtype=dtype)
    b = kalaunch.ones(args.size, dtype=dtype)
    c = kalaunch.zeros(args.size, dtype=dtype)
    expected = reference_ops.vadd(a, b)

    if not args.skip_host:
        elapsed = _run(a, b, c)
        if not torch.allclose(c.tensor, expected):
            raise SystemExit("host result does not match a + b")
        print(f"host   vadd {tuple(args.size)}: {elapsed:.3f} ms")

    if get_available_backend("device") != "device":
        print("CUDA not available; skipping device run")
        return

    d_a, d_b, d_c = a.to_device(), b.to_device(), c.to_device()
    elapsed = _run(d_a, d_b, d_c)
    if not d_c.isapprox(expected):
        raise SystemExit("device result does not match a + b")
    print(f"device vadd {tuple(args.size)}: {elapsed:.3f} ms")


if __name__ == "__main__":
    main()
