#!/usr/bin/env python3
"""
Minimal demo for wgpu_linalg.

Runs every operation once on small vectors and matrices and prints the GPU
result next to the numpy reference.

Usage:
    python -m wgpu_linalg.examples.linalg_demo
    # or
    python wgpu_linalg/examples/linalg_demo.py
"""

import logging
import sys
import os
import numpy as np

# Allow running from repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from wgpu_linalg import ComputeSession, Shape, create_shape


def show(label, result, expected):
    ok = np.allclose(result, expected, atol=1e-5)
    print(f"  {label:<28} {'PASS' if ok else 'FAIL'}")
    print(f"    gpu:   {np.round(result.ravel()[:8], 4)}")
    print(f"    numpy: {np.round(expected.ravel()[:8], 4)}")
    return ok


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    np.random.seed(0)
    all_pass = True

    with ComputeSession() as session:
        print("=== Elementwise (vector 1x40, padded to 1x64) ===")
        a = np.random.randn(40).astype(np.float32)
        b = np.random.rand(40).astype(np.float32) + 0.5
        s1, s2 = Shape.from_numpy(a), Shape.from_numpy(b)
        s3 = create_shape(40, 0.0)
        for label, op, ref in (
            ("add_shapes", session.add_shapes, a + b),
            ("subtract_shapes", session.subtract_shapes, a - b),
            ("multiply_shapes", session.multiply_shapes, a * b),
            ("divide_shapes", session.divide_shapes, a / b),
        ):
            op(s1, s2, s3, 1, 40)
            all_pass &= show(label, s3.numpy(), ref.reshape(1, 40))

        print("\n=== Elementwise (matrix 5x7, padded to 32x32) ===")
        m1 = np.random.randn(5, 7).astype(np.float32)
        m2 = np.random.randn(5, 7).astype(np.float32)
        out = create_shape(35, 0.0, rows=5)
        session.add_shapes(Shape.from_numpy(m1), Shape.from_numpy(m2), out, 5, 7)
        all_pass &= show("add_shapes", out.numpy(), m1 + m2)

        print("\n=== Reductions ===")
        x = np.random.randn(6, 9).astype(np.float32)
        w = np.random.randn(9, 4).astype(np.float32)
        product = Shape.empty(6, 4)
        session.dot_matrices(Shape.from_numpy(x), Shape.from_numpy(w), product, 6, 9, 4)
        all_pass &= show("dot_matrices(6x9 @ 9x4)", product.numpy(), x @ w)

        v = np.random.randn(9).astype(np.float32)
        mv = Shape.empty(1, 6)
        session.mat_vec(Shape.from_numpy(x), Shape.from_numpy(v), mv, 6, 9)
        all_pass &= show("mat_vec(6x9 . 9)", mv.numpy(), (x @ v).reshape(1, 6))

    print(f"\n[RESULT] {'PASS' if all_pass else 'FAIL'}")
    return 0 if all_pass else 1


if __name__ == "__main__":
    sys.exit(main())
