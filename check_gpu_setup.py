#!/usr/bin/env python3
"""Check that a GPU adapter is usable and every operation matches numpy.

Checks:
1. wgpu finds a real GPU adapter (not a CPU fallback)
2. A compute session initializes and resolves all kernels
3. Elementwise and reduction operations match numpy (float32 tolerance)
4. Benchmark GPU vs numpy for a few operation sizes

Usage:
    python3 check_gpu_setup.py
"""

import sys
import os
import time
import numpy as np

# Ensure imports work
sys.path.insert(0, os.path.dirname(__file__))


def check_gpu_adapter():
    """Check that wgpu finds a real GPU (not llvmpipe)."""
    print("=" * 60)
    print("STEP 1: GPU Adapter Detection")
    print("=" * 60)

    from wgpu_linalg import list_adapters

    gpu_found = False
    for i, adapter in enumerate(list_adapters()):
        summary = adapter.summary
        is_gpu = "IntegratedGPU" in summary or "DiscreteGPU" in summary
        marker = " <<<" if is_gpu else ""
        print(f"  Adapter {i}: {summary}{marker}")
        if is_gpu:
            gpu_found = True

    if gpu_found:
        print("  [OK] Real GPU adapter found")
    else:
        print("  [WARN] No real GPU found, only CPU/llvmpipe")

    return gpu_found


def check_operations(session):
    """Test that every operation matches numpy."""
    print("\n" + "=" * 60)
    print("STEP 2: Operation Tests")
    print("=" * 60)

    from wgpu_linalg import Shape

    np.random.seed(42)
    all_pass = True

    elementwise = (
        ("add_shapes", session.add_shapes, np.add),
        ("subtract_shapes", session.subtract_shapes, np.subtract),
        ("multiply_shapes", session.multiply_shapes, np.multiply),
        ("divide_shapes", session.divide_shapes, np.divide),
    )
    for rows, cols in ((1, 100), (100, 1), (64, 16), (300, 3)):
        a = np.random.randn(rows, cols).astype(np.float32)
        b = np.random.rand(rows, cols).astype(np.float32) + 0.5
        for label, op, ref in elementwise:
            out = Shape.empty(rows, cols)
            op(Shape.from_numpy(a), Shape.from_numpy(b), out, rows, cols)
            expected = ref(a, b)
            ok = np.allclose(out.numpy(), expected, atol=1e-6)
            diff = np.max(np.abs(out.numpy() - expected))
            print(f"  {label}({rows}x{cols}): {'PASS' if ok else 'FAIL'} (max diff: {diff:.2e})")
            all_pass &= ok

    a = np.random.randn(64, 300).astype(np.float32)
    b = np.random.randn(300, 16).astype(np.float32)
    out = Shape.empty(64, 16)
    session.dot_matrices(Shape.from_numpy(a), Shape.from_numpy(b), out, 64, 300, 16)
    expected = a @ b
    ok = np.allclose(out.numpy(), expected, atol=1e-3)
    print(f"  dot_matrices(64x300, 300x16): {'PASS' if ok else 'FAIL'} "
          f"(max diff: {np.max(np.abs(out.numpy() - expected)):.2e})")
    all_pass &= ok

    v = np.random.randn(300).astype(np.float32)
    out = Shape.empty(64, 1)
    session.mat_vec(Shape.from_numpy(a), Shape.from_numpy(v), out, 64, 300)
    expected = (a @ v).reshape(64, 1)
    ok = np.allclose(out.numpy(), expected, atol=1e-3)
    print(f"  mat_vec(64x300, 300):         {'PASS' if ok else 'FAIL'} "
          f"(max diff: {np.max(np.abs(out.numpy() - expected)):.2e})")
    all_pass &= ok

    if all_pass:
        print("  [OK] All operations pass")
    else:
        print("  [FAIL] Some operations failed")

    return all_pass


def benchmark(session):
    """Benchmark GPU vs numpy. Includes staging, so small sizes favour numpy."""
    print("\n" + "=" * 60)
    print("STEP 3: Benchmark (GPU vs numpy)")
    print("=" * 60)

    from wgpu_linalg import Shape

    np.random.seed(42)
    iters = 10
    total_np = 0
    total_gpu = 0

    for label, M, K, O in (
        ("dot (128,64)@(64,128)", 128, 64, 128),
        ("dot (256,256)@(256,64)", 256, 256, 64),
    ):
        a = np.random.randn(M, K).astype(np.float32)
        w = np.random.randn(K, O).astype(np.float32)
        s1, s2, out = Shape.from_numpy(a), Shape.from_numpy(w), Shape.empty(M, O)

        t0 = time.perf_counter()
        for _ in range(iters):
            _ = a @ w
        t_np = (time.perf_counter() - t0) / iters

        session.dot_matrices(s1, s2, out, M, K, O)  # warmup
        t0 = time.perf_counter()
        for _ in range(iters):
            session.dot_matrices(s1, s2, out, M, K, O)
        t_gpu = (time.perf_counter() - t0) / iters

        speedup = t_np / t_gpu
        winner = "GPU" if speedup > 1 else "numpy"
        print(f"  {label}")
        print(f"    numpy: {t_np*1000:.2f}ms  GPU: {t_gpu*1000:.2f}ms  speedup: {speedup:.2f}x ({winner})")

        total_np += t_np
        total_gpu += t_gpu

    overall = total_np / total_gpu
    print(f"\n  Overall speedup: {overall:.2f}x")
    return overall


def main():
    from wgpu_linalg import ComputeSession, LinalgError

    print("wgpu_linalg GPU Setup Check")
    print(f"Python: {sys.version}")
    print(f"Platform: {sys.platform}")
    print()

    gpu_ok = check_gpu_adapter()

    try:
        session = ComputeSession().init()
    except LinalgError as e:
        print(f"\n[RESULT] FAIL: {e}")
        sys.exit(1)

    with session:
        ops_ok = check_operations(session)
        if gpu_ok and ops_ok:
            speedup = benchmark(session)
            print("\n" + "=" * 60)
            print(f"[RESULT] PASS: GPU active, {speedup:.1f}x vs numpy")
            print("=" * 60)
        elif ops_ok:
            print("\n[RESULT] PARTIAL: operations work but on CPU (llvmpipe)")
        else:
            print("\n[RESULT] FAIL: operations do not match numpy")
            sys.exit(1)


if __name__ == "__main__":
    main()
