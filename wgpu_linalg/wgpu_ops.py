"""Elementwise and reduction operations.

Every operation is synchronous: stage the operands, dispatch the kernel,
read the result back and release the device buffers before returning.

The four elementwise operations do not check that the operand shapes agree
and do not trap on division by zero. They resize ``s1``, ``s2`` and ``s3``
to the padded working size while the call runs and leave all three at
``rows * cols`` elements afterwards.

The two reductions never resize anything; their destination must already
hold the result.
"""

import logging

import numpy as np

from wgpu_linalg.wgpu_dispatch import dispatch, measure_time
from wgpu_linalg.wgpu_errors import ShapeError
from wgpu_linalg.wgpu_geometry import fold_workgroups, plan_dispatch
from wgpu_linalg.wgpu_kernels import OpKind, scratch_slots
from wgpu_linalg.wgpu_shape import Shape
from wgpu_linalg.wgpu_staging import check_capacity, padded, read_back, staged

logger = logging.getLogger(__name__)


# ============================================================================
# Host Array Helpers
# ============================================================================

def _flat(x):
    """Flat float32 view of a Shape or numpy array, copied only if needed."""
    if isinstance(x, Shape):
        return x.ravel()
    return np.ascontiguousarray(x, dtype=np.float32).reshape(-1)


def _destination(x, count, name):
    """Flat writable float32 view of a reduction destination."""
    if isinstance(x, Shape):
        flat = x.ravel()
    elif isinstance(x, np.ndarray):
        if x.dtype != np.float32 or not x.flags["C_CONTIGUOUS"]:
            raise TypeError(f"{name} destination must be a C-contiguous float32 array")
        flat = x.reshape(-1)
    else:
        raise TypeError(
            f"{name} destination has type {type(x).__name__}, expected Shape or ndarray"
        )
    if flat.size < count:
        raise ShapeError(f"{name} destination holds {flat.size} values, needs {count}")
    return flat


# ============================================================================
# Elementwise
# ============================================================================

def _elementwise(session, kind, s1, s2, s3, rows, cols):
    session.require_ready()
    for shape in (s1, s2, s3):
        if not isinstance(shape, Shape):
            raise TypeError(
                f"{kind.value} operands must be Shape instances, got {type(shape).__name__}"
            )
    rows, cols = int(rows), int(cols)
    name = kind.value
    kernel = session.kernels[kind]
    geometry = plan_dispatch(rows, cols)
    local_size = kernel.local_sizes[geometry.rank]
    workgroups = geometry.workgroups(local_size)
    if geometry.rank == 2 and max(workgroups) > session.max_workgroups:
        # Same flat indexing, so a tall or wide matrix can run as a vector.
        geometry = geometry.flattened()
        local_size = kernel.local_sizes[1]
        workgroups = geometry.workgroups(local_size)
    if geometry.rank == 1:
        workgroups = fold_workgroups(workgroups[0], session.max_workgroups)
    check_capacity(session, name, geometry.numel)

    with measure_time() as elapsed:
        with padded((s1, s2, s3), geometry.numel, rows * cols):
            with staged(session, name, s1.ravel(), s2.ravel(), geometry.numel) as buffers:
                dispatch(
                    session,
                    kernel,
                    geometry.rank,
                    buffers,
                    (geometry.numel, geometry.work_cols),
                    workgroups,
                )
                read_back(session, name, buffers.s3, s3.ravel(), geometry.numel)
    s3.rows, s3.cols = rows, cols

    logger.debug(
        f"{name}({rows}x{cols}) padded to {geometry.work_rows}x{geometry.work_cols}, "
        f"global={geometry.global_size} local={local_size} took {elapsed():0.3}s"
    )
    return s3


def add_shapes(session, s1, s2, s3, rows, cols):
    """Element-wise addition: s3 = s1 + s2."""
    return _elementwise(session, OpKind.ADD, s1, s2, s3, rows, cols)


def subtract_shapes(session, s1, s2, s3, rows, cols):
    """Element-wise subtraction: s3 = s1 - s2."""
    return _elementwise(session, OpKind.SUBTRACT, s1, s2, s3, rows, cols)


def multiply_shapes(session, s1, s2, s3, rows, cols):
    """Element-wise (Hadamard) product: s3 = s1 * s2."""
    return _elementwise(session, OpKind.MULTIPLY, s1, s2, s3, rows, cols)


def divide_shapes(session, s1, s2, s3, rows, cols):
    """Element-wise division: s3 = s1 / s2. Zero divisors are not trapped."""
    return _elementwise(session, OpKind.DIVIDE, s1, s2, s3, rows, cols)


# ============================================================================
# Reductions
# ============================================================================

def dot_matrices(session, s1, s2, s3, rows, inner, out_cols):
    """Matrix product of a ``rows x inner`` and an ``inner x out_cols`` matrix.

    Each output cell is reduced by one workgroup: every invocation multiplies
    one pair along the shared dimension into workgroup scratch, then the
    first invocation sums the scratch serially. Cells beyond one dispatch
    axis are folded over the next. ``s3`` must already hold
    ``rows * out_cols`` values.
    """
    session.require_ready()
    rows, inner, out_cols = int(rows), int(inner), int(out_cols)
    name = OpKind.DOT.value
    count = rows * out_cols
    dest = _destination(s3, count, name)
    if count == 0:
        return s3
    if inner == 0:
        dest[:count] = 0.0
        return s3

    a = _flat(s1)[: rows * inner]
    b = _flat(s2)[: inner * out_cols]
    kernel = session.kernels[OpKind.DOT]

    with measure_time() as elapsed:
        with staged(session, name, a, b, count) as buffers:
            dispatch(
                session,
                kernel,
                2,
                buffers,
                (rows, inner, out_cols, scratch_slots(inner)),
                fold_workgroups(count, session.max_workgroups),
            )
            read_back(session, name, buffers.s3, dest, count)

    logger.debug(f"{name}({rows}x{inner} @ {inner}x{out_cols}) took {elapsed():0.3}s")
    return s3


def mat_vec(session, s1, s2, s3, rows, cols):
    """Product of a ``rows x cols`` matrix and a vector of ``cols`` values.

    One workgroup reduces one matrix row. ``s3`` must already hold ``rows``
    values.
    """
    session.require_ready()
    rows, cols = int(rows), int(cols)
    name = OpKind.MAT_VEC.value
    dest = _destination(s3, rows, name)
    if rows == 0:
        return s3
    if cols == 0:
        dest[:rows] = 0.0
        return s3

    m = _flat(s1)[: rows * cols]
    v = _flat(s2)[:cols]
    kernel = session.kernels[OpKind.MAT_VEC]

    with measure_time() as elapsed:
        with staged(session, name, m, v, rows) as buffers:
            dispatch(
                session,
                kernel,
                1,
                buffers,
                (rows, cols, scratch_slots(cols)),
                fold_workgroups(rows, session.max_workgroups),
            )
            read_back(session, name, buffers.s3, dest, rows)

    logger.debug(f"{name}({rows}x{cols}) took {elapsed():0.3}s")
    return s3
