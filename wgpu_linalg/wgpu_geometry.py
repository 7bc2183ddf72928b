"""Work geometry planning for kernel dispatch.

Operand extents are rounded up to a small ladder of padding buckets so that
dispatches line up with whole workgroups. Padding never changes the result of
an operation, only how many invocations run.
"""

from typing import NamedTuple, Tuple

from wgpu_linalg.wgpu_errors import ShapeError

PAD_BUCKETS = (32, 64, 128, 256)
LOCAL_SIZE_1D = (32,)
LOCAL_SIZE_2D = (32, 32)

# WebGPU default for max-compute-workgroups-per-dimension
MAX_WORKGROUPS_PER_DIM = 65535


class WorkGeometry(NamedTuple):
    """Global and local dispatch extents for one elementwise call."""

    global_size: Tuple[int, ...]
    local_size: Tuple[int, ...]
    work_rows: int
    work_cols: int

    @property
    def rank(self):
        return len(self.global_size)

    @property
    def numel(self):
        return self.work_rows * self.work_cols

    def workgroups(self, local_size=None):
        """Number of workgroups per axis needed to cover ``global_size``."""
        local_size = local_size or self.local_size
        return tuple(
            (extent + size - 1) // size
            for extent, size in zip(self.global_size, local_size)
        )

    def flattened(self):
        """The same working shape dispatched as one flat 1-D extent."""
        return WorkGeometry((self.numel,), LOCAL_SIZE_1D, self.work_rows, self.work_cols)


def pad_extent(n):
    """Round ``n`` up to the next padding bucket.

    Extents below the first bucket become 32, extents already on a bucket stay
    put, and extents above 256 are left unpadded since no larger bucket exists.
    """
    if n < PAD_BUCKETS[0]:
        return PAD_BUCKETS[0]
    for bucket in PAD_BUCKETS:
        if n <= bucket:
            return bucket
    return n


def plan(rows, cols):
    """Return the padded ``(work_rows, work_cols)`` for a ``rows x cols`` shape.

    A 1x1 shape takes the row-vector branch and pads to ``(1, 32)``.
    """
    if rows == 1:
        return rows, pad_extent(cols)
    if cols == 1:
        return pad_extent(rows), cols
    return pad_extent(rows), pad_extent(cols)


def plan_dispatch(rows, cols):
    """Plan the padded working shape and dispatch extents for an operand."""
    work_rows, work_cols = plan(rows, cols)
    if rows == 1 or cols == 1:
        extent = work_cols if rows == 1 else work_rows
        return WorkGeometry((extent,), LOCAL_SIZE_1D, work_rows, work_cols)
    return WorkGeometry((work_rows, work_cols), LOCAL_SIZE_2D, work_rows, work_cols)


def fit_local_size(local_size, max_invocations, max_sizes):
    """Shrink ``local_size`` until the device can run it.

    The largest axis is halved first. ``max_sizes`` holds the per-axis limits
    and ``max_invocations`` the limit on the product of all axes.
    """
    sizes = [min(size, limit) for size, limit in zip(local_size, max_sizes)]

    def total():
        result = 1
        for s in sizes:
            result *= s
        return result

    while total() > max_invocations:
        axis = sizes.index(max(sizes))
        if sizes[axis] == 1:
            break
        sizes[axis] //= 2
    return tuple(sizes)


def fold_workgroups(count, max_per_dim=MAX_WORKGROUPS_PER_DIM):
    """Spread ``count`` workgroups over as many axes as the device needs.

    Counts within the per-dimension limit dispatch as ``(count,)``. Larger
    counts become ``(x, y)`` or ``(x, y, z)`` whose product is at least
    ``count``. Kernels rebuild the linear workgroup index as
    ``x + (y + z * Y) * X`` and skip the overshoot past ``count``.
    """
    if count <= max_per_dim:
        return (count,)
    y = (count + max_per_dim - 1) // max_per_dim
    if y <= max_per_dim:
        return (max_per_dim, y)
    z = (y + max_per_dim - 1) // max_per_dim
    if z > max_per_dim:
        raise ShapeError(f"{count} workgroups exceed what one dispatch can address")
    return (max_per_dim, max_per_dim, z)
