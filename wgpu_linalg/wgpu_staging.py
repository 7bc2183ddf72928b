"""Device buffers that mirror host operands for the length of one call.

Buffers are created right before a dispatch and destroyed right after the
result has been read back. Nothing here outlives a single operation.
"""

import contextlib
import logging
from typing import NamedTuple

import numpy as np
import wgpu

from wgpu_linalg.wgpu_dispatch import measure_time
from wgpu_linalg.wgpu_errors import ShapeError

logger = logging.getLogger(__name__)

F32_BYTES = 4

# Operands are only written by the host; the result is only read back.
OPERAND_USAGE = wgpu.BufferUsage.STORAGE | wgpu.BufferUsage.COPY_DST
RESULT_USAGE = wgpu.BufferUsage.STORAGE | wgpu.BufferUsage.COPY_SRC


class StagedBuffers(NamedTuple):
    s1: object
    s2: object
    s3: object

    def release(self):
        for buf in self:
            buf.destroy()


def create_buffer(session, count, usage):
    """Allocate an uninitialized device buffer for ``count`` float32 values."""
    return session.device.create_buffer(size=max(count, 1) * F32_BYTES, usage=usage)


def check_capacity(session, name, count):
    """Raise :class:`ShapeError` if ``count`` floats do not fit in one buffer."""
    nbytes = max(count, 1) * F32_BYTES
    limit = session.max_buffer_bytes
    if limit is not None and nbytes > limit:
        raise ShapeError(
            f"{name} needs a {nbytes}-byte buffer, the device allows at most {limit}"
        )


def release_after_failure(name, buffers):
    """Release ``buffers`` while another exception is propagating.

    A failure here is logged rather than raised so the original error wins.
    """
    try:
        buffers.release()
    except Exception as e:
        logger.warning(f"{name}: releasing buffers after a failed call raised {e}")


def stage_operands(session, name, s1, s2, out_count):
    """Allocate the three buffers of an operation and upload both operands.

    ``s1`` and ``s2`` are flat float32 arrays. Returns only once both uploads
    have completed, so a kernel never sees a partially written operand.
    """
    for count in (s1.size, s2.size, out_count):
        check_capacity(session, name, count)
    queue = session.queue
    with session.device_call(f"{name}: create buffers"):
        buffers = StagedBuffers(
            create_buffer(session, s1.size, OPERAND_USAGE),
            create_buffer(session, s2.size, OPERAND_USAGE),
            create_buffer(session, out_count, RESULT_USAGE),
        )
    try:
        with session.device_call(f"{name}: upload"), measure_time() as elapsed:
            queue.write_buffer(buffers.s1, 0, np.ascontiguousarray(s1))
            queue.write_buffer(buffers.s2, 0, np.ascontiguousarray(s2))
            queue.on_submitted_work_done_sync()
    except BaseException:
        release_after_failure(name, buffers)
        raise
    logger.debug(f"{name}: uploaded {s1.nbytes + s2.nbytes} bytes in {elapsed():0.3}s")
    return buffers


def read_back(session, name, buffer, dest, count):
    """Copy the first ``count`` results from ``buffer`` into ``dest``."""
    with session.device_call(f"{name}: read back"), measure_time() as elapsed:
        data = session.queue.read_buffer(buffer, 0, count * F32_BYTES)
    dest[:count] = np.frombuffer(data, dtype=np.float32, count=count)
    logger.debug(f"{name}: read back {count * F32_BYTES} bytes in {elapsed():0.3}s")


@contextlib.contextmanager
def staged(session, name, s1, s2, out_count):
    """Stage operands for one call and release every buffer on the way out."""
    buffers = stage_operands(session, name, s1, s2, out_count)
    try:
        yield buffers
    except BaseException:
        release_after_failure(name, buffers)
        raise
    with session.device_call(f"{name}: release buffers"):
        buffers.release()


@contextlib.contextmanager
def padded(shapes, work_count, logical_count):
    """Grow host shapes to ``work_count`` elements, then truncate them back.

    Truncating drops whatever the padded tail held, so no value beyond the
    logical extent survives the call.
    """
    for shape in shapes:
        shape.resize(work_count)
    try:
        yield shapes
    finally:
        for shape in shapes:
            shape.resize(logical_count)
