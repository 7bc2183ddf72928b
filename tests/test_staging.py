"""Host-side tests for staging buffers against a stand-in device."""

import numpy as np
import pytest

from wgpu_linalg import ComputeSession, LinalgConfig, ShapeError
from wgpu_linalg.wgpu_staging import check_capacity, staged


class FakeQueue:
    def write_buffer(self, buffer, offset, data):
        buffer.written = bytes(data)

    def on_submitted_work_done_sync(self):
        pass


class FakeBuffer:
    def __init__(self, size, usage, fail_destroy):
        self.size = size
        self.usage = usage
        self.destroyed = False
        self.fail_destroy = fail_destroy

    def destroy(self):
        self.destroyed = True
        if self.fail_destroy:
            raise RuntimeError("buffer already lost")


class FakeDevice:
    def __init__(self, fail_destroy=False):
        self.queue = FakeQueue()
        self.buffers = []
        self.fail_destroy = fail_destroy

    def create_buffer(self, size, usage):
        buf = FakeBuffer(size, usage, self.fail_destroy)
        self.buffers.append(buf)
        return buf


def fake_session(max_buffer_bytes=None, fail_destroy=False):
    session = ComputeSession(LinalgConfig())
    session.device = FakeDevice(fail_destroy)
    session.max_buffer_bytes = max_buffer_bytes
    return session


def operand(n):
    return np.ones(n, dtype=np.float32)


def test_staged_releases_buffers():
    session = fake_session()
    with staged(session, "add_shapes", operand(4), operand(4), 4) as buffers:
        assert [buf.size for buf in buffers] == [16, 16, 16]
    assert all(buf.destroyed for buf in session.device.buffers)


def test_staged_releases_buffers_when_the_call_fails():
    session = fake_session()
    with pytest.raises(ValueError):
        with staged(session, "mat_vec", operand(4), operand(2), 2):
            raise ValueError("kernel failed")
    assert all(buf.destroyed for buf in session.device.buffers)


def test_failed_release_keeps_the_original_error():
    session = fake_session(fail_destroy=True)
    with pytest.raises(ValueError, match="kernel failed"):
        with staged(session, "mat_vec", operand(4), operand(2), 2):
            raise ValueError("kernel failed")


def test_oversized_operand_rejected_before_allocation():
    session = fake_session(max_buffer_bytes=64)
    with pytest.raises(ShapeError, match="at most 64"):
        with staged(session, "add_shapes", operand(17), operand(4), 4):
            pass
    assert session.device.buffers == []


def test_check_capacity_accepts_buffer_at_limit():
    session = fake_session(max_buffer_bytes=64)
    check_capacity(session, "dot_matrices", 16)
    with pytest.raises(ShapeError):
        check_capacity(session, "dot_matrices", 17)
