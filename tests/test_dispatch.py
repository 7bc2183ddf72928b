"""Tests for kernel signatures, argument binding and the WGSL program."""

import struct

import pytest
import wgpu

from wgpu_linalg import ComputeSession, DeviceError, LinalgConfig
from wgpu_linalg.wgpu_dispatch import Kernel, bind_arguments, dispatch
from wgpu_linalg.wgpu_kernels import OpKind, render_program, scratch_slots, signature_for


class FakeBuffer:
    def __init__(self, usage=wgpu.BufferUsage.STORAGE | wgpu.BufferUsage.COPY_DST):
        self.usage = usage
        self.size = 128


def storage_buffers(n=3):
    return [FakeBuffer() for _ in range(n)]


def test_every_kind_has_an_entry_point():
    program = render_program((32,), (32, 32))
    for kind in OpKind:
        for entry_point in signature_for(kind).entry_points.values():
            assert f"fn {entry_point}(" in program


def test_elementwise_program_uses_local_sizes():
    program = render_program((32,), (16, 8))
    assert "@workgroup_size(32)" in program
    assert "@workgroup_size(16, 8)" in program
    assert "s1[idx] / s2[idx]" in program


def test_signatures():
    assert signature_for(OpKind.ADD).scalars == ("numel", "work_cols")
    assert set(signature_for(OpKind.DIVIDE).entry_points) == {1, 2}
    assert signature_for(OpKind.DOT).scalars == ("rows", "inner", "out_cols", "scratch")
    assert signature_for(OpKind.MAT_VEC).entry_points == {1: "mat_vec"}


def test_bind_arguments_packs_uniform():
    signature = signature_for(OpKind.DOT)
    params = bind_arguments(signature, "dot_matrices", storage_buffers(), (2, 3, 2, 3))
    assert params == struct.pack("4I", 2, 3, 2, 3)


def test_bind_arguments_pads_short_scalar_list():
    signature = signature_for(OpKind.ADD)
    params = bind_arguments(signature, "add_shapes", storage_buffers(), (64, 64))
    assert struct.unpack("4I", params) == (64, 64, 0, 0)


def test_bind_arguments_rejects_wrong_buffer_count():
    with pytest.raises(TypeError, match="buffer"):
        bind_arguments(signature_for(OpKind.ADD), "add_shapes", storage_buffers(2), (1, 1))


def test_bind_arguments_rejects_wrong_scalar_count():
    with pytest.raises(TypeError, match="scalar"):
        bind_arguments(signature_for(OpKind.MAT_VEC), "mat_vec", storage_buffers(), (1, 1))


def test_bind_arguments_rejects_non_storage_buffer():
    buffers = storage_buffers(2) + [FakeBuffer(wgpu.BufferUsage.UNIFORM)]
    with pytest.raises(TypeError, match="storage"):
        bind_arguments(signature_for(OpKind.ADD), "add_shapes", buffers, (1, 1))


def test_bind_arguments_rejects_float_scalar():
    with pytest.raises(TypeError, match="expected int"):
        bind_arguments(signature_for(OpKind.ADD), "add_shapes", storage_buffers(), (1.0, 1))


def test_bind_arguments_rejects_out_of_range_scalar():
    with pytest.raises(ValueError):
        bind_arguments(signature_for(OpKind.ADD), "add_shapes", storage_buffers(), (-1, 1))


def test_scratch_slots_capped_at_workgroup_size():
    assert scratch_slots(3) == 3
    assert scratch_slots(256) == 256
    assert scratch_slots(1000) == 256


def test_kernels_rebuild_folded_workgroup_index():
    program = render_program((32,), (32, 32))
    assert "fn linear_workgroup(" in program
    assert "linear_workgroup(wid, nwg) * 32u + lid.x" in program
    assert program.count("@builtin(num_workgroups)") == 6


class RecordingDevice:
    """Stands in for a device whose bind group creation fails."""

    def __init__(self):
        self.params_buffers = []
        self.queue = None

    def create_buffer_with_data(self, data, usage):
        buf = FakeBuffer(usage)
        buf.destroyed = False

        def destroy():
            buf.destroyed = True

        buf.destroy = destroy
        self.params_buffers.append(buf)
        return buf

    def create_bind_group(self, layout, entries):
        raise wgpu.GPUError("binding range exceeds limit")


def test_dispatch_releases_params_when_binding_fails():
    session = ComputeSession(LinalgConfig())
    session.device = RecordingDevice()
    kernel = Kernel(OpKind.ADD, signature_for(OpKind.ADD), {1: object()}, {1: (32,)})
    with pytest.raises(DeviceError) as info:
        dispatch(session, kernel, 1, storage_buffers(), (32, 32), (1,))
    assert info.value.stage == "add_shapes: dispatch"
    assert [buf.destroyed for buf in session.device.params_buffers] == [True]
