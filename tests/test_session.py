"""Tests for the compute session lifecycle."""

import pytest
import wgpu

from wgpu_linalg import (
    ComputeSession, DeviceError, LinalgConfig, SessionState, SessionStateError, Shape,
    create_shape,
)
from wgpu_linalg.wgpu_kernels import OpKind


def test_new_session_is_uninitialized():
    s = ComputeSession(LinalgConfig())
    assert s.state is SessionState.UNINITIALIZED
    assert s.kernels == {}


def test_operation_before_init_raises():
    s = ComputeSession(LinalgConfig())
    a, b, out = create_shape(4, 1.0), create_shape(4, 2.0), create_shape(4, 0.0)
    with pytest.raises(SessionStateError):
        s.add_shapes(a, b, out, 1, 4)
    # Host arrays untouched by the rejected call
    assert len(a) == len(b) == len(out) == 4


def test_reduction_before_init_raises():
    s = ComputeSession(LinalgConfig())
    with pytest.raises(SessionStateError):
        s.mat_vec(Shape.empty(2, 2), Shape.empty(1, 2), Shape.empty(2, 1), 2, 2)


def test_cleanup_without_init_terminates():
    s = ComputeSession(LinalgConfig())
    s.cleanup()
    assert s.state is SessionState.TERMINATED
    with pytest.raises(SessionStateError):
        s.init()


def test_device_call_raises_device_error_with_stage():
    s = ComputeSession(LinalgConfig())
    with pytest.raises(DeviceError) as info:
        with s.device_call("dot_matrices: read back"):
            raise wgpu.GPUError("device lost")
    assert info.value.stage == "dot_matrices: read back"
    assert isinstance(info.value.cause, wgpu.GPUError)
    assert "device lost" in str(info.value)


def test_device_call_wraps_runtime_errors():
    s = ComputeSession(LinalgConfig())
    with pytest.raises(DeviceError, match="request device"):
        with s.device_call("request device"):
            raise RuntimeError("adapter gone")


def test_device_call_passes_other_errors_through():
    s = ComputeSession(LinalgConfig())
    with pytest.raises(ValueError):
        with s.device_call("upload"):
            raise ValueError("not a device failure")


def test_fatal_device_error_exits_with_status_1():
    s = ComputeSession(LinalgConfig(fatal_device_errors=True))
    with pytest.raises(SystemExit) as info:
        with s.device_call("add_shapes: dispatch"):
            raise wgpu.GPUError("boom")
    assert info.value.code == 1


def test_fail_logs_the_stage(caplog):
    s = ComputeSession(LinalgConfig())
    with pytest.raises(DeviceError):
        s.fail("request adapter", "no compatible adapter found")
    assert "request adapter" in caplog.text


@pytest.mark.gpu
def test_init_then_cleanup_without_operations():
    s = ComputeSession(LinalgConfig())
    try:
        s.init()
    except Exception as e:  # no adapter on this machine
        pytest.skip(f"no usable wgpu adapter: {e}")
    assert s.state is SessionState.READY
    assert set(s.kernels) == set(OpKind)
    s.cleanup()
    assert s.state is SessionState.TERMINATED
    assert s.device is None
    s.cleanup()
    assert s.state is SessionState.TERMINATED


@pytest.mark.gpu
def test_operation_after_cleanup_raises():
    s = ComputeSession(LinalgConfig())
    try:
        s.init()
    except Exception as e:
        pytest.skip(f"no usable wgpu adapter: {e}")
    s.cleanup()
    with pytest.raises(SessionStateError):
        s.add_shapes(create_shape(4, 1.0), create_shape(4, 1.0), create_shape(4, 0.0), 1, 4)
    with pytest.raises(SessionStateError):
        s.init()


@pytest.mark.gpu
def test_kernels_resolve_expected_local_sizes(session):
    add = session.kernels[OpKind.ADD]
    assert add.local_sizes[1] == (32,)
    assert add.local_sizes[2] == session.local_size_2d
    assert session.kernels[OpKind.DOT].local_sizes == {2: (256,)}
