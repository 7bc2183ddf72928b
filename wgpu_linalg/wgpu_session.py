"""Compute session: adapter, device, compiled program and kernel handles.

A session moves through three states. ``init()`` selects the first adapter
matching the configured power preference, creates the device, compiles the
WGSL program and resolves one kernel per :class:`OpKind`. ``cleanup()``
releases all of it. A terminated session cannot be re-initialized.

    with ComputeSession() as session:
        session.add_shapes(a, b, out, rows, cols)
"""

import contextlib
import enum
import logging
import sys

import wgpu
import wgpu.backends.wgpu_native  # noqa: F401

from wgpu_linalg import wgpu_ops
from wgpu_linalg.wgpu_config import load_config
from wgpu_linalg.wgpu_dispatch import build_bind_group_layout, build_kernel, measure_time
from wgpu_linalg.wgpu_errors import DeviceError, SessionStateError
from wgpu_linalg.wgpu_geometry import (
    LOCAL_SIZE_1D, LOCAL_SIZE_2D, MAX_WORKGROUPS_PER_DIM, fit_local_size,
)
from wgpu_linalg.wgpu_kernels import OpKind, render_program

logger = logging.getLogger(__name__)

# Limits raised to the adapter's maximum: a 32x32 workgroup, folded
# dispatches and operands past the default 128 MiB binding.
REQUESTED_LIMITS = (
    "max-compute-invocations-per-workgroup",
    "max-compute-workgroup-size-x",
    "max-compute-workgroup-size-y",
    "max-compute-workgroups-per-dimension",
    "max-storage-buffer-binding-size",
    "max-buffer-size",
)

DEVICE_EXCEPTIONS = (wgpu.GPUError, RuntimeError)


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    TERMINATED = "terminated"


def list_adapters():
    """List all available GPU adapters."""
    adapters = wgpu.gpu.enumerate_adapters_sync()
    for i, adapter in enumerate(adapters):
        logger.info(f"adapter [{i}] {adapter.summary}")
    return adapters


class ComputeSession:
    """Owns every device resource shared by the operations.

    Operations borrow the queue, the bind group layout and the kernels; they
    never mutate them. One session must not be used from several threads at
    once.
    """

    def __init__(self, config=None):
        self.config = config or load_config()
        self.state = SessionState.UNINITIALIZED
        self.adapter = None
        self.device = None
        self.program = None
        self.bind_group_layout = None
        self.kernels = {}
        self.local_size_2d = LOCAL_SIZE_2D
        self.max_workgroups = MAX_WORKGROUPS_PER_DIM
        self.max_buffer_bytes = None

    def __repr__(self):
        return f"ComputeSession(state={self.state.value})"

    def __enter__(self):
        if self.state is SessionState.UNINITIALIZED:
            self.init()
        return self

    def __exit__(self, *exc_info):
        self.cleanup()

    @property
    def queue(self):
        return self.device.queue

    # ---- Lifecycle ----
    def init(self):
        """Select the adapter, create the device and compile every kernel."""
        if self.state is not SessionState.UNINITIALIZED:
            raise SessionStateError(f"cannot init a session that is {self.state.value}")

        with measure_time() as elapsed:
            with self.device_call("request adapter"):
                self.adapter = wgpu.gpu.request_adapter_sync(
                    power_preference=self.config.power_preference,
                    force_fallback_adapter=self.config.force_fallback_adapter,
                )
            if self.adapter is None:
                self.fail("request adapter", "no compatible adapter found")
            logger.info(f"selected adapter: {self.adapter.summary}")

            limits = self.adapter.limits
            required = {key: limits[key] for key in REQUESTED_LIMITS if key in limits}
            with self.device_call("request device"):
                self.device = self.adapter.request_device_sync(required_limits=required)

            device_limits = self.device.limits
            self.max_workgroups = device_limits.get(
                "max-compute-workgroups-per-dimension", MAX_WORKGROUPS_PER_DIM
            )
            self.max_buffer_bytes = min(
                device_limits["max-storage-buffer-binding-size"],
                device_limits["max-buffer-size"],
            )
            self.local_size_2d = fit_local_size(
                LOCAL_SIZE_2D,
                device_limits["max-compute-invocations-per-workgroup"],
                (
                    device_limits["max-compute-workgroup-size-x"],
                    device_limits["max-compute-workgroup-size-y"],
                ),
            )
            if self.local_size_2d != LOCAL_SIZE_2D:
                logger.info(
                    f"device limits shrink 2-D local size {LOCAL_SIZE_2D} "
                    f"to {self.local_size_2d}"
                )

            local_sizes = {1: LOCAL_SIZE_1D, 2: self.local_size_2d}
            with self.device_call("compile program"):
                self.program = self.device.create_shader_module(
                    code=render_program(LOCAL_SIZE_1D, self.local_size_2d)
                )
                self.bind_group_layout = build_bind_group_layout(self.device)
            for kind in OpKind:
                with self.device_call(f"create kernel {kind.value}"):
                    self.kernels[kind] = build_kernel(
                        self.device, self.program, self.bind_group_layout, kind, local_sizes
                    )

        self.state = SessionState.READY
        logger.info(f"session ready in {elapsed():0.3}s")
        logger.info(
            f"buffers up to {self.max_buffer_bytes} bytes, "
            f"{self.max_workgroups} workgroups per axis"
        )
        for kernel in self.kernels.values():
            logger.info(f"+-- {kernel}")
        return self

    def cleanup(self):
        """Release kernels, program and device. Safe to call twice."""
        if self.state is SessionState.TERMINATED:
            logger.debug("cleanup on a terminated session ignored")
            return
        self.kernels.clear()
        self.bind_group_layout = None
        self.program = None
        if self.device is not None:
            self.device.destroy()
        self.device = None
        self.adapter = None
        self.state = SessionState.TERMINATED
        logger.info("session terminated")

    # ---- Guards ----
    def require_ready(self):
        if self.state is not SessionState.READY:
            raise SessionStateError(
                f"operation requires a ready session, this one is {self.state.value}"
            )

    def fail(self, stage, cause):
        """Report a device failure. Either exits the process or raises."""
        logger.error(f"device error during {stage}: {cause}")
        if self.config.fatal_device_errors:
            sys.exit(1)
        raise DeviceError(stage, cause)

    @contextlib.contextmanager
    def device_call(self, stage):
        """Turn exceptions from the wgpu runtime into fatal :class:`DeviceError`."""
        try:
            yield
        except DEVICE_EXCEPTIONS as e:
            self.fail(stage, e)

    # ---- Operations ----
    def add_shapes(self, s1, s2, s3, rows, cols):
        return wgpu_ops.add_shapes(self, s1, s2, s3, rows, cols)

    def subtract_shapes(self, s1, s2, s3, rows, cols):
        return wgpu_ops.subtract_shapes(self, s1, s2, s3, rows, cols)

    def multiply_shapes(self, s1, s2, s3, rows, cols):
        return wgpu_ops.multiply_shapes(self, s1, s2, s3, rows, cols)

    def divide_shapes(self, s1, s2, s3, rows, cols):
        return wgpu_ops.divide_shapes(self, s1, s2, s3, rows, cols)

    def dot_matrices(self, s1, s2, s3, rows, inner, out_cols):
        return wgpu_ops.dot_matrices(self, s1, s2, s3, rows, inner, out_cols)

    def mat_vec(self, s1, s2, s3, rows, cols):
        return wgpu_ops.mat_vec(self, s1, s2, s3, rows, cols)


def init(config=None):
    """Create a session and bring it to the Ready state."""
    return ComputeSession(config).init()


def cleanup(session):
    """Terminate ``session``, releasing every device resource."""
    session.cleanup()
