"""Kernel handles and the submit-and-wait dispatch path."""

import contextlib
import logging
import struct
import time

import wgpu

from wgpu_linalg.wgpu_kernels import REDUCE_LOCAL_SIZE, signature_for

logger = logging.getLogger(__name__)

UNIFORM_SLOTS = 4
U32_MAX = 2**32 - 1

_BINDING_TYPES = {
    "read": "read-only-storage",
    "read_write": "storage",
    "uniform": "uniform",
}


@contextlib.contextmanager
def measure_time():
    """
    A context manager to measure the execution time of a piece of code.

    Example:

        with measure_time() as duration:
            expensive_function()
        print(f"execution took {duration()} seconds")
    """
    start = time.perf_counter()
    yield lambda: time.perf_counter() - start


class Kernel:
    """A resolved kernel: one compute pipeline per dispatch rank."""

    def __init__(self, kind, signature, pipelines, local_sizes):
        self.kind = kind
        self.signature = signature
        self.pipelines = pipelines
        self.local_sizes = local_sizes

    def __repr__(self):
        ranks = ", ".join(
            f"{rank}-D local={self.local_sizes[rank]}" for rank in sorted(self.pipelines)
        )
        return f"Kernel({self.kind.value}: {ranks})"

    def pipeline(self, rank):
        try:
            return self.pipelines[rank]
        except KeyError:
            raise ValueError(
                f"kernel {self.kind.value} has no {rank}-D entry point"
            ) from None


def build_bind_group_layout(device):
    """Layout shared by every kernel: three storage buffers and a uniform."""
    entries = []
    for i, access in enumerate(("read", "read", "read_write", "uniform")):
        entries.append({
            "binding": i,
            "visibility": wgpu.ShaderStage.COMPUTE,
            "buffer": {
                "type": _BINDING_TYPES[access],
                "has_dynamic_offset": False,
            },
        })
    return device.create_bind_group_layout(entries=entries)


def build_kernel(device, program, bind_group_layout, kind, local_sizes):
    """Create the compute pipelines behind ``kind``'s entry points."""
    signature = signature_for(kind)
    pipeline_layout = device.create_pipeline_layout(
        bind_group_layouts=[bind_group_layout]
    )
    pipelines = {}
    kernel_local_sizes = {}
    for rank, entry_point in signature.entry_points.items():
        pipelines[rank] = device.create_compute_pipeline(
            layout=pipeline_layout,
            compute={"module": program, "entry_point": entry_point},
        )
        if kind.is_elementwise:
            kernel_local_sizes[rank] = local_sizes[rank]
        else:
            kernel_local_sizes[rank] = (REDUCE_LOCAL_SIZE,)
    return Kernel(kind, signature, pipelines, kernel_local_sizes)


# ============================================================================
# Argument Binding
# ============================================================================

def arglen_error(name, kind, given, expected):
    return TypeError(f"{name} takes exactly {expected} {kind} arguments ({given} given)")


def bind_arguments(signature, name, buffers, scalars):
    """Check arguments against ``signature`` and pack the scalar uniform.

    Returns the bytes for the ``params`` uniform. Raises ``TypeError`` when
    the argument count or kind does not match and ``ValueError`` when a
    scalar does not fit in a u32.
    """
    if len(buffers) != len(signature.buffers):
        raise arglen_error(name, "buffer", len(buffers), len(signature.buffers))
    if len(scalars) != len(signature.scalars):
        raise arglen_error(name, "scalar", len(scalars), len(signature.scalars))

    for n, buf in enumerate(buffers):
        usage = getattr(buf, "usage", None)
        if usage is None or not usage & wgpu.BufferUsage.STORAGE:
            raise TypeError(f"buffer argument {n} to {name} is not a storage buffer")

    for value, scalar_name in zip(scalars, signature.scalars):
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(
                f"scalar argument {scalar_name} to {name} has type "
                f"{type(value).__name__}, expected int"
            )
        if not 0 <= value <= U32_MAX:
            raise ValueError(
                f"scalar argument {scalar_name} to {name} out of u32 range: {value}"
            )

    values = list(scalars) + [0] * (UNIFORM_SLOTS - len(scalars))
    return struct.pack(f"{UNIFORM_SLOTS}I", *values)


# ============================================================================
# Dispatch
# ============================================================================

def dispatch(session, kernel, rank, buffers, scalars, workgroups):
    """Run ``kernel`` and block until the queue has finished it.

    Args:
        session: ready ComputeSession
        kernel: Kernel resolved by the session
        rank: which entry point to run (1 or 2)
        buffers: storage buffers in binding order
        scalars: ints packed into the params uniform
        workgroups: tuple (x, y=1, z=1) for dispatch
    """
    name = kernel.kind.value
    params = bind_arguments(kernel.signature, name, buffers, scalars)
    pipeline = kernel.pipeline(rank)
    device = session.device

    with session.device_call(f"{name}: dispatch"):
        params_buffer = device.create_buffer_with_data(
            data=params,
            usage=wgpu.BufferUsage.UNIFORM | wgpu.BufferUsage.COPY_DST,
        )

        try:
            resources = []
            for i, buf in enumerate(list(buffers) + [params_buffer]):
                resources.append({
                    "binding": i,
                    "resource": {"buffer": buf, "offset": 0, "size": buf.size},
                })
            bind_group = device.create_bind_group(
                layout=session.bind_group_layout,
                entries=resources,
            )

            with measure_time() as elapsed:
                command_encoder = device.create_command_encoder()
                compute_pass = command_encoder.begin_compute_pass()
                compute_pass.set_pipeline(pipeline)
                compute_pass.set_bind_group(0, bind_group)
                compute_pass.dispatch_workgroups(*workgroups)
                compute_pass.end()
                device.queue.submit([command_encoder.finish()])
                device.queue.on_submitted_work_done_sync()
        finally:
            params_buffer.destroy()

    logger.debug(f"{name}: {rank}-D dispatch {workgroups} took {elapsed():0.3}s")
