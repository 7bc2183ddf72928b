"""
wgpu_linalg: elementwise and matrix arithmetic on the GPU via wgpu-py.

Hides adapter selection, buffer staging and kernel dispatch behind plain
host-side operations on float32 vectors and matrices. Every operation is
synchronous and runs on a compute session created once per process.

Modules:
    wgpu_session  - ComputeSession lifecycle (init / cleanup)
    wgpu_ops      - add, subtract, multiply, divide, dot product, mat-vec
    wgpu_geometry - padding buckets and dispatch extents
    wgpu_staging  - per-call device buffers
    wgpu_dispatch - kernel handles and submit-and-wait dispatch
    wgpu_kernels  - the WGSL program
    wgpu_shape    - resizable host arrays
"""

from wgpu_linalg.wgpu_config import LinalgConfig, load_config
from wgpu_linalg.wgpu_errors import (
    LinalgError, DeviceError, SessionStateError, ShapeError, ConfigError,
)
from wgpu_linalg.wgpu_geometry import WorkGeometry, plan, plan_dispatch
from wgpu_linalg.wgpu_kernels import OpKind
from wgpu_linalg.wgpu_ops import (
    add_shapes, subtract_shapes, multiply_shapes, divide_shapes,
    dot_matrices, mat_vec,
)
from wgpu_linalg.wgpu_session import (
    ComputeSession, SessionState, init, cleanup, list_adapters,
)
from wgpu_linalg.wgpu_shape import Shape, create_shape

__all__ = [
    # Session
    "ComputeSession", "SessionState", "init", "cleanup", "list_adapters",
    "LinalgConfig", "load_config",
    # Operations
    "add_shapes", "subtract_shapes", "multiply_shapes", "divide_shapes",
    "dot_matrices", "mat_vec",
    # Host arrays
    "Shape", "create_shape",
    # Geometry
    "WorkGeometry", "plan", "plan_dispatch", "OpKind",
    # Errors
    "LinalgError", "DeviceError", "SessionStateError", "ShapeError", "ConfigError",
]
