"""WGSL program and kernel signatures for every operation.

All kernels live in one shader module that a session compiles once. They
share a single set of bindings:

    binding 0  s1      read-only storage
    binding 1  s2      read-only storage
    binding 2  s3      read-write storage (result)
    binding 3  params  uniform vec4<u32> of scalar arguments

Elementwise kernels come in a 1-D and a 2-D flavour because the workgroup
size is part of the entry point. Both index the operands as flat arrays.
"""

import enum
from string import Template
from typing import Dict, NamedTuple, Tuple

REDUCE_LOCAL_SIZE = 256


class OpKind(enum.Enum):
    """The six operations a session can dispatch."""

    ADD = "add_shapes"
    SUBTRACT = "subtract_shapes"
    MULTIPLY = "multiply_shapes"
    DIVIDE = "divide_shapes"
    DOT = "dot_matrices"
    MAT_VEC = "mat_vec"

    @property
    def is_elementwise(self):
        return self in ELEMENTWISE_OPERATORS


ELEMENTWISE_OPERATORS = {
    OpKind.ADD: "+",
    OpKind.SUBTRACT: "-",
    OpKind.MULTIPLY: "*",
    OpKind.DIVIDE: "/",
}


class KernelSignature(NamedTuple):
    """Fixed argument layout of one kernel.

    ``buffers`` lists the access mode of each storage binding in order,
    ``scalars`` names the values packed into the ``params`` uniform.
    """

    buffers: Tuple[str, ...]
    scalars: Tuple[str, ...]
    entry_points: Dict[int, str]


def signature_for(kind):
    """Return the :class:`KernelSignature` of ``kind``."""
    buffers = ("read", "read", "read_write")
    if kind.is_elementwise:
        return KernelSignature(
            buffers,
            ("numel", "work_cols"),
            {1: f"{kind.value}_1d", 2: f"{kind.value}_2d"},
        )
    if kind is OpKind.DOT:
        return KernelSignature(
            buffers, ("rows", "inner", "out_cols", "scratch"), {2: kind.value}
        )
    return KernelSignature(buffers, ("rows", "cols", "scratch"), {1: kind.value})


# ============================================================================
# WGSL Compute Shader Sources
# ============================================================================

WGSL_BINDINGS = """
@group(0) @binding(0)
var<storage, read> s1: array<f32>;
@group(0) @binding(1)
var<storage, read> s2: array<f32>;
@group(0) @binding(2)
var<storage, read_write> s3: array<f32>;
@group(0) @binding(3)
var<uniform> params: vec4<u32>;

var<workgroup> partial_sums: array<f32, 256>;

// Dispatches too large for one axis are folded over y and z.
fn linear_workgroup(wid: vec3<u32>, nwg: vec3<u32>) -> u32 {
    return wid.x + (wid.y + wid.z * nwg.y) * nwg.x;
}
"""

# params.x = padded element count, params.y = padded column count
WGSL_ELEMENTWISE = Template("""
@compute @workgroup_size($local_1d)
fn ${name}_1d(
    @builtin(local_invocation_id) lid: vec3<u32>,
    @builtin(workgroup_id) wid: vec3<u32>,
    @builtin(num_workgroups) nwg: vec3<u32>,
) {
    let idx = linear_workgroup(wid, nwg) * ${local_1d}u + lid.x;
    if (idx < params.x) {
        s3[idx] = s1[idx] $op s2[idx];
    }
}

@compute @workgroup_size($local_2d_x, $local_2d_y)
fn ${name}_2d(@builtin(global_invocation_id) gid: vec3<u32>) {
    let width = params.y;
    if (gid.y >= width) {
        return;
    }
    let idx = gid.x * width + gid.y;
    if (idx < params.x) {
        s3[idx] = s1[idx] $op s2[idx];
    }
}
""")

# One workgroup per output cell, cells numbered row-major.
# params = (rows, inner, out_cols, active scratch slots)
WGSL_DOT_MATRICES = """
@compute @workgroup_size(256)
fn dot_matrices(
    @builtin(local_invocation_id) lid: vec3<u32>,
    @builtin(workgroup_id) wid: vec3<u32>,
    @builtin(num_workgroups) nwg: vec3<u32>,
) {
    let rows = params.x;
    let inner = params.y;
    let out_cols = params.z;
    let slots = params.w;
    let cell = linear_workgroup(wid, nwg);
    let live = cell < rows * out_cols;
    let row = cell / out_cols;
    let col2 = cell % out_cols;
    let k0 = lid.x;

    var acc = 0.0;
    if (live) {
        var k = k0;
        loop {
            if (k >= inner) { break; }
            acc = acc + s1[row * inner + k] * s2[k * out_cols + col2];
            k = k + 256u;
        }
    }
    partial_sums[k0] = acc;
    workgroupBarrier();

    if (k0 == 0u && live) {
        var total = 0.0;
        for (var i = 0u; i < slots; i = i + 1u) {
            total = total + partial_sums[i];
        }
        s3[cell] = total;
    }
}
"""

# One workgroup per matrix row.
# params = (rows, cols, active scratch slots, unused)
WGSL_MAT_VEC = """
@compute @workgroup_size(256)
fn mat_vec(
    @builtin(local_invocation_id) lid: vec3<u32>,
    @builtin(workgroup_id) wid: vec3<u32>,
    @builtin(num_workgroups) nwg: vec3<u32>,
) {
    let rows = params.x;
    let cols = params.y;
    let slots = params.z;
    let row = linear_workgroup(wid, nwg);
    let k0 = lid.x;

    var acc = 0.0;
    if (row < rows) {
        var k = k0;
        loop {
            if (k >= cols) { break; }
            acc = acc + s1[row * cols + k] * s2[k];
            k = k + 256u;
        }
    }
    partial_sums[k0] = acc;
    workgroupBarrier();

    if (k0 == 0u && row < rows) {
        var total = 0.0;
        for (var i = 0u; i < slots; i = i + 1u) {
            total = total + partial_sums[i];
        }
        s3[row] = total;
    }
}
"""


def render_program(local_1d, local_2d):
    """Assemble the full WGSL program for the given elementwise local sizes."""
    parts = [WGSL_BINDINGS]
    for kind, op in ELEMENTWISE_OPERATORS.items():
        parts.append(
            WGSL_ELEMENTWISE.substitute(
                name=kind.value,
                op=op,
                local_1d=local_1d[0],
                local_2d_x=local_2d[0],
                local_2d_y=local_2d[1],
            )
        )
    parts.append(WGSL_DOT_MATRICES)
    parts.append(WGSL_MAT_VEC)
    return "".join(parts)


def scratch_slots(extent):
    """Number of scratch slots a reduction over ``extent`` elements fills."""
    return min(extent, REDUCE_LOCAL_SIZE)
