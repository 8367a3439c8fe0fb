"""Global linear system construction for one or more Devices.

Several devices can share one global system: each gets a consecutive base
equation number and all of them append to the same triplet/RHS lists and the
same permutation registry. The passes run Contact (every device), then
Interface (every device), then Region (every device).

The matrices are built with JAX; duplicate (row, col) triplets are summed.
"""

from typing import Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.experimental.sparse.linalg import spsolve as jax_spsolve
from jaxtyping import Float, Inexact, Int

from tcadjax import get_float_dtype
from tcadjax._logging import logger
from tcadjax.assembly import (
    MatrixEntries,
    PermutationRegistry,
    RHSEntries,
    TimeMode,
    WhatToLoad,
)
from tcadjax.structure import AssemblyResult, Device


def number_devices(devices: Sequence[Device], base: int = 0) -> int:
    """Give the devices consecutive equation ranges starting at ``base``.

    Returns:
        Total system size (the last device's calc_max_equation_number)
    """
    next_base = base
    for device in devices:
        device.set_base_equation_number(next_base)
        next_base = device.calc_max_equation_number()
    return next_base


def system_size(devices: Sequence[Device]) -> int:
    """Size of the global system the (already numbered) devices live in."""
    return max((device.calc_max_equation_number() for device in devices), default=0)


def assemble_devices(
    devices: Sequence[Device],
    what_to_load: WhatToLoad = WhatToLoad.MATRIX_AND_RHS,
    time_mode: TimeMode = TimeMode.DC,
) -> AssemblyResult:
    """Run the three assembly passes over every device into shared buffers."""
    matrix: MatrixEntries = []
    rhs: RHSEntries = []
    permutations = PermutationRegistry()
    for device in devices:
        device.contact_assemble(matrix, rhs, permutations, what_to_load, time_mode)
    for device in devices:
        device.interface_assemble(matrix, rhs, permutations, what_to_load, time_mode)
    for device in devices:
        device.region_assemble(matrix, rhs, permutations, what_to_load, time_mode)
    size = system_size(devices)
    logger.debug(
        f"Assembled {len(devices)} devices: size={size}, {len(matrix)} triplets, "
        f"{len(rhs)} rhs entries, {len(permutations)} permutations"
    )
    return AssemblyResult(matrix, rhs, permutations, size)


def triplet_arrays(matrix: MatrixEntries) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split triplets into (rows, cols, vals) numpy arrays."""
    rows = np.fromiter((e.row for e in matrix), dtype=np.int64, count=len(matrix))
    cols = np.fromiter((e.col for e in matrix), dtype=np.int64, count=len(matrix))
    vals = np.fromiter((e.val for e in matrix), dtype=np.float64, count=len(matrix))
    return rows, cols, vals


def build_dense_system(
    matrix: MatrixEntries,
    rhs: RHSEntries,
    size: int,
    dtype=None,
) -> Tuple[Inexact[Array, "n n"], Inexact[Array, " n"]]:
    """Dense (J, f) from triplets and RHS entries."""
    dtype = dtype or get_float_dtype()
    rows, cols, vals = triplet_arrays(matrix)
    J = jnp.zeros((size, size), dtype=dtype).at[rows, cols].add(jnp.asarray(vals, dtype=dtype))
    return J, build_rhs_vector(rhs, size, dtype)


def build_rhs_vector(rhs: RHSEntries, size: int, dtype=None) -> Inexact[Array, " n"]:
    """Dense RHS vector, duplicate rows summed."""
    dtype = dtype or get_float_dtype()
    rows = np.fromiter((e.row for e in rhs), dtype=np.int64, count=len(rhs))
    vals = np.fromiter((e.val for e in rhs), dtype=np.float64, count=len(rhs))
    return jnp.zeros(size, dtype=dtype).at[rows].add(jnp.asarray(vals, dtype=dtype))


def build_csr_system(
    matrix: MatrixEntries, size: int
) -> Tuple[Float[Array, " nnz"], Int[Array, " nnz"], Int[Array, " n_plus_1"]]:
    """CSR (data, indices, indptr) from triplets, duplicates summed."""
    rows, cols, vals = triplet_arrays(matrix)
    linear = rows * size + cols
    unique_linear, inverse = np.unique(linear, return_inverse=True)
    data = jax.ops.segment_sum(
        jnp.asarray(vals, dtype=get_float_dtype()),
        jnp.asarray(inverse.reshape(-1)),
        num_segments=len(unique_linear),
    )
    # np.unique sorts row-major, which is already CSR order
    csr_rows = unique_linear // size
    csr_cols = unique_linear % size
    counts = np.zeros(size + 1, dtype=np.int32)
    np.add.at(counts, csr_rows + 1, 1)
    indptr = np.cumsum(counts).astype(np.int32)
    return data, jnp.asarray(csr_cols, dtype=jnp.int32), jnp.asarray(indptr)


def solve_system(
    system: AssemblyResult, use_sparse: bool = False
) -> Tuple[Float[Array, " n"], Float[Array, " n"]]:
    """Solve J * delta = f for a DC assembly.

    Returns:
        (delta, f)
    """
    if use_sparse:
        f = build_rhs_vector(system.rhs, system.size)
        data, indices, indptr = build_csr_system(system.matrix, system.size)
        delta = jax_spsolve(data, indices, indptr, f, tol=0)
    else:
        J, f = build_dense_system(system.matrix, system.rhs, system.size)
        delta = jnp.linalg.solve(J, f)
    return delta, f


def reactive_system(
    devices: Sequence[Device],
) -> Tuple[Float[Array, "n n"], Float[Array, "n n"], PermutationRegistry]:
    """Resistive (DC) and reactive (TIME) Jacobians at the current operating point."""
    size = system_size(devices)
    dc = assemble_devices(devices, WhatToLoad.MATRIX_ONLY, TimeMode.DC)
    tm = assemble_devices(devices, WhatToLoad.MATRIX_ONLY, TimeMode.TIME)
    Jr, _ = build_dense_system(dc.matrix, [], size)
    Jc, _ = build_dense_system(tm.matrix, [], size)
    return Jr, Jc, dc.permutations
