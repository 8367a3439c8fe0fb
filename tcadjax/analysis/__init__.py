"""Analysis drivers for tcadjax

Outer loops built on the Device assembly contract: global system
construction, Newton DC solve, small-signal AC and adjoint noise analysis.
"""

from tcadjax.analysis.ac import ACResult, collect_ac_excitation, run_ac_analysis
from tcadjax.analysis.noise import NoiseResult, run_noise_analysis
from tcadjax.analysis.solver import NRConfig, NRResult, newton_solve
from tcadjax.analysis.system import (
    assemble_devices,
    build_csr_system,
    build_dense_system,
    build_rhs_vector,
    number_devices,
    reactive_system,
    solve_system,
    system_size,
    triplet_arrays,
)

__all__ = [
    # System construction
    "number_devices",
    "system_size",
    "assemble_devices",
    "triplet_arrays",
    "build_dense_system",
    "build_rhs_vector",
    "build_csr_system",
    "solve_system",
    "reactive_system",
    # Newton
    "NRConfig",
    "NRResult",
    "newton_solve",
    # AC analysis
    "ACResult",
    "collect_ac_excitation",
    "run_ac_analysis",
    # Noise analysis
    "NoiseResult",
    "run_noise_analysis",
]
