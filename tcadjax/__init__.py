"""tcadjax: device-level assembly orchestration for TCAD simulation on JAX"""

import jax

from tcadjax._logging import logger

__version__ = "0.1.0"


def _backend_supports_x64() -> bool:
    """Check if the current JAX backend supports 64-bit floats.

    Note:
        Metal and TPU do not support float64; CPU and CUDA do.
    """
    try:
        backend = jax.default_backend().lower()
    except RuntimeError:
        # No backend could be initialised yet; let jax decide later
        return True
    if backend in ("metal", "tpu", "iree_metal"):
        return False
    return not any("metal" in getattr(d, "platform", "").lower() for d in jax.devices())


def configure_precision(force_x64: bool | None = None) -> bool:
    """Configure JAX precision based on backend capabilities.

    Device equations mix potentials of order one with carrier densities of
    order 1e20, so float64 is the default wherever the backend allows it.

    Args:
        force_x64: If True, force x64 even on unsupported backends (may fail).
                   If False, force x32. If None (default), auto-detect.

    Returns:
        True if x64 is enabled, False otherwise.

    This function is called automatically on import, but can be called again
    to reconfigure after changing backends.
    """
    if force_x64 is not None:
        enable_x64 = force_x64
    else:
        enable_x64 = _backend_supports_x64()

    if enable_x64:
        logger.info("Using 64-bit float precision")
    else:
        logger.warning("Using 32-bit float precision")

    jax.config.update("jax_enable_x64", enable_x64)
    return enable_x64


def get_precision_info() -> dict:
    """Get information about the current precision configuration."""
    return {
        "x64_enabled": jax.config.jax_enable_x64,
        "backend": jax.default_backend(),
        "backend_supports_x64": _backend_supports_x64(),
    }


# Auto-configure precision on import
_x64_enabled = configure_precision()


def get_float_dtype():
    """Get the appropriate float dtype based on x64 configuration.

    Returns:
        jnp.float64 if x64 is enabled, jnp.float32 otherwise.
    """
    import jax.numpy as jnp

    return jnp.float64 if jax.config.jax_enable_x64 else jnp.float32


# Core structure and assembly API
from tcadjax.analysis import (
    ACResult,
    NoiseResult,
    NRConfig,
    NRResult,
    assemble_devices,
    newton_solve,
    number_devices,
    run_ac_analysis,
    run_noise_analysis,
)
from tcadjax.assembly import (
    AssemblyPass,
    PermutationEntry,
    PermutationRegistry,
    PermutationScope,
    RHSEntry,
    RowColVal,
    TimeMode,
    WhatToLoad,
    permutation_scales,
    permutation_vector,
)
from tcadjax.errors import (
    AssemblyError,
    DuplicateEntityError,
    InvalidStateError,
    PermutationConflictError,
    SolutionSizeError,
    TcadError,
    UnknownBackupError,
    UnknownEntityError,
)
from tcadjax.models import (
    ContinuityInterfaceModel,
    DirichletContactModel,
    PoissonRegionModel,
)
from tcadjax.options import AssemblyOptions

# Profiling utilities
from tcadjax.profiling import (
    ProfileConfig,
    disable_profiling,
    enable_profiling,
    profile_section,
)
from tcadjax.structure import (
    AssemblyResult,
    Contact,
    Coordinate,
    Device,
    Interface,
    Region,
)

__all__ = [
    # Precision
    "configure_precision",
    "get_float_dtype",
    "get_precision_info",
    # Structure
    "Coordinate",
    "Region",
    "Contact",
    "Interface",
    "Device",
    "AssemblyResult",
    # Assembly
    "RowColVal",
    "RHSEntry",
    "PermutationEntry",
    "PermutationRegistry",
    "PermutationScope",
    "AssemblyPass",
    "WhatToLoad",
    "TimeMode",
    "permutation_scales",
    "permutation_vector",
    # Models
    "PoissonRegionModel",
    "DirichletContactModel",
    "ContinuityInterfaceModel",
    # Analysis
    "number_devices",
    "assemble_devices",
    "NRConfig",
    "NRResult",
    "newton_solve",
    "ACResult",
    "run_ac_analysis",
    "NoiseResult",
    "run_noise_analysis",
    # Options and errors
    "AssemblyOptions",
    "TcadError",
    "InvalidStateError",
    "UnknownEntityError",
    "DuplicateEntityError",
    "SolutionSizeError",
    "UnknownBackupError",
    "AssemblyError",
    "PermutationConflictError",
    # Profiling
    "ProfileConfig",
    "enable_profiling",
    "disable_profiling",
    "profile_section",
    "logger",
]
