"""Newton driver for DC analysis of one or more Devices.

The Device layer only assembles and applies updates; this module is the outer
loop that decides convergence and rollback:

    backup_solutions(tag)
    repeat:
        contact/interface/region assembly -> (J, f)
        J * delta = f
        update(delta); update_contacts()
        converged when every device's abs and rel errors are under tolerance
    restore_solutions(tag) if the iteration diverges or runs out of steps

Each device is handed the prefix of the global vector that ends at its own
calc_max_equation_number, which covers its equation range.
"""

import math
from typing import NamedTuple, Optional, Sequence

import jax.numpy as jnp
import numpy as np

from tcadjax._logging import logger
from tcadjax.analysis.system import assemble_devices, number_devices, solve_system
from tcadjax.assembly import TimeMode, WhatToLoad
from tcadjax.config import (
    DEFAULT_ABS_ERROR,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_UPDATE,
    DEFAULT_REL_ERROR,
)
from tcadjax.structure import Device


class NRConfig(NamedTuple):
    """Configuration for the Newton-Raphson driver.

    Attributes:
        max_iterations: Maximum number of Newton iterations
        abstol: Absolute update tolerance (largest |delta|)
        reltol: Relative update tolerance (largest |delta| / |x|)
        max_update: Update size treated as divergence
        use_sparse: Solve with the JAX sparse solver instead of a dense LU
        backup_tag: Tag under which the starting point is saved
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    abstol: float = DEFAULT_ABS_ERROR
    reltol: float = DEFAULT_REL_ERROR
    max_update: float = DEFAULT_MAX_UPDATE
    use_sparse: bool = False
    backup_tag: str = "newton_initial"


class NRResult(NamedTuple):
    """Result from the Newton-Raphson driver.

    Attributes:
        iterations: Number of iterations performed
        converged: Whether the solve converged
        abs_error: Largest absolute update of the last iteration
        rel_error: Largest relative update of the last iteration
        residual_norm: Max-norm of the residual assembled in the last iteration
    """

    iterations: int
    converged: bool
    abs_error: float
    rel_error: float
    residual_norm: float


def newton_solve(
    devices: Sequence[Device],
    config: Optional[NRConfig] = None,
    base: int = 0,
) -> NRResult:
    """Solve the DC problem of ``devices`` in one global system.

    The devices are numbered consecutively from ``base``. On failure every
    device is rolled back to the state it had on entry.
    """
    if config is None:
        config = NRConfig()
    devices = list(devices)
    size = number_devices(devices, base)
    logger.info(f"Newton solve: {len(devices)} devices, {size} equations")

    for device in devices:
        device.backup_solutions(config.backup_tag)

    abs_error = math.inf
    rel_error = math.inf
    residual_norm = math.inf
    for iteration in range(1, config.max_iterations + 1):
        system = assemble_devices(devices, WhatToLoad.MATRIX_AND_RHS, TimeMode.DC)
        delta, f = solve_system(system, use_sparse=config.use_sparse)
        residual_norm = float(jnp.max(jnp.abs(f))) if size else 0.0

        delta = np.asarray(delta)
        if not np.all(np.isfinite(delta)):
            logger.error(f"Newton iteration {iteration}: non-finite update (singular matrix?)")
            return _rollback(devices, config, iteration, abs_error, rel_error, residual_norm)

        for device in devices:
            device.update(delta[: device.calc_max_equation_number()])
        for device in devices:
            device.update_contacts()

        abs_error = max(device.get_abs_error() for device in devices)
        rel_error = max(device.get_rel_error() for device in devices)
        logger.info(
            f"Newton iteration {iteration}: abs_error={abs_error:.3e} "
            f"rel_error={rel_error:.3e} residual={residual_norm:.3e}"
        )

        if abs_error > config.max_update:
            logger.warning(f"Newton iteration {iteration}: update {abs_error:.3e} diverged")
            return _rollback(devices, config, iteration, abs_error, rel_error, residual_norm)

        if abs_error < config.abstol and rel_error < config.reltol:
            return NRResult(iteration, True, abs_error, rel_error, residual_norm)

    logger.warning(f"Newton solve did not converge in {config.max_iterations} iterations")
    return _rollback(
        devices, config, config.max_iterations, abs_error, rel_error, residual_norm
    )


def _rollback(
    devices: Sequence[Device],
    config: NRConfig,
    iterations: int,
    abs_error: float,
    rel_error: float,
    residual_norm: float,
) -> NRResult:
    for device in devices:
        device.restore_solutions(config.backup_tag)
    return NRResult(iterations, False, abs_error, rel_error, residual_norm)
