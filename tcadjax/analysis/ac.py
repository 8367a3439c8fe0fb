"""Small-signal AC analysis around a DC operating point.

For each frequency:
    (Jr + j*omega*Jc) x = b

Jr is the DC (resistive) Jacobian, Jc the TIME (reactive) Jacobian, both
assembled at the current operating point with the same permutations as the
DC solve. b collects the contacts' small-signal drive plus any extra
excitation. Each solution is handed back to the devices with ac_update.
"""

import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import jax.numpy as jnp
import numpy as np
from jax import Array

from tcadjax._logging import logger
from tcadjax.analysis.system import reactive_system, system_size
from tcadjax.structure import Device


@dataclass
class ACResult:
    """AC analysis results.

    Attributes:
        frequencies: Array of frequencies (Hz), shape (n_freqs,)
        solutions: Complex global solution per frequency, shape (n_freqs, n)
    """

    frequencies: Array
    solutions: Array


def collect_ac_excitation(
    devices: Sequence[Device], size: int, extra: Optional[Mapping[int, complex]] = None
) -> np.ndarray:
    """Global small-signal drive vector from contacts and ``extra``."""
    b = np.zeros(size, dtype=complex)
    for device in devices:
        for contact in device.contacts.values():
            for row, value in contact.ac_excitation():
                b[row] += value
    for row, value in (extra or {}).items():
        b[row] += value
    return b


def run_ac_analysis(
    devices: Sequence[Device],
    frequencies: Sequence[float],
    excitation: Optional[Mapping[int, complex]] = None,
) -> ACResult:
    """Solve the small-signal system at every frequency.

    The devices must already be numbered and hold a DC operating point.
    After the call every region holds the solution of the last frequency.
    """
    devices = list(devices)
    size = system_size(devices)
    Jr, Jc, _ = reactive_system(devices)
    b = jnp.asarray(collect_ac_excitation(devices, size, excitation))
    if not np.any(b):
        logger.warning("AC analysis without excitation; every solution will be zero")

    solutions = []
    for freq in frequencies:
        omega = 2.0 * math.pi * float(freq)
        A = Jr + 1j * omega * Jc
        x = jnp.linalg.solve(A, b)
        x_np = np.asarray(x)
        for device in devices:
            device.ac_update(x_np[: device.calc_max_equation_number()])
        solutions.append(x)
        logger.debug(f"AC: solved f={freq:g}Hz")

    return ACResult(
        frequencies=jnp.asarray(frequencies),
        solutions=jnp.stack(solutions) if solutions else jnp.zeros((0, size), dtype=complex),
    )
