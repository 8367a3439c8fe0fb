"""Adjoint noise transfer analysis.

The noise contribution of a fluctuation injected into equation i is
observed at the output through one adjoint solve per frequency:

    (Jr + j*omega*Jc)^T y = e_out

y[r] is the transfer from a unit injection into assembled row r to the output
unknown. Region equations whose rows were redirected by the assembly land in
another row, scaled by their permutation entry, so the devices receive y
together with the registry's permutation vector and scales and read
scales[i] * y[permvec[i]] for their equation i. Eliminated equations
(permvec == -1) get zero.
"""

import math
from dataclasses import dataclass
from typing import Sequence

import jax.numpy as jnp
import numpy as np
from jax import Array

from tcadjax._logging import logger
from tcadjax.analysis.system import reactive_system, system_size
from tcadjax.assembly import permutation_scales, permutation_vector
from tcadjax.structure import Device


@dataclass
class NoiseResult:
    """Noise transfer results.

    Attributes:
        output_name: Name the transfer functions are stored under in the regions
        frequencies: Array of frequencies (Hz), shape (n_freqs,)
        transfer: Adjoint solution per frequency, shape (n_freqs, n)
        permutation: Row each equation was assembled into (-1 if eliminated)
        scales: Factor each equation was scaled by on its way to that row
    """

    output_name: str
    frequencies: Array
    transfer: Array
    permutation: np.ndarray
    scales: np.ndarray


def run_noise_analysis(
    devices: Sequence[Device],
    output_name: str,
    output_row: int,
    frequencies: Sequence[float],
) -> NoiseResult:
    """Compute the transfer of every equation to the unknown ``output_row``.

    The devices must already be numbered and hold a DC operating point.
    After the call every region holds the transfer of the last frequency
    under ``output_name``.
    """
    devices = list(devices)
    size = system_size(devices)
    if not 0 <= output_row < size:
        raise ValueError(f"Output row {output_row} outside [0, {size})")

    Jr, Jc, permutations = reactive_system(devices)
    permvec = permutation_vector(permutations, size)
    scales = permutation_scales(permutations, size)
    e_out = jnp.zeros(size, dtype=complex).at[output_row].set(1.0)

    transfers = []
    for freq in frequencies:
        omega = 2.0 * math.pi * float(freq)
        A = Jr + 1j * omega * Jc
        y = jnp.linalg.solve(A.T, e_out)
        y_np = np.asarray(y)
        for device in devices:
            n = device.calc_max_equation_number()
            device.noise_update(output_name, permvec[:n], y_np[:n], scales[:n])
        transfers.append(y)
        logger.debug(f"Noise '{output_name}': solved f={freq:g}Hz")

    return NoiseResult(
        output_name=output_name,
        frequencies=jnp.asarray(frequencies),
        transfer=jnp.stack(transfers) if transfers else jnp.zeros((0, size), dtype=complex),
        permutation=permvec,
        scales=scales,
    )
