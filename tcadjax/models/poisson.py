"""1-D finite-volume Poisson equation for a Region.

Nodes are the region's coordinates sorted along x. Each pair of neighbours
forms an edge of length h with conductance g = permittivity / h; each node
owns half of its adjacent edges as control volume. The residual at node k is

    f_k = sum_edges g * (psi_k - psi_j) - V_k * rho(psi_k)

    rho(psi) = charge_density - 2 * intrinsic_density * sinh(psi / thermal_voltage)

With intrinsic_density == 0 the problem is linear. In TIME mode the region
loads only its charge q_k = capacitance * V_k * psi_k.
"""

from typing import TYPE_CHECKING, Tuple

import numpy as np

from tcadjax.assembly import (
    MatrixEntries,
    PermutationScope,
    RHSEntries,
    RHSEntry,
    RowColVal,
    TimeMode,
    WhatToLoad,
)
from tcadjax.config import THERMAL_VOLTAGE_300K

if TYPE_CHECKING:
    from tcadjax.structure.region import Region


class PoissonRegionModel:
    """Electrostatic potential in a 1-D region."""

    def __init__(
        self,
        permittivity: float = 1.0,
        charge_density: float = 0.0,
        intrinsic_density: float = 0.0,
        thermal_voltage: float = THERMAL_VOLTAGE_300K,
        capacitance: float = 0.0,
        variable: str = "Potential",
    ):
        if permittivity <= 0:
            raise ValueError(f"permittivity must be positive, got {permittivity}")
        if thermal_voltage <= 0:
            raise ValueError(f"thermal_voltage must be positive, got {thermal_voltage}")
        self.permittivity = permittivity
        self.charge_density = charge_density
        self.intrinsic_density = intrinsic_density
        self.thermal_voltage = thermal_voltage
        self.capacitance = capacitance
        self.variable = variable
        self.variables: Tuple[str, ...] = (variable,)

    def edges(self, region: "Region") -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Edge endpoints (local nodes), edge lengths and node volumes."""
        xs = np.array([c.x for c in region.coordinates], dtype=float)
        order = np.argsort(xs, kind="stable")
        a, b = order[:-1], order[1:]
        h = xs[b] - xs[a]
        if np.any(h <= 0):
            raise ValueError(f"Region '{region.name}' has coincident nodes along x")
        volume = np.zeros(len(xs))
        np.add.at(volume, a, 0.5 * h)
        np.add.at(volume, b, 0.5 * h)
        return a, b, h, volume

    def _space_charge(self, psi: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """rho(psi) and d rho / d psi."""
        if self.intrinsic_density == 0.0:
            return np.full_like(psi, self.charge_density), np.zeros_like(psi)
        u = psi / self.thermal_voltage
        rho = self.charge_density - 2.0 * self.intrinsic_density * np.sinh(u)
        drho = -2.0 * self.intrinsic_density * np.cosh(u) / self.thermal_voltage
        return rho, drho

    def node_residual(self, region: "Region") -> np.ndarray:
        """DC residual at every node (net flux leaving minus enclosed charge)."""
        psi = region.get_solution(self.variable)
        a, b, h, volume = self.edges(region)
        flux = self.permittivity / h * (psi[a] - psi[b])
        f = np.zeros(region.num_nodes)
        np.add.at(f, a, flux)
        np.add.at(f, b, -flux)
        rho, _ = self._space_charge(psi)
        return f - volume * rho

    def assemble(
        self,
        region: "Region",
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None:
        rows = region.equation_numbers(self.variable)
        psi = region.get_solution(self.variable)
        a, b, h, volume = self.edges(region)

        if time_mode is TimeMode.TIME:
            if self.capacitance == 0.0:
                return
            c = self.capacitance * volume
            if what_to_load.loads_matrix:
                for k, row in enumerate(rows):
                    matrix.append(RowColVal(int(row), int(row), float(c[k])))
            if what_to_load.loads_rhs:
                for k, row in enumerate(rows):
                    rhs.append(RHSEntry(int(row), float(c[k] * psi[k])))
            return

        if what_to_load.loads_matrix:
            g = self.permittivity / h
            for e in range(len(h)):
                ra, rb, ge = int(rows[a[e]]), int(rows[b[e]]), float(g[e])
                matrix.append(RowColVal(ra, ra, ge))
                matrix.append(RowColVal(ra, rb, -ge))
                matrix.append(RowColVal(rb, rb, ge))
                matrix.append(RowColVal(rb, ra, -ge))
            _, drho = self._space_charge(psi)
            extra = -volume * drho
            for k, row in enumerate(rows):
                if extra[k] != 0.0:
                    matrix.append(RowColVal(int(row), int(row), float(extra[k])))

        if what_to_load.loads_rhs:
            f = self.node_residual(region)
            for k, row in enumerate(rows):
                rhs.append(RHSEntry(int(row), float(f[k])))
