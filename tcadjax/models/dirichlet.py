"""Fixed-value (ohmic) contact."""

from typing import TYPE_CHECKING, List, Tuple

from tcadjax.assembly import (
    MatrixEntries,
    PermutationEntry,
    PermutationScope,
    RHSEntries,
    RHSEntry,
    RowColVal,
    TimeMode,
    WhatToLoad,
)

if TYPE_CHECKING:
    from tcadjax.structure.contact import Contact


class DirichletContactModel:
    """Pins one region variable to ``value`` at every contact node.

    The region's own equation at each contact node is eliminated and replaced
    by ``x - value = 0``. ``update`` stores the flux that the eliminated bulk
    equation carried, i.e. the flux leaving the region through the contact.
    """

    def __init__(self, value: float, ac_magnitude: complex = 0.0, variable: str = "Potential"):
        self.value = float(value)
        self.ac_magnitude = complex(ac_magnitude)
        self.variable = variable

    def rows(self, contact: "Contact") -> List[int]:
        region = contact.region
        return [region.equation_number(self.variable, c) for c in contact.coordinates]

    def assemble(
        self,
        contact: "Contact",
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None:
        region = contact.region
        x = region.get_solution(self.variable)
        for coord, row in zip(contact.coordinates, self.rows(contact)):
            permutations.register(row, PermutationEntry(row=None))
            if time_mode is not TimeMode.DC:
                continue
            if what_to_load.loads_matrix:
                matrix.append(RowColVal(row, row, 1.0))
            if what_to_load.loads_rhs:
                rhs.append(RHSEntry(row, float(x[region.node_index(coord)]) - self.value))

    def update(self, contact: "Contact") -> None:
        region = contact.region
        residual = region.model.node_residual(region)
        nodes = [region.node_index(c) for c in contact.coordinates]
        contact.quantities["flux"] = float(sum(residual[k] for k in nodes))
        contact.quantities["value"] = self.value

    def ac_excitation(self, contact: "Contact") -> List[Tuple[int, complex]]:
        if self.ac_magnitude == 0:
            return []
        return [(row, self.ac_magnitude) for row in self.rows(contact)]
