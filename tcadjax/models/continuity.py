"""Continuity interface: one physical unknown shared by two regions."""

from typing import TYPE_CHECKING, List, Sequence, Tuple

from tcadjax._logging import logger
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
from tcadjax.structure.device import EQUATION_NUMBER_SIGNAL

if TYPE_CHECKING:
    from tcadjax.structure.interface import Interface

# (variable, row0, row1, node0, node1)
EquationPair = Tuple[str, int, int, int, int]


def _merge_entry(permutations: PermutationScope, row0: int, scale: float) -> PermutationEntry:
    """Entry sending region1's bulk row to wherever region0's row ends up."""
    claimed = permutations.get(row0)
    if claimed is None or claimed.keep_copy:
        return PermutationEntry(row=row0, scale=scale)
    logger.debug(f"Equation {row0} already claimed as {claimed}; merging onto its target")
    if claimed.row is None:
        return PermutationEntry(row=None)
    return PermutationEntry(row=claimed.row, scale=claimed.scale * scale)


class ContinuityInterfaceModel:
    """Merges region1's unknown into region0's at every shared node.

    region1's bulk equation is added onto region0's row (flux matching) and
    its own row is replaced by ``x1 - x0 = 0``. When an earlier pass already
    claimed region0's row (a contact on the shared node), the bulk equation
    follows that claim instead: it is dropped along with region0's when the
    row was eliminated, and moved to the same target when it was redirected.

    Args:
        variables: Region variables joined at the shared nodes
        flux_scale: Factor applied to region1's bulk equation before it is
            added to region0's row, e.g. the area ratio of the two sides
    """

    def __init__(self, variables: Sequence[str] = ("Potential",), flux_scale: float = 1.0):
        if not flux_scale:
            raise ValueError("flux_scale must be non-zero")
        self.variables = tuple(variables)
        self.flux_scale = float(flux_scale)

    def equation_pairs(self, interface: "Interface") -> List[EquationPair]:
        def compute() -> List[EquationPair]:
            r0, r1 = interface.regions
            return [
                (
                    variable,
                    r0.equation_number(variable, coord),
                    r1.equation_number(variable, coord),
                    r0.node_index(coord),
                    r1.node_index(coord),
                )
                for variable in self.variables
                for coord in interface.coordinates
            ]

        return interface.cached("equation_pairs", compute, depends_on=(EQUATION_NUMBER_SIGNAL,))

    def assemble(
        self,
        interface: "Interface",
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None:
        pairs = self.equation_pairs(interface)
        solutions = {
            v: (interface.region0.get_solution(v), interface.region1.get_solution(v))
            for v in self.variables
        }
        for variable, row0, row1, node0, node1 in pairs:
            permutations.register(row1, _merge_entry(permutations, row0, self.flux_scale))
            if time_mode is not TimeMode.DC:
                continue
            if what_to_load.loads_matrix:
                matrix.append(RowColVal(row1, row1, 1.0))
                matrix.append(RowColVal(row1, row0, -1.0))
            if what_to_load.loads_rhs:
                x0, x1 = solutions[variable]
                rhs.append(RHSEntry(row1, float(x1[node1] - x0[node0])))
