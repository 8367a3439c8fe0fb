"""Contact: boundary condition attached to one Region at specific nodes."""

from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Tuple

from tcadjax.assembly import MatrixEntries, PermutationScope, RHSEntries, TimeMode, WhatToLoad
from tcadjax.errors import UnknownEntityError
from tcadjax.structure.coordinate import Coordinate
from tcadjax.structure.region import Region

if TYPE_CHECKING:
    from tcadjax.models.base import ContactModel


def unique_coordinates(owner: str, coordinates: Sequence[Coordinate]) -> List[Coordinate]:
    """Drop repeated coordinates, keeping first-seen order."""
    seen = set()
    unique = []
    for coord in coordinates:
        if id(coord) not in seen:
            seen.add(id(coord))
            unique.append(coord)
    if not unique:
        raise ValueError(f"{owner} needs at least one coordinate")
    return unique


class Contact:
    """Boundary object bound to exactly one Region over a coordinate set.

    Contact-derived quantities (fluxes, charges) are recomputed by the model
    in ``update`` and kept in ``quantities``.
    """

    def __init__(
        self,
        name: str,
        region: Region,
        coordinates: Sequence[Coordinate],
        model: "ContactModel",
    ):
        if not name:
            raise ValueError("Contact name must be non-empty")
        self.name = name
        self.region = region
        self.model = model
        self._coordinates = unique_coordinates(f"Contact '{name}'", coordinates)
        for coord in self._coordinates:
            if not region.has_coordinate(coord):
                raise UnknownEntityError(
                    f"Contact '{name}': {coord} is not a node of region '{region.name}'"
                )
        self.quantities: Dict[str, Any] = {}

    @property
    def coordinates(self) -> Tuple[Coordinate, ...]:
        return tuple(self._coordinates)

    def assemble(
        self,
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None:
        self.model.assemble(self, matrix, rhs, permutations, what_to_load, time_mode)

    def update(self) -> None:
        self.model.update(self)

    def ac_excitation(self) -> List[Tuple[int, complex]]:
        return list(self.model.ac_excitation(self))

    def __repr__(self) -> str:
        return (
            f"Contact(name={self.name!r}, region={self.region.name!r}, "
            f"nodes={len(self._coordinates)})"
        )
