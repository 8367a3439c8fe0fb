"""Capability interfaces for physical models.

Regions, Contacts and Interfaces hold the bookkeeping (names, coordinates,
equation numbers, solution state); the physics is a separate model object
plugged into each of them. The Device dispatches the assembly hooks and the
model only has to satisfy one of these protocols. There is one model class
per physical model, no inheritance chain.

Every assembly hook has the same shape:

    assemble(owner, matrix, rhs, permutations, what_to_load, time_mode) -> None

``matrix`` and ``rhs`` are lists to append RowColVal / RHSEntry records to,
``permutations`` is the owner's PermutationScope. Hooks raise on invalid
references; the Device turns that into a fatal AssemblyError.
"""

from typing import TYPE_CHECKING, List, Protocol, Tuple, runtime_checkable

from tcadjax.assembly import MatrixEntries, PermutationScope, RHSEntries, TimeMode, WhatToLoad

if TYPE_CHECKING:
    from tcadjax.structure.contact import Contact
    from tcadjax.structure.interface import Interface
    from tcadjax.structure.region import Region


@runtime_checkable
class RegionModel(Protocol):
    """Bulk equations of a Region."""

    variables: Tuple[str, ...]

    def assemble(
        self,
        region: "Region",
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None: ...


@runtime_checkable
class ContactModel(Protocol):
    """Boundary condition applied by a Contact to its Region."""

    def assemble(
        self,
        contact: "Contact",
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None: ...

    def update(self, contact: "Contact") -> None:
        """Recompute contact-derived quantities from the latest Region state."""
        ...

    def ac_excitation(self, contact: "Contact") -> List[Tuple[int, complex]]:
        """Small-signal drive as (global row, value) pairs."""
        ...


@runtime_checkable
class InterfaceModel(Protocol):
    """Coupling between the two Regions of an Interface."""

    def assemble(
        self,
        interface: "Interface",
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None: ...
