"""Interface: coupling between two Regions at shared nodes."""

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from tcadjax.assembly import MatrixEntries, PermutationScope, RHSEntries, TimeMode, WhatToLoad
from tcadjax.errors import UnknownEntityError
from tcadjax.structure.contact import unique_coordinates
from tcadjax.structure.coordinate import Coordinate
from tcadjax.structure.region import Region

if TYPE_CHECKING:
    from tcadjax.models.base import InterfaceModel

logger = logging.getLogger(__name__)

InterfaceCallback = Callable[["Interface", str, Optional[Region]], None]


class Interface:
    """Coupling object bound to exactly two Regions over shared coordinates.

    Models may keep derived values in the interface cache (``cached``). When a
    quantity they depend on changes, ``signal_callbacks`` drops the cached
    value of that name and runs the callbacks registered for it.
    """

    def __init__(
        self,
        name: str,
        region0: Region,
        region1: Region,
        coordinates: Sequence[Coordinate],
        model: "InterfaceModel",
    ):
        if not name:
            raise ValueError("Interface name must be non-empty")
        if region0 is region1:
            raise ValueError(f"Interface '{name}' must join two different regions")
        self.name = name
        self.region0 = region0
        self.region1 = region1
        self.model = model
        self._coordinates = unique_coordinates(f"Interface '{name}'", coordinates)
        for coord in self._coordinates:
            for region in (region0, region1):
                if not region.has_coordinate(coord):
                    raise UnknownEntityError(
                        f"Interface '{name}': {coord} is not a node of region '{region.name}'"
                    )
        self._cache: Dict[str, Any] = {}
        self._dependents: Dict[str, Set[str]] = defaultdict(set)
        self._callbacks: Dict[str, List[InterfaceCallback]] = defaultdict(list)

    @property
    def coordinates(self) -> Tuple[Coordinate, ...]:
        return tuple(self._coordinates)

    @property
    def regions(self) -> Tuple[Region, Region]:
        return (self.region0, self.region1)

    def touches(self, region: Region) -> bool:
        return region is self.region0 or region is self.region1

    def cached(
        self, quantity: str, compute: Callable[[], Any], depends_on: Iterable[str] = ()
    ) -> Any:
        """Return the cached value of ``quantity``, computing it on first use.

        The value is also dropped when any quantity in ``depends_on`` is signalled.
        """
        for dependency in depends_on:
            self._dependents[dependency].add(quantity)
        if quantity not in self._cache:
            self._cache[quantity] = compute()
        return self._cache[quantity]

    def is_cached(self, quantity: str) -> bool:
        return quantity in self._cache

    def register_callback(self, quantity: str, callback: InterfaceCallback) -> None:
        self._callbacks[quantity].append(callback)

    def signal_callbacks(self, quantity: str, region: Optional[Region] = None) -> None:
        """Invalidate ``quantity`` and notify its callbacks."""
        self._cache.pop(quantity, None)
        for dependent in self._dependents.get(quantity, ()):
            self._cache.pop(dependent, None)
        for callback in self._callbacks.get(quantity, ()):
            callback(self, quantity, region)
        logger.debug(f"Interface '{self.name}': signalled '{quantity}'")

    def assemble(
        self,
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None:
        self.model.assemble(self, matrix, rhs, permutations, what_to_load, time_mode)

    def __repr__(self) -> str:
        return (
            f"Interface(name={self.name!r}, regions=({self.region0.name!r}, "
            f"{self.region1.name!r}), nodes={len(self._coordinates)})"
        )
