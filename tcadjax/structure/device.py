"""Device: owner of Regions, Contacts, Interfaces and Coordinates.

A Device assigns every Region a contiguous range of global equation numbers,
drives the three assembly passes, fans solved vectors back out to its Regions
and aggregates their update errors for the outer Newton loop.

Lifecycle:
    1. Setup: add_coordinates, add_region, add_contact, add_interface
    2. Numbering: set_base_equation_number, calc_max_equation_number
    3. Assembly: contact_assemble -> interface_assemble -> region_assemble
       (or assemble() for all three)
    4. External solve
    5. Feedback: update / ac_update / noise_update, then update_contacts
    6. Optional backup_solutions / restore_solutions around risky steps

Entities are never removed once added. Equation numbers and the coordinate
reverse indices therefore stay valid for the lifetime of the Device.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from tcadjax._logging import logger
from tcadjax.assembly import (
    AssemblyPass,
    MatrixEntries,
    PermutationRegistry,
    PermutationScope,
    RHSEntries,
    TimeMode,
    WhatToLoad,
    find_invalid_entries,
    permute_entries,
)
from tcadjax.config import VALID_DIMENSIONS
from tcadjax.errors import (
    AssemblyError,
    DuplicateEntityError,
    InvalidStateError,
    PermutationConflictError,
    SolutionSizeError,
    UnknownBackupError,
    UnknownEntityError,
)
from tcadjax.options import AssemblyOptions
from tcadjax.profiling import profile_section
from tcadjax.structure.contact import Contact
from tcadjax.structure.coordinate import Coordinate
from tcadjax.structure.interface import Interface
from tcadjax.structure.region import Region

Collaborator = Union[Contact, Interface, Region]

# Interface cache entry invalidated whenever region equation numbers move
EQUATION_NUMBER_SIGNAL = "equation_number"


@dataclass
class AssemblyResult:
    """Output of one full Contact -> Interface -> Region assembly.

    Attributes:
        matrix: Triplets for the global sparse matrix (duplicates are summed)
        rhs: Right-hand side contributions
        permutations: Registry built by the passes
        size: Global system size (calc_max_equation_number of the last device)
    """

    matrix: MatrixEntries
    rhs: RHSEntries
    permutations: PermutationRegistry
    size: int


class Device:
    """Orchestrator of a spatially decomposed device model."""

    def __init__(self, name: str, dimension: int, options: Optional[AssemblyOptions] = None):
        if not name:
            raise ValueError("Device name must be non-empty")
        if dimension not in VALID_DIMENSIONS:
            raise ValueError(f"Device dimension must be one of {VALID_DIMENSIONS}, got {dimension}")
        self._name = name
        self._dimension = dimension
        self.options = options or AssemblyOptions()

        self._regions: Dict[str, Region] = {}
        self._contacts: Dict[str, Contact] = {}
        self._interfaces: Dict[str, Interface] = {}
        self._coordinates: List[Coordinate] = []

        # Coordinate index -> touching objects, in registration order
        self._coordinate_to_contact: Dict[int, List[Contact]] = {}
        self._coordinate_to_interface: Dict[int, List[Interface]] = {}

        self._base_equation_number: Optional[int] = None
        self._abs_error = 0.0
        self._rel_error = 0.0
        self._has_update = False
        self._backup_tags: List[str] = []
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def dimension(self) -> int:
        return self._dimension

    @contextmanager
    def _exclusive(self, operation: str):
        """Single-writer guard: a concurrent call from another thread is an error."""
        if not self._lock.acquire(blocking=False):
            raise InvalidStateError(
                f"Device '{self._name}': {operation} called while another operation is in flight"
            )
        try:
            yield
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def add_coordinate(self, coordinate: Coordinate) -> int:
        """Register a coordinate and assign its index.

        Returns:
            The coordinate's index within this device
        """
        with self._exclusive("add_coordinate"):
            if coordinate.index is not None:
                raise DuplicateEntityError(f"{coordinate} is already registered with a device")
            index = len(self._coordinates)
            coordinate._assign_index(index)
            self._coordinates.append(coordinate)
            return index

    def add_coordinates(self, coordinates: Sequence[Coordinate]) -> None:
        for coordinate in coordinates:
            self.add_coordinate(coordinate)
        logger.debug(f"Device '{self._name}': {len(self._coordinates)} coordinates registered")

    def _check_coordinate(self, coordinate: Coordinate, owner: str) -> int:
        index = coordinate.index
        if index is None or index >= len(self._coordinates) or self._coordinates[index] is not coordinate:
            raise UnknownEntityError(f"{owner}: {coordinate} is not a coordinate of device '{self._name}'")
        return index

    def _check_region(self, region: Region, owner: str) -> None:
        if self._regions.get(region.name) is not region:
            raise UnknownEntityError(f"{owner}: region '{region.name}' is not in device '{self._name}'")

    def add_region(self, region: Region) -> None:
        """Register a region. Its coordinates must already be registered."""
        with self._exclusive("add_region"):
            if region.name in self._regions:
                raise DuplicateEntityError(f"Device '{self._name}' already has region '{region.name}'")
            if region.device_name is not None:
                raise DuplicateEntityError(
                    f"Region '{region.name}' already belongs to device '{region.device_name}'"
                )
            for coordinate in region.coordinates:
                self._check_coordinate(coordinate, f"Region '{region.name}'")

            region.device_name = self._name
            region.rel_error_floor = self.options.rel_error_floor
            self._regions[region.name] = region
            logger.debug(
                f"Device '{self._name}': added region '{region.name}' "
                f"({region.num_equations} equations)"
            )
            if self._base_equation_number is not None:
                self._renumber()

    def add_contact(self, contact: Contact) -> None:
        """Register a contact on one of this device's regions."""
        with self._exclusive("add_contact"):
            if contact.name in self._contacts:
                raise DuplicateEntityError(f"Device '{self._name}' already has contact '{contact.name}'")
            owner = f"Contact '{contact.name}'"
            self._check_region(contact.region, owner)
            indices = [self._check_coordinate(c, owner) for c in contact.coordinates]

            self._contacts[contact.name] = contact
            for index in indices:
                self._coordinate_to_contact.setdefault(index, []).append(contact)
            logger.debug(
                f"Device '{self._name}': added contact '{contact.name}' on region "
                f"'{contact.region.name}' ({len(indices)} nodes)"
            )

    def add_interface(self, interface: Interface) -> None:
        """Register an interface between two of this device's regions."""
        with self._exclusive("add_interface"):
            if interface.name in self._interfaces:
                raise DuplicateEntityError(
                    f"Device '{self._name}' already has interface '{interface.name}'"
                )
            owner = f"Interface '{interface.name}'"
            self._check_region(interface.region0, owner)
            self._check_region(interface.region1, owner)
            indices = [self._check_coordinate(c, owner) for c in interface.coordinates]

            self._interfaces[interface.name] = interface
            for index in indices:
                self._coordinate_to_interface.setdefault(index, []).append(interface)
            logger.debug(
                f"Device '{self._name}': added interface '{interface.name}' between "
                f"'{interface.region0.name}' and '{interface.region1.name}' ({len(indices)} nodes)"
            )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def regions(self) -> Mapping[str, Region]:
        return MappingProxyType(self._regions)

    @property
    def contacts(self) -> Mapping[str, Contact]:
        return MappingProxyType(self._contacts)

    @property
    def interfaces(self) -> Mapping[str, Interface]:
        return MappingProxyType(self._interfaces)

    @property
    def coordinates(self) -> Tuple[Coordinate, ...]:
        return tuple(self._coordinates)

    def get_region(self, name: str) -> Region:
        try:
            return self._regions[name]
        except KeyError:
            raise UnknownEntityError(f"Device '{self._name}' has no region '{name}'") from None

    def get_contact(self, name: str) -> Contact:
        try:
            return self._contacts[name]
        except KeyError:
            raise UnknownEntityError(f"Device '{self._name}' has no contact '{name}'") from None

    def get_interface(self, name: str) -> Interface:
        try:
            return self._interfaces[name]
        except KeyError:
            raise UnknownEntityError(f"Device '{self._name}' has no interface '{name}'") from None

    @property
    def coordinate_index_to_contact(self) -> Mapping[int, Tuple[Contact, ...]]:
        """Coordinate index -> contacts touching it, in registration order."""
        return MappingProxyType({k: tuple(v) for k, v in self._coordinate_to_contact.items()})

    @property
    def coordinate_index_to_interface(self) -> Mapping[int, Tuple[Interface, ...]]:
        """Coordinate index -> interfaces touching it, in registration order."""
        return MappingProxyType({k: tuple(v) for k, v in self._coordinate_to_interface.items()})

    def get_number_of_contacts_on_coordinate(self, coordinate: Coordinate) -> int:
        index = self._check_coordinate(coordinate, "get_number_of_contacts_on_coordinate")
        return len(self._coordinate_to_contact.get(index, ()))

    def get_number_of_interfaces_on_coordinate(self, coordinate: Coordinate) -> int:
        index = self._check_coordinate(coordinate, "get_number_of_interfaces_on_coordinate")
        return len(self._coordinate_to_interface.get(index, ()))

    # ------------------------------------------------------------------
    # Numbering
    # ------------------------------------------------------------------

    def set_base_equation_number(self, base: int) -> None:
        """Set the global index of this device's first equation and renumber regions."""
        if int(base) != base or base < 0:
            raise ValueError(f"Base equation number must be a non-negative integer, got {base}")
        with self._exclusive("set_base_equation_number"):
            self._base_equation_number = int(base)
            self._renumber()

    def get_base_equation_number(self) -> int:
        if self._base_equation_number is None:
            raise InvalidStateError(
                f"Device '{self._name}': base equation number read before it was set"
            )
        return self._base_equation_number

    def calc_max_equation_number(self) -> int:
        """Base equation number plus the equation count of every region."""
        base = self.get_base_equation_number()
        return base + sum(region.num_equations for region in self._regions.values())

    def _renumber(self) -> None:
        offset = self._base_equation_number
        for region in self._regions.values():
            region.set_base_equation_number(offset)
            offset += region.num_equations
        logger.info(
            f"Device '{self._name}': equations [{self._base_equation_number}, {offset}) "
            f"over {len(self._regions)} regions"
        )
        for region in self._regions.values():
            self.signal_callbacks_on_interface(EQUATION_NUMBER_SIGNAL, region)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def contact_assemble(
        self,
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationRegistry,
        what_to_load: WhatToLoad = WhatToLoad.MATRIX_AND_RHS,
        time_mode: TimeMode = TimeMode.DC,
    ) -> None:
        """First pass: boundary rows and eliminations from every contact."""
        with self._exclusive("contact_assemble"):
            self._run_pass(
                AssemblyPass.CONTACT,
                list(self._contacts.values()),
                matrix,
                rhs,
                permutations,
                what_to_load,
                time_mode,
            )

    def interface_assemble(
        self,
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationRegistry,
        what_to_load: WhatToLoad = WhatToLoad.MATRIX_AND_RHS,
        time_mode: TimeMode = TimeMode.DC,
    ) -> None:
        """Second pass: coupling rows and merges from every interface."""
        with self._exclusive("interface_assemble"):
            self._run_pass(
                AssemblyPass.INTERFACE,
                list(self._interfaces.values()),
                matrix,
                rhs,
                permutations,
                what_to_load,
                time_mode,
            )

    def region_assemble(
        self,
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationRegistry,
        what_to_load: WhatToLoad = WhatToLoad.MATRIX_AND_RHS,
        time_mode: TimeMode = TimeMode.DC,
    ) -> None:
        """Third pass: bulk equations, redirected by the registered permutations."""
        with self._exclusive("region_assemble"):
            self._run_pass(
                AssemblyPass.REGION,
                list(self._regions.values()),
                matrix,
                rhs,
                permutations,
                what_to_load,
                time_mode,
            )

    def assemble(
        self,
        what_to_load: WhatToLoad = WhatToLoad.MATRIX_AND_RHS,
        time_mode: TimeMode = TimeMode.DC,
    ) -> AssemblyResult:
        """Run the Contact, Interface and Region passes into fresh buffers."""
        matrix: MatrixEntries = []
        rhs: RHSEntries = []
        permutations = PermutationRegistry()
        self.contact_assemble(matrix, rhs, permutations, what_to_load, time_mode)
        self.interface_assemble(matrix, rhs, permutations, what_to_load, time_mode)
        self.region_assemble(matrix, rhs, permutations, what_to_load, time_mode)
        return AssemblyResult(matrix, rhs, permutations, self.calc_max_equation_number())

    def _run_pass(
        self,
        assembly_pass: AssemblyPass,
        collaborators: Sequence[Collaborator],
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationRegistry,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None:
        size = self.calc_max_equation_number()
        permutations.begin_pass(assembly_pass)
        section_name = f"{self._name}.{assembly_pass.value}_assemble"
        section = profile_section(section_name) if self.options.profile else nullcontext()

        def run(collaborator: Collaborator) -> Tuple[MatrixEntries, RHSEntries, PermutationScope]:
            local_matrix: MatrixEntries = []
            local_rhs: RHSEntries = []
            scope = permutations.scope(f"{self._name}/{assembly_pass.value}/{collaborator.name}")
            try:
                collaborator.assemble(local_matrix, local_rhs, scope, what_to_load, time_mode)
            except AssemblyError:
                raise
            except Exception as e:
                raise AssemblyError(
                    f"Device '{self._name}': {assembly_pass.value} assembly of "
                    f"'{collaborator.name}' failed: {e}"
                ) from e
            return local_matrix, local_rhs, scope

        with section:
            if self.options.max_workers > 1 and len(collaborators) > 1:
                with ThreadPoolExecutor(max_workers=self.options.max_workers) as pool:
                    results = list(pool.map(run, collaborators))
            else:
                results = [run(collaborator) for collaborator in collaborators]

            n_matrix = len(matrix)
            n_rhs = len(rhs)
            for collaborator, (local_matrix, local_rhs, scope) in zip(collaborators, results):
                try:
                    permutations.merge(scope)
                except PermutationConflictError as e:
                    logger.error(f"Device '{self._name}': {e}")
                    raise

                if self.options.validate_contributions:
                    problems = find_invalid_entries(local_matrix, local_rhs, size)
                    if problems:
                        shown = "; ".join(problems[:5])
                        more = f" (+{len(problems) - 5} more)" if len(problems) > 5 else ""
                        raise AssemblyError(
                            f"Device '{self._name}': {assembly_pass.value} '{collaborator.name}' "
                            f"produced invalid contributions: {shown}{more}"
                        )

                if assembly_pass is AssemblyPass.REGION:
                    local_matrix, local_rhs = permute_entries(local_matrix, local_rhs, permutations)
                matrix.extend(local_matrix)
                rhs.extend(local_rhs)

        logger.debug(
            f"Device '{self._name}': {assembly_pass.value} pass added "
            f"{len(matrix) - n_matrix} triplets, {len(rhs) - n_rhs} rhs entries "
            f"({len(permutations)} permutation entries)"
        )

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def _check_vector(self, result, dtype, operation: str) -> np.ndarray:
        expected = self.calc_max_equation_number()
        if np.iscomplexobj(result) and dtype is float:
            raise TypeError(f"Device '{self._name}': {operation} expects a real vector")
        arr = np.asarray(result, dtype=dtype)
        if arr.ndim != 1 or arr.shape[0] != expected:
            raise SolutionSizeError(
                f"Device '{self._name}': {operation} expects a vector of length {expected}, "
                f"got shape {arr.shape}"
            )
        return arr

    def update(self, result) -> None:
        """Apply a real Newton update vector to every region."""
        with self._exclusive("update"):
            arr = self._check_vector(result, float, "update")
            abs_error = 0.0
            rel_error = 0.0
            for region in self._regions.values():
                region.update(arr)
                abs_error = max(abs_error, region.abs_error)
                rel_error = max(rel_error, region.rel_error)
            self._abs_error = abs_error
            self._rel_error = rel_error
            self._has_update = True
            logger.debug(
                f"Device '{self._name}': update abs_error={abs_error:.3e} rel_error={rel_error:.3e}"
            )

    def ac_update(self, result) -> None:
        """Store a complex small-signal solution in every region."""
        with self._exclusive("ac_update"):
            arr = self._check_vector(result, complex, "ac_update")
            for region in self._regions.values():
                region.ac_update(arr)

    def noise_update(self, output_name: str, permvec, result, scales=None) -> None:
        """Store a complex noise transfer solution tagged with ``output_name``.

        ``permvec`` undoes the permutation the assembly applied: region
        equation i reads ``scales[i] * result[permvec[i]]``, and -1 marks an
        eliminated equation. ``scales`` defaults to all ones.
        """
        with self._exclusive("noise_update"):
            arr = self._check_vector(result, complex, "noise_update")
            perm = np.asarray(permvec)
            if perm.ndim != 1 or perm.shape[0] != arr.shape[0]:
                raise SolutionSizeError(
                    f"Device '{self._name}': noise_update permutation vector has shape "
                    f"{perm.shape}, expected ({arr.shape[0]},)"
                )
            if not np.issubdtype(perm.dtype, np.integer):
                raise TypeError(f"Device '{self._name}': permutation vector must be integer")
            if perm.size and (perm.max() >= arr.shape[0] or perm.min() < -1):
                bad = perm.max() if perm.max() >= arr.shape[0] else perm.min()
                raise ValueError(
                    f"Device '{self._name}': permutation vector entry {bad} "
                    f"outside [-1, {arr.shape[0]})"
                )
            if scales is None:
                factors = np.ones(arr.shape[0])
            else:
                factors = np.asarray(scales, dtype=np.float64)
                if factors.shape != perm.shape:
                    raise SolutionSizeError(
                        f"Device '{self._name}': noise_update scales have shape "
                        f"{factors.shape}, expected {perm.shape}"
                    )
            for region in self._regions.values():
                region.noise_update(output_name, perm, arr, factors)

    def update_contacts(self) -> None:
        """Recompute contact-derived quantities from the latest region state."""
        with self._exclusive("update_contacts"):
            if not self._has_update:
                raise InvalidStateError(
                    f"Device '{self._name}': update_contacts called before any update"
                )
            for contact in self._contacts.values():
                contact.update()

    def get_abs_error(self) -> float:
        return self._abs_error

    def get_rel_error(self) -> float:
        return self._rel_error

    # ------------------------------------------------------------------
    # Backup / restore
    # ------------------------------------------------------------------

    def backup_solutions(self, tag: str) -> None:
        with self._exclusive("backup_solutions"):
            for region in self._regions.values():
                region.backup_solutions(tag)
            if tag not in self._backup_tags:
                self._backup_tags.append(tag)
            logger.debug(f"Device '{self._name}': backed up solutions as '{tag}'")

    def restore_solutions(self, tag: str) -> None:
        with self._exclusive("restore_solutions"):
            if tag not in self._backup_tags:
                raise UnknownBackupError(f"Device '{self._name}' has no backup tagged '{tag}'")
            for region in self._regions.values():
                region.restore_solutions(tag)
            logger.info(f"Device '{self._name}': restored solutions from '{tag}'")

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def signal_callbacks_on_interface(self, quantity: str, region: Union[Region, str]) -> None:
        """Tell every interface on ``region`` that ``quantity`` changed."""
        if isinstance(region, str):
            region = self.get_region(region)
        else:
            self._check_region(region, "signal_callbacks_on_interface")
        for interface in self._interfaces.values():
            if interface.touches(region):
                interface.signal_callbacks(quantity, region)

    def __repr__(self) -> str:
        return (
            f"Device(name={self._name!r}, dimension={self._dimension}, "
            f"regions={len(self._regions)}, contacts={len(self._contacts)}, "
            f"interfaces={len(self._interfaces)})"
        )
