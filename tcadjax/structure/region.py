"""Region: a subdomain owning a contiguous block of equations.

Local equation layout is node-major: the equation of variable ``v`` at the
region's ``k``-th coordinate is ``k * len(variables) + v``. The Device adds a
base offset so the global range is ``[offset, offset + num_equations)``.

Solution state lives here, one numpy array per variable:
- DC solution, updated in place by every Newton step
- AC solution, the small-signal response around the DC point
- Noise solutions, one per named output quantity

Snapshots of the full state are kept by tag for BackupSolutions/RestoreSolutions.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from tcadjax.assembly import MatrixEntries, PermutationScope, RHSEntries, TimeMode, WhatToLoad
from tcadjax.config import REL_ERROR_FLOOR
from tcadjax.errors import InvalidStateError, UnknownBackupError, UnknownEntityError
from tcadjax.structure.coordinate import Coordinate

if TYPE_CHECKING:
    from tcadjax.models.base import RegionModel

logger = logging.getLogger(__name__)

CoordinateRef = Union[Coordinate, int]


@dataclass
class _SolutionState:
    dc: Dict[str, np.ndarray] = field(default_factory=dict)
    ac: Dict[str, np.ndarray] = field(default_factory=dict)
    noise: Dict[Tuple[str, str], np.ndarray] = field(default_factory=dict)
    dc_valid: bool = False


class Region:
    """Named subdomain with local unknowns and an assembly hook."""

    def __init__(self, name: str, coordinates: Sequence[Coordinate], model: "RegionModel"):
        if not name:
            raise ValueError("Region name must be non-empty")
        self.name = name
        self.model = model
        self.variables: Tuple[str, ...] = tuple(model.variables)
        if not self.variables:
            raise ValueError(f"Region '{name}': model declares no variables")

        self._coordinates: List[Coordinate] = []
        self._node_of: Dict[int, int] = {}  # id(coordinate) -> local node
        for coord in coordinates:
            if id(coord) in self._node_of:
                raise ValueError(f"Region '{name}': coordinate {coord} listed twice")
            self._node_of[id(coord)] = len(self._coordinates)
            self._coordinates.append(coord)

        self.device_name: Optional[str] = None
        self._offset: Optional[int] = None
        self._state = _SolutionState(
            dc={v: np.zeros(len(self._coordinates)) for v in self.variables}
        )
        self._backups: Dict[str, _SolutionState] = {}
        self.rel_error_floor = REL_ERROR_FLOOR
        self.abs_error = 0.0
        self.rel_error = 0.0

    # ------------------------------------------------------------------
    # Numbering
    # ------------------------------------------------------------------

    @property
    def coordinates(self) -> Tuple[Coordinate, ...]:
        return tuple(self._coordinates)

    @property
    def num_nodes(self) -> int:
        return len(self._coordinates)

    @property
    def num_equations(self) -> int:
        return len(self._coordinates) * len(self.variables)

    @property
    def offset(self) -> int:
        if self._offset is None:
            raise InvalidStateError(
                f"Region '{self.name}' has no equation numbers yet; "
                "call Device.set_base_equation_number first"
            )
        return self._offset

    @property
    def is_numbered(self) -> bool:
        return self._offset is not None

    def set_base_equation_number(self, offset: int) -> None:
        """Set the global index of this region's first equation (Device only)."""
        self._offset = int(offset)

    def has_coordinate(self, coordinate: Coordinate) -> bool:
        return id(coordinate) in self._node_of

    def node_index(self, coordinate: CoordinateRef) -> int:
        """Local node position of a coordinate (object or device index)."""
        if isinstance(coordinate, Coordinate):
            node = self._node_of.get(id(coordinate))
        else:
            node = next(
                (k for k, c in enumerate(self._coordinates) if c.index == coordinate), None
            )
        if node is None:
            raise UnknownEntityError(f"Coordinate {coordinate} is not in region '{self.name}'")
        return node

    def variable_index(self, variable: str) -> int:
        try:
            return self.variables.index(variable)
        except ValueError:
            raise UnknownEntityError(
                f"Variable '{variable}' is not solved in region '{self.name}'"
            ) from None

    def equation_number(self, variable: str, coordinate: CoordinateRef) -> int:
        """Global equation index of ``variable`` at ``coordinate``."""
        node = self.node_index(coordinate)
        return self.offset + node * len(self.variables) + self.variable_index(variable)

    def equation_numbers(self, variable: str) -> np.ndarray:
        """Global equation indices of ``variable`` at every node, in node order."""
        n_vars = len(self.variables)
        return self.offset + np.arange(self.num_nodes) * n_vars + self.variable_index(variable)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble(
        self,
        matrix: MatrixEntries,
        rhs: RHSEntries,
        permutations: PermutationScope,
        what_to_load: WhatToLoad,
        time_mode: TimeMode,
    ) -> None:
        self.model.assemble(self, matrix, rhs, permutations, what_to_load, time_mode)

    # ------------------------------------------------------------------
    # Solution state
    # ------------------------------------------------------------------

    @property
    def has_dc_solution(self) -> bool:
        return self._state.dc_valid

    def get_solution(self, variable: str) -> np.ndarray:
        self.variable_index(variable)
        return self._state.dc[variable].copy()

    def set_solution(self, variable: str, values) -> None:
        """Set the DC solution (initial guess or operating point) of one variable."""
        self.variable_index(variable)
        values = np.asarray(values, dtype=float)
        if values.ndim == 0:
            values = np.full(self.num_nodes, float(values))
        if values.shape != (self.num_nodes,):
            raise ValueError(
                f"Region '{self.name}': expected {self.num_nodes} values for "
                f"'{variable}', got shape {values.shape}"
            )
        self._state.dc[variable] = values.copy()
        self._state.dc_valid = True

    def get_ac_solution(self, variable: str) -> np.ndarray:
        self.variable_index(variable)
        if variable not in self._state.ac:
            raise InvalidStateError(f"Region '{self.name}' has no AC solution for '{variable}'")
        return self._state.ac[variable].copy()

    def get_noise_solution(self, output_name: str, variable: str) -> np.ndarray:
        self.variable_index(variable)
        key = (output_name, variable)
        if key not in self._state.noise:
            raise InvalidStateError(
                f"Region '{self.name}' has no noise solution for output '{output_name}'"
            )
        return self._state.noise[key].copy()

    def _local_block(self, result: np.ndarray) -> np.ndarray:
        block = result[self.offset : self.offset + self.num_equations]
        return block.reshape(self.num_nodes, len(self.variables))

    def update(self, result: np.ndarray) -> None:
        """Apply one Newton update: x <- x - result[own rows].

        Records the largest absolute update and the largest update relative
        to the new solution magnitude.
        """
        delta = self._local_block(result)
        abs_error = 0.0
        rel_error = 0.0
        for i, variable in enumerate(self.variables):
            d = delta[:, i]
            x = self._state.dc[variable] - d
            self._state.dc[variable] = x
            if d.size:
                abs_error = max(abs_error, float(np.max(np.abs(d))))
                rel_error = max(
                    rel_error, float(np.max(np.abs(d) / (np.abs(x) + self.rel_error_floor)))
                )
        self.abs_error = abs_error
        self.rel_error = rel_error
        self._state.dc_valid = True

    def _require_dc(self, analysis: str) -> None:
        if not self._state.dc_valid:
            raise InvalidStateError(
                f"Region '{self.name}' has no DC operating point; {analysis} needs one"
            )

    def ac_update(self, result: np.ndarray) -> None:
        """Store the small-signal response around the current DC point."""
        self._require_dc("AC analysis")
        block = self._local_block(result)
        for i, variable in enumerate(self.variables):
            self._state.ac[variable] = np.array(block[:, i], dtype=complex)

    def noise_update(
        self, output_name: str, permvec: np.ndarray, result: np.ndarray, scales: np.ndarray
    ) -> None:
        """Store the noise transfer of each own equation to ``output_name``.

        ``permvec`` maps every equation to the row its contributions were
        assembled into and ``scales`` to the factor they were multiplied by on
        the way; a negative entry means the equation was eliminated and
        receives zero.
        """
        self._require_dc("noise analysis")
        own = slice(self.offset, self.offset + self.num_equations)
        rows = permvec[own]
        moved = scales[own] * result[np.maximum(rows, 0)]
        values = np.where(rows >= 0, moved, 0.0).astype(complex)
        values = values.reshape(self.num_nodes, len(self.variables))
        for i, variable in enumerate(self.variables):
            self._state.noise[(output_name, variable)] = values[:, i].copy()

    def backup_solutions(self, tag: str) -> None:
        self._backups[tag] = copy.deepcopy(self._state)
        logger.debug(f"Region '{self.name}': backed up solutions as '{tag}'")

    def restore_solutions(self, tag: str) -> None:
        if tag not in self._backups:
            raise UnknownBackupError(f"Region '{self.name}' has no backup tagged '{tag}'")
        self._state = copy.deepcopy(self._backups[tag])
        logger.debug(f"Region '{self.name}': restored solutions from '{tag}'")

    def __repr__(self) -> str:
        return (
            f"Region(name={self.name!r}, nodes={self.num_nodes}, "
            f"variables={self.variables}, offset={self._offset})"
        )
