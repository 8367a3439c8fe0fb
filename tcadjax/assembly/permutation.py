"""Permutation registry for equation elimination and merging.

Regions are numbered in disjoint contiguous ranges and are never renumbered
when an Interface or Contact introduces a dependency between rows. Instead
the Contact/Interface registers a PermutationEntry for the affected global
row, describing where the Region's own contributions to that row go:

    PermutationEntry(row=r0)             move them to row r0 (merge)
    PermutationEntry(row=r0, scale=-1)   move them to row r0 with a sign flip
    PermutationEntry(row=None)           drop them (row is replaced)
    PermutationEntry(row=r0, keep_copy=True)
                                         add them to r0 and keep the original

The registry is an explicit accumulator threaded through the three assembly
passes (Contact -> Interface -> Region). Each global row may be claimed by a
single owner; a second owner claiming it, or the same owner claiming it with
a different entry, is a PermutationConflictError.

Collaborators never write to the registry directly: each one gets a
PermutationScope that sees everything registered so far plus its own new
entries, and the scopes are merged back in registration order once the
pass's hooks have run. This keeps the within-pass work independent (safe to
fan out) and the result deterministic.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from tcadjax._logging import logger
from tcadjax.assembly.triplets import MatrixEntries, RHSEntries, RHSEntry, RowColVal
from tcadjax.errors import AssemblyError, PermutationConflictError


class AssemblyPass(Enum):
    """The three assembly passes, in the order they must run."""

    CONTACT = "contact"
    INTERFACE = "interface"
    REGION = "region"


@dataclass(frozen=True)
class PermutationEntry:
    """How the Region contributions to one global row are redirected.

    Attributes:
        row: Target global row, or None to eliminate the contributions
        keep_copy: Also keep the contributions in the original row
        scale: Factor applied to the redirected contributions
    """

    row: Optional[int]
    keep_copy: bool = False
    scale: float = 1.0

    def __post_init__(self):
        if self.row is not None and self.row < 0:
            raise ValueError(f"Permutation target row must be >= 0, got {self.row}")
        if not math.isfinite(self.scale):
            raise ValueError(f"Permutation scale must be finite, got {self.scale}")

    @property
    def eliminates(self) -> bool:
        return self.row is None and not self.keep_copy


@dataclass(frozen=True)
class _Claim:
    entry: PermutationEntry
    owner: str
    assembly_pass: Optional[AssemblyPass]


def _check_claim(row: int, existing: _Claim, entry: PermutationEntry, owner: str) -> None:
    if existing.owner == owner and existing.entry == entry:
        return
    where = f" during the {existing.assembly_pass.value} pass" if existing.assembly_pass else ""
    raise PermutationConflictError(
        f"Equation {row} was already claimed by '{existing.owner}'{where} "
        f"({existing.entry}); '{owner}' tried to register {entry}"
    )


class PermutationRegistry(Mapping[int, PermutationEntry]):
    """Accumulating map from global equation index to PermutationEntry."""

    def __init__(self):
        self._claims: Dict[int, _Claim] = {}
        self._pass: Optional[AssemblyPass] = None

    @property
    def current_pass(self) -> Optional[AssemblyPass]:
        return self._pass

    def begin_pass(self, assembly_pass: AssemblyPass) -> None:
        """Mark the start of an assembly pass; new claims are tagged with it.

        Passes run Contact -> Interface -> Region. A pass may be repeated (one
        call per device) but never started before the pass preceding it.

        Raises:
            AssemblyError: If the pass is out of order.
        """
        order = list(AssemblyPass)
        allowed = (
            {AssemblyPass.CONTACT}
            if self._pass is None
            else {self._pass, *order[order.index(self._pass) + 1 : order.index(self._pass) + 2]}
        )
        if assembly_pass not in allowed:
            current = self._pass.value if self._pass else "none"
            raise AssemblyError(
                f"Cannot start the {assembly_pass.value} pass after the {current} pass; "
                "passes run contact -> interface -> region"
            )
        self._pass = assembly_pass

    def register(self, row: int, entry: PermutationEntry, owner: str) -> None:
        """Claim ``row`` for ``owner``.

        Raises:
            PermutationConflictError: If another owner already holds the row or
                the same owner registered a different entry for it.
        """
        row = int(row)
        existing = self._claims.get(row)
        if existing is not None:
            _check_claim(row, existing, entry, owner)
            return
        self._claims[row] = _Claim(entry, owner, self._pass)

    def check(self, row: int, entry: PermutationEntry, owner: str) -> None:
        """Raise if registering ``entry`` for ``row`` would conflict."""
        existing = self._claims.get(int(row))
        if existing is not None:
            _check_claim(int(row), existing, entry, owner)

    def owner_of(self, row: int) -> Optional[str]:
        claim = self._claims.get(row)
        return claim.owner if claim else None

    def pass_of(self, row: int) -> Optional[AssemblyPass]:
        claim = self._claims.get(row)
        return claim.assembly_pass if claim else None

    def scope(self, owner: str) -> "PermutationScope":
        """Create the accumulator handed to one collaborator's assembly hook."""
        return PermutationScope(self, owner)

    def merge(self, scope: "PermutationScope") -> None:
        """Fold a collaborator's new entries into the registry."""
        for row, entry in scope.new_entries.items():
            self.register(row, entry, scope.owner)

    def __getitem__(self, row: int) -> PermutationEntry:
        return self._claims[row].entry

    def __iter__(self) -> Iterator[int]:
        return iter(self._claims)

    def __len__(self) -> int:
        return len(self._claims)

    def __repr__(self) -> str:
        return f"PermutationRegistry({len(self)} entries, pass={self._pass})"


class PermutationScope(Mapping[int, PermutationEntry]):
    """Per-collaborator view of a PermutationRegistry.

    Reads see the registry plus this scope's own entries; writes stay local
    until PermutationRegistry.merge().
    """

    def __init__(self, registry: PermutationRegistry, owner: str):
        self._registry = registry
        self.owner = owner
        self._local: Dict[int, PermutationEntry] = {}

    @property
    def new_entries(self) -> Dict[int, PermutationEntry]:
        return self._local

    def register(self, row: int, entry: PermutationEntry) -> None:
        """Register ``entry`` for ``row`` on behalf of this scope's owner."""
        row = int(row)
        self._registry.check(row, entry, self.owner)
        local = self._local.get(row)
        if local is not None and local != entry:
            raise PermutationConflictError(
                f"'{self.owner}' registered two different entries for equation {row}: "
                f"{local} and {entry}"
            )
        self._local[row] = entry

    def __getitem__(self, row: int) -> PermutationEntry:
        if row in self._local:
            return self._local[row]
        return self._registry[row]

    def __iter__(self) -> Iterator[int]:
        yield from self._registry
        for row in self._local:
            if row not in self._registry:
                yield row

    def __len__(self) -> int:
        return len(self._registry) + sum(1 for row in self._local if row not in self._registry)


def permute_entries(
    matrix: MatrixEntries,
    rhs: RHSEntries,
    permutations: Mapping[int, PermutationEntry],
) -> Tuple[MatrixEntries, RHSEntries]:
    """Apply the permutation entries to a batch of contributions.

    Rows without an entry pass through unchanged. Columns are never permuted:
    the unknowns keep their own global numbers.
    """
    if not permutations:
        return list(matrix), list(rhs)

    out_matrix: List[RowColVal] = []
    for entry in matrix:
        perm = permutations.get(entry.row)
        if perm is None:
            out_matrix.append(entry)
            continue
        if perm.row is not None:
            out_matrix.append(RowColVal(perm.row, entry.col, perm.scale * entry.val))
        if perm.keep_copy:
            out_matrix.append(entry)

    out_rhs: List[RHSEntry] = []
    for entry in rhs:
        perm = permutations.get(entry.row)
        if perm is None:
            out_rhs.append(entry)
            continue
        if perm.row is not None:
            out_rhs.append(RHSEntry(perm.row, perm.scale * entry.val))
        if perm.keep_copy:
            out_rhs.append(entry)

    return out_matrix, out_rhs


def permutation_vector(permutations: Mapping[int, PermutationEntry], size: int) -> np.ndarray:
    """Concrete row mapping for noise analysis.

    Element i is the row that equation i's contributions end up in after
    permutation: i itself when unclaimed, the target row when redirected, and
    -1 when eliminated.

    Raises:
        AssemblyError: If an entry lies outside the system or splits an
            equation over two rows (a redirect that also keeps a copy).
    """
    permvec = np.arange(size, dtype=np.int64)
    for row, entry in permutations.items():
        _check_noise_entry(row, entry, size)
        permvec[row] = entry.row if entry.row is not None else (row if entry.keep_copy else -1)
    logger.debug(f"Built permutation vector of size {size} from {len(permutations)} entries")
    return permvec


def permutation_scales(permutations: Mapping[int, PermutationEntry], size: int) -> np.ndarray:
    """Factor each equation's contributions were multiplied by on redirect.

    Companion of permutation_vector(): a unit injection into equation i shows
    up as ``scales[i]`` in row ``permvec[i]``. Unclaimed and kept equations
    have scale 1, eliminated ones 0.
    """
    scales = np.ones(size, dtype=np.float64)
    for row, entry in permutations.items():
        _check_noise_entry(row, entry, size)
        if entry.row is not None:
            scales[row] = entry.scale
        elif not entry.keep_copy:
            scales[row] = 0.0
    return scales


def _check_noise_entry(row: int, entry: PermutationEntry, size: int) -> None:
    if row >= size:
        raise AssemblyError(f"Permutation entry for equation {row} outside [0, {size})")
    if entry.row is not None and entry.keep_copy:
        raise AssemblyError(
            f"Equation {row} is split over rows {row} and {entry.row}; "
            "its noise transfer cannot be read from a single row"
        )
