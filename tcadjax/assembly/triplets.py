"""Contribution records produced by assembly hooks.

A hook appends to two plain Python lists: RowColVal triplets for the global
sparse matrix and RHSEntry pairs for the right-hand side. Duplicate
(row, col) pairs are allowed and are summed when the system is built.
"""

import math
from typing import List, NamedTuple


class RowColVal(NamedTuple):
    """One real contribution to the global sparse matrix."""

    row: int
    col: int
    val: float


class RHSEntry(NamedTuple):
    """One contribution to the global right-hand side."""

    row: int
    val: float


MatrixEntries = List[RowColVal]
RHSEntries = List[RHSEntry]


def find_invalid_entries(matrix: MatrixEntries, rhs: RHSEntries, size: int) -> List[str]:
    """Describe every contribution that is non-finite or outside [0, size).

    Returns:
        Human-readable problem descriptions; empty when everything is valid.
    """
    problems = []
    for entry in matrix:
        if not (0 <= entry.row < size and 0 <= entry.col < size):
            problems.append(f"matrix entry ({entry.row}, {entry.col}) outside [0, {size})")
        elif not math.isfinite(entry.val):
            problems.append(f"matrix entry ({entry.row}, {entry.col}) is {entry.val}")
    for entry in rhs:
        if not 0 <= entry.row < size:
            problems.append(f"rhs entry {entry.row} outside [0, {size})")
        elif not math.isfinite(entry.val):
            problems.append(f"rhs entry {entry.row} is {entry.val}")
    return problems
