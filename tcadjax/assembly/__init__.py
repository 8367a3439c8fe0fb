"""Assembly value types shared by the Device and its collaborators."""

from tcadjax.assembly.modes import TimeMode, WhatToLoad
from tcadjax.assembly.permutation import (
    AssemblyPass,
    PermutationEntry,
    PermutationRegistry,
    PermutationScope,
    permutation_scales,
    permutation_vector,
    permute_entries,
)
from tcadjax.assembly.triplets import (
    MatrixEntries,
    RHSEntries,
    RHSEntry,
    RowColVal,
    find_invalid_entries,
)

__all__ = [
    "TimeMode",
    "WhatToLoad",
    "AssemblyPass",
    "PermutationEntry",
    "PermutationRegistry",
    "PermutationScope",
    "permutation_scales",
    "permutation_vector",
    "permute_entries",
    "MatrixEntries",
    "RHSEntries",
    "RHSEntry",
    "RowColVal",
    "find_invalid_entries",
]
