"""Assembly mode selectors.

Two independent switches are passed to every assembly hook:

- WhatToLoad: whether matrix (Jacobian) terms, RHS (residual) terms or both
  are produced. A pure residual evaluation skips matrix work.
- TimeMode: DC loads the steady-state terms, TIME loads only the
  time-derivative (charge) terms. Transient integration and the reactive
  matrix of small-signal AC analysis are both built from TIME loads.
"""

from enum import Enum


class WhatToLoad(Enum):
    """Which parts of the linear system an assembly call produces."""

    MATRIX_ONLY = "matrix"
    RHS_ONLY = "rhs"
    MATRIX_AND_RHS = "matrix_and_rhs"

    @property
    def loads_matrix(self) -> bool:
        return self is not WhatToLoad.RHS_ONLY

    @property
    def loads_rhs(self) -> bool:
        return self is not WhatToLoad.MATRIX_ONLY

    @classmethod
    def from_string(cls, s: str) -> "WhatToLoad":
        """Parse a load selector from string."""
        s_lower = s.lower().strip().strip("\"'")
        aliases = {
            "matrix": cls.MATRIX_ONLY,
            "matrix_only": cls.MATRIX_ONLY,
            "jacobian": cls.MATRIX_ONLY,
            "rhs": cls.RHS_ONLY,
            "rhs_only": cls.RHS_ONLY,
            "residual": cls.RHS_ONLY,
            "both": cls.MATRIX_AND_RHS,
            "matrix_and_rhs": cls.MATRIX_AND_RHS,
        }
        if s_lower in aliases:
            return aliases[s_lower]
        raise ValueError(f"Unknown load selector: {s}. Supported: matrix, rhs, both")


class TimeMode(Enum):
    """Which terms of the equations an assembly call produces."""

    DC = "dc"
    TIME = "time"

    @classmethod
    def from_string(cls, s: str) -> "TimeMode":
        """Parse a time mode from string."""
        s_lower = s.lower().strip().strip("\"'")
        aliases = {
            "dc": cls.DC,
            "steady": cls.DC,
            "steady_state": cls.DC,
            "time": cls.TIME,
            "tran": cls.TIME,
            "transient": cls.TIME,
        }
        if s_lower in aliases:
            return aliases[s_lower]
        raise ValueError(f"Unknown time mode: {s}. Supported: dc, time")
