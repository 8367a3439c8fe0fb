"""Default configuration values for tcadjax.

This module centralizes numeric constants used throughout the package.
"""

# Floor added to |x| when computing the relative update error, so that
# unknowns sitting at zero do not divide by zero
REL_ERROR_FLOOR = 1.0e-10

# Newton defaults (reltol follows the SPICE convention)
DEFAULT_ABS_ERROR = 1.0e-10
DEFAULT_REL_ERROR = 1.0e-3
DEFAULT_MAX_ITERATIONS = 30

# Update norm above which a Newton step is treated as diverging
DEFAULT_MAX_UPDATE = 1.0e10

# Supported device dimensions
VALID_DIMENSIONS = (1, 2, 3)

# Boltzmann thermal voltage at 300K (V)
THERMAL_VOLTAGE_300K = 0.0258520
