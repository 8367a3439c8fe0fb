"""Assembly options with validation and dictionary parsing.

This module provides a centralized definition of the options that control how
a Device runs its assembly passes:
- Default values
- Type validation
- Parsing from plain dictionaries (e.g. a loaded settings file)

Example usage:
    options = AssemblyOptions(max_workers=4)
    options.validate_contributions = False
    device = Device("d1", 1, options=options)

    options.update_from_dict({"max_workers": "2", "profile": "yes"})
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict

from tcadjax.config import REL_ERROR_FLOOR

logger = logging.getLogger(__name__)


def _parse_bool(value: Any) -> bool:
    """Parse a boolean from various input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on")
    return bool(value)


@dataclass
class AssemblyOptions:
    """Options controlling Device assembly and update.

    Options are validated on assignment. Invalid values raise ValueError.
    """

    max_workers: int = 1
    """Threads used for the collaborator hooks of one pass. 1 runs them inline."""

    validate_contributions: bool = True
    """Check every collaborator's triplets/RHS for finite values and in-range indices."""

    rel_error_floor: float = REL_ERROR_FLOOR
    """Floor added to |x| in the relative update error."""

    profile: bool = False
    """Wrap each assembly pass in profile_section."""

    def __post_init__(self):
        """Validate all options after initialization."""
        self._validate_all()

    def __setattr__(self, name: str, value: Any) -> None:
        """Set attribute with validation."""
        if name == "max_workers" and value < 1:
            raise ValueError(f"max_workers must be >= 1, got {value}")
        if name == "rel_error_floor" and value <= 0:
            raise ValueError(f"rel_error_floor must be positive, got {value}")

        object.__setattr__(self, name, value)

    def _validate_all(self):
        """Validate all option values."""
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.rel_error_floor <= 0:
            raise ValueError(f"rel_error_floor must be positive, got {self.rel_error_floor}")

    def set(self, name: str, value: Any) -> None:
        """Set an option by name with validation.

        Args:
            name: Option name (e.g., 'max_workers')
            value: Option value (will be converted to appropriate type)

        Raises:
            ValueError: If option name is unknown or value is invalid
        """
        field_type = None
        for f in fields(self):
            if f.name == name:
                field_type = f.type
                break
        if field_type is None:
            raise ValueError(f"Unknown option: {name}")

        if field_type is float:
            value = float(value)
        elif field_type is int:
            value = int(value)
        elif field_type is bool:
            value = _parse_bool(value)

        setattr(self, name, value)
        self._validate_all()

    def update_from_dict(self, opts: Dict[str, Any]) -> None:
        """Update options from a dictionary of (possibly string) values.

        Unknown names are skipped with a warning so that settings shared with
        other tools do not break the device setup.
        """
        for opt_name, opt_value in opts.items():
            if not hasattr(self, opt_name):
                logger.warning(f"Ignoring unknown assembly option {opt_name}={opt_value}")
                continue
            self.set(opt_name, opt_value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert options to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def copy(self) -> "AssemblyOptions":
        """Create a copy of these options."""
        return AssemblyOptions(**self.to_dict())
