"""Exceptions raised by tcadjax.

All usage and consistency errors are fatal: they are raised immediately and
never retried or skipped.
"""


class TcadError(Exception):
    """Base class for all tcadjax errors."""


class InvalidStateError(TcadError, RuntimeError):
    """An operation was called before the state it depends on exists."""


class UnknownEntityError(TcadError, ValueError):
    """A region, contact, interface or coordinate is not known to the device."""


class DuplicateEntityError(TcadError, ValueError):
    """An entity with the same name (or the same object) was already registered."""


class SolutionSizeError(TcadError, ValueError):
    """A solved vector does not match the device equation count."""


class UnknownBackupError(TcadError, LookupError):
    """Restoring a tag that was never backed up."""


class AssemblyError(TcadError, RuntimeError):
    """A collaborator failed or produced an invalid contribution during assembly."""


class PermutationConflictError(AssemblyError):
    """Two owners claimed the same global equation index."""
