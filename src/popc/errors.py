"""
Exceptions raised by the POPC package.
"""


class PopcError(Exception):
    """Base class for POPC errors."""


class FormatError(PopcError, ValueError):
    """Dataset or partition input is malformed."""


class InvariantViolation(PopcError):
    """A dataset/cluster contract was broken by the caller (bad index, count mismatch)."""


class EmptyClusteringError(PopcError):
    """Refinement was requested with no live clusters."""
