"""Exception types raised for fatal per-file conditions.

Recoverable anomalies (missing diagnostic positions, unpaired fragment halves)
are logged and counted instead of raised.
"""

from __future__ import annotations


class ContamCheckError(Exception):
    """Base class for fatal errors while checking one assembly."""


class InputValidationError(ContamCheckError, ValueError):
    """Raised when a reference or consensus sequence fails validation."""


class ReferenceAlignmentError(ContamCheckError):
    """Raised when contaminant and assembly consensus cannot be aligned."""

    def __init__(self, message: str, *, max_distance: int) -> None:
        super().__init__(message)
        self.max_distance = int(max_distance)


class TooFewDiagnosticPositionsError(ContamCheckError):
    """Raised when too few strongly diagnostic positions exist to be useful."""

    def __init__(self, message: str, *, n_strong: int, min_strong: int) -> None:
        super().__init__(message)
        self.n_strong = int(n_strong)
        self.min_strong = int(min_strong)
