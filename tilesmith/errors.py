"""Exception hierarchy shared by the generators, the service layer and the CLI."""

from __future__ import annotations


class TilesmithError(Exception):
    """Base class for every failure this package reports on purpose."""


class DimensionError(TilesmithError, ValueError):
    """Raised for non-positive grid dimensions or a non-positive retry budget.

    Dimension errors are detected before any solve attempt starts and are
    never retried.
    """


class ConfigurationError(TilesmithError, ValueError):
    """Raised for malformed generator input.

    Covers seed configurations that reference cells outside the grid or that
    leave a cell without candidates, painted grids of the wrong shape, unknown
    tile values and out-of-range generator parameters.
    """


class ContradictionError(TilesmithError):
    """Raised when a cell runs out of candidate tiles.

    This happens either when the entropy selector finds an unresolved cell with
    an empty domain or when propagation empties a neighbor's domain. The solver
    catches it at the attempt boundary and starts a new attempt; it never
    reaches callers of ``solve``.
    """

    def __init__(self, message: str, position: tuple[int, int] | None = None):
        super().__init__(message)
        self.position = position


class SolveExhaustedError(TilesmithError):
    """Raised when every permitted solve attempt ended in a contradiction."""

    def __init__(self, attempts: int):
        super().__init__(f"WFC solve failed after {attempts} attempt(s)")
        self.attempts = attempts


class SolveCancelledError(TilesmithError):
    """Raised when the caller's cancellation signal was observed mid-solve."""

    def __init__(self, attempts: int):
        super().__init__(f"WFC solve cancelled during attempt {attempts}")
        self.attempts = attempts


class RequestError(TilesmithError, ValueError):
    """Raised when a generation request is rejected before any generator runs."""
