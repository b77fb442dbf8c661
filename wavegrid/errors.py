"""Exceptions raised by the wave grid package.

Two families are kept apart:

- Precondition errors are caller mistakes (bad dimensions, empty pallet,
  a sample smaller than the window). They are raised immediately.
- Contradictions are an expected outcome of solving. The solver recovers
  from them internally; the exceptions here are only raised by queries that
  need a fully collapsed grid, or by explicit user constraints.
"""

from __future__ import annotations


class WFCError(Exception):
    """Base class for every error raised by this package."""

    pass


class WFCPreconditionError(WFCError, ValueError):
    """Raised when the caller passes arguments the solver cannot work with."""

    pass


class ZeroWeightError(WFCPreconditionError):
    """Raised when the candidates at a selection point have no total weight.

    Weighted selection draws from ``[0, total_weight)``; an empty range has no
    valid draw, so this is reported instead of silently picking a tile.
    """

    pass


class WFCContradiction(WFCError):
    """Raised when a query needs a solved grid but a cell has no candidates.

    This occurs when constraint propagation eliminates all possibilities
    for a cell, meaning no valid solution exists with the current constraints.
    """

    def __init__(self, message: str, position: tuple[int, int] | None = None):
        super().__init__(message)
        self.position = position


class WFCIncomplete(WFCError):
    """Raised when a full-grid query runs before every cell is resolved."""

    pass


class StepBudgetExceeded(WFCError):
    """Raised when ``collapse(max_steps=...)`` runs out of steps."""

    def __init__(self, steps: int):
        super().__init__(f"Collapse did not finish within {steps} steps")
        self.steps = steps
