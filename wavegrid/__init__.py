"""Wave Function Collapse grid generation.

This package provides:
- Tile: A tile type with a payload, a weight, and a forbidden-neighbor mask
- WaveSolver: Constraint-propagating solver with rollback on contradiction
- PatternSynthesizer / overlapping(): Build a pallet from a sample grid

Hand-authored pallets use a 3x3 kernel (see ``pallet_from_neighbors``);
pallets learned from a sample with window W use a ``2W - 1`` kernel.
"""

from .errors import (
    StepBudgetExceeded,
    WFCContradiction,
    WFCError,
    WFCIncomplete,
    WFCPreconditionError,
    ZeroWeightError,
)
from .overlapping import Pattern, PatternSynthesizer, overlapping
from .solver import (
    MAX_ENTROPY,
    CellStatus,
    SolverState,
    StepObserver,
    StepResult,
    WaveSolver,
)
from .tiles import DIR_OFFSETS, DIRECTIONS, OPPOSITE_DIR, Tile, pallet_from_neighbors

__all__ = [
    "DIRECTIONS",
    "DIR_OFFSETS",
    "MAX_ENTROPY",
    "OPPOSITE_DIR",
    "CellStatus",
    "Pattern",
    "PatternSynthesizer",
    "SolverState",
    "StepBudgetExceeded",
    "StepObserver",
    "StepResult",
    "Tile",
    "WFCContradiction",
    "WFCError",
    "WFCIncomplete",
    "WFCPreconditionError",
    "WaveSolver",
    "ZeroWeightError",
    "overlapping",
    "pallet_from_neighbors",
]
