from __future__ import annotations

from collections.abc import Hashable, Sequence
from typing import TypeVar

import numpy as np

T = TypeVar("T")

# =============================================================================
# SPATIAL TYPES
# =============================================================================

GridCoord = int  # Always integer cell position

# Grid positions are (x, y); x indexes the outer axis of every grid.
GridPos = tuple[GridCoord, GridCoord]  # Example: (5, 3) = cell 5,3

# Relative offset inside a rule kernel, centered on zero.
KernelOffset = tuple[int, int]  # Example: (-1, 0) = one cell west

# =============================================================================
# TILE TYPES
# =============================================================================

# Index into the pallet. Tile ids are list positions.
TileId = int

# Opaque per-tile data (pixel value, terrain enum, ...). Must be hashable so
# samples can be deduplicated.
Payload = Hashable

# Column-major payload grid: sample[x][y]. Numpy 2-D arrays are accepted too.
PayloadGrid = Sequence[Sequence[T]] | np.ndarray

# =============================================================================
# RANDOMNESS
# =============================================================================

# 64-bit seed forwarded to random.Random.
RandomSeed = int
