"""
Configuration constants.

Centralizes the default values used throughout the package.
Organized by functional area for easy maintenance.
"""

# =============================================================================
# RULE KERNELS
# =============================================================================

# Kernel diameter for hand-authored pallets (direct neighbors + diagonals).
DIRECT_KERNEL_SIZE = 3

# Weight given to tiles built by the Tile factory helpers.
DEFAULT_TILE_WEIGHT = 1

# =============================================================================
# OVERLAPPING MODEL
# =============================================================================

# Side length of the windows cut from the sample. Must be odd.
# The resulting pallet uses a kernel of 2 * DEFAULT_WINDOW_SIZE - 1.
DEFAULT_WINDOW_SIZE = 3

# Add axis-aligned mirrors of every sampled window.
DEFAULT_MIRROR = False

# =============================================================================
# SOLVER
# =============================================================================

DEFAULT_SEED = 0

# Output grids must be at least this wide and tall.
MIN_GRID_DIMENSION = 2

# Roll the grid back when a step runs into a contradiction.
DEFAULT_BACKTRACK = True

# Consecutive rollbacks allowed before the contradiction is left in place.
# None retries forever.
DEFAULT_MAX_RETRIES: int | None = None
