"""Tile rule definitions for the wave grid solver.

A tile carries a payload (whatever the caller wants the solved grid to hold,
for example a pixel value), a selection weight, and a rule mask.

The mask is a ``K x K x pallet_size`` boolean array. ``mask[i, j, tile_id]``
is True when ``tile_id`` is *forbidden* at the relative offset
``(i - K // 2, j - K // 2)`` from this tile. K must be odd so the kernel has a
center; the center cell is offset ``(0, 0)``.

Usage:
    from wavegrid.tiles import Tile

    grass = Tile.allow_all(2, "grass")
    water = Tile.allow_all(2, "water", weight=3)
    grass.disallow_direct(1)  # no water directly next to grass
    water.disallow_direct(0)

Hand-authored pallets can also be described by allowed neighbors per
direction, see ``pallet_from_neighbors``.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import Generic

import numpy as np

from wavegrid import config
from wavegrid.errors import WFCPreconditionError
from wavegrid.types import KernelOffset, T, TileId

# Direction utilities (y grows southwards)
DIRECTIONS = ["N", "E", "S", "W"]
OPPOSITE_DIR = {"N": "S", "E": "W", "S": "N", "W": "E"}
DIR_OFFSETS: dict[str, KernelOffset] = {
    "N": (0, -1),
    "E": (1, 0),
    "S": (0, 1),
    "W": (-1, 0),
}


def _validate_kernel_size(kernel_size: int) -> None:
    if kernel_size < 1 or kernel_size % 2 == 0:
        raise WFCPreconditionError(
            f"Kernel size must be a positive odd integer, got {kernel_size}"
        )


@dataclass(eq=False)
class Tile(Generic[T]):
    """A single tile type with its adjacency rules.

    Attributes:
        payload: Caller-defined data reported for cells resolved to this tile.
        mask: ``(K, K, pallet_size)`` bool array, True = forbidden neighbor.
        weight: Relative selection frequency (higher = more common).
    """

    payload: T
    mask: np.ndarray
    weight: int = config.DEFAULT_TILE_WEIGHT

    def __post_init__(self) -> None:
        self.mask = np.array(self.mask, dtype=bool)

        if self.mask.ndim != 3:
            raise WFCPreconditionError(
                f"Tile mask must be 3-dimensional, got shape {self.mask.shape}"
            )
        if self.mask.shape[0] != self.mask.shape[1]:
            raise WFCPreconditionError(
                f"Tile mask kernel must be square, got shape {self.mask.shape}"
            )
        _validate_kernel_size(self.mask.shape[0])

        if isinstance(self.weight, bool) or int(self.weight) != self.weight:
            raise WFCPreconditionError(
                f"Tile weight must be an integer, got {self.weight!r}"
            )
        self.weight = int(self.weight)
        if self.weight < 0:
            raise WFCPreconditionError(
                f"Tile weight must not be negative, got {self.weight}"
            )

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def allow_all(
        cls,
        size: int,
        payload: T,
        *,
        kernel_size: int = config.DIRECT_KERNEL_SIZE,
        weight: int = config.DEFAULT_TILE_WEIGHT,
    ) -> Tile[T]:
        """Create a tile that forbids nothing."""
        _validate_kernel_size(kernel_size)
        mask = np.zeros((kernel_size, kernel_size, size), dtype=bool)
        return cls(payload, mask, weight)

    @classmethod
    def disallow_all(
        cls,
        size: int,
        payload: T,
        *,
        kernel_size: int = config.DIRECT_KERNEL_SIZE,
        weight: int = config.DEFAULT_TILE_WEIGHT,
    ) -> Tile[T]:
        """Create a tile that forbids every tile at every offset.

        This includes the center. Call ``allow_center()`` before relaxing the
        rest of the mask, otherwise the tile cannot even coexist with itself.
        """
        _validate_kernel_size(kernel_size)
        mask = np.ones((kernel_size, kernel_size, size), dtype=bool)
        return cls(payload, mask, weight)

    # -------------------------------------------------------------------------
    # Shape
    # -------------------------------------------------------------------------

    @property
    def kernel_size(self) -> int:
        return self.mask.shape[0]

    @property
    def radius(self) -> int:
        return self.mask.shape[0] // 2

    @property
    def pallet_size(self) -> int:
        return self.mask.shape[2]

    def _index(self, dx: int, dy: int) -> tuple[int, int]:
        r = self.radius
        if not (-r <= dx <= r and -r <= dy <= r):
            raise WFCPreconditionError(
                f"Offset ({dx}, {dy}) is outside a kernel of radius {r}"
            )
        return dx + r, dy + r

    # -------------------------------------------------------------------------
    # Rule editing
    # -------------------------------------------------------------------------

    def disallow(self, tile_id: TileId) -> None:
        """Forbid ``tile_id`` at every kernel offset, the center included."""
        self.mask[:, :, tile_id] = True

    def disallow_direct(self, tile_id: TileId) -> None:
        """Forbid ``tile_id`` at the four orthogonal offsets only.

        Diagonals and the center are left as they are.
        """
        for dx, dy in DIR_OFFSETS.values():
            i, j = self._index(dx, dy)
            self.mask[i, j, tile_id] = True

    def allow_center(self) -> None:
        """Allow every tile at offset (0, 0).

        A collapsed cell projects its own mask onto itself, so a forbidden
        center would make the tile self-incompatible.
        """
        r = self.radius
        self.mask[r, r, :] = False

    def allow(self, tile_id: TileId, dx: int, dy: int) -> None:
        i, j = self._index(dx, dy)
        self.mask[i, j, tile_id] = False

    def forbid(self, tile_id: TileId, dx: int, dy: int) -> None:
        i, j = self._index(dx, dy)
        self.mask[i, j, tile_id] = True

    def forbids(self, tile_id: TileId, dx: int, dy: int) -> bool:
        """Return True if ``tile_id`` may not sit at offset (dx, dy)."""
        i, j = self._index(dx, dy)
        return bool(self.mask[i, j, tile_id])


def _verify_neighbors_symmetric(
    valid_neighbors: Sequence[Mapping[str, Collection[TileId]]],
) -> None:
    """Raise if a tile allows a neighbor that does not allow it back."""
    for tile_id, rules in enumerate(valid_neighbors):
        for direction in DIRECTIONS:
            opposite = OPPOSITE_DIR[direction]
            for neighbor_id in rules.get(direction, ()):
                if not (0 <= neighbor_id < len(valid_neighbors)):
                    raise WFCPreconditionError(
                        f"Tile {tile_id} allows unknown tile {neighbor_id} "
                        f"to {direction}"
                    )
                if tile_id not in valid_neighbors[neighbor_id].get(opposite, ()):
                    raise WFCPreconditionError(
                        f"Asymmetric adjacency: tile {tile_id} allows "
                        f"{neighbor_id} to {direction}, but {neighbor_id} "
                        f"does not allow {tile_id} to {opposite}"
                    )


def pallet_from_neighbors(
    valid_neighbors: Sequence[Mapping[str, Collection[TileId]]],
    payloads: Sequence[T],
    weights: Sequence[int] | None = None,
) -> list[Tile[T]]:
    """Build a 3x3-kernel pallet from per-direction neighbor sets.

    Args:
        valid_neighbors: For each tile, a dict mapping direction ("N", "E",
            "S", "W") to the tile ids that may be adjacent in that direction.
            A missing direction allows nothing there.
            Rules must be symmetric: if tile a allows b to the east, b must
            allow a to the west.
        payloads: Payload for each tile.
        weights: Selection weight for each tile. Defaults to 1 for all.

    Diagonal offsets are left unconstrained.

    Raises:
        WFCPreconditionError: If the lengths disagree, a rule names an unknown
            tile, or the rules are not symmetric.
    """
    size = len(valid_neighbors)
    if len(payloads) != size:
        raise WFCPreconditionError(
            f"Got {size} neighbor rules but {len(payloads)} payloads"
        )
    if weights is None:
        weights = [config.DEFAULT_TILE_WEIGHT] * size
    elif len(weights) != size:
        raise WFCPreconditionError(
            f"Got {size} neighbor rules but {len(weights)} weights"
        )

    _verify_neighbors_symmetric(valid_neighbors)

    pallet: list[Tile[T]] = []
    for rules, payload, weight in zip(valid_neighbors, payloads, weights, strict=True):
        tile = Tile.allow_all(size, payload, weight=weight)
        for direction in DIRECTIONS:
            allowed = rules.get(direction, ())
            dx, dy = DIR_OFFSETS[direction]
            for tile_id in range(size):
                if tile_id not in allowed:
                    tile.forbid(tile_id, dx, dy)
        pallet.append(tile)

    return pallet
