from __future__ import annotations

from enum import IntEnum, auto

import numpy as np

from wavegrid.solver import WaveSolver
from wavegrid.tiles import Tile, pallet_from_neighbors


class SimpleTileID(IntEnum):
    """Simple test tiles for solver tests."""

    A = 0
    B = auto()
    C = auto()


def create_gradient_pallet() -> list[Tile[str]]:
    """Create a simple pallet for testing.

    Adjacency rules:
    - A can be next to A and B (common base tile)
    - B can be next to A, B, and C (transition tile)
    - C can be next to B and C (rare tile)

    This creates a gradient: A <-> B <-> C where A and C cannot be directly
    adjacent. B fits everywhere, so this pallet never contradicts.
    """
    a_or_b = {SimpleTileID.A, SimpleTileID.B}
    any_tile = {SimpleTileID.A, SimpleTileID.B, SimpleTileID.C}
    b_or_c = {SimpleTileID.B, SimpleTileID.C}

    return pallet_from_neighbors(
        [
            {"N": a_or_b, "E": a_or_b, "S": a_or_b, "W": a_or_b},
            {"N": any_tile, "E": any_tile, "S": any_tile, "W": any_tile},
            {"N": b_or_c, "E": b_or_c, "S": b_or_c, "W": b_or_c},
        ],
        payloads=["grass", "dirt", "gravel"],
        weights=[3, 2, 1],
    )


def create_poison_pallet(poison_weight: int = 1000) -> list[Tile[str]]:
    """Two tiles where the heavy one always empties a horizontal neighbor.

    "poison" forbids every tile to its east and west. On a grid two cells
    wide every cell has a horizontal neighbor, so choosing poison anywhere is
    a contradiction. "safe" forbids nothing.
    """
    poison = Tile.allow_all(2, "poison", weight=poison_weight)
    for tile_id in range(2):
        poison.forbid(tile_id, 1, 0)
        poison.forbid(tile_id, -1, 0)
    safe = Tile.allow_all(2, "safe")
    return [poison, safe]


def violations(solver: WaveSolver) -> list[tuple[int, int, int, int]]:
    """Every (x, y, dx, dy) where a resolved tile forbids its resolved neighbor."""
    found = []
    r = solver.radius
    tiles = solver.collapsed_tiles()
    for x in range(solver.width):
        for y in range(solver.height):
            tile = solver.pallet[tiles[x][y]]
            for dx in range(-r, r + 1):
                for dy in range(-r, r + 1):
                    nx, ny = x + dx, y + dy
                    if not (0 <= nx < solver.width and 0 <= ny < solver.height):
                        continue
                    if tile.forbids(tiles[nx][ny], dx, dy):
                        found.append((x, y, dx, dy))
    return found


def is_fixed_point(solver: WaveSolver) -> bool:
    """True if applying the propagation rule once more would clear nothing."""
    r = solver.radius
    wave = solver.wave
    for x in range(solver.width):
        for y in range(solver.height):
            allowed = [i for i in range(solver.pallet_size) if wave[x, y, i]]
            if not allowed:
                continue
            combined = np.logical_and.reduce([solver.pallet[i].mask for i in allowed])
            for dx in range(-r, r + 1):
                for dy in range(-r, r + 1):
                    nx, ny = x + dx, y + dy
                    if not (0 <= nx < solver.width and 0 <= ny < solver.height):
                        continue
                    if (wave[nx, ny] & combined[dx + r, dy + r]).any():
                        return False
    return True
