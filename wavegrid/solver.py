"""Wave Function Collapse solver over a pallet of rule-masked tiles.

The solver takes any pallet of ``Tile`` objects (see ``wavegrid.tiles``) and
fills a ``width x height`` grid with tile ids so that no tile sits at an
offset its neighbor forbids.

Usage:
    from wavegrid.solver import WaveSolver

    solver = WaveSolver(pallet, width=32, height=32, seed=1234)
    solver.collapse()
    if solver.is_contradiction:
        ...  # inspect solver.partial_tiles() or retry with another seed
    grid = solver.collapsed_payloads()  # grid[x][y]

Algorithm:
    1. Every cell starts as a superposition of all tiles, then the rules are
       propagated from every cell once so the starting wave is consistent.
    2. Pick the open cell with the lowest entropy, scanning x then y, first
       minimum wins.
    3. Resolve it to one tile with roulette-wheel selection over the tile
       weights.
    4. Propagate: pop a cell from a worklist, AND together the masks of the
       tiles still possible there, clear the forbidden ids in every neighbor
       inside the kernel, and queue each neighbor that actually lost a
       candidate. Stop when the worklist is empty.
    5. If a cell loses its last candidate, undo everything the step changed
       and try again with a fresh draw.

Rollback uses a per-step journal of the superpositions a step touched, so a
retry costs only the cells that changed rather than a copy of the grid.

Known limitation: retries are not bounded by default. A ruleset that keeps
contradicting at the same cell can loop forever; pass ``max_retries`` to the
constructor or ``max_steps`` to ``collapse()`` when latency matters.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Generic, Protocol

import numpy as np

from wavegrid import config
from wavegrid.errors import (
    StepBudgetExceeded,
    WFCContradiction,
    WFCIncomplete,
    WFCPreconditionError,
    ZeroWeightError,
)
from wavegrid.tiles import Tile
from wavegrid.types import GridPos, RandomSeed, T, TileId

logger = logging.getLogger(__name__)

# Entropy reported for cells that cannot be selected (resolved or empty).
MAX_ENTROPY = math.inf


class SolverState(Enum):
    """Overall state of the wave."""

    OPEN = auto()  # Some cell still has several candidates, none has zero
    COLLAPSED = auto()  # Every cell has exactly one candidate
    CONTRADICTION = auto()  # At least one cell has no candidates


class CellStatus(Enum):
    """State of a single cell."""

    OPEN = auto()
    RESOLVED = auto()
    CONTRADICTION = auto()


@dataclass(frozen=True)
class StepResult:
    """Outcome of a single ``WaveSolver.step()``.

    Attributes:
        x: Column of the cell that was collapsed.
        y: Row of the cell that was collapsed.
        tile_id: The tile chosen for that cell.
        contradiction: True if propagation emptied a cell.
        rolled_back: True if the grid was restored to its pre-step state.
        contradiction_at: The first cell found empty, if any.
    """

    x: int
    y: int
    tile_id: TileId
    contradiction: bool = False
    rolled_back: bool = False
    contradiction_at: GridPos | None = None


class StepObserver(Protocol):
    """Receives a notification after every solver step.

    Observers are for inspection only (progress bars, animation frames).
    They must not modify the solver or draw from its random generator.
    """

    def on_step(self, solver: WaveSolver[Any], step: int, result: StepResult) -> None:
        """Called once the step has been fully applied (or rolled back)."""
        ...


class WaveSolver(Generic[T]):
    """Constraint-propagating Wave Function Collapse solver.

    The pallet is copied into stacked numpy arrays at construction, so editing
    the ``Tile`` objects afterwards has no effect on a running solver.
    """

    def __init__(
        self,
        pallet: Sequence[Tile[T]],
        width: int,
        height: int,
        seed: RandomSeed = config.DEFAULT_SEED,
        *,
        backtrack: bool = config.DEFAULT_BACKTRACK,
        max_retries: int | None = config.DEFAULT_MAX_RETRIES,
        observer: StepObserver | None = None,
    ):
        """Start every cell in full superposition and apply the pallet rules.

        Args:
            pallet: Tiles to place. Tile ids are positions in this sequence.
            width: Grid width in cells (at least 2).
            height: Grid height in cells (at least 2).
            seed: Seed for the solver's private random generator.
            backtrack: Roll back steps that run into a contradiction.
            max_retries: Consecutive rollbacks allowed before a contradiction
                is left in place. None retries indefinitely.
            observer: Optional read-only step observer.
        """
        if width < config.MIN_GRID_DIMENSION or height < config.MIN_GRID_DIMENSION:
            raise WFCPreconditionError(
                f"Grid must be at least {config.MIN_GRID_DIMENSION}x"
                f"{config.MIN_GRID_DIMENSION}, got {width}x{height}"
            )
        if len(pallet) == 0:
            raise WFCPreconditionError("Pallet must contain at least one tile")
        if max_retries is not None and max_retries < 0:
            raise WFCPreconditionError(
                f"max_retries must be non-negative, got {max_retries}"
            )

        size = len(pallet)
        kernel_size = pallet[0].kernel_size
        for tile_id, tile in enumerate(pallet):
            if tile.kernel_size != kernel_size:
                raise WFCPreconditionError(
                    f"Tile {tile_id} has kernel size {tile.kernel_size}, "
                    f"expected {kernel_size}"
                )
            if tile.pallet_size != size:
                raise WFCPreconditionError(
                    f"Tile {tile_id} mask covers {tile.pallet_size} tiles, "
                    f"but the pallet has {size}"
                )

        self.pallet: tuple[Tile[T], ...] = tuple(pallet)
        self.pallet_size = size
        self.kernel_size = kernel_size
        self.radius = kernel_size // 2
        self.width = width
        self.height = height
        self.seed = seed
        self.backtrack = backtrack
        self.max_retries = max_retries
        self.observer = observer
        self.rng = random.Random(seed)

        # masks[tile_id] is that tile's (K, K, pallet_size) forbidden mask
        self._masks = np.stack([tile.mask for tile in self.pallet])
        self._masks.flags.writeable = False
        self._weights = np.array([tile.weight for tile in self.pallet], dtype=np.int64)

        # Wave: bool per (x, y, tile_id). True = tile still possible here.
        self._wave = np.ones((width, height, size), dtype=bool)

        # Superpositions as they were before the current step touched them
        self._journal: dict[GridPos, np.ndarray] | None = None

        self.steps = 0
        self.retries = 0
        self._consecutive_retries = 0

        self._apply_initial_rules()

    def _apply_initial_rules(self) -> None:
        """Propagate from every cell once so the starting wave is consistent.

        Every cell starts with the full pallet, so each projects the same
        combined mask. If that mask forbids nothing the wave is already a
        fixed point and the grid walk is skipped.
        """
        if not np.logical_and.reduce(self._masks, axis=0).any():
            return

        cells = [(x, y) for x in range(self.width) for y in range(self.height)]
        failed_at = self._propagate(cells, stop_on_contradiction=False)
        if failed_at is not None:
            logger.warning(
                f"Pallet rules leave no valid tiles at {failed_at} "
                "before the first step"
            )

    def __repr__(self) -> str:
        return (
            f"WaveSolver({self.width}x{self.height}, pallet={self.pallet_size}, "
            f"kernel={self.kernel_size}, state={self.state.name})"
        )

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def wave(self) -> np.ndarray:
        """Read-only view of the ``(width, height, pallet_size)`` wave."""
        view = self._wave.view()
        view.flags.writeable = False
        return view

    def _counts(self) -> np.ndarray:
        return self._wave.sum(axis=2)

    @property
    def state(self) -> SolverState:
        counts = self._counts()
        if (counts == 0).any():
            return SolverState.CONTRADICTION
        if (counts == 1).all():
            return SolverState.COLLAPSED
        return SolverState.OPEN

    @property
    def is_done(self) -> bool:
        """True once no cell has more than one candidate.

        This is also True for a contradicted grid; check ``is_contradiction``
        to tell success from failure.
        """
        return bool((self._counts() <= 1).all())

    @property
    def is_contradiction(self) -> bool:
        return bool((self._counts() == 0).any())

    def _check_position(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise WFCPreconditionError(
                f"Cell ({x}, {y}) is outside the {self.width}x{self.height} grid"
            )

    def candidates(self, x: int, y: int) -> list[TileId]:
        """Tile ids still possible at (x, y), in pallet order."""
        self._check_position(x, y)
        return [int(i) for i in np.flatnonzero(self._wave[x, y])]

    def candidate_count(self, x: int, y: int) -> int:
        self._check_position(x, y)
        return int(self._wave[x, y].sum())

    def cell_status(self, x: int, y: int) -> CellStatus:
        count = self.candidate_count(x, y)
        if count == 0:
            return CellStatus.CONTRADICTION
        if count == 1:
            return CellStatus.RESOLVED
        return CellStatus.OPEN

    def resolved_tile(self, x: int, y: int) -> TileId | None:
        """The tile id at (x, y), or None if the cell is not resolved.

        Use ``cell_status`` to tell an empty cell from an open one.
        """
        candidates = self.candidates(x, y)
        if len(candidates) == 1:
            return candidates[0]
        return None

    def entropy(self, x: int, y: int) -> float:
        """Ranking value for cell selection, ``1 - 1/count``.

        Resolved and empty cells report ``MAX_ENTROPY`` so they are never
        selected again.
        """
        count = self.candidate_count(x, y)
        if count <= 1:
            return MAX_ENTROPY
        return 1.0 - 1.0 / count

    def lowest_entropy(self) -> GridPos | None:
        """Position of the open cell with the fewest candidates.

        Cells are scanned with x as the outer loop and y as the inner one, and
        the first cell with the minimum wins. Returns None if no cell is open.
        """
        counts = self._counts()
        open_cells = counts > 1
        if not open_cells.any():
            return None

        # Entropy is strictly increasing in the count, so ranking by count
        # picks the same cell. argmin walks C order and returns the first hit.
        ranked = np.where(open_cells, counts, np.iinfo(counts.dtype).max)
        x, y = divmod(int(np.argmin(ranked)), self.height)
        return x, y

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def partial_tiles(self) -> list[list[TileId | None]]:
        """Grid of resolved tile ids, None where a cell is open or empty."""
        return [
            [self.resolved_tile(x, y) for y in range(self.height)]
            for x in range(self.width)
        ]

    def _check_collapsed(self) -> None:
        counts = self._counts()
        empty = np.argwhere(counts == 0)
        if len(empty) > 0:
            x, y = (int(v) for v in empty[0])
            raise WFCContradiction(f"No valid tiles at ({x}, {y})", (x, y))
        open_cells = int((counts > 1).sum())
        if open_cells:
            raise WFCIncomplete(f"{open_cells} cells are not resolved yet")

    def collapsed_tiles(self) -> list[list[TileId]]:
        """Grid of tile ids, indexed ``[x][y]``.

        Raises:
            WFCContradiction: If any cell has no candidates.
            WFCIncomplete: If any cell still has several candidates.
        """
        self._check_collapsed()
        ids = np.argmax(self._wave, axis=2)
        return [[int(tile_id) for tile_id in column] for column in ids]

    def collapsed_payloads(self) -> list[list[T]]:
        """Grid of tile payloads, indexed ``[x][y]``.

        Raises the same errors as ``collapsed_tiles``.
        """
        return [
            [self.pallet[tile_id].payload for tile_id in column]
            for column in self.collapsed_tiles()
        ]

    # -------------------------------------------------------------------------
    # Solving
    # -------------------------------------------------------------------------

    def _record(self, x: int, y: int) -> None:
        if self._journal is not None and (x, y) not in self._journal:
            self._journal[(x, y)] = self._wave[x, y].copy()

    def _rollback(self, journal: dict[GridPos, np.ndarray]) -> None:
        for (x, y), superposition in journal.items():
            self._wave[x, y] = superposition

    def _can_roll_back(self) -> bool:
        if not self.backtrack:
            return False
        return self.max_retries is None or self._consecutive_retries < self.max_retries

    def _propagate(
        self, cells: Sequence[GridPos], stop_on_contradiction: bool
    ) -> GridPos | None:
        """Apply the rules outward from some cells until nothing changes.

        Returns the first cell emptied by propagation, or None. When
        ``stop_on_contradiction`` is set the worklist is abandoned at that
        point, leaving the wave half-updated for the caller to roll back.
        Otherwise propagation runs to its fixed point; empty cells forbid
        nothing, so the contradiction stays local.
        """
        r = self.radius
        stack = list(cells)
        in_stack = set(cells)
        first_empty: GridPos | None = None

        while stack:
            x, y = stack.pop()
            in_stack.discard((x, y))

            allowed = self._wave[x, y]
            if not allowed.any():
                continue

            # An id stays forbidden only if every remaining candidate forbids it
            combined = np.logical_and.reduce(self._masks[allowed], axis=0)

            # Clip the kernel to the grid
            x0, x1 = max(x - r, 0), min(x + r + 1, self.width)
            y0, y1 = max(y - r, 0), min(y + r + 1, self.height)
            kernel = combined[x0 - x + r : x1 - x + r, y0 - y + r : y1 - y + r]
            region = self._wave[x0:x1, y0:y1]

            hits = (region & kernel).any(axis=2)
            if not hits.any():
                continue

            changed = [(x0 + int(i), y0 + int(j)) for i, j in np.argwhere(hits)]
            for nx, ny in changed:
                self._record(nx, ny)

            region &= ~kernel

            for nx, ny in changed:
                if not self._wave[nx, ny].any():
                    if first_empty is None:
                        first_empty = (nx, ny)
                        if stop_on_contradiction:
                            return first_empty
                    continue
                if (nx, ny) not in in_stack:
                    stack.append((nx, ny))
                    in_stack.add((nx, ny))

        return first_empty

    def _select_tile(self, x: int, y: int) -> TileId:
        """Roulette-wheel selection over the candidates at (x, y)."""
        candidates = np.flatnonzero(self._wave[x, y])
        weights = self._weights[candidates]
        total_weight = int(weights.sum())
        if total_weight <= 0:
            raise ZeroWeightError(
                f"Candidates {candidates.tolist()} at ({x}, {y}) "
                "have zero total weight"
            )

        draw = self.rng.randrange(total_weight)
        # First candidate whose cumulative weight exceeds the draw
        index = int(np.searchsorted(np.cumsum(weights), draw, side="right"))
        return int(candidates[index])

    def step(self) -> StepResult:
        """Collapse the lowest-entropy cell and propagate the result.

        If propagation empties a cell and rollback is allowed, the grid is
        restored to its state before the step; the next step draws again.

        Raises:
            WFCPreconditionError: If no cell is open.
            ZeroWeightError: If the chosen cell's candidates weigh nothing.
        """
        position = self.lowest_entropy()
        if position is None:
            raise WFCPreconditionError("No open cells left to collapse")
        x, y = position

        tile_id = self._select_tile(x, y)
        can_roll_back = self._can_roll_back()

        self._journal = {}
        try:
            self._record(x, y)
            self._wave[x, y] = False
            self._wave[x, y, tile_id] = True
            contradiction_at = self._propagate([(x, y)], can_roll_back)
            journal = self._journal
        finally:
            self._journal = None

        self.steps += 1
        rolled_back = False

        if contradiction_at is None:
            self._consecutive_retries = 0
        elif can_roll_back:
            self._rollback(journal)
            rolled_back = True
            self.retries += 1
            self._consecutive_retries += 1
            logger.debug(
                f"Step {self.steps}: tile {tile_id} at ({x}, {y}) emptied "
                f"{contradiction_at}, rolled back"
            )
        else:
            self._consecutive_retries = 0
            if self.backtrack:
                logger.warning(
                    f"Step {self.steps}: retry budget of {self.max_retries} exhausted, "
                    f"leaving contradiction at {contradiction_at}"
                )
            else:
                logger.debug(
                    f"Step {self.steps}: tile {tile_id} at ({x}, {y}) emptied "
                    f"{contradiction_at}"
                )

        result = StepResult(
            x=x,
            y=y,
            tile_id=tile_id,
            contradiction=contradiction_at is not None,
            rolled_back=rolled_back,
            contradiction_at=contradiction_at,
        )

        if self.observer is not None:
            self.observer.on_step(self, self.steps, result)

        return result

    def collapse(self, max_steps: int | None = None) -> int:
        """Step until every cell is resolved or empty.

        Check ``is_contradiction`` afterwards to tell success from failure.

        Args:
            max_steps: Optional budget. None runs until done.

        Returns:
            The number of steps taken by this call.

        Raises:
            StepBudgetExceeded: If ``max_steps`` steps did not finish the grid.
        """
        count = 0
        while not self.is_done:
            if max_steps is not None and count >= max_steps:
                raise StepBudgetExceeded(count)
            self.step()
            count += 1

        logger.info(
            f"Collapse finished in {count} steps ({self.retries} rollbacks): "
            f"{self.state.name}"
        )
        return count

    def constrain_cell(self, x: int, y: int, allowed: Collection[TileId]) -> None:
        """Restrict a cell to a subset of tiles and propagate.

        Useful for boundary conditions or seeding specific tiles before
        solving. If propagation runs into a contradiction the constraint is
        undone before the error is raised.

        Raises:
            WFCPreconditionError: If ``allowed`` is empty or names unknown ids.
            WFCContradiction: If the constraint cannot be satisfied.
        """
        self._check_position(x, y)
        if not allowed:
            raise WFCPreconditionError(f"Constraint for ({x}, {y}) allows no tiles")

        mask = np.zeros(self.pallet_size, dtype=bool)
        for tile_id in allowed:
            if not (0 <= tile_id < self.pallet_size):
                raise WFCPreconditionError(
                    f"Tile id {tile_id} is not in a pallet of {self.pallet_size}"
                )
            mask[tile_id] = True

        old = self._wave[x, y]
        new = old & mask
        if not new.any():
            raise WFCContradiction(
                f"No valid tiles at ({x}, {y}) after constraint", (x, y)
            )
        if (new == old).all():
            return

        self._journal = {}
        try:
            self._record(x, y)
            self._wave[x, y] = new
            failed_at = self._propagate([(x, y)], stop_on_contradiction=True)
            journal = self._journal
        finally:
            self._journal = None

        if failed_at is not None:
            self._rollback(journal)
            raise WFCContradiction(
                f"Constraint at ({x}, {y}) leaves no valid tiles at {failed_at}",
                failed_at,
            )

    def constrain_cells(
        self, cells: Sequence[tuple[int, int, Collection[TileId]]]
    ) -> None:
        """Apply several ``constrain_cell`` calls in order."""
        for x, y, allowed in cells:
            self.constrain_cell(x, y, allowed)
