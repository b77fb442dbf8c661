"""Overlapping model: derive a tile pallet from a sample grid.

Every ``W x W`` window of the sample becomes a pattern. Identical windows are
merged and counted, and two patterns may sit at an offset from each other
only if they agree on every cell where they overlap. Each pattern then
becomes a tile whose payload is the window's center value and whose weight is
the number of times the window occurred, so the output reproduces the local
structure and roughly the frequencies of the sample.

Usage:
    from wavegrid.overlapping import overlapping

    sample = [
        [0, 0, 0, 0],
        [0, 1, 1, 0],
        [0, 1, 1, 0],
        [0, 0, 0, 0],
    ]
    solver = overlapping(sample, width=24, height=24, mirror=True, seed=7)
    solver.collapse()
    pixels = solver.collapsed_payloads()

The sample is indexed ``sample[x][y]`` and is not wrapped: pad it yourself if
the output should tile seamlessly. Mirroring covers the two axis-aligned
flips (and their combination); rotations are not generated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Generic

import numpy as np

from wavegrid import config
from wavegrid.errors import WFCPreconditionError
from wavegrid.solver import WaveSolver
from wavegrid.tiles import Tile
from wavegrid.types import Payload, PayloadGrid, RandomSeed, T, TileId

logger = logging.getLogger(__name__)


@dataclass
class Pattern(Generic[T]):
    """A ``W x W`` window cut from the sample.

    Attributes:
        pixels: Window values, indexed ``pixels[x][y]``.
        count: How often the window occurs. Ignored when comparing patterns.
    """

    pixels: tuple[tuple[T, ...], ...]
    count: int = field(default=1, compare=False)

    @property
    def size(self) -> int:
        return len(self.pixels)

    @property
    def center(self) -> T:
        r = self.size // 2
        return self.pixels[r][r]

    def y_mirror(self) -> Pattern[T]:
        """Flip top to bottom. The copy keeps this pattern's count."""
        flipped = tuple(tuple(reversed(column)) for column in self.pixels)
        return Pattern(flipped, self.count)

    def x_mirror(self) -> Pattern[T]:
        """Flip left to right. The copy keeps this pattern's count."""
        return Pattern(tuple(reversed(self.pixels)), self.count)


def _validate_window(window: int) -> None:
    if window < 1 or window % 2 == 0:
        raise WFCPreconditionError(
            f"Window size must be a positive odd integer, got {window}"
        )


def _as_columns(sample: PayloadGrid[T]) -> list[list[T]]:
    """Normalize a sample to a rectangular list of columns."""
    if isinstance(sample, np.ndarray):
        if sample.ndim == 2:
            return sample.tolist()
        if sample.ndim == 3:
            # Treat the last axis as a channel vector, e.g. RGB pixels
            return [[tuple(pixel) for pixel in column] for column in sample.tolist()]
        raise WFCPreconditionError(
            f"Sample array must be 2- or 3-dimensional, got shape {sample.shape}"
        )

    columns = [list(column) for column in sample]
    if columns:
        height = len(columns[0])
        for x, column in enumerate(columns):
            if len(column) != height:
                raise WFCPreconditionError(
                    f"Sample is not rectangular: column {x} has {len(column)} "
                    f"cells, expected {height}"
                )
    return columns


def extract_patterns(sample: PayloadGrid[T], window: int) -> list[Pattern[T]]:
    """Cut one pattern per window position, each with a count of 1.

    Raises:
        WFCPreconditionError: If the sample is smaller than the window.
    """
    _validate_window(window)
    columns = _as_columns(sample)
    sample_width = len(columns)
    sample_height = len(columns[0]) if columns else 0
    if sample_width < window or sample_height < window:
        raise WFCPreconditionError(
            f"Sample of {sample_width}x{sample_height} is smaller than the "
            f"{window}x{window} window"
        )

    patterns: list[Pattern[T]] = []
    for x in range(sample_width - window + 1):
        for y in range(sample_height - window + 1):
            pixels = tuple(
                tuple(columns[x + i][y : y + window]) for i in range(window)
            )
            patterns.append(Pattern(pixels))
    return patterns


def deduplicate(patterns: list[Pattern[T]]) -> list[Pattern[T]]:
    """Merge identical windows, keeping first-seen order.

    The surviving pattern's count goes up by one for every duplicate dropped.
    Input patterns are not modified.
    """
    unique: dict[tuple[tuple[T, ...], ...], Pattern[T]] = {}
    for pattern in patterns:
        existing = unique.get(pattern.pixels)
        if existing is None:
            unique[pattern.pixels] = Pattern(pattern.pixels, pattern.count)
        else:
            existing.count += 1
    return list(unique.values())


def mirror_patterns(patterns: list[Pattern[T]]) -> list[Pattern[T]]:
    """Append vertical mirrors, then horizontal mirrors of everything so far.

    Mirroring the mirrors also yields the combined flip. The result usually
    contains duplicates; run it through ``deduplicate``.
    """
    mirrored = list(patterns)
    mirrored += [pattern.y_mirror() for pattern in mirrored]
    mirrored += [pattern.x_mirror() for pattern in mirrored]
    return mirrored


def find_compatible(patterns: list[Pattern[Payload]], window: int) -> np.ndarray:
    """Test every ordered pattern pair at every kernel offset.

    Returns:
        Bool array ``compatible[a, i, j, b]``: True when pattern ``b`` may sit
        at offset ``(i - (window - 1), j - (window - 1))`` from pattern ``a``,
        i.e. both agree wherever their windows overlap.
    """
    count = len(patterns)
    reach = window - 1
    kernel_size = 2 * window - 1

    # Compare small integer codes instead of arbitrary payload objects
    codes: dict[Payload, int] = {}
    encoded = np.array(
        [
            [
                [codes.setdefault(value, len(codes)) for value in column]
                for column in p.pixels
            ]
            for p in patterns
        ],
        dtype=np.int64,
    ).reshape(count, window, window)

    compatible = np.zeros((count, kernel_size, kernel_size, count), dtype=bool)
    for i in range(kernel_size):
        dx = i - reach
        # Cells of a covered by b shifted by dx, and the matching cells of b
        ax0, ax1 = max(0, dx), min(window, window + dx)
        bx0, bx1 = ax0 - dx, ax1 - dx
        for j in range(kernel_size):
            dy = j - reach
            ay0, ay1 = max(0, dy), min(window, window + dy)
            by0, by1 = ay0 - dy, ay1 - dy

            a_part = encoded[:, None, ax0:ax1, ay0:ay1]
            b_part = encoded[None, :, bx0:bx1, by0:by1]
            compatible[:, i, j, :] = (a_part == b_part).all(axis=(2, 3))

    return compatible


class PatternSynthesizer(Generic[T]):
    """Builds an overlapping-model pallet from a sample grid.

    Construction does all the work: extraction, deduplication, optional
    mirroring, and compatibility testing. Patterns and the neighbor table are
    kept for inspection; ``build_pallet`` and ``build_solver`` turn them into
    tiles.
    """

    def __init__(
        self,
        sample: PayloadGrid[T],
        window: int = config.DEFAULT_WINDOW_SIZE,
        mirror: bool = config.DEFAULT_MIRROR,
        *,
        debug: bool = False,
    ):
        """Analyze the sample.

        Args:
            sample: Payload grid indexed ``sample[x][y]``. Values must be
                hashable.
            window: Odd window size W. The pallet's kernel is ``2W - 1``.
            mirror: Also learn the axis-aligned mirrors of every window.
            debug: Log every pattern and its neighbor table at debug level.
        """
        _validate_window(window)
        self.window = window
        self.kernel_size = 2 * window - 1
        self.mirror = mirror

        extracted = extract_patterns(sample, window)
        patterns = deduplicate(extracted)
        if mirror:
            patterns = deduplicate(mirror_patterns(patterns))

        self.patterns: list[Pattern[T]] = patterns
        self.compatible = find_compatible(patterns, window)

        logger.info(
            f"Extracted {len(extracted)} windows of {window}x{window}, "
            f"{len(patterns)} unique patterns (mirror={mirror})"
        )
        if debug:
            self._log_patterns()

    def __len__(self) -> int:
        return len(self.patterns)

    def neighbors(self, pattern_id: TileId, dx: int, dy: int) -> list[TileId]:
        """Pattern ids that may sit at offset (dx, dy) from ``pattern_id``."""
        reach = self.window - 1
        if not (-reach <= dx <= reach and -reach <= dy <= reach):
            raise WFCPreconditionError(
                f"Offset ({dx}, {dy}) is outside a kernel of radius {reach}"
            )
        row = self.compatible[pattern_id, dx + reach, dy + reach]
        return [int(b) for b in np.flatnonzero(row)]

    def _log_patterns(self) -> None:
        reach = self.window - 1
        for idx, pattern in enumerate(self.patterns):
            logger.debug(f"-- PATTERN {idx} (count {pattern.count}) --")
            for column in pattern.pixels:
                logger.debug(f"  {list(column)}")
            for dx in range(-reach, reach + 1):
                for dy in range(-reach, reach + 1):
                    logger.debug(f"  ({dx}, {dy}): {self.neighbors(idx, dx, dy)}")

    def build_pallet(self) -> list[Tile[T]]:
        """One tile per pattern.

        Each tile starts fully forbidding, allows everything at its own
        position, then allows exactly the compatible patterns at each offset.
        """
        size = len(self.patterns)
        pallet: list[Tile[T]] = []
        for idx, pattern in enumerate(self.patterns):
            tile = Tile.disallow_all(
                size,
                pattern.center,
                kernel_size=self.kernel_size,
                weight=pattern.count,
            )
            tile.allow_center()
            tile.mask[self.compatible[idx]] = False
            pallet.append(tile)
        return pallet

    def build_solver(
        self,
        width: int,
        height: int,
        seed: RandomSeed = config.DEFAULT_SEED,
        **solver_options: Any,
    ) -> WaveSolver[T]:
        """Create a solver for a ``width x height`` output.

        Extra keyword arguments go to ``WaveSolver`` (``backtrack``,
        ``max_retries``, ``observer``).
        """
        return WaveSolver(self.build_pallet(), width, height, seed, **solver_options)


def overlapping(
    sample: PayloadGrid[T],
    width: int,
    height: int,
    window: int = config.DEFAULT_WINDOW_SIZE,
    mirror: bool = config.DEFAULT_MIRROR,
    seed: RandomSeed = config.DEFAULT_SEED,
    *,
    debug: bool = False,
    **solver_options: Any,
) -> WaveSolver[T]:
    """Build a ready-to-run solver for the overlapping model."""
    synthesizer = PatternSynthesizer(sample, window, mirror, debug=debug)
    return synthesizer.build_solver(width, height, seed, **solver_options)
