from __future__ import annotations

import pytest

from tests.helpers import create_gradient_pallet
from wavegrid.tiles import Tile


@pytest.fixture
def gradient_pallet() -> list[Tile[str]]:
    return create_gradient_pallet()


@pytest.fixture
def open_pallet() -> list[Tile[str]]:
    """Two tiles that never forbid anything."""
    return [Tile.allow_all(2, "light"), Tile.allow_all(2, "dark")]
