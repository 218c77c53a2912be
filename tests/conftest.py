from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
import taichi as ti

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from engine import init_backend, LifeEngine


@pytest.fixture(scope="session", autouse=True)
def taichi_cpu() -> None:
    # CPU keeps the suite runnable on machines without a GPU. Bounds checks make
    # an out-of-range write fail loudly; full debug mode is avoided because its
    # integer overflow checks would trip on the wrapping u32 hash.
    init_backend("cpu", check_out_of_bound=True, random_seed=0)
    yield
    ti.reset()


def make_engine(**options) -> LifeEngine:
    """Engine compiled and seeded, ready to advance generation 1."""
    engine = LifeEngine(**options)
    engine.prepare()
    return engine


def place(width: int, height: int, cells: list[tuple[int, int]]) -> np.ndarray:
    """(H, W) uint8 grid with the given (x, y) cells alive."""
    grid = np.zeros((height, width), dtype=np.uint8)
    for x, y in cells:
        grid[y, x] = 1
    return grid
