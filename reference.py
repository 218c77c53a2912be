"""
NumPy reference implementation of the Afterglow generation step.

Single-threaded, whole-array re-implementation of seed_grid and
advance_generation, used to validate the Taichi kernels bit for bit. It
shares nothing with the kernels except the hash constants in rng.py.
"""

import numpy as np

from config import POPULATION_UNSETTLED
from rng import np_cell_seeds, np_hash_unit

NEIGHBOR_OFFSETS = [(dy, dx) for dy in (-1, 0, 1) for dx in (-1, 0, 1)
                    if (dy, dx) != (0, 0)]


def life_rule(current, total):
    """B3/S23 on scalars or arrays; returns uint8 0/1."""
    current = np.asarray(current)
    total = np.asarray(total)
    alive = ((current == 1) & ((total == 2) | (total == 3))) | ((current == 0) & (total == 3))
    return alive.astype(np.uint8)


def neighbor_counts(cells):
    """Toroidal 8-neighbor counts for a (H, W) 0/1 array."""
    cells = cells.astype(np.int32)
    total = np.zeros_like(cells)
    for dy, dx in NEIGHBOR_OFFSETS:
        total += np.roll(cells, shift=(-dy, -dx), axis=(0, 1))
    return total


def seed_cells(cfg):
    """Initial (H, W) grid for a config, as seed_grid produces it."""
    draws = np_hash_unit(np_cell_seeds(cfg.width, cfg.height, cfg.seed_salt))
    return (draws > np.float32(cfg.alive_threshold)).astype(np.uint8)


def step(cells, settled, cfg):
    """
    One generation.

    Args:
        cells: (H, W) uint8 grid of the current generation
        settled: population settled by the previous generation
            (POPULATION_UNSETTLED disables homeostasis)
        cfg: EngineConfig

    Returns:
        (next_cells, population)
    """
    nxt = life_rule(cells, neighbor_counts(cells))
    if settled < cfg.population_floor:
        draws = np_hash_unit(np_cell_seeds(cfg.width, cfg.height, cfg.seed_salt))
        reseed = (nxt == 0) & (draws < np.float32(cfg.reseed_probability))
        nxt[reseed] = 1
    return nxt, int(nxt.sum())


def run(cfg, generations, cells=None, settled=POPULATION_UNSETTLED):
    """
    Yield (generation, cells, population) for generations 1..N.

    Starts from the seeded grid unless `cells` is given.
    """
    if cells is None:
        cells = seed_cells(cfg)
    cells = np.asarray(cells, dtype=np.uint8).reshape(cfg.height, cfg.width)
    for generation in range(1, generations + 1):
        cells, settled = step(cells, settled, cfg)
        yield generation, cells, settled
