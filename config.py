"""
Configuration parameters for Afterglow - homeostatic Game of Life on Taichi.

This module defines all engine parameters:
- Grid dimensions (toroidal W×H board)
- Tile dimensions (cooperative groups for the population reduction)
- Seeding density (initial alive probability)
- Homeostasis (population floor and reseed probability)
- Host loop defaults (generations, telemetry cadence, display)

The module-level constants are defaults. Each engine validates its own copy
through EngineConfig, so several engines with different sizes can coexist.
"""

import math

from errors import ConfigError

# ==============================================================================
# Grid dimensions
# ==============================================================================

GRID_WIDTH = 1500           # Cells per row (x axis, wraps toroidally)
GRID_HEIGHT = 1000          # Cells per column (y axis, wraps toroidally)

# Hash seeds pack coordinates as (y << 16) | x, so x must fit in 16 bits and
# y must stay below the i32 sign bit after the shift.
MAX_GRID_WIDTH = 1 << 16
MAX_GRID_HEIGHT = (1 << 15) - 1

# ==============================================================================
# Tiles (two-level population reduction)
# ==============================================================================

TILE_WIDTH = 8              # Cells per tile along x
TILE_HEIGHT = 8             # Cells per tile along y
                            # One atomic add per tile instead of one per live cell
                            # Remainder tiles at the right/bottom edge are allowed

# ==============================================================================
# Seeding
# ==============================================================================

SEED_PROBABILITY = 0.10     # Initial alive density (cell alive iff hash > 1 - p)
SEED = 0                    # Run seed mixed into every coordinate hash
                            # 0 = plain (y << 16) | x seeds

# ==============================================================================
# Homeostasis
# ==============================================================================

FLOOR_FRACTION = 0.10       # Reseed only while population < FLOOR_FRACTION * W * H
RESEED_PROBABILITY = 0.001  # Chance a dead cell is forced alive while below the floor
                            # Set both to 0 for plain B3/S23

# Counter value for "no generation has settled yet". Written into counter A by
# the init dispatch, so the first generation never triggers a reseed.
POPULATION_UNSETTLED = (1 << 31) - 1

# ==============================================================================
# Host loop
# ==============================================================================

GENERATIONS = 0             # Generations to run (0 = until the window closes)
LOG_EVERY = 60              # Print [Frame] telemetry every N generations
DISPLAY_SCALE = 1           # Screen pixels per cell in run.py

# ==============================================================================
# Validated per-engine configuration
# ==============================================================================


def _require_int(name, value, low, high=None):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < low or (high is not None and value > high):
        bound = f"[{low}, {high}]" if high is not None else f">= {low}"
        raise ConfigError(f"{name} must be in {bound}, got {value}")


def _require_probability(name, value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if not (0.0 <= value <= 1.0):
        raise ConfigError(f"{name} must be in [0, 1], got {value}")


class EngineConfig:
    """
    Construction-time options for one LifeEngine.

    All checks run in __init__, before any Taichi field is allocated, and
    raise ConfigError on the first violation.

    Args:
        width, height: grid dimensions (> 0)
        tile_width, tile_height: reduction tile dimensions (> 0, <= grid dims)
        seed_probability: initial alive density
        floor_fraction: homeostasis population floor as a fraction of W*H
        reseed_probability: per-cell reseed chance while below the floor
        seed: run seed (0 reproduces the documented coordinate hash exactly)
    """

    def __init__(self, width=GRID_WIDTH, height=GRID_HEIGHT,
                 tile_width=TILE_WIDTH, tile_height=TILE_HEIGHT,
                 seed_probability=SEED_PROBABILITY,
                 floor_fraction=FLOOR_FRACTION,
                 reseed_probability=RESEED_PROBABILITY,
                 seed=SEED):
        _require_int("width", width, 1, MAX_GRID_WIDTH)
        _require_int("height", height, 1, MAX_GRID_HEIGHT)
        _require_int("tile_width", tile_width, 1, width)
        _require_int("tile_height", tile_height, 1, height)
        _require_probability("seed_probability", seed_probability)
        _require_probability("floor_fraction", floor_fraction)
        _require_probability("reseed_probability", reseed_probability)
        _require_int("seed", seed, 0)

        self.width = width
        self.height = height
        self.tile_width = tile_width
        self.tile_height = tile_height
        self.seed_probability = float(seed_probability)
        self.floor_fraction = float(floor_fraction)
        self.reseed_probability = float(reseed_probability)
        self.seed = seed

    @property
    def n_cells(self):
        return self.width * self.height

    @property
    def tiles_x(self):
        """Tiles along x, including a partial tile at the right edge."""
        return (self.width + self.tile_width - 1) // self.tile_width

    @property
    def tiles_y(self):
        return (self.height + self.tile_height - 1) // self.tile_height

    @property
    def n_tiles(self):
        return self.tiles_x * self.tiles_y

    @property
    def population_floor(self):
        """
        Integer homeostasis floor: floor(W * H * FLOOR_FRACTION).

        The epsilon keeps exact products such as 4096 * 0.1 from rounding
        down one cell through binary float error.
        """
        return int(math.floor(self.n_cells * self.floor_fraction + 1e-9))

    @property
    def alive_threshold(self):
        """Init keeps a cell alive iff its normalized hash exceeds this."""
        return 1.0 - self.seed_probability

    @property
    def seed_salt(self):
        """32-bit word XORed into every coordinate seed (0 when seed == 0)."""
        return (self.seed * 0x9E3779B9) & 0xFFFFFFFF

    def describe(self):
        return (f"grid={self.width}x{self.height}, "
                f"tiles={self.tile_width}x{self.tile_height} ({self.n_tiles}), "
                f"seed_p={self.seed_probability}, floor={self.population_floor}, "
                f"reseed_p={self.reseed_probability}, seed={self.seed}")

    def __repr__(self):
        return f"EngineConfig({self.describe()})"
