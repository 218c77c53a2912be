"""
Double-buffered grid storage for Afterglow.

This module provides:
- Toroidal neighbor helpers (edges wrap in both axes)
- GridBufferSet: two full grid layers + two population counters

Buffer layout:
  grids[k, y, x]  cell state (u8, 0 = dead, 1 = alive) of physical buffer k
  counters[k]     population settled into physical buffer k (i32)

Physical buffer 0 is A, 1 is B. The parity bit names the WRITE target of the
current generation; the read source is always the other layer, so no worker
ever reads a location written in the same generation. swap() flips the bit
and moves no data.
"""

import numpy as np
import taichi as ti

from config import EngineConfig

BUFFER_A = 0
BUFFER_B = 1

# ==============================================================================
# Toroidal helpers (Taichi scope)
# ==============================================================================


@ti.func
def wrap_prev(i: ti.i32, n: ti.i32) -> ti.i32:
    """Index one step back along an axis of length n, wrapping 0 → n-1."""
    result = i - 1
    if i == 0:
        result = n - 1
    return result


@ti.func
def wrap_next(i: ti.i32, n: ti.i32) -> ti.i32:
    """Index one step forward along an axis of length n, wrapping n-1 → 0."""
    result = i + 1
    if i == n - 1:
        result = 0
    return result


@ti.func
def neighbor_sum(grids: ti.template(), layer: ti.i32, x: ti.i32, y: ti.i32) -> ti.i32:
    """
    Live cells among the 8 toroidal neighbors of (x, y) in one layer.

    The centre cell is excluded. On 1-wide or 1-tall grids the wrapped
    neighbors coincide with the centre column/row and are counted as the
    stencil says.
    """
    H = grids.shape[1]
    W = grids.shape[2]
    left = wrap_prev(x, W)
    right = wrap_next(x, W)
    above = wrap_prev(y, H)
    below = wrap_next(y, H)
    return (ti.cast(grids[layer, above, left], ti.i32)
            + ti.cast(grids[layer, above, x], ti.i32)
            + ti.cast(grids[layer, above, right], ti.i32)
            + ti.cast(grids[layer, y, left], ti.i32)
            + ti.cast(grids[layer, y, right], ti.i32)
            + ti.cast(grids[layer, below, left], ti.i32)
            + ti.cast(grids[layer, below, x], ti.i32)
            + ti.cast(grids[layer, below, right], ti.i32))


# ==============================================================================
# Buffer set
# ==============================================================================


class GridBufferSet:
    """
    Two grids and two population counters with a parity bit.

    Accessors return physical buffer indices, which kernels take as plain
    i32 arguments. One compiled kernel therefore serves both parities.

    Must be constructed AFTER ti.init(). The config is validated (and
    ConfigError raised) before any field is allocated.
    """

    def __init__(self, cfg=None, **options):
        if cfg is None:
            cfg = EngineConfig(**options)
        elif options:
            raise TypeError("pass either an EngineConfig or keyword options, not both")
        self.cfg = cfg
        self.width = cfg.width
        self.height = cfg.height

        self.grids = ti.field(dtype=ti.u8, shape=(2, cfg.height, cfg.width))
        self.counters = ti.field(dtype=ti.i32, shape=2)

        # First generation reads A and writes B
        self.parity = BUFFER_B

        mem_mb = 2 * cfg.n_cells / (1024 ** 2)
        print(f"[Memory] Allocated 2 grids of {cfg.width}×{cfg.height} cells "
              f"(~{mem_mb:.1f} MB) + 2 population counters")

    # --------------------------------------------------------------------------
    # Buffer selection
    # --------------------------------------------------------------------------

    def current_grid(self):
        """Physical index of the read source for this generation."""
        return 1 - self.parity

    def next_grid(self):
        """Physical index of the write target for this generation."""
        return self.parity

    def current_counter(self):
        """Counter settled by the previous generation (read-only this tick)."""
        return 1 - self.parity

    def next_counter(self):
        """Counter accumulated by this generation."""
        return self.parity

    def swap(self):
        self.parity = 1 - self.parity

    # --------------------------------------------------------------------------
    # Host access (synchronizes with the device)
    # --------------------------------------------------------------------------

    def grid_snapshot(self, index):
        """Flat row-major uint8 copy of one physical grid."""
        return self.grids.to_numpy()[index].reshape(-1)

    def population(self, index):
        return int(self.counters[index])

    def load_pattern(self, cells, index):
        """
        Upload a host grid into one physical layer.

        Args:
            cells: array of 0/1, shape (height, width) or flat length W*H
            index: physical buffer (BUFFER_A or BUFFER_B)
        """
        cells = np.asarray(cells)
        if cells.size != self.width * self.height:
            raise ValueError(f"pattern has {cells.size} cells, grid has "
                             f"{self.width * self.height}")
        layers = self.grids.to_numpy()
        layers[index] = (cells.reshape(self.height, self.width) != 0).astype(np.uint8)
        self.grids.from_numpy(layers)

    def set_population(self, index, value):
        self.counters[index] = value
