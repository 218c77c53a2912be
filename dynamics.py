"""
Generation kernels for Afterglow.

This module provides:
1. seed_grid: hash-based initial seeding (~10% alive)
2. reset_population: zero the next-generation counter
3. advance_generation: B3/S23 rule + homeostasis reseed + tile reduction
4. count_alive: direct recount of one layer (verification only)

Every kernel takes an extent argument (n / n_tiles). Launching with extent 0
compiles the kernel without touching any cell, which is how PipelineCache
probes readiness.

All kernels take the buffer set's fields as ti.template() and the physical
buffer indices as i32, so one compiled kernel serves both parities.
"""

import taichi as ti

from grid import neighbor_sum
from rng import cell_seed, hash_unit

# ==============================================================================
# Per-cell logic (pure functions of the read layer)
# ==============================================================================


@ti.func
def life_rule(current: ti.i32, total: ti.i32) -> ti.i32:
    """B3/S23: survive on 2 or 3 neighbors, birth on exactly 3."""
    result = 0
    if (current == 1 and (total == 2 or total == 3)) or (current == 0 and total == 3):
        result = 1
    return result


@ti.func
def next_state(grids: ti.template(), src: ti.i32, x: ti.i32, y: ti.i32,
               settled: ti.i32, floor: ti.i32, reseed_p: ti.f32,
               salt: ti.u32) -> ti.i32:
    """
    Next state of cell (x, y) read from layer src.

    Homeostasis: while the previous generation's settled population is below
    the floor, a cell that would be dead is forced alive when its coordinate
    hash draws below reseed_p. The draw uses the same seed word as seeding.
    """
    total = neighbor_sum(grids, src, x, y)
    current = ti.cast(grids[src, y, x], ti.i32)
    result = life_rule(current, total)
    if settled < floor and result == 0:
        if hash_unit(cell_seed(x, y, salt)) < reseed_p:
            result = 1
    return result


# ==============================================================================
# Kernel 1: Seed grid
# ==============================================================================


@ti.kernel
def seed_grid(grids: ti.template(), counters: ti.template(), layer: ti.i32,
              threshold: ti.f32, salt: ti.u32, bootstrap: ti.i32, n: ti.i32):
    """
    Seed one layer from the coordinate hash.

    Cell i maps to (x, y) = (i mod W, i div W) and is alive iff
    hash_unit(cell_seed(x, y, salt)) > threshold. The layer's counter is set
    to `bootstrap` (the "unsettled" sentinel), so the first generation that
    reads this layer does not reseed.

    Args:
        layer: physical buffer to seed
        threshold: 1 - seed probability
        n: number of cells to seed (W*H, or 0 for a compile probe)
    """
    W = grids.shape[2]
    for i in range(n):
        x = i % W
        y = i // W
        alive = ti.u8(0)
        if hash_unit(cell_seed(x, y, salt)) > threshold:
            alive = ti.u8(1)
        grids[layer, y, x] = alive
    if n > 0:
        counters[layer] = bootstrap


# ==============================================================================
# Kernel 2: Reset population counter
# ==============================================================================


@ti.kernel
def reset_population(counters: ti.template(), slot: ti.i32, n: ti.i32):
    """
    Zero the next-generation counter.

    Must be launched immediately before advance_generation. Taichi executes
    kernel launches in submission order, which orders the reset before every
    atomic add of the same generation.
    """
    for _ in range(n):
        counters[slot] = 0


# ==============================================================================
# Kernel 3: Advance one generation
# ==============================================================================


@ti.kernel
def advance_generation(grids: ti.template(), counters: ti.template(),
                       src: ti.i32, dst: ti.i32, floor: ti.i32,
                       reseed_p: ti.f32, salt: ti.u32,
                       tile_w: ti.i32, tile_h: ti.i32, tiles_x: ti.i32,
                       n_tiles: ti.i32):
    """
    Compute layer dst from layer src and accumulate its population.

    Work is split into tile_w × tile_h tiles. The outer loop over tiles runs
    in parallel; each tile visits its cells serially, keeps a tile-private
    live count, and flushes it with ONE atomic add into counters[dst]. Cells
    of a remainder tile that fall outside [0, W) × [0, H) are skipped.

    Reads touch only layer src and counters[src]; writes touch only layer dst
    and counters[dst]. src != dst is the caller's invariant.

    Args:
        src, dst: physical read / write buffers
        floor: homeostasis population floor (integer cells)
        reseed_p: reseed probability per eligible dead cell
        tiles_x: tiles per row (ceil(W / tile_w))
        n_tiles: tiles to process (tiles_x * tiles_y, or 0 for a compile probe)
    """
    H = grids.shape[1]
    W = grids.shape[2]
    for t in range(n_tiles):
        x0 = (t % tiles_x) * tile_w
        y0 = (t // tiles_x) * tile_h
        settled = counters[src]
        tile_alive = 0
        for ly in range(tile_h):
            for lx in range(tile_w):
                x = x0 + lx
                y = y0 + ly
                if x < W and y < H:
                    alive = next_state(grids, src, x, y, settled, floor, reseed_p, salt)
                    grids[dst, y, x] = ti.cast(alive, ti.u8)
                    tile_alive += alive
        ti.atomic_add(counters[dst], tile_alive)


# ==============================================================================
# Kernel 4: Direct recount (verification)
# ==============================================================================


@ti.kernel
def count_alive(grids: ti.template(), layer: ti.i32) -> ti.i32:
    """Live cells in one layer, summed directly (no tiles)."""
    total = 0
    for y, x in ti.ndrange(grids.shape[1], grids.shape[2]):
        total += ti.cast(grids[layer, y, x], ti.i32)
    return total
