"""
Deterministic coordinate hash for seeding and homeostasis draws.

The hash is a fixed 32-bit avalanche mix, so every draw is a pure function of
(x, y, seed): no shared RNG state, no ordering between workers, and the same
bits on every backend. Two twins are provided:

- Taichi functions (hash_u32, hash_unit, cell_seed) for use inside kernels
- NumPy functions (np_hash_u32, np_hash_unit, np_cell_seeds) for the host
  reference and tests

The NumPy twin works in uint64 and masks after every multiply, which gives
the same modulo-2^32 results as Taichi's wrapping u32 arithmetic.

Normalization divides by 2^32 - 1 in f32. Kernels must be compiled with
fast_math disabled so the division is not rewritten as a reciprocal multiply.
"""

import numpy as np
import taichi as ti

HASH_XOR = 2747636419       # Initial xor constant
HASH_MUL = 2654435769       # Odd multiplicative constant (golden ratio * 2^32)
U32_MASK = 0xFFFFFFFF
U32_MAX_F = 4294967295.0    # 2^32 - 1 (rounds to 2^32 in f32, same on both twins)

# Same bit patterns as signed i32 literals. Taichi types bare integer literals
# as i32, so the u32 constants are cast from these instead.
HASH_XOR_BITS = HASH_XOR - (1 << 32)
HASH_MUL_BITS = HASH_MUL - (1 << 32)

# ==============================================================================
# Taichi scope
# ==============================================================================


@ti.func
def hash_u32(seed: ti.u32) -> ti.u32:
    """32-bit avalanche mix. All arithmetic wraps modulo 2^32."""
    state = seed ^ ti.cast(HASH_XOR_BITS, ti.u32)
    state *= ti.cast(HASH_MUL_BITS, ti.u32)
    state ^= state >> ti.u32(16)
    state *= ti.cast(HASH_MUL_BITS, ti.u32)
    state ^= state >> ti.u32(16)
    state *= ti.cast(HASH_MUL_BITS, ti.u32)
    return state


@ti.func
def hash_unit(seed: ti.u32) -> ti.f32:
    """Hash normalized to [0, 1] as f32."""
    return ti.cast(hash_u32(seed), ti.f32) / ti.f32(U32_MAX_F)


@ti.func
def cell_seed(x: ti.i32, y: ti.i32, salt: ti.u32) -> ti.u32:
    """Seed word for cell (x, y): ((y << 16) | x) ^ salt."""
    return ti.cast((y << 16) | x, ti.u32) ^ salt


# ==============================================================================
# Host scope (NumPy twin)
# ==============================================================================


def np_hash_u32(seed):
    """Vectorized hash_u32. Accepts a scalar or array, returns uint32."""
    state = np.asarray(seed, dtype=np.uint64) & U32_MASK
    state = state ^ np.uint64(HASH_XOR)
    state = (state * np.uint64(HASH_MUL)) & np.uint64(U32_MASK)
    state = state ^ (state >> np.uint64(16))
    state = (state * np.uint64(HASH_MUL)) & np.uint64(U32_MASK)
    state = state ^ (state >> np.uint64(16))
    state = (state * np.uint64(HASH_MUL)) & np.uint64(U32_MASK)
    return state.astype(np.uint32)


def np_hash_unit(seed):
    """Vectorized hash_unit, f32 in [0, 1]."""
    return np_hash_u32(seed).astype(np.float32) / np.float32(U32_MAX_F)


def np_cell_seeds(width, height, salt=0):
    """
    Seed words for a whole grid, shape (height, width), uint32.

    Matches cell_seed(x, y, salt) element-wise.
    """
    ys, xs = np.meshgrid(np.arange(height, dtype=np.uint64),
                         np.arange(width, dtype=np.uint64), indexing="ij")
    words = (ys << np.uint64(16)) | xs
    return (words ^ np.uint64(salt & U32_MASK)).astype(np.uint32)
