#!/usr/bin/env python3
"""
Benchmark script for Afterglow - Reproducible Performance Testing
=================================================================

Runs a fixed number of generations with a deterministic seed and reports:
- Generations per second
- Time breakdown (reset + update dispatch, host readback)
- Final population
- Optional bit-exact check against the NumPy reference

Usage:
    python scripts/bench.py [--generations N] [--width W] [--height H] [--verify]

Example:
    python scripts/bench.py --generations 500 --width 1500 --height 1000 --arch cuda
"""

import sys
import os
import time
import argparse

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import taichi as ti

import reference
from engine import LifeEngine, init_backend
from run import add_engine_args, config_from_args


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Benchmark Afterglow generation throughput')
    add_engine_args(parser)
    parser.add_argument('--generations', type=int, default=200,
                        help='Number of generations to time (default: 200)')
    parser.add_argument('--readback-every', type=int, default=0,
                        help='Copy grid + population to host every N generations (0 = never)')
    parser.add_argument('--verify', action='store_true',
                        help='Compare every generation with the NumPy reference (slow)')
    return parser.parse_args()


def verify_against_reference(engine, generations):
    """
    Step the engine and the NumPy reference side by side.

    Returns:
        Number of mismatching generations (0 = bit-exact)
    """
    cfg = engine.cfg
    mismatches = 0
    expected = reference.run(cfg, generations)
    for generation, cells, population in expected:
        engine.tick()
        grid_ok = np.array_equal(engine.grid(), cells.reshape(-1))
        pop_ok = engine.population() == population
        if not (grid_ok and pop_ok):
            mismatches += 1
            print(f"  [Verify] ✗ generation {generation}: grid_ok={grid_ok} "
                  f"population={engine.population()} expected={population}")
    return mismatches


def run_benchmark(args):
    """
    Run benchmark and collect performance statistics.

    Args:
        args: Parsed command line arguments

    Returns:
        Dictionary with benchmark results
    """
    cfg = config_from_args(args)

    print(f"\n{'='*70}")
    print(f"AFTERGLOW BENCHMARK")
    print(f"{'='*70}\n")

    print(f"Configuration:")
    print(f"  Grid:          {cfg.width}×{cfg.height} ({cfg.n_cells} cells)")
    print(f"  Tiles:         {cfg.tile_width}×{cfg.tile_height} ({cfg.n_tiles} tiles)")
    print(f"  Generations:   {args.generations}")
    print(f"  Seed:          {cfg.seed}")
    print(f"  Floor:         {cfg.population_floor} cells, reseed p={cfg.reseed_probability}")
    print(f"  Backend:       {args.arch}")
    print(f"\n")

    init_backend(args.arch)
    engine = LifeEngine(cfg)

    # Warm-up: compile all kernels and seed (JIT compile dominates the first ticks)
    t_compile = time.perf_counter()
    engine.prepare()
    ti.sync()
    t_compile = time.perf_counter() - t_compile
    print(f"Kernels compiled + seeded in {t_compile:.2f}s\n")

    if args.verify:
        print(f"Verifying {args.generations} generations against the NumPy reference...")
        mismatches = verify_against_reference(engine, args.generations)
        status = "✅ PASS" if mismatches == 0 else f"❌ FAIL ({mismatches} generations differ)"
        print(f"  {status}\n")
        return {'mismatches': mismatches, 'config': cfg.describe()}

    times_step = []
    times_readback = []

    print(f"Running {args.generations} generations...\n")
    start_time_total = time.perf_counter()

    for i in range(args.generations):
        t0 = time.perf_counter()
        engine.tick()
        ti.sync()
        t_step = time.perf_counter() - t0

        t_readback = 0.0
        if args.readback_every and (i + 1) % args.readback_every == 0:
            t1 = time.perf_counter()
            engine.snapshot()
            t_readback = time.perf_counter() - t1

        times_step.append(t_step)
        times_readback.append(t_readback)

        if (i + 1) % 50 == 0 or i == args.generations - 1:
            rate = 1.0 / t_step if t_step > 0 else 0
            print(f"  Generation {engine.generation:5d}/{args.generations}: "
                  f"{rate:7.1f} gen/s  population={engine.population()}")

    total_time = time.perf_counter() - start_time_total
    avg_rate = args.generations / total_time
    avg_step = np.mean(times_step)
    avg_readback = np.mean(times_readback)
    cells_per_sec = cfg.n_cells / avg_step if avg_step > 0 else 0.0

    print(f"\n{'='*70}")
    print(f"BENCHMARK RESULTS")
    print(f"{'='*70}\n")

    print(f"Overall Performance:")
    print(f"  Generations/s: {avg_rate:.2f}")
    print(f"  Total Time:    {total_time:.2f}s")
    print(f"  Avg Step:      {avg_step*1000:.3f}ms  ({cells_per_sec/1e6:.1f} Mcells/s)")
    print(f"  Avg Readback:  {avg_readback*1000:.3f}ms")
    print(f"  Population:    {engine.population()}")
    print(f"\n")

    return {
        'avg_gen_per_s': avg_rate,
        'total_time': total_time,
        'avg_step_ms': avg_step * 1000,
        'avg_readback_ms': avg_readback * 1000,
        'compile_s': t_compile,
        'population': engine.population(),
        'config': cfg.describe(),
    }


def main():
    """Main entry point."""
    args = parse_args()
    results = run_benchmark(args)

    print(f"Benchmark complete!")
    print(f"{'='*70}\n")

    return 1 if results.get('mismatches') else 0


if __name__ == '__main__':
    sys.exit(main())
