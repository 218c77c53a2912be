#!/usr/bin/env python3
"""
Main entry point for Afterglow - homeostatic Game of Life on Taichi.

This script:
1. Initializes Taichi (GPU by default) with fast_math off
2. Builds a LifeEngine from command-line options
3. Ticks the engine once per frame (kernels compile over the first ticks)
4. Displays the current grid and prints population telemetry

Controls (window mode):
  - SPACE: Pause/Resume
  - ESC: Exit

Usage:
    python run.py [--width W] [--height H] [--arch cpu] [--headless --generations N]
"""

import argparse
import time

import numpy as np
import taichi as ti

import config
from config import EngineConfig
from engine import ARCHES, LifeEngine, init_backend


def add_engine_args(parser):
    """Engine options shared by run.py and scripts/bench.py."""
    parser.add_argument('--arch', choices=sorted(ARCHES), default='gpu',
                        help='Taichi backend (default: gpu)')
    parser.add_argument('--width', type=int, default=config.GRID_WIDTH,
                        help=f'Grid width in cells (default: {config.GRID_WIDTH})')
    parser.add_argument('--height', type=int, default=config.GRID_HEIGHT,
                        help=f'Grid height in cells (default: {config.GRID_HEIGHT})')
    parser.add_argument('--tile', type=int, nargs=2, metavar=('TW', 'TH'),
                        default=(config.TILE_WIDTH, config.TILE_HEIGHT),
                        help='Reduction tile size (default: %(default)s)')
    parser.add_argument('--seed-probability', type=float, default=config.SEED_PROBABILITY,
                        help='Initial alive density (default: %(default)s)')
    parser.add_argument('--floor-fraction', type=float, default=config.FLOOR_FRACTION,
                        help='Homeostasis floor as a fraction of W*H (default: %(default)s)')
    parser.add_argument('--reseed-probability', type=float, default=config.RESEED_PROBABILITY,
                        help='Reseed chance per dead cell below the floor (default: %(default)s)')
    parser.add_argument('--seed', type=int, default=config.SEED,
                        help='Run seed (default: %(default)s)')
    return parser


def config_from_args(args):
    """Build a validated EngineConfig (raises ConfigError)."""
    return EngineConfig(width=args.width, height=args.height,
                        tile_width=args.tile[0], tile_height=args.tile[1],
                        seed_probability=args.seed_probability,
                        floor_fraction=args.floor_fraction,
                        reseed_probability=args.reseed_probability,
                        seed=args.seed)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Homeostatic Game of Life on Taichi')
    add_engine_args(parser)
    parser.add_argument('--generations', type=int, default=config.GENERATIONS,
                        help='Generations to run (0 = until the window closes)')
    parser.add_argument('--headless', action='store_true',
                        help='No window; requires --generations')
    parser.add_argument('--log-every', type=int, default=config.LOG_EVERY,
                        help='Print telemetry every N generations (default: %(default)s)')
    parser.add_argument('--scale', type=int, default=config.DISPLAY_SCALE,
                        help='Screen pixels per cell (default: %(default)s)')
    args = parser.parse_args(argv)
    if args.headless and args.generations <= 0:
        parser.error('--headless needs --generations > 0')
    return args


def to_image(cells, width, height, scale):
    """Row-major 0/1 grid → ti.GUI image (x first, y up), upscaled."""
    img = cells.reshape(height, width).T[:, ::-1].astype(np.float32)
    if scale > 1:
        img = np.kron(img, np.ones((scale, scale), dtype=np.float32))
    return img


def log_generation(engine, t_start, generations_done):
    elapsed = time.perf_counter() - t_start
    rate = generations_done / elapsed if elapsed > 0 else 0.0
    population = engine.population()
    density = population / engine.cfg.n_cells
    print(f"[Frame {engine.generation:6d}] population={population} "
          f"({100 * density:.2f}%) | floor={engine.cfg.population_floor} | "
          f"{rate:.1f} gen/s")


def run_headless(engine, args):
    t_start = time.perf_counter()
    while engine.generation < args.generations:
        engine.tick()
        if engine.is_running and args.log_every > 0 and engine.generation % args.log_every == 0:
            log_generation(engine, t_start, engine.generation)
    ti.sync()


def run_window(engine, args):
    cfg = engine.cfg
    gui = ti.GUI("Afterglow", res=(cfg.width * args.scale, cfg.height * args.scale))
    paused = False
    t_start = time.perf_counter()
    frames = 0

    print("\n" + "=" * 70)
    print("AFTERGLOW - HOMEOSTATIC LIFE")
    print("=" * 70)
    print("Controls:")
    print("  - SPACE: Pause/Resume")
    print("  - ESC: Exit")
    print("=" * 70 + "\n")

    while gui.running:
        if gui.get_event(ti.GUI.PRESS):
            if gui.event.key == ti.GUI.ESCAPE:
                print("[Control] Exiting...")
                break
            elif gui.event.key == ti.GUI.SPACE:
                paused = not paused
                print(f"[Control] {'Paused' if paused else 'Resumed'}")

        if not paused:
            engine.tick()
            frames += 1
            if engine.is_running and args.log_every > 0 and engine.generation % args.log_every == 0:
                log_generation(engine, t_start, frames)
            if args.generations and engine.generation >= args.generations:
                break

        gui.set_image(to_image(engine.grid(), cfg.width, cfg.height, args.scale))
        gui.show()


def main(argv=None):
    args = parse_args(argv)
    cfg = config_from_args(args)
    init_backend(args.arch)
    engine = LifeEngine(cfg)

    if args.headless:
        run_headless(engine, args)
    else:
        run_window(engine, args)

    generation, _, population = engine.snapshot()
    print("\n[Exit] Simulation ended.")
    print(f"       Generations: {generation}")
    print(f"       Final population: {population}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
