"""
Generation orchestrator for Afterglow.

LifeEngine owns one GridBufferSet, one PipelineCache and one PipelineLoader,
and issues the per-tick command sequence:

    Loading    → nothing (kernels still compiling)
    Init       → seed_grid on buffer A, once, on entry
    Update(p)  → reset_population(next) → advance_generation(current → next) → swap

The reset and the update are launched back to back on Taichi's in-order
launch queue, so the next counter is exactly 0 when the update starts.

A consumer may read grid() / population() / snapshot() between ticks.
"""

import taichi as ti

from config import EngineConfig, POPULATION_UNSETTLED
from dynamics import advance_generation, count_alive, reset_population, seed_grid
from errors import GpuSubmissionError
from grid import BUFFER_A, GridBufferSet
from pipeline import INIT, LOADING, UPDATE, PipelineCache, PipelineLoader

ARCHES = {
    "gpu": ti.gpu,
    "cpu": ti.cpu,
    "cuda": ti.cuda,
    "vulkan": ti.vulkan,
    "metal": ti.metal,
}


def init_backend(arch="gpu", **kwargs):
    """
    Initialize Taichi for the engine.

    fast_math stays off so the f32 hash normalization is IEEE-exact and
    matches the NumPy reference bit for bit.
    """
    if isinstance(arch, str):
        arch = ARCHES[arch]
    ti.init(arch=arch, fast_math=False, **kwargs)
    print(f"[Taichi] Initialized with backend: {ti.cfg.arch}")


class LifeEngine:
    """
    Homeostatic Game of Life on a double-buffered toroidal grid.

    Args:
        cfg: EngineConfig (or pass its options as keywords instead)
        on_dispatch: optional callable(label, engine) invoked right before each
            dispatch with label "init", "reset" or "update"

    Raises:
        ConfigError: invalid options (before any field is allocated)
    """

    def __init__(self, cfg=None, on_dispatch=None, **options):
        if cfg is None:
            cfg = EngineConfig(**options)
        elif options:
            raise TypeError("pass either an EngineConfig or keyword options, not both")
        self.cfg = cfg
        self.on_dispatch = on_dispatch
        print(f"[Config] {cfg.describe()}")

        self.buffers = GridBufferSet(cfg)
        self.generation = 0
        self._failed = None

        grids, counters = self.buffers.grids, self.buffers.counters
        self.cache = PipelineCache()
        init_id = self.cache.queue_kernel(
            "init", lambda: self._launch_seed(0))
        update_id = self.cache.queue_kernel(
            "update", lambda: self._launch_update(BUFFER_A, 1 - BUFFER_A, 0))
        count_id = self.cache.queue_kernel(
            "count", lambda: reset_population(counters, BUFFER_A, 0))
        self.loader = PipelineLoader(self.cache, init_id, update_id, count_id)

    # --------------------------------------------------------------------------
    # Kernel launches
    # --------------------------------------------------------------------------

    def _launch_seed(self, n):
        cfg = self.cfg
        seed_grid(self.buffers.grids, self.buffers.counters, BUFFER_A,
                  cfg.alive_threshold, cfg.seed_salt, POPULATION_UNSETTLED, n)

    def _launch_update(self, src, dst, n_tiles):
        cfg = self.cfg
        advance_generation(self.buffers.grids, self.buffers.counters, src, dst,
                           cfg.population_floor, cfg.reseed_probability,
                           cfg.seed_salt, cfg.tile_width, cfg.tile_height,
                           cfg.tiles_x, n_tiles)

    def _dispatch(self, label, launch, *args):
        if self.on_dispatch is not None:
            self.on_dispatch(label, self)
        try:
            launch(*args)
            # Device faults surface at the next sync, not at launch
            ti.sync()
        except RuntimeError as e:
            self._failed = label
            raise GpuSubmissionError(label, e) from e

    # --------------------------------------------------------------------------
    # Tick
    # --------------------------------------------------------------------------

    @property
    def state(self):
        return self.loader.state

    @property
    def is_running(self):
        """True once every tick advances a generation."""
        return self.loader.state == UPDATE

    def tick(self):
        """
        Poll the loader and issue this tick's dispatches.

        Returns:
            Loader state after the tick

        Raises:
            KernelCompileError: a kernel failed to compile (fatal)
            GpuSubmissionError: a dispatch failed now or on an earlier tick
        """
        if self._failed is not None:
            raise GpuSubmissionError(self._failed, "engine stopped after an earlier failure")

        previous = self.loader.state
        state, parity = self.loader.poll()

        if state == INIT and previous != INIT:
            self._dispatch("init", self._launch_seed, self.cfg.n_cells)
            print(f"[Init] Seeded buffer A ({self.cfg.width}×{self.cfg.height}, "
                  f"p={self.cfg.seed_probability:.3f})")
        elif state == UPDATE:
            self._advance(parity)
        return state

    def _advance(self, parity):
        buffers = self.buffers
        if parity != buffers.next_grid():
            raise RuntimeError(f"pipeline parity {parity} out of sync with "
                               f"write buffer {buffers.next_grid()}")
        self._dispatch("reset", reset_population, buffers.counters,
                       buffers.next_counter(), 1)
        self._dispatch("update", self._launch_update, buffers.current_grid(),
                       buffers.next_grid(), self.cfg.n_tiles)
        buffers.swap()
        self.generation += 1

    def prepare(self):
        """
        Compile every queued kernel and run the seeding dispatch.

        After this returns, the next tick() advances generation 1. Use it to
        overwrite the seeded grid (load_pattern) before the first update.
        """
        while self.cache.process_queue() is not None:
            pass
        while self.loader.state == LOADING:
            self.tick()

    def run(self, generations):
        """Tick until `generations` more generations have advanced."""
        target = self.generation + generations
        while self.generation < target:
            self.tick()
        return self.generation

    # --------------------------------------------------------------------------
    # Consumer access
    # --------------------------------------------------------------------------

    def grid(self):
        """Current grid as a flat row-major uint8 array of 0/1."""
        return self.buffers.grid_snapshot(self.buffers.current_grid())

    def population(self):
        """
        Live cells of the current grid.

        Generation 0 holds the unsettled sentinel in its counter, so its
        population is recounted directly instead.
        """
        settled = self.buffers.population(self.buffers.current_counter())
        if settled == POPULATION_UNSETTLED:
            return self.recount()
        return settled

    def recount(self):
        """Direct recount of the current grid, bypassing the tile counters."""
        return int(count_alive(self.buffers.grids, self.buffers.current_grid()))

    def snapshot(self):
        return self.generation, self.grid(), self.population()

    def load_pattern(self, cells, population=None):
        """
        Replace the current grid after prepare() or between generations.

        Args:
            cells: 0/1 array, shape (height, width) or flat
            population: settled count for the next homeostasis decision
                (defaults to the pattern's live count)
        """
        buffers = self.buffers
        buffers.load_pattern(cells, buffers.current_grid())
        if population is None:
            population = self.recount()
        buffers.set_population(buffers.current_counter(), population)
