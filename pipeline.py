"""
Kernel readiness and dispatch sequencing for Afterglow.

Taichi compiles a kernel the first time it is launched. PipelineCache turns
that into an asynchronous-looking readiness model: kernels are queued with a
compile probe (a zero-extent launch), and process_queue() compiles at most
one queued kernel per call. The host never blocks on a batch of compiles.

PipelineLoader is the host-polled state machine on top of the cache:

    Loading ──(init kernel Ok)──────────────────▶ Init
    Init ────(update + count kernels Ok)────────▶ Update(1)
    Update(1) ◀──────── every tick ────────────▶ Update(0)

A compile error in any state is fatal (KernelCompileError).
"""

import taichi as ti

from errors import KernelCompileError

# Kernel states (mirrors a pipeline cache entry)
QUEUED = "queued"
OK = "ok"
ERR = "err"

# Loader states
LOADING = "loading"
INIT = "init"
UPDATE = "update"

# Exceptions raised by the Taichi front end / JIT while compiling a kernel
_COMPILE_ERRORS = (
    ti.TaichiCompilationError,
    ti.TaichiSyntaxError,
    ti.TaichiTypeError,
    ti.TaichiRuntimeError,
)


class PipelineCache:
    """
    Queued kernels with lazily-forced compilation.

    Each entry is [label, probe, state, diagnostic]. The probe launches the
    kernel with extent 0, so it compiles the kernel for the exact fields the
    engine will dispatch on without writing anything.
    """

    def __init__(self):
        self._entries = []

    def queue_kernel(self, label, probe):
        """Queue a kernel for compilation. Returns its id."""
        self._entries.append([label, probe, QUEUED, None])
        return len(self._entries) - 1

    def process_queue(self):
        """
        Compile the next queued kernel, if any.

        Returns:
            Label of the kernel processed this call, or None if nothing was queued
        """
        for entry in self._entries:
            if entry[2] != QUEUED:
                continue
            label, probe = entry[0], entry[1]
            try:
                probe()
                ti.sync()
            except _COMPILE_ERRORS as e:
                entry[2] = ERR
                entry[3] = str(e)
                print(f"[Pipeline] ✗ {label} failed to compile")
            else:
                entry[2] = OK
                print(f"[Pipeline] ✓ {label} compiled")
            return label
        return None

    def get_state(self, kernel_id):
        return self._entries[kernel_id][2]

    def get_label(self, kernel_id):
        return self._entries[kernel_id][0]

    def get_diagnostic(self, kernel_id):
        return self._entries[kernel_id][3]

    def is_ready(self, kernel_id):
        """
        True once the kernel compiled.

        Raises:
            KernelCompileError: the kernel failed to compile
        """
        state = self.get_state(kernel_id)
        if state == ERR:
            raise KernelCompileError(self.get_label(kernel_id),
                                     self.get_diagnostic(kernel_id))
        return state == OK


class PipelineLoader:
    """
    Host-polled Loading → Init → Update(parity) state machine.

    poll() is called exactly once per orchestrator tick. It advances the
    cache by one compile, then applies at most one transition. `parity` is
    meaningful only in UPDATE and names the physical WRITE buffer.
    """

    def __init__(self, cache, init_kernel, update_kernel, count_kernel):
        self.cache = cache
        self.init_kernel = init_kernel
        self.update_kernel = update_kernel
        self.count_kernel = count_kernel
        self.state = LOADING
        self.parity = None

    def poll(self):
        """
        Advance the state machine by one tick.

        Returns:
            (state, parity) after the transition

        Raises:
            KernelCompileError: a kernel this state waits on failed to compile
            RuntimeError: the loader is in an invalid state
        """
        self.cache.process_queue()

        if self.state == LOADING:
            if self.cache.is_ready(self.init_kernel):
                self._enter(INIT, None)
        elif self.state == INIT:
            update_ok = self.cache.is_ready(self.update_kernel)
            count_ok = self.cache.is_ready(self.count_kernel)
            if update_ok and count_ok:
                self._enter(UPDATE, 1)
        elif self.state == UPDATE and self.parity == 0:
            self.parity = 1
        elif self.state == UPDATE and self.parity == 1:
            self.parity = 0
        else:
            raise RuntimeError(f"invalid pipeline state {self.state!r} "
                               f"(parity={self.parity!r})")
        return self.state, self.parity

    def _enter(self, state, parity):
        print(f"[Pipeline] {self.describe()} → {_describe(state, parity)}")
        self.state = state
        self.parity = parity

    def describe(self):
        return _describe(self.state, self.parity)


def _describe(state, parity):
    if state == UPDATE:
        return f"Update({parity})"
    return state.capitalize()
