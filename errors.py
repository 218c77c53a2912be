"""
Error taxonomy for the Afterglow engine.

None of these are recoverable locally: a kernel either compiles and runs or
the engine cannot proceed. They propagate to the host loop.
"""


class LifeError(Exception):
    """Base class for engine errors."""


class ConfigError(LifeError, ValueError):
    """Invalid grid or tile dimensions, rejected before any allocation."""


class KernelCompileError(LifeError):
    """A queued kernel failed to compile while the pipeline was loading."""

    def __init__(self, label, diagnostic):
        self.label = label
        self.diagnostic = diagnostic
        super().__init__(f"Compiling kernel '{label}':\n{diagnostic}")


class GpuSubmissionError(LifeError):
    """A dispatch failed to launch or execute. There is no retry path."""

    def __init__(self, label, cause=None):
        self.label = label
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Dispatch '{label}' failed{detail}")
