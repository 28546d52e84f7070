"""Starlark values, containers, argument unpacking and a pprof profiler."""

__version__ = "0.1.0"
__all__ = ["values", "iteration", "containers", "unpack", "profile"]