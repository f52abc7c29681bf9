"""Subprocess boundary to external release tools."""

from .process import ProcessError, run

__all__ = [
    "ProcessError",
    "run",
]
