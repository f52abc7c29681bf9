"""Output abstraction layer."""

from .console import (
    BranchConsole,
    ConsoleProtocol,
    MockConsole,
    RichConsole,
    Style,
)

__all__ = [
    "BranchConsole",
    "ConsoleProtocol",
    "MockConsole",
    "RichConsole",
    "Style",
]
