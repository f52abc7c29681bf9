"""Console output for release runs.

Services report progress through ConsoleProtocol and never print directly.
The two release pipelines run on separate threads, so production output is
serialized through a lock and each pipeline writes through a BranchConsole
that prefixes its lines.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

__all__ = [
    "BranchConsole",
    "ConsoleProtocol",
    "MockConsole",
    "OutputRecord",
    "RichConsole",
    "Style",
]


class Style(Enum):
    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()  # echoed commands, secondary detail
    HEADER = auto()

    def __str__(self) -> str:
        return self.name.lower()


# Leading word of each status line; shared by every console so tests and
# terminals read the same.
_LABELS: dict[Style, str] = {
    Style.SUCCESS: "OK",
    Style.ERROR: "error:",
    Style.WARNING: "warning:",
    Style.INFO: "info:",
}

_RICH_STYLES: dict[Style, str] = {
    Style.SUCCESS: "green",
    Style.ERROR: "red bold",
    Style.WARNING: "yellow",
    Style.INFO: "cyan",
    Style.DIM: "dim",
    Style.HEADER: "blue bold",
}


def _labelled(style: Style, message: str) -> str:
    label = _LABELS.get(style)
    return f"{label} {message}" if label else message


class ConsoleProtocol(Protocol):
    """Styled output sink shared by CLI commands and release services."""

    def print(self, message: str, style: Style = Style.DEFAULT) -> None: ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...


class RichConsole:
    """Production console backed by Rich.

    Safe to share between pipeline threads: whole lines are written under a
    lock so prefixed output from both pipelines never interleaves mid-line.
    """

    def __init__(self, *, stderr: bool = False) -> None:
        # Import Rich lazily to keep `--version` fast.
        from rich.console import Console

        self._console = Console(stderr=stderr, highlight=False, emoji=False)
        self._lock = threading.Lock()

    def _status(self, style: Style, message: str) -> None:
        # Only the label is styled; the message may carry "[" from tool output.
        from rich.text import Text

        line = Text()
        line.append(_LABELS[style], style=_RICH_STYLES[style])
        line.append(" " + message)
        with self._lock:
            self._console.print(line)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        with self._lock:
            self._console.print(message, style=_RICH_STYLES.get(style), markup=False)

    def success(self, message: str) -> None:
        self._status(Style.SUCCESS, message)

    def error(self, message: str) -> None:
        self._status(Style.ERROR, message)

    def warning(self, message: str) -> None:
        self._status(Style.WARNING, message)

    def info(self, message: str) -> None:
        self._status(Style.INFO, message)

    def header(self, message: str) -> None:
        with self._lock:
            self._console.print()
            self._console.print(message, style=_RICH_STYLES[Style.HEADER], markup=False)


class BranchConsole:
    """Console view for one release pipeline; prefixes every line with its name."""

    def __init__(self, inner: ConsoleProtocol, branch: str) -> None:
        self._inner = inner
        self._prefix = f"[{branch}] "

    @property
    def prefix(self) -> str:
        return self._prefix

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._inner.print(self._prefix + message, style)

    def success(self, message: str) -> None:
        self._inner.success(self._prefix + message)

    def error(self, message: str) -> None:
        self._inner.error(self._prefix + message)

    def warning(self, message: str) -> None:
        self._inner.warning(self._prefix + message)

    def info(self, message: str) -> None:
        self._inner.info(self._prefix + message)

    def header(self, message: str) -> None:
        self._inner.header(self._prefix + message)


@dataclass(frozen=True, slots=True)
class OutputRecord:
    message: str
    style: Style


@dataclass
class MockConsole:
    """Records every line instead of printing; safe to share between threads."""

    outputs: list[OutputRecord] = field(default_factory=lambda: list[OutputRecord]())
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def _record(self, style: Style, message: str) -> None:
        with self._lock:
            self.outputs.append(OutputRecord(_labelled(style, message), style))

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        with self._lock:
            self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self._record(Style.SUCCESS, message)

    def error(self, message: str) -> None:
        self._record(Style.ERROR, message)

    def warning(self, message: str) -> None:
        self._record(Style.WARNING, message)

    def info(self, message: str) -> None:
        self._record(Style.INFO, message)

    def header(self, message: str) -> None:
        self._record(Style.HEADER, message)

    @property
    def messages(self) -> list[str]:
        return [record.message for record in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def has_style(self, style: Style) -> bool:
        return any(record.style is style for record in self.outputs)

    def has_error(self) -> bool:
        return self.has_style(Style.ERROR)

    def has_warning(self) -> bool:
        return self.has_style(Style.WARNING)

    def find(self, substring: str) -> list[OutputRecord]:
        return [record for record in self.outputs if substring in record.message]

    def branch_lines(self, branch: str) -> list[str]:
        """Messages written through BranchConsole(self, branch)."""
        prefix = f"[{branch}] "
        return [m for m in self.messages if prefix in m]
