"""Error payload for the release bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    # no version tag to release; aborts the whole run
    "resolution",
    # malformed repository identity; aborts the image pipeline
    "metadata",
    # registry rejected the upload for a non-specific reason
    "publish",
    "credential",
    "duplicate_version",
    "transient_network",
    "duplicate_release",
    "build",
    "invalid_input",
    "tool_missing",
]

_RETRIABLE: frozenset[str] = frozenset({"transient_network"})


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical release error.

    Stable across resolve/publish/orchestrate layers so the CLI can render it
    without knowing which tool produced it.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    @property
    def retriable(self) -> bool:
        return self.kind in _RETRIABLE

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
