from __future__ import annotations

import re
from dataclasses import dataclass

_VERSION_TAG_RE = re.compile(r"^v(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")


@dataclass(frozen=True, slots=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int

    @property
    def version(self) -> str:
        """Version without the `v` prefix, as registries expect it."""
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_version_tag(tag: str) -> SemVer | None:
    m = _VERSION_TAG_RE.match(tag)
    if m is None:
        return None
    return SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def is_version_tag(tag: str) -> bool:
    return _VERSION_TAG_RE.match(tag) is not None
