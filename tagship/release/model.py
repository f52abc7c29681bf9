from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from tagship.release.errors import ReleaseError


@dataclass(frozen=True, slots=True)
class ResolvedTags:
    current: str
    # None for a first release.
    previous: str | None


@dataclass(frozen=True, slots=True)
class RepositoryIdentity:
    """Canonical owner/name of the released project."""

    owner: str
    name: str
    # Image registry host; None means Docker Hub.
    host: str | None = None

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def image(self) -> str:
        if self.host:
            return f"{self.host}/{self.slug}"
        return self.slug

    @property
    def url(self) -> str:
        return f"https://github.com/{self.slug}"


@dataclass(frozen=True, slots=True)
class ImageMetadata:
    image: str
    # Ordered; the first tag is always the released version tag.
    tags: tuple[str, ...]
    # Insertion order is the order labels are passed to the build.
    labels: Mapping[str, str]

    @property
    def references(self) -> tuple[str, ...]:
        return tuple(f"{self.image}:{t}" for t in self.tags)

    def as_mapping(self) -> dict[str, dict[str, str]]:
        """Pair every image reference with the labels it carries."""
        return {ref: dict(self.labels) for ref in self.references}


@dataclass(frozen=True, slots=True)
class ReleaseRecord:
    tag: str
    title: str
    body: str
    url: str | None = None


@dataclass(frozen=True, slots=True)
class ArtifactContext:
    """A pre-built package ready for upload."""

    root: Path
    version: str


@dataclass(frozen=True, slots=True)
class BuildContext:
    """Filesystem snapshot plus recipe reference, opaque to the orchestrator."""

    path: Path
    dockerfile: Path | None = None


@dataclass(frozen=True, slots=True)
class TagPushResult:
    reference: str
    ok: bool
    error: ReleaseError | None = None


@dataclass(frozen=True, slots=True)
class PublishResult:
    success: bool
    diagnostic: ReleaseError | None = None
    details: tuple[str, ...] = ()
    tag_results: tuple[TagPushResult, ...] = field(default_factory=tuple)

    @classmethod
    def ok(cls, *details: str, tag_results: tuple[TagPushResult, ...] = ()) -> PublishResult:
        return cls(success=True, details=details, tag_results=tag_results)

    @classmethod
    def failed(
        cls,
        error: ReleaseError,
        *details: str,
        tag_results: tuple[TagPushResult, ...] = (),
    ) -> PublishResult:
        return cls(success=False, diagnostic=error, details=details, tag_results=tag_results)
