"""Orchestrator: run the package and image pipelines for one version tag.

The tag is resolved first; if that fails nothing else runs. Then two branches
start side by side on a thread pool:

- package: publish the artifact, then (only on success) create the release note
- image: derive metadata, then build and push the container image

Branches share nothing mutable and never cancel each other: a broken image
build does not stop a package release, and vice versa. Completed side effects
are never rolled back.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from time import sleep as _sleep
from typing import Literal

from tagship.core.config import ReleaseNoteConfig
from tagship.core.result import Err
from tagship.core.secrets import Secrets
from tagship.output.console import BranchConsole, ConsoleProtocol
from tagship.release.errors import ReleaseError
from tagship.release.image import ImageEngine, build_and_push
from tagship.release.metadata import ImageTagOptions, derive_metadata, parse_repository
from tagship.release.model import (
    ArtifactContext,
    BuildContext,
    ImageMetadata,
    PublishResult,
    ReleaseRecord,
    ResolvedTags,
)
from tagship.release.notes import ReleasePlatform, create_release, render_release_note
from tagship.release.package import PackageOptions, PackageRegistry, publish_package
from tagship.release.retry import RetryPolicy, Sleep
from tagship.release.semver import parse_version_tag
from tagship.release.tags import EventContext, resolve_tags

BranchName = Literal["package", "image"]


class BranchState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(StrEnum):
    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partially_succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[BranchState, frozenset[BranchState]] = {
    BranchState.PENDING: frozenset({BranchState.RUNNING, BranchState.SKIPPED}),
    BranchState.RUNNING: frozenset({BranchState.SUCCEEDED, BranchState.FAILED}),
    BranchState.SUCCEEDED: frozenset(),
    BranchState.FAILED: frozenset(),
    BranchState.SKIPPED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class BranchReport:
    name: BranchName
    state: BranchState
    # Every state the branch went through, PENDING first.
    history: tuple[BranchState, ...] = (BranchState.PENDING,)
    error: ReleaseError | None = None
    publish: PublishResult | None = None
    release: ReleaseRecord | None = None
    metadata: ImageMetadata | None = None

    @property
    def succeeded(self) -> bool:
        return self.state in (BranchState.SUCCEEDED, BranchState.SKIPPED)


@dataclass(frozen=True, slots=True)
class RunReport:
    status: RunStatus
    package: BranchReport
    image: BranchReport
    tags: ResolvedTags | None = None
    # Set when the run aborted before any branch started.
    error: ReleaseError | None = None

    @property
    def branches(self) -> tuple[BranchReport, BranchReport]:
        return (self.package, self.image)


@dataclass(frozen=True, slots=True)
class ReleaseSettings:
    """Immutable per-run settings, built from config and CLI flags."""

    project_name: str
    artifact_root: Path
    build_context: BuildContext
    package_enabled: bool = True
    image_enabled: bool = True
    package: PackageOptions = field(default_factory=PackageOptions)
    note_template: ReleaseNoteConfig = field(default_factory=ReleaseNoteConfig)
    image_options: ImageTagOptions = field(default_factory=ImageTagOptions)
    image_host: str | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    revision: str | None = None
    created: datetime | None = None


@dataclass(frozen=True, slots=True)
class Collaborators:
    registry: PackageRegistry
    platform: ReleasePlatform
    engine: ImageEngine


class _BranchTracker:
    """State machine for one branch; owned by the thread running it."""

    def __init__(self, name: BranchName) -> None:
        self.name: BranchName = name
        self._history: list[BranchState] = [BranchState.PENDING]

    @property
    def state(self) -> BranchState:
        return self._history[-1]

    def move(self, target: BranchState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"{self.name}: invalid transition {self.state} -> {target}")
        self._history.append(target)

    def report(
        self,
        *,
        error: ReleaseError | None = None,
        publish: PublishResult | None = None,
        release: ReleaseRecord | None = None,
        metadata: ImageMetadata | None = None,
    ) -> BranchReport:
        return BranchReport(
            name=self.name,
            state=self.state,
            history=tuple(self._history),
            error=error,
            publish=publish,
            release=release,
            metadata=metadata,
        )


def _pending(name: BranchName) -> BranchReport:
    return BranchReport(name=name, state=BranchState.PENDING)


def _skipped(name: BranchName) -> BranchReport:
    tracker = _BranchTracker(name)
    tracker.move(BranchState.SKIPPED)
    return tracker.report()


def run_package_branch(
    *,
    tags: ResolvedTags,
    settings: ReleaseSettings,
    secrets: Secrets,
    registry: PackageRegistry,
    platform: ReleasePlatform,
    console: ConsoleProtocol,
    sleep: Sleep = _sleep,
) -> BranchReport:
    tracker = _BranchTracker("package")
    tracker.move(BranchState.RUNNING)
    console.info(f"publishing package {tags.current}")

    ver = parse_version_tag(tags.current)
    version = ver.version if ver is not None else tags.current.removeprefix("v")

    published = publish_package(
        registry=registry,
        artifact=ArtifactContext(root=settings.artifact_root, version=version),
        token=secrets.package_token,
        options=settings.package,
        console=console,
        sleep=sleep,
    )
    if not published.success:
        tracker.move(BranchState.FAILED)
        return tracker.report(error=published.diagnostic, publish=published)
    console.success(f"package {version} published")

    note = render_release_note(
        template=settings.note_template,
        tag=tags.current,
        previous=tags.previous,
        name=settings.project_name,
    )
    if isinstance(note, Err):
        tracker.move(BranchState.FAILED)
        return tracker.report(error=note.error, publish=published)

    created = create_release(
        platform=platform,
        tag=tags.current,
        title=note.value.title,
        body=note.value.body,
    )
    if isinstance(created, Err):
        # The package stays published; there is no rollback.
        tracker.move(BranchState.FAILED)
        return tracker.report(error=created.error, publish=published)

    console.success(f"release note created: {created.value.title}")
    tracker.move(BranchState.SUCCEEDED)
    return tracker.report(publish=published, release=created.value)


def run_image_branch(
    *,
    tags: ResolvedTags,
    repository: str,
    settings: ReleaseSettings,
    secrets: Secrets,
    engine: ImageEngine,
    console: ConsoleProtocol,
    sleep: Sleep = _sleep,
) -> BranchReport:
    tracker = _BranchTracker("image")
    tracker.move(BranchState.RUNNING)

    identity = parse_repository(repository, host=settings.image_host)
    if isinstance(identity, Err):
        tracker.move(BranchState.FAILED)
        return tracker.report(error=identity.error)

    derived = derive_metadata(
        identity.value,
        tags.current,
        revision=settings.revision,
        created=settings.created,
        options=settings.image_options,
    )
    if isinstance(derived, Err):
        tracker.move(BranchState.FAILED)
        return tracker.report(error=derived.error)
    metadata = derived.value
    console.info(f"building {metadata.image} ({', '.join(metadata.tags)})")

    pushed = build_and_push(
        engine=engine,
        build_context=settings.build_context,
        metadata=metadata,
        credentials=secrets.image,
        retry=settings.retry,
        console=console,
        sleep=sleep,
    )
    if not pushed.success:
        tracker.move(BranchState.FAILED)
        return tracker.report(error=pushed.diagnostic, publish=pushed, metadata=metadata)

    console.success(f"image pushed: {', '.join(metadata.references)}")
    tracker.move(BranchState.SUCCEEDED)
    return tracker.report(publish=pushed, metadata=metadata)


def _isolated(name: BranchName, fn: Callable[[], BranchReport]) -> BranchReport:
    # A crash in one branch must surface as that branch's failure only.
    try:
        return fn()
    except Exception as e:  # noqa: BLE001
        return BranchReport(
            name=name,
            state=BranchState.FAILED,
            history=(BranchState.PENDING, BranchState.RUNNING, BranchState.FAILED),
            error=ReleaseError(kind="publish", message=f"{name} pipeline crashed: {e!r}"),
        )


def run_status(package: BranchReport, image: BranchReport) -> RunStatus:
    # A skipped branch counts as succeeded.
    failed = sum(1 for b in (package, image) if not b.succeeded)
    if failed == 0:
        return RunStatus.SUCCEEDED
    if failed == 1:
        return RunStatus.PARTIALLY_SUCCEEDED
    return RunStatus.FAILED


def run_release(
    *,
    context: EventContext,
    repository: str,
    settings: ReleaseSettings,
    secrets: Secrets,
    collaborators: Collaborators,
    console: ConsoleProtocol,
    sleep: Sleep = _sleep,
) -> RunReport:
    """Resolve the tag, then run both pipelines concurrently and aggregate."""
    resolved = resolve_tags(context=context)
    if isinstance(resolved, Err):
        console.error(resolved.error.pretty())
        return RunReport(
            status=RunStatus.FAILED,
            package=_pending("package"),
            image=_pending("image"),
            error=resolved.error,
        )
    tags = resolved.value
    console.header(f"Release {tags.current}")
    if tags.previous:
        console.info(f"previous release: {tags.previous}")

    def package_branch() -> BranchReport:
        if not settings.package_enabled:
            return _skipped("package")
        return run_package_branch(
            tags=tags,
            settings=settings,
            secrets=secrets,
            registry=collaborators.registry,
            platform=collaborators.platform,
            console=BranchConsole(console, "package"),
            sleep=sleep,
        )

    def image_branch() -> BranchReport:
        if not settings.image_enabled:
            return _skipped("image")
        return run_image_branch(
            tags=tags,
            repository=repository,
            settings=settings,
            secrets=secrets,
            engine=collaborators.engine,
            console=BranchConsole(console, "image"),
            sleep=sleep,
        )

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="tagship") as executor:
        package_future = executor.submit(_isolated, "package", package_branch)
        image_future = executor.submit(_isolated, "image", image_branch)
        package = package_future.result()
        image = image_future.result()

    return RunReport(
        status=run_status(package, image),
        package=package,
        image=image,
        tags=tags,
    )
