"""Tag resolution: which version tag triggered this run, and which came before."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from tagship.core.result import Err, Ok, Result
from tagship.platform.process import run as run_process
from tagship.release.errors import ReleaseError
from tagship.release.model import ResolvedTags
from tagship.release.semver import is_version_tag
from tagship.release.timeouts import GIT_TIMEOUT_SECONDS

_TAG_REF_PREFIX = "refs/tags/"
_EXPECTED = "vMAJOR.MINOR.PATCH"


@dataclass(frozen=True, slots=True)
class EventContext:
    """What the trigger tells us.

    Attributes:
        ref: Pushed reference (`refs/tags/v1.2.3` or bare `v1.2.3`); None when
            the run was not started by a tag push.
        history: Repository tags in chronological order, oldest first.
    """

    ref: str | None
    history: tuple[str, ...] = ()


def _tag_from_ref(ref: str) -> Result[str, ReleaseError]:
    ref = ref.strip()
    if ref.startswith("refs/") and not ref.startswith(_TAG_REF_PREFIX):
        return Err(
            ReleaseError(
                kind="resolution",
                message=f"trigger is not a tag push: {ref}",
                hint=f"push a tag matching {_EXPECTED}",
            )
        )

    tag = ref.removeprefix(_TAG_REF_PREFIX)
    if not is_version_tag(tag):
        return Err(
            ReleaseError(
                kind="resolution",
                message=f"tag does not match {_EXPECTED}: {tag or '<empty>'}",
            )
        )
    return Ok(tag)


def previous_tag(current: str, history: Sequence[str]) -> str | None:
    """Most recent version tag created before `current`.

    If `current` is not in `history` (shallow clone, tag not fetched yet)
    every history entry counts as older.
    """
    try:
        end = list(history).index(current)
    except ValueError:
        end = len(history)

    for tag in reversed(history[:end]):
        if tag != current and is_version_tag(tag):
            return tag
    return None


def resolve_tags(*, context: EventContext) -> Result[ResolvedTags, ReleaseError]:
    """Resolve (current, previous) from the trigger context. No side effects."""
    if context.ref:
        tag = _tag_from_ref(context.ref)
        if isinstance(tag, Err):
            return tag
        current = tag.value
    else:
        candidates = [t for t in context.history if is_version_tag(t)]
        if not candidates:
            return Err(
                ReleaseError(
                    kind="resolution",
                    message="no version tag found",
                    hint=f"create and push a tag matching {_EXPECTED}",
                )
            )
        current = candidates[-1]

    return Ok(ResolvedTags(current=current, previous=previous_tag(current, context.history)))


def read_tag_history(*, workspace_root: Path) -> tuple[str, ...]:
    """Tags of the local checkout, oldest first.

    An unreadable history (not a git checkout, git missing) yields no tags: the
    previous tag is informational only.
    """
    result = run_process(
        ["git", "tag", "--list", "--sort=creatordate"],
        cwd=workspace_root,
        timeout=GIT_TIMEOUT_SECONDS,
    )
    if isinstance(result, Err):
        return ()
    return tuple(line.strip() for line in result.value.splitlines() if line.strip())


def load_event_context(
    *,
    workspace_root: Path,
    env: Mapping[str, str],
    explicit_tag: str | None = None,
) -> EventContext:
    ref = explicit_tag or env.get("GITHUB_REF") or None
    return EventContext(ref=ref, history=read_tag_history(workspace_root=workspace_root))
