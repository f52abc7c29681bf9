"""Release Note Publisher: record a release against the tag on the hosting platform.

Policy: a release is created exactly once per tag. If one already exists the
call fails with `duplicate_release` and the existing record is left as is;
nothing is ever updated in place.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from time import sleep as _sleep
from typing import Protocol

from tagship.core.config import ReleaseNoteConfig
from tagship.core.result import Err, Ok, Result
from tagship.core.structured import as_str_dict, get_str
from tagship.output.console import ConsoleProtocol, Style
from tagship.platform.process import ProcessError
from tagship.platform.process import run as run_process
from tagship.release.errors import ReleaseError
from tagship.release.failures import (
    first_line,
    is_auth_failure,
    is_tool_missing,
    is_transient_failure,
)
from tagship.release.model import ReleaseRecord
from tagship.release.retry import RetryPolicy, Sleep, retry_call
from tagship.release.timeouts import GH_TIMEOUT_SECONDS

_NOT_FOUND_MARKERS = ("release not found", "http 404", "not found")
_ALREADY_EXISTS_MARKERS = ("already_exists", "already exists")


class ReleasePlatform(Protocol):
    def find_release(self, tag: str) -> Result[ReleaseRecord | None, ReleaseError]: ...

    def publish_release(self, record: ReleaseRecord) -> Result[ReleaseRecord, ReleaseError]: ...


@dataclass(frozen=True, slots=True)
class RenderedNote:
    title: str
    body: str


def render_release_note(
    *,
    template: ReleaseNoteConfig,
    tag: str,
    previous: str | None,
    name: str,
) -> Result[RenderedNote, ReleaseError]:
    """Render title and body from `str.format` templates.

    Available fields: `name`, `tag`, `previous` (empty for a first release).
    When the body template does not mention `previous` and a previous tag
    exists, a `Previous release:` line is appended.
    """
    fields = {"name": name, "tag": tag, "previous": previous or ""}
    try:
        title = template.title.format(**fields)
        body = template.body.format(**fields)
    except (KeyError, IndexError, ValueError) as e:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"invalid release note template: {e}",
                hint="available fields: {name}, {tag}, {previous}",
            )
        )

    if previous and "{previous}" not in template.body:
        body = f"{body.rstrip()}\n\nPrevious release: {previous}"
    return Ok(RenderedNote(title=title.strip(), body=body.rstrip() + "\n"))


def create_release(
    *,
    platform: ReleasePlatform,
    tag: str,
    title: str,
    body: str,
) -> Result[ReleaseRecord, ReleaseError]:
    """Create the release record for `tag`; fatal if one already exists."""
    existing = platform.find_release(tag)
    if isinstance(existing, Err):
        return existing
    if existing.value is not None:
        return Err(
            ReleaseError(
                kind="duplicate_release",
                message=f"release already exists for {tag}",
                hint=existing.value.url,
            )
        )

    return platform.publish_release(ReleaseRecord(tag=tag, title=title, body=body))


def _classify_gh_failure(error: ProcessError, *, message: str) -> ReleaseError:
    if is_tool_missing(error):
        return ReleaseError(
            kind="tool_missing",
            message="gh: missing",
            hint="Install GitHub CLI: https://cli.github.com/",
        )
    if is_auth_failure(error):
        return ReleaseError(
            kind="credential",
            message="hosting platform rejected the token",
            hint="set GITHUB_TOKEN with contents:write",
        )
    if is_transient_failure(error):
        return ReleaseError(kind="transient_network", message=message, hint=first_line(error))
    return ReleaseError(kind="publish", message=message, hint=first_line(error))


class GhReleasePlatform:
    """GitHub releases through the `gh` CLI."""

    def __init__(
        self,
        *,
        workspace_root: Path,
        repo: str,
        token: str,
        console: ConsoleProtocol,
        dry_run: bool = False,
        retry: RetryPolicy | None = None,
        sleep: Sleep = _sleep,
    ) -> None:
        self._workspace_root = workspace_root
        self._repo = repo
        self._token = token
        self._console = console
        self._dry_run = dry_run
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    def _env(self) -> dict[str, str]:
        return {"GH_TOKEN": self._token} if self._token else {}

    def _view_once(self, tag: str) -> Result[ReleaseRecord | None, ReleaseError]:
        cmd = [
            "gh",
            "release",
            "view",
            tag,
            "--repo",
            self._repo,
            "--json",
            "tagName,name,body,url",
        ]
        result = run_process(
            cmd, cwd=self._workspace_root, env=self._env(), timeout=GH_TIMEOUT_SECONDS
        )
        if isinstance(result, Err):
            text = result.error.output.lower()
            if result.error.returncode > 0 and any(m in text for m in _NOT_FOUND_MARKERS):
                return Ok(None)
            return Err(
                _classify_gh_failure(result.error, message=f"failed to query release {tag}")
            )

        try:
            obj: object = json.loads(result.value)
        except json.JSONDecodeError as e:
            return Err(
                ReleaseError(kind="publish", message=f"invalid JSON from gh release view: {e}")
            )

        data = as_str_dict(obj)
        if data is None:
            return Err(ReleaseError(kind="publish", message="unexpected gh release view payload"))

        return Ok(
            ReleaseRecord(
                tag=get_str(data, "tagName") or tag,
                title=get_str(data, "name") or "",
                body=get_str(data, "body") or "",
                url=get_str(data, "url"),
            )
        )

    def find_release(self, tag: str) -> Result[ReleaseRecord | None, ReleaseError]:
        self._console.print(f"gh release view {tag} --repo {self._repo}", Style.DIM)
        if self._dry_run:
            return Ok(None)
        return retry_call(lambda: self._view_once(tag), policy=self._retry, sleep=self._sleep)

    def publish_release(self, record: ReleaseRecord) -> Result[ReleaseRecord, ReleaseError]:
        cmd = [
            "gh",
            "release",
            "create",
            record.tag,
            "--repo",
            self._repo,
            "--title",
            record.title,
            "--notes-file",
            "-",
            "--verify-tag",
        ]
        self._console.print(f"gh release create {record.tag} --repo {self._repo}", Style.DIM)
        if self._dry_run:
            return Ok(record)

        # Not retried: a create that timed out may still have succeeded.
        result = run_process(
            cmd,
            cwd=self._workspace_root,
            env=self._env(),
            timeout=GH_TIMEOUT_SECONDS,
            stdin=record.body,
        )
        if isinstance(result, Err):
            text = result.error.output.lower()
            if any(m in text for m in _ALREADY_EXISTS_MARKERS):
                return Err(
                    ReleaseError(
                        kind="duplicate_release",
                        message=f"release already exists for {record.tag}",
                    )
                )
            return Err(
                _classify_gh_failure(
                    result.error, message=f"failed to create release {record.tag}"
                )
            )

        url = result.value.strip().splitlines()[-1] if result.value.strip() else None
        return Ok(ReleaseRecord(tag=record.tag, title=record.title, body=record.body, url=url))
