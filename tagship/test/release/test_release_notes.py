from __future__ import annotations

import json
from pathlib import Path

import pytest

import tagship.release.notes as notes_mod
from tagship.core.config import ReleaseNoteConfig
from tagship.core.result import Err, Ok, Result
from tagship.output.console import MockConsole
from tagship.platform.process import ProcessError
from tagship.release.errors import ReleaseError
from tagship.release.model import ReleaseRecord
from tagship.release.notes import GhReleasePlatform, create_release, render_release_note
from tagship.release.retry import RetryPolicy


class InMemoryPlatform:
    def __init__(self) -> None:
        self.releases: dict[str, ReleaseRecord] = {}
        self.published: list[str] = []

    def find_release(self, tag: str) -> Result[ReleaseRecord | None, ReleaseError]:
        return Ok(self.releases.get(tag))

    def publish_release(self, record: ReleaseRecord) -> Result[ReleaseRecord, ReleaseError]:
        stored = ReleaseRecord(
            tag=record.tag,
            title=record.title,
            body=record.body,
            url=f"https://github.com/org/pkg/releases/tag/{record.tag}",
        )
        self.releases[record.tag] = stored
        self.published.append(record.tag)
        return Ok(stored)


class TestRender:
    def test_default_template(self) -> None:
        result = render_release_note(
            template=ReleaseNoteConfig(), tag="v1.2.3", previous=None, name="widget"
        )
        assert isinstance(result, Ok)
        assert result.value.title == "widget v1.2.3"
        assert result.value.body == "⚠️ Changelog not yet provided.\n"

    def test_previous_line_appended(self) -> None:
        result = render_release_note(
            template=ReleaseNoteConfig(), tag="v1.2.3", previous="v1.2.2", name="widget"
        )
        assert isinstance(result, Ok)
        assert result.value.body.endswith("Previous release: v1.2.2\n")

    def test_template_using_previous_is_not_appended(self) -> None:
        template = ReleaseNoteConfig(title="{tag}", body="Changes since {previous}.")
        result = render_release_note(template=template, tag="v2.0.0", previous="v1.9.0", name="w")
        assert isinstance(result, Ok)
        assert result.value.body == "Changes since v1.9.0.\n"

    def test_unknown_field_is_invalid_input(self) -> None:
        template = ReleaseNoteConfig(title="{project} {tag}")
        result = render_release_note(template=template, tag="v1.0.0", previous=None, name="w")
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_input"


class TestCreateRelease:
    def test_creates_once(self) -> None:
        platform = InMemoryPlatform()
        result = create_release(platform=platform, tag="v1.0.0", title="pkg v1.0.0", body="hi\n")
        assert isinstance(result, Ok)
        assert result.value.url == "https://github.com/org/pkg/releases/tag/v1.0.0"
        assert platform.published == ["v1.0.0"]

    def test_second_call_is_duplicate_and_leaves_first_unchanged(self) -> None:
        platform = InMemoryPlatform()
        create_release(platform=platform, tag="v1.0.0", title="first", body="one\n")

        result = create_release(platform=platform, tag="v1.0.0", title="second", body="two\n")

        assert isinstance(result, Err)
        assert result.error.kind == "duplicate_release"
        assert result.error.hint == "https://github.com/org/pkg/releases/tag/v1.0.0"
        assert platform.published == ["v1.0.0"]
        assert platform.releases["v1.0.0"].title == "first"
        assert platform.releases["v1.0.0"].body == "one\n"

    def test_lookup_failure_is_propagated(self) -> None:
        class Broken(InMemoryPlatform):
            def find_release(self, tag: str) -> Result[ReleaseRecord | None, ReleaseError]:
                return Err(ReleaseError(kind="credential", message="bad token"))

        platform = Broken()
        result = create_release(platform=platform, tag="v1.0.0", title="t", body="b")
        assert isinstance(result, Err)
        assert result.error.kind == "credential"
        assert platform.published == []


def _no_sleep(_seconds: float) -> None:
    return None


class FakeGh:
    """Scripted `gh` responses keyed by subcommand."""

    def __init__(self, responses: dict[str, list[Result[str, ProcessError]]]) -> None:
        self._responses = {k: list(v) for k, v in responses.items()}
        self.calls: list[dict[str, object]] = []

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
        stdin: str | None = None,
    ) -> Result[str, ProcessError]:
        self.calls.append({"cmd": cmd, "env": env, "stdin": stdin})
        return self._responses[cmd[2]].pop(0)


def _gh_error(stderr: str, returncode: int = 1) -> Err[ProcessError]:
    return Err(ProcessError(("gh", "release"), returncode, "", stderr))


def _platform(tmp_path: Path, **kwargs: object) -> GhReleasePlatform:
    return GhReleasePlatform(
        workspace_root=tmp_path,
        repo="org/pkg",
        token="gh-token",
        console=MockConsole(),
        retry=RetryPolicy(attempts=2),
        sleep=_no_sleep,
        **kwargs,  # type: ignore[arg-type]
    )


class TestGhReleasePlatform:
    def test_create_when_missing(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        gh = FakeGh(
            {
                "view": [_gh_error("release not found")],
                "create": [Ok("https://github.com/org/pkg/releases/tag/v1.0.0\n")],
            }
        )
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(
            platform=_platform(tmp_path), tag="v1.0.0", title="pkg v1.0.0", body="notes\n"
        )

        assert isinstance(result, Ok)
        assert result.value.url == "https://github.com/org/pkg/releases/tag/v1.0.0"
        create = gh.calls[1]
        assert create["cmd"] == [
            "gh",
            "release",
            "create",
            "v1.0.0",
            "--repo",
            "org/pkg",
            "--title",
            "pkg v1.0.0",
            "--notes-file",
            "-",
            "--verify-tag",
        ]
        assert create["stdin"] == "notes\n"
        assert create["env"] == {"GH_TOKEN": "gh-token"}

    def test_existing_release_is_duplicate(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        payload = {
            "tagName": "v1.0.0",
            "name": "pkg v1.0.0",
            "body": "old",
            "url": "https://github.com/org/pkg/releases/tag/v1.0.0",
        }
        gh = FakeGh({"view": [Ok(json.dumps(payload))]})
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(platform=_platform(tmp_path), tag="v1.0.0", title="t", body="b")

        assert isinstance(result, Err)
        assert result.error.kind == "duplicate_release"
        assert [c["cmd"][2] for c in gh.calls] == ["view"]  # type: ignore[index]

    def test_view_is_retried_on_transient_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        gh = FakeGh(
            {
                "view": [_gh_error("HTTP 502: Bad Gateway"), _gh_error("release not found")],
                "create": [Ok("https://example/rel\n")],
            }
        )
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(platform=_platform(tmp_path), tag="v1.0.0", title="t", body="b")

        assert isinstance(result, Ok)
        assert [c["cmd"][2] for c in gh.calls] == ["view", "view", "create"]  # type: ignore[index]

    def test_create_race_is_duplicate(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        gh = FakeGh(
            {
                "view": [_gh_error("release not found")],
                "create": [_gh_error("HTTP 422: Validation Failed (already_exists)")],
            }
        )
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(platform=_platform(tmp_path), tag="v1.0.0", title="t", body="b")

        assert isinstance(result, Err)
        assert result.error.kind == "duplicate_release"

    def test_create_is_not_retried(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        gh = FakeGh(
            {
                "view": [_gh_error("release not found")],
                "create": [_gh_error("HTTP 503: Service Unavailable")],
            }
        )
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(platform=_platform(tmp_path), tag="v1.0.0", title="t", body="b")

        assert isinstance(result, Err)
        assert result.error.kind == "transient_network"
        assert len(gh.calls) == 2

    def test_bad_token(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        gh = FakeGh({"view": [_gh_error("HTTP 401: Bad credentials")]})
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(platform=_platform(tmp_path), tag="v1.0.0", title="t", body="b")

        assert isinstance(result, Err)
        assert result.error.kind == "credential"

    def test_gh_missing(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        gh = FakeGh({"view": [_gh_error("[Errno 2] No such file or directory: 'gh'", -1)]})
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(platform=_platform(tmp_path), tag="v1.0.0", title="t", body="b")

        assert isinstance(result, Err)
        assert result.error.kind == "tool_missing"

    def test_dry_run(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        gh = FakeGh({})
        monkeypatch.setattr(notes_mod, "run_process", gh)

        result = create_release(
            platform=_platform(tmp_path, dry_run=True), tag="v1.0.0", title="t", body="b"
        )

        assert result == Ok(ReleaseRecord(tag="v1.0.0", title="t", body="b"))
        assert gh.calls == []
