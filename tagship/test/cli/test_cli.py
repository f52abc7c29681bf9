from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import tagship.release.tags as tags_mod
from tagship import __version__
from tagship.cli.app import app
from tagship.cli.commands._helpers import release_error_code
from tagship.cli.commands.run_cmd import exit_code, print_report
from tagship.cli.context import WORKSPACE_ENV
from tagship.core.errors import ErrorCode
from tagship.output.console import MockConsole
from tagship.release.errors import ReleaseError
from tagship.release.orchestrator import BranchReport, BranchState, RunReport, RunStatus

runner = CliRunner()

_CI_VARS = (
    "GITHUB_REF",
    "GITHUB_REPOSITORY",
    "GITHUB_SHA",
    "SOURCE_DATE_EPOCH",
    "CRATES_TOKEN",
    "PACKAGE_REGISTRY_TOKEN",
    "DOCKERHUB_USERNAME",
    "DOCKERHUB_TOKEN",
    "IMAGE_REGISTRY_USERNAME",
    "IMAGE_REGISTRY_TOKEN",
    "GITHUB_TOKEN",
    "GH_TOKEN",
)


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in _CI_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv(WORKSPACE_ENV, str(tmp_path))
    monkeypatch.setattr(
        tags_mod, "read_tag_history", lambda *, workspace_root: ("v1.2.2", "v1.2.3")
    )
    return tmp_path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_workspace_must_be_a_directory(workspace: Path) -> None:
    result = runner.invoke(app, ["--workspace", str(workspace / "missing"), "resolve"])
    assert result.exit_code == int(ErrorCode.ENV_ERROR)
    assert "not a directory" in result.output


def test_resolve(workspace: Path) -> None:
    result = runner.invoke(app, ["resolve", "--tag", "v1.2.3"])
    assert result.exit_code == 0
    assert result.output.splitlines() == ["current: v1.2.3", "previous: v1.2.2"]


def test_resolve_from_github_ref(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_REF", "refs/tags/v1.2.2")
    result = runner.invoke(app, ["resolve"])
    assert result.exit_code == 0
    assert "current: v1.2.2" in result.output
    assert "previous: -" in result.output


def test_resolve_rejects_branch_push(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_REF", "refs/heads/main")
    result = runner.invoke(app, ["resolve"])
    assert result.exit_code == int(ErrorCode.USER_ERROR)
    assert "not a tag push" in result.output


def test_metadata_json(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOURCE_DATE_EPOCH", "0")
    result = runner.invoke(
        app,
        ["metadata", "--tag", "v1.2.3", "--repository", "org/pkg", "--revision", "abc", "--json"],
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["image"] == "org/pkg"
    assert payload["tags"] == ["v1.2.3"]
    assert payload["references"] == ["org/pkg:v1.2.3"]
    assert payload["labels"]["org.opencontainers.image.source"] == "https://github.com/org/pkg"
    assert payload["labels"]["org.opencontainers.image.created"] == "1970-01-01T00:00:00Z"
    assert payload["labels"]["org.opencontainers.image.revision"] == "abc"


def test_metadata_uses_config(workspace: Path) -> None:
    (workspace / "tagship.toml").write_text(
        '[project]\nrepository = "org/pkg"\n\n'
        '[image]\nregistry = "ghcr.io"\nlatest = true\n',
        encoding="utf-8",
    )
    result = runner.invoke(app, ["metadata", "--tag", "v1.2.3"])
    assert result.exit_code == 0
    assert "  ghcr.io/org/pkg:v1.2.3" in result.output
    assert "  ghcr.io/org/pkg:latest" in result.output
    assert "  org.opencontainers.image.version=v1.2.3" in result.output


def test_repository_flag_beats_image_config(workspace: Path) -> None:
    (workspace / "tagship.toml").write_text(
        '[image]\nrepository = "org/cfg"\n', encoding="utf-8"
    )
    result = runner.invoke(
        app, ["metadata", "--tag", "v1.2.3", "--repository", "org/cli", "--json"]
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["references"] == ["org/cli:v1.2.3"]


def test_image_config_beats_project_repository(workspace: Path) -> None:
    (workspace / "tagship.toml").write_text(
        '[project]\nrepository = "org/pkg"\n\n[image]\nrepository = "org/cfg"\n',
        encoding="utf-8",
    )
    result = runner.invoke(app, ["metadata", "--tag", "v1.2.3", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["image"] == "org/cfg"


def test_metadata_without_repository(workspace: Path) -> None:
    result = runner.invoke(app, ["metadata", "--tag", "v1.2.3"])
    assert result.exit_code == int(ErrorCode.ENV_ERROR)


def test_metadata_rejects_bad_timestamp(workspace: Path) -> None:
    result = runner.invoke(
        app, ["metadata", "--tag", "v1.2.3", "--repository", "org/pkg", "--created", "yesterday"]
    )
    assert result.exit_code == int(ErrorCode.USER_ERROR)
    assert "invalid build timestamp" in result.output


def test_invalid_config_is_env_error(workspace: Path) -> None:
    (workspace / "tagship.toml").write_text("[package]\ntool = 'npm'\n", encoding="utf-8")
    result = runner.invoke(app, ["resolve", "--tag", "v1.2.3"])
    assert result.exit_code == int(ErrorCode.ENV_ERROR)
    assert "package.tool" in result.output


def test_run_dry_run(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CRATES_TOKEN", "crates-token")
    (workspace / "Cargo.toml").write_text(
        '[package]\nname = "pkg"\nversion = "1.2.3"\n', encoding="utf-8"
    )
    result = runner.invoke(app, ["run", "--tag", "v1.2.3", "--repository", "org/pkg", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "cargo publish" in result.output
    assert "gh release create v1.2.3" in result.output
    assert "docker push org/pkg:v1.2.3" in result.output
    assert "status: succeeded" in result.output


def test_run_without_package_token_is_partial(
    workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    result = runner.invoke(app, ["run", "--tag", "v1.2.3", "--repository", "org/pkg", "--dry-run"])
    assert result.exit_code == int(ErrorCode.PARTIAL)
    assert "status: partially_succeeded" in result.output


def test_run_without_repository(workspace: Path) -> None:
    result = runner.invoke(app, ["run", "--tag", "v1.2.3"])
    assert result.exit_code == int(ErrorCode.ENV_ERROR)


def _report(status: RunStatus, error: ReleaseError | None = None) -> RunReport:
    return RunReport(
        status=status,
        package=BranchReport(name="package", state=BranchState.SUCCEEDED),
        image=BranchReport(name="image", state=BranchState.FAILED),
        error=error,
    )


@pytest.mark.parametrize(
    "status, expected",
    [
        (RunStatus.SUCCEEDED, ErrorCode.OK),
        (RunStatus.PARTIALLY_SUCCEEDED, ErrorCode.PARTIAL),
        (RunStatus.FAILED, ErrorCode.PUBLISH_ERROR),
    ],
)
def test_exit_code(status: RunStatus, expected: ErrorCode) -> None:
    assert exit_code(_report(status)) == expected


def test_exit_code_for_aborted_run() -> None:
    aborted = _report(RunStatus.FAILED, ReleaseError(kind="resolution", message="no tag"))
    assert exit_code(aborted) == ErrorCode.USER_ERROR


@pytest.mark.parametrize(
    "kind, expected",
    [
        ("resolution", ErrorCode.USER_ERROR),
        ("invalid_input", ErrorCode.USER_ERROR),
        ("metadata", ErrorCode.ENV_ERROR),
        ("credential", ErrorCode.ENV_ERROR),
        ("tool_missing", ErrorCode.ENV_ERROR),
        ("transient_network", ErrorCode.NETWORK_ERROR),
        ("duplicate_version", ErrorCode.PUBLISH_ERROR),
        ("build", ErrorCode.PUBLISH_ERROR),
    ],
)
def test_release_error_code(kind: str, expected: ErrorCode) -> None:
    assert release_error_code(kind) == expected


def test_print_report_redacts_secrets() -> None:
    report = RunReport(
        status=RunStatus.PARTIALLY_SUCCEEDED,
        package=BranchReport(
            name="package",
            state=BranchState.FAILED,
            error=ReleaseError(kind="credential", message="token s3cret rejected"),
        ),
        image=BranchReport(name="image", state=BranchState.SKIPPED),
    )
    console = MockConsole()

    print_report(report, console, redact=lambda text: text.replace("s3cret", "***"))

    assert "error: package: token *** rejected" in console.messages
    assert "image: skipped" in console.messages
    assert "status: partially_succeeded" in console.messages


def test_run_rejects_manifest_behind_tag(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CRATES_TOKEN", "crates-token")
    (workspace / "Cargo.toml").write_text(
        '[package]\nname = "pkg"\nversion = "1.2.2"\n', encoding="utf-8"
    )
    result = runner.invoke(app, ["run", "--tag", "v1.2.3", "--repository", "org/pkg", "--dry-run"])
    assert result.exit_code == int(ErrorCode.PARTIAL)
    assert "Cargo.toml declares 1.2.2, tag says 1.2.3" in result.output
