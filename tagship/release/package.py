"""Package Publisher: push a pre-built artifact to a package registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from time import sleep as _sleep
from typing import Protocol

from tagship.core.result import Err, Ok, Result
from tagship.core.structured import as_str_dict, get_str, get_table
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
from tagship.release.model import ArtifactContext, PublishResult
from tagship.release.retry import RetryPolicy, Sleep, retry_call
from tagship.release.timeouts import PACKAGE_PUBLISH_TIMEOUT_SECONDS

_DUPLICATE_MARKERS = (
    "already exists",
    "already uploaded",
    "file already exists",
    "version already exists",
)


class PackageRegistry(Protocol):
    @property
    def name(self) -> str: ...

    def upload(
        self, artifact: ArtifactContext, *, token: str, verify: bool
    ) -> Result[str, ReleaseError]: ...


@dataclass(frozen=True, slots=True)
class PackageOptions:
    # Trust trade-off: skips the registry-side verification build. Unsafe for
    # first-time publishes of untrusted content.
    skip_verify: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def classify_registry_failure(error: ProcessError, *, registry: str) -> ReleaseError:
    text = error.output.lower()
    detail = first_line(error)

    if is_tool_missing(error):
        return ReleaseError(
            kind="tool_missing",
            message=f"{error.command[0]}: could not run",
            hint=error.stderr.strip() or None,
        )
    if any(marker in text for marker in _DUPLICATE_MARKERS):
        return ReleaseError(
            kind="duplicate_version",
            message=f"{registry} already has this version",
            hint="version numbers are assigned by the tag and must be unique",
        )
    if is_auth_failure(error):
        return ReleaseError(
            kind="credential",
            message=f"{registry} rejected the registry token",
            hint=detail,
        )
    if is_transient_failure(error):
        return ReleaseError(
            kind="transient_network",
            message=f"{registry} unreachable",
            hint=detail,
        )
    return ReleaseError(kind="publish", message=f"{registry} rejected the upload", hint=detail)


def crate_version(root: Path) -> Result[str, ReleaseError]:
    """Version declared by `root/Cargo.toml`, following `version.workspace = true`."""
    import tomllib

    manifest = root / "Cargo.toml"
    try:
        data = as_str_dict(tomllib.loads(manifest.read_text(encoding="utf-8")))
    except FileNotFoundError:
        return Err(ReleaseError(kind="invalid_input", message=f"no Cargo.toml in {root}"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        return Err(ReleaseError(kind="invalid_input", message=f"cannot read {manifest}: {e}"))

    package = get_table(data or {}, "package") or {}
    version = get_str(package, "version")
    if version is None and get_table(package, "version") is not None:
        workspace = get_table(get_table(data or {}, "workspace") or {}, "package") or {}
        version = get_str(workspace, "version")
    if version is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"cannot determine the crate version from {manifest}",
                hint="set [package].version",
            )
        )
    return Ok(version)


def is_distribution_for(filename: str, version: str) -> bool:
    """True for `name-VERSION.tar.gz`, `name-VERSION.zip` and `name-VERSION-*.whl`."""
    if filename.endswith((f"-{version}.tar.gz", f"-{version}.zip")):
        return True
    return filename.endswith(".whl") and f"-{version}-" in filename


class CargoRegistry:
    """crates.io (or any cargo registry) via `cargo publish`."""

    def __init__(
        self,
        *,
        console: ConsoleProtocol,
        dry_run: bool = False,
        registry: str | None = None,
        timeout: float = PACKAGE_PUBLISH_TIMEOUT_SECONDS,
    ) -> None:
        self._console = console
        self._dry_run = dry_run
        self._registry = registry
        self._timeout = timeout

    @property
    def name(self) -> str:
        return self._registry or "crates.io"

    def command(self, *, verify: bool) -> list[str]:
        cmd = ["cargo", "publish"]
        if self._registry:
            cmd.extend(["--registry", self._registry])
        if not verify:
            cmd.append("--no-verify")
        return cmd

    def upload(
        self, artifact: ArtifactContext, *, token: str, verify: bool
    ) -> Result[str, ReleaseError]:
        declared = crate_version(artifact.root)
        if isinstance(declared, Err):
            return declared
        if declared.value != artifact.version:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"Cargo.toml declares {declared.value}, tag says {artifact.version}",
                    hint="bump [package].version before tagging",
                )
            )

        cmd = self.command(verify=verify)
        self._console.print(" ".join(cmd), Style.DIM)
        if self._dry_run:
            return Ok("(dry-run)")

        # The token goes through the environment so it never shows up in argv.
        env_var = "CARGO_REGISTRY_TOKEN"
        if self._registry:
            env_var = f"CARGO_REGISTRIES_{self._registry.upper().replace('-', '_')}_TOKEN"
        result = run_process(cmd, cwd=artifact.root, env={env_var: token}, timeout=self._timeout)
        if isinstance(result, Err):
            return Err(classify_registry_failure(result.error, registry=self.name))
        return Ok(result.value)


class TwineRegistry:
    """PyPI (or a compatible index) via `twine upload` of `dist/*`."""

    def __init__(
        self,
        *,
        console: ConsoleProtocol,
        dry_run: bool = False,
        repository_url: str | None = None,
        timeout: float = PACKAGE_PUBLISH_TIMEOUT_SECONDS,
    ) -> None:
        self._console = console
        self._dry_run = dry_run
        self._repository_url = repository_url
        self._timeout = timeout

    @property
    def name(self) -> str:
        return self._repository_url or "pypi"

    def _dist_files(self, root: Path, version: str) -> list[str]:
        dist = root / "dist"
        if not dist.is_dir():
            return []
        found = sorted(p for p in dist.iterdir() if p.is_file())
        stale = [p.name for p in found if not is_distribution_for(p.name, version)]
        if stale:
            self._console.print(f"ignoring {len(stale)} file(s) not built for {version}", Style.DIM)
        return [str(p.relative_to(root)) for p in found if is_distribution_for(p.name, version)]

    def upload(
        self, artifact: ArtifactContext, *, token: str, verify: bool
    ) -> Result[str, ReleaseError]:
        files = self._dist_files(artifact.root, artifact.version)
        if not files and not self._dry_run:
            return Err(
                ReleaseError(
                    kind="publish",
                    message=f"no built distributions for {artifact.version}",
                    hint=str(artifact.root / "dist"),
                )
            )

        env = {"TWINE_USERNAME": "__token__", "TWINE_PASSWORD": token}
        if verify:
            check = ["twine", "check", "--strict", *files]
            self._console.print(" ".join(check[:3]) + " ...", Style.DIM)
            if not self._dry_run:
                checked = run_process(check, cwd=artifact.root, timeout=self._timeout)
                if isinstance(checked, Err):
                    return Err(
                        ReleaseError(
                            kind="publish",
                            message="twine check failed",
                            hint=first_line(checked.error),
                        )
                    )

        cmd = ["twine", "upload", "--non-interactive"]
        if self._repository_url:
            cmd.extend(["--repository-url", self._repository_url])
        cmd.extend(files)
        self._console.print(" ".join(cmd[:3]) + " ...", Style.DIM)
        if self._dry_run:
            return Ok("(dry-run)")

        result = run_process(cmd, cwd=artifact.root, env=env, timeout=self._timeout)
        if isinstance(result, Err):
            return Err(classify_registry_failure(result.error, registry=self.name))
        return Ok(result.value)


def publish_package(
    *,
    registry: PackageRegistry,
    artifact: ArtifactContext,
    token: str,
    options: PackageOptions,
    console: ConsoleProtocol,
    sleep: Sleep = _sleep,
) -> PublishResult:
    """Upload `artifact` as `artifact.version`.

    Duplicate versions and credential errors are fatal on first sight;
    transient network errors are retried per `options.retry`.
    """
    if not token:
        return PublishResult.failed(
            ReleaseError(
                kind="credential",
                message=f"missing token for {registry.name}",
                hint="set CRATES_TOKEN or PACKAGE_REGISTRY_TOKEN",
            )
        )

    if options.skip_verify:
        console.warning(
            f"publishing {artifact.version} without verification (trusting the local build)"
        )

    def on_retry(attempt: int, error: ReleaseError) -> None:
        console.warning(f"{error.message}; retrying ({attempt}/{options.retry.attempts - 1})")

    uploaded = retry_call(
        lambda: registry.upload(artifact, token=token, verify=not options.skip_verify),
        policy=options.retry,
        sleep=sleep,
        on_retry=on_retry,
    )
    if isinstance(uploaded, Err):
        return PublishResult.failed(uploaded.error)

    return PublishResult.ok(f"published {artifact.version} to {registry.name}")
