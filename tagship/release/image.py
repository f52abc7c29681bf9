"""Image Publisher: build a container image and push every derived tag."""

from __future__ import annotations

from pathlib import Path
from time import sleep as _sleep
from typing import Protocol

from tagship.core.result import Err, Ok, Result
from tagship.core.secrets import RegistryCredentials
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
from tagship.release.model import BuildContext, ImageMetadata, PublishResult, TagPushResult
from tagship.release.retry import RetryPolicy, Sleep, retry_call
from tagship.release.timeouts import (
    DOCKER_BUILD_TIMEOUT_SECONDS,
    DOCKER_LOGIN_TIMEOUT_SECONDS,
    DOCKER_PUSH_TIMEOUT_SECONDS,
)


class ImageEngine(Protocol):
    def login(
        self, registry: str | None, credentials: RegistryCredentials
    ) -> Result[None, ReleaseError]: ...

    def build(
        self, context: BuildContext, metadata: ImageMetadata
    ) -> Result[None, ReleaseError]: ...

    def push(self, reference: str) -> Result[None, ReleaseError]: ...


def registry_host(image: str) -> str | None:
    """Registry host of an image name, None for Docker Hub.

    Follows the docker reference rule: the first path component is a host
    only if it contains a dot or a port, or is `localhost`.
    """
    first, sep, _ = image.partition("/")
    if not sep:
        return None
    if "." in first or ":" in first or first == "localhost":
        return first
    return None


def _classify_docker_failure(error: ProcessError, *, kind: str, message: str) -> ReleaseError:
    if is_tool_missing(error):
        return ReleaseError(
            kind="tool_missing",
            message="docker: could not run",
            hint=error.stderr.strip() or None,
        )
    if is_auth_failure(error):
        return ReleaseError(kind="credential", message=message, hint=first_line(error))
    if kind == "push" and is_transient_failure(error):
        return ReleaseError(kind="transient_network", message=message, hint=first_line(error))
    return ReleaseError(
        kind="build" if kind == "build" else "publish",
        message=message,
        hint=first_line(error),
    )


class DockerEngine:
    """Docker CLI backend."""

    def __init__(
        self,
        *,
        workspace_root: Path,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> None:
        self._workspace_root = workspace_root
        self._console = console
        self._dry_run = dry_run

    def login(
        self, registry: str | None, credentials: RegistryCredentials
    ) -> Result[None, ReleaseError]:
        cmd = ["docker", "login", "--username", credentials.username, "--password-stdin"]
        if registry:
            cmd.append(registry)
        self._console.print(" ".join(cmd), Style.DIM)
        if self._dry_run:
            return Ok(None)

        result = run_process(
            cmd,
            cwd=self._workspace_root,
            timeout=DOCKER_LOGIN_TIMEOUT_SECONDS,
            stdin=credentials.token,
        )
        if isinstance(result, Err):
            error = _classify_docker_failure(
                result.error, kind="login", message=f"login to {registry or 'docker.io'} failed"
            )
            if error.kind == "publish":
                error = ReleaseError(kind="credential", message=error.message, hint=error.hint)
            return Err(error)
        return Ok(None)

    def build_command(self, context: BuildContext, metadata: ImageMetadata) -> list[str]:
        cmd = ["docker", "build"]
        if context.dockerfile is not None:
            cmd.extend(["--file", str(context.dockerfile)])
        for ref in metadata.references:
            cmd.extend(["--tag", ref])
        for key, value in metadata.labels.items():
            cmd.extend(["--label", f"{key}={value}"])
        cmd.append(str(context.path))
        return cmd

    def build(self, context: BuildContext, metadata: ImageMetadata) -> Result[None, ReleaseError]:
        cmd = self.build_command(context, metadata)
        self._console.print(f"docker build {context.path} ({len(metadata.tags)} tags)", Style.DIM)
        if self._dry_run:
            return Ok(None)

        result = run_process(cmd, cwd=self._workspace_root, timeout=DOCKER_BUILD_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                _classify_docker_failure(
                    result.error, kind="build", message=f"image build failed: {metadata.image}"
                )
            )
        return Ok(None)

    def push(self, reference: str) -> Result[None, ReleaseError]:
        self._console.print(f"docker push {reference}", Style.DIM)
        if self._dry_run:
            return Ok(None)

        result = run_process(
            ["docker", "push", reference],
            cwd=self._workspace_root,
            timeout=DOCKER_PUSH_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return Err(
                _classify_docker_failure(
                    result.error, kind="push", message=f"push failed: {reference}"
                )
            )
        return Ok(None)


def _login(
    engine: ImageEngine,
    metadata: ImageMetadata,
    credentials: RegistryCredentials,
    console: ConsoleProtocol,
) -> Result[None, ReleaseError]:
    if not credentials.username and not credentials.token:
        console.warning("no image registry credentials; relying on an existing docker login")
        return Ok(None)
    if not credentials.is_complete:
        return Err(
            ReleaseError(
                kind="credential",
                message="incomplete image registry credentials",
                hint="set both DOCKERHUB_USERNAME and DOCKERHUB_TOKEN",
            )
        )
    return engine.login(registry_host(metadata.image), credentials)


def build_and_push(
    *,
    engine: ImageEngine,
    build_context: BuildContext,
    metadata: ImageMetadata,
    credentials: RegistryCredentials,
    retry: RetryPolicy,
    console: ConsoleProtocol,
    sleep: Sleep = _sleep,
) -> PublishResult:
    """Build one image carrying every tag and label, then push tag by tag.

    Pushes are reported per reference: a partial push fails the pipeline and
    names the references left inconsistent. A credential rejection during a
    push stops the remaining pushes.
    """
    logged_in = _login(engine, metadata, credentials, console)
    if isinstance(logged_in, Err):
        return PublishResult.failed(logged_in.error)

    built = engine.build(build_context, metadata)
    if isinstance(built, Err):
        return PublishResult.failed(built.error)

    results: list[TagPushResult] = []
    halted: ReleaseError | None = None
    for ref in metadata.references:
        if halted is not None:
            results.append(
                TagPushResult(
                    reference=ref,
                    ok=False,
                    error=ReleaseError(kind=halted.kind, message=f"not pushed: {ref}"),
                )
            )
            continue

        def on_retry(attempt: int, error: ReleaseError, ref: str = ref) -> None:
            console.warning(f"{error.message}; retrying {ref} ({attempt}/{retry.attempts - 1})")

        pushed = retry_call(
            lambda ref=ref: engine.push(ref),
            policy=retry,
            sleep=sleep,
            on_retry=on_retry,
        )
        if isinstance(pushed, Err):
            results.append(TagPushResult(reference=ref, ok=False, error=pushed.error))
            if pushed.error.kind == "credential":
                halted = pushed.error
            continue
        results.append(TagPushResult(reference=ref, ok=True))

    tag_results = tuple(results)
    failed = [r for r in tag_results if not r.ok]
    if not failed:
        return PublishResult.ok(
            *(f"pushed {r.reference}" for r in tag_results), tag_results=tag_results
        )

    first = failed[0].error
    assert first is not None
    pushed_count = len(tag_results) - len(failed)
    diagnostic = ReleaseError(
        kind=first.kind,
        message=f"pushed {pushed_count}/{len(tag_results)} tags",
        hint="inconsistent: " + ", ".join(r.reference for r in failed),
    )
    details: list[str] = []
    for r in tag_results:
        if r.ok:
            details.append(f"pushed {r.reference}")
        elif r.error is not None:
            details.append(f"failed {r.reference}: {r.error.message}")
    return PublishResult.failed(diagnostic, *details, tag_results=tag_results)
