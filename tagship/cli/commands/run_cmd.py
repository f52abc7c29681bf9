from __future__ import annotations

from collections.abc import Callable

import typer

from tagship.cli.commands._helpers import exit_with, resolve_created
from tagship.cli.context import CLIContext, build_context, image_repository, source_repository
from tagship.core.errors import ErrorCode
from tagship.output.console import BranchConsole, ConsoleProtocol, Style
from tagship.release.image import DockerEngine
from tagship.release.metadata import ImageTagOptions
from tagship.release.model import BuildContext
from tagship.release.notes import GhReleasePlatform
from tagship.release.orchestrator import (
    BranchReport,
    BranchState,
    Collaborators,
    ReleaseSettings,
    RunReport,
    RunStatus,
    run_release,
)
from tagship.release.package import CargoRegistry, PackageOptions, PackageRegistry, TwineRegistry
from tagship.release.retry import RetryPolicy
from tagship.release.tags import load_event_context


def run(
    tag: str | None = typer.Option(None, "--tag", help="Tag to release (default: GITHUB_REF)."),
    repository: str | None = typer.Option(
        None, "--repository", help="owner/name (default: config, then GITHUB_REPOSITORY)."
    ),
    created: str | None = typer.Option(
        None, "--created", help="Build timestamp, unix seconds (default: SOURCE_DATE_EPOCH)."
    ),
    skip_package: bool = typer.Option(False, "--skip-package", help="Do not publish the package."),
    skip_image: bool = typer.Option(False, "--skip-image", help="Do not build/push the image."),
    no_verify: bool = typer.Option(
        False, "--no-verify", help="Publish the package without registry verification."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print commands without running them."),
) -> None:
    """Publish the package, release note and container image for a version tag."""
    ctx = build_context()

    source_repo = source_repository(ctx, repository)
    if source_repo is None:
        exit_with(
            "no repository configured (set project.repository or use --repository)",
            code=ErrorCode.ENV_ERROR,
        )
    image_repo = image_repository(ctx, repository) or source_repo

    settings = _settings(
        ctx,
        source_repo=source_repo,
        created=created,
        skip_package=skip_package,
        skip_image=skip_image,
        no_verify=no_verify,
    )
    collaborators = _collaborators(
        ctx, source_repo=source_repo, retry=settings.retry, dry_run=dry_run
    )
    if dry_run:
        ctx.console.warning("dry-run: no external command will be executed")

    context = load_event_context(workspace_root=ctx.workspace_root, env=ctx.env, explicit_tag=tag)
    report = run_release(
        context=context,
        repository=image_repo,
        settings=settings,
        secrets=ctx.secrets,
        collaborators=collaborators,
        console=ctx.console,
    )

    print_report(report, ctx.console, redact=ctx.secrets.redact)
    code = exit_code(report)
    if code.is_error:
        raise typer.Exit(code=int(code))


def _settings(
    ctx: CLIContext,
    *,
    source_repo: str,
    created: str | None,
    skip_package: bool,
    skip_image: bool,
    no_verify: bool,
) -> ReleaseSettings:
    cfg = ctx.config
    retry = RetryPolicy.from_config(cfg.retry)
    dockerfile = ctx.workspace_root / cfg.image.dockerfile if cfg.image.dockerfile else None

    return ReleaseSettings(
        project_name=cfg.project.name or source_repo.rsplit("/", 1)[-1],
        artifact_root=ctx.workspace_root / cfg.package.path,
        build_context=BuildContext(
            path=ctx.workspace_root / cfg.image.context, dockerfile=dockerfile
        ),
        package_enabled=cfg.package.enabled and not skip_package,
        image_enabled=cfg.image.enabled and not skip_image,
        package=PackageOptions(skip_verify=cfg.package.skip_verify or no_verify, retry=retry),
        note_template=cfg.release,
        image_options=ImageTagOptions(
            latest=cfg.image.latest,
            semver_aliases=cfg.image.semver_aliases,
            description=cfg.image.description,
            licenses=cfg.image.licenses,
        ),
        image_host=cfg.image.registry,
        retry=retry,
        revision=ctx.env.get("GITHUB_SHA") or None,
        created=resolve_created(created, ctx.env),
    )


def _collaborators(
    ctx: CLIContext, *, source_repo: str, retry: RetryPolicy, dry_run: bool
) -> Collaborators:
    package_console = BranchConsole(ctx.console, "package")
    registry: PackageRegistry
    if ctx.config.package.tool == "twine":
        registry = TwineRegistry(console=package_console, dry_run=dry_run)
    else:
        registry = CargoRegistry(console=package_console, dry_run=dry_run)

    return Collaborators(
        registry=registry,
        platform=GhReleasePlatform(
            workspace_root=ctx.workspace_root,
            repo=source_repo,
            token=ctx.secrets.platform_token,
            console=package_console,
            dry_run=dry_run,
            retry=retry,
        ),
        engine=DockerEngine(
            workspace_root=ctx.workspace_root,
            console=BranchConsole(ctx.console, "image"),
            dry_run=dry_run,
        ),
    )


def exit_code(report: RunReport) -> ErrorCode:
    if report.error is not None:
        return ErrorCode.USER_ERROR
    match report.status:
        case RunStatus.SUCCEEDED:
            return ErrorCode.OK
        case RunStatus.PARTIALLY_SUCCEEDED:
            return ErrorCode.PARTIAL
        case _:
            return ErrorCode.PUBLISH_ERROR


def _print_branch(
    branch: BranchReport, console: ConsoleProtocol, redact: Callable[[str], str]
) -> None:
    if branch.state == BranchState.SKIPPED:
        console.print(f"{branch.name}: skipped", Style.DIM)
        return
    if branch.state == BranchState.SUCCEEDED:
        console.success(f"{branch.name}: {branch.state}")
    else:
        reason = branch.error.pretty() if branch.error is not None else str(branch.state)
        console.error(redact(f"{branch.name}: {reason}"))

    if branch.release is not None and branch.release.url:
        console.print(f"  release: {branch.release.url}", Style.DIM)
    if branch.publish is not None:
        for push in branch.publish.tag_results:
            mark = "ok" if push.ok else "FAILED"
            console.print(f"  {mark} {push.reference}", Style.DIM)


def print_report(
    report: RunReport,
    console: ConsoleProtocol,
    *,
    redact: Callable[[str], str] = lambda text: text,
) -> None:
    """Per-branch summary; error text passes through `redact` before printing."""
    console.header("Summary")
    if report.error is not None:
        console.error(redact(f"run aborted: {report.error.pretty()}"))
        return
    for branch in report.branches:
        _print_branch(branch, console, redact)
    console.print(f"status: {report.status}", Style.DIM)
