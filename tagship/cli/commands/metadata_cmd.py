from __future__ import annotations

import json

import typer

from tagship.cli.commands._helpers import exit_on_release_error, exit_with, resolve_created
from tagship.cli.context import build_context, image_repository
from tagship.core.errors import ErrorCode
from tagship.core.result import Err
from tagship.release.metadata import ImageTagOptions, derive_metadata, parse_repository
from tagship.release.tags import load_event_context, resolve_tags


def metadata(
    tag: str | None = typer.Option(None, "--tag", help="Tag to release (default: GITHUB_REF)."),
    repository: str | None = typer.Option(
        None, "--repository", help="owner/name (default: config, then GITHUB_REPOSITORY)."
    ),
    revision: str | None = typer.Option(
        None, "--revision", help="Source revision label (default: GITHUB_SHA)."
    ),
    created: str | None = typer.Option(
        None, "--created", help="Build timestamp, unix seconds (default: SOURCE_DATE_EPOCH)."
    ),
    json_output: bool = typer.Option(False, "--json", help="Print JSON."),
) -> None:
    """Print the image tags and labels a release would use."""
    ctx = build_context()
    cfg = ctx.config.image

    repo = image_repository(ctx, repository)
    if repo is None:
        exit_with("no repository configured (use --repository)", code=ErrorCode.ENV_ERROR)

    context = load_event_context(workspace_root=ctx.workspace_root, env=ctx.env, explicit_tag=tag)
    resolved = resolve_tags(context=context)
    if isinstance(resolved, Err):
        exit_on_release_error(resolved.error, ctx.console)

    identity = parse_repository(repo, host=cfg.registry)
    if isinstance(identity, Err):
        exit_on_release_error(identity.error, ctx.console)

    derived = derive_metadata(
        identity.value,
        resolved.value.current,
        revision=revision or ctx.env.get("GITHUB_SHA") or None,
        created=resolve_created(created, ctx.env),
        options=ImageTagOptions(
            latest=cfg.latest,
            semver_aliases=cfg.semver_aliases,
            description=cfg.description,
            licenses=cfg.licenses,
        ),
    )
    if isinstance(derived, Err):
        exit_on_release_error(derived.error, ctx.console)
    meta = derived.value

    if json_output:
        payload = {
            "image": meta.image,
            "tags": list(meta.tags),
            "references": list(meta.references),
            "labels": dict(meta.labels),
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo("tags:")
    for ref in meta.references:
        typer.echo(f"  {ref}")
    typer.echo("labels:")
    for key, value in meta.labels.items():
        typer.echo(f"  {key}={value}")
