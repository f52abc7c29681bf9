from __future__ import annotations

import typer

from tagship.cli.context import build_context
from tagship.cli.commands._helpers import exit_on_release_error
from tagship.core.result import Err
from tagship.release.tags import load_event_context, resolve_tags


def resolve(
    tag: str | None = typer.Option(None, "--tag", help="Tag to release (default: GITHUB_REF)."),
) -> None:
    """Print the tag being released and the previous release tag."""
    ctx = build_context()
    context = load_event_context(workspace_root=ctx.workspace_root, env=ctx.env, explicit_tag=tag)

    resolved = resolve_tags(context=context)
    if isinstance(resolved, Err):
        exit_on_release_error(resolved.error, ctx.console)

    typer.echo(f"current: {resolved.value.current}")
    typer.echo(f"previous: {resolved.value.previous or '-'}")
