from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import typer

from tagship.core.config import CONFIG_FILE_NAME, Config, load_config_or_default
from tagship.core.errors import ErrorCode
from tagship.core.result import Err
from tagship.core.secrets import Secrets, load_secrets
from tagship.output.console import ConsoleProtocol, RichConsole

WORKSPACE_ENV = "TAGSHIP_WORKSPACE"


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Everything a command needs, captured once at start."""

    workspace_root: Path
    config: Config
    secrets: Secrets
    env: Mapping[str, str]
    console: ConsoleProtocol


def find_workspace_root(start: Path) -> Path:
    """Nearest directory holding tagship.toml or .git, else `start`."""
    for parent in (start, *start.parents):
        if (parent / CONFIG_FILE_NAME).is_file() or (parent / ".git").exists():
            return parent
    return start


def build_context(*, env: Mapping[str, str] | None = None) -> CLIContext:
    environ: dict[str, str] = dict(os.environ if env is None else env)

    override = environ.get(WORKSPACE_ENV)
    if override:
        root = Path(override).expanduser().resolve()
    else:
        root = find_workspace_root(Path.cwd().resolve())

    config_result = load_config_or_default(root / CONFIG_FILE_NAME)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        workspace_root=root,
        config=config_result.value,
        secrets=load_secrets(environ),
        env=environ,
        console=RichConsole(),
    )


def source_repository(ctx: CLIContext, override: str | None) -> str | None:
    """owner/name of the hosting-platform repository."""
    return override or ctx.config.project.repository or ctx.env.get("GITHUB_REPOSITORY") or None


def image_repository(ctx: CLIContext, override: str | None) -> str | None:
    """owner/name the image is published under; an explicit flag wins over config."""
    return override or ctx.config.image_repository or ctx.env.get("GITHUB_REPOSITORY") or None
