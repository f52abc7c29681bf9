"""Shared helpers for CLI commands."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import NoReturn

import typer

from tagship.core.errors import ErrorCode
from tagship.output.console import ConsoleProtocol, Style
from tagship.release.errors import ReleaseError
from tagship.release.metadata import created_from_epoch


def exit_with(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def release_error_code(kind: str) -> ErrorCode:
    if kind in {"resolution", "invalid_input"}:
        return ErrorCode.USER_ERROR
    if kind in {"credential", "tool_missing", "metadata"}:
        return ErrorCode.ENV_ERROR
    if kind in {"transient_network"}:
        return ErrorCode.NETWORK_ERROR
    return ErrorCode.PUBLISH_ERROR


def exit_on_release_error(error: ReleaseError, console: ConsoleProtocol) -> NoReturn:
    console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
    raise typer.Exit(code=int(release_error_code(error.kind)))


def resolve_created(value: str | None, env: Mapping[str, str]) -> datetime | None:
    """Build timestamp from --created or SOURCE_DATE_EPOCH (unix seconds)."""
    raw = value or env.get("SOURCE_DATE_EPOCH")
    if not raw:
        return None
    try:
        return created_from_epoch(int(raw.strip()))
    except (ValueError, OverflowError, OSError):
        exit_with(
            f"invalid build timestamp (expected unix seconds): {raw}",
            code=ErrorCode.USER_ERROR,
        )
