"""Classification of external tool failures from their output."""

from __future__ import annotations

from tagship.platform.process import NO_EXIT_STATUS, ProcessError

_TRANSIENT_MARKERS = (
    "timed out",
    "timeout",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "tls handshake timeout",
    "network is unreachable",
    "remote end hung up unexpectedly",
    "could not resolve host",
    "i/o timeout",
    "unexpected eof",
    "http 429",
    "too many requests",
    "http 500",
    "http 502",
    "http 503",
    "http 504",
    "status 502",
    "status 503",
    "status 504",
)

_AUTH_MARKERS = (
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "authentication required",
    "authentication failed",
    "invalid token",
    "invalid credentials",
    "incorrect username or password",
    "denied: requested access",
    "please run `cargo login`",
    "no token found",
    "bad credentials",
)


def _text(error: ProcessError) -> str:
    return error.output.lower()


def is_transient_failure(error: ProcessError) -> bool:
    if error.timed_out:
        return True
    text = _text(error)
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def is_auth_failure(error: ProcessError) -> bool:
    text = _text(error)
    return any(marker in text for marker in _AUTH_MARKERS)


def is_tool_missing(error: ProcessError) -> bool:
    # run() reports exec failures (ENOENT) without an exit status and no timeout.
    return error.returncode == NO_EXIT_STATUS and not error.timed_out


def first_line(error: ProcessError) -> str | None:
    for line in error.output.splitlines():
        line = line.strip()
        if line:
            return line
    return None
