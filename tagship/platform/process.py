"""The one place tagship starts external programs.

git, cargo, twine, gh and docker are all invoked through `run`. Output is
captured; a non-zero exit, a timeout or an executable that cannot be started
comes back as a ProcessError value, so callers classify failures instead of
catching exceptions.

Example:
    pushed = run(["docker", "push", ref], cwd=root, timeout=600)
    if isinstance(pushed, Err):
        console.error(str(pushed.error))
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from tagship.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run"]

# Reported when the process never produced an exit status of its own.
NO_EXIT_STATUS = -1


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A tool invocation that did not exit cleanly.

    `returncode` is NO_EXIT_STATUS when the executable could not be started
    or was killed on timeout; `stderr` then holds the reason.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """stderr then stdout, as one block for failure classification."""
        return f"{self.stderr}\n{self.stdout}".strip()

    @property
    def timed_out(self) -> bool:
        return self.returncode == NO_EXIT_STATUS and "timed out" in self.stderr

    def __str__(self) -> str:
        shown = " ".join(self.command[:2])
        if len(self.command) > 2:
            shown += " ..."
        return f"`{shown}` exited with {self.returncode}"


def _failed(
    cmd: list[str], returncode: int, *, stdout: str = "", stderr: str = ""
) -> Err[ProcessError]:
    return Err(ProcessError(tuple(cmd), returncode, stdout, stderr))


def run(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
    stdin: str | None = None,
) -> Result[str, ProcessError]:
    """Run `cmd` in `cwd` and capture its output.

    Args:
        cmd: Program and arguments. Never put credentials here.
        cwd: Directory the program runs in.
        env: Variables added on top of the inherited environment; this is
            where tokens go.
        timeout: Seconds before the program is killed; None waits forever.
        stdin: Text fed to the program's standard input.

    Returns:
        Ok(stdout) when the program exits 0, Err(ProcessError) otherwise.
    """
    merged = {**os.environ, **env} if env else None

    try:
        completed = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=merged,
            input=stdin,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.stdout if isinstance(e.stdout, str) else ""
        return _failed(
            cmd, NO_EXIT_STATUS, stdout=partial, stderr=f"Command timed out after {timeout}s"
        )
    except OSError as e:
        return _failed(cmd, NO_EXIT_STATUS, stderr=str(e))

    if completed.returncode == 0:
        return Ok(completed.stdout)
    return _failed(
        cmd, completed.returncode, stdout=completed.stdout, stderr=completed.stderr
    )
