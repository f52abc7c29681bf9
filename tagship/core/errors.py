"""Process exit codes for the tagship CLI.

The numeric values are part of the CLI contract (CI jobs branch on them) and
must stay stable:
- 0: the run succeeded (every pipeline succeeded or was skipped)
- 1: user error (bad input, no version tag to release)
- 2: environment error (config, credentials, missing tools)
- 3: publish error (both pipelines failed)
- 4: network error (hosting platform or registry unreachable)
- 5: partial release (one pipeline failed, the other succeeded)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    PUBLISH_ERROR = 3
    NETWORK_ERROR = 4
    PARTIAL = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
