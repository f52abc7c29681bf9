from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from time import sleep as _sleep
from typing import TypeVar

from tagship.core.config import RetryConfig
from tagship.core.result import Err, Ok, Result
from tagship.release.errors import ReleaseError

Sleep = Callable[[float], None]

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry for transient network failures inside one pipeline."""

    attempts: int = 3
    delay_seconds: float = 1.0
    backoff: float = 2.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            attempts=max(1, config.attempts),
            delay_seconds=config.delay_seconds,
            backoff=config.backoff,
        )

    @classmethod
    def none(cls) -> RetryPolicy:
        return cls(attempts=1, delay_seconds=0.0)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        return self.delay_seconds * (self.backoff**attempt)


def retry_call(
    op: Callable[[], Result[T, ReleaseError]],
    *,
    policy: RetryPolicy,
    sleep: Sleep = _sleep,
    on_retry: Callable[[int, ReleaseError], None] | None = None,
) -> Result[T, ReleaseError]:
    """Run `op`, retrying only errors flagged as retriable.

    Non-retriable errors (duplicate version, bad credentials, build failures)
    are returned on first occurrence.
    """
    attempts = max(1, policy.attempts)
    last: ReleaseError | None = None
    for attempt in range(attempts):
        result = op()
        if isinstance(result, Ok):
            return result

        last = result.error
        if not last.retriable or attempt == attempts - 1:
            break

        if on_retry is not None:
            on_retry(attempt + 1, last)
        sleep(policy.delay_for(attempt))

    assert last is not None
    if last.retriable and attempts > 1:
        return Err(
            ReleaseError(
                kind=last.kind,
                message=f"{last.message} (gave up after {attempts} attempts)",
                hint=last.hint,
            )
        )
    return Err(last)
