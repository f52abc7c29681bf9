from __future__ import annotations

from tagship.core.config import RetryConfig
from tagship.core.result import Err, Ok, Result
from tagship.release.errors import ReleaseError
from tagship.release.retry import RetryPolicy, retry_call

_TRANSIENT = ReleaseError(kind="transient_network", message="registry unreachable")


class _Flaky:
    def __init__(self, errors: list[ReleaseError]) -> None:
        self._errors = list(errors)
        self.calls = 0

    def __call__(self) -> Result[str, ReleaseError]:
        self.calls += 1
        if self._errors:
            return Err(self._errors.pop(0))
        return Ok("done")


def test_delay_grows_exponentially() -> None:
    policy = RetryPolicy(attempts=4, delay_seconds=1.5, backoff=2.0)
    assert [policy.delay_for(i) for i in range(3)] == [1.5, 3.0, 6.0]


def test_from_config() -> None:
    policy = RetryPolicy.from_config(RetryConfig(attempts=5, delay_seconds=0.5, backoff=3.0))
    assert policy == RetryPolicy(attempts=5, delay_seconds=0.5, backoff=3.0)
    assert RetryPolicy.none().attempts == 1


def test_transient_error_is_retried_until_success() -> None:
    op = _Flaky([_TRANSIENT, _TRANSIENT])
    slept: list[float] = []
    retried: list[int] = []

    result = retry_call(
        op,
        policy=RetryPolicy(attempts=3, delay_seconds=1.0, backoff=2.0),
        sleep=slept.append,
        on_retry=lambda attempt, _err: retried.append(attempt),
    )

    assert result == Ok("done")
    assert op.calls == 3
    assert slept == [1.0, 2.0]
    assert retried == [1, 2]


def test_gives_up_after_attempts() -> None:
    op = _Flaky([_TRANSIENT] * 5)
    slept: list[float] = []

    result = retry_call(op, policy=RetryPolicy(attempts=3), sleep=slept.append)

    assert isinstance(result, Err)
    assert result.error.kind == "transient_network"
    assert result.error.message == "registry unreachable (gave up after 3 attempts)"
    assert op.calls == 3
    assert len(slept) == 2


def test_non_retriable_error_returned_immediately() -> None:
    duplicate = ReleaseError(kind="duplicate_version", message="already exists")
    op = _Flaky([duplicate])
    slept: list[float] = []

    result = retry_call(op, policy=RetryPolicy(attempts=5), sleep=slept.append)

    assert result == Err(duplicate)
    assert op.calls == 1
    assert slept == []


def test_single_attempt_keeps_error_message() -> None:
    op = _Flaky([_TRANSIENT])
    result = retry_call(op, policy=RetryPolicy.none(), sleep=lambda _s: None)
    assert result == Err(_TRANSIENT)
