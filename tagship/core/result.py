"""Result values for publish steps that can fail.

Every external call made during a release (git, registries, the hosting
platform, the container engine) can fail in an expected way. Those failures
travel as values so that one pipeline can report them without tearing down
the other.

Usage:
    match resolve_tags(context=ctx):
        case Ok(tags):
            print(tags.current)
        case Err(error):
            print(error.pretty())
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result: TypeAlias = "Ok[T] | Err[E]"
