"""Discriminated result returned by external API adapters.

``Ok(data)`` carries a successful answer, including an empty one ("no
matches"). ``Degraded(reason, source)`` means the upstream could not be
queried; callers decide whether to show an empty shape flagged as degraded
or to fail the request.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T


@dataclass(frozen=True)
class Degraded:
    reason: str
    source: str


Result = Ok[T] | Degraded
