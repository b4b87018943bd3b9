"""Outcomes of resolving a download count.

A resolution either recovered a value (possibly from cache, as a fallback)
or failed with no value to serve.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class Disposition(str, Enum):
    """How a recovered value was obtained."""

    MISS = "miss"
    HIT_FRESH = "hit_fresh"
    UNCHANGED = "unchanged"
    RATE_LIMITED = "rate_limited"
    CHANGED = "changed"
    FALLBACK = "fallback"


class ErrorKind(str, Enum):
    """Why no value could be resolved."""

    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_UNEXPECTED_STATUS = "upstream_unexpected_status"
    CACHE_UNAVAILABLE = "cache_unavailable"
    INCOMPLETE_PAGINATION = "incomplete_pagination"


@dataclass(frozen=True)
class Recovered(Generic[T]):
    value: T
    disposition: Disposition


@dataclass(frozen=True)
class Failed:
    kind: ErrorKind
    detail: str = ""


Resolution = Union[Recovered[int], Failed]
