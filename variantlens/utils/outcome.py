# variantlens/utils/outcome.py
"""Tri-state call outcomes returned by the gateway and every client above it.

    Data(value)   the dependency answered and the body parsed
    Absent()      the dependency answered that nothing exists (e.g. HTTP 404)
    Unavailable   the dependency could not be reached or trusted

Expected absence and upstream failure are ordinary return values; only input
validation errors and programming errors are raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class UnavailableReason(str, Enum):
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_5XX = "upstream_5xx"
    NETWORK_ERROR = "network_error"
    BAD_RESPONSE = "bad_response"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Data(Generic[T]):
    value: T


@dataclass(frozen=True)
class Absent:
    dependency: Optional[str] = None


@dataclass(frozen=True)
class Unavailable:
    reason: UnavailableReason
    dependency: str
    detail: Optional[str] = None
    status_code: Optional[int] = None


CallOutcome = Union[Data[T], Absent, Unavailable]


def describe(outcome: Any) -> str:
    """Short label for logs: 'data', 'absent' or 'unavailable:<reason>'."""
    if isinstance(outcome, Data):
        return "data"
    if isinstance(outcome, Absent):
        return "absent"
    if isinstance(outcome, Unavailable):
        return f"unavailable:{outcome.reason.value}"
    raise TypeError(f"not a call outcome: {outcome!r}")
