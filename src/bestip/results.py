"""Tagged outcomes for best-effort external calls.

Every call that may fail without aborting a run (one source fetch, one
geolocation batch, one probe) returns either ``Ok(value)`` or
``Err(kind, detail)`` so callers match on the failure kind instead of
comparing message strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    SOURCE_UNAVAILABLE = "source_unavailable"
    GEO_LOOKUP_FAILED = "geo_lookup_failed"
    PROBE_FAILED = "probe_failed"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    MALFORMED_STORED_DATA = "malformed_stored_data"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str
    subject: Any = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
