from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import UNKNOWN_COUNTRY


def ip_sort_key(ip: str) -> int:
    """Big-endian 32-bit value of a dotted-quad address."""
    a, b, c, d = (int(part) for part in ip.split("."))
    return (a << 24) | (b << 16) | (c << 8) | d


@dataclass(frozen=True, slots=True)
class CandidateIP:
    """An accepted IPv4 address and the country it was resolved to."""

    ip: str
    country: str = UNKNOWN_COUNTRY

    def to_dict(self) -> Dict[str, Any]:
        return {"ip": self.ip, "country": self.country}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateIP":
        return cls(ip=str(data["ip"]), country=str(data.get("country") or UNKNOWN_COUNTRY))


@dataclass(slots=True)
class SourceResult:
    """Outcome of fetching and scanning one configured source."""

    name: str
    status: str
    count: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "status": self.status}
        if self.count is not None:
            data["count"] = self.count
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class ProbeResult:
    """A successful latency probe.

    ``latency_ms`` is wall-clock time for the single trace request, ``country``
    is the trace's ``loc`` field (or the previously known country) and
    ``colo`` is the data-center code that answered.
    """

    ip: str
    latency_ms: float
    country: str = UNKNOWN_COUNTRY
    colo: str = UNKNOWN_COUNTRY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "latencyMs": self.latency_ms,
            "country": self.country,
            "colo": self.colo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProbeResult":
        latency = data.get("latencyMs", data.get("latency"))
        return cls(
            ip=str(data["ip"]),
            latency_ms=float(latency),
            country=str(data.get("country") or UNKNOWN_COUNTRY),
            colo=str(data.get("colo") or UNKNOWN_COUNTRY),
        )


@dataclass
class FullSnapshot:
    ips: List[CandidateIP]
    last_updated: str
    sources: List[SourceResult] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.ips)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ips": [item.to_dict() for item in self.ips],
            "lastUpdated": self.last_updated,
            "count": self.count,
            "sources": [source.to_dict() for source in self.sources],
        }


@dataclass
class FastSnapshot:
    fast_ips: List[ProbeResult]
    last_tested: str

    @property
    def count(self) -> int:
        return len(self.fast_ips)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fastIPs": [item.to_dict() for item in self.fast_ips],
            "lastTested": self.last_tested,
            "count": self.count,
        }
