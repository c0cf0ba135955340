"""IPv4 extraction, validation and cross-source deduplication."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Set, Tuple

from .constants import EXCLUDED_PREFIXES, IPV4_PATTERN
from .fetcher import FetchOutcome, source_name
from .models import SourceResult, ip_sort_key

logger = logging.getLogger(__name__)

_IPV4_RE = re.compile(IPV4_PATTERN, re.IGNORECASE)
_OCTET = r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)"
_STRICT_IPV4_RE = re.compile(rf"^{_OCTET}\.{_OCTET}\.{_OCTET}\.{_OCTET}$")


def is_valid_ipv4(ip: str) -> bool:
    """Four dotted octets, each in [0, 255]."""
    return bool(_STRICT_IPV4_RE.fullmatch(ip))


def is_excluded(ip: str) -> bool:
    """Private/loopback rejection by string prefix (not a CIDR test)."""
    return ip.startswith(EXCLUDED_PREFIXES)


def is_candidate(ip: str) -> bool:
    return is_valid_ipv4(ip) and not is_excluded(ip)


def extract_ips(text: str) -> Tuple[List[str], List[str]]:
    """
    Scan text for dotted quads.

    Returns:
        ``(matches, accepted)``: every raw pattern match, and the matches that
        pass validation and prefix exclusion (in match order, may repeat)
    """
    matches = _IPV4_RE.findall(text or "")
    return matches, [ip for ip in matches if is_candidate(ip)]


def sort_ips(ips: Iterable[str]) -> List[str]:
    """Ascending by numeric IPv4 value."""
    return sorted(ips, key=ip_sort_key)


class IPCollector:
    """Accumulates accepted IPs across sources and records per-source results."""

    def __init__(self) -> None:
        self.ips: Set[str] = set()
        self.results: List[SourceResult] = []

    def add_text(self, url: str, text: str) -> SourceResult:
        matches, accepted = extract_ips(text)
        self.ips.update(accepted)
        # count reflects raw pattern matches, not validated or unique IPs
        result = SourceResult(name=source_name(url), status="success", count=len(matches))
        self.results.append(result)
        logger.debug(
            "%s: %d matches, %d accepted, %d unique so far",
            result.name,
            len(matches),
            len(accepted),
            len(self.ips),
        )
        return result

    def add_failure(self, url: str, error: str) -> SourceResult:
        result = SourceResult(name=source_name(url), status="error", error=error)
        self.results.append(result)
        return result

    def add_outcomes(self, outcomes: Iterable[FetchOutcome]) -> None:
        for url, outcome in outcomes:
            if outcome.ok:
                self.add_text(url, outcome.value)
            else:
                self.add_failure(url, outcome.detail)

    def sorted_ips(self) -> List[str]:
        return sort_ips(self.ips)
