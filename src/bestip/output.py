"""Plain-text renderings of stored snapshots."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .constants import DEFAULT_PORT, UNKNOWN_COUNTRY


def _items(snapshot: Mapping[str, Any], key: str) -> List[Dict[str, Any]]:
    return [item for item in snapshot.get(key) or [] if isinstance(item, dict) and item.get("ip")]


def generate_ip_list(snapshot: Mapping[str, Any]) -> str:
    """One IP per line."""
    return "\n".join(item["ip"] for item in _items(snapshot, "ips"))


def generate_formatted_list(snapshot: Mapping[str, Any], port: int = DEFAULT_PORT) -> str:
    """``ip:port#CC`` per line."""
    return "\n".join(
        f"{item['ip']}:{port}#{item.get('country') or UNKNOWN_COUNTRY}"
        for item in _items(snapshot, "ips")
    )


def generate_fast_list(snapshot: Mapping[str, Any], port: int = DEFAULT_PORT) -> str:
    """``ip:port#CC_<latency>ms`` per line, in ranked order."""
    lines = []
    for item in _items(snapshot, "fastIPs"):
        latency = item.get("latencyMs", item.get("latency")) or 0
        country = item.get("country") or UNKNOWN_COUNTRY
        lines.append(f"{item['ip']}:{port}#{country}_{round(float(latency))}ms")
    return "\n".join(lines)


def generate_itdog_payload(snapshot: Mapping[str, Any]) -> Dict[str, Any]:
    """IP-only payload for batch testing tools such as ITDog."""
    ips = [item["ip"] for item in _items(snapshot, "ips")]
    return {"ips": ips, "count": snapshot.get("count", len(ips))}


def generate_status(full: Mapping[str, Any], fast: Mapping[str, Any], fast_ip_count: int) -> Dict[str, Any]:
    return {
        "totalIPs": full.get("count", 0),
        "fastIPs": fast.get("count", 0),
        "fastIPLimit": fast_ip_count,
        "lastUpdated": full.get("lastUpdated"),
        "lastTested": fast.get("lastTested"),
        "sources": full.get("sources", []),
    }
