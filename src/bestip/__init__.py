"""
bestip - Cloudflare candidate IP collector

Scrapes candidate IPv4 addresses from public lists, geolocates them, probes
their latency and keeps ranked snapshots in a key-value store.
"""

import asyncio
import sys

__version__ = "1.0.0"

# Proactor loops on Windows log spurious errors when httpx connections close
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

_LAZY = {
    "Orchestrator": ".pipeline",
    "AppSettings": ".config",
    "LatencyProber": ".prober",
    "extract_ips": ".extractor",
}


def __getattr__(name):
    """Import the public names on first use so ``bestip --help`` stays fast."""
    module = _LAZY.get(name)
    if module is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module, __name__), name)


__all__ = ["Orchestrator", "AppSettings", "LatencyProber", "extract_ips", "__version__"]
