import os
from dataclasses import dataclass, field
from typing import Tuple

from . import constants


def _env_sources() -> Tuple[str, ...]:
    raw = os.getenv("SOURCE_URLS", "")
    sources = tuple(url.strip() for url in raw.split(",") if url.strip())
    return sources or constants.DEFAULT_SOURCE_URLS


@dataclass
class AppSettings:
    """Centralized configuration handed to the orchestrator"""

    # Collection
    SOURCE_URLS: Tuple[str, ...] = field(default_factory=_env_sources)
    FETCH_TIMEOUT: float = float(os.getenv("FETCH_TIMEOUT", str(constants.FETCH_TIMEOUT)))

    # Geolocation
    GEO_BACKEND: str = os.getenv("GEO_BACKEND", "ip-api")  # "ip-api" or "maxmind"
    GEO_BATCH_SIZE: int = int(os.getenv("GEO_BATCH_SIZE", str(constants.GEO_BATCH_SIZE)))
    GEO_BATCH_DELAY: float = float(os.getenv("GEO_BATCH_DELAY", str(constants.GEO_BATCH_DELAY)))
    GEO_TIMEOUT: float = float(os.getenv("GEO_TIMEOUT", str(constants.GEO_TIMEOUT)))
    GEO_API_URL: str = os.getenv("GEO_API_URL", constants.IP_API_BATCH_URL)
    GEOIP_DB_PATH: str = os.getenv("GEOIP_DB_PATH", "data/GeoLite2-Country.mmdb")

    # Latency probing
    FAST_IP_COUNT: int = int(os.getenv("FAST_IP_COUNT", str(constants.FAST_IP_COUNT)))
    PROBE_TIMEOUT: float = float(os.getenv("PROBE_TIMEOUT", str(constants.PROBE_TIMEOUT)))
    PROBE_SAMPLE_SIZE: int = int(
        os.getenv("PROBE_SAMPLE_SIZE", str(constants.PROBE_SAMPLE_SIZE))
    )
    PROBE_BATCH_SIZE: int = int(os.getenv("PROBE_BATCH_SIZE", str(constants.PROBE_BATCH_SIZE)))
    PROBE_BATCH_DELAY: float = float(
        os.getenv("PROBE_BATCH_DELAY", str(constants.PROBE_BATCH_DELAY))
    )
    TRACE_HOST: str = os.getenv("TRACE_HOST", constants.DEFAULT_TRACE_HOST)

    # Storage and scheduling
    STORAGE_PATH: str = os.getenv("BESTIP_STORAGE_PATH", "data/bestip.db")
    UPDATE_INTERVAL: int = int(os.getenv("UPDATE_INTERVAL", "3600"))  # seconds

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("BESTIP_LOG_FILE", "")

    def __post_init__(self) -> None:
        self.SOURCE_URLS = tuple(self.SOURCE_URLS)
        if self.FAST_IP_COUNT < 0:
            raise ValueError("FAST_IP_COUNT must not be negative")
        if self.GEO_BATCH_SIZE < 1 or self.PROBE_BATCH_SIZE < 1:
            raise ValueError("Batch sizes must be at least 1")
        if self.GEO_BACKEND not in ("ip-api", "maxmind"):
            raise ValueError(f"Unknown GEO_BACKEND: {self.GEO_BACKEND}")
