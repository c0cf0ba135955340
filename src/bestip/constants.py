"""Centralized constants for all modules."""

# Public lists scraped for candidate IPs
DEFAULT_SOURCE_URLS = (
    "https://ip.164746.xyz",
    "https://ip.haogege.xyz/",
    "https://cf.090227.xyz/ct/",
    "https://api.uouin.com/cloudflare.html",
    "https://raw.githubusercontent.com/946727185/auto-ip-update/refs/heads/main/bendituisong.txt",
)

# Storage keys
FULL_SNAPSHOT_KEY = "cloudflare_ips"
FAST_SNAPSHOT_KEY = "cloudflare_fast_ips"

# Extraction
IPV4_PATTERN = r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b"
EXCLUDED_PREFIXES = ("10.", "127.", "192.168.")

# Geolocation
IP_API_BATCH_URL = "http://ip-api.com/batch"
UNKNOWN_COUNTRY = "UNK"

# Latency probing
TRACE_PATH = "/cdn-cgi/trace"
DEFAULT_TRACE_HOST = "1.1.1.1"
DEFAULT_PORT = 443

# Selection defaults
FAST_IP_COUNT = 25
PROBE_SAMPLE_SIZE = 100
PROBE_BATCH_SIZE = 5
GEO_BATCH_SIZE = 100

# Timeouts and pauses (seconds)
FETCH_TIMEOUT = 5
PROBE_TIMEOUT = 3
GEO_TIMEOUT = 10
GEO_BATCH_DELAY = 1.0
PROBE_BATCH_DELAY = 0.5

USER_AGENT = "bestip/1.0 (+https://github.com/ethgan/CF-Worker-BestIP-collector)"
