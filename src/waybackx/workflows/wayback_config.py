"""waybackx defaults (endpoints, headers, intervals, retry ceiling).

Centralizes static defaults so the request path has no embedded magic strings.
Callers override any of them through ``RunConfig``.
"""

from __future__ import annotations

# Endpoints
CDX_ENDPOINT = "http://web.archive.org/cdx/search/cdx"
PLAYBACK_BASE = "https://web.archive.org/web"

# Query parameters shared by every search mode
CDX_OUTPUT = "text"
CDX_FIELDS = "timestamp,original"
CDX_COLLAPSE = "urlkey"

# Headers
HDR_USER_AGENT = "User-Agent"
HDR_RETRY_AFTER = "Retry-After"
HDR_RATELIMIT_REMAINING = "X-RateLimit-Remaining"
HDR_CONTENT_LENGTH = "Content-Length"
DEFAULT_USER_AGENT = "WaybackURLsX/1.0"

# Search modes
SEARCH_WILDCARD = "wildcard"
SEARCH_DOMAIN = "domain"
SEARCH_TYPES = (SEARCH_WILDCARD, SEARCH_DOMAIN)
DEFAULT_SEARCH_TYPE = SEARCH_WILDCARD

# Rate control: start at one request per second, slow to 5s when quota runs low
INITIAL_INTERVAL = 1.0
LOW_QUOTA_INTERVAL = 5.0
LOW_QUOTA_REMAINING = {"0", "1"}

# Retry / transport
DEFAULT_RETRIES = 1000
DEFAULT_TIMEOUT = 30.0
RETRYABLE_STATUS_CODES = {429}
POOL_LIMIT = 100
POOL_LIMIT_PER_HOST = 10
KEEPALIVE_TIMEOUT = 30.0

# Environment variables read by the CLI layer only
ENV_TYPE = "WAYBACKX_TYPE"
ENV_RETRIES = "WAYBACKX_RETRIES"
ENV_TIMEOUT = "WAYBACKX_TIMEOUT"
ENV_USER_AGENT = "WAYBACKX_USER_AGENT"
ENV_CDX_ENDPOINT = "WAYBACKX_CDX_ENDPOINT"
ENV_PATTERNS_PATH = "WAYBACKX_PATTERNS_PATH"
