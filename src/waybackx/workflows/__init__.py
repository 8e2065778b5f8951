"""High-level exports for the waybackx workflows."""

from .cdx_parser import ArchiveRecord, ParseStats, parse_body, playback_url
from .cdx_query import build_cdx_url, normalize_domain
from .client import WaybackClient
from .rate_control import AdaptiveRateLimiter
from .retry import FetchOutcome, fetch_with_retries
from .sensitive import SENSITIVE_RULES, SensitivityClassifier

__all__ = [
    "AdaptiveRateLimiter",
    "ArchiveRecord",
    "FetchOutcome",
    "ParseStats",
    "SENSITIVE_RULES",
    "SensitivityClassifier",
    "WaybackClient",
    "build_cdx_url",
    "fetch_with_retries",
    "normalize_domain",
    "parse_body",
    "playback_url",
]
