"""Shared summary keys to avoid magic strings across waybackx modules."""

from __future__ import annotations

# Per-domain report keys
K_DOMAIN = "domain"
K_INPUT = "input"
K_STATUS = "status"
K_ATTEMPTS = "attempts"
K_HTTP_STATUS = "http_status"
K_RECORDS = "records"
K_SENSITIVE = "sensitive"
K_MALFORMED = "malformed"
K_EMITTED = "emitted"
K_ERROR = "error"

# Run summary keys
K_DOMAINS = "domains"
K_COUNTS = "counts"
K_RATE = "rate"
K_CONFIG = "config"
