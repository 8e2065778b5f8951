"""Input domain normalization and CDX query construction."""

from __future__ import annotations

import re
from urllib.parse import quote_plus

from ..core.errors import ConfigError
from .wayback_config import (
    CDX_COLLAPSE,
    CDX_ENDPOINT,
    CDX_FIELDS,
    CDX_OUTPUT,
    SEARCH_DOMAIN,
    SEARCH_TYPES,
    SEARCH_WILDCARD,
)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)
_HOST_END_RE = re.compile(r"[/?#]")


def idna_normalize(host: str) -> str:
    """Return a lowercase, IDNA-normalized host name."""

    h = (host or "").strip().rstrip(".").lower()
    if not h:
        return ""
    try:
        h = h.encode("idna").decode("ascii")
    except UnicodeError:
        pass
    return h


def normalize_domain(raw: str) -> str:
    """Reduce an input line to a bare host.

    ``https://example.com/foo`` becomes ``example.com``. Returns an empty
    string when nothing usable is left; callers skip those lines.
    """

    value = (raw or "").strip()
    if not value:
        return ""
    value = _SCHEME_RE.sub("", value, count=1)
    value = _HOST_END_RE.split(value, maxsplit=1)[0]
    return idna_normalize(value)


def validate_search_type(value: str) -> str:
    mode = (value or "").strip().lower()
    if mode not in SEARCH_TYPES:
        raise ConfigError("--type must be either 'wildcard' or 'domain'")
    return mode


def build_cdx_url(domain: str, search_type: str = SEARCH_WILDCARD, *, endpoint: str = CDX_ENDPOINT) -> str:
    """Build the CDX index query for ``domain``.

    ``domain`` mode matches the host and its paths, ``wildcard`` adds every
    subdomain. The host is percent-encoded; the pattern's ``*`` and ``/`` are
    not.
    """

    encoded = quote_plus(domain)
    if search_type == SEARCH_DOMAIN:
        target = f"{encoded}/*"
    else:
        target = f"*.{encoded}/*"
    return f"{endpoint}?url={target}&output={CDX_OUTPUT}&fl={CDX_FIELDS}&collapse={CDX_COLLAPSE}"


__all__ = ["build_cdx_url", "idna_normalize", "normalize_domain", "validate_search_type"]
