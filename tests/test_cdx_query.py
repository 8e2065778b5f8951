import pytest

from waybackx.core.errors import ConfigError
from waybackx.workflows.cdx_query import (
    build_cdx_url,
    idna_normalize,
    normalize_domain,
    validate_search_type,
)

SUFFIX = "&output=text&fl=timestamp,original&collapse=urlkey"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("example.com", "example.com"),
        ("https://example.com/foo", "example.com"),
        ("  HTTP://Example.COM/path?x=1  ", "example.com"),
        ("example.com?q=1", "example.com"),
        ("example.com#top", "example.com"),
        ("sub.example.com.", "sub.example.com"),
        ("", ""),
        ("   ", ""),
        ("https://", ""),
    ],
)
def test_normalize_domain(raw: str, expected: str) -> None:
    assert normalize_domain(raw) == expected


def test_idna_normalize_encodes_unicode_hosts() -> None:
    assert idna_normalize("Bücher.de") == "xn--bcher-kva.de"
    assert idna_normalize("") == ""


def test_domain_mode_matches_host_and_paths() -> None:
    url = build_cdx_url("example.com", "domain")
    assert url == "http://web.archive.org/cdx/search/cdx?url=example.com/*" + SUFFIX


def test_wildcard_mode_adds_subdomains() -> None:
    url = build_cdx_url("example.com", "wildcard")
    assert url == "http://web.archive.org/cdx/search/cdx?url=*.example.com/*" + SUFFIX


def test_wildcard_is_the_default() -> None:
    assert build_cdx_url("example.com") == build_cdx_url("example.com", "wildcard")


def test_domain_is_percent_encoded_but_pattern_is_not() -> None:
    url = build_cdx_url("example.com:8080", "domain")
    assert "url=example.com%3A8080/*&" in url


def test_custom_endpoint() -> None:
    url = build_cdx_url("example.com", "domain", endpoint="https://mirror.test/cdx")
    assert url.startswith("https://mirror.test/cdx?url=example.com/*&")


def test_validate_search_type() -> None:
    assert validate_search_type("wildcard") == "wildcard"
    assert validate_search_type(" Domain ") == "domain"
    with pytest.raises(ConfigError, match="wildcard' or 'domain"):
        validate_search_type("subdomains")
