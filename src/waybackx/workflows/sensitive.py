"""Sensitive-file detection for archived URLs.

The rule table is plain data (category -> regex fragments). All fragments are
joined into one case-insensitive alternation so each URL is scanned once,
regardless of how many categories the table holds. A table can be swapped in
from a JSON file of the same shape.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Pattern, Sequence

from ..core.errors import ConfigError

SensitiveRules = Mapping[str, Sequence[str]]

_BACKUP_EXTENSIONS = (
    r"zip|tar|tar\.gz|tgz|tar\.bz2|gz|rar|7z|bz2|"
    r"sql|sqlite|db|dump|bak|old|"
    r"json|xml|csv|txt|log"
)
_ARCHIVE_EXTENSIONS = (
    r"zip|tar|tar\.gz|tgz|tar\.bz2|gz|rar|7z|bz2|"
    r"sql|sqlite|db|dump|bak|old|"
    r"pem|key|p12|pfx|crt|cer"
)

SENSITIVE_RULES: Dict[str, List[str]] = {
    "version_control": [
        r"\.git(?:/|$)",
        r"\.svn(?:/|$)",
        r"\.hg(?:/|$)",
        r"\.bzr(?:/|$)",
    ],
    "environment_config": [
        r"\.env(?:\.|$)",
        r"\.env\.(?:local|dev|prod|production|staging|test)",
        r"config\.(?:php|json|yml|yaml|xml|ini|properties|conf|cfg)",
        r"wp-config\.php",
        r"settings\.php",
        r"configuration\.php",
        r"database\.yml",
        r"secrets\.(?:yml|yaml|json)",
    ],
    "credentials_keys": [
        r"(?:id_rsa|id_dsa|id_ecdsa|id_ed25519)(?:\.pub)?",
        r"\.?(?:aws|gcp|azure)_credentials",
        r"\.?(?:ssh|api|private)[\w\-]*\.key",
        r"\.?keystore\.jks",
        r"client-secret\.json",
        r"service-account.*\.json",
    ],
    "certificates": [
        r"\.(?:pem|crt|cer|p12|pfx|key)$",
    ],
    "backups_dumps": [
        r"(?:backup|dump|db|database|export|archive|copy|old|bak|save)[\w\-\.]*\.(?:" + _BACKUP_EXTENSIONS + r")",
    ],
    "database_files": [
        r"\.(?:sql|sqlite|db|mdb|accdb|dump)$",
    ],
    "container_config": [
        r"(?:docker-compose|dockerfile|\.dockerignore)(?:\.yml|\.yaml)?",
        r"(?:kubernetes|k8s)-config\.yml",
        r"secrets\.yaml",
    ],
    "cloud_config": [
        r"\.aws/credentials",
        r"\.boto",
        r"\.s3cfg",
        r"gcloud/.*\.json",
        r"\.azure/credentials",
    ],
    "logs": [
        r"(?:error|access|debug|app|application)\.log",
    ],
    "source_archives": [
        r"(?:source|src|project|backup).*\.(?:zip|tar\.gz|tgz|rar)",
    ],
    "common_sensitive_files": [
        r"\.htpasswd",
        r"\.htaccess",
        r"web\.config",
        r"shadow",
        r"passwd",
        r"master\.passwd",
        r"\.npmrc",
        r"\.pypirc",
        r"\.netrc",
        r"\.git-credentials",
    ],
    "token_session_files": [
        r"\.token",
        r"token\.txt",
        r"session\.json",
        r"auth.*\.(?:json|txt|key|token)",
    ],
    "archive_files": [
        r"[^/]*\.(?:" + _ARCHIVE_EXTENSIONS + r")$",
    ],
    "exact_markers": [
        r"\.git/",
        r"\.env$",
        r"wp-config\.php$",
        r"(?:backup|dump|db|credentials|secret|passwd)[\w\-\._]*"
        r"\.(?:zip|tar|tar\.gz|tgz|sql|bak|gz|json|csv|txt|pem|key|p12|pfx|log|yml|yaml|env)",
    ],
}


def build_sensitive_regex(rules: SensitiveRules) -> str:
    fragments: List[str] = []
    for entries in rules.values():
        for fragment in entries:
            token = (fragment or "").strip()
            if token:
                fragments.append(token)
    if not fragments:
        raise ConfigError("sensitive rule table is empty")
    return r"(?:^|/)(?:" + "|".join(fragments) + r")"


def compile_sensitive_pattern(rules: Optional[SensitiveRules] = None) -> Pattern[str]:
    table = SENSITIVE_RULES if rules is None else rules
    regex = build_sensitive_regex(table)
    try:
        return re.compile(regex, re.IGNORECASE)
    except re.error as exc:
        raise ConfigError(f"Failed to compile sensitive regex pattern: {exc}") from exc


def load_sensitive_rules(path: Path) -> Dict[str, List[str]]:
    """Load a ``{"category": ["fragment", ...]}`` table from JSON."""

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Sensitive pattern file not found: {path}") from None
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to read sensitive pattern file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Sensitive pattern file {path} must hold a JSON object")
    rules: Dict[str, List[str]] = {}
    for category, entries in data.items():
        if isinstance(entries, str):
            entries = [entries]
        if not isinstance(entries, list) or not all(isinstance(e, str) for e in entries):
            raise ConfigError(f"Category {category!r} in {path} must be a list of strings")
        rules[str(category)] = list(entries)
    return rules


class SensitivityClassifier:
    """Match original URLs against a single compiled rule table."""

    def __init__(self, pattern: Pattern[str]) -> None:
        self.pattern = pattern

    @classmethod
    def from_rules(cls, rules: Optional[SensitiveRules] = None) -> "SensitivityClassifier":
        return cls(compile_sensitive_pattern(rules))

    @classmethod
    def from_file(cls, path: Path) -> "SensitivityClassifier":
        return cls(compile_sensitive_pattern(load_sensitive_rules(path)))

    def matches(self, original_url: str) -> bool:
        return self.pattern.search(original_url or "") is not None


__all__ = [
    "SENSITIVE_RULES",
    "SensitivityClassifier",
    "build_sensitive_regex",
    "compile_sensitive_pattern",
    "load_sensitive_rules",
]
