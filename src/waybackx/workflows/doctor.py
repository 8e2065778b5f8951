from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from ..core.errors import ConfigError
from .cdx_query import validate_search_type
from .retry import validate_max_attempts
from .sensitive import compile_sensitive_pattern, load_sensitive_rules
from .wayback_config import (
    CDX_ENDPOINT,
    ENV_CDX_ENDPOINT,
    ENV_PATTERNS_PATH,
    ENV_RETRIES,
    ENV_TIMEOUT,
    ENV_TYPE,
)


def _check_timeout(raw: str) -> None:
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"timeout must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError("timeout must be greater than 0")


def build_doctor_report(*, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "invalid",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = value
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    try:
        compile_sensitive_pattern()
        add_check("sensitive_rules", True, detail="Built-in rule table compiles")
    except ConfigError as exc:
        add_check("sensitive_rules", False, detail=str(exc), remedy="Fix the built-in rule table.")

    patterns_path = (env.get(ENV_PATTERNS_PATH) or "").strip()
    if patterns_path:
        try:
            compile_sensitive_pattern(load_sensitive_rules(Path(patterns_path)))
            add_check(ENV_PATTERNS_PATH, True, detail="Custom rule table compiles", value=patterns_path)
        except ConfigError as exc:
            add_check(
                ENV_PATTERNS_PATH,
                False,
                detail=str(exc),
                remedy="Point it at a JSON object of category -> list of regex fragments.",
                value=patterns_path,
            )
    else:
        add_check(ENV_PATTERNS_PATH, True, detail="Using built-in rule table", level="info")

    validators = (
        (ENV_TYPE, validate_search_type, "Use 'wildcard' or 'domain'."),
        (ENV_RETRIES, validate_max_attempts, "Use a positive integer."),
        (ENV_TIMEOUT, _check_timeout, "Use a positive number of seconds."),
    )
    for name, validator, remedy in validators:
        raw = env.get(name)
        if raw is None:
            continue
        try:
            validator(raw)
            add_check(name, True, detail="Valid", value=raw)
        except ConfigError as exc:
            add_check(name, False, detail=str(exc), remedy=remedy, value=raw)

    endpoint = (env.get(ENV_CDX_ENDPOINT) or CDX_ENDPOINT).strip()
    add_check(
        ENV_CDX_ENDPOINT,
        endpoint.lower().startswith(("http://", "https://")),
        detail=endpoint,
        remedy="Use an http(s) URL for the CDX endpoint.",
    )

    add_check("aiohttp", True, detail=f"aiohttp {aiohttp.__version__}", level="info")
    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("waybackx doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        detail = check.get("detail")
        value = check.get("value")
        label = f"{name}: {status}"
        if value:
            label = f"{label} ({value})"
        lines.append(f"- [{level}] {label}")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy and status != "ok":
            lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"


__all__ = ["build_doctor_report", "format_doctor_report"]
