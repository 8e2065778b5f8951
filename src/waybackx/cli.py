from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from .banner import format_banner, print_banner, version_line
from .core.errors import ConfigError, InputError
from .runner import RunConfig, execute
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.wayback_config import (
    CDX_ENDPOINT,
    DEFAULT_RETRIES,
    DEFAULT_SEARCH_TYPE,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    ENV_CDX_ENDPOINT,
    ENV_PATTERNS_PATH,
    ENV_RETRIES,
    ENV_TIMEOUT,
    ENV_TYPE,
    ENV_USER_AGENT,
)

app = typer.Typer(add_help_option=False, no_args_is_help=False)

EXIT_CONFIG = 1
EXIT_INPUT = 2
EXIT_INTERRUPTED = 130

LOG_FORMAT = "[%(levelname)s] %(message)s"


def _minimal_help() -> str:
    return """waybackx (Wayback Machine URL resolver)

Usage:
  cat domains.txt | waybackx [--type wildcard|domain] [--only-sensitive] [--retries N] [--verbose] [--silent]
  waybackx doctor

Common options:
  -t, --type <MODE>       wildcard (subdomains, default) or domain (exact host).
  -s, --only-sensitive    Only show URLs matching sensitive file patterns.
  -r, --retries <N>       Attempts per domain (default 1000).
  -v, --verbose           Narrate progress and errors on stderr.
  --silent                Do not print the banner.
  --version               Print the version and exit.

Discoverability:
  --help-full     Expanded help + env vars.
  --find <query>  Search commands, flags, env vars.
"""


def _help_full() -> str:
    return f"""waybackx: resolve archived URLs for domains read from stdin

Each input line is a domain (scheme and path are stripped). For every domain the
CDX index is queried and one playback URL per archived capture is written to
stdout. Diagnostics go to stderr only.

Commands:
  doctor         Check the rule table and environment configuration.

Options:
  -t, --type         wildcard | domain (default {DEFAULT_SEARCH_TYPE}).
  -s, --only-sensitive
                     Keep only URLs that look like exposed secrets, backups or config.
  -r, --retries      Attempts per domain, >= 1 (default {DEFAULT_RETRIES}).
  --timeout          Per-request timeout in seconds (default {DEFAULT_TIMEOUT:g}).
  --user-agent       User-Agent header (default {DEFAULT_USER_AGENT}).
  --endpoint         CDX endpoint (default {CDX_ENDPOINT}).
  --patterns         JSON rule table replacing the built-in sensitive patterns.
  --stats            Print a JSON run summary to stderr when done.
  -v, --verbose      Diagnostic narration on stderr.
  --silent           Suppress the banner.
  --version          Print banner and version, then exit.

Env vars (also read from .env):
  {ENV_TYPE}
  {ENV_RETRIES}
  {ENV_TIMEOUT}
  {ENV_USER_AGENT}
  {ENV_CDX_ENDPOINT}
  {ENV_PATTERNS_PATH}

Exit codes:
  0 success, 1 configuration error, 2 input error, 130 interrupted.
"""


_FIND_INDEX = [
    ("command", "doctor", "Check the rule table and environment configuration."),
    ("flag", "--type", "Search type: wildcard (subdomains) or domain (exact domain)."),
    ("flag", "--only-sensitive", "Only show URLs matching sensitive file patterns."),
    ("flag", "--retries", "Number of attempts for failed requests."),
    ("flag", "--timeout", "Per-request timeout in seconds."),
    ("flag", "--user-agent", "User-Agent header sent to the archive."),
    ("flag", "--endpoint", "CDX endpoint URL."),
    ("flag", "--patterns", "JSON rule table for sensitive matching."),
    ("flag", "--stats", "Print a JSON run summary to stderr."),
    ("flag", "--verbose", "Show verbose output including errors and processing info."),
    ("flag", "--silent", "Silent mode (no banner)."),
    ("flag", "--version", "Print the version of the tool and exit."),
    ("flag", "--help-full", "Expanded help and env vars."),
    ("flag", "--find", "Search commands, flags, env vars."),
    ("env", ENV_TYPE, "Default for --type."),
    ("env", ENV_RETRIES, "Default for --retries."),
    ("env", ENV_TIMEOUT, "Default for --timeout."),
    ("env", ENV_USER_AGENT, "Default for --user-agent."),
    ("env", ENV_CDX_ENDPOINT, "Default for --endpoint."),
    ("env", ENV_PATTERNS_PATH, "Default for --patterns."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def configure_logging(verbose: bool) -> None:
    """Route waybackx logs to stderr; DEBUG when verbose, errors only otherwise."""

    root = logging.getLogger("waybackx")
    for handler in list(root.handlers):
        if getattr(handler, "_waybackx_cli", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._waybackx_cli = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.ERROR)


def _silence_stdout() -> None:
    """Point stdout at devnull so the interpreter's exit flush cannot fail again."""

    try:
        fd = sys.stdout.fileno()
    except io.UnsupportedOperation:
        return
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, fd)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    search_type: str = typer.Option(
        DEFAULT_SEARCH_TYPE, "--type", "-t", envvar=ENV_TYPE, help="Search type: wildcard or domain."
    ),
    only_sensitive: bool = typer.Option(
        False, "--only-sensitive", "-s", help="Only show URLs matching sensitive file patterns."
    ),
    retries: int = typer.Option(
        DEFAULT_RETRIES, "--retries", "-r", envvar=ENV_RETRIES, help="Number of attempts for failed requests."
    ),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", envvar=ENV_TIMEOUT, help="Request timeout (seconds)."),
    user_agent: str = typer.Option(DEFAULT_USER_AGENT, "--user-agent", envvar=ENV_USER_AGENT, help="User-Agent header."),
    endpoint: str = typer.Option(CDX_ENDPOINT, "--endpoint", envvar=ENV_CDX_ENDPOINT, help="CDX endpoint URL."),
    patterns: Optional[Path] = typer.Option(
        None, "--patterns", envvar=ENV_PATTERNS_PATH, help="JSON rule table for sensitive matching."
    ),
    stats: bool = typer.Option(False, "--stats", help="Print a JSON run summary to stderr."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show verbose output on stderr."),
    silent: bool = typer.Option(False, "--silent", help="Silent mode (no banner)."),
    version: bool = typer.Option(False, "--version", is_eager=True, help="Print the version and exit."),
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
) -> None:
    if help:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if version:
        typer.echo(format_banner())
        typer.echo(version_line())
        raise typer.Exit(code=0)
    if ctx.invoked_subcommand is not None:
        return

    configure_logging(verbose)
    if not silent:
        print_banner()

    config = RunConfig(
        search_type=search_type,
        only_sensitive=only_sensitive,
        retries=retries,
        verbose=verbose,
        silent=silent,
        timeout=timeout,
        user_agent=user_agent,
        cdx_endpoint=endpoint,
        patterns_path=patterns,
    )
    try:
        summary = execute(sys.stdin, config, out=sys.stdout)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIG)
    except InputError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_INPUT)
    except BrokenPipeError:
        # downstream reader (e.g. ``head``) closed stdout
        _silence_stdout()
        raise typer.Exit(code=0)
    except (KeyboardInterrupt, asyncio.CancelledError):
        typer.echo("interrupted", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED)

    if stats:
        sys.stderr.write(json.dumps(summary.to_dict(), ensure_ascii=False) + "\n")
    if summary.cancelled:
        typer.echo("interrupted", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED)
    raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Check the rule table and environment configuration."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


def run() -> None:
    """Console-script entrypoint: load ``.env`` before option parsing."""
    load_dotenv(override=False)
    app()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    run()
