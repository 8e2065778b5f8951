from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
from contextlib import AsyncExitStack
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TextIO

from .core.errors import ConfigError, InputError
from .core.keys import (
    K_ATTEMPTS,
    K_CONFIG,
    K_COUNTS,
    K_DOMAIN,
    K_DOMAINS,
    K_EMITTED,
    K_ERROR,
    K_HTTP_STATUS,
    K_INPUT,
    K_MALFORMED,
    K_RATE,
    K_RECORDS,
    K_SENSITIVE,
    K_STATUS,
)
from .workflows.cdx_parser import ParseStats, parse_body
from .workflows.cdx_query import build_cdx_url, normalize_domain, validate_search_type
from .workflows.client import WaybackClient
from .workflows.retry import validate_max_attempts
from .workflows.sensitive import SensitivityClassifier
from .workflows.wayback_config import (
    CDX_ENDPOINT,
    DEFAULT_RETRIES,
    DEFAULT_SEARCH_TYPE,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
)

logger = logging.getLogger(__name__)

Emit = Callable[[str], None]

STATUS_OK = "ok"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"


@dataclass(frozen=True)
class RunConfig:
    """Validated runtime configuration handed to the core by the CLI."""

    search_type: str = DEFAULT_SEARCH_TYPE
    only_sensitive: bool = False
    retries: int = DEFAULT_RETRIES
    verbose: bool = False
    silent: bool = False
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    cdx_endpoint: str = CDX_ENDPOINT
    patterns_path: Optional[Path] = None

    def describe(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["patterns_path"] = str(self.patterns_path) if self.patterns_path else None
        return payload


def validate_config(config: RunConfig) -> RunConfig:
    """Range-check a config once at startup; raises ``ConfigError``."""

    search_type = validate_search_type(config.search_type)
    retries = validate_max_attempts(config.retries)
    try:
        timeout = float(config.timeout)
    except (TypeError, ValueError):
        raise ConfigError(f"--timeout must be a number, got {config.timeout!r}") from None
    if timeout <= 0:
        raise ConfigError("--timeout must be greater than 0")
    endpoint = (config.cdx_endpoint or "").strip()
    if not endpoint.lower().startswith(("http://", "https://")):
        raise ConfigError(f"--endpoint must be an http(s) URL, got {config.cdx_endpoint!r}")
    return replace(config, search_type=search_type, retries=retries, timeout=timeout, cdx_endpoint=endpoint)


def build_classifier(config: RunConfig) -> Optional[SensitivityClassifier]:
    """Compile the sensitive rule table when filtering is enabled."""

    if not config.only_sensitive:
        return None
    if config.patterns_path is not None:
        classifier = SensitivityClassifier.from_file(config.patterns_path)
    else:
        classifier = SensitivityClassifier.from_rules()
    logger.debug("Sensitive regex pattern compiled successfully")
    return classifier


@dataclass
class DomainReport:
    input: str
    domain: str
    status: str
    attempts: int = 0
    http_status: Optional[int] = None
    stats: ParseStats = field(default_factory=ParseStats)
    emitted: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_INPUT: self.input,
            K_DOMAIN: self.domain,
            K_STATUS: self.status,
            K_ATTEMPTS: self.attempts,
            K_HTTP_STATUS: self.http_status,
            K_RECORDS: self.stats.records,
            K_SENSITIVE: self.stats.sensitive,
            K_MALFORMED: self.stats.malformed,
            K_EMITTED: self.emitted,
            K_ERROR: self.error,
        }


@dataclass
class RunSummary:
    config: RunConfig
    reports: List[DomainReport] = field(default_factory=list)
    rate: Dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False

    def counts(self) -> Dict[str, int]:
        return {
            "total": len(self.reports),
            STATUS_OK: sum(1 for r in self.reports if r.status == STATUS_OK),
            STATUS_SKIPPED: sum(1 for r in self.reports if r.status == STATUS_SKIPPED),
            STATUS_FAILED: sum(1 for r in self.reports if r.status == STATUS_FAILED),
            STATUS_CANCELLED: sum(1 for r in self.reports if r.status == STATUS_CANCELLED),
            K_RECORDS: sum(r.stats.records for r in self.reports),
            K_SENSITIVE: sum(r.stats.sensitive for r in self.reports),
            K_EMITTED: sum(r.emitted for r in self.reports),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_CONFIG: self.config.describe(),
            K_COUNTS: self.counts(),
            K_RATE: dict(self.rate),
            K_DOMAINS: [report.to_dict() for report in self.reports],
            "cancelled": self.cancelled,
        }


def stream_emitter(out: TextIO) -> Emit:
    def _emit(url: str) -> None:
        out.write(url + "\n")

    return _emit


_EOF = object()
_CANCELLED = object()


def _start_line_reader(lines: Iterable[str], queue: asyncio.Queue[Any]) -> None:
    """Feed ``lines`` into ``queue`` from a daemon thread.

    A blocking ``readline`` on stdin would otherwise stall the event loop and
    with it the SIGINT callback. Read errors are forwarded as queue items.
    """

    loop = asyncio.get_running_loop()

    def put(item: Any) -> bool:
        try:
            loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError:
            # loop closed: the run is over
            return False
        return True

    def pump() -> None:
        try:
            for line in lines:
                if not put(line):
                    return
        except Exception as exc:
            put(exc)
            return
        put(_EOF)

    threading.Thread(target=pump, name="waybackx-input", daemon=True).start()


async def _next_line(queue: asyncio.Queue[Any], cancel_event: Optional[asyncio.Event]) -> Any:
    if cancel_event is None:
        return await queue.get()
    if cancel_event.is_set():
        return _CANCELLED
    getter = asyncio.ensure_future(queue.get())
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({getter, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (getter, waiter):
            if not task.done():
                task.cancel()
    if cancel_event.is_set():
        return _CANCELLED
    return getter.result()


async def process_domain(
    raw: str,
    client: WaybackClient,
    config: RunConfig,
    *,
    emit: Emit,
    classifier: Optional[SensitivityClassifier] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> DomainReport:
    """Resolve one input line to playback URLs, emitting them in body order.

    Every failure stays local to the domain: the report records it and the
    domain simply produces no output.
    """

    original = (raw or "").strip()
    domain = normalize_domain(original)
    if not domain:
        logger.debug("Skipping empty domain")
        return DomainReport(input=original, domain="", status=STATUS_SKIPPED)

    if original != domain:
        logger.debug("Processing domain: %s (normalized from: %s)", domain, original)
    else:
        logger.debug("Processing domain: %s", domain)

    cdx_url = build_cdx_url(domain, config.search_type, endpoint=config.cdx_endpoint)
    logger.debug("CDX API URL: %s", cdx_url)

    outcome = await client.fetch_cdx(cdx_url, config.retries, cancel_event=cancel_event, label=domain)
    report = DomainReport(
        input=original,
        domain=domain,
        status=STATUS_OK,
        attempts=outcome.attempts,
        http_status=outcome.status,
    )
    if outcome.body is None:
        report.status = STATUS_CANCELLED if outcome.cancelled else STATUS_FAILED
        report.error = outcome.error
        logger.debug("Domain %s produced no output (%s)", domain, outcome.error)
        return report

    logger.debug("Received %d bytes of data", len(outcome.body))
    stats = report.stats
    for record in parse_body(outcome.body, stats):
        if classifier is not None:
            if not classifier.matches(record.original):
                logger.debug("Not sensitive: %s", record.original)
                continue
            stats.sensitive += 1
            logger.debug("Sensitive match: %s", record.original)
        emit(record.playback_url)
        report.emitted += 1

    logger.debug("Found %d lines in response", stats.lines)
    if classifier is not None:
        logger.debug(
            "Domain %s: %d sensitive URLs found out of %d total URLs", domain, stats.sensitive, stats.records
        )
    else:
        logger.debug("Domain %s: %d URLs processed", domain, stats.records)
    return report


async def run_domains(
    lines: Iterable[str],
    config: RunConfig,
    *,
    emit: Optional[Emit] = None,
    classifier: Optional[SensitivityClassifier] = None,
    cancel_event: Optional[asyncio.Event] = None,
    client: Optional[WaybackClient] = None,
) -> RunSummary:
    """Process every input line strictly in order with one shared client."""

    emit = emit or stream_emitter(sys.stdout)
    summary = RunSummary(config=config)
    logger.debug(
        "Starting WaybackURLsX with config: type=%s, only-sensitive=%s, retries=%d",
        config.search_type,
        str(config.only_sensitive).lower(),
        config.retries,
    )

    async with AsyncExitStack() as stack:
        if client is None:
            client = await stack.enter_async_context(
                WaybackClient(timeout=config.timeout, user_agent=config.user_agent)
            )
        logger.debug("Rate limiting: 1 request every %ss (adaptive)", f"{client.limiter.interval:g}")
        queue: asyncio.Queue[Any] = asyncio.Queue()
        _start_line_reader(lines, queue)
        try:
            while True:
                raw = await _next_line(queue, cancel_event)
                if raw is _CANCELLED:
                    summary.cancelled = True
                    break
                if raw is _EOF:
                    break
                if isinstance(raw, (OSError, UnicodeDecodeError)):
                    raise InputError(f"reading input: {raw}") from raw
                if isinstance(raw, BaseException):
                    raise raw
                report = await process_domain(
                    raw,
                    client,
                    config,
                    emit=emit,
                    classifier=classifier,
                    cancel_event=cancel_event,
                )
                summary.reports.append(report)
                if report.status == STATUS_CANCELLED:
                    summary.cancelled = True
                    break
        finally:
            summary.rate = client.limiter.snapshot()

    logger.debug("Processing complete. %d domains processed.", len(summary.reports))
    return summary


async def _run_with_interrupts(
    lines: Iterable[str],
    config: RunConfig,
    out: TextIO,
    classifier: Optional[SensitivityClassifier],
    client: Optional[WaybackClient] = None,
) -> RunSummary:
    loop = asyncio.get_running_loop()
    cancel_event = asyncio.Event()
    main_task = asyncio.current_task()

    def on_sigint() -> None:
        # first Ctrl-C stops at the next wait; a second one aborts an in-flight request
        if cancel_event.is_set() and main_task is not None:
            main_task.cancel()
        else:
            cancel_event.set()

    installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, on_sigint)
        installed = True
    except (NotImplementedError, RuntimeError):  # pragma: no cover - platform specific
        pass
    try:
        emit = stream_emitter(out)
        return await run_domains(
            lines, config, emit=emit, classifier=classifier, cancel_event=cancel_event, client=client
        )
    finally:
        out.flush()
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def execute(lines: Iterable[str], config: RunConfig, *, out: Optional[TextIO] = None) -> RunSummary:
    """Validate ``config``, compile the classifier and run all domains.

    ``ConfigError`` is raised before any domain is processed.
    """

    config = validate_config(config)
    classifier = build_classifier(config)
    return asyncio.run(_run_with_interrupts(lines, config, out or sys.stdout, classifier))


__all__ = [
    "DomainReport",
    "RunConfig",
    "RunSummary",
    "build_classifier",
    "execute",
    "process_domain",
    "run_domains",
    "stream_emitter",
    "validate_config",
]
