"""Line-oriented parsing of CDX text responses into playback URLs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, NamedTuple, Optional, Union

from .wayback_config import PLAYBACK_BASE

logger = logging.getLogger(__name__)


def playback_url(timestamp: str, original: str) -> str:
    return f"{PLAYBACK_BASE}/{timestamp}/{original}"


class ArchiveRecord(NamedTuple):
    timestamp: str
    original: str

    @property
    def playback_url(self) -> str:
        return playback_url(self.timestamp, self.original)


@dataclass
class ParseStats:
    """Diagnostic counters; not part of the output contract."""

    lines: int = 0
    records: int = 0
    malformed: int = 0
    sensitive: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lines": self.lines,
            "records": self.records,
            "malformed": self.malformed,
            "sensitive": self.sensitive,
        }


def parse_line(line: str) -> Optional[ArchiveRecord]:
    """Return the record for a ``timestamp original`` line, else None."""

    parts = line.split()
    if len(parts) != 2:
        return None
    return ArchiveRecord(parts[0], parts[1])


def iter_records(lines: Iterable[str], stats: Optional[ParseStats] = None) -> Iterator[ArchiveRecord]:
    """Yield records in input order, dropping blank and malformed lines."""

    for raw in lines:
        if stats is not None:
            stats.lines += 1
        line = raw.strip()
        if not line:
            continue
        record = parse_line(line)
        if record is None:
            if stats is not None:
                stats.malformed += 1
            logger.debug("Skipping malformed line: %s", line)
            continue
        if stats is not None:
            stats.records += 1
        yield record


def decode_body(body: Union[bytes, str]) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8", "replace")
    return body


def parse_body(body: Union[bytes, str], stats: Optional[ParseStats] = None) -> Iterator[ArchiveRecord]:
    """Split a whole response body on newlines and parse it."""

    return iter_records(decode_body(body).split("\n"), stats)


__all__ = ["ArchiveRecord", "ParseStats", "decode_body", "iter_records", "parse_body", "parse_line", "playback_url"]
