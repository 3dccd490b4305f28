"""Stream entries and stream ID handling."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional

from .common import MSG_INVALID_STREAM_ID

MAX_UINT64 = 2**64 - 1

_DIGITS_RE = re.compile(r"[0-9]+")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InvalidStreamIDError(ValueError):
    """Raised for a stream ID that cannot be parsed."""

    def __init__(self, message: str = MSG_INVALID_STREAM_ID) -> None:
        super().__init__(message)


@dataclass
class StreamEntry:
    """One entry of a stream: an "123-123" ID and field/value pairs."""

    id: str
    values: list[str] = field(default_factory=list)


def _parse_uint(text: str) -> int:
    if not _DIGITS_RE.fullmatch(text):
        raise InvalidStreamIDError()
    value = int(text)
    if value > MAX_UINT64:
        raise InvalidStreamIDError()
    return value


def _lenient_uint(text: str) -> int:
    if not _DIGITS_RE.fullmatch(text):
        return 0
    return min(int(text), MAX_UINT64)


def _unix_millis(now: datetime) -> int:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - _EPOCH) // timedelta(milliseconds=1)


def parse_stream_id(stream_id: str) -> tuple[int, int]:
    """Split an ID into its two numbers; unparsable parts count as 0."""
    parts = stream_id.split("-", 1)
    ms = _lenient_uint(parts[0])
    seq = _lenient_uint(parts[1]) if len(parts) == 2 else 0
    return ms, seq


def stream_cmp(a: str, b: str) -> int:
    """Compare two full stream IDs; returns -1, 0 or 1."""
    ap = parse_stream_id(a)
    bp = parse_stream_id(b)
    return (ap > bp) - (ap < bp)


def format_stream_id(stream_id: str) -> str:
    """Make a full ID ("42-0") out of a possibly partial one ("42")."""
    parts = stream_id.split("-", 1)
    ms = _parse_uint(parts[0])
    seq = _parse_uint(parts[1]) if len(parts) > 1 else 0
    return f"{ms}-{seq}"


def format_stream_range_bound(stream_id: str, start: bool, reverse: bool) -> str:
    """Turn a range argument ("-", "+", "42", "42-1") into a full ID."""
    if stream_id in ("-", "0"):
        return "0-0"
    if stream_id == "+":
        return f"{MAX_UINT64}-{MAX_UINT64}"

    parts = stream_id.split("-")
    if len(parts) == 2:
        return format_stream_id(stream_id)

    ms = _parse_uint(parts[0])
    if start == reverse:
        return f"{ms}-{MAX_UINT64}"
    return f"{ms}-0"


def reversed_stream_entries(entries: Iterable[StreamEntry]) -> list[StreamEntry]:
    """A new list with the entries in reverse order."""
    return list(reversed(list(entries)))


class Stream:
    """An ordered list of stream entries."""

    def __init__(self, entries: Optional[Iterable[StreamEntry]] = None) -> None:
        self.entries: list[StreamEntry] = list(entries or ())

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[StreamEntry]:
        return iter(self.entries)

    def last_id(self) -> str:
        """The ID of the newest entry, or "0-0" when empty."""
        if not self.entries:
            return "0-0"
        return self.entries[-1].id

    def generate_id(self, now: datetime) -> str:
        """A new ID, based on the time, bigger than the last one."""
        last = self.last_id()
        candidate = f"{_unix_millis(now)}-0"
        if stream_cmp(last, candidate) == -1:
            return candidate
        ms, seq = parse_stream_id(last)
        return f"{ms}-{(seq + 1) & MAX_UINT64}"