"""Reading the request side of the Redis wire protocol."""

from __future__ import annotations

import re
from typing import BinaryIO

_INT_RE = re.compile(rb"[+-]?[0-9]+")


class ProtocolError(ValueError):
    """Raised when the input is not a valid request."""

    def __init__(self, message: str = "invalid request") -> None:
        super().__init__(message)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def _read_line(reader: BinaryIO) -> bytes:
    line = reader.readline()
    if not line.endswith(b"\n"):
        raise EOFError("unexpected end of input")
    if len(line) < 3:
        raise ProtocolError()
    return line


def _parse_int(text: bytes) -> int:
    if not _INT_RE.fullmatch(text):
        raise ProtocolError(f"invalid number: {text!r}")
    return int(text)


def read_array(reader: BinaryIO) -> list[str]:
    """Read one request: an array of bulk strings.

    Raises EOFError when the input ends early and ProtocolError on
    anything that is not an array.
    """
    line = _read_line(reader)
    if line[:1] != b"*":
        raise ProtocolError()
    count = _parse_int(line[1:-2])
    # A negative count is a nil array: no fields.
    return [read_string(reader) for _ in range(count)]


def read_string(reader: BinaryIO) -> str:
    """Read a single simple string, error, integer or bulk string."""
    line = _read_line(reader)
    kind = line[:1]
    if kind in (b"+", b"-", b":"):
        return _decode(line[1:-2])
    if kind != b"$":
        raise ProtocolError()

    length = _parse_int(line[1:-2])
    if length < 0:
        return ""

    remaining = length + 2
    chunks = []
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            raise EOFError("unexpected end of input")
        chunks.append(chunk)
        remaining -= len(chunk)
    return _decode(b"".join(chunks)[:length])