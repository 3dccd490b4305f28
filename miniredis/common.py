"""Shared error messages and helpers for command handlers."""

from __future__ import annotations

import math
from decimal import Decimal

MSG_WRONG_TYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"
MSG_INVALID_INT = "ERR value is not an integer or out of range"
MSG_INVALID_FLOAT = "ERR value is not a valid float"
MSG_INVALID_MIN_MAX = "ERR min or max is not a float"
MSG_INVALID_RANGE_ITEM = "ERR min or max not valid string range item"
MSG_INVALID_TIMEOUT = "ERR timeout is not an integer or out of range"
MSG_SYNTAX_ERROR = "ERR syntax error"
MSG_KEY_NOT_FOUND = "ERR no such key"
MSG_OUT_OF_RANGE = "ERR index out of range"
MSG_INVALID_CURSOR = "ERR invalid cursor"
MSG_XX_AND_NX = "ERR XX and NX options at the same time are not compatible"
MSG_NEG_TIMEOUT = "ERR timeout is negative"
MSG_INVALID_SE_TIME = "ERR invalid expire time in set"
MSG_INVALID_SETEX_TIME = "ERR invalid expire time in setex"
MSG_INVALID_PSETEX_TIME = "ERR invalid expire time in psetex"
MSG_INVALID_KEYS_NUMBER = "ERR Number of keys can't be greater than number of args"
MSG_NEGATIVE_KEYS_NUMBER = "ERR Number of keys can't be negative"
MSG_F_SCRIPT_USAGE = (
    "ERR Unknown subcommand or wrong number of arguments for '%s'. Try SCRIPT HELP."
)
MSG_F_PUBSUB_USAGE = (
    "ERR Unknown subcommand or wrong number of arguments for '%s'. Try PUBSUB HELP."
)
MSG_SINGLE_ELEMENT_PAIR = "ERR INCR option supports a single increment-element pair"
MSG_INVALID_STREAM_ID = "ERR Invalid stream ID specified as stream command argument"
MSG_STREAM_ID_TOO_SMALL = (
    "ERR The ID specified in XADD is equal or smaller than the target stream top item"
)
MSG_NO_SCRIPT_FOUND = "NOSCRIPT No matching script. Please use EVAL."
MSG_UNSUPPORTED_UNIT = "ERR unsupported unit provided. please use m, km, ft, mi"


def err_wrong_number(cmd: str) -> str:
    """The error text for a command called with the wrong argument count."""
    return f"ERR wrong number of arguments for '{cmd.lower()}' command"


def strip_zeros(text: str) -> str:
    """Remove trailing zeros after a decimal point, and a bare point."""
    while "." in text:
        if not text.endswith("0"):
            break
        text = text[:-1]
        if text.endswith("."):
            text = text[:-1]
            break
    return text


def format_float(value: float) -> str:
    """Format a float the way Redis replies with one."""
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return strip_zeros("%.12f" % value)


def format_big(value) -> str:
    """Format an arbitrary precision number the way Redis does."""
    if not isinstance(value, Decimal):
        value = Decimal(value)
    if value.is_infinite():
        return "inf"
    return strip_zeros(format(value, ".17f"))


def redis_range(
    length: int, start: int, end: int, string_semantics: bool
) -> tuple[int, int]:
    """Turn an inclusive Redis range into slice bounds for a sequence.

    Both start and end may be negative. With string semantics a large
    negative end still selects the first element, as GETRANGE does.
    """
    if start < 0:
        start = max(length + start, 0)
    start = min(start, length)

    if end < 0:
        end = length + end
        if end < 0:
            end = 0 if string_semantics else -1
    end = min(end + 1, length)

    if end < start:
        return 0, 0
    return start, end