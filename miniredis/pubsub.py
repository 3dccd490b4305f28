"""Publish/subscribe subscriptions and message delivery."""

from __future__ import annotations

import queue
import re
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from .server.server import Peer, Writer

_CLOSED = object()


@dataclass(frozen=True)
class PubsubMessage:
    """A message published on a channel."""

    channel: str
    message: str


@dataclass(frozen=True)
class PubsubPmessage:
    """A message delivered because its channel matched a pattern."""

    pattern: str
    channel: str
    message: str


def _bracket_class(tokens: list[tuple[str, bool]]) -> str:
    negate = bool(tokens) and tokens[0] == ("^", False)
    if negate:
        tokens = tokens[1:]
    if not tokens:
        return "." if negate else "(?!)"
    items = []
    for pos, (char, escaped) in enumerate(tokens):
        if char == "-" and not escaped and 0 < pos < len(tokens) - 1:
            items.append("-")
        else:
            items.append(re.escape(char))
    return "[" + ("^" if negate else "") + "".join(items) + "]"


def _pattern_re(pattern: str) -> Optional["re.Pattern[str]"]:
    """Compile a glob-style channel pattern, or None if it is invalid."""
    out = []
    chars = iter(pattern)
    for char in chars:
        if char == "*":
            out.append(".*")
        elif char == "?":
            out.append(".")
        elif char == "\\":
            out.append(re.escape(next(chars, "\\")))
        elif char == "[":
            tokens: list[tuple[str, bool]] = []
            for inner in chars:
                if inner == "]":
                    break
                if inner == "\\":
                    tokens.append((next(chars, "\\"), True))
                else:
                    tokens.append((inner, False))
            else:
                return None
            out.append(_bracket_class(tokens))
        else:
            out.append(re.escape(char))
    try:
        return re.compile("".join(out), re.DOTALL)
    except re.error:
        return None


def _drain(box: "queue.Queue[object]") -> Iterator:
    while True:
        item = box.get()
        if item is _CLOSED:
            box.put(_CLOSED)  # later readers stop too
            return
        yield item


class Subscriber:
    """Holds channel and pattern subscriptions and queues the messages."""

    def __init__(self) -> None:
        self._publish: "queue.Queue[object]" = queue.Queue()
        self._ppublish: "queue.Queue[object]" = queue.Queue()
        self._channels: set[str] = set()
        self._patterns: dict[str, Optional[re.Pattern[str]]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def close(self) -> None:
        """Stop delivery; readers of messages() and pmessages() finish."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._publish.put(_CLOSED)
        self._ppublish.put(_CLOSED)

    def count(self) -> int:
        """The total number of channel and pattern subscriptions."""
        with self._lock:
            return len(self._channels) + len(self._patterns)

    def subscribe(self, channel: str) -> int:
        """Subscribe to a channel; returns the new subscription count."""
        with self._lock:
            self._channels.add(channel)
            return len(self._channels) + len(self._patterns)

    def unsubscribe(self, channel: str) -> int:
        """Unsubscribe a channel; returns the new subscription count."""
        with self._lock:
            self._channels.discard(channel)
            return len(self._channels) + len(self._patterns)

    def psubscribe(self, pattern: str) -> int:
        """Subscribe to a pattern; returns the new subscription count."""
        with self._lock:
            self._patterns[pattern] = _pattern_re(pattern)
            return len(self._channels) + len(self._patterns)

    def punsubscribe(self, pattern: str) -> int:
        """Unsubscribe a pattern; returns the new subscription count."""
        with self._lock:
            self._patterns.pop(pattern, None)
            return len(self._channels) + len(self._patterns)

    def channels(self) -> list[str]:
        """Subscribed channels, alphabetically."""
        with self._lock:
            return sorted(self._channels)

    def patterns(self) -> list[str]:
        """Subscribed patterns, alphabetically."""
        with self._lock:
            return sorted(self._patterns)

    def publish(self, channel: str, message: str) -> int:
        """Deliver a message; returns how many times it was queued.

        A message is queued once for a matching channel subscription and
        once for the first matching pattern.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("publish on a closed subscriber")
            found = 0
            if channel in self._channels:
                self._publish.put(PubsubMessage(channel, message))
                found += 1
            for original, compiled in self._patterns.items():
                if compiled is not None and compiled.fullmatch(channel):
                    self._ppublish.put(PubsubPmessage(original, channel, message))
                    found += 1
                    break
            return found

    def messages(self) -> Iterator[PubsubMessage]:
        """Messages for channel subscriptions; blocks until closed."""
        return _drain(self._publish)

    def pmessages(self) -> Iterator[PubsubPmessage]:
        """Messages for pattern subscriptions; blocks until closed."""
        return _drain(self._ppublish)


def active_channels(subscribers: Iterable[Subscriber], pattern: str) -> list[str]:
    """All subscribed channels, filtered by pattern if one is given."""
    names: set[str] = set()
    for sub in subscribers:
        names.update(sub.channels())
    compiled = _pattern_re(pattern) if pattern else None
    return sorted(
        name for name in names if compiled is None or compiled.fullmatch(name)
    )


def count_subs(subscribers: Iterable[Subscriber], channel: str) -> int:
    """The number of subscribers subscribed to a channel."""
    return sum(1 for sub in subscribers if channel in sub.channels())


def count_psubs(subscribers: Iterable[Subscriber]) -> int:
    """The total number of pattern subscriptions."""
    return sum(len(sub.patterns()) for sub in subscribers)


def monitor_publish(peer: Peer, subscriber: Subscriber) -> None:
    """Write channel messages to a peer until the subscriber closes."""
    for msg in subscriber.messages():

        def send(w: Writer, msg: PubsubMessage = msg) -> None:
            w.write_len(3)
            w.write_bulk("message")
            w.write_bulk(msg.channel)
            w.write_bulk(msg.message)
            w.flush()

        peer.block(send)


def monitor_ppublish(peer: Peer, subscriber: Subscriber) -> None:
    """Write pattern messages to a peer until the subscriber closes."""
    for msg in subscriber.pmessages():

        def send(w: Writer, msg: PubsubPmessage = msg) -> None:
            w.write_len(4)
            w.write_bulk("pmessage")
            w.write_bulk(msg.pattern)
            w.write_bulk(msg.channel)
            w.write_bulk(msg.message)
            w.flush()

        peer.block(send)