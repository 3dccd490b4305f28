"""The in-memory Redis server: databases, connection state and helpers."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .pubsub import Subscriber, monitor_ppublish, monitor_publish
from .server.server import Peer, Server
from .sorted_set import SortedSet
from .stream import Stream

TxCmd = Callable[[Peer, "ConnCtx"], None]
BlockCmd = Callable[[Peer, "ConnCtx"], bool]


class RedisDB:
    """A single numbered database."""

    def __init__(self, db_id: int, master: "Miniredis") -> None:
        self.id = db_id
        self.master = master
        self.keys: dict[str, str] = {}  # key -> type name
        self.string_keys: dict[str, str] = {}
        self.hash_keys: dict[str, dict[str, str]] = {}
        self.list_keys: dict[str, list[str]] = {}
        self.set_keys: dict[str, set[str]] = {}
        self.sortedset_keys: dict[str, SortedSet] = {}
        self.stream_keys: dict[str, Stream] = {}
        self.ttl: dict[str, timedelta] = {}
        self.key_version: dict[str, int] = {}


@dataclass
class ConnCtx:
    """All state kept for a single connection."""

    selected_db: int = 0
    authenticated: bool = False
    transaction: Optional[list[TxCmd]] = None
    dirty_transaction: bool = False
    watch: Optional[dict[tuple[int, str], int]] = None
    subscriber: Optional[Subscriber] = None


class Miniredis:
    """A Redis server for tests, holding every database in memory.

    ``lock`` guards all data; ``signal`` is a condition on that lock which
    is notified after every command so blocked commands can retry.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.signal = threading.Condition(self.lock)
        self._srv: Optional[Server] = None
        self._port = 0
        self._password = ""
        self.dbs: dict[int, RedisDB] = {}
        self.selected_db = 0
        self.scripts: dict[str, str] = {}
        self._now: Optional[datetime] = None
        self._subscribers: set[Subscriber] = set()
        self._rand: Optional[random.Random] = None
        self.stopped = threading.Event()

    def __enter__(self) -> "Miniredis":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        """Listen on localhost, on a random port the first time."""
        self._start(Server(f"127.0.0.1:{self._port}"))

    def start_addr(self, addr: str) -> None:
        """Listen on the given address, such as "127.0.0.1:6379"."""
        self._start(Server(addr))

    def _start(self, srv: Server) -> None:
        with self.lock:
            self._srv = srv
            self._port = srv.addr()[1]

    def restart(self) -> None:
        """Start a closed server again on the same port; data is kept."""
        self.start()

    def close(self) -> None:
        """Shut the server down. Closing more than once is fine."""
        with self.lock:
            srv = self._srv
            if srv is None:
                return
            self._srv = None
            self.stopped.set()
            self.signal.notify_all()
        # Disconnect callbacks take the lock, so close outside of it.
        srv.close()

    def require_auth(self, password: str) -> None:
        """Make every connection AUTH first; an empty string disables it."""
        with self.lock:
            self._password = password

    def db(self, index: int) -> RedisDB:
        """The database with the given number, created on first use."""
        with self.lock:
            return self._db(index)

    def _db(self, index: int) -> RedisDB:
        db = self.dbs.get(index)
        if db is None:
            db = self.dbs[index] = RedisDB(index, self)
        return db

    def swap_db(self, i: int, j: int) -> bool:
        """Swap two databases by number."""
        with self.lock:
            return self._swap_db(i, j)

    def _swap_db(self, i: int, j: int) -> bool:
        db1 = self._db(i)
        db2 = self._db(j)
        db1.id, db2.id = j, i
        self.dbs[i], self.dbs[j] = db2, db1
        return True

    def _running(self) -> Server:
        if self._srv is None:
            raise RuntimeError("server is not running")
        return self._srv

    def _address(self) -> tuple[str, int]:
        address = self._running().addr()
        if address is None:
            raise RuntimeError("server is not running")
        return address

    def addr(self) -> str:
        """The "host:port" address to connect to."""
        with self.lock:
            host, port = self._address()
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"

    def host(self) -> str:
        """The host part of addr()."""
        with self.lock:
            return self._address()[0]

    def port(self) -> str:
        """The port part of addr()."""
        with self.lock:
            return str(self._address()[1])

    def command_count(self) -> int:
        """The number of processed (known) commands."""
        with self.lock:
            return self._running().total_commands()

    def current_connection_count(self) -> int:
        """The number of clients connected right now."""
        with self.lock:
            return self._running().clients_len()

    def total_connection_count(self) -> int:
        """The number of client connections since the server started."""
        with self.lock:
            return self._running().total_connections()

    def server(self) -> Optional[Server]:
        """The underlying server, to register custom commands on."""
        return self._srv

    def set_time(self, when: datetime) -> None:
        """Set the time used for EXPIREAT and stream IDs."""
        with self.lock:
            self._now = when

    def handle_auth(self, peer: Peer) -> bool:
        """Whether the peer may run commands; replies with an error if not."""
        with self.lock:
            if not self._password:
                return True
            if not get_ctx(peer).authenticated:
                peer.write_error("NOAUTH Authentication required.")
                return False
            return True

    def check_pubsub(self, peer: Peer) -> bool:
        """Reply with an error and return True if the peer is subscribed."""
        with self.lock:
            if get_ctx(peer).subscriber is None:
                return False
            peer.write_error(
                "ERR only (P)SUBSCRIBE / (P)UNSUBSCRIBE / PING / QUIT "
                "allowed in this context"
            )
            return True

    def _remove_subscriber(self, sub: Subscriber) -> None:
        if sub in self._subscribers:
            self._subscribers.discard(sub)
            sub.close()

    def new_subscriber(self) -> Subscriber:
        """A new subscriber that receives published messages.

        It stays registered when it has no subscriptions left.
        """
        sub = Subscriber()
        with self.lock:
            self._subscribers.add(sub)
        return sub

    def publish(self, channel: str, message: str) -> int:
        """Publish to every subscriber; the caller holds the lock."""
        return sum(sub.publish(channel, message) for sub in self._subscribers)

    def subscribed_state(self, peer: Peer) -> Subscriber:
        """Put the peer in subscribed state, or return its subscriber.

        The caller holds the lock.
        """
        ctx = get_ctx(peer)
        if ctx.subscriber is not None:
            return ctx.subscriber

        sub = Subscriber()
        self._subscribers.add(sub)

        def disconnected() -> None:
            with self.lock:
                self._remove_subscriber(sub)

        peer.on_disconnect(disconnected)
        ctx.subscriber = sub
        for target in (monitor_publish, monitor_ppublish):
            threading.Thread(target=target, args=(peer, sub), daemon=True).start()
        return sub

    def end_subscriber(self, peer: Peer) -> None:
        """Leave subscribed state; the caller holds the lock."""
        ctx = get_ctx(peer)
        if ctx.subscriber is not None:
            self._remove_subscriber(ctx.subscriber)
        ctx.subscriber = None

    def all_subscribers(self) -> list[Subscriber]:
        """Every registered subscriber; the caller holds the lock."""
        return list(self._subscribers)

    def seed(self, seed: int) -> None:
        """Make random choices repeatable."""
        with self.lock:
            self._rand = random.Random(seed)

    def _rand_intn(self, n: int) -> int:
        source = self._rand if self._rand is not None else random
        return source.randrange(n)

    def shuffle(self, items: list) -> None:
        """Shuffle a list in place, more or less."""
        for _ in range(len(items)):
            i = self._rand_intn(len(items))
            j = self._rand_intn(len(items))
            items[i], items[j] = items[j], items[i]

    def effective_now(self) -> datetime:
        """The time set with set_time(), or the current UTC time."""
        if self._now is not None:
            return self._now
        return datetime.now(timezone.utc)


def run() -> Miniredis:
    """Create and start a server."""
    m = Miniredis()
    m.start()
    return m


def get_ctx(peer: Peer) -> ConnCtx:
    """The connection state of a peer, created on first use."""
    if peer.ctx is None:
        peer.ctx = ConnCtx()
    return peer.ctx


def start_tx(ctx: ConnCtx) -> None:
    ctx.transaction = []
    ctx.dirty_transaction = False


def stop_tx(ctx: ConnCtx) -> None:
    ctx.transaction = None
    unwatch(ctx)


def in_tx(ctx: ConnCtx) -> bool:
    return ctx.transaction is not None


def add_tx_cmd(ctx: ConnCtx, callback: TxCmd) -> None:
    if ctx.transaction is None:
        ctx.transaction = []
    ctx.transaction.append(callback)


def watch(db: RedisDB, ctx: ConnCtx, key: str) -> None:
    """Remember the current version of a key (0 if it never changed)."""
    if ctx.watch is None:
        ctx.watch = {}
    ctx.watch[(db.id, key)] = db.key_version.get(key, 0)


def unwatch(ctx: ConnCtx) -> None:
    ctx.watch = None


def set_dirty(peer: Peer) -> None:
    """Mark a queued transaction as failed; no-op without connection state."""
    if peer.ctx is None:
        return
    get_ctx(peer).dirty_transaction = True


def set_authenticated(peer: Peer) -> None:
    get_ctx(peer).authenticated = True


def with_tx(server: Miniredis, peer: Peer, callback: TxCmd) -> None:
    """Run a command now, or queue it when a transaction is open."""
    ctx = get_ctx(peer)
    if in_tx(ctx):
        add_tx_cmd(ctx, callback)
        peer.write_inline("QUEUED")
        return
    with server.signal:
        callback(peer, ctx)
        server.signal.notify_all()


def blocking(
    server: Miniredis,
    peer: Peer,
    timeout: float,
    callback: BlockCmd,
    on_timeout: Callable[[Peer], None],
) -> None:
    """Retry a command after every other command until it reports done.

    A timeout of 0 waits forever. on_timeout runs when time is up, or at
    once when the command is run as part of a transaction and not done.
    """
    ctx = get_ctx(peer)
    if in_tx(ctx):

        def queued(p: Peer, c: ConnCtx) -> None:
            if not callback(p, c):
                on_timeout(p)

        add_tx_cmd(ctx, queued)
        peer.write_inline("QUEUED")
        return

    deadline = time.monotonic() + timeout if timeout else None
    with server.signal:
        while True:
            if callback(peer, ctx):
                return
            if server.stopped.is_set():
                return
            if deadline is None:
                server.signal.wait()
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    on_timeout(peer)
                    return
                server.signal.wait(remaining)
            if server.stopped.is_set():
                return
            if deadline is not None and time.monotonic() >= deadline:
                on_timeout(peer)
                return