"""A small threaded server speaking the Redis wire protocol."""

from __future__ import annotations

import socket
import threading
from typing import BinaryIO, Callable, Optional

from .proto import ProtocolError, read_array

Handler = Callable[["Peer", str, list], None]

_NOT_SPACE = frozenset("\x1c\x1d\x1e\x1f")
_ACCEPT_POLL = 0.1


class CommandAlreadyRegistered(ValueError):
    """Raised when a command name is registered twice."""


def err_unknown_command(cmd: str, args: list[str]) -> str:
    """The error text for a command nobody registered."""
    text = f"ERR unknown command `{cmd}`, with args beginning with: "
    return text + "".join(f"`{arg}`, " for arg in args[:20])


def to_inline(text: str) -> str:
    """Replace every whitespace character with a plain space."""
    return "".join(
        " " if ch.isspace() and ch not in _NOT_SPACE else ch for ch in text
    )


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


class Writer:
    """Writes protocol replies to a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def _write(self, data: bytes) -> None:
        try:
            self._stream.write(data)
        except (OSError, ValueError):
            pass

    def write_error(self, message: str) -> None:
        self._write(b"-" + _encode(to_inline(message)) + b"\r\n")

    def write_len(self, n: int) -> None:
        self._write(b"*%d\r\n" % n)

    def write_bulk(self, text: str) -> None:
        data = _encode(text)
        self._write(b"$%d\r\n" % len(data) + data + b"\r\n")

    def write_int(self, n: int) -> None:
        self._write(b":%d\r\n" % n)

    def write_null(self) -> None:
        self._write(b"$-1\r\n")

    def write_inline(self, text: str) -> None:
        self._write(b"+" + _encode(to_inline(text)) + b"\r\n")

    def flush(self) -> None:
        try:
            self._stream.flush()
        except (OSError, ValueError):
            pass


class Peer:
    """A client connected to the server."""

    def __init__(self, stream: BinaryIO) -> None:
        self._writer = Writer(stream)
        self._lock = threading.Lock()
        self._disconnect_callbacks: list[Callable[[], None]] = []
        self.closed = False
        self.ctx = None  # free for the command handlers to use

    def flush(self) -> None:
        with self._lock:
            self._writer.flush()

    def close(self) -> None:
        """Close the connection once the current command is done."""
        with self._lock:
            self.closed = True

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._disconnect_callbacks.append(callback)

    def _disconnected(self) -> None:
        for callback in self._disconnect_callbacks:
            callback()

    def block(self, callback: Callable[[Writer], None]) -> None:
        """Run several writes without other writers interleaving."""
        with self._lock:
            callback(self._writer)

    def write_error(self, message: str) -> None:
        self.block(lambda w: w.write_error(message))

    def write_inline(self, text: str) -> None:
        self.block(lambda w: w.write_inline(text))

    def write_ok(self) -> None:
        self.write_inline("OK")

    def write_bulk(self, text: str) -> None:
        self.block(lambda w: w.write_bulk(text))

    def write_null(self) -> None:
        self.block(lambda w: w.write_null())

    def write_len(self, n: int) -> None:
        self.block(lambda w: w.write_len(n))

    def write_int(self, n: int) -> None:
        self.block(lambda w: w.write_int(n))


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


def _shutdown(conn: socket.socket) -> None:
    try:
        conn.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass


class Server:
    """Listens on a TCP address and dispatches commands to handlers."""

    def __init__(self, addr: str) -> None:
        host, port = _split_addr(addr)
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        listener = socket.socket(family, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((host, port))
            listener.listen()
            listener.settimeout(_ACCEPT_POLL)
        except OSError:
            listener.close()
            raise

        self._listener: Optional[socket.socket] = listener
        self._cmds: dict[str, Handler] = {}
        self._peers: set[socket.socket] = set()
        self._threads: set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._closed = False
        self._info_conns = 0
        self._info_cmds = 0

        accept = threading.Thread(target=self._serve, args=(listener,), daemon=True)
        self._threads.add(accept)
        accept.start()

    def _serve(self, listener: socket.socket) -> None:
        try:
            while True:
                with self._lock:
                    if self._closed:
                        return
                try:
                    conn, _ = listener.accept()
                except socket.timeout:
                    continue
                except OSError:
                    return
                conn.setblocking(True)
                self.serve_conn(conn)
        finally:
            listener.close()
            with self._lock:
                self._threads.discard(threading.current_thread())

    def addr(self) -> Optional[tuple[str, int]]:
        """The (host, port) the server listens on, or None once closed."""
        with self._lock:
            if self._listener is None:
                return None
            host, port = self._listener.getsockname()[:2]
            return host, port

    def serve_conn(self, conn: socket.socket) -> None:
        """Handle an already connected socket, such as one of a socketpair."""
        with self._lock:
            if self._closed:
                conn.close()
                return
            self._peers.add(conn)
            self._info_conns += 1
            thread = threading.Thread(target=self._handle, args=(conn,), daemon=True)
            self._threads.add(thread)
        thread.start()

    def _handle(self, conn: socket.socket) -> None:
        try:
            self._serve_peer(conn)
        finally:
            conn.close()
            with self._lock:
                self._peers.discard(conn)
                self._threads.discard(threading.current_thread())

    def _serve_peer(self, conn: socket.socket) -> None:
        reader = conn.makefile("rb")
        stream = conn.makefile("wb")
        peer = Peer(stream)
        try:
            while True:
                try:
                    args = read_array(reader)
                except (EOFError, ProtocolError, OSError, ValueError):
                    return
                if args:
                    self._dispatch(peer, args)
                peer.flush()
                if peer.closed:
                    _shutdown(conn)
        finally:
            peer._disconnected()
            for f in (reader, stream):
                try:
                    f.close()
                except (OSError, ValueError):
                    pass

    def _dispatch(self, peer: Peer, args: list[str]) -> None:
        cmd, rest = args[0], args[1:]
        cmd_up = cmd.upper()
        with self._lock:
            handler = self._cmds.get(cmd_up)
            if handler is not None:
                self._info_cmds += 1
        if handler is None:
            peer.write_error(err_unknown_command(cmd, rest))
            return
        handler(peer, cmd_up, rest)

    def close(self) -> None:
        """Stop listening, disconnect every client and wait for them."""
        with self._lock:
            self._closed = True
            self._listener = None
            peers = list(self._peers)
        for conn in peers:
            _shutdown(conn)

        current = threading.current_thread()
        while True:
            with self._lock:
                pending = [t for t in self._threads if t is not current]
            if not pending:
                return
            for thread in pending:
                thread.join()
            with self._lock:
                self._threads.difference_update(pending)

    def register(self, cmd: str, handler: Handler) -> None:
        """Register a command handler. Names are case-insensitive."""
        cmd = cmd.upper()
        with self._lock:
            if cmd in self._cmds:
                raise CommandAlreadyRegistered(f"command already registered: {cmd}")
            self._cmds[cmd] = handler

    def total_commands(self) -> int:
        with self._lock:
            return self._info_cmds

    def clients_len(self) -> int:
        with self._lock:
            return len(self._peers)

    def total_connections(self) -> int:
        with self._lock:
            return self._info_conns