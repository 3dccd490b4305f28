import io
import socket
import threading
import time

import pytest

from miniredis.server.server import (
    CommandAlreadyRegistered,
    Peer,
    Server,
    Writer,
    err_unknown_command,
    to_inline,
)

WRONG_ARGS = "ERR Wrong number of args"


class _ReplyError(Exception):
    pass


def _read_reply(reader):
    line = reader.readline()
    if not line:
        raise EOFError
    kind, body = line[:1], line[1:-2].decode()
    if kind == b"+":
        return body
    if kind == b"-":
        raise _ReplyError(body)
    if kind == b":":
        return int(body)
    if kind == b"$":
        n = int(body)
        if n < 0:
            return None
        return reader.read(n + 2)[:n].decode()
    if kind == b"*":
        return [_read_reply(reader) for _ in range(int(body))]
    raise AssertionError(f"unexpected reply {line!r}")


class _Client:
    def __init__(self, sock):
        self.sock = sock
        self.reader = sock.makefile("rb")
        self.writer = sock.makefile("wb")

    def do(self, *args):
        parts = [b"*%d\r\n" % len(args)]
        for arg in args:
            data = str(arg).encode()
            parts.append(b"$%d\r\n" % len(data) + data + b"\r\n")
        self.writer.write(b"".join(parts))
        self.writer.flush()
        return _read_reply(self.reader)

    def close(self):
        self.reader.close()
        self.writer.close()
        self.sock.close()


def _register_all(srv):
    srv.register("PING", lambda c, cmd, args: c.write_inline("PONG"))

    def echo(c, cmd, args):
        if len(args) != 1:
            c.write_error(WRONG_ARGS)
            return
        c.write_bulk(args[0])

    def dwarfs(c, cmd, args):
        if args:
            c.write_error(WRONG_ARGS)
            return
        names = ["Blick", "Flick", "Glick", "Plick", "Quee", "Snick", "Whick"]
        c.write_len(len(names))
        for name in names:
            c.write_bulk(name)

    def plus(c, cmd, args):
        if len(args) != 2:
            c.write_error(WRONG_ARGS)
            return
        try:
            a, b = int(args[0]), int(args[1])
        except ValueError:
            c.write_error("ERR not an int")
            return
        c.write_int(a + b)

    def quit_(c, cmd, args):
        c.write_ok()
        c.close()

    srv.register("ECHO", echo)
    srv.register("dWaRfS", dwarfs)
    srv.register("PLUS", plus)
    srv.register("NULL", lambda c, cmd, args: c.write_null())
    srv.register("QUIT", quit_)


@pytest.fixture
def server():
    srv = Server("127.0.0.1:0")
    _register_all(srv)
    yield srv
    srv.close()


@pytest.fixture
def client(server):
    host, port = server.addr()
    c = _Client(socket.create_connection((host, port)))
    yield c
    c.close()


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_port_assigned(server):
    assert server.addr()[1] > 0


def test_ping(client):
    assert client.do("PING") == "PONG"
    assert client.do("pInG") == "PONG"


def test_unknown_command(client):
    with pytest.raises(_ReplyError) as exc:
        client.do("NOSUCH")
    assert str(exc.value) == "ERR unknown command `NOSUCH`, with args beginning with: "


def test_echo(client):
    assert client.do("ECHO", "hello\nworld") == "hello\nworld"
    with pytest.raises(_ReplyError) as exc:
        client.do("ECHO")
    assert str(exc.value) == WRONG_ARGS


def test_dwarfs(client):
    assert client.do("dwaRFS") == [
        "Blick", "Flick", "Glick", "Plick", "Quee", "Snick", "Whick",
    ]


def test_plus_and_null(client):
    assert client.do("PLUS", 3, 4) == 7
    assert client.do("NULL") is None


def test_big_payload(client):
    big = "X" * (1 << 24)
    assert client.do("ECHO", big) == big


def test_counters(server, client):
    client.do("PING")
    assert server.clients_len() == 1
    assert server.total_connections() == 1
    assert server.total_commands() == 1
    with pytest.raises(_ReplyError):
        client.do("NOSUCH")
    client.do("PING")
    assert server.total_commands() == 2


def test_clients_len_drops_after_disconnect(server, client):
    client.do("PING")
    client.close()
    assert _wait_for(lambda: server.clients_len() == 0)
    assert server.total_connections() == 1


def test_peer_close_ends_connection(client):
    assert client.do("QUIT") == "OK"
    with pytest.raises(EOFError):
        _read_reply(client.reader)


def test_register_twice(server):
    with pytest.raises(CommandAlreadyRegistered):
        server.register("ping", lambda c, cmd, args: None)


def test_serve_conn_socketpair(server):
    ours, theirs = socket.socketpair()
    server.serve_conn(theirs)
    c = _Client(ours)
    try:
        assert c.do("ECHO", "piped") == "piped"
        assert server.total_connections() == 1
        assert server.clients_len() == 1
        assert server.total_commands() == 1
    finally:
        c.close()
    assert _wait_for(lambda: server.clients_len() == 0)


def test_on_disconnect_runs(server):
    gone = threading.Event()
    server.register(
        "WATCHME", lambda c, cmd, args: (c.on_disconnect(gone.set), c.write_ok())
    )
    host, port = server.addr()
    c = _Client(socket.create_connection((host, port)))
    assert c.do("WATCHME") == "OK"
    c.close()
    assert gone.wait(5)


def test_close_disconnects_and_clears_addr():
    srv = Server("127.0.0.1:0")
    _register_all(srv)
    host, port = srv.addr()
    c = _Client(socket.create_connection((host, port)))
    assert c.do("PING") == "PONG"
    srv.close()
    assert srv.addr() is None
    with pytest.raises((EOFError, OSError)):
        c.do("PING")
    c.close()
    srv.close()
    assert srv.clients_len() == 0


def test_bad_address():
    with pytest.raises(ValueError):
        Server("no-port-here")


def test_writer_output():
    buf = io.BytesIO()
    w = Writer(buf)
    w.write_bulk("hello")
    w.write_error("a\nb")
    w.write_null()
    w.write_int(-3)
    w.write_len(2)
    w.write_inline("O K")
    assert buf.getvalue() == b"$5\r\nhello\r\n-a b\r\n$-1\r\n:-3\r\n*2\r\n+O K\r\n"


def test_peer_writes_through_block():
    buf = io.BytesIO()
    peer = Peer(buf)
    peer.write_ok()
    peer.block(lambda w: (w.write_len(1), w.write_bulk("x")))
    peer.flush()
    assert buf.getvalue() == b"+OK\r\n*1\r\n$1\r\nx\r\n"
    assert peer.closed is False
    peer.close()
    assert peer.closed is True


def test_to_inline():
    assert to_inline("a\tb\nc\rd") == "a b c d"


def test_err_unknown_command_truncates_args():
    args = [str(i) for i in range(25)]
    text = err_unknown_command("foo", args)
    assert text.startswith("ERR unknown command `foo`, with args beginning with: `0`, ")
    assert text.endswith("`19`, ")
    assert "`20`" not in text