# miniredis

The core of an in-process Redis server for unit tests: a threaded server
that speaks the Redis wire protocol (RESP), numbered in-memory databases,
per-connection state, transactions and blocking helpers, sorted sets,
streams and publish/subscribe. It needs no system binaries and every
server it starts is empty.

## Installing

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## What this package does not do

`Miniredis` starts a listening server, but it registers no Redis commands
on it. A client that connects gets
``ERR unknown command `GET`, with args beginning with: ...`` for every
command until you register handlers yourself (see *The protocol server*).
There is also no direct key API on `Miniredis` (no get/set of keys, no
TTL handling or fast-forwarding); the data lives in the plain dictionaries
of each `RedisDB`, which you can read and fill directly.

## Starting a server

```python
from miniredis.core import run

server = run()
try:
    print(server.addr())            # e.g. "127.0.0.1:53411"
    print(server.host(), server.port())
finally:
    server.close()
```

`run()` creates a `Miniredis` and starts it on a random localhost port.
`Miniredis` is also a context manager that closes the server on exit. To
listen on a fixed address:

```python
from miniredis.core import Miniredis

with Miniredis() as server:
    server.start_addr("127.0.0.1:7887")
```

A closed server can be started again on the same port with `restart()`;
the databases survive. Calling `close()` more than once is harmless.

## Inspecting and configuring the server

- `command_count()` – known commands processed so far
- `current_connection_count()` – clients connected right now
- `total_connection_count()` – clients connected since start
- `server()` – the underlying `Server`, to register commands on
- `db(index)` – a `RedisDB`, created on first use; `swap_db(i, j)` swaps two
- `require_auth(password)` – `handle_auth(peer)` then rejects peers that
  have not been marked with `set_authenticated(peer)`, replying
  `NOAUTH Authentication required.`; an empty string switches it off
- `set_time(when)` – fix the time returned by `effective_now()`
  (otherwise the current UTC time)
- `seed(seed)` – make `shuffle(items)` repeatable

A `RedisDB` holds `keys` (key to type name), `string_keys`, `hash_keys`,
`list_keys`, `set_keys`, `sortedset_keys`, `stream_keys`, `ttl` and
`key_version`.

## Writing command handlers

`miniredis.core` has the helpers a handler needs:

- `get_ctx(peer)` – the `ConnCtx` of a connection (selected database,
  authentication, queued transaction, watched keys, subscriber)
- `with_tx(server, peer, callback)` – run `callback(peer, ctx)` under the
  server lock and wake blocked commands, or reply `QUEUED` inside a
  transaction
- `blocking(server, peer, timeout, callback, on_timeout)` – retry a
  callback after every command until it returns true; a timeout of 0
  waits forever
- `start_tx`, `stop_tx`, `in_tx`, `add_tx_cmd`, `watch`, `unwatch`,
  `set_dirty`, `set_authenticated`
- `check_pubsub(peer)` – reply with an error if the peer is subscribed

`miniredis.common` has the standard Redis error texts (`MSG_WRONG_TYPE`,
`MSG_SYNTAX_ERROR`, ...), `err_wrong_number(cmd)`, `format_float`,
`format_big`, `strip_zeros` and `redis_range(length, start, end,
string_semantics)`, which turns an inclusive Redis range into slice bounds.

## The protocol server

`miniredis.server.server.Server` is a small RESP server:

```python
from miniredis.server.server import Server

srv = Server("127.0.0.1:0")
srv.register("PING", lambda peer, cmd, args: peer.write_inline("PONG"))
print(srv.addr())                   # ("127.0.0.1", <port>)
srv.close()
```

Command names are case-insensitive; registering a name twice raises
`CommandAlreadyRegistered`. Unknown commands get an error listing the
first twenty arguments. A handler replies through its `Peer`:
`write_inline`, `write_ok`, `write_error`, `write_bulk`, `write_int`,
`write_null`, `write_len`, or several writes at once with `block()`.
`serve_conn(sock)` serves an already connected socket, such as one end of
a `socket.socketpair()`.

`miniredis.server.proto` reads requests: `read_array(reader)` and
`read_string(reader)` take a binary file object and raise `EOFError` on
truncated input and `ProtocolError` on malformed input.

## Sorted sets and streams

`miniredis.sorted_set.SortedSet` maps members to scores; `by_score(
Direction.ASC)` lists `SSElem`s by score, ties broken by member, and
`rank_by_score(member, direction)` gives a 0-based rank or `None`.

`miniredis.stream` has `Stream` (a list of `StreamEntry`, with `last_id()`
and `generate_id(now)`), and ID helpers `parse_stream_id`, `stream_cmp`,
`format_stream_id` and `format_stream_range_bound`, which raise
`InvalidStreamIDError` on bad IDs.

## Pub/sub

```python
sub = server.new_subscriber()
sub.subscribe("news")
sub.psubscribe("n*")
with server.lock:
    delivered = server.publish("news", "hello")   # 2: channel and pattern
sub.close()
print(list(sub.messages()), list(sub.pmessages()))
```

`publish` expects the caller to hold `server.lock`. `messages()` and
`pmessages()` block until the subscriber is closed. A closed subscriber
stays registered with the server, and publishing to it raises
`RuntimeError`. Patterns are glob-style (`*`, `?`, `[...]`, `\`).
`active_channels`, `count_subs` and `count_psubs` summarise a list of
subscribers.