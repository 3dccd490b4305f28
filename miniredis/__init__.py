"""In-process Redis test server core: databases, RESP server, sorted sets, streams and pub/sub."""

__version__ = "2.0.0"