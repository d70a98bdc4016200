"""Exceptions raised by livequery itself.

Errors raised by caller-supplied fetch and mutation operations are never
wrapped; they are stored and re-raised as-is.
"""


class LiveQueryError(Exception):
    """Base class for livequery errors."""


class InvalidQueryKeyError(LiveQueryError, ValueError):
    """A query key could not be canonicalized."""


class QueryClosedError(LiveQueryError):
    """An operation was requested on a query binding that has been closed."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Query {key!r} is closed")
        self.key = key
