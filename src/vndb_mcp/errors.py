"""Exception types raised by the client.

Four kinds of failure are kept apart:

- ``TransportError``: the socket could not be opened, dropped, or failed to close.
- ``VNDBError``: the server answered with an ``error`` response.
- ``ResponseDecodeError``: the server answered with a body that is not JSON.
- ``UsageError``: the client was driven in a way it does not support.
"""

from __future__ import annotations

from typing import Any


class TransportError(ConnectionError):
    """I/O failure on the underlying TLS connection."""


class VNDBError(Exception):
    """An ``error`` response reported by the server.

    Attributes:
        id: Error kind as reported by the server (``parse``, ``auth``,
            ``throttled``, ...).
        msg: Human readable message.
        details: Any other fields of the error body, e.g. ``minwait``.
    """

    def __init__(
        self,
        id: str = "generic",
        msg: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"{id}: {msg}" if msg else id)
        self.id = id
        self.msg = msg
        self.details = details or {}

    @classmethod
    def from_payload(cls, payload: Any) -> VNDBError:
        if not isinstance(payload, dict):
            return cls(msg=str(payload))
        fields = dict(payload)
        return cls(
            id=str(fields.pop("id", "generic")),
            msg=str(fields.pop("msg", "")),
            details=fields,
        )


class ResponseDecodeError(ValueError):
    """A response body that should have been JSON could not be decoded."""

    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"Malformed response {raw[:80]!r}: {reason}")
        self.raw = raw


class UsageError(RuntimeError):
    """The client was used in a way it does not allow."""


class AlreadyConnectedError(UsageError):
    """``connect()`` was called on a client that already holds a connection."""
