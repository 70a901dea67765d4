"""Shared fixtures: an in-memory stand-in for the TLS connection."""

from __future__ import annotations

import asyncio

import pytest

from vndb_mcp.protocol.framing import TERMINATOR


class FakeTransport:
    """Scripted transport that answers each write with the next reply.

    ``login`` messages are answered with *login_reply*; every other
    message takes the next entry of *replies*. A ``str`` reply gets the
    terminator appended and is delivered in *chunk_size* pieces, one per
    event loop callback. A ``bytes`` reply is delivered as-is.
    """

    def __init__(
        self,
        host: str,
        port: int,
        replies=None,
        login_reply: str | None = "ok",
        chunk_size: int | None = None,
        fail_open: bool = False,
        fail_close: bool = False,
        fail_write: bool = False,
        hold_open: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.replies = list(replies or [])
        self.login_reply = login_reply
        self.chunk_size = chunk_size
        self.fail_open = fail_open
        self.fail_close = fail_close
        self.fail_write = fail_write
        self.open_gate = asyncio.Event() if hold_open else None
        self.connecting = False
        self.opened = False
        self.closed = False
        self.writes: list[bytes] = []
        self.outstanding = False
        self.overlaps = 0
        self.data_handler = None
        self.close_handler = None

    @property
    def messages(self) -> list[str]:
        return [w.decode("utf-8")[: -len(TERMINATOR)] for w in self.writes]

    def set_data_handler(self, handler) -> None:
        self.data_handler = handler

    def set_close_handler(self, handler) -> None:
        self.close_handler = handler

    async def open(self) -> None:
        self.connecting = True
        try:
            if self.open_gate is not None:
                await self.open_gate.wait()
            await asyncio.sleep(0)
            if self.fail_open:
                raise ConnectionRefusedError("connection refused")
            self.opened = True
        finally:
            self.connecting = False

    def write(self, data: bytes) -> None:
        if self.fail_write:
            raise ConnectionResetError("connection reset")
        if self.outstanding:
            self.overlaps += 1
        self.outstanding = True
        self.writes.append(data)

        if data.startswith(b"login"):
            reply = self.login_reply
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            reply = None
        if reply is not None:
            self._schedule(reply)

    def _schedule(self, reply) -> None:
        loop = asyncio.get_running_loop()
        if isinstance(reply, bytes):
            loop.call_soon(self.feed, reply)
            return
        data = (reply + TERMINATOR).encode("utf-8")
        size = self.chunk_size or len(data)
        chunks = [data[i : i + size] for i in range(0, len(data), size)]
        for chunk in chunks:
            loop.call_soon(self.feed, chunk)

    def feed(self, chunk: bytes) -> None:
        """Deliver *chunk* to the client as if it came off the socket."""
        if chunk.endswith(TERMINATOR.encode()):
            self.outstanding = False
        if self.data_handler is not None:
            self.data_handler(chunk)

    def drop(self, exc: BaseException | None = None) -> None:
        """Simulate the server closing the connection."""
        if self.close_handler is not None:
            self.close_handler(exc)

    async def close(self) -> None:
        await asyncio.sleep(0)
        if self.fail_close:
            error = OSError("close failed")
            self.drop(error)
            raise error
        self.closed = True
        self.drop(None)


@pytest.fixture
def transports() -> list[FakeTransport]:
    """Every FakeTransport created by ``fake_factory``, in creation order."""
    return []


@pytest.fixture
def fake_factory(transports):
    """Return a builder for transport factories bound to FakeTransport options."""

    def make(**options):
        def create(host: str, port: int) -> FakeTransport:
            transport = FakeTransport(host, port, **options)
            transports.append(transport)
            return transport

        return create

    return make
