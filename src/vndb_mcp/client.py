"""Connection manager and single-flight command queue for the VNDB API.

The protocol is strictly half-duplex: one request is written, then
nothing else may be written until its response terminator arrives.
``VNDBClient`` serializes any number of concurrent callers onto the one
connection::

    execute(msg) -> queue (FIFO) -> write -> MessageBuffer -> parse_response
                      ^                                            |
                      +------------- next command <----------------+

Responses are matched to requests by position, there are no request IDs.
Everything runs on the event loop, so no locks are needed.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Iterable, Mapping, Optional

from .config import ClientConfig
from .errors import (
    AlreadyConnectedError,
    ResponseDecodeError,
    TransportError,
    UsageError,
    VNDBError,
)
from .protocol.commands import GetType, build_dbstats, build_get, build_login
from .protocol.framing import TERMINATOR, MessageBuffer, encode_message
from .protocol.parser import ParsedResponse, parse_response
from .transport.tls_connection import TLSConnection, Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, int], Transport]


class ConnectionState(Enum):
    """Lifecycle of the client's connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    ENDING = "ending"


class ExchangeState(Enum):
    """Whether a request is outstanding on the connection."""

    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


def _verb(message: str) -> str:
    return message.partition(" ")[0]


@dataclass
class PendingCommand:
    """A queued request and the future its caller is waiting on."""

    message: str
    result: asyncio.Future = field(repr=False)

    @property
    def settled(self) -> bool:
        return self.result.done()

    def resolve(self, value: Any) -> None:
        if self._can_settle():
            self.result.set_result(value)

    def reject(self, error: BaseException) -> None:
        if self._can_settle():
            self.result.set_exception(error)

    def _can_settle(self) -> bool:
        if self.result.cancelled():
            logger.debug("Dropping response to cancelled %r", _verb(self.message))
            return False
        if self.result.done():
            raise UsageError(f"Command {_verb(self.message)!r} was already settled")
        return True


class VNDBClient:
    """Client for the VNDB TCP API.

    Usage::

        client = VNDBClient()
        await client.connect("user", "secret")
        stats = await client.dbstats()
        novels = await client.vn(["basic", "details"], "(id = 17)")
        await client.end()

    Commands may be issued before ``connect()`` completes; they are held
    in the queue and sent once the login has succeeded.
    """

    def __init__(
        self,
        transport_factory: TransportFactory = TLSConnection,
        config: ClientConfig | None = None,
    ) -> None:
        self._defaults = config or ClientConfig()
        self._transport_factory = transport_factory
        self._transport: Transport | None = None
        self._state = ConnectionState.DISCONNECTED
        self._exchange = ExchangeState.IDLE
        self._buffer = MessageBuffer()
        self._response: asyncio.Future | None = None
        self._queue: deque[PendingCommand] = deque()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._exchange is ExchangeState.AWAITING_RESPONSE

    @property
    def queued(self) -> int:
        """Number of commands waiting to be sent."""
        return len(self._queue)

    async def __aenter__(self) -> VNDBClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.end()

    # ─── LIFECYCLE ───────────────────────────────────────────────────

    async def connect(
        self,
        username: str | None = None,
        password: str | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> None:
        """Open the connection, log in, then start sending queued commands.

        Args:
            username: Optional account name; omitted from the login when empty.
            password: Optional password; omitted from the login when empty.
            config: Overrides for ``host``, ``port``, ``protocol``,
                    ``client`` and ``clientver``.

        Raises:
            AlreadyConnectedError: If the client already holds a connection.
            TransportError: If the connection cannot be established.
            VNDBError: If the server rejects the login.
        """
        if self._transport is not None:
            raise AlreadyConnectedError(
                "Client is already connected. Call end() before connecting again."
            )
        settings = self._defaults.merged(config)

        transport = self._transport_factory(settings.host, settings.port)
        self._transport = transport
        self._state = ConnectionState.CONNECTING
        transport.set_close_handler(partial(self._on_transport_closed, transport))
        try:
            await transport.open()
        except OSError as e:
            self._release(transport)
            if isinstance(e, TransportError):
                raise
            raise TransportError(
                f"Could not connect to {settings.host}:{settings.port}: {e}"
            ) from e

        self._state = ConnectionState.AUTHENTICATING
        logger.info("Logging in as %s", username or "anonymous")
        try:
            await self.write(build_login(username, password, settings))
        except BaseException:
            # Refused login, failed write or cancellation: never leave a
            # half-authenticated connection behind.
            await self._abandon(transport)
            raise

        self._state = ConnectionState.READY
        logger.info("Logged in, %d queued command(s)", len(self._queue))
        self.execute()

    async def end(self) -> None:
        """Close the connection.

        Commands still queued are kept and will be sent after the next
        successful ``connect()``. A command already in flight is failed
        with :class:`TransportError`.

        Raises:
            TransportError: If the connection does not shut down cleanly.
        """
        transport = self._transport
        if transport is None:
            return
        self._state = ConnectionState.ENDING
        try:
            await transport.close()
        except OSError as e:
            if isinstance(e, TransportError):
                raise
            raise TransportError(f"Error closing connection: {e}") from e
        finally:
            self._release(transport)
        if self._queue:
            logger.info("Connection ended with %d command(s) queued", len(self._queue))

    async def _abandon(self, transport: Transport) -> None:
        try:
            await transport.close()
        except OSError as e:
            logger.warning("Error closing connection after failed login: %s", e)
        finally:
            self._release(transport)

    def _release(self, transport: Transport) -> None:
        if transport is not self._transport:
            return
        transport.set_data_handler(None)
        self._transport = None
        self._state = ConnectionState.DISCONNECTED
        response = self._finish_exchange()
        if response is not None and not response.done():
            response.set_exception(
                TransportError("Connection closed while awaiting a response")
            )

    def _on_transport_closed(
        self, transport: Transport, exc: Optional[BaseException]
    ) -> None:
        if transport is not self._transport:
            return
        if self._state is not ConnectionState.ENDING:
            logger.warning("Connection dropped: %s", exc or "closed by server")
        self._release(transport)

    # ─── EXCHANGE ────────────────────────────────────────────────────

    def write(self, message: str) -> asyncio.Future:
        """Send one message and return a future for its parsed response.

        This bypasses the queue. Callers should normally use
        :meth:`execute`.

        Raises:
            UsageError: If there is no connection or a response is
                already outstanding.
        """
        transport = self._transport
        if transport is None:
            raise UsageError("Cannot write: not connected")
        if self._exchange is ExchangeState.AWAITING_RESPONSE:
            raise UsageError("Cannot write: a command is already in flight")

        data = encode_message(message)
        response = asyncio.get_running_loop().create_future()
        self._buffer.reset()
        self._response = response
        self._exchange = ExchangeState.AWAITING_RESPONSE
        transport.set_data_handler(self._on_data)

        logger.debug("Sending %s", _verb(message))
        try:
            transport.write(data)
        except OSError as e:
            self._finish_exchange()
            error = TransportError(f"Write failed: {e}")
            error.__cause__ = e
            response.set_exception(error)
        return response

    def _finish_exchange(self) -> asyncio.Future | None:
        if self._transport is not None:
            self._transport.set_data_handler(None)
        self._exchange = ExchangeState.IDLE
        self._buffer.reset()
        response, self._response = self._response, None
        return response

    def _on_data(self, chunk: bytes) -> None:
        try:
            message = self._buffer.feed(chunk)
        except UnicodeDecodeError as e:
            response = self._finish_exchange()
            self._settle(response, error=ResponseDecodeError(repr(e.object), str(e)))
            return
        if message is None:
            return

        response = self._finish_exchange()
        try:
            parsed = parse_response(message)
        except (VNDBError, ResponseDecodeError) as e:
            logger.debug("Received error response: %s", e)
            self._settle(response, error=e)
        else:
            logger.debug("Received %s", parsed.type)
            self._settle(response, result=parsed)

    @staticmethod
    def _settle(
        response: asyncio.Future | None,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        # The exchange still completes when its caller stopped waiting.
        if response is None or response.done():
            return
        if error is not None:
            response.set_exception(error)
        else:
            response.set_result(result)

    # ─── QUEUE ───────────────────────────────────────────────────────

    def execute(self, message: str | None = None) -> asyncio.Future:
        """Queue *message* and send the head of the queue if the connection is free.

        Unlike a plain drain, a call with a message returns the future of
        that message rather than the future at the head of the queue, so
        every caller receives the response to its own command.

        Returns:
            A future for the response to *message*. Without a message,
            the future of the command at the head of the queue, or an
            already resolved ``None`` if the queue is empty.

        Raises:
            ValueError: If *message* is empty or contains the terminator.
        """
        loop = asyncio.get_running_loop()
        if message is not None:
            if not message:
                raise ValueError("Message must not be empty")
            if TERMINATOR in message:
                raise ValueError("Message must not contain the terminator byte")
            command = PendingCommand(message, loop.create_future())
            self._queue.append(command)
            handle = command.result
        elif self._queue:
            handle = self._queue[0].result
        else:
            handle = loop.create_future()
            handle.set_result(None)
        self._dispatch()
        return handle

    def _ready(self) -> bool:
        return (
            self._transport is not None
            and not self._transport.connecting
            and self._state is ConnectionState.READY
            and self._exchange is ExchangeState.IDLE
        )

    def _dispatch(self) -> None:
        if not self._queue or not self._ready():
            return
        command = self._queue.popleft()
        response = self.write(command.message)
        response.add_done_callback(partial(self._on_response, command))

    def _on_response(self, command: PendingCommand, response: asyncio.Future) -> None:
        if response.cancelled():
            command.result.cancel()
            self._dispatch()
            return
        error = response.exception()
        if error is not None:
            command.reject(error)
        else:
            command.resolve(response.result())
        self._dispatch()

    # ─── COMMANDS ────────────────────────────────────────────────────

    async def dbstats(self) -> ParsedResponse:
        """Fetch database statistics."""
        return await self.execute(build_dbstats())

    async def get(
        self,
        type: GetType | str,
        flags: Iterable[str] | str | None = None,
        filters: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> ParsedResponse:
        """Run a ``get`` command. See :func:`vndb_mcp.protocol.commands.build_get`."""
        return await self.execute(build_get(type, flags, filters, options))

    async def vn(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.VN, flags, filters, options)

    async def release(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.RELEASE, flags, filters, options)

    async def producer(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.PRODUCER, flags, filters, options)

    async def character(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.CHARACTER, flags, filters, options)

    async def user(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.USER, flags, filters, options)

    async def votelist(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.VOTELIST, flags, filters, options)

    async def vnlist(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.VNLIST, flags, filters, options)

    async def wishlist(self, flags=None, filters=None, options=None) -> ParsedResponse:
        return await self.get(GetType.WISHLIST, flags, filters, options)
