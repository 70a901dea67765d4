"""TLS connection to the VNDB API server.

Wraps an asyncio TLS stream behind a small event-style interface: the
client registers a data handler and a close handler, writes raw bytes,
and never touches the TLS handshake itself.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Callable, Optional, Protocol

from ..config import DEFAULT_HOST, DEFAULT_PORT
from ..errors import TransportError

logger = logging.getLogger(__name__)

DataHandler = Callable[[bytes], None]
CloseHandler = Callable[[Optional[BaseException]], None]


class Transport(Protocol):
    """What :class:`vndb_mcp.client.VNDBClient` needs from a connection."""

    @property
    def connecting(self) -> bool: ...

    async def open(self) -> None: ...

    def write(self, data: bytes) -> None: ...

    def set_data_handler(self, handler: DataHandler | None) -> None: ...

    def set_close_handler(self, handler: CloseHandler | None) -> None: ...

    async def close(self) -> None: ...


class _StreamProtocol(asyncio.Protocol):
    """Forwards asyncio protocol callbacks to the owning connection."""

    def __init__(self, owner: TLSConnection) -> None:
        self._owner = owner

    def data_received(self, data: bytes) -> None:
        self._owner._on_data(data)

    def eof_received(self) -> bool:
        # Let asyncio close the transport; connection_lost follows.
        return False

    def connection_lost(self, exc: Exception | None) -> None:
        self._owner._on_lost(exc)


class TLSConnection:
    """Manages the encrypted socket to the API server.

    Usage::

        conn = TLSConnection("api.vndb.org", 19535)
        conn.set_data_handler(on_chunk)
        await conn.open()
        conn.write(b"dbstats\\x04")
        await conn.close()
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._ssl_context = ssl_context or ssl.create_default_context()
        self._transport: asyncio.Transport | None = None
        self._connecting = False
        self._closed: asyncio.Future | None = None
        self._data_handler: DataHandler | None = None
        self._close_handler: CloseHandler | None = None

    @property
    def connecting(self) -> bool:
        return self._connecting

    @property
    def connected(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    def set_data_handler(self, handler: DataHandler | None) -> None:
        self._data_handler = handler

    def set_close_handler(self, handler: CloseHandler | None) -> None:
        self._close_handler = handler

    async def open(self) -> None:
        """Open the TLS connection.

        Raises:
            TransportError: If the TCP connection or the TLS handshake fails.
        """
        loop = asyncio.get_running_loop()
        self._connecting = True
        try:
            transport, _ = await loop.create_connection(
                lambda: _StreamProtocol(self),
                self._host,
                self._port,
                ssl=self._ssl_context,
                server_hostname=self._host,
            )
        except (OSError, ssl.SSLError) as e:
            raise TransportError(
                f"Could not connect to {self._host}:{self._port}: {e}"
            ) from e
        finally:
            self._connecting = False

        self._transport = transport
        self._closed = loop.create_future()
        logger.info("Connected to %s:%s", self._host, self._port)

    def write(self, data: bytes) -> None:
        """Write raw bytes to the socket.

        Raises:
            TransportError: If the connection is not open.
        """
        if not self.connected:
            raise TransportError("Not connected to server")
        self._transport.write(data)

    async def close(self) -> None:
        """Close the connection and wait until the socket is shut down.

        Raises:
            TransportError: If the connection ended with an error.
        """
        if self._transport is None:
            return
        closed = self._closed
        self._transport.close()
        try:
            await closed
        except (OSError, ssl.SSLError) as e:
            raise TransportError(f"Error closing connection: {e}") from e
        finally:
            self._transport = None

    def _on_data(self, data: bytes) -> None:
        if self._data_handler is None:
            logger.warning("Discarding %d unsolicited bytes", len(data))
            return
        self._data_handler(data)

    def _on_lost(self, exc: Exception | None) -> None:
        if exc is None:
            logger.info("Disconnected from %s:%s", self._host, self._port)
        else:
            logger.debug("Connection lost: %s", exc)
        if self._closed is not None and not self._closed.done():
            if exc is None:
                self._closed.set_result(None)
            else:
                self._closed.set_exception(exc)
                # Nobody may be awaiting close(); mark the exception retrieved.
                self._closed.exception()
        if self._close_handler is not None:
            self._close_handler(exc)
