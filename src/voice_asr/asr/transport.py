"""Transport primitives used by StreamingSession."""

from __future__ import annotations

import abc
import logging
from typing import Awaitable, Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, InvalidStatus, WebSocketException

from ..errors import HandshakeRejected, TransportClosed, TransportError

logger = logging.getLogger(__name__)

# 16 MiB covers the largest result frames the service emits.
DEFAULT_MAX_MESSAGE_BYTES = 16 * 1024 * 1024


class Transport(abc.ABC):
    """Message-oriented, ordered, bidirectional connection."""

    @abc.abstractmethod
    async def send(self, message: str) -> None:
        """Send one text message."""

    @abc.abstractmethod
    async def recv(self) -> str | bytes:
        """Wait for the next inbound message; raise TransportClosed once closed."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Close the connection; safe to call more than once."""


Connector = Callable[[str], Awaitable[Transport]]


class WebSocketTransport(Transport):
    def __init__(self, connection: ClientConnection) -> None:
        self._ws = connection

    async def send(self, message: str) -> None:
        try:
            await self._ws.send(message)
        except ConnectionClosed as exc:
            raise TransportClosed(f"connection closed while sending: {exc}") from exc

    async def recv(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except ConnectionClosedOK as exc:
            raise TransportClosed("connection closed before the terminal status") from exc
        except ConnectionClosed as exc:
            raise TransportError(f"connection dropped: {exc}") from exc

    async def close(self) -> None:
        await self._ws.close()


class WebSocketConnector:
    """Opens ``wss://`` connections with the websockets library."""

    def __init__(
        self,
        *,
        open_timeout: Optional[float] = 10.0,
        max_size: Optional[int] = DEFAULT_MAX_MESSAGE_BYTES,
    ) -> None:
        self._open_timeout = open_timeout
        self._max_size = max_size

    async def __call__(self, url: str) -> Transport:
        try:
            connection = await connect(url, open_timeout=self._open_timeout, max_size=self._max_size)
        except InvalidStatus as exc:
            status_code = exc.response.status_code
            logger.warning("asr.transport.handshake_rejected", extra={"status_code": status_code})
            if 400 <= status_code < 500:
                raise HandshakeRejected(status_code) from exc
            raise TransportError(f"handshake failed with HTTP {status_code}") from exc
        except (OSError, TimeoutError, WebSocketException) as exc:
            logger.warning("asr.transport.connect_failed", extra={"error": type(exc).__name__})
            raise TransportError(f"failed to open connection ({type(exc).__name__})") from exc
        return WebSocketTransport(connection)


__all__ = ["Transport", "Connector", "WebSocketTransport", "WebSocketConnector"]
