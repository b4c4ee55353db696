"""Socket transport: JSON event envelopes over a websocket"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from domain.errors import ChatError, MalformedEventError
from .reconnect import DisconnectReason

logger = logging.getLogger(__name__)

# Close codes a server uses to end a session on purpose
SERVER_CLOSE_CODES = {1000, 1008}
APPLICATION_CLOSE_CODES = range(4000, 5000)


class TransportError(ChatError):
    """Connecting or writing to the socket failed"""


class TransportClosed(ChatError):
    """The socket closed; reason says who closed it and how"""

    def __init__(self, reason: DisconnectReason, code: int | None = None) -> None:
        super().__init__(reason.value)
        self.reason = reason
        self.code = code


class Transport(Protocol):
    async def send(self, event: str, data: Any) -> None: ...

    async def receive(self) -> str: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[str, str], Awaitable[Transport]]


def encode_frame(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data})


def decode_frame(raw: str | bytes) -> tuple[str, Any]:
    """Split a text frame into (event name, payload)"""
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"Frame is not valid JSON: {e}") from e
    if not isinstance(frame, dict):
        raise MalformedEventError("Frame must be a JSON object")
    event = frame.get("event")
    if not isinstance(event, str) or not event:
        raise MalformedEventError("Frame has no event name")
    return event, frame.get("data")


def classify_close(code: int | None, closed_by_client: bool) -> DisconnectReason:
    if closed_by_client:
        return DisconnectReason.CLIENT
    if code is not None and (code in SERVER_CLOSE_CODES or code in APPLICATION_CLOSE_CODES):
        return DisconnectReason.SERVER
    return DisconnectReason.TRANSPORT_CLOSE


class WebSocketTransport:
    """Transport over a `websockets` client connection"""

    def __init__(self, ws: ClientConnection) -> None:
        self.ws = ws
        self._closing = False

    async def send(self, event: str, data: Any) -> None:
        try:
            await self.ws.send(encode_frame(event, data))
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"Failed to send {event}: {e}") from e

    async def receive(self) -> str:
        try:
            raw = await self.ws.recv()
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            raise TransportClosed(classify_close(code, self._closing), code) from e
        except OSError as e:
            raise TransportClosed(DisconnectReason.TRANSPORT_ERROR) from e
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    async def close(self) -> None:
        self._closing = True
        await self.ws.close()


async def open_websocket(url: str, token: str, *, timeout: float = 20.0) -> WebSocketTransport:
    """Open an authenticated websocket; the bearer token goes in the handshake"""
    try:
        ws = await connect(
            url,
            additional_headers={"Authorization": f"Bearer {token}"},
            open_timeout=timeout,
        )
    except (WebSocketException, OSError, asyncio.TimeoutError) as e:
        raise TransportError(str(e) or type(e).__name__) from e
    logger.info("Socket connected to %s", url)
    return WebSocketTransport(ws)
