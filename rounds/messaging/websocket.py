"""WebSocket client adapter for the upstream round feed."""

import contextlib
from uuid import uuid4

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from rounds.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

_OPEN_TIMEOUT_SECONDS = 10.0


class WebSocketFeedConnection(ConnectionProtocol):
    def __init__(self, websocket: ClientConnection, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def receive_text(self) -> str:
        try:
            message = await self._websocket.recv()
        except ConnectionClosed:
            raise ConnectionError("feed connection closed") from None
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(ConnectionClosed):
            await self._websocket.close(code=code, reason=reason)


async def open_feed_connection(url: str) -> WebSocketFeedConnection:
    """Connect to the feed URL, mapping library failures to ConnectionError."""
    try:
        websocket = await connect(url, open_timeout=_OPEN_TIMEOUT_SECONDS)
    except (OSError, WebSocketException) as e:
        raise ConnectionError(f"could not connect to {url}: {e}") from e
    connection = WebSocketFeedConnection(websocket)
    logger.info("feed connected", url=url, connection_id=connection.connection_id)
    return connection
