"""Push round state to downstream consumers over a MessagePack WebSocket."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from rounds.messaging.encoder import StreamMessageType, encode_message

if TYPE_CHECKING:
    from rounds.logic.types import VariantState
    from rounds.session.engine import RoundSyncEngine

logger = structlog.get_logger()

# Updates beyond this many unsent messages are dropped for a slow consumer;
# the next update for the same variant supersedes them anyway.
_MAX_PENDING_UPDATES = 256

# Readiness can change without any store update (a connectivity error is raised
# by elapsed time alone), so it is re-checked at least this often.
_READINESS_CHECK_SECONDS = 0.5


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Return once the client disconnects; inbound messages are ignored."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
    except (WebSocketDisconnect, RuntimeError):  # fmt: skip
        return


async def snapshot_stream_endpoint(websocket: WebSocket, engine: RoundSyncEngine) -> None:
    """Send the full snapshot, then one message per state change until the client leaves."""
    await websocket.accept()
    connection_id = str(uuid4())
    logger.info("stream client connected", connection_id=connection_id)

    updates: asyncio.Queue[VariantState] = asyncio.Queue(maxsize=_MAX_PENDING_UPDATES)

    def on_change(_code: str, state: VariantState) -> None:
        with contextlib.suppress(asyncio.QueueFull):
            updates.put_nowait(state)

    unsubscribe = engine.store.subscribe(on_change)
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    next_update: asyncio.Task[VariantState] | None = None
    try:
        snapshot = engine.snapshot()
        await websocket.send_bytes(encode_message(StreamMessageType.SNAPSHOT, snapshot))
        status = (snapshot.ready, snapshot.connectivity_error)
        while True:
            if next_update is None:
                next_update = asyncio.create_task(updates.get())
            done, _ = await asyncio.wait(
                {next_update, disconnected},
                timeout=_READINESS_CHECK_SECONDS,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnected in done:
                break
            current = (engine.ready, engine.supervisor.connectivity_error)
            if current != status:
                status = current
                await websocket.send_bytes(
                    encode_message(
                        StreamMessageType.READINESS,
                        {"ready": current[0], "connectivity_error": current[1]},
                    ),
                )
            if next_update in done:
                state = next_update.result()
                next_update = None
                await websocket.send_bytes(encode_message(StreamMessageType.VARIANT_UPDATE, state))
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        if next_update is not None:
            next_update.cancel()
        disconnected.cancel()
        unsubscribe()
        logger.info("stream client disconnected", connection_id=connection_id)
