"""Own the upstream feed connection: connect, read, reconnect and report readiness."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from rounds.messaging.protocol import ConnectionProtocol

    ConnectionFactory = Callable[[], Awaitable[ConnectionProtocol]]
    FrameSink = Callable[[str], Awaitable[None]]

logger = structlog.get_logger()


class ReconnectPolicy(BaseModel):
    """Exponential backoff between connection attempts, reset after every successful connect."""

    initial_delay_seconds: float = Field(default=0.5, gt=0)
    max_delay_seconds: float = Field(default=30.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1)
    # UI-facing: how long "not ready" may last before it counts as a connectivity error.
    readiness_timeout_seconds: float = Field(default=8.0, gt=0)

    @model_validator(mode="after")
    def _check_delays(self) -> ReconnectPolicy:
        if self.max_delay_seconds < self.initial_delay_seconds:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        return self

    def next_delay(self, delay: float) -> float:
        return min(delay * self.multiplier, self.max_delay_seconds)


class ConnectionSupervisor:
    """Keep one feed connection open and forward every frame to the sink.

    ready is True only while a connection is open. Every loss flips it back to
    False before the next attempt, so consumers can tell the store is not
    being refreshed.
    """

    def __init__(
        self,
        connect: ConnectionFactory,
        on_frame: FrameSink,
        policy: ReconnectPolicy | None = None,
    ) -> None:
        self._connect = connect
        self._on_frame = on_frame
        self._policy = policy or ReconnectPolicy()
        self._ready = asyncio.Event()
        self._connection: ConnectionProtocol | None = None
        self._task: asyncio.Task[None] | None = None
        self._not_ready_since: float | None = None
        self._attempts = 0

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def attempts(self) -> int:
        """Connection attempts made since start(), successful or not."""
        return self._attempts

    @property
    def connectivity_error(self) -> bool:
        """True once the feed has been unavailable for longer than the readiness timeout."""
        if self.ready or self._not_ready_since is None:
            return False
        return time.monotonic() - self._not_ready_since >= self._policy.readiness_timeout_seconds

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._mark_not_ready()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_connection()
        self._ready.clear()
        self._not_ready_since = None

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until the feed is connected. Returns False if timeout elapses first."""
        if timeout is None:
            timeout = self._policy.readiness_timeout_seconds
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        delay = self._policy.initial_delay_seconds
        while True:
            self._attempts += 1
            try:
                self._connection = await self._connect()
            except ConnectionError as e:
                logger.warning("feed connect failed", error=str(e), retry_in=delay, attempt=self._attempts)
            else:
                self._ready.set()
                self._not_ready_since = None
                delay = self._policy.initial_delay_seconds
                await self._read_loop(self._connection)
                await self._close_connection()
                self._mark_not_ready()
                logger.info("feed connection lost", retry_in=delay)

            await asyncio.sleep(delay)
            delay = self._policy.next_delay(delay)

    async def _read_loop(self, connection: ConnectionProtocol) -> None:
        async for frame in connection.frames():
            await self._on_frame(frame)

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            with contextlib.suppress(ConnectionError, OSError, RuntimeError):
                await connection.close()

    def _mark_not_ready(self) -> None:
        self._ready.clear()
        if self._not_ready_since is None:
            self._not_ready_since = time.monotonic()
