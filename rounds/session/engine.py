"""
Round synchronization engine.

One engine object owns the state store, the per-variant timers, the feed
supervisor and the single task that consumes frames. Nothing here is global:
build an engine, start() it, read snapshots, stop() it.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from rounds.logic.exceptions import HistoryUnavailableError, MalformedPeriodIdError
from rounds.logic.period import decode_period_id
from rounds.logic.timer import TimerConfig, utc_now
from rounds.logic.types import FeedSnapshot, RoundAnnouncement
from rounds.logic.variants import DEFAULT_CATALOGUE
from rounds.messaging.router import FrameRouter
from rounds.session.store import DEFAULT_HISTORY_LIMIT, RoundStateStore
from rounds.session.supervisor import ConnectionSupervisor, ReconnectPolicy
from rounds.session.timer_manager import TimerManager

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from types import TracebackType

    from rounds.logic.variants import VariantCatalogue
    from rounds.session.history import HistoryClient
    from rounds.session.supervisor import ConnectionFactory

logger = structlog.get_logger()

DEFAULT_RESULT_GRACE_SECONDS = 5.0


class RoundSyncEngine:
    def __init__(
        self,
        connect: ConnectionFactory,
        catalogue: VariantCatalogue = DEFAULT_CATALOGUE,
        *,
        history_client: HistoryClient | None = None,
        reconnect_policy: ReconnectPolicy | None = None,
        timer_config: TimerConfig | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        result_grace_seconds: float = DEFAULT_RESULT_GRACE_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._catalogue = catalogue
        self._clock = clock
        self._history_client = history_client
        self._result_grace_seconds = result_grace_seconds

        self.store = RoundStateStore(catalogue, history_limit=history_limit)
        self.timers = TimerManager(
            catalogue,
            on_tick=self.store.apply_tick,
            on_boundary=self._on_round_boundary,
            config=timer_config,
            clock=clock,
        )
        self.router = FrameRouter(catalogue, self.store, self.timers, clock=clock)
        self.supervisor = ConnectionSupervisor(connect, self._enqueue_frame, policy=reconnect_policy)

        self._frames: asyncio.Queue[str] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._fallback_tasks: set[asyncio.Task[None]] = set()
        self._started = False

    @property
    def catalogue(self) -> VariantCatalogue:
        return self._catalogue

    @property
    def history_client(self) -> HistoryClient | None:
        return self._history_client

    @property
    def ready(self) -> bool:
        return self.supervisor.ready

    @property
    def is_started(self) -> bool:
        return self._started

    def snapshot(self) -> FeedSnapshot:
        return FeedSnapshot(
            ready=self.supervisor.ready,
            connectivity_error=self.supervisor.connectivity_error,
            variants=self.store.snapshot_all(),
        )

    async def start(self) -> None:
        """Pre-populate history when a history client is set, then connect and consume frames."""
        if self._started:
            return
        self._started = True
        if self._history_client is not None:
            await self._preload_history()
        self._consumer = asyncio.create_task(self._consume())
        self.supervisor.start()
        logger.info("round engine started", variants=list(self._catalogue.codes))

    async def stop(self) -> None:
        """Cancel every timer and background task and close the feed connection.

        The history client is left open; whoever created it closes it. A stopped
        engine can be started again.
        """
        if not self._started:
            return
        self._started = False
        self.timers.cancel_all()
        await self.supervisor.stop()

        tasks = [t for t in (self._consumer, *self._fallback_tasks) if t is not None]
        self._consumer = None
        self._fallback_tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info("round engine stopped")

    async def __aenter__(self) -> RoundSyncEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _enqueue_frame(self, frame: str) -> None:
        await self._frames.put(frame)

    async def _consume(self) -> None:
        """Apply frames strictly one at a time."""
        while True:
            frame = await self._frames.get()
            try:
                self.router.handle_frame(frame)
            except Exception:
                logger.exception("frame handling failed", frame=frame[:100])
            finally:
                self._frames.task_done()

    async def drain(self) -> None:
        """Wait until every frame received so far has been applied."""
        await self._frames.join()

    async def _preload_history(self) -> None:
        client = self._history_client
        if client is None:
            return
        for variant in self._catalogue:
            try:
                entries = await client.fetch_recent(variant.code)
            except HistoryUnavailableError as e:
                logger.warning("history preload failed", variant=variant.code, error=str(e))
                continue

            results = [r for r in (entry.to_result(variant.code) for entry in entries) if r is not None]
            self.store.seed_history(variant.code, results)

            pending = max((entry.period_id for entry in entries if entry.is_pending), default=None)
            if pending is not None and not self.store.get_snapshot(variant.code).current_period_id:
                self._start_pending_round(variant.code, pending)
            logger.debug("history preloaded", variant=variant.code, results=len(results), pending=pending)

    def _start_pending_round(self, variant_code: str, period_id: str) -> None:
        try:
            anchor = decode_period_id(period_id)
        except MalformedPeriodIdError as e:
            logger.warning("pending period skipped", variant=variant_code, period_id=period_id, error=str(e))
            return
        self.router.handle_announcement(
            RoundAnnouncement(period_id=period_id, variant_code=variant_code, anchor_instant=anchor),
        )

    def _on_round_boundary(self, variant_code: str, period_id: str) -> None:
        if self._history_client is None or not self._started:
            return
        task = asyncio.create_task(self._fetch_missing_result(variant_code, period_id))
        self._fallback_tasks.add(task)
        task.add_done_callback(self._fallback_tasks.discard)

    async def _fetch_missing_result(self, variant_code: str, period_id: str) -> None:
        """Fetch a round's result over HTTP when the feed did not deliver it in time."""
        client = self._history_client
        if client is None:
            return
        await asyncio.sleep(self._result_grace_seconds)
        if self.store.has_result_for(variant_code, period_id):
            return
        try:
            entry = await client.fetch_result(period_id)
        except HistoryUnavailableError as e:
            logger.warning("result fallback failed", variant=variant_code, period_id=period_id, error=str(e))
            return
        if entry is None:
            logger.debug("result fallback found nothing", variant=variant_code, period_id=period_id)
            return
        result = entry.to_result(variant_code)
        if result is not None:
            logger.info("result recovered over http", variant=variant_code, period_id=period_id)
            self.router.handle_result(result)
