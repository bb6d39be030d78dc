from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from rounds.logic.timer import utc_now
from rounds.messaging.frames import Announcement, Result, Unrecognized, classify_frame

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from rounds.logic.types import RoundAnnouncement, RoundResult
    from rounds.logic.variants import VariantCatalogue
    from rounds.session.store import RoundStateStore
    from rounds.session.timer_manager import TimerManager

logger = structlog.get_logger()


class FrameRouter:
    """
    Route classified frames to the state store and the variant timers.

    Frames must be handed over one at a time; the engine's consumer task is
    the only caller in production.
    """

    def __init__(
        self,
        catalogue: VariantCatalogue,
        store: RoundStateStore,
        timers: TimerManager,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._catalogue = catalogue
        self._store = store
        self._timers = timers
        self._clock = clock

    def handle_frame(self, raw: str) -> None:
        frame = classify_frame(raw, self._catalogue, received_at=self._clock())

        if isinstance(frame, Announcement):
            self.handle_announcement(frame.announcement)
        elif isinstance(frame, Result):
            self.handle_result(frame.result)
        elif isinstance(frame, Unrecognized):
            logger.debug("frame dropped", reason=frame.reason, frame=frame.raw[:100])

    def handle_announcement(self, announcement: RoundAnnouncement) -> None:
        state = self._store.apply_announcement(announcement, now=self._clock())
        if state is None:
            return
        duration = self._catalogue.require(announcement.variant_code).round_duration_seconds
        self._timers.start_timer(
            announcement.variant_code,
            announcement.period_id,
            announcement.anchor_instant,
            duration,
        )
        logger.info(
            "round announced",
            variant=announcement.variant_code,
            period_id=announcement.period_id,
            remaining_seconds=state.remaining_seconds,
        )

    def handle_result(self, result: RoundResult) -> None:
        if self._store.apply_result(result):
            logger.info(
                "round result",
                variant=result.variant_code,
                period_id=result.period_id,
                outcome=result.outcome_number,
                color=result.color,
                size=result.size,
            )
