"""
Per-variant round countdown.

The ticker never decrements a counter: every tick recomputes the remaining
seconds from the round's anchor instant and the current wall clock, so the
countdown cannot drift from the server's schedule however late a tick fires.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from rounds.logic.clock import compute_remaining

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Callable

    Clock = Callable[[], datetime]
    TickCallback = Callable[[int], None]
    BoundaryCallback = Callable[[], None]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TimerConfig(BaseModel):
    """Configuration for round countdown timers."""

    tick_seconds: float = Field(default=1.0, gt=0)


class RoundTimer:
    """
    Repeating one-second countdown for a single variant.

    At most one ticking task exists per timer: start() cancels the live task
    before creating the replacement, without yielding to the event loop in
    between.
    """

    def __init__(self, config: TimerConfig | None = None, clock: Clock | None = None) -> None:
        self._config = config or TimerConfig()
        self._clock = clock or utc_now
        self._active_task: asyncio.Task[None] | None = None
        self._anchor: datetime | None = None
        self._duration: int | None = None

    @property
    def anchor(self) -> datetime | None:
        return self._anchor

    @property
    def is_running(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    def remaining(self) -> int | None:
        """Remaining seconds right now, or None when the timer was never anchored."""
        if self._anchor is None or self._duration is None:
            return None
        return compute_remaining(self._anchor, self._duration, self._clock())

    def start(
        self,
        anchor: datetime,
        duration_seconds: int,
        on_tick: TickCallback,
        on_boundary: BoundaryCallback | None = None,
    ) -> None:
        """Re-anchor the countdown, replacing any running ticker."""
        self.cancel()
        self._anchor = anchor
        self._duration = duration_seconds
        self._active_task = asyncio.create_task(self._run(anchor, duration_seconds, on_tick, on_boundary))

    def cancel(self) -> None:
        """Stop the ticker. The anchor is kept so remaining() still answers."""
        if self._active_task is not None and not self._active_task.done():
            self._active_task.cancel()
        self._active_task = None

    async def _run(
        self,
        anchor: datetime,
        duration_seconds: int,
        on_tick: TickCallback,
        on_boundary: BoundaryCallback | None,
    ) -> None:
        boundary_reported = False
        try:
            while True:
                await asyncio.sleep(self._config.tick_seconds)
                now = self._clock()
                remaining = compute_remaining(anchor, duration_seconds, now)
                crossed = not boundary_reported and now >= anchor
                try:
                    on_tick(remaining)
                    if crossed and on_boundary is not None:
                        boundary_reported = True
                        on_boundary()
                except (RuntimeError, ValueError, KeyError, TypeError):  # fmt: skip
                    logger.exception("timer callback failed")
        except asyncio.CancelledError:
            pass
