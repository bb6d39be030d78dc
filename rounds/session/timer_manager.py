"""Manage per-variant round countdowns."""

from collections.abc import Callable
from datetime import datetime

import structlog

from rounds.logic.timer import RoundTimer, TimerConfig, utc_now
from rounds.logic.variants import VariantCatalogue

logger = structlog.get_logger()

# (variant_code, period_id, remaining_seconds) -> None
TickCallback = Callable[[str, str, int], None]
# (variant_code, period_id) -> None, called once the period's end instant has passed
BoundaryCallback = Callable[[str, str], None]


class TimerManager:
    """Own one RoundTimer per catalogue variant.

    This class only starts and cancels tickers. It does NOT decide when a
    countdown should be re-anchored; the caller (FrameRouter) does that from
    announcements, and ticks are forwarded to the given callbacks.
    """

    def __init__(
        self,
        catalogue: VariantCatalogue,
        on_tick: TickCallback,
        on_boundary: BoundaryCallback | None = None,
        config: TimerConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._timers: dict[str, RoundTimer] = {
            code: RoundTimer(config=config, clock=clock) for code in catalogue.codes
        }
        self._on_tick = on_tick
        self._on_boundary = on_boundary

    def get_timer(self, variant_code: str) -> RoundTimer | None:
        return self._timers.get(variant_code)

    def is_running(self, variant_code: str) -> bool:
        timer = self._timers.get(variant_code)
        return timer is not None and timer.is_running

    def anchor_of(self, variant_code: str) -> datetime | None:
        timer = self._timers.get(variant_code)
        return timer.anchor if timer else None

    def start_timer(self, variant_code: str, period_id: str, anchor: datetime, duration_seconds: int) -> None:
        """(Re)start the countdown for one variant. Other variants' timers are untouched."""
        timer = self._timers[variant_code]
        on_boundary = None
        if self._on_boundary is not None:
            on_boundary = lambda code=variant_code, pid=period_id: self._on_boundary(code, pid)  # noqa: E731
        timer.start(
            anchor,
            duration_seconds,
            lambda remaining, code=variant_code, pid=period_id: self._on_tick(code, pid, remaining),
            on_boundary,
        )
        logger.debug("countdown anchored", variant=variant_code, period_id=period_id, anchor=anchor)

    def cancel(self, variant_code: str) -> None:
        timer = self._timers.get(variant_code)
        if timer:
            timer.cancel()

    def cancel_all(self) -> None:
        """Cancel every live countdown."""
        for timer in self._timers.values():
            timer.cancel()
