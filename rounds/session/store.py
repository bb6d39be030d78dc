"""Hold the latest presentation state for every variant."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

import structlog

from rounds.logic.clock import compute_remaining
from rounds.logic.types import VariantState

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from rounds.logic.types import RoundAnnouncement, RoundResult
    from rounds.logic.variants import VariantCatalogue

    StateListener = Callable[[str, VariantState], None]

DEFAULT_HISTORY_LIMIT = 20

logger = structlog.get_logger()


class RoundStateStore:
    """Per-variant state written by the frame path and the timer path.

    Every change builds a new frozen VariantState and swaps it in, so readers
    never see a new period paired with the previous round's result. Mutators
    must run on the event loop that owns the store.
    """

    def __init__(self, catalogue: VariantCatalogue, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._catalogue = catalogue
        self._states: dict[str, VariantState] = {code: VariantState(variant_code=code) for code in catalogue.codes}
        self._history: dict[str, deque[RoundResult]] = {
            code: deque(maxlen=history_limit) for code in catalogue.codes
        }
        self._listeners: list[StateListener] = []

    def get_snapshot(self, variant_code: str) -> VariantState:
        """Return the current record for a variant. Raises KeyError for unknown codes."""
        return self._states[variant_code]

    def snapshot_all(self) -> list[VariantState]:
        return [self._states[code] for code in self._catalogue.codes]

    def get_history(self, variant_code: str) -> list[RoundResult]:
        """Settled results for a variant, newest first."""
        return list(self._history[variant_code])

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call listener after every state replacement. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply_announcement(self, announcement: RoundAnnouncement, now: datetime) -> VariantState | None:
        """Track the announced period. Returns the new record, or None if the announcement was stale."""
        code = announcement.variant_code
        current = self._states[code]
        period_id = announcement.period_id

        if current.current_period_id and period_id < current.current_period_id:
            logger.debug(
                "stale announcement dropped",
                variant=code,
                period_id=period_id,
                current_period_id=current.current_period_id,
            )
            return None

        duration = self._catalogue.require(code).round_duration_seconds
        remaining = compute_remaining(announcement.anchor_instant, duration, now)

        if period_id == current.current_period_id:
            updated = current.model_copy(
                update={"anchor_instant": announcement.anchor_instant, "remaining_seconds": remaining},
            )
        else:
            updated = VariantState(
                variant_code=code,
                current_period_id=period_id,
                previous_period_id=current.current_period_id,
                anchor_instant=announcement.anchor_instant,
                remaining_seconds=remaining,
                pending_result=None,
            )
        self._replace(updated)
        return updated

    def apply_tick(self, variant_code: str, period_id: str, remaining_seconds: int) -> bool:
        """Refresh the countdown. Ignored when the ticking timer belongs to a superseded period."""
        current = self._states[variant_code]
        if current.current_period_id != period_id:
            return False
        if current.remaining_seconds != remaining_seconds:
            self._replace(current.model_copy(update={"remaining_seconds": remaining_seconds}))
        return True

    def apply_result(self, result: RoundResult) -> bool:
        """Attach a result to its variant if it belongs to the current or the just-superseded period.

        Results for other periods are an expected consequence of reordering and
        are dropped with a debug log only.
        """
        code = result.variant_code
        current = self._states[code]
        period_id = result.period_id

        if not period_id or period_id not in (current.current_period_id, current.previous_period_id):
            logger.debug(
                "result for untracked period dropped",
                variant=code,
                period_id=period_id,
                current_period_id=current.current_period_id,
            )
            return False

        pending = current.pending_result
        if pending is not None and pending.period_id >= period_id:
            logger.debug("result older than pending result dropped", variant=code, period_id=period_id)
            return False

        self._record_history(result)
        self._replace(current.model_copy(update={"pending_result": result}))
        return True

    def seed_history(self, variant_code: str, results: Iterable[RoundResult]) -> None:
        """Pre-populate a variant's history, skipping periods already recorded."""
        self._merge_history(variant_code, results)

    def has_result_for(self, variant_code: str, period_id: str) -> bool:
        return any(r.period_id == period_id for r in self._history[variant_code])

    def _record_history(self, result: RoundResult) -> None:
        self._merge_history(result.variant_code, [result])

    def _merge_history(self, variant_code: str, results: Iterable[RoundResult]) -> None:
        history = self._history[variant_code]
        by_period = {r.period_id: r for r in history}
        for result in results:
            by_period.setdefault(result.period_id, result)
        # newest first; the deque's maxlen drops the oldest entries
        merged = sorted(by_period.values(), key=lambda r: r.period_id, reverse=True)
        history.clear()
        history.extend(merged[: history.maxlen])

    def _replace(self, state: VariantState) -> None:
        self._states[state.variant_code] = state
        for listener in list(self._listeners):
            try:
                listener(state.variant_code, state)
            except Exception:
                logger.exception("state listener failed", variant=state.variant_code)
