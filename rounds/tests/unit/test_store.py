from datetime import UTC, datetime, timedelta

import pytest

from rounds.logic.period import decode_period_id, encode_period_id
from rounds.logic.types import RoundAnnouncement, RoundResult
from rounds.logic.variants import DEFAULT_CATALOGUE
from rounds.session.store import RoundStateStore

NOW = datetime(2025, 7, 1, 19, 49, 30, tzinfo=UTC)
PERIOD_A = "20250701194956"
PERIOD_B = "20250701195026"
PERIOD_C = "20250701195056"


def _announce(period_id: str, code: str = "30S") -> RoundAnnouncement:
    return RoundAnnouncement(period_id=period_id, variant_code=code, anchor_instant=decode_period_id(period_id))


def _result(period_id: str, number: int = 7, code: str = "30S") -> RoundResult:
    return RoundResult(
        period_id=period_id,
        variant_code=code,
        outcome_number=number,
        result_instant=decode_period_id(period_id),
    )


class TestStoreInitialState:
    def test_every_variant_starts_empty(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)

        states = store.snapshot_all()
        assert [s.variant_code for s in states] == ["30S", "1M", "3M", "5M"]
        for state in states:
            assert state.current_period_id == ""
            assert state.pending_result is None
            assert state.remaining_seconds == 0

    def test_unknown_variant_raises_key_error(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        with pytest.raises(KeyError):
            store.get_snapshot("9X")


class TestApplyAnnouncement:
    def test_new_period_sets_remaining(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)

        state = store.apply_announcement(_announce(PERIOD_A), now=NOW)

        assert state is not None
        assert state.current_period_id == PERIOD_A
        assert state.remaining_seconds == 26
        assert state.anchor_instant == decode_period_id(PERIOD_A)
        assert store.get_snapshot("30S") == state

    def test_new_period_clears_pending_and_remembers_previous(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_result(_result(PERIOD_A))

        state = store.apply_announcement(_announce(PERIOD_B), now=NOW)

        assert state.current_period_id == PERIOD_B
        assert state.previous_period_id == PERIOD_A
        assert state.pending_result is None

    def test_stale_announcement_is_dropped(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_B), now=NOW)

        assert store.apply_announcement(_announce(PERIOD_A), now=NOW) is None
        assert store.get_snapshot("30S").current_period_id == PERIOD_B

    def test_repeated_announcement_keeps_pending_result(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_announcement(_announce(PERIOD_B), now=NOW)
        store.apply_result(_result(PERIOD_B, number=3))

        state = store.apply_announcement(_announce(PERIOD_B), now=NOW + timedelta(seconds=10))

        assert state.current_period_id == PERIOD_B
        assert state.previous_period_id == PERIOD_A
        assert state.pending_result.outcome_number == 3

    def test_other_variants_are_untouched(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        before = store.get_snapshot("30S")

        store.apply_announcement(_announce("20250701195000", code="1M"), now=NOW)

        assert store.get_snapshot("30S") is before
        assert store.get_snapshot("1M").remaining_seconds == 30


class TestApplyTick:
    def test_updates_remaining_for_current_period(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)

        assert store.apply_tick("30S", PERIOD_A, 25) is True
        assert store.get_snapshot("30S").remaining_seconds == 25

    def test_tick_from_superseded_period_is_ignored(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_announcement(_announce(PERIOD_B), now=NOW)
        remaining = store.get_snapshot("30S").remaining_seconds

        assert store.apply_tick("30S", PERIOD_A, 1) is False
        assert store.get_snapshot("30S").remaining_seconds == remaining

    def test_unchanged_tick_does_not_notify(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        changes: list[str] = []
        store.subscribe(lambda code, _state: changes.append(code))

        store.apply_tick("30S", PERIOD_A, 26)

        assert changes == []


class TestApplyResult:
    def test_result_for_current_period(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)

        assert store.apply_result(_result(PERIOD_A, number=0)) is True
        pending = store.get_snapshot("30S").pending_result
        assert pending.outcome_number == 0
        assert pending.color == "violet"
        assert pending.size == "Small"

    def test_result_for_just_superseded_period(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_announcement(_announce(PERIOD_B), now=NOW)

        assert store.apply_result(_result(PERIOD_A)) is True
        state = store.get_snapshot("30S")
        assert state.current_period_id == PERIOD_B
        assert state.pending_result.period_id == PERIOD_A

    def test_result_for_untracked_period_leaves_pending_unchanged(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_result(_result(PERIOD_A, number=4))
        before = store.get_snapshot("30S")

        assert store.apply_result(_result(PERIOD_C, number=9)) is False
        assert store.get_snapshot("30S") is before

    def test_result_before_any_announcement_is_dropped(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)

        assert store.apply_result(_result(PERIOD_A)) is False
        assert store.get_history("30S") == []

    def test_older_result_does_not_replace_newer(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_announcement(_announce(PERIOD_B), now=NOW)
        store.apply_result(_result(PERIOD_B, number=2))

        assert store.apply_result(_result(PERIOD_A, number=8)) is False
        assert store.get_snapshot("30S").pending_result.period_id == PERIOD_B
        assert [r.period_id for r in store.get_history("30S")] == [PERIOD_B]

    def test_duplicate_result_is_ignored(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_result(_result(PERIOD_A, number=5))

        assert store.apply_result(_result(PERIOD_A, number=6)) is False
        assert store.get_snapshot("30S").pending_result.outcome_number == 5

    def test_result_for_other_variant_does_not_leak(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_announcement(_announce(PERIOD_A, code="1M"), now=NOW)

        store.apply_result(_result(PERIOD_A, code="1M"))

        assert store.get_snapshot("30S").pending_result is None
        assert store.get_snapshot("1M").pending_result is not None


class TestHistory:
    def test_results_are_recorded_newest_first(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_announcement(_announce(PERIOD_B), now=NOW)
        store.apply_result(_result(PERIOD_A, number=1))
        store.apply_announcement(_announce(PERIOD_C), now=NOW)
        store.apply_result(_result(PERIOD_C, number=2))

        assert [r.period_id for r in store.get_history("30S")] == [PERIOD_C, PERIOD_A]

    def test_seed_history_merges_and_deduplicates(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        store.seed_history("30S", [_result(PERIOD_A, number=1), _result(PERIOD_B, number=2)])
        store.seed_history("30S", [_result(PERIOD_B, number=9), _result(PERIOD_C, number=3)])

        history = store.get_history("30S")
        assert [r.period_id for r in history] == [PERIOD_C, PERIOD_B, PERIOD_A]
        assert history[1].outcome_number == 2
        assert store.has_result_for("30S", PERIOD_B)
        assert not store.has_result_for("1M", PERIOD_B)

    def test_history_is_bounded(self):
        store = RoundStateStore(DEFAULT_CATALOGUE, history_limit=3)
        start = decode_period_id(PERIOD_A)
        periods = [encode_period_id(start + timedelta(seconds=30 * i)) for i in range(5)]

        store.seed_history("30S", [_result(p) for p in periods])

        assert [r.period_id for r in store.get_history("30S")] == periods[::-1][:3]


class TestSubscribe:
    def test_listener_sees_each_replacement(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        seen: list[tuple[str, str]] = []
        store.subscribe(lambda code, state: seen.append((code, state.current_period_id)))

        store.apply_announcement(_announce(PERIOD_A), now=NOW)
        store.apply_tick("30S", PERIOD_A, 20)

        assert seen == [("30S", PERIOD_A), ("30S", PERIOD_A)]

    def test_unsubscribe(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)
        seen: list[str] = []
        unsubscribe = store.subscribe(lambda code, _state: seen.append(code))

        unsubscribe()
        unsubscribe()
        store.apply_announcement(_announce(PERIOD_A), now=NOW)

        assert seen == []

    def test_failing_listener_does_not_block_update(self):
        store = RoundStateStore(DEFAULT_CATALOGUE)

        def broken(_code, _state):
            raise RuntimeError("listener broke")

        store.subscribe(broken)
        store.apply_announcement(_announce(PERIOD_A), now=NOW)

        assert store.get_snapshot("30S").current_period_id == PERIOD_A
