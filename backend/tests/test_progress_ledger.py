from __future__ import annotations

from pathlib import Path

import pytest

from habla.progress_ledger import ProgressLedger, calculate_xp, xp_to_next_level
from habla.store import (
    CURRENT_XP_KEY,
    LEVEL_KEY,
    STREAK_DAYS_KEY,
    TOTAL_POINTS_KEY,
    JsonFileStateBackend,
    PersistentStore,
)


def _store(tmp_path: Path) -> PersistentStore:
    return PersistentStore(JsonFileStateBackend(tmp_path / "state.json"))


@pytest.mark.parametrize(
    ("score", "difficulty", "expected"),
    [
        (100, "beginner", 100),
        (95, "beginner", 90),
        (9, "beginner", 0),
        (87, "intermediate", 96),
        (100, "advanced", 150),
        (73, "advanced", 105),
        (50, "unknown", 50),
    ],
)
def test_calculate_xp(score: int, difficulty: str, expected: int) -> None:
    assert calculate_xp(score, difficulty) == expected


def test_threshold_grows_with_level() -> None:
    assert xp_to_next_level(1) == 1500
    assert xp_to_next_level(4) == 3000


def test_fresh_ledger_starts_at_level_one(tmp_path: Path) -> None:
    ledger = ProgressLedger(_store(tmp_path))
    state = ledger.state
    assert (state.current_xp, state.level, state.total_points, state.streak_days) == (0, 1, 0, 0)
    assert ledger.xp_to_next_level == 1500


def test_add_xp_crossing_threshold_levels_up(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set(CURRENT_XP_KEY, 1490)
    store.set(TOTAL_POINTS_KEY, 1490)
    ledger = ProgressLedger(store)

    award = ledger.add_xp(100, "advanced")

    assert award.gained == 150
    assert award.leveled_up is True
    assert award.level == 2
    assert award.current_xp == 1640
    assert ledger.state.total_points == 1640
    assert ledger.xp_to_next_level == 2000


def test_single_step_policy_advances_one_level_per_award(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set(CURRENT_XP_KEY, 5000)
    ledger = ProgressLedger(store)

    award = ledger.add_xp(10)

    assert award.levels_gained == 1
    assert ledger.state.level == 2
    assert ledger.state.current_xp == 5010


def test_converge_policy_subtracts_threshold(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set(CURRENT_XP_KEY, 1490)
    ledger = ProgressLedger(store, policy="converge")

    award = ledger.add_xp(100, "advanced")

    assert award.level == 2
    assert award.current_xp == 140
    assert award.levels_gained == 1


def test_converge_policy_can_gain_several_levels(tmp_path: Path) -> None:
    ledger = ProgressLedger(_store(tmp_path), policy="converge")
    award = ledger.grant(3600)
    # 1500 for level 1, 2000 for level 2, leaving 100 at level 3.
    assert award.levels_gained == 2
    assert award.level == 3
    assert award.current_xp == 100


def test_state_survives_restart(tmp_path: Path) -> None:
    ledger = ProgressLedger(_store(tmp_path))
    ledger.add_xp(80, "intermediate")
    ledger.set_streak(3)

    restarted = ProgressLedger(_store(tmp_path))
    assert restarted.state.current_xp == 96
    assert restarted.state.total_points == 96
    assert restarted.state.streak_days == 3


def test_zero_score_awards_nothing(tmp_path: Path) -> None:
    ledger = ProgressLedger(_store(tmp_path))
    award = ledger.add_xp(0)
    assert award.gained == 0
    assert award.leveled_up is False


@pytest.mark.parametrize("score", [-1, 101])
def test_add_xp_rejects_out_of_range_score(tmp_path: Path, score: int) -> None:
    ledger = ProgressLedger(_store(tmp_path))
    with pytest.raises(ValueError):
        ledger.add_xp(score)
    assert ledger.state.current_xp == 0


def test_grant_rejects_negative_reward(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        ProgressLedger(_store(tmp_path)).grant(-5)


def test_unknown_policy_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        ProgressLedger(_store(tmp_path), policy="sometimes")  # type: ignore[arg-type]


def test_invalid_stored_counters_fall_back(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set(LEVEL_KEY, 0)
    store.set(CURRENT_XP_KEY, "lots")
    store.set(STREAK_DAYS_KEY, -2)

    state = ProgressLedger(_store(tmp_path)).state

    assert state.level == 1
    assert state.current_xp == 0
    assert state.streak_days == 0


def test_reload_picks_up_cleared_store(tmp_path: Path) -> None:
    store = _store(tmp_path)
    ledger = ProgressLedger(store)
    ledger.add_xp(100)
    store.reset()
    ledger.reload()
    assert ledger.state.current_xp == 0


def test_set_streak_rejects_negative(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        ProgressLedger(_store(tmp_path)).set_streak(-1)


@pytest.mark.parametrize("policy", ["single_step", "converge"])
def test_totals_and_level_never_decrease(tmp_path: Path, policy: str) -> None:
    ledger = ProgressLedger(_store(tmp_path), policy=policy)  # type: ignore[arg-type]
    steps = [
        ("xp", 100, "advanced"),
        ("grant", 1000, None),
        ("xp", 0, "beginner"),
        ("grant", 4000, None),
        ("xp", 87, "intermediate"),
        ("grant", 50, None),
        ("xp", 100, "beginner"),
    ]

    previous = ledger.state
    for kind, amount, difficulty in steps:
        if kind == "xp":
            ledger.add_xp(amount, difficulty)
        else:
            ledger.grant(amount)
        current = ledger.state
        assert current.total_points >= previous.total_points
        assert current.level >= previous.level
        previous = current

    assert previous.total_points == 150 + 1000 + 0 + 4000 + 96 + 50 + 100


def test_reload_after_writes_in_same_process(tmp_path: Path) -> None:
    store = _store(tmp_path)
    ledger = ProgressLedger(store)
    ledger.add_xp(90, "advanced")
    ledger.set_streak(2)

    ledger.reload()
    other = ProgressLedger(store)

    assert ledger.state == other.state
    assert other.state.current_xp == 135
    assert other.state.streak_days == 2
