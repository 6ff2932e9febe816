from __future__ import annotations

import logging
from pathlib import Path

import pytest

from habla.achievements import (
    DEFAULT_ACHIEVEMENTS,
    FIRST_PERFECT,
    LEVEL_UP,
    Achievement,
    AchievementRegistry,
)
from habla.store import ACHIEVEMENTS_KEY, JsonFileStateBackend, PersistentStore


def _store(tmp_path: Path) -> PersistentStore:
    return PersistentStore(JsonFileStateBackend(tmp_path / "state.json"))


def test_catalog_contains_required_ids(tmp_path: Path) -> None:
    registry = AchievementRegistry(_store(tmp_path))
    ids = {entry.id for entry in registry.catalog()}
    assert {
        "first_perfect",
        "dialect_master",
        "streak_warrior",
        "conversation_hero",
        "phonetic_master",
        "cultural_expert",
        "level_up",
        "daily_warrior",
    } <= ids
    assert registry.unlocked_ids() == []


def test_unlock_is_idempotent(tmp_path: Path) -> None:
    registry = AchievementRegistry(_store(tmp_path))

    first = registry.unlock(FIRST_PERFECT)
    second = registry.unlock(FIRST_PERFECT)

    assert first.status == "unlocked"
    assert first.xp_reward == 100
    assert second.status == "already_unlocked"
    assert second.xp_reward == 0
    assert registry.unlocked_ids() == [FIRST_PERFECT]


def test_unknown_id_is_ignored(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    registry = AchievementRegistry(_store(tmp_path))

    with caplog.at_level(logging.WARNING, logger="habla.achievements"):
        result = registry.unlock("moon_walker")

    assert result.status == "unknown"
    assert result.achievement is None
    assert result.xp_reward == 0
    assert registry.unlocked_ids() == []
    assert "UnknownAchievementId" in caplog.text


def test_unlocks_survive_restart(tmp_path: Path) -> None:
    AchievementRegistry(_store(tmp_path)).unlock(LEVEL_UP)

    restarted = AchievementRegistry(_store(tmp_path))

    assert restarted.unlocked_ids() == [LEVEL_UP]
    entry = restarted.get(LEVEL_UP)
    assert entry is not None and entry.unlocked is True


def test_stored_catalog_is_merged_by_id(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set(
        ACHIEVEMENTS_KEY,
        [
            {"id": FIRST_PERFECT, "unlocked": True, "xp_reward": 1},
            {"id": "retired_badge", "unlocked": True},
        ],
    )

    registry = AchievementRegistry(_store(tmp_path))

    entry = registry.get(FIRST_PERFECT)
    assert entry is not None
    assert entry.unlocked is True
    assert entry.xp_reward == 100
    assert registry.get("retired_badge") is None


def test_corrupt_stored_catalog_starts_locked(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set(ACHIEVEMENTS_KEY, {"first_perfect": "yes"})
    registry = AchievementRegistry(_store(tmp_path))
    assert registry.unlocked_ids() == []


def test_returned_entries_are_copies(tmp_path: Path) -> None:
    registry = AchievementRegistry(_store(tmp_path))
    entry = registry.get(FIRST_PERFECT)
    assert entry is not None
    entry.unlocked = True
    assert registry.unlocked_ids() == []


def test_duplicate_catalog_ids_rejected(tmp_path: Path) -> None:
    duplicate = Achievement(id="twin", name="Twin", description="")
    with pytest.raises(ValueError):
        AchievementRegistry(_store(tmp_path), catalog=[duplicate, duplicate])


def test_default_catalog_entries_start_locked() -> None:
    assert all(entry.unlocked is False for entry in DEFAULT_ACHIEVEMENTS)


def test_reload_after_unlock_on_same_store(tmp_path: Path) -> None:
    store = _store(tmp_path)
    registry = AchievementRegistry(store)
    registry.unlock(FIRST_PERFECT)

    registry.reload()
    second = AchievementRegistry(store)

    assert registry.unlocked_ids() == [FIRST_PERFECT]
    assert second.unlocked_ids() == [FIRST_PERFECT]
