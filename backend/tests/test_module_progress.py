from __future__ import annotations

from pathlib import Path

import pytest

from habla.module_progress import ModuleProgressTracker
from habla.store import LEARNED_WORDS_KEY, JsonFileStateBackend, PersistentStore


def _store(tmp_path: Path) -> PersistentStore:
    return PersistentStore(JsonFileStateBackend(tmp_path / "state.json"))


def test_mark_learned_records_each_word_once(tmp_path: Path) -> None:
    tracker = ModuleProgressTracker(_store(tmp_path))

    assert tracker.mark_learned("greetings", 2) is True
    assert tracker.mark_learned("greetings", 0) is True
    assert tracker.mark_learned("greetings", 2) is False

    assert tracker.learned("greetings") == [0, 2]
    assert tracker.learned("numbers") == []


def test_learned_words_survive_restart(tmp_path: Path) -> None:
    ModuleProgressTracker(_store(tmp_path)).mark_learned("food", 4)

    restarted = ModuleProgressTracker(_store(tmp_path))

    assert restarted.all_learned() == {"food": [4]}


def test_module_completion(tmp_path: Path) -> None:
    tracker = ModuleProgressTracker(_store(tmp_path))
    for index in range(3):
        tracker.mark_learned("colors", index)

    assert tracker.is_complete("colors", 3) is True
    assert tracker.is_complete("colors", 4) is False
    assert tracker.is_complete("colors", 0) is False


def test_invalid_stored_words_are_dropped(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.set(LEARNED_WORDS_KEY, {"travel": [3, 3, -1, 1], " ": [0]})

    tracker = ModuleProgressTracker(_store(tmp_path))

    assert tracker.all_learned() == {"travel": [1, 3]}


@pytest.mark.parametrize(("module_id", "word_index"), [("", 0), ("   ", 1), ("family", -1)])
def test_mark_learned_rejects_bad_input(tmp_path: Path, module_id: str, word_index: int) -> None:
    with pytest.raises(ValueError):
        ModuleProgressTracker(_store(tmp_path)).mark_learned(module_id, word_index)
