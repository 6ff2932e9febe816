"""Per-module record of which practice words have been learned."""

from __future__ import annotations

import logging
from typing import Dict, List

from pydantic import TypeAdapter

from .store import LEARNED_WORDS_KEY, PersistentStore

logger = logging.getLogger(__name__)

_LEARNED_ADAPTER = TypeAdapter(Dict[str, List[int]])


class ModuleProgressTracker:
    def __init__(self, store: PersistentStore) -> None:
        self._store = store
        self._learned: Dict[str, List[int]] = {}
        self.reload()

    def reload(self) -> None:
        stored = self._store.get(LEARNED_WORDS_KEY, {}, adapter=_LEARNED_ADAPTER)
        self._learned = {
            module_id: sorted({index for index in indices if index >= 0})
            for module_id, indices in stored.items()
            if module_id.strip()
        }

    def learned(self, module_id: str) -> List[int]:
        return list(self._learned.get(module_id, []))

    def all_learned(self) -> Dict[str, List[int]]:
        return {module_id: list(indices) for module_id, indices in self._learned.items()}

    def mark_learned(self, module_id: str, word_index: int) -> bool:
        """Record ``word_index`` as learned; returns ``True`` only the first time."""
        module_id = module_id.strip()
        if not module_id:
            raise ValueError("Module id cannot be empty.")
        if word_index < 0:
            raise ValueError("Word index must be non-negative.")
        indices = self._learned.setdefault(module_id, [])
        if word_index in indices:
            return False
        indices.append(word_index)
        indices.sort()
        self._store.set(LEARNED_WORDS_KEY, self._learned)
        logger.debug("Word %s learned in module %s", word_index, module_id)
        return True

    def is_complete(self, module_id: str, word_count: int) -> bool:
        if word_count <= 0:
            return False
        learned = self._learned.get(module_id, [])
        return len([index for index in learned if index < word_count]) == word_count


__all__ = ["ModuleProgressTracker"]
