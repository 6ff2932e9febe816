"""Process-lifetime cache for persisted progress values."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Tuple


def _normalize_key(key: str) -> str:
    normalized = key.strip()
    if not normalized:
        raise ValueError("State key cannot be empty when caching values.")
    return normalized


@dataclass
class _StateEntry:
    value: Any
    cached_at: datetime
    persisted: bool


class StateCache:
    """Process-local cache of decoded store values.

    Entries written while the backing medium was failing are kept with
    ``persisted=False`` so they remain authoritative for the rest of the process.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _StateEntry] = {}

    def lookup(self, key: str) -> Tuple[bool, Any]:
        entry = self._entries.get(_normalize_key(key))
        if entry is None:
            return False, None
        return True, copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, *, persisted: bool = True) -> None:
        self._entries[_normalize_key(key)] = _StateEntry(
            value=copy.deepcopy(value),
            cached_at=datetime.now(timezone.utc),
            persisted=persisted,
        )

    def mark_persisted(self, key: str, persisted: bool) -> None:
        entry = self._entries.get(_normalize_key(key))
        if entry is not None:
            entry.persisted = persisted

    def unpersisted_keys(self) -> list[str]:
        return sorted(key for key, entry in self._entries.items() if not entry.persisted)

    def invalidate(self, key: str) -> None:
        self._entries.pop(_normalize_key(key), None)

    def invalidate_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.invalidate(key)


__all__ = ["StateCache"]
