"""Key/value persistence for learner progress with process-lifetime caching.

``PersistentStore`` is the only component that touches durable bytes. Reads
fall back to the caller's default whenever the medium is missing, unreadable or
holds an undecodable value; writes that fail are logged and the cached value
stays authoritative until the process exits.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .cache import StateCache
from .config import Settings, get_settings
from .db.session import ensure_schema, session_scope

logger = logging.getLogger(__name__)

CURRENT_XP_KEY = "currentXP"
LEVEL_KEY = "userLevel"
TOTAL_POINTS_KEY = "totalPoints"
STREAK_DAYS_KEY = "streakDays"
DAILY_GOAL_KEY = "dailyGoal"
DAILY_PROGRESS_KEY = "dailyProgress"
DAILY_GOAL_DATE_KEY = "dailyGoalDate"
DAILY_GOAL_MET_KEY = "dailyGoalMet"
NOTIFICATIONS_ENABLED_KEY = "notificationsEnabled"
DAILY_REMINDER_KEY = "dailyReminder"
ACHIEVEMENTS_KEY = "achievements"
LEARNED_WORDS_KEY = "learnedWordsByModule"

STATE_KEYS: Tuple[str, ...] = (
    CURRENT_XP_KEY,
    LEVEL_KEY,
    TOTAL_POINTS_KEY,
    STREAK_DAYS_KEY,
    DAILY_GOAL_KEY,
    DAILY_PROGRESS_KEY,
    DAILY_GOAL_DATE_KEY,
    DAILY_GOAL_MET_KEY,
    NOTIFICATIONS_ENABLED_KEY,
    DAILY_REMINDER_KEY,
    ACHIEVEMENTS_KEY,
    LEARNED_WORDS_KEY,
)


class StorageError(RuntimeError):
    """Base class for persistence faults."""


class StorageUnavailable(StorageError):
    """The storage medium could not be reached."""


class StorageCorrupt(StorageError):
    """A stored value exists but cannot be decoded."""


class StorageWriteFailed(StorageError):
    """A write was rejected by the medium or could not be serialised."""


class StorageResetFailed(StorageError):
    """Clearing the key space failed; nothing was cleared."""


class StateBackend(Protocol):
    def read(self, namespace: str, key: str) -> Tuple[bool, Any]:
        ...

    def write(self, namespace: str, key: str, value: Any) -> None:
        ...

    def clear(self, namespace: str, keys: Sequence[str]) -> None:
        ...


class DatabaseStateBackend:
    """SQL persistence through the progress record repository."""

    def __init__(self, *, create_schema: bool = True) -> None:
        self._create_schema = create_schema

    def _ensure_ready(self) -> None:
        if self._create_schema:
            ensure_schema()

    def read(self, namespace: str, key: str) -> Tuple[bool, Any]:
        from .repositories.progress_records import progress_records

        try:
            self._ensure_ready()
            with session_scope(commit=False) as session:
                return progress_records.get(session, namespace, key)
        except ValueError as exc:
            raise StorageCorrupt(f"Stored value for '{key}' is not valid JSON: {exc}") from exc
        except (SQLAlchemyError, RuntimeError) as exc:
            raise StorageUnavailable(f"Database unavailable while reading '{key}': {exc}") from exc

    def write(self, namespace: str, key: str, value: Any) -> None:
        from .repositories.progress_records import progress_records

        try:
            self._ensure_ready()
            with session_scope() as session:
                progress_records.upsert(session, namespace, key, value)
        except (SQLAlchemyError, RuntimeError, TypeError, ValueError) as exc:
            raise StorageWriteFailed(f"Database rejected write for '{key}': {exc}") from exc

    def clear(self, namespace: str, keys: Sequence[str]) -> None:
        from .repositories.progress_records import progress_records

        try:
            self._ensure_ready()
            with session_scope() as session:
                progress_records.delete_keys(session, namespace, keys)
        except (SQLAlchemyError, RuntimeError) as exc:
            raise StorageResetFailed(f"Database reset failed: {exc}") from exc


class JsonFileStateBackend:
    """JSON document persistence used for offline and single-user installs."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> Dict[str, Dict[str, Any]]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except json.JSONDecodeError as exc:
            raise StorageCorrupt(f"State file {self._path} is not valid JSON: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageUnavailable(f"State file {self._path} could not be read: {exc}") from exc
        if not isinstance(raw, dict):
            raise StorageCorrupt(f"State file {self._path} does not contain a mapping")
        return raw

    def _write_unlocked(self, payload: Dict[str, Dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".progress-", suffix=".json", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def read(self, namespace: str, key: str) -> Tuple[bool, Any]:
        with self._lock:
            payload = self._load_unlocked()
        scoped = payload.get(namespace)
        if scoped is None:
            return False, None
        if not isinstance(scoped, dict):
            raise StorageCorrupt(f"Namespace '{namespace}' in {self._path} is not a mapping")
        if key not in scoped:
            return False, None
        return True, scoped[key]

    def write(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            try:
                payload = self._load_unlocked()
            except StorageCorrupt:
                logger.warning("Replacing corrupt state file %s", self._path)
                payload = {}
            except StorageUnavailable as exc:
                raise StorageWriteFailed(str(exc)) from exc
            scoped = payload.get(namespace)
            if not isinstance(scoped, dict):
                scoped = {}
            scoped[key] = value
            payload[namespace] = scoped
            try:
                self._write_unlocked(payload)
            except (OSError, TypeError, ValueError) as exc:
                raise StorageWriteFailed(f"State file {self._path} rejected '{key}': {exc}") from exc

    def clear(self, namespace: str, keys: Sequence[str]) -> None:
        with self._lock:
            try:
                payload = self._load_unlocked()
            except StorageCorrupt:
                payload = {}
            except StorageUnavailable as exc:
                raise StorageResetFailed(str(exc)) from exc
            scoped = payload.get(namespace)
            if isinstance(scoped, dict):
                for key in keys:
                    scoped.pop(key, None)
                payload[namespace] = scoped
            else:
                payload.pop(namespace, None)
            try:
                self._write_unlocked(payload)
            except (OSError, TypeError, ValueError) as exc:
                raise StorageResetFailed(f"State file {self._path} could not be rewritten: {exc}") from exc


class PersistentStore:
    """Cached key/value store scoped to one learner namespace."""

    def __init__(
        self,
        backend: StateBackend,
        *,
        namespace: str = "default",
        cache: Optional[StateCache] = None,
    ) -> None:
        normalized = namespace.strip().lower()
        if not normalized:
            raise ValueError("Namespace cannot be empty.")
        self._backend = backend
        self._namespace = normalized
        self._cache = cache or StateCache()
        self._lock = threading.RLock()

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def backend(self) -> StateBackend:
        return self._backend

    def get(self, key: str, default: Any = None, *, adapter: Optional[TypeAdapter] = None) -> Any:
        with self._lock:
            found, value = self._cache.lookup(key)
            if not found:
                try:
                    found, value = self._backend.read(self._namespace, key)
                except StorageUnavailable as exc:
                    logger.warning("StorageUnavailable reading %s; using default: %s", key, exc)
                    return copy.deepcopy(default)
                except StorageCorrupt as exc:
                    logger.warning("StorageCorrupt reading %s; treating as absent: %s", key, exc)
                    return copy.deepcopy(default)
                if not found or value is None:
                    return copy.deepcopy(default)
                self._cache.set(key, value)
            if value is None:
                return copy.deepcopy(default)
            return self._decode(key, value, default, adapter)

    @staticmethod
    def _decode(key: str, value: Any, default: Any, adapter: Optional[TypeAdapter]) -> Any:
        # Cached values are kept in their JSON form; decode on every lookup.
        if adapter is None:
            return value
        try:
            return adapter.validate_python(value)
        except ValidationError as exc:
            logger.warning(
                "StorageCorrupt decoding %s; treating as absent: %s",
                key,
                exc.errors(include_url=False),
            )
            return copy.deepcopy(default)

    def set(self, key: str, value: Any) -> bool:
        """Store ``value``; returns ``False`` when it only lives in memory."""
        with self._lock:
            try:
                encoded = json.loads(json.dumps(value))
            except (TypeError, ValueError) as exc:
                self._cache.set(key, value, persisted=False)
                logger.warning("StorageWriteFailed for %s; value is not serialisable: %s", key, exc)
                return False
            self._cache.set(key, encoded, persisted=False)
            try:
                self._backend.write(self._namespace, key, encoded)
            except StorageWriteFailed as exc:
                logger.warning("StorageWriteFailed for %s; keeping in-memory value: %s", key, exc)
                return False
            self._cache.mark_persisted(key, True)
            return True

    def reset(self, keys: Iterable[str] = STATE_KEYS) -> None:
        """Clear ``keys`` in one backend operation or raise ``StorageResetFailed``."""
        key_list = list(keys)
        with self._lock:
            try:
                self._backend.clear(self._namespace, key_list)
            except StorageResetFailed:
                logger.warning("Progress reset failed for namespace %s", self._namespace)
                raise
            self._cache.invalidate_many(key_list)
        logger.info("Cleared %d progress keys for namespace %s", len(key_list), self._namespace)

    def unpersisted_keys(self) -> list[str]:
        return self._cache.unpersisted_keys()


def build_backend(settings: Settings) -> StateBackend:
    if settings.persistence_mode == "legacy":
        return JsonFileStateBackend(settings.legacy_state_path)
    return DatabaseStateBackend()


def build_store(settings: Optional[Settings] = None) -> PersistentStore:
    settings = settings or get_settings()
    return PersistentStore(build_backend(settings), namespace=settings.learner_namespace)


__all__ = [
    "ACHIEVEMENTS_KEY",
    "CURRENT_XP_KEY",
    "DAILY_GOAL_DATE_KEY",
    "DAILY_GOAL_KEY",
    "DAILY_GOAL_MET_KEY",
    "DAILY_REMINDER_KEY",
    "DAILY_PROGRESS_KEY",
    "DatabaseStateBackend",
    "JsonFileStateBackend",
    "LEARNED_WORDS_KEY",
    "LEVEL_KEY",
    "NOTIFICATIONS_ENABLED_KEY",
    "PersistentStore",
    "STATE_KEYS",
    "STREAK_DAYS_KEY",
    "StateBackend",
    "StorageCorrupt",
    "StorageError",
    "StorageResetFailed",
    "StorageUnavailable",
    "StorageWriteFailed",
    "TOTAL_POINTS_KEY",
    "build_backend",
    "build_store",
]
