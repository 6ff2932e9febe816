"""Achievement catalog and one-time unlock bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, TypeAdapter

from .store import ACHIEVEMENTS_KEY, PersistentStore

logger = logging.getLogger(__name__)

FIRST_PERFECT = "first_perfect"
DIALECT_MASTER = "dialect_master"
STREAK_WARRIOR = "streak_warrior"
CONVERSATION_HERO = "conversation_hero"
PHONETIC_MASTER = "phonetic_master"
CULTURAL_EXPERT = "cultural_expert"
LEVEL_UP = "level_up"
DAILY_WARRIOR = "daily_warrior"


class Achievement(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    description: str
    xp_reward: int = Field(default=0, ge=0)
    icon: str = ""
    unlocked: bool = False


class _StoredAchievement(BaseModel):
    id: str
    unlocked: bool = False


DEFAULT_ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement(id=FIRST_PERFECT, name="Perfect Score", description="Score 100% on pronunciation", xp_reward=100, icon="🎯"),
    Achievement(id=DIALECT_MASTER, name="Dialect Master", description="Master 3 different dialects", xp_reward=500, icon="🌍"),
    Achievement(id=STREAK_WARRIOR, name="Streak Warrior", description="10-day learning streak", xp_reward=300, icon="🔥"),
    Achievement(id=CONVERSATION_HERO, name="Conversation Hero", description="Complete 25 conversations", xp_reward=750, icon="💬"),
    Achievement(id=PHONETIC_MASTER, name="Phonetic Master", description="Master advanced phonetics", xp_reward=1000, icon="🔬"),
    Achievement(id=CULTURAL_EXPERT, name="Cultural Expert", description="Complete cultural modules", xp_reward=600, icon="🎭"),
    Achievement(id=LEVEL_UP, name="Level Up!", description="Reach a new level", xp_reward=50, icon="🚀"),
    Achievement(id=DAILY_WARRIOR, name="Daily Warrior", description="Complete your daily goal", xp_reward=50, icon="📅"),
)

_STORED_ADAPTER = TypeAdapter(List[_StoredAchievement])

UnlockStatus = Literal["unlocked", "already_unlocked", "unknown"]


@dataclass(frozen=True)
class UnlockResult:
    status: UnlockStatus
    achievement: Optional[Achievement] = None

    @property
    def newly_unlocked(self) -> bool:
        return self.status == "unlocked"

    @property
    def xp_reward(self) -> int:
        if self.status != "unlocked" or self.achievement is None:
            return 0
        return self.achievement.xp_reward


class AchievementRegistry:
    """Fixed achievement catalog whose entries can only flip from locked to unlocked."""

    def __init__(
        self,
        store: PersistentStore,
        catalog: Sequence[Achievement] = DEFAULT_ACHIEVEMENTS,
    ) -> None:
        ids = [entry.id for entry in catalog]
        if len(set(ids)) != len(ids):
            raise ValueError("Achievement ids must be unique.")
        self._store = store
        self._catalog = tuple(entry.model_copy(update={"unlocked": False}) for entry in catalog)
        self._achievements: Dict[str, Achievement] = {}
        self.reload()

    def reload(self) -> None:
        stored = self._store.get(ACHIEVEMENTS_KEY, [], adapter=_STORED_ADAPTER)
        unlocked = {entry.id for entry in stored if entry.unlocked}
        unknown = unlocked.difference(entry.id for entry in self._catalog)
        if unknown:
            logger.info("Ignoring stored achievements outside the catalog: %s", sorted(unknown))
        self._achievements = {
            entry.id: entry.model_copy(update={"unlocked": entry.id in unlocked})
            for entry in self._catalog
        }

    def get(self, achievement_id: str) -> Optional[Achievement]:
        achievement = self._achievements.get(achievement_id)
        return achievement.model_copy() if achievement else None

    def catalog(self) -> List[Achievement]:
        return [entry.model_copy() for entry in self._achievements.values()]

    def unlocked_ids(self) -> List[str]:
        return [entry.id for entry in self._achievements.values() if entry.unlocked]

    def unlock(self, achievement_id: str) -> UnlockResult:
        achievement = self._achievements.get(achievement_id)
        if achievement is None:
            logger.warning("UnknownAchievementId: %s", achievement_id)
            return UnlockResult(status="unknown")
        if achievement.unlocked:
            return UnlockResult(status="already_unlocked", achievement=achievement.model_copy())

        achievement.unlocked = True
        self._persist()
        logger.info("Achievement unlocked: %s (+%s XP)", achievement.id, achievement.xp_reward)
        return UnlockResult(status="unlocked", achievement=achievement.model_copy())

    def _persist(self) -> None:
        payload = [entry.model_dump(mode="json") for entry in self._achievements.values()]
        self._store.set(ACHIEVEMENTS_KEY, payload)


__all__ = [
    "Achievement",
    "AchievementRegistry",
    "CONVERSATION_HERO",
    "CULTURAL_EXPERT",
    "DAILY_WARRIOR",
    "DEFAULT_ACHIEVEMENTS",
    "DIALECT_MASTER",
    "FIRST_PERFECT",
    "LEVEL_UP",
    "PHONETIC_MASTER",
    "STREAK_WARRIOR",
    "UnlockResult",
    "UnlockStatus",
]
