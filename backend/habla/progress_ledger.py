"""XP, level and point bookkeeping for a learner."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, Literal

from pydantic import BaseModel, Field, TypeAdapter

from .store import (
    CURRENT_XP_KEY,
    LEVEL_KEY,
    STREAK_DAYS_KEY,
    TOTAL_POINTS_KEY,
    PersistentStore,
)

logger = logging.getLogger(__name__)

LevelPolicy = Literal["single_step", "converge"]

DIFFICULTY_MULTIPLIERS: Dict[str, Fraction] = {
    "beginner": Fraction(1),
    "intermediate": Fraction(6, 5),
    "advanced": Fraction(3, 2),
}

_INT_ADAPTER = TypeAdapter(int)


def xp_to_next_level(level: int) -> int:
    return level * 500 + 1000


def difficulty_multiplier(difficulty: str) -> Fraction:
    return DIFFICULTY_MULTIPLIERS.get(difficulty, Fraction(1))


def calculate_xp(score: int, difficulty: str) -> int:
    """XP earned for a scored attempt: the score rounded down to a multiple of ten, scaled by difficulty."""
    base_xp = (score // 10) * 10
    return int(base_xp * difficulty_multiplier(difficulty))


class ProgressState(BaseModel):
    current_xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    total_points: int = Field(default=0, ge=0)
    streak_days: int = Field(default=0, ge=0)


@dataclass(frozen=True)
class XpAward:
    gained: int
    leveled_up: bool
    level: int
    current_xp: int
    levels_gained: int = 0


class ProgressLedger:
    """Owns the learner's XP, level, total points and streak counter.

    Level-ups are reported to the caller; unlocking the matching achievement is
    the caller's job.
    """

    def __init__(self, store: PersistentStore, *, policy: LevelPolicy = "single_step") -> None:
        if policy not in ("single_step", "converge"):
            raise ValueError(f"Unknown level policy: {policy}")
        self._store = store
        self._policy: LevelPolicy = policy
        self._state = self._load()

    @property
    def policy(self) -> LevelPolicy:
        return self._policy

    @property
    def state(self) -> ProgressState:
        return self._state.model_copy()

    @property
    def xp_to_next_level(self) -> int:
        return xp_to_next_level(self._state.level)

    def _load(self) -> ProgressState:
        defaults = ProgressState()
        values = {
            "current_xp": self._load_counter(CURRENT_XP_KEY, defaults.current_xp, minimum=0),
            "level": self._load_counter(LEVEL_KEY, defaults.level, minimum=1),
            "total_points": self._load_counter(TOTAL_POINTS_KEY, defaults.total_points, minimum=0),
            "streak_days": self._load_counter(STREAK_DAYS_KEY, defaults.streak_days, minimum=0),
        }
        return ProgressState(**values)

    def _load_counter(self, key: str, default: int, *, minimum: int) -> int:
        value = self._store.get(key, default, adapter=_INT_ADAPTER)
        if value < minimum:
            logger.warning("Stored %s=%s is below %s; using default", key, value, minimum)
            return default
        return value

    def reload(self) -> None:
        self._state = self._load()

    def _persist(self) -> None:
        self._store.set(CURRENT_XP_KEY, self._state.current_xp)
        self._store.set(LEVEL_KEY, self._state.level)
        self._store.set(TOTAL_POINTS_KEY, self._state.total_points)
        self._store.set(STREAK_DAYS_KEY, self._state.streak_days)

    def add_xp(self, score: int, difficulty: str = "beginner") -> XpAward:
        if not 0 <= score <= 100:
            raise ValueError(f"Score must be between 0 and 100, got {score}")
        if difficulty not in DIFFICULTY_MULTIPLIERS:
            logger.info("Unknown difficulty %r; applying multiplier 1", difficulty)
        return self._apply(calculate_xp(score, difficulty))

    def grant(self, points: int) -> XpAward:
        """Credit a fixed reward such as an achievement bonus."""
        if points < 0:
            raise ValueError(f"Reward must be non-negative, got {points}")
        return self._apply(points)

    def _apply(self, gained: int) -> XpAward:
        state = self._state
        state.current_xp += gained
        state.total_points += gained

        levels_gained = 0
        if self._policy == "single_step":
            if state.current_xp >= xp_to_next_level(state.level):
                state.level += 1
                levels_gained = 1
        else:
            while state.current_xp >= xp_to_next_level(state.level):
                state.current_xp -= xp_to_next_level(state.level)
                state.level += 1
                levels_gained += 1

        self._persist()
        if levels_gained:
            logger.info("Level up: now level %s (+%s)", state.level, levels_gained)
        return XpAward(
            gained=gained,
            leveled_up=levels_gained > 0,
            level=state.level,
            current_xp=state.current_xp,
            levels_gained=levels_gained,
        )

    def set_streak(self, days: int) -> None:
        if days < 0:
            raise ValueError("Streak cannot be negative.")
        if days == self._state.streak_days:
            return
        self._state.streak_days = days
        self._store.set(STREAK_DAYS_KEY, days)


__all__ = [
    "DIFFICULTY_MULTIPLIERS",
    "LevelPolicy",
    "ProgressLedger",
    "ProgressState",
    "XpAward",
    "calculate_xp",
    "difficulty_multiplier",
    "xp_to_next_level",
]
