"""Daily exercise goal tracking with calendar-day rollover."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .store import (
    DAILY_GOAL_DATE_KEY,
    DAILY_GOAL_KEY,
    DAILY_GOAL_MET_KEY,
    DAILY_PROGRESS_KEY,
    PersistentStore,
)

logger = logging.getLogger(__name__)

DEFAULT_DAILY_GOAL = 15
DAILY_GOAL_CHOICES = (5, 10, 15, 20, 25)

_INT_ADAPTER = TypeAdapter(int)
_BOOL_ADAPTER = TypeAdapter(bool)
_DATE_ADAPTER = TypeAdapter(date)


class DailyGoalState(BaseModel):
    goal: int = Field(default=DEFAULT_DAILY_GOAL, gt=0)
    progress: int = Field(default=0, ge=0)
    day: Optional[date] = None
    met: bool = False

    @property
    def completed(self) -> bool:
        """True once the goal has been reached today, even if it was raised since."""
        return self.met or self.progress >= self.goal

    @property
    def remaining(self) -> int:
        return max(0, self.goal - self.progress)


@dataclass(frozen=True)
class GoalProgress:
    progress: int
    goal: int
    just_completed: bool


@dataclass(frozen=True)
class DayRollover:
    previous_day: date
    today: date
    goal_met: bool

    @property
    def extends_streak(self) -> bool:
        """True when yesterday's goal was reached, so the streak continues."""
        return self.goal_met and self.today - self.previous_day == timedelta(days=1)


def local_today(timezone_name: str = "UTC") -> Callable[[], date]:
    """Return a clock that reports the current calendar date in ``timezone_name``."""
    try:
        tz = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to UTC for daily goals", timezone_name)
        tz = ZoneInfo("UTC")

    def _today() -> date:
        return datetime.now(tz).date()

    return _today


class DailyGoalTracker:
    def __init__(
        self,
        store: PersistentStore,
        *,
        default_goal: int = DEFAULT_DAILY_GOAL,
        today: Optional[Callable[[], date]] = None,
        on_rollover: Optional[Callable[[DayRollover], None]] = None,
    ) -> None:
        if default_goal <= 0:
            raise ValueError("Daily goal must be positive.")
        self._store = store
        self._default_goal = default_goal
        self._today = today or local_today()
        self._on_rollover = on_rollover
        self._state = self._load()

    def _load(self) -> DailyGoalState:
        goal = self._store.get(DAILY_GOAL_KEY, self._default_goal, adapter=_INT_ADAPTER)
        progress = self._store.get(DAILY_PROGRESS_KEY, 0, adapter=_INT_ADAPTER)
        day = self._store.get(DAILY_GOAL_DATE_KEY, None, adapter=_DATE_ADAPTER)
        met = self._store.get(DAILY_GOAL_MET_KEY, False, adapter=_BOOL_ADAPTER)
        try:
            return DailyGoalState(goal=goal, progress=progress, day=day, met=met)
        except ValidationError as exc:
            logger.warning("Stored daily goal state is invalid; using defaults: %s", exc.errors(include_url=False))
            return DailyGoalState(goal=self._default_goal, day=day)

    def reload(self) -> None:
        self._state = self._load()

    def set_rollover_listener(self, listener: Optional[Callable[[DayRollover], None]]) -> None:
        self._on_rollover = listener

    def current_state(self) -> DailyGoalState:
        self.roll_over()
        return self._state.model_copy()

    def roll_over(self, today: Optional[date] = None) -> Optional[DayRollover]:
        """Start a new day if the calendar moved on since the last stored activity."""
        today = today or self._today()
        previous = self._state.day
        if previous is not None and previous >= today:
            return None

        rollover: Optional[DayRollover] = None
        if previous is not None:
            rollover = DayRollover(previous_day=previous, today=today, goal_met=self._state.completed)
            logger.info(
                "Daily goal rollover %s -> %s (goal met: %s)",
                previous.isoformat(),
                today.isoformat(),
                rollover.goal_met,
            )
            self._state.progress = 0
            self._state.met = False
            self._store.set(DAILY_PROGRESS_KEY, 0)
            self._store.set(DAILY_GOAL_MET_KEY, False)
        self._state.day = today
        self._store.set(DAILY_GOAL_DATE_KEY, today.isoformat())

        if rollover is not None and self._on_rollover is not None:
            self._on_rollover(rollover)
        return rollover

    def record_completion(self) -> GoalProgress:
        self.roll_over()
        state = self._state
        previous = state.progress
        state.progress = min(state.goal, previous + 1)
        if state.progress != previous:
            self._store.set(DAILY_PROGRESS_KEY, state.progress)
        just_completed = state.progress == state.goal and previous < state.goal and not state.met
        if just_completed:
            state.met = True
            self._store.set(DAILY_GOAL_MET_KEY, True)
        return GoalProgress(progress=state.progress, goal=state.goal, just_completed=just_completed)

    def set_goal(self, goal: int) -> DailyGoalState:
        if goal <= 0:
            raise ValueError("Daily goal must be positive.")
        self.roll_over()
        self._state.goal = goal
        self._store.set(DAILY_GOAL_KEY, goal)
        if self._state.progress > goal:
            self._state.progress = goal
            self._store.set(DAILY_PROGRESS_KEY, goal)
        if self._state.progress >= goal and not self._state.met:
            # Lowering the goal onto today's progress counts as met, silently.
            self._state.met = True
            self._store.set(DAILY_GOAL_MET_KEY, True)
        return self._state.model_copy()


__all__ = [
    "DAILY_GOAL_CHOICES",
    "DEFAULT_DAILY_GOAL",
    "DailyGoalState",
    "DailyGoalTracker",
    "DayRollover",
    "GoalProgress",
    "local_today",
]
