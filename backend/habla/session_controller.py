"""Practice session orchestration.

A session owns one learner's ledger, achievement registry, daily goal tracker
and module progress, and runs at most one scoring attempt at a time. Starting a
new attempt cancels the outstanding one; a completion whose token is no longer
current is discarded without touching any state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, Field, TypeAdapter

from .achievements import (
    DAILY_WARRIOR,
    FIRST_PERFECT,
    LEVEL_UP,
    STREAK_WARRIOR,
    Achievement,
    AchievementRegistry,
    UnlockResult,
)
from .config import Settings, get_settings
from .daily_goal import DailyGoalState, DailyGoalTracker, DayRollover, GoalProgress, local_today
from .module_progress import ModuleProgressTracker
from .notifications import ACHIEVEMENT_UNLOCKED, GOAL_COMPLETE, LEVEL_UP as LEVEL_UP_EVENT, XP_GAINED, NotificationHub
from .progress_ledger import LevelPolicy, ProgressLedger, ProgressState, XpAward
from .scoring import AttemptResult, Difficulty, FixedScorer, Scorer, SimulatedScorer
from .store import (
    DAILY_REMINDER_KEY,
    NOTIFICATIONS_ENABLED_KEY,
    STATE_KEYS,
    PersistentStore,
    build_store,
)

logger = logging.getLogger(__name__)

STREAK_WARRIOR_DAYS = 10
DEFAULT_DAILY_REMINDER = time(18, 0)

_BOOL_ADAPTER = TypeAdapter(bool)
_TIME_ADAPTER = TypeAdapter(time)


class SessionState(str, Enum):
    IDLE = "idle"
    SCORING = "scoring"
    RESOLVED = "resolved"
    CLOSED = "closed"


class AttemptCancelled(RuntimeError):
    """Raised to callers awaiting an attempt that was superseded or torn down."""


class SessionClosed(RuntimeError):
    """Raised when an operation is requested after the session was closed."""


@dataclass(frozen=True)
class AttemptOutcome:
    token: int
    score: int
    difficulty: str
    xp: XpAward
    goal: GoalProgress
    unlocked: List[Achievement] = field(default_factory=list)
    word_learned: bool = False


class AttemptHandle:
    """Handle to one in-flight scoring attempt."""

    def __init__(self, token: int, task: "asyncio.Task[AttemptOutcome]") -> None:
        self.token = token
        self._task = task
        task.add_done_callback(_consume_task_exception)

    def done(self) -> bool:
        return self._task.done()

    def cancelled(self) -> bool:
        return self._task.cancelled()

    def cancel(self) -> bool:
        return self._task.cancel()

    async def result(self) -> AttemptOutcome:
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                raise AttemptCancelled(f"Attempt {self.token} was cancelled") from None
            raise

    async def wait_closed(self) -> None:
        await asyncio.gather(self._task, return_exceptions=True)


def _consume_task_exception(task: "asyncio.Task[AttemptOutcome]") -> None:
    if not task.cancelled():
        task.exception()


class ProgressSnapshot(BaseModel):
    progress: ProgressState
    xp_to_next_level: int
    daily_goal: DailyGoalState
    achievements: List[Achievement] = Field(default_factory=list)
    learned_words: dict[str, List[int]] = Field(default_factory=dict)
    session_state: SessionState
    pending_attempt: Optional[int] = None
    notifications_enabled: bool = False
    daily_reminder: time = DEFAULT_DAILY_REMINDER
    unpersisted_keys: List[str] = Field(default_factory=list)


class SessionController:
    def __init__(
        self,
        store: PersistentStore,
        *,
        scorer: Optional[Scorer] = None,
        hub: Optional[NotificationHub] = None,
        level_policy: LevelPolicy = "single_step",
        default_daily_goal: int = 15,
        default_notifications: bool = False,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._store = store
        self._scorer: Scorer = scorer or SimulatedScorer()
        self._ledger = ProgressLedger(store, policy=level_policy)
        self._achievements = AchievementRegistry(store)
        self._daily = DailyGoalTracker(
            store,
            default_goal=default_daily_goal,
            today=today or local_today(),
            on_rollover=self._handle_rollover,
        )
        self._modules = ModuleProgressTracker(store)
        self._default_notifications = default_notifications
        self._daily_reminder = self._load_reminder()
        self._notifications_enabled = self._load_notifications()
        self._hub = hub or NotificationHub()
        self._hub.set_permission(lambda: self._notifications_enabled)

        self._state = SessionState.IDLE
        self._token = 0
        self._pending: Optional[AttemptHandle] = None
        self._carryover: List[Achievement] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def hub(self) -> NotificationHub:
        return self._hub

    @property
    def ledger(self) -> ProgressLedger:
        return self._ledger

    @property
    def achievements(self) -> AchievementRegistry:
        return self._achievements

    @property
    def daily_goal(self) -> DailyGoalTracker:
        return self._daily

    @property
    def modules(self) -> ModuleProgressTracker:
        return self._modules

    @property
    def pending_attempt(self) -> Optional[AttemptHandle]:
        if self._pending is not None and not self._pending.done():
            return self._pending
        return None

    def _load_notifications(self) -> bool:
        return self._store.get(NOTIFICATIONS_ENABLED_KEY, self._default_notifications, adapter=_BOOL_ADAPTER)

    def _load_reminder(self) -> time:
        return self._store.get(DAILY_REMINDER_KEY, DEFAULT_DAILY_REMINDER, adapter=_TIME_ADAPTER)

    def _ensure_open(self) -> None:
        if self._state is SessionState.CLOSED:
            raise SessionClosed("Practice session has been closed.")

    # Attempts

    def start_attempt(
        self,
        difficulty: Difficulty = "beginner",
        *,
        score: Optional[int] = None,
        module_id: Optional[str] = None,
        word_index: Optional[int] = None,
    ) -> AttemptHandle:
        """Begin scoring an attempt on the running event loop."""
        self._ensure_open()
        if score is not None and not 0 <= score <= 100:
            raise ValueError(f"Score must be between 0 and 100, got {score}")
        loop = asyncio.get_running_loop()

        previous = self.pending_attempt
        self._token += 1
        token = self._token
        if previous is not None:
            logger.info(
                "ConcurrentAttemptConflict: cancelling attempt %s in favour of %s",
                previous.token,
                token,
            )
            previous.cancel()

        scorer: Scorer = FixedScorer(score) if score is not None else self._scorer
        task = loop.create_task(
            self._run_attempt(token, scorer, difficulty, module_id, word_index),
            name=f"habla-attempt-{token}",
        )
        handle = AttemptHandle(token, task)
        self._pending = handle
        self._state = SessionState.SCORING
        logger.debug("Attempt %s started (difficulty=%s)", token, difficulty)
        return handle

    async def record_attempt(
        self,
        difficulty: Difficulty = "beginner",
        *,
        score: Optional[int] = None,
        module_id: Optional[str] = None,
        word_index: Optional[int] = None,
    ) -> AttemptOutcome:
        handle = self.start_attempt(difficulty, score=score, module_id=module_id, word_index=word_index)
        return await handle.result()

    async def _run_attempt(
        self,
        token: int,
        scorer: Scorer,
        difficulty: Difficulty,
        module_id: Optional[str],
        word_index: Optional[int],
    ) -> AttemptOutcome:
        try:
            result = await scorer.score(difficulty)
        except Exception:
            if token == self._token and self._state is SessionState.SCORING:
                self._pending = None
                self._state = SessionState.IDLE
            logger.exception("Scoring failed for attempt %s", token)
            raise
        if token != self._token or self._state is not SessionState.SCORING:
            logger.info("Discarding stale completion for attempt %s", token)
            raise AttemptCancelled(f"Attempt {token} is no longer current")
        self._pending = None
        self._state = SessionState.RESOLVED
        try:
            return self._apply(token, result, module_id, word_index)
        finally:
            if self._state is SessionState.RESOLVED:
                self._state = SessionState.IDLE

    def cancel_attempt(self) -> bool:
        handle = self.pending_attempt
        self._pending = None
        if handle is None:
            return False
        # Bump the token so a completion already queued on the loop is discarded too.
        self._token += 1
        handle.cancel()
        if self._state is SessionState.SCORING:
            self._state = SessionState.IDLE
        logger.info("Attempt %s cancelled", handle.token)
        return True

    def close(self) -> None:
        if self._state is SessionState.CLOSED:
            return
        self.cancel_attempt()
        self._state = SessionState.CLOSED
        logger.info("Practice session closed")

    async def aclose(self) -> None:
        """Close the session and wait until the cancelled attempt has unwound."""
        handle = self._pending
        self.close()
        if handle is not None:
            await handle.wait_closed()

    # Effects

    def apply_result(
        self,
        result: AttemptResult,
        *,
        module_id: Optional[str] = None,
        word_index: Optional[int] = None,
    ) -> AttemptOutcome:
        """Apply an already-scored attempt without the asynchronous scoring step."""
        self._ensure_open()
        if self.pending_attempt is not None:
            self.cancel_attempt()
        self._token += 1
        return self._apply(self._token, result, module_id, word_index)

    def _apply(
        self,
        token: int,
        result: AttemptResult,
        module_id: Optional[str],
        word_index: Optional[int],
    ) -> AttemptOutcome:
        self._daily.roll_over()
        unlocked, self._carryover = self._carryover, []

        award = self._ledger.add_xp(result.score, result.difficulty)
        self._announce_xp(award, source="attempt", score=result.score, difficulty=result.difficulty)
        if award.leveled_up:
            self._announce_level_up(award)
            self._unlock(LEVEL_UP, unlocked)

        goal = self._daily.record_completion()
        if goal.just_completed:
            self._hub.emit(GOAL_COMPLETE, goal=goal.goal, progress=goal.progress)
            self._unlock(DAILY_WARRIOR, unlocked)

        if result.score == 100:
            self._unlock(FIRST_PERFECT, unlocked)

        word_learned = False
        if module_id is not None and word_index is not None:
            word_learned = self._modules.mark_learned(module_id, word_index)

        logger.info(
            "Attempt %s resolved: score=%s difficulty=%s xp=+%s unlocked=%s",
            token,
            result.score,
            result.difficulty,
            award.gained,
            [entry.id for entry in unlocked],
        )
        return AttemptOutcome(
            token=token,
            score=result.score,
            difficulty=result.difficulty,
            xp=award,
            goal=goal,
            unlocked=unlocked,
            word_learned=word_learned,
        )

    def _unlock(self, achievement_id: str, unlocked: List[Achievement]) -> UnlockResult:
        result = self._achievements.unlock(achievement_id)
        if not result.newly_unlocked or result.achievement is None:
            return result
        achievement = result.achievement
        unlocked.append(achievement)
        self._hub.emit(
            ACHIEVEMENT_UNLOCKED,
            id=achievement.id,
            name=achievement.name,
            xp_reward=achievement.xp_reward,
        )
        if achievement.xp_reward:
            bonus = self._ledger.grant(achievement.xp_reward)
            self._announce_xp(bonus, source=achievement.id)
            if bonus.leveled_up:
                self._announce_level_up(bonus)
                self._unlock(LEVEL_UP, unlocked)
        return result

    def _announce_xp(self, award: XpAward, *, source: str, **extra: object) -> None:
        state = self._ledger.state
        self._hub.emit(
            XP_GAINED,
            gained=award.gained,
            source=source,
            current_xp=state.current_xp,
            total_points=state.total_points,
            **extra,
        )

    def _announce_level_up(self, award: XpAward) -> None:
        self._hub.emit(
            LEVEL_UP_EVENT,
            level=award.level,
            levels_gained=award.levels_gained,
            xp_to_next_level=self._ledger.xp_to_next_level,
        )

    def _handle_rollover(self, rollover: DayRollover) -> None:
        current = self._ledger.state.streak_days
        streak = current + 1 if rollover.extends_streak else 0
        self._ledger.set_streak(streak)
        logger.info("Streak settled at %s day(s) after %s", streak, rollover.previous_day.isoformat())
        if streak >= STREAK_WARRIOR_DAYS and self._state is not SessionState.CLOSED:
            self._unlock(STREAK_WARRIOR, self._carryover)

    # Settings and lifecycle

    def set_daily_goal(self, goal: int) -> DailyGoalState:
        self._ensure_open()
        return self._daily.set_goal(goal)

    def set_notifications_enabled(self, enabled: bool) -> bool:
        self._ensure_open()
        self._notifications_enabled = enabled
        self._store.set(NOTIFICATIONS_ENABLED_KEY, enabled)
        return enabled

    def set_daily_reminder(self, reminder: time) -> time:
        """Store the time of day the client should remind the learner to practise."""
        self._ensure_open()
        reminder = reminder.replace(second=0, microsecond=0, tzinfo=None)
        self._daily_reminder = reminder
        self._store.set(DAILY_REMINDER_KEY, reminder.strftime("%H:%M"))
        return reminder

    def snapshot(self) -> ProgressSnapshot:
        daily = self._daily.current_state()
        pending = self.pending_attempt
        return ProgressSnapshot(
            progress=self._ledger.state,
            xp_to_next_level=self._ledger.xp_to_next_level,
            daily_goal=daily,
            achievements=self._achievements.catalog(),
            learned_words=self._modules.all_learned(),
            session_state=self._state,
            pending_attempt=pending.token if pending else None,
            notifications_enabled=self._notifications_enabled,
            daily_reminder=self._daily_reminder,
            unpersisted_keys=self._store.unpersisted_keys(),
        )

    def reset(self) -> None:
        """Clear all persisted progress; raises ``StorageResetFailed`` and keeps state on failure."""
        self._ensure_open()
        self.cancel_attempt()
        self._store.reset(STATE_KEYS)
        self._ledger.reload()
        self._achievements.reload()
        self._daily.reload()
        self._modules.reload()
        self._notifications_enabled = self._load_notifications()
        self._daily_reminder = self._load_reminder()
        self._carryover = []
        logger.info("Progress reset for namespace %s", self._store.namespace)


def build_session(
    settings: Optional[Settings] = None,
    *,
    store: Optional[PersistentStore] = None,
    scorer: Optional[Scorer] = None,
    hub: Optional[NotificationHub] = None,
) -> SessionController:
    settings = settings or get_settings()
    return SessionController(
        store or build_store(settings),
        scorer=scorer or SimulatedScorer(settings.scoring_delay_min, settings.scoring_delay_max),
        hub=hub,
        level_policy=settings.level_policy,
        default_daily_goal=settings.default_daily_goal,
        default_notifications=settings.notifications_enabled,
        today=local_today(settings.timezone),
    )


__all__ = [
    "AttemptCancelled",
    "AttemptHandle",
    "AttemptOutcome",
    "DEFAULT_DAILY_REMINDER",
    "ProgressSnapshot",
    "STREAK_WARRIOR_DAYS",
    "SessionClosed",
    "SessionController",
    "SessionState",
    "build_session",
]
