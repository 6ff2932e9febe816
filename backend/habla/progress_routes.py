"""Progress endpoints surfaced to the practice client."""

from __future__ import annotations

import logging
from datetime import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from .achievements import Achievement
from .daily_goal import DAILY_GOAL_CHOICES
from .scoring import Difficulty
from .session_controller import (
    AttemptCancelled,
    ProgressSnapshot,
    SessionClosed,
    SessionController,
    build_session,
)
from .store import StorageResetFailed

router = APIRouter(prefix="/api/progress", tags=["progress"])
logger = logging.getLogger(__name__)

_session: Optional[SessionController] = None


def get_session_controller() -> SessionController:
    global _session
    if _session is None:
        _session = build_session()
    return _session


async def close_session_controller() -> None:
    global _session
    if _session is not None:
        await _session.aclose()
    _session = None


class AttemptRequest(BaseModel):
    difficulty: Difficulty = "beginner"
    score: Optional[int] = Field(default=None, ge=0, le=100)
    module_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    word_index: Optional[int] = Field(default=None, ge=0)


class AttemptResponse(BaseModel):
    token: int
    score: int
    difficulty: Difficulty
    xp_gained: int
    leveled_up: bool
    level: int
    current_xp: int
    daily_progress: int
    daily_goal: int
    goal_completed: bool
    unlocked: List[Achievement] = Field(default_factory=list)
    word_learned: bool = False


class CancelResponse(BaseModel):
    cancelled: bool


class DailyGoalRequest(BaseModel):
    goal: int = Field(..., gt=0)


class NotificationPreferenceRequest(BaseModel):
    enabled: bool


class DailyReminderRequest(BaseModel):
    reminder: time


@router.get("", response_model=ProgressSnapshot)
async def get_progress(session: SessionController = Depends(get_session_controller)) -> ProgressSnapshot:
    return session.snapshot()


@router.post("/attempts", response_model=AttemptResponse)
async def record_attempt(
    payload: AttemptRequest,
    session: SessionController = Depends(get_session_controller),
) -> AttemptResponse:
    try:
        outcome = await session.record_attempt(
            payload.difficulty,
            score=payload.score,
            module_id=payload.module_id,
            word_index=payload.word_index,
        )
    except AttemptCancelled as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SessionClosed as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return AttemptResponse(
        token=outcome.token,
        score=outcome.score,
        difficulty=outcome.difficulty,
        xp_gained=outcome.xp.gained,
        leveled_up=outcome.xp.leveled_up,
        level=outcome.xp.level,
        current_xp=outcome.xp.current_xp,
        daily_progress=outcome.goal.progress,
        daily_goal=outcome.goal.goal,
        goal_completed=outcome.goal.just_completed,
        unlocked=outcome.unlocked,
        word_learned=outcome.word_learned,
    )


@router.post("/attempts/cancel", response_model=CancelResponse)
async def cancel_attempt(session: SessionController = Depends(get_session_controller)) -> CancelResponse:
    return CancelResponse(cancelled=session.cancel_attempt())


@router.put("/daily-goal", response_model=ProgressSnapshot)
async def update_daily_goal(
    payload: DailyGoalRequest,
    session: SessionController = Depends(get_session_controller),
) -> ProgressSnapshot:
    if payload.goal not in DAILY_GOAL_CHOICES:
        raise HTTPException(
            status_code=422,
            detail=f"Daily goal must be one of {list(DAILY_GOAL_CHOICES)}.",
        )
    try:
        session.set_daily_goal(payload.goal)
    except SessionClosed as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return session.snapshot()


@router.put("/notifications", response_model=ProgressSnapshot)
async def update_notifications(
    payload: NotificationPreferenceRequest,
    session: SessionController = Depends(get_session_controller),
) -> ProgressSnapshot:
    try:
        session.set_notifications_enabled(payload.enabled)
    except SessionClosed as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return session.snapshot()


@router.put("/reminder", response_model=ProgressSnapshot)
async def update_daily_reminder(
    payload: DailyReminderRequest,
    session: SessionController = Depends(get_session_controller),
) -> ProgressSnapshot:
    try:
        session.set_daily_reminder(payload.reminder)
    except SessionClosed as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return session.snapshot()


@router.delete("", response_model=ProgressSnapshot)
async def reset_progress(session: SessionController = Depends(get_session_controller)) -> ProgressSnapshot:
    try:
        session.reset()
    except StorageResetFailed as exc:
        logger.warning("Progress reset failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress could not be reset; nothing was cleared.",
        ) from exc
    except SessionClosed as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return session.snapshot()


__all__ = ["close_session_controller", "get_session_controller", "router"]
