"""Pronunciation scorers that feed attempts into a practice session.

Real speech scoring lives outside this package. ``SimulatedScorer`` mimics an
inference service with a jittered delay; ``FixedScorer`` wraps a score the
caller already has.
"""

from __future__ import annotations

import asyncio
import math
import random
from typing import Dict, Literal, Optional, Protocol

from pydantic import BaseModel, Field

Difficulty = Literal["beginner", "intermediate", "advanced"]

DIFFICULTIES: tuple[str, ...] = ("beginner", "intermediate", "advanced")

SIMULATED_SCORE_FLOOR = 65
SIMULATED_SCORE_SPAN = 35
SIMULATED_DIFFICULTY_BIAS: Dict[str, float] = {
    "beginner": 1.05,
    "intermediate": 1.0,
    "advanced": 0.95,
}


class AttemptResult(BaseModel):
    score: int = Field(..., ge=0, le=100)
    difficulty: Difficulty = "beginner"


class Scorer(Protocol):
    async def score(self, difficulty: Difficulty) -> AttemptResult:  # pragma: no cover - protocol definition
        ...


class SimulatedScorer:
    def __init__(
        self,
        delay_min: float = 2.5,
        delay_max: float = 3.5,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        if delay_min < 0 or delay_max < delay_min:
            raise ValueError("Scoring delay bounds must satisfy 0 <= min <= max.")
        self._delay_min = delay_min
        self._delay_max = delay_max
        self._rng = rng or random.Random()

    def draw_score(self, difficulty: str) -> int:
        base = SIMULATED_SCORE_FLOOR + self._rng.random() * SIMULATED_SCORE_SPAN
        bias = SIMULATED_DIFFICULTY_BIAS.get(difficulty, 1.0)
        return min(100, math.floor(base * bias))

    def draw_delay(self) -> float:
        return self._rng.uniform(self._delay_min, self._delay_max)

    async def score(self, difficulty: Difficulty) -> AttemptResult:
        await asyncio.sleep(self.draw_delay())
        return AttemptResult(score=self.draw_score(difficulty), difficulty=difficulty)


class FixedScorer:
    def __init__(self, score: int, delay: float = 0.0) -> None:
        self._result_score = score
        self._delay = delay

    async def score(self, difficulty: Difficulty) -> AttemptResult:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        return AttemptResult(score=self._result_score, difficulty=difficulty)


__all__ = [
    "AttemptResult",
    "DIFFICULTIES",
    "Difficulty",
    "FixedScorer",
    "Scorer",
    "SimulatedScorer",
]
