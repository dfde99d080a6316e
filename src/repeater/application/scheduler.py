"""
Performance model: turns a grade into the next review state.

This is a pure computation module with no I/O. The recurrence follows the
FSRS-5 family; its coefficients live in SchedulerParameters so they can be
tuned from configuration.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from repeater.domain.constants import (
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_MINIMUM_INTERVAL,
    DIFFICULTY_MAX,
    DIFFICULTY_MIN,
    FSRS_DECAY,
    FSRS_DEFAULT_WEIGHTS,
    FSRS_FACTOR,
    STABILITY_MIN,
)
from repeater.domain.models import Grade, NewState, ReviewedState, ReviewState

# FSRS ratings: 1=Again, 2=Hard, 3=Good, 4=Easy.
RATING = {
    Grade.FAIL: 1,
    Grade.PASS: 3,
}
EASY_RATING = 4


@dataclass(frozen=True)
class SchedulerParameters:
    """
    Coefficients of the memory model.

    Attributes:
        weights: The 19 FSRS-5 weights w0..w18.
        desired_retention: Recall probability the interval is tuned for.
        minimum_interval: Lower clamp for interval_days.
        maximum_interval: Upper clamp for interval_days.
    """

    weights: tuple[float, ...] = FSRS_DEFAULT_WEIGHTS
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    minimum_interval: int = DEFAULT_MINIMUM_INTERVAL
    maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL

    def __post_init__(self):
        w = self.weights
        if len(w) != len(FSRS_DEFAULT_WEIGHTS):
            raise ValueError(
                f"Expected {len(FSRS_DEFAULT_WEIGHTS)} weights, got {len(w)}"
            )
        if any(x < 0 for x in w):
            raise ValueError("Weights must be non-negative")
        # A failed new card must not start out stronger than a passed one,
        # and a same-day failure must not grow stability.
        if w[0] > w[2]:
            raise ValueError("w0 (initial stability on fail) must not exceed w2")
        if w[18] > 2:
            raise ValueError("w18 must not exceed 2")
        if not 0 < self.desired_retention < 1:
            raise ValueError("desired_retention must be between 0 and 1")
        if not 0 <= self.minimum_interval <= self.maximum_interval:
            raise ValueError("Interval bounds must satisfy 0 <= minimum <= maximum")


class PerformanceModel:
    """
    Computes the state that follows a grade.

    Stateless and side-effect free: the same inputs always give the same output.
    """

    def __init__(self, params: SchedulerParameters | None = None):
        self.params = params or SchedulerParameters()

    def update(self, prior: ReviewState, grade: Grade, now: datetime) -> ReviewedState:
        rating = RATING[grade]

        if isinstance(prior, NewState):
            stability = self._initial_stability(rating)
            difficulty = self._initial_difficulty(rating)
        else:
            elapsed = max(0.0, (now - prior.last_reviewed_at).total_seconds() / 86400.0)
            stability = self._next_stability(prior, rating, elapsed)
            difficulty = self._next_difficulty(prior.difficulty, rating)

        stability = max(STABILITY_MIN, stability)
        interval_raw = self.interval_for(stability)
        interval_days = self._round_interval(interval_raw)

        return ReviewedState(
            last_reviewed_at=now,
            stability=stability,
            difficulty=difficulty,
            interval_raw=interval_raw,
            interval_days=interval_days,
            due_date=now + timedelta(days=interval_days),
            review_count=prior.review_count + 1,
        )

    def interval_for(self, stability: float) -> float:
        """Days until recall probability falls to the desired retention."""
        r = self.params.desired_retention
        return stability / FSRS_FACTOR * (r ** (1 / FSRS_DECAY) - 1)

    def retrievability(self, state: ReviewState, now: datetime) -> float | None:
        """
        Current probability of recall, or None for a card never reviewed.

        R = (1 + FACTOR * t / S) ^ DECAY where t = days since last review.
        """
        if isinstance(state, NewState):
            return None
        elapsed = max(0.0, (now - state.last_reviewed_at).total_seconds() / 86400.0)
        return self._forgetting_curve(elapsed, state.stability)

    # ---------- Initial state ----------

    def _initial_stability(self, rating: int) -> float:
        return self.params.weights[rating - 1]

    def _initial_difficulty(self, rating: int) -> float:
        w = self.params.weights
        return _clamp_difficulty(w[4] - math.exp(w[5] * (rating - 1)) + 1)

    # ---------- Recurrence ----------

    def _next_stability(self, prior: ReviewedState, rating: int, elapsed: float) -> float:
        w = self.params.weights
        s, d = prior.stability, prior.difficulty

        if elapsed < 1.0:
            # Same-day review: short-term stability adjustment.
            new_s = s * math.exp(w[17] * (rating - 3 + w[18]))
        else:
            r = self._forgetting_curve(elapsed, s)
            if rating == 1:
                new_s = (
                    w[11]
                    * d ** -w[12]
                    * ((s + 1) ** w[13] - 1)
                    * math.exp(w[14] * (1 - r))
                )
            else:
                hard_penalty = w[15] if rating == 2 else 1.0
                easy_bonus = w[16] if rating == 4 else 1.0
                new_s = s * (
                    math.exp(w[8])
                    * (11 - d)
                    * s ** -w[9]
                    * (math.exp(w[10] * (1 - r)) - 1)
                    * hard_penalty
                    * easy_bonus
                    + 1
                )

        if rating == 1:
            new_s = min(new_s, s)
        return new_s

    def _next_difficulty(self, difficulty: float, rating: int) -> float:
        w = self.params.weights
        delta = -w[6] * (rating - 3)
        damped = difficulty + delta * (DIFFICULTY_MAX - difficulty) / 9
        reverted = w[7] * self._initial_difficulty(EASY_RATING) + (1 - w[7]) * damped
        return _clamp_difficulty(reverted)

    def _forgetting_curve(self, elapsed: float, stability: float) -> float:
        return (1 + FSRS_FACTOR * elapsed / stability) ** FSRS_DECAY

    def _round_interval(self, interval_raw: float) -> int:
        days = math.floor(interval_raw + 0.5)
        return max(self.params.minimum_interval, min(days, self.params.maximum_interval))


def _clamp_difficulty(value: float) -> float:
    return min(max(value, DIFFICULTY_MIN), DIFFICULTY_MAX)


_default_model = PerformanceModel()


def update_performance(
    prior: ReviewState,
    grade: Grade,
    now: datetime,
    params: SchedulerParameters | None = None,
) -> ReviewedState:
    """Functional entry point using the default (or given) coefficients."""
    model = PerformanceModel(params) if params else _default_model
    return model.update(prior, grade, now)
