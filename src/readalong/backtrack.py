# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Auto-backtrack: detect when alignment has drifted and roll it back.

The controller scores the most recent decisions. Correct decisions are cheap,
skips cost more, substitutions the most, and runs of three or more
consecutive mistakes are penalized progressively. When the score for a full
window exceeds the threshold, the reading position is rolled back to just
after the last decision that was correct.
"""

import logging
import math
from dataclasses import dataclass

from .decision_buffer import DecisionBuffer, DecisionRecord

logger = logging.getLogger(__name__)

OUTCOME_COST: dict[str, float] = {
    "correct": 0.1,
    "skipped": 0.5,
    "incorrect": 1.0,
}

# Consecutive non-correct decisions before the run penalty applies
RUN_PENALTY_START: int = 3
RUN_PENALTY_PER_STEP: float = 0.5

# Words kept before the rollback target when resetting statuses
RESET_LEAD: int = 2

MIN_MANUAL_RECORDS: int = 4


@dataclass
class RollbackPlan:
    """Where to roll back to and which tokens to reset."""
    target_index: int
    reset_start: int
    reset_end: int  # inclusive
    cost: float = 0.0


def drift_cost(records: list[DecisionRecord]) -> float:
    """Score a chronological list of decisions; higher means more drift."""
    cost: float = 0.0
    run: int = 0
    for record in records:
        cost += OUTCOME_COST.get(record.outcome, 0.0)
        if record.outcome == "correct":
            run = 0
            continue
        run += 1
        if run >= RUN_PENALTY_START:
            cost += run * RUN_PENALTY_PER_STEP
    return cost


def _rollback_target(records: list[DecisionRecord]) -> int:
    """The most recent correct decision's token, else the oldest decision's."""
    for record in reversed(records):
        if record.outcome == "correct":
            return record.token_index
    return records[0].token_index


class BacktrackController:
    """Decides when (and how far) to roll back the reading position."""

    def __init__(self, window: int = 8, threshold: float = 2.0) -> None:
        self.window: int = 8
        self.threshold: float = 2.0
        self.configure(window=window, threshold=threshold)

    def configure(self, window: object = None, threshold: object = None) -> None:
        """Update settings.

        ``window`` is floored and clamped to 4..20; ``threshold`` is accepted
        only when finite and positive. Anything else is ignored.
        """
        if _is_finite(window):
            self.window = max(4, min(20, math.floor(window)))  # type: ignore[arg-type]
        if _is_finite(threshold) and threshold > 0:  # type: ignore[operator]
            self.threshold = float(threshold)  # type: ignore[arg-type]

    def evaluate(self, buffer: DecisionBuffer, pointer: int, token_count: int) -> RollbackPlan | None:
        """
        Check the last ``window`` decisions for drift.

        Args:
            buffer: Decision history
            pointer: Current reading position (token index)
            token_count: Number of tokens in the reference

        Returns:
            A plan when the window is full and its cost exceeds the threshold
        """
        if buffer.count < self.window:
            return None

        records: list[DecisionRecord] = buffer.get_recent(self.window)
        cost: float = drift_cost(records)
        if cost <= self.threshold:
            return None

        plan = self._plan(records, pointer, token_count, cost)
        logger.info(
            "Drift cost %.2f > %.2f: rolling back to %d (reset %d..%d)",
            cost, self.threshold, plan.target_index, plan.reset_start, plan.reset_end
        )
        return plan

    def plan_manual(self, buffer: DecisionBuffer, pointer: int, token_count: int) -> RollbackPlan | None:
        """Plan a user-requested rollback, skipping the cost test.

        Needs at least four decisions in the buffer.
        """
        if buffer.count < MIN_MANUAL_RECORDS:
            return None
        records: list[DecisionRecord] = buffer.get_recent(min(self.window, buffer.count))
        plan = self._plan(records, pointer, token_count, drift_cost(records))
        logger.info("Manual rollback to %d (reset %d..%d)",
                    plan.target_index, plan.reset_start, plan.reset_end)
        return plan

    @staticmethod
    def _plan(records: list[DecisionRecord], pointer: int, token_count: int, cost: float) -> RollbackPlan:
        target: int = _rollback_target(records)
        return RollbackPlan(
            target_index=target,
            reset_start=max(0, target - RESET_LEAD),
            reset_end=min(pointer, token_count - 1),
            cost=cost
        )


def _is_finite(value: object) -> bool:
    return (isinstance(value, (int, float))
            and not isinstance(value, bool)
            and math.isfinite(value))
