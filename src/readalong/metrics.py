# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Reading progress metrics.
"""

from dataclasses import dataclass

from .tokenizer import ReferenceToken


@dataclass
class ReadingMetrics:
    """Progress summary for a reading session.

    ``wpm`` counts correct words per minute; ``wpm`` and ``accuracy`` are
    None until they are defined (no time elapsed, nothing decided).
    """
    total: int
    completed: int
    correct: int
    incorrect: int
    skipped: int
    wpm: float | None
    accuracy: float | None
    elapsed_sec: float

    def to_dict(self) -> dict[str, int | float | None]:
        """Convert to a JSON-friendly dict."""
        return {
            "total": self.total,
            "completed": self.completed,
            "correct": self.correct,
            "incorrect": self.incorrect,
            "skipped": self.skipped,
            "wpm": self.wpm,
            "accuracy": self.accuracy,
            "elapsed_sec": self.elapsed_sec,
        }


def compute_metrics(
    tokens: list[ReferenceToken],
    started_at: float | None,
    now: float
) -> ReadingMetrics:
    """
    Count word statuses and derive speed and accuracy.

    Args:
        tokens: Reference tokens
        started_at: Session start time in seconds, or None if not started
        now: Current time in seconds

    Returns:
        ReadingMetrics for the tokens
    """
    words: list[ReferenceToken] = [t for t in tokens if t.is_word]
    correct: int = sum(1 for t in words if t.status == "correct")
    incorrect: int = sum(1 for t in words if t.status == "incorrect")
    skipped: int = sum(1 for t in words if t.status == "skipped")
    completed: int = correct + incorrect + skipped

    elapsed_sec: float = max(0.0, now - started_at) if started_at is not None else 0.0
    elapsed_min: float = elapsed_sec / 60

    return ReadingMetrics(
        total=len(words),
        completed=completed,
        correct=correct,
        incorrect=incorrect,
        skipped=skipped,
        wpm=correct / elapsed_min if elapsed_min > 0 else None,
        accuracy=correct / completed if completed > 0 else None,
        elapsed_sec=elapsed_sec
    )
