# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Fixed-capacity history of recent alignment decisions.

The buffer keeps the last ``capacity`` decisions, overwriting the oldest once
full. The most recent push can be undone (manual "go back one word"), and the
undo restores whatever that push overwrote, so a push followed by an undo
leaves the buffer exactly as it was.
"""

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Literal

Outcome = Literal["correct", "incorrect", "skipped"]


@dataclass(frozen=True)
class DecisionRecord:
    """One alignment decision about a reference token."""
    token_index: int
    outcome: Outcome
    timestamp_ms: int
    expected: str = ""
    heard: str = ""
    automatic: bool = True  # False for manual marks


class DecisionBuffer:
    """
    Circular buffer of DecisionRecords.

    Slots are a fixed list; ``_head`` points at the logically-oldest record
    and ``_count`` is the number of live records.
    """

    def __init__(self, capacity: int = 20) -> None:
        self.capacity: int = max(1, int(capacity))
        self._slots: list[DecisionRecord | None] = [None] * self.capacity
        self._head: int = 0
        self._count: int = 0
        # One entry per push: the record it overwrote, or None
        self._evicted: deque[DecisionRecord | None] = deque(maxlen=self.capacity)

    @property
    def count(self) -> int:
        """Number of records currently stored."""
        return self._count

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[DecisionRecord]:
        return iter(self.get_recent(self._count))

    def push(self, record: DecisionRecord) -> None:
        """Append a record, overwriting the oldest one when full."""
        if self._count < self.capacity:
            self._slots[(self._head + self._count) % self.capacity] = record
            self._count += 1
            self._evicted.append(None)
        else:
            self._evicted.append(self._slots[self._head])
            self._slots[self._head] = record
            self._head = (self._head + 1) % self.capacity

    def get_recent(self, k: int) -> list[DecisionRecord]:
        """Return the last ``min(k, count)`` records, oldest first."""
        k = min(k, self._count)
        if k <= 0:
            return []
        start: int = (self._head + self._count - k) % self.capacity
        records: list[DecisionRecord] = []
        for i in range(k):
            record = self._slots[(start + i) % self.capacity]
            assert record is not None
            records.append(record)
        return records

    def undo_last(self) -> DecisionRecord | None:
        """Remove and return the most recent record (None when empty)."""
        if self._count == 0:
            return None

        tail: int = (self._head + self._count - 1) % self.capacity
        removed: DecisionRecord | None = self._slots[tail]
        evicted: DecisionRecord | None = self._evicted.pop() if self._evicted else None

        if evicted is not None:
            # The push wrapped: put the overwritten record back and make it
            # the oldest again
            self._slots[tail] = evicted
            self._head = tail
        else:
            self._slots[tail] = None
            self._count -= 1
            if self._count == 0:
                self._head = 0

        return removed

    def clear(self) -> None:
        """Drop every record."""
        self._slots = [None] * self.capacity
        self._head = 0
        self._count = 0
        self._evicted.clear()
