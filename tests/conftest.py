"""
Shared fixtures for readalong tests.
"""

import pytest

from readalong.hooks import SessionHooks


class RecordingHooks(SessionHooks):
    """Hooks that record every notification in order."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def status_changed(self, token_index: int, status: str) -> None:
        self.events.append(("status", token_index, status))

    def pointer_moved(self, token_index: int) -> None:
        self.events.append(("pointer", token_index))

    def annotation_changed(self, token_index: int, text: str) -> None:
        self.events.append(("annotation", token_index, text))

    def rolled_back(self, start_index: int, end_index: int) -> None:
        self.events.append(("rollback", start_index, end_index))

    def of_type(self, kind: str) -> list[tuple]:
        """Events of one kind, without the kind tag."""
        return [e[1:] for e in self.events if e[0] == kind]


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now: float = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def hooks() -> RecordingHooks:
    """A fresh recording hooks object."""
    return RecordingHooks()


@pytest.fixture
def clock() -> FakeClock:
    """A manually advanced clock."""
    return FakeClock()
