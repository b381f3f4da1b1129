"""
Tests for the decision ring buffer.
"""

from readalong.decision_buffer import DecisionBuffer, DecisionRecord


def _record(index: int, outcome: str = "correct") -> DecisionRecord:
    return DecisionRecord(token_index=index, outcome=outcome, timestamp_ms=index * 100)  # type: ignore[arg-type]


class TestCapacity:
    """Tests for the fixed-capacity behaviour."""

    def test_count_capped_at_capacity(self) -> None:
        """Pushing more than capacity keeps only the newest records."""
        buffer = DecisionBuffer(capacity=5)
        for i in range(10):
            buffer.push(_record(i))

        assert buffer.count == 5
        assert len(buffer) == 5
        assert [r.token_index for r in buffer.get_recent(5)] == [5, 6, 7, 8, 9]

    def test_get_recent_is_chronological(self) -> None:
        """get_recent returns the last k records oldest first."""
        buffer = DecisionBuffer(capacity=4)
        for i in range(6):
            buffer.push(_record(i))

        assert [r.token_index for r in buffer.get_recent(2)] == [4, 5]
        assert [r.token_index for r in buffer] == [2, 3, 4, 5]

    def test_get_recent_more_than_count(self) -> None:
        """Asking for more records than stored returns them all."""
        buffer = DecisionBuffer(capacity=4)
        buffer.push(_record(1))
        assert [r.token_index for r in buffer.get_recent(10)] == [1]

    def test_get_recent_non_positive(self) -> None:
        """k <= 0 gives an empty list."""
        buffer = DecisionBuffer(capacity=4)
        buffer.push(_record(1))
        assert buffer.get_recent(0) == []
        assert buffer.get_recent(-3) == []

    def test_capacity_at_least_one(self) -> None:
        """A capacity below one is raised to one."""
        buffer = DecisionBuffer(capacity=0)
        buffer.push(_record(1))
        buffer.push(_record(2))
        assert buffer.capacity == 1
        assert [r.token_index for r in buffer] == [2]

    def test_clear(self) -> None:
        """clear() empties the buffer."""
        buffer = DecisionBuffer(capacity=3)
        for i in range(5):
            buffer.push(_record(i))
        buffer.clear()
        assert buffer.count == 0
        assert buffer.get_recent(3) == []
        assert buffer.undo_last() is None


class TestUndo:
    """Tests for undoing the most recent decision."""

    def test_undo_empty(self) -> None:
        """Undo on an empty buffer does nothing."""
        buffer = DecisionBuffer(capacity=3)
        assert buffer.undo_last() is None
        assert buffer.count == 0

    def test_push_undo_round_trip_not_full(self) -> None:
        """push then undo restores a partially filled buffer."""
        buffer = DecisionBuffer(capacity=5)
        for i in range(3):
            buffer.push(_record(i))
        before = list(buffer)

        buffer.push(_record(99, "incorrect"))
        removed = buffer.undo_last()

        assert removed is not None and removed.token_index == 99
        assert list(buffer) == before
        assert buffer.count == 3

    def test_push_undo_round_trip_wrapped(self) -> None:
        """push then undo restores a full, wrapped buffer including the evicted record."""
        buffer = DecisionBuffer(capacity=4)
        for i in range(7):
            buffer.push(_record(i))
        before = list(buffer)

        buffer.push(_record(99, "skipped"))
        assert [r.token_index for r in buffer] == [4, 5, 6, 99]

        removed = buffer.undo_last()
        assert removed is not None and removed.token_index == 99
        assert list(buffer) == before
        assert buffer.count == 4

    def test_multiple_undos_after_wrap(self) -> None:
        """Several pushes undone in reverse order restore the original."""
        buffer = DecisionBuffer(capacity=3)
        for i in range(3):
            buffer.push(_record(i))
        before = list(buffer)

        buffer.push(_record(10))
        buffer.push(_record(11))
        buffer.undo_last()
        buffer.undo_last()

        assert list(buffer) == before

    def test_undo_then_push(self) -> None:
        """The buffer keeps working normally after an undo."""
        buffer = DecisionBuffer(capacity=3)
        for i in range(4):
            buffer.push(_record(i))
        buffer.undo_last()
        buffer.push(_record(20))
        assert [r.token_index for r in buffer] == [1, 2, 20]

    def test_undo_until_empty(self) -> None:
        """Undoing every push empties the buffer."""
        buffer = DecisionBuffer(capacity=3)
        buffer.push(_record(1))
        buffer.push(_record(2))
        buffer.undo_last()
        buffer.undo_last()
        assert buffer.count == 0
        buffer.push(_record(3))
        assert [r.token_index for r in buffer] == [3]
