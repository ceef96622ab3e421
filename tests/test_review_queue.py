"""Tests for ReviewQueue ordering and lazy removal."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from schemebot.review.queue import ReviewQueue

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class TestReviewQueue:
    def test_empty_pop(self) -> None:
        assert ReviewQueue().pop() is None

    def test_highest_priority_first(self) -> None:
        queue = ReviewQueue()
        low, high = uuid.uuid4(), uuid.uuid4()
        queue.push(low, 5, T0)
        queue.push(high, 40, T0 + timedelta(minutes=1))
        assert queue.pop() == high
        assert queue.pop() == low

    def test_ties_go_to_oldest(self) -> None:
        queue = ReviewQueue()
        newer, older = uuid.uuid4(), uuid.uuid4()
        queue.push(newer, 10, T0 + timedelta(minutes=5))
        queue.push(older, 10, T0)
        assert [queue.pop(), queue.pop()] == [older, newer]

    def test_same_time_ties_go_to_insertion_order(self) -> None:
        queue = ReviewQueue()
        ids = [uuid.uuid4() for _ in range(3)]
        for case_id in ids:
            queue.push(case_id, 10, T0)
        assert [queue.pop() for _ in ids] == ids

    def test_remove(self) -> None:
        queue = ReviewQueue()
        a, b = uuid.uuid4(), uuid.uuid4()
        queue.push(a, 50, T0)
        queue.push(b, 10, T0)

        assert queue.remove(a) is True
        assert queue.remove(a) is False
        assert a not in queue
        assert len(queue) == 1
        assert queue.pop() == b
        assert queue.pop() is None

    def test_push_again_reprioritises(self) -> None:
        queue = ReviewQueue()
        a, b = uuid.uuid4(), uuid.uuid4()
        queue.push(a, 50, T0)
        queue.push(b, 10, T0)
        queue.push(a, 1, T0)

        assert len(queue) == 2
        assert queue.pop() == b
        assert queue.pop() == a
        assert queue.pop() is None
