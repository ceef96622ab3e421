"""Priority queue of review case ids.

Highest priority first; ties go to the earliest `queued_at`, then to
insertion order. Removal and re-prioritisation are lazy: superseded heap
entries are skipped on pop. Not thread- or task-safe on its own; the
ReviewGate serializes access.
"""

from __future__ import annotations

import heapq
import itertools
import uuid
from datetime import datetime

_Entry = tuple[int, datetime, int, uuid.UUID]


class ReviewQueue:
    def __init__(self) -> None:
        self._heap: list[_Entry] = []
        self._live: dict[uuid.UUID, _Entry] = {}
        self._seq = itertools.count()

    def push(self, case_id: uuid.UUID, priority: int, queued_at: datetime) -> None:
        """Add a case, or move it if it is already queued."""
        entry = (-priority, queued_at, next(self._seq), case_id)
        self._live[case_id] = entry
        heapq.heappush(self._heap, entry)

    def pop(self) -> uuid.UUID | None:
        while self._heap:
            entry = heapq.heappop(self._heap)
            case_id = entry[3]
            if self._live.get(case_id) is entry:
                del self._live[case_id]
                return case_id
        return None

    def remove(self, case_id: uuid.UUID) -> bool:
        return self._live.pop(case_id, None) is not None

    def __contains__(self, case_id: object) -> bool:
        return case_id in self._live

    def __len__(self) -> int:
        return len(self._live)
