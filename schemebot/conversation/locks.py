"""Per-session asyncio.Lock registry.

A session is only mutated while its lock is held; different sessions never
contend.
"""

from __future__ import annotations

import asyncio
import uuid


class SessionLocks:
    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

    def get(self, session_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def discard(self, session_id: uuid.UUID) -> bool:
        return self._locks.pop(session_id, None) is not None

    def is_locked(self, session_id: uuid.UUID) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)
