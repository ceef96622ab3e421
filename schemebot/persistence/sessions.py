"""Session persistence — save, load and expire conversation state.

`RedisSessionStore` keeps one encrypted JSON payload per session plus a
sorted-set expiry index for the retention sweep. `InMemorySessionStore`
serializes the same way and can be switched off to simulate an outage.
Backend failures surface as InfrastructureError so callers can retry.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Protocol

import redis.asyncio as aioredis
from cryptography.exceptions import InvalidTag
from redis.exceptions import RedisError

from schemebot.config import settings
from schemebot.errors import InfrastructureError
from schemebot.schemas.conversation import ConversationState
from schemebot.security.encryption import PayloadCipher

logger = logging.getLogger(__name__)

EXPIRY_INDEX = "sessions:expiry"


def state_key(session_id: uuid.UUID) -> str:
    return f"session:{session_id}:state"


def expires_at(state: ConversationState, retention_days: int | None = None) -> datetime:
    """When a session becomes due for deletion.

    Abandoned sessions carry an explicit `deletion_due_at`; everything else
    expires `retention_days` after its last update.
    """
    if state.deletion_due_at is not None:
        return state.deletion_due_at
    days = settings.session_retention_days if retention_days is None else retention_days
    return state.updated_at + timedelta(days=days)


class SessionStore(Protocol):
    async def save(self, state: ConversationState) -> None: ...

    async def load(self, session_id: uuid.UUID) -> ConversationState | None: ...

    async def delete(self, session_id: uuid.UUID) -> bool: ...

    async def list_expired(self, now: datetime) -> list[uuid.UUID]: ...


class InMemorySessionStore:
    """Process-local store for tests and single-node development."""

    def __init__(self, retention_days: int | None = None) -> None:
        self._retention_days = retention_days
        self._payloads: dict[uuid.UUID, str] = {}
        self._expiry: dict[uuid.UUID, datetime] = {}
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise InfrastructureError("Session store unavailable")

    async def save(self, state: ConversationState) -> None:
        self._check()
        self._payloads[state.session_id] = state.model_dump_json()
        self._expiry[state.session_id] = expires_at(state, self._retention_days)

    async def load(self, session_id: uuid.UUID) -> ConversationState | None:
        self._check()
        raw = self._payloads.get(session_id)
        if raw is None:
            return None
        return ConversationState.model_validate_json(raw)

    async def delete(self, session_id: uuid.UUID) -> bool:
        self._check()
        self._expiry.pop(session_id, None)
        return self._payloads.pop(session_id, None) is not None

    async def list_expired(self, now: datetime) -> list[uuid.UUID]:
        self._check()
        due = [(when, sid) for sid, when in self._expiry.items() if when <= now]
        return [sid for _, sid in sorted(due)]

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._payloads


class RedisSessionStore:
    """Encrypted session state in Redis.

    Keys:
        session:{id}:state   base64 AES-GCM payload, session id as associated data
        sessions:expiry      sorted set of session ids scored by expiry timestamp
    """

    def __init__(
        self,
        client: aioredis.Redis,
        cipher: PayloadCipher,
        retention_days: int | None = None,
    ) -> None:
        self._redis = client
        self._cipher = cipher
        self._retention_days = retention_days

    async def save(self, state: ConversationState) -> None:
        sid = str(state.session_id)
        token = self._cipher.encrypt(state.model_dump_json(), associated_data=sid)
        due = expires_at(state, self._retention_days).timestamp()
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(state_key(state.session_id), token)
                pipe.zadd(EXPIRY_INDEX, {sid: due})
                await pipe.execute()
        except RedisError as exc:
            logger.warning("Redis save failed for session %s: %s", sid, exc)
            raise InfrastructureError("Session store unavailable") from exc

    async def load(self, session_id: uuid.UUID) -> ConversationState | None:
        try:
            token = await self._redis.get(state_key(session_id))
        except RedisError as exc:
            logger.warning("Redis load failed for session %s: %s", session_id, exc)
            raise InfrastructureError("Session store unavailable") from exc
        if token is None:
            return None
        try:
            raw = self._cipher.decrypt(token, associated_data=str(session_id))
        except (InvalidTag, ValueError) as exc:
            logger.error("Stored state for session %s failed decryption", session_id)
            raise InfrastructureError("Stored session state is unreadable") from exc
        return ConversationState.model_validate_json(raw)

    async def delete(self, session_id: uuid.UUID) -> bool:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(state_key(session_id))
                pipe.zrem(EXPIRY_INDEX, str(session_id))
                deleted, _ = await pipe.execute()
        except RedisError as exc:
            raise InfrastructureError("Session store unavailable") from exc
        return bool(deleted)

    async def list_expired(self, now: datetime) -> list[uuid.UUID]:
        try:
            members = await self._redis.zrangebyscore(EXPIRY_INDEX, "-inf", now.timestamp())
        except RedisError as exc:
            raise InfrastructureError("Session store unavailable") from exc
        return [uuid.UUID(m) for m in members]
