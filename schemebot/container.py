"""Component wiring.

`build_components()` with no arguments gives a fully in-memory system
(tests, local development). With a SQLAlchemy session factory and a Redis
client it wires the SQL repositories, the encrypted Redis session store and
the SQL audit trail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schemebot.conversation.engine import ConversationEngine
from schemebot.eligibility.service import EligibilityService
from schemebot.persistence.sessions import InMemorySessionStore, RedisSessionStore, SessionStore
from schemebot.review.gate import ReviewGate
from schemebot.review.repository import ReviewRepository
from schemebot.rules.repository import SchemeVersionRepository
from schemebot.rules.store import SchemeRuleStore
from schemebot.security.audit import AuditTrail, InMemoryAuditTrail, SqlAuditTrail
from schemebot.security.encryption import PayloadCipher, payload_cipher
from schemebot.security.erasure import ErasureProcessor

logger = logging.getLogger(__name__)


@dataclass
class Components:
    rules: SchemeRuleStore
    eligibility: EligibilityService
    gate: ReviewGate
    sessions: SessionStore
    engine: ConversationEngine
    erasure: ErasureProcessor
    audit: AuditTrail


def build_components(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    redis: aioredis.Redis | None = None,
    cipher: PayloadCipher | None = None,
) -> Components:
    """Wire the components; missing backends fall back to in-memory ones."""
    if session_factory is not None:
        rules = SchemeRuleStore(SchemeVersionRepository(session_factory))
        gate = ReviewGate(ReviewRepository(session_factory))
        audit: AuditTrail = SqlAuditTrail(session_factory)
    else:
        rules = SchemeRuleStore()
        gate = ReviewGate()
        audit = InMemoryAuditTrail()

    sessions: SessionStore
    if redis is not None:
        sessions = RedisSessionStore(redis, cipher or payload_cipher)
    else:
        sessions = InMemorySessionStore()

    eligibility = EligibilityService(rules)
    engine = ConversationEngine(sessions, rules, eligibility, gate)
    gate.set_resume_handler(engine.resume_after_review)
    erasure = ErasureProcessor(sessions, gate, engine)

    logger.info(
        "Components wired (sql=%s, redis=%s)",
        session_factory is not None,
        redis is not None,
    )
    return Components(
        rules=rules,
        eligibility=eligibility,
        gate=gate,
        sessions=sessions,
        engine=engine,
        erasure=erasure,
        audit=audit,
    )
