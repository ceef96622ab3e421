"""Scheme Rule Store — versioned, append-only scheme rules.

Each scheme id owns an append-only list of SchemeVersions plus a pointer to
the active one. Readers never take a lock: a write builds a new list and
swaps it in. Writers serialize per scheme id only.

Every version read emits exactly one SCHEME_VERSION_READ event.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from schemebot.errors import ConflictError, NotFoundError
from schemebot.events import emit
from schemebot.rules.validation import find_conflicts, validate_rules
from schemebot.schemas.events import EventType, SystemEvent
from schemebot.schemas.rules import SchemeRules, SchemeVersion

if TYPE_CHECKING:
    from schemebot.rules.repository import SchemeVersionRepository

logger = logging.getLogger(__name__)


class SchemeRuleStore:
    """In-memory versioned rule store with optional SQL write-through."""

    def __init__(
        self,
        repository: SchemeVersionRepository | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log: dict[str, list[SchemeVersion]] = {}
        self._current: dict[str, int] = {}
        self._write_locks: dict[str, asyncio.Lock] = {}

    # ── Reads ────────────────────────────────────────────────────────

    async def get_current_version(self, scheme_id: str, session_id: uuid.UUID | None = None) -> SchemeVersion:
        """Return the active version of a scheme.

        Raises:
            NotFoundError: the scheme is unknown or has no active version.
        """
        current = self._current.get(scheme_id)
        if current is None:
            msg = f"No active version for scheme '{scheme_id}'"
            raise NotFoundError(msg)
        version = self._log[scheme_id][current - 1]
        await self._audit_read(version, session_id)
        return version

    async def get_version(
        self, scheme_id: str, version_number: int, session_id: uuid.UUID | None = None
    ) -> SchemeVersion:
        """Return a specific (possibly inactive) version for audit."""
        version = self._lookup(scheme_id, version_number)
        if version is None:
            msg = f"Scheme '{scheme_id}' has no version {version_number}"
            raise NotFoundError(msg)
        await self._audit_read(version, session_id)
        return version

    async def list_active_schemes(self) -> list[SchemeVersion]:
        """Active versions of every scheme, ordered by scheme id."""
        active = [self._log[sid][num - 1] for sid, num in sorted(self._current.items())]
        for version in active:
            await self._audit_read(version, None)
        return active

    async def list_versions(self, scheme_id: str) -> list[SchemeVersion]:
        """Full version history of one scheme, oldest first."""
        history = self._log.get(scheme_id)
        if not history:
            msg = f"Unknown scheme '{scheme_id}'"
            raise NotFoundError(msg)
        for version in history:
            await self._audit_read(version, None)
        return list(history)

    def active_scheme_ids(self) -> list[str]:
        return sorted(self._current)

    def known_scheme_ids(self) -> list[str]:
        """Every scheme with at least one version, retired ones included."""
        return sorted(self._log)

    def is_tracked(self, version: SchemeVersion) -> bool:
        """True only for versions that were issued by this store."""
        stored = self._lookup(version.scheme_id, version.version)
        if stored is None:
            return False
        return (
            stored.created_at == version.created_at
            and stored.criteria == version.criteria
            and stored.exclusions == version.exclusions
        )

    # ── Writes ───────────────────────────────────────────────────────

    async def put_new_version(
        self,
        scheme_id: str,
        rules: SchemeRules,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> SchemeVersion:
        """Validate rules and publish them as version = previous max + 1.

        Args:
            scheme_id: Scheme to publish under (created on first publish).
            rules: The new rules.
            expected_version: Optional optimistic check against the latest version number
                (0 for a new scheme).
            actor_id: Maintainer publishing the rules, for the audit trail.

        Raises:
            MalformedRuleError: the rules failed validation.
            ConflictError: `expected_version` is stale, or another writer already
                persisted this version number.
        """
        validate_rules(rules)
        conflicts = find_conflicts(rules)

        async with self._lock_for(scheme_id):
            history = self._log.get(scheme_id, [])
            latest = history[-1].version if history else 0
            if expected_version is not None and expected_version != latest:
                msg = f"Scheme '{scheme_id}' is at version {latest}, expected {expected_version}"
                raise ConflictError(msg)

            superseded = self._current.get(scheme_id)
            new_version = SchemeVersion(
                scheme_id=scheme_id,
                version=latest + 1,
                name=rules.name,
                criteria=rules.criteria,
                exclusions=rules.exclusions,
                required_documents=rules.required_documents,
                is_active=True,
                created_at=self._clock(),
                conflicts=tuple(conflicts),
            )

            if self._repository is not None:
                await self._repository.append(new_version, superseded)

            updated = [
                v.model_copy(update={"is_active": False}) if v.version == superseded else v
                for v in history
            ]
            updated.append(new_version)
            self._log[scheme_id] = updated
            self._current[scheme_id] = new_version.version

        if conflicts:
            logger.warning(
                "Scheme %s v%d published with %d rule conflict(s): %s",
                scheme_id,
                new_version.version,
                len(conflicts),
                conflicts,
            )
        logger.info("Published scheme %s v%d", scheme_id, new_version.version)

        await emit(SystemEvent(
            event_type=EventType.SCHEME_VERSION_CREATED,
            scheme_id=scheme_id,
            version_number=new_version.version,
            actor_id=actor_id,
            data={"criteria": len(rules.criteria), "exclusions": len(rules.exclusions), "conflicts": conflicts},
            source_module="rules.store",
        ))
        return new_version

    async def retire_scheme(self, scheme_id: str, actor_id: str | None = None) -> SchemeVersion:
        """Deactivate a scheme's current version; history stays queryable."""
        async with self._lock_for(scheme_id):
            current = self._current.get(scheme_id)
            if current is None:
                msg = f"No active version for scheme '{scheme_id}'"
                raise NotFoundError(msg)
            if self._repository is not None:
                await self._repository.deactivate(scheme_id, current)
            history = self._log[scheme_id]
            retired = history[current - 1].model_copy(update={"is_active": False})
            self._log[scheme_id] = [retired if v.version == current else v for v in history]
            del self._current[scheme_id]

        await emit(SystemEvent(
            event_type=EventType.SCHEME_RETIRED,
            scheme_id=scheme_id,
            version_number=current,
            actor_id=actor_id,
            source_module="rules.store",
        ))
        logger.info("Retired scheme %s (last version %d)", scheme_id, current)
        return retired

    async def hydrate(self) -> int:
        """Load persisted versions from the repository. Returns the number loaded."""
        if self._repository is None:
            return 0
        versions = await self._repository.load_all()
        for version in versions:
            self._load(version)
        logger.info("Hydrated %d scheme versions across %d schemes", len(versions), len(self._log))
        return len(versions)

    # ── Internals ────────────────────────────────────────────────────

    def _load(self, version: SchemeVersion) -> None:
        history = self._log.setdefault(version.scheme_id, [])
        if version.version != len(history) + 1:
            msg = f"Gap in version history of '{version.scheme_id}' at v{version.version}"
            raise ConflictError(msg)
        history.append(version)
        if version.is_active:
            self._current[version.scheme_id] = version.version

    def _lookup(self, scheme_id: str, version_number: int) -> SchemeVersion | None:
        history = self._log.get(scheme_id, [])
        if 1 <= version_number <= len(history):
            return history[version_number - 1]
        return None

    def _lock_for(self, scheme_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(scheme_id)
        if lock is None:
            lock = self._write_locks[scheme_id] = asyncio.Lock()
        return lock

    async def _audit_read(self, version: SchemeVersion, session_id: uuid.UUID | None) -> None:
        await emit(SystemEvent(
            event_type=EventType.SCHEME_VERSION_READ,
            session_id=session_id,
            scheme_id=version.scheme_id,
            version_number=version.version,
            source_module="rules.store",
        ))
