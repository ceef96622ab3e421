"""FastAPI routers — sessions, human review and scheme maintenance.

Thin adapters over the components stored on `app.state.components`. Domain
errors are mapped to HTTP status codes by the handlers in schemebot.main.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field

from schemebot.container import Components
from schemebot.models.enums import DecisionKind
from schemebot.schemas.conversation import ConversationState, TurnOutcome, UtteranceEvent
from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.review import PendingCaseView, ReviewCase, ReviewDecision
from schemebot.schemas.rules import SchemeRules, SchemeVersion

logger = logging.getLogger(__name__)


def get_components(request: Request) -> Components:
    return request.app.state.components


# ── Request bodies ───────────────────────────────────────────────────


class StartSessionRequest(BaseModel):
    user_id: str
    language: str | None = None
    scheme_ids: list[str] | None = None


class EscalateRequest(BaseModel):
    reason: str = Field(min_length=1)


class DequeueRequest(BaseModel):
    reviewer_id: str


class DecisionRequest(BaseModel):
    reviewer_id: str
    kind: DecisionKind
    modified_results: list[EligibilityResult] = Field(default_factory=list)
    reasoning: str = ""


class PriorityRequest(BaseModel):
    priority: int = Field(ge=0)


class PublishRequest(BaseModel):
    rules: SchemeRules
    expected_version: int | None = None
    actor_id: str | None = None


# ── Sessions ─────────────────────────────────────────────────────────

sessions_router = APIRouter(prefix="/sessions", tags=["sessions"])


@sessions_router.post("", status_code=status.HTTP_201_CREATED)
async def start_session(
    body: StartSessionRequest,
    components: Components = Depends(get_components),
) -> TurnOutcome:
    _, outcome = await components.engine.start(body.user_id, body.language, body.scheme_ids)
    return outcome


@sessions_router.post("/{session_id}/utterances")
async def post_utterance(
    session_id: uuid.UUID,
    event: UtteranceEvent,
    components: Components = Depends(get_components),
) -> TurnOutcome:
    return await components.engine.advance(session_id, event)


@sessions_router.get("/{session_id}")
async def get_session_state(
    session_id: uuid.UUID,
    components: Components = Depends(get_components),
) -> ConversationState:
    """Full session state; the read is audited as personal-data access."""
    return await components.engine.restore(session_id)


@sessions_router.get("/{session_id}/summary")
async def get_summary(
    session_id: uuid.UUID,
    components: Components = Depends(get_components),
) -> dict[str, str]:
    return {"summary": await components.engine.summarize(session_id)}


@sessions_router.post("/{session_id}/escalate")
async def escalate_session(
    session_id: uuid.UUID,
    body: EscalateRequest,
    components: Components = Depends(get_components),
) -> TurnOutcome:
    return await components.engine.escalate(session_id, body.reason)


@sessions_router.post("/{session_id}/disconnect")
async def disconnect_session(
    session_id: uuid.UUID,
    components: Components = Depends(get_components),
) -> dict[str, bool]:
    return {"saved": await components.engine.disconnect(session_id)}


@sessions_router.post("/{session_id}/abandon")
async def abandon_session(
    session_id: uuid.UUID,
    components: Components = Depends(get_components),
) -> TurnOutcome:
    return await components.engine.abandon(session_id)


@sessions_router.delete("/{session_id}")
async def erase_session(
    session_id: uuid.UUID,
    components: Components = Depends(get_components),
) -> dict[str, Any]:
    result = await components.erasure.delete_session_data(session_id)
    return {
        "session_id": str(session_id),
        "deleted": result.deleted_anything,
        "review_cases": result.review_cases,
    }


# ── Review ───────────────────────────────────────────────────────────

review_router = APIRouter(prefix="/review", tags=["review"])


@review_router.get("/cases")
async def list_pending_cases(components: Components = Depends(get_components)) -> list[PendingCaseView]:
    return components.gate.pending_cases()


@review_router.post("/next", response_model=None)
async def take_next_case(
    body: DequeueRequest,
    components: Components = Depends(get_components),
) -> ReviewCase | Response:
    case = await components.gate.dequeue_next(body.reviewer_id)
    if case is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return case


@review_router.post("/cases/{case_id}/decision")
async def decide_case(
    case_id: uuid.UUID,
    body: DecisionRequest,
    components: Components = Depends(get_components),
) -> list[EligibilityResult]:
    decision = ReviewDecision(
        case_id=case_id,
        reviewer_id=body.reviewer_id,
        kind=body.kind,
        modified_results=tuple(body.modified_results),
        reasoning=body.reasoning,
    )
    return await components.gate.submit_decision(case_id, decision)


@review_router.post("/cases/{case_id}/priority")
async def reprioritize_case(
    case_id: uuid.UUID,
    body: PriorityRequest,
    components: Components = Depends(get_components),
) -> ReviewCase:
    return await components.gate.reprioritize(case_id, body.priority)


# ── Schemes ──────────────────────────────────────────────────────────

schemes_router = APIRouter(prefix="/schemes", tags=["schemes"])


@schemes_router.get("")
async def list_schemes(components: Components = Depends(get_components)) -> list[SchemeVersion]:
    return await components.rules.list_active_schemes()


@schemes_router.get("/{scheme_id}")
async def get_scheme(scheme_id: str, components: Components = Depends(get_components)) -> SchemeVersion:
    return await components.rules.get_current_version(scheme_id)


@schemes_router.get("/{scheme_id}/versions")
async def list_scheme_versions(
    scheme_id: str,
    components: Components = Depends(get_components),
) -> list[SchemeVersion]:
    return await components.rules.list_versions(scheme_id)


@schemes_router.get("/{scheme_id}/versions/{version}")
async def get_scheme_version(
    scheme_id: str,
    version: int,
    components: Components = Depends(get_components),
) -> SchemeVersion:
    return await components.rules.get_version(scheme_id, version)


@schemes_router.put("/{scheme_id}", status_code=status.HTTP_201_CREATED)
async def publish_scheme(
    scheme_id: str,
    body: PublishRequest,
    components: Components = Depends(get_components),
) -> SchemeVersion:
    return await components.rules.put_new_version(
        scheme_id, body.rules, expected_version=body.expected_version, actor_id=body.actor_id
    )


@schemes_router.delete("/{scheme_id}")
async def retire_scheme(
    scheme_id: str,
    components: Components = Depends(get_components),
) -> SchemeVersion:
    return await components.rules.retire_scheme(scheme_id)


ROUTERS = (sessions_router, review_router, schemes_router)
