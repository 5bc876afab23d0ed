"""Rotas HTTP do simulador de paciente (turnos, status e leitura de registros)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ecos_patient.api.dependencies import get_gateway, get_orchestrator, get_settings
from ecos_patient.application.orchestrator import SessionOrchestrator
from ecos_patient.application.persistence_gateway import PersistenceGateway, WriteResult
from ecos_patient.config.settings import Settings
from ecos_patient.domain.errors import InvalidSessionTransition, TurnValidationError
from ecos_patient.observability.logging import get_logger, short_id
from ecos_patient.observability.middleware import get_correlation_id

logger = get_logger(__name__)

router = APIRouter()


class TurnPayload(BaseModel):
    participant_id: str
    scenario_id: int
    text: str


class TurnResponse(BaseModel):
    reply: str
    addressing: str
    emotional_summary: str | None = None
    used_fallback: bool = False
    correlation_id: str = ""


class EvaluationPayload(BaseModel):
    participant_id: str
    scenario_id: int
    scores: dict[str, float] = Field(default_factory=dict)
    global_score: float = 0.0
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class WriteResponse(BaseModel):
    committed: bool
    is_fallback: bool
    record: dict[str, Any]


def _write_response(result: WriteResult) -> WriteResponse:
    return WriteResponse(
        committed=result.committed,
        is_fallback=not result.committed,
        record=result.record,
    )


def _conflict(session_id: str, exc: InvalidSessionTransition) -> HTTPException:
    logger.info(
        "Rejected session transition",
        extra={"session_id": short_id(session_id), "reason": str(exc)},
    )
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": "invalid_session_transition", "reason": str(exc)},
    )


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Healthcheck simples para Cloud Run."""
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


@router.get("/sessions/stats")
def session_stats(
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return orchestrator.stats()


@router.post("/sessions/reconcile")
async def reconcile_fallbacks(
    gateway: PersistenceGateway = Depends(get_gateway),
) -> dict[str, int]:
    """Reenvia ao store remoto os registros que só existem no espelho local."""
    reconciled = await gateway.reconcile()
    return {"reconciled": reconciled, "pending": len(gateway.pending_fallbacks())}


@router.post("/sessions/{session_id}/turns", response_model=TurnResponse)
async def post_turn(
    session_id: str,
    payload: TurnPayload,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> TurnResponse:
    """Processa uma fala do participante e devolve a fala do paciente."""
    try:
        result = await orchestrator.handle_turn(
            session_id, payload.participant_id, payload.scenario_id, payload.text
        )
    except TurnValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_turn", "field": exc.field, "reason": str(exc)},
        ) from exc
    except InvalidSessionTransition as exc:
        raise _conflict(session_id, exc) from exc

    return TurnResponse(
        reply=result.reply,
        addressing=result.addressing,
        emotional_summary=result.emotional_summary,
        used_fallback=result.used_fallback,
        correlation_id=get_correlation_id(),
    )


@router.post("/sessions/{session_id}/complete", response_model=WriteResponse)
async def complete_session(
    session_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> WriteResponse:
    try:
        result = await orchestrator.complete_session(session_id)
    except InvalidSessionTransition as exc:
        raise _conflict(session_id, exc) from exc
    return _write_response(result)


@router.post("/sessions/{session_id}/cancel", response_model=WriteResponse)
async def cancel_session(
    session_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> WriteResponse:
    try:
        result = await orchestrator.cancel_session(session_id)
    except InvalidSessionTransition as exc:
        raise _conflict(session_id, exc) from exc
    return _write_response(result)


@router.post("/sessions/{session_id}/evaluation", response_model=WriteResponse)
async def post_evaluation(
    session_id: str,
    payload: EvaluationPayload,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> WriteResponse:
    result = await orchestrator.record_evaluation(
        session_id,
        payload.participant_id,
        payload.scenario_id,
        scores=payload.scores,
        global_score=payload.global_score,
        strengths=payload.strengths,
        weaknesses=payload.weaknesses,
        recommendations=payload.recommendations,
    )
    return _write_response(result)


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> dict[str, Any]:
    record = await gateway.get_session(session_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="session_not_found")
    return record


@router.get("/sessions/{session_id}/exchanges")
async def get_exchanges(
    session_id: str,
    limit: int | None = Query(None, ge=1, le=500),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> list[dict[str, Any]]:
    return await gateway.get_exchanges(session_id, limit)


@router.get("/sessions/{session_id}/evaluation")
async def get_evaluation(
    session_id: str,
    gateway: PersistenceGateway = Depends(get_gateway),
) -> dict[str, Any]:
    record = await gateway.get_evaluation(session_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="evaluation_not_found"
        )
    return record


@router.delete("/sessions/{session_id}")
def clear_session(
    session_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> dict[str, bool]:
    """Remove a sessão do cache; registros remotos permanecem."""
    return {"cleared": orchestrator.clear_session(session_id)}
