"""Modelos de domínio da conversa e dos registros persistidos."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from ecos_patient.domain.emotional import EmotionalState
from ecos_patient.domain.enums import MessageRole, ParticipantRole, SessionStatus


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class ConversationMessage(BaseModel):
    """Uma fala da conversa; a ordem de inserção é significativa."""

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TopicSummary(BaseModel):
    """Tópicos extraídos das falas do participante."""

    symptoms_discussed: list[str] = Field(default_factory=list)
    questions_asked: list[str] = Field(default_factory=list)


class SessionRecord(BaseModel):
    """Sessão de simulação como gravada no store remoto (tabela sessions)."""

    session_id: str
    participant_id: str
    scenario_id: int
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        """Serializa para as colunas do store remoto."""
        return {
            "session_id": self.session_id,
            "student_email": self.participant_id,
            "scenario_id": self.scenario_id,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


class EvaluationRecord(BaseModel):
    """Avaliação final de uma sessão (tabela evaluations)."""

    session_id: str
    participant_id: str
    scenario_id: int
    scores: dict[str, float] = Field(default_factory=dict)
    global_score: float = 0.0
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    evaluated_at: datetime = Field(default_factory=_utcnow)

    def to_row(self) -> dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "student_email": self.participant_id,
            "scores": self.scores,
            "global_score": self.global_score,
            "strengths": self.strengths,
            "weaknesses": self.weaknesses,
            "recommendations": self.recommendations,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass(slots=True)
class PersistedRecord:
    """Espelho local da última escrita tentada para uma chave.

    is_fallback=False: confirmado no store remoto.
    is_fallback=True: existe apenas em memória (perdido em restart).
    """

    data: dict[str, Any]
    is_fallback: bool
    attempted_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict[str, Any]:
        return {**self.data, "is_fallback": self.is_fallback}


@dataclass(slots=True)
class SessionEntry:
    """Estado em cache de uma sessão ativa (memória curta do paciente)."""

    session_id: str
    participant_id: str
    scenario_id: int
    last_activity: float
    participant_role: ParticipantRole = ParticipantRole.INFIRMIER
    persona: str | None = None
    history: list[ConversationMessage] = field(default_factory=list)
    topics: TopicSummary = field(default_factory=TopicSummary)
    emotional_state: EmotionalState | None = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ConversationContext:
    """Resumo legível da conversa usado na montagem do prompt."""

    history_text: str = ""
    role: ParticipantRole = ParticipantRole.INFIRMIER
    topics_text: str = ""
    emotional_state: EmotionalState | None = None


@dataclass(slots=True)
class CacheStats:
    """Métricas do cache para monitoração."""

    active_sessions: int
    total_messages: int
    oldest_activity: float | None
