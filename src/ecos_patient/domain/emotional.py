"""Modelos do estado emocional do paciente virtual.

EmotionalState é imutável na prática: o engine sempre devolve uma nova
instância a cada transição, nunca altera a recebida.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

# Quantidade máxima de eventos retidos por estado
TRIGGER_EVENTS_MAX: int = 10

# Teto de cada fator da análise de resposta
FACTOR_CEILING: int = 25


class TriggerEvent(BaseModel):
    """Causa registrada de uma transição (timestamp, descrição, delta)."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    cause: str
    delta: int


class EmotionalState(BaseModel):
    """Nível de agitação corrente e trilha das últimas transições."""

    model_config = ConfigDict(frozen=True)

    agitation_level: int = 0
    last_update: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    trigger_events: tuple[TriggerEvent, ...] = ()
    enabled: bool = True


class ResponseFactors(BaseModel):
    """Os quatro sub-scores da análise, cada um em [0, 25]."""

    model_config = ConfigDict(frozen=True)

    empathy: int = Field(default=0, ge=0, le=FACTOR_CEILING)
    appropriate_questions: int = Field(default=0, ge=0, le=FACTOR_CEILING)
    reassurance: int = Field(default=0, ge=0, le=FACTOR_CEILING)
    judgment_avoidance: int = Field(default=FACTOR_CEILING, ge=0, le=FACTOR_CEILING)

    @property
    def total(self) -> int:
        return (
            self.empathy
            + self.appropriate_questions
            + self.reassurance
            + self.judgment_avoidance
        )


class ResponseAnalysis(BaseModel):
    """Resultado de `EmotionalStateEngine.analyze` para uma mensagem."""

    model_config = ConfigDict(frozen=True)

    factors: ResponseFactors
    score: int = Field(ge=0, le=4 * FACTOR_CEILING)
    is_adaptive: bool
    agitation_change: int
    triggers: tuple[str, ...] = ()
