"""EmotionalStateEngine: pontuação de falas e transição do nível de agitação.

Componente puro: sem I/O e sem estado compartilhado. Recebe o estado
corrente e devolve um novo. O único colaborador injetável é o relógio
usado para carimbar eventos.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import UTC, datetime

from ecos_patient.domain.emotional import (
    FACTOR_CEILING,
    TRIGGER_EVENTS_MAX,
    EmotionalState,
    ResponseAnalysis,
    ResponseFactors,
    TriggerEvent,
)
from ecos_patient.domain.enums import EmotionalCategory
from ecos_patient.domain.scenario import EmotionalProfile, ScenarioConfig, ScoringRules

DEFAULT_MIN_LEVEL = 0
DEFAULT_MAX_LEVEL = 100
ADAPTIVE_THRESHOLD = 50

# (score mínimo, delta de agitação), avaliados em ordem
AGITATION_BANDS: tuple[tuple[int, int], ...] = (
    (75, -15),
    (50, -8),
    (25, 5),
    (0, 15),
)

# Rótulos curtos usados em summarize()
CATEGORY_LABELS: dict[EmotionalCategory, str] = {
    EmotionalCategory.CALM: "CALME",
    EmotionalCategory.NERVOUS: "NERVEUX",
    EmotionalCategory.AGITATED: "AGITÉ",
    EmotionalCategory.AGGRESSIVE: "AGRESSIF",
}

DEFAULT_SCORING = ScoringRules()


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def normalize_text(text: str) -> str:
    """Minúsculas e apóstrofos tipográficos convertidos para ``'``."""
    return text.lower().replace("’", "'").replace("‘", "'")


def _count_markers(text: str, markers: tuple[str, ...]) -> int:
    return sum(1 for marker in markers if marker in text)


def _band_delta(score: int) -> int:
    for floor, delta in AGITATION_BANDS:
        if score >= floor:
            return delta
    return AGITATION_BANDS[-1][1]


class EmotionalStateEngine:
    """Máquina de estados calm → nervous → agitated → aggressive.

    Não há estado terminal: a agitação evolui enquanto a sessão existir.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utcnow

    @staticmethod
    def _profile(scenario: ScenarioConfig | None) -> EmotionalProfile | None:
        if scenario is None or scenario.emotional_profile is None:
            return None
        profile = scenario.emotional_profile
        profile.check()
        return profile

    def is_enabled(self, scenario: ScenarioConfig | None) -> bool:
        return self._profile(scenario) is not None

    def initialize(self, scenario: ScenarioConfig | None) -> EmotionalState:
        """Estado inicial do cenário; sem perfil → estado neutro desabilitado.

        Raises:
            ScenarioConfigError: perfil emocional malformado
        """
        now = self._clock()
        profile = self._profile(scenario)
        if profile is None:
            return EmotionalState(agitation_level=0, last_update=now, enabled=False)

        return EmotionalState(
            agitation_level=profile.initial_level,
            last_update=now,
            trigger_events=(TriggerEvent(timestamp=now, cause="Initialisation", delta=0),),
        )

    def analyze(self, text: str, scenario: ScenarioConfig | None = None) -> ResponseAnalysis:
        """Pontua a fala do participante em quatro fatores e deriva o delta.

        Raises:
            ScenarioConfigError: perfil emocional malformado
        """
        self._profile(scenario)
        rules = (scenario.scoring if scenario and scenario.scoring else None) or DEFAULT_SCORING
        lowered = normalize_text(text)

        empathy = min(
            _count_markers(lowered, rules.empathy_markers) * rules.empathy_increment,
            FACTOR_CEILING,
        )
        questions = min(
            _count_markers(lowered, rules.question_markers) * rules.question_increment,
            FACTOR_CEILING,
        )
        reassurance = min(
            _count_markers(lowered, rules.reassurance_markers) * rules.reassurance_increment,
            FACTOR_CEILING,
        )
        penalty = _count_markers(lowered, rules.judgmental_phrases) * rules.judgment_penalty
        judgment_avoidance = max(0, FACTOR_CEILING - penalty)

        factors = ResponseFactors(
            empathy=empathy,
            appropriate_questions=questions,
            reassurance=reassurance,
            judgment_avoidance=judgment_avoidance,
        )
        score = factors.total
        change = _band_delta(score)

        triggers: list[str] = []
        for word, delta in rules.trigger_words.items():
            if re.search(rf"\b{re.escape(word)}\b", lowered):
                change += delta
                triggers.append(word)
        if rules.calm_order_word in lowered and rules.calm_order_exemption not in lowered:
            change += rules.calm_order_penalty
            triggers.append(rules.calm_order_word)

        return ResponseAnalysis(
            factors=factors,
            score=score,
            is_adaptive=score >= ADAPTIVE_THRESHOLD,
            agitation_change=change,
            triggers=tuple(triggers),
        )

    def transition(
        self,
        current: EmotionalState,
        analysis: ResponseAnalysis,
        scenario: ScenarioConfig | None = None,
    ) -> EmotionalState:
        """Aplica o delta com clamp em [min, max] e registra um evento."""
        profile = self._profile(scenario)
        low = profile.min_level if profile else DEFAULT_MIN_LEVEL
        high = profile.max_level if profile else DEFAULT_MAX_LEVEL

        level = max(low, min(high, current.agitation_level + analysis.agitation_change))
        if analysis.is_adaptive:
            cause = f"Réponse adaptée (score: {analysis.score}) - apaisement"
        else:
            cause = f"Réponse inadaptée (score: {analysis.score}) - agitation"

        now = self._clock()
        event = TriggerEvent(timestamp=now, cause=cause, delta=analysis.agitation_change)
        events = (*current.trigger_events, event)[-TRIGGER_EVENTS_MAX:]

        return EmotionalState(
            agitation_level=level,
            last_update=now,
            trigger_events=events,
            enabled=current.enabled,
        )

    def classify(self, level: int, scenario: ScenarioConfig | None = None) -> EmotionalCategory:
        profile = self._profile(scenario)
        if profile is None:
            return EmotionalCategory.DISABLED

        thresholds = profile.thresholds
        if level <= thresholds.calm:
            return EmotionalCategory.CALM
        if level <= thresholds.nervous:
            return EmotionalCategory.NERVOUS
        if level <= thresholds.agitated:
            return EmotionalCategory.AGITATED
        return EmotionalCategory.AGGRESSIVE

    def behavioral_directives(self, level: int, scenario: ScenarioConfig | None = None) -> str:
        """Texto de orientação para o prompt; vazio quando desabilitado."""
        category = self.classify(level, scenario)
        if category is EmotionalCategory.DISABLED or scenario is None:
            return ""
        profile = scenario.emotional_profile
        template = profile.directives.get(category, "") if profile else ""
        return template.replace("{level}", str(level))

    def summarize(self, state: EmotionalState, scenario: ScenarioConfig | None = None) -> str:
        """Resumo curto para logs, ex.: ``NERVEUX (45/100)``."""
        category = self.classify(state.agitation_level, scenario)
        if category is EmotionalCategory.DISABLED:
            return f"Agitation: {state.agitation_level}"
        profile = scenario.emotional_profile if scenario else None
        high = profile.max_level if profile else DEFAULT_MAX_LEVEL
        return f"{CATEGORY_LABELS[category]} ({state.agitation_level}/{high})"
