"""Configuração de cenário: persona, perfil emocional e regras de pontuação.

O mapeamento categoria → diretiva comportamental é dado (por cenário),
não lógica: o engine apenas escolhe o template da categoria corrente.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from ecos_patient.domain.enums import EmotionalCategory
from ecos_patient.domain.errors import ScenarioConfigError


class AgitationThresholds(BaseModel):
    """Limites superiores (inclusivos) de cada categoria, em ordem crescente."""

    model_config = ConfigDict(frozen=True)

    calm: int
    nervous: int
    agitated: int
    aggressive: int

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.calm, self.nervous, self.agitated, self.aggressive)


class EmotionalProfile(BaseModel):
    """Parâmetros de rastreamento emocional de um cenário."""

    model_config = ConfigDict(frozen=True)

    initial_level: int
    min_level: int = 0
    max_level: int = 100
    thresholds: AgitationThresholds
    directives: dict[EmotionalCategory, str] = Field(default_factory=dict)

    def check(self) -> None:
        """Valida invariantes do perfil.

        Raises:
            ScenarioConfigError: limites fora de ordem ou nível inicial fora do intervalo
        """
        if self.min_level > self.max_level:
            raise ScenarioConfigError(
                f"min_level ({self.min_level}) maior que max_level ({self.max_level})"
            )
        if not self.min_level <= self.initial_level <= self.max_level:
            raise ScenarioConfigError(
                f"initial_level {self.initial_level} fora de "
                f"[{self.min_level}, {self.max_level}]"
            )
        bounds = self.thresholds.as_tuple()
        if any(lower >= upper for lower, upper in zip(bounds, bounds[1:], strict=False)):
            raise ScenarioConfigError(f"thresholds devem ser estritamente crescentes: {bounds}")
        if bounds[0] < self.min_level:
            raise ScenarioConfigError("threshold calm abaixo de min_level")
        if EmotionalCategory.DISABLED in self.directives:
            raise ScenarioConfigError("categoria disabled não aceita diretiva")


class ScoringRules(BaseModel):
    """Marcadores e pesos usados por `EmotionalStateEngine.analyze`.

    Cada marcador encontrado soma o incremento da categoria (teto 25);
    frases invalidantes subtraem `judgment_penalty` de 25 (piso 0).
    """

    model_config = ConfigDict(frozen=True)

    empathy_markers: tuple[str, ...] = (
        "je comprends",
        "c'est difficile",
        "je vous écoute",
        "ça doit être",
        "je suis là",
        "prenez votre temps",
        "comment vous sentez",
        "je vous crois",
        "c'est important",
    )
    question_markers: tuple[str, ...] = (
        "entendez-vous",
        "quelles voix",
        "depuis quand",
        "que ressentez",
        "comment vous sentez",
        "qui vous surveille",
        "parlez-moi de",
        "qu'est-ce qui vous inquiète",
        "traitement",
        "médicaments",
        "famille",
    )
    reassurance_markers: tuple[str, ...] = (
        "vous êtes en sécurité",
        "nous sommes là pour vous aider",
        "je ne vais pas vous faire de mal",
        "tout va bien",
        "on va vous aider",
        "vous n'êtes pas seul",
        "nous allons trouver une solution",
    )
    judgmental_phrases: tuple[str, ...] = (
        "c'est dans votre tête",
        "ce n'est pas réel",
        "arrêtez de",
        "calmez-vous",
        "vous imaginez",
        "ce n'est pas vrai",
        "vous délirez",
        "soyez raisonnable",
        "vous exagérez",
    )
    empathy_increment: int = 10
    question_increment: int = 10
    reassurance_increment: int = 10
    judgment_penalty: int = 10

    # Gatilhos graves: palavra inteira → delta extra de agitação
    trigger_words: dict[str, int] = Field(default_factory=lambda: {"fou": 10, "folle": 10})
    # "calme" sem "je vais" soa como ordem ("calmez-vous") → +5
    calm_order_word: str = "calme"
    calm_order_exemption: str = "je vais"
    calm_order_penalty: int = 5


class ScenarioConfig(BaseModel):
    """Configuração somente-leitura de um cenário (lookup por id)."""

    model_config = ConfigDict(frozen=True)

    scenario_id: int
    title: str = ""
    persona: str | None = None
    opening_line: str | None = None
    emotional_profile: EmotionalProfile | None = None
    scoring: ScoringRules | None = None

    @property
    def tracks_emotions(self) -> bool:
        return self.emotional_profile is not None
