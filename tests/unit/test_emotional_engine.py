"""Testes do EmotionalStateEngine (pontuação, transição, categorias)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from ecos_patient.application.emotional_engine import EmotionalStateEngine, normalize_text
from ecos_patient.domain.emotional import TRIGGER_EVENTS_MAX, EmotionalState
from ecos_patient.domain.enums import EmotionalCategory
from ecos_patient.domain.errors import ScenarioConfigError
from ecos_patient.domain.scenario import AgitationThresholds, EmotionalProfile, ScenarioConfig
from ecos_patient.infra.scenario_catalog import (
    ABDOMINAL_PAIN_SCENARIO_ID,
    DEFAULT_SCENARIOS,
    PSYCHIATRIC_SCENARIO_ID,
)

PSY = DEFAULT_SCENARIOS[PSYCHIATRIC_SCENARIO_ID]
ABDO = DEFAULT_SCENARIOS[ABDOMINAL_PAIN_SCENARIO_ID]

EMPATHIC_QUESTION = "Je comprends que c'est difficile, entendez-vous des voix actuellement?"
INVALIDATING = "Calmez-vous, vous imaginez tout ça"
FULLY_ADAPTED = (
    "Je comprends, c'est difficile, je vous écoute. Depuis quand entendez-vous ces voix ? "
    "Votre famille est-elle au courant ? Vous êtes en sécurité ici."
)


@pytest.fixture()
def engine() -> EmotionalStateEngine:
    return EmotionalStateEngine()


def _state(level: int) -> EmotionalState:
    return EmotionalState(agitation_level=level)


class TestInitialize:
    def test_tracked_scenario_starts_at_profile_level(self, engine):
        state = engine.initialize(PSY)

        assert state.enabled is True
        assert state.agitation_level == 30
        assert len(state.trigger_events) == 1
        assert state.trigger_events[0].cause == "Initialisation"
        assert state.trigger_events[0].delta == 0

    def test_scenario_without_profile_is_disabled(self, engine):
        state = engine.initialize(ABDO)

        assert state.enabled is False
        assert state.agitation_level == 0
        assert state.trigger_events == ()
        assert engine.is_enabled(ABDO) is False
        assert engine.is_enabled(None) is False

    def test_uses_injected_clock(self):
        fixed = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        engine = EmotionalStateEngine(clock=lambda: fixed)

        state = engine.initialize(PSY)

        assert state.last_update == fixed
        assert state.trigger_events[0].timestamp == fixed


class TestAnalyze:
    def test_empathic_question_is_adaptive(self, engine):
        analysis = engine.analyze(EMPATHIC_QUESTION, PSY)

        assert analysis.factors.empathy == 20
        assert analysis.factors.appropriate_questions == 10
        assert analysis.factors.reassurance == 0
        assert analysis.factors.judgment_avoidance == 25
        assert analysis.score == 55
        assert analysis.is_adaptive is True
        assert analysis.agitation_change == -8

    def test_invalidating_message_raises_agitation(self, engine):
        analysis = engine.analyze(INVALIDATING, PSY)

        assert analysis.factors.judgment_avoidance == 5
        assert analysis.score == 5
        assert analysis.is_adaptive is False
        # +15 pela faixa de score, +5 pela ordem "calme"
        assert analysis.agitation_change == 20
        assert "calme" in analysis.triggers

    def test_high_score_calms_strongly(self, engine):
        analysis = engine.analyze(FULLY_ADAPTED, PSY)

        assert analysis.factors.empathy == 25
        assert analysis.factors.appropriate_questions == 25
        assert analysis.factors.reassurance == 10
        assert analysis.score == 85
        assert analysis.agitation_change == -15

    def test_typographic_apostrophe_is_normalized(self, engine):
        analysis = engine.analyze("Je comprends que c’est difficile", PSY)

        assert analysis.factors.empathy == 20
        assert normalize_text("C’est") == "c'est"

    def test_trigger_word_matches_whole_word_only(self, engine):
        insulted = engine.analyze("Vous êtes fou", PSY)
        harmless = engine.analyze("Je dois fouiller votre sac", PSY)

        assert "fou" in insulted.triggers
        assert insulted.agitation_change == harmless.agitation_change + 10
        assert harmless.triggers == ()

    def test_calm_with_je_vais_is_not_an_order(self, engine):
        analysis = engine.analyze("Je vais rester calme avec vous", PSY)

        assert "calme" not in analysis.triggers
        assert analysis.agitation_change == 5

    def test_factor_scores_are_capped(self, engine):
        text = " ".join(
            ["je comprends", "c'est difficile", "je vous écoute", "je suis là", "je vous crois"]
        )
        analysis = engine.analyze(text, PSY)

        assert analysis.factors.empathy == 25

    def test_judgment_avoidance_floors_at_zero(self, engine):
        text = (
            "Calmez-vous, vous imaginez, c'est dans votre tête, ce n'est pas réel, "
            "vous délirez, vous exagérez"
        )
        analysis = engine.analyze(text, PSY)

        assert analysis.factors.judgment_avoidance == 0

    def test_analyze_without_scenario_uses_default_rules(self, engine):
        analysis = engine.analyze(EMPATHIC_QUESTION)

        assert analysis.score == 55


class TestTransition:
    def test_adaptive_response_lowers_level(self, engine):
        current = engine.initialize(PSY)
        updated = engine.transition(current, engine.analyze(EMPATHIC_QUESTION, PSY), PSY)

        assert updated.agitation_level == 22
        assert updated.trigger_events[-1].cause == "Réponse adaptée (score: 55) - apaisement"
        assert updated.trigger_events[-1].delta == -8

    def test_inadequate_response_raises_level(self, engine):
        current = engine.initialize(PSY)
        updated = engine.transition(current, engine.analyze(INVALIDATING, PSY), PSY)

        assert updated.agitation_level == 50
        assert updated.trigger_events[-1].cause == "Réponse inadaptée (score: 5) - agitation"

    def test_level_is_clamped_to_profile_bounds(self, engine):
        high = engine.transition(_state(95), engine.analyze(INVALIDATING, PSY), PSY)
        low = engine.transition(_state(3), engine.analyze(FULLY_ADAPTED, PSY), PSY)

        assert high.agitation_level == 100
        assert low.agitation_level == 0

    def test_input_state_is_not_mutated(self, engine):
        current = engine.initialize(PSY)
        engine.transition(current, engine.analyze(INVALIDATING, PSY), PSY)

        assert current.agitation_level == 30
        assert len(current.trigger_events) == 1

    def test_trigger_events_keep_last_ten(self, engine):
        state = engine.initialize(PSY)
        analysis = engine.analyze(EMPATHIC_QUESTION, PSY)
        for _ in range(12):
            state = engine.transition(state, analysis, PSY)

        assert len(state.trigger_events) == TRIGGER_EVENTS_MAX
        assert all(event.cause != "Initialisation" for event in state.trigger_events)

    def test_last_update_advances(self):
        ticks = iter(datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=i) for i in range(5))
        engine = EmotionalStateEngine(clock=lambda: next(ticks))
        state = engine.initialize(PSY)

        updated = engine.transition(state, engine.analyze(INVALIDATING, PSY), PSY)

        assert updated.last_update > state.last_update


class TestClassification:
    @pytest.mark.parametrize(
        ("level", "expected"),
        [
            (0, EmotionalCategory.CALM),
            (30, EmotionalCategory.CALM),
            (31, EmotionalCategory.NERVOUS),
            (60, EmotionalCategory.NERVOUS),
            (61, EmotionalCategory.AGITATED),
            (80, EmotionalCategory.AGITATED),
            (81, EmotionalCategory.AGGRESSIVE),
            (100, EmotionalCategory.AGGRESSIVE),
        ],
    )
    def test_threshold_boundaries(self, engine, level, expected):
        assert engine.classify(level, PSY) is expected

    def test_untracked_scenario_is_disabled(self, engine):
        assert engine.classify(50, ABDO) is EmotionalCategory.DISABLED

    def test_directives_include_level(self, engine):
        directives = engine.behavioral_directives(45, PSY)

        assert "NERVEUX" in directives
        assert "(45/100)" in directives
        assert "{level}" not in directives

    def test_directives_empty_when_disabled(self, engine):
        assert engine.behavioral_directives(45, ABDO) == ""

    def test_summarize(self, engine):
        assert engine.summarize(_state(45), PSY) == "NERVEUX (45/100)"
        assert engine.summarize(_state(90), PSY) == "AGRESSIF (90/100)"
        assert engine.summarize(_state(0), ABDO) == "Agitation: 0"


class TestMalformedProfile:
    def _scenario(self, **profile_overrides) -> ScenarioConfig:
        profile = {
            "initial_level": 30,
            "thresholds": AgitationThresholds(calm=30, nervous=60, agitated=80, aggressive=100),
        }
        profile.update(profile_overrides)
        return ScenarioConfig(scenario_id=99, emotional_profile=EmotionalProfile(**profile))

    def test_non_ascending_thresholds_raise(self, engine):
        scenario = self._scenario(
            thresholds=AgitationThresholds(calm=60, nervous=30, agitated=80, aggressive=100)
        )

        with pytest.raises(ScenarioConfigError):
            engine.initialize(scenario)

    def test_initial_level_out_of_range_raises(self, engine):
        with pytest.raises(ScenarioConfigError):
            engine.initialize(self._scenario(initial_level=150))

    def test_min_above_max_raises(self, engine):
        with pytest.raises(ScenarioConfigError):
            engine.classify(10, self._scenario(min_level=50, max_level=20))

    def test_disabled_directive_raises(self, engine):
        scenario = self._scenario(directives={EmotionalCategory.DISABLED: "x"})

        with pytest.raises(ScenarioConfigError):
            engine.analyze("bonjour", scenario)
