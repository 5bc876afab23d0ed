"""Testes do SessionOrchestrator (turno completo, fallbacks, ciclo de vida)."""

from __future__ import annotations

import asyncio

import pytest

from ecos_patient.application.conversation_cache import ConversationCache
from ecos_patient.application.emotional_engine import EmotionalStateEngine
from ecos_patient.application.orchestrator import (
    FALLBACK_REPLY,
    SessionOrchestrator,
    fallback_reply,
)
from ecos_patient.application.persistence_gateway import PersistenceGateway
from ecos_patient.domain.enums import SessionStatus
from ecos_patient.domain.errors import (
    GenerationError,
    InvalidSessionTransition,
    RecordStoreError,
    TurnValidationError,
)
from ecos_patient.domain.protocols import ScenarioRepositoryProtocol, TextGeneratorProtocol
from ecos_patient.domain.scenario import AgitationThresholds, EmotionalProfile, ScenarioConfig
from ecos_patient.infra.record_store_memory import InMemoryRecordStore
from ecos_patient.infra.scenario_repository import StaticScenarioRepository

SESSION = "0b5e7d3c-orchestrator"
EMAIL = "etudiant@example.com"
PSYCHIATRIC = 4
ABDOMINAL = 5

EMPATHIC_QUESTION = "Je comprends que c'est difficile, entendez-vous des voix actuellement?"


class EchoGenerator(TextGeneratorProtocol):
    """Registra as chamadas e responde com um texto fixo."""

    def __init__(self, reply: str = "Je ne vous fais pas confiance.") -> None:
        self.reply = reply
        self.calls: list[tuple[str, list[dict[str, str]], str]] = []

    async def generate(self, system_prompt, history, user_text) -> str:
        self.calls.append((system_prompt, list(history), user_text))
        return self.reply


class FailingGenerator(TextGeneratorProtocol):
    async def generate(self, system_prompt, history, user_text) -> str:
        raise GenerationError("model unavailable")


class SlowGenerator(TextGeneratorProtocol):
    def __init__(self, delay: float) -> None:
        self.delay = delay

    async def generate(self, system_prompt, history, user_text) -> str:
        await asyncio.sleep(self.delay)
        return "trop tard"


class ConcurrencyTracker(TextGeneratorProtocol):
    """Mede quantas gerações estão em andamento ao mesmo tempo."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, system_prompt, history, user_text) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.02)
        self.in_flight -= 1
        return "..."


class BrokenScenarios(ScenarioRepositoryProtocol):
    async def get(self, scenario_id: int) -> ScenarioConfig | None:
        raise RecordStoreError("scenarios table unavailable")


class MalformedScenarios(ScenarioRepositoryProtocol):
    async def get(self, scenario_id: int) -> ScenarioConfig | None:
        profile = EmotionalProfile(
            initial_level=30,
            thresholds=AgitationThresholds(calm=80, nervous=60, agitated=40, aggressive=100),
        )
        return ScenarioConfig(scenario_id=scenario_id, emotional_profile=profile)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_first_turn_returns_reply_and_emotional_summary(
        self, make_orchestrator, record_store
    ):
        generator = EchoGenerator()
        orchestrator = make_orchestrator(generator=generator)

        result = await orchestrator.handle_turn(SESSION, EMAIL, PSYCHIATRIC, EMPATHIC_QUESTION)
        await orchestrator.drain()

        assert result.reply == "Je ne vous fais pas confiance."
        assert result.addressing == "infirmier"
        assert result.emotional_summary == "CALME (22/100)"
        assert result.used_fallback is False

        sessions = record_store.rows("sessions")
        assert len(sessions) == 1
        assert sessions[0]["status"] == "active"
        assert [row["role"] for row in record_store.rows("exchanges")] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_opening_line_seeds_generator_history(self, make_orchestrator):
        generator = EchoGenerator()
        orchestrator = make_orchestrator(generator=generator)

        await orchestrator.handle_turn(SESSION, EMAIL, PSYCHIATRIC, "Bonjour")

        system_prompt, history, user_text = generator.calls[0]
        assert history[0]["role"] == "assistant"
        assert history[0]["content"].startswith("Qu'est-ce que vous me voulez")
        assert user_text == "Bonjour"
        assert "ÉTAT ÉMOTIONNEL ACTUEL" in system_prompt

    @pytest.mark.asyncio
    async def test_history_accumulates_across_turns(self, make_orchestrator):
        generator = EchoGenerator()
        orchestrator = make_orchestrator(generator=generator)

        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour, où avez-vous mal ?")
        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Depuis quand ?")

        _, history, _ = generator.calls[1]
        assert [m["role"] for m in history] == ["user", "assistant"]
        entry = orchestrator.cache.get_entry(SESSION)
        assert len(entry.history) == 4

    @pytest.mark.asyncio
    async def test_untracked_scenario_has_no_summary(self, make_orchestrator):
        orchestrator = make_orchestrator()

        result = await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

        assert result.emotional_summary is None
        assert orchestrator.cache.get_emotional_state(SESSION) is None

    @pytest.mark.asyncio
    async def test_declared_doctor_is_addressed_as_docteur(self, make_orchestrator):
        generator = EchoGenerator()
        orchestrator = make_orchestrator(generator=generator)

        result = await orchestrator.handle_turn(
            SESSION, EMAIL, ABDOMINAL, "Bonjour, je suis le docteur Martin"
        )

        assert result.addressing == "docteur"
        assert "Adresse-toi au docteur" in generator.calls[0][0]

    @pytest.mark.asyncio
    async def test_invalidating_turn_raises_agitation(self, make_orchestrator):
        orchestrator = make_orchestrator()

        result = await orchestrator.handle_turn(
            SESSION, EMAIL, PSYCHIATRIC, "Calmez-vous, vous imaginez tout ça"
        )

        assert result.emotional_summary == "NERVEUX (50/100)"
        assert orchestrator.cache.get_emotional_state(SESSION).agitation_level == 50


class TestFallbacks:
    @pytest.mark.asyncio
    async def test_generator_error_returns_fallback_reply(self, make_orchestrator, record_store):
        orchestrator = make_orchestrator(generator=FailingGenerator())

        result = await orchestrator.handle_turn(SESSION, EMAIL, PSYCHIATRIC, EMPATHIC_QUESTION)
        await orchestrator.drain()

        assert result.used_fallback is True
        assert result.reply == fallback_reply("infirmier")
        assert result.emotional_summary == "CALME (22/100)"
        assert len(record_store.rows("exchanges")) == 2

    @pytest.mark.asyncio
    async def test_generator_timeout_returns_fallback_reply(self, make_orchestrator):
        orchestrator = make_orchestrator(
            generator=SlowGenerator(delay=1.0), generation_timeout_seconds=0.05
        )

        result = await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

        assert result.used_fallback is True
        assert result.reply.startswith("Excusez-moi infirmier")

    @pytest.mark.asyncio
    async def test_empty_generation_uses_fallback(self, make_orchestrator):
        orchestrator = make_orchestrator(generator=EchoGenerator(reply="   "))

        result = await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

        assert result.used_fallback is True

    @pytest.mark.asyncio
    async def test_scenario_lookup_failure_disables_tracking(self, make_orchestrator):
        orchestrator = make_orchestrator(scenarios=BrokenScenarios())

        result = await orchestrator.handle_turn(SESSION, EMAIL, PSYCHIATRIC, "Bonjour")

        assert result.used_fallback is False
        assert result.emotional_summary is None

    @pytest.mark.asyncio
    async def test_unexpected_error_still_returns_well_formed_reply(self, make_orchestrator):
        orchestrator = make_orchestrator(scenarios=MalformedScenarios())

        result = await orchestrator.handle_turn(SESSION, EMAIL, PSYCHIATRIC, "Bonjour")

        assert result.used_fallback is True
        assert result.reply == FALLBACK_REPLY.format(addressing="infirmier")

    @pytest.mark.asyncio
    async def test_store_outage_does_not_affect_reply(self, make_orchestrator, record_store):
        record_store.fail_with = RecordStoreError("store down")
        orchestrator = make_orchestrator(generator=EchoGenerator())

        result = await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.drain()

        assert result.used_fallback is False
        assert result.reply == "Je ne vous fais pas confiance."
        assert len(orchestrator.gateway.pending_fallbacks()) == 3


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("session_id", "participant_id", "text", "field"),
        [
            (SESSION, EMAIL, "", "text"),
            (SESSION, EMAIL, "   ", "text"),
            (SESSION, EMAIL, "x" * 501, "text"),
            (SESSION, "", "Bonjour", "participant_id"),
            ("", EMAIL, "Bonjour", "session_id"),
        ],
    )
    async def test_invalid_input_is_rejected_without_mutation(
        self, make_orchestrator, record_store, session_id, participant_id, text, field
    ):
        orchestrator = make_orchestrator()

        with pytest.raises(TurnValidationError) as exc_info:
            await orchestrator.handle_turn(session_id, participant_id, ABDOMINAL, text)

        assert exc_info.value.field == field
        assert len(orchestrator.cache) == 0
        assert record_store.calls == []

    @pytest.mark.asyncio
    async def test_custom_max_chars(self, make_orchestrator):
        orchestrator = make_orchestrator(max_turn_chars=10)

        with pytest.raises(TurnValidationError):
            await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour à vous")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_turn_after_completion_is_rejected(self, make_orchestrator, record_store):
        orchestrator = make_orchestrator()
        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

        result = await orchestrator.complete_session(SESSION)

        assert result.committed is True
        row = record_store.rows("sessions")[0]
        assert row["status"] == "completed"
        assert row["end_time"] is not None
        with pytest.raises(InvalidSessionTransition):
            await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Encore une question")

    @pytest.mark.asyncio
    async def test_complete_before_first_turn_is_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator()

        with pytest.raises(InvalidSessionTransition):
            await orchestrator.complete_session(SESSION)

    @pytest.mark.asyncio
    async def test_cancel_before_first_turn_creates_cancelled_session(
        self, make_orchestrator, record_store
    ):
        orchestrator = make_orchestrator()

        result = await orchestrator.cancel_session(SESSION)

        assert result.committed is True
        assert record_store.rows("sessions")[0]["status"] == "cancelled"
        with pytest.raises(InvalidSessionTransition):
            await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

    @pytest.mark.asyncio
    async def test_double_completion_is_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.complete_session(SESSION)

        with pytest.raises(InvalidSessionTransition):
            await orchestrator.cancel_session(SESSION)

    @pytest.mark.asyncio
    async def test_terminal_status_is_loaded_from_store(self, make_orchestrator, gateway):
        await gateway.create_session(SESSION, EMAIL, ABDOMINAL, status=SessionStatus.COMPLETED)
        orchestrator = make_orchestrator()

        with pytest.raises(InvalidSessionTransition):
            await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

    @pytest.mark.asyncio
    async def test_existing_active_session_is_not_recreated(
        self, make_orchestrator, gateway, record_store
    ):
        await gateway.create_session(SESSION, EMAIL, ABDOMINAL)
        orchestrator = make_orchestrator()

        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.drain()

        assert record_store.calls.count(("upsert", "sessions")) == 1
        assert len(record_store.rows("exchanges")) == 2

    @pytest.mark.asyncio
    async def test_cleared_session_continues_with_fresh_cache(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

        assert orchestrator.clear_session(SESSION) is True
        result = await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Vous êtes là ?")

        assert result.used_fallback is False
        assert len(orchestrator.cache.get_entry(SESSION).history) == 2

    @pytest.mark.asyncio
    async def test_record_evaluation(self, make_orchestrator, record_store):
        orchestrator = make_orchestrator()
        await orchestrator.handle_turn(SESSION, EMAIL, PSYCHIATRIC, "Bonjour")
        await orchestrator.complete_session(SESSION)

        result = await orchestrator.record_evaluation(
            SESSION, EMAIL, PSYCHIATRIC, scores={"empathie": 8.0}, global_score=8.0
        )

        assert result.committed is True
        assert record_store.rows("evaluations")[0]["global_score"] == 8.0


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_turns_of_same_session_are_serialized(self, make_orchestrator):
        tracker = ConcurrencyTracker()
        orchestrator = make_orchestrator(generator=tracker)

        await asyncio.gather(
            *(orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, f"q{i}") for i in range(3))
        )

        assert tracker.max_in_flight == 1
        assert len(orchestrator.cache.get_entry(SESSION).history) == 6

    @pytest.mark.asyncio
    async def test_different_sessions_run_concurrently(self, make_orchestrator):
        tracker = ConcurrencyTracker()
        orchestrator = make_orchestrator(generator=tracker)

        await asyncio.gather(
            orchestrator.handle_turn("session-a", EMAIL, ABDOMINAL, "Bonjour"),
            orchestrator.handle_turn("session-b", EMAIL, ABDOMINAL, "Bonjour"),
        )

        assert tracker.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_persistence_runs_in_background(self):
        store = InMemoryRecordStore(delay_seconds=0.05)
        orchestrator = SessionOrchestrator(
            cache=ConversationCache(),
            engine=EmotionalStateEngine(),
            gateway=PersistenceGateway(store, timeout_seconds=1.0),
            generator=EchoGenerator(),
            scenarios=StaticScenarioRepository(),
        )

        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

        assert orchestrator.stats()["in_flight_writes"] == 1
        assert store.rows("exchanges") == []

        await orchestrator.drain()

        assert orchestrator.stats()["in_flight_writes"] == 0
        assert len(store.rows("exchanges")) == 2

    @pytest.mark.asyncio
    async def test_blocking_persistence_mode(self, make_orchestrator, record_store):
        orchestrator = make_orchestrator(persist_in_background=False)

        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")

        assert len(record_store.rows("exchanges")) == 2


class TestIdleStatePruning:
    @pytest.mark.asyncio
    async def test_sweep_prunes_locks_and_lifecycle(self, make_orchestrator, clock):
        orchestrator = make_orchestrator(cache=ConversationCache(ttl_seconds=60, clock=clock))
        await orchestrator.handle_turn("session-a", EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.handle_turn("session-b", EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.cancel_session("session-c")
        await orchestrator.drain()
        clock.advance(30)
        await orchestrator.handle_turn("session-b", EMAIL, ABDOMINAL, "Vous êtes là ?")
        await orchestrator.drain()
        clock.advance(45)

        orchestrator.cache.sweep_expired()

        assert set(orchestrator._lifecycle) == {"session-b"}
        assert set(orchestrator._locks) == {"session-b"}

    @pytest.mark.asyncio
    async def test_pruned_session_state_is_reloaded_from_gateway(
        self, make_orchestrator, clock
    ):
        orchestrator = make_orchestrator(cache=ConversationCache(ttl_seconds=60, clock=clock))
        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.complete_session(SESSION)
        clock.advance(61)

        orchestrator.cache.sweep_expired()

        assert SESSION not in orchestrator._lifecycle
        with pytest.raises(InvalidSessionTransition):
            await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Encore une question")

    @pytest.mark.asyncio
    async def test_clear_session_drops_local_state(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.drain()

        orchestrator.clear_session(SESSION)

        assert SESSION not in orchestrator._lifecycle
        assert SESSION not in orchestrator._locks


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_aggregate_cache_and_gateway(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.handle_turn(SESSION, EMAIL, ABDOMINAL, "Bonjour")
        await orchestrator.drain()

        stats = orchestrator.stats()

        assert stats["active_sessions"] == 1
        assert stats["total_messages"] == 2
        assert stats["committed_writes"] == 3
        assert stats["fallback_writes"] == 0
        assert stats["pending_fallbacks"] == 0
