"""SessionOrchestrator: sequencia cache, engine emocional, gerador e gateway por turno.

Fluxo de um turno:
1. Inicializa a entrada no cache (idempotente)
2. Inicializa o estado emocional quando o cenário rastreia emoções
3. Refina o papel do participante (tratamento infirmier/docteur)
4. Gera a fala do paciente (timeout; falha → fala de fallback)
5. Analisa a fala do participante e transiciona o estado emocional
6. Registra as duas falas no cache
7. Persiste a troca (em background, nunca bloqueia a resposta)
8. Retorna resposta, tratamento e resumo emocional

Turnos da mesma sessão são serializados por um lock por session_id.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ecos_patient.ai.prompts import build_system_prompt, opening_line
from ecos_patient.application.conversation_cache import ConversationCache
from ecos_patient.application.emotional_engine import EmotionalStateEngine
from ecos_patient.application.persistence_gateway import PersistenceGateway, WriteResult
from ecos_patient.domain.enums import MessageRole, SessionStatus
from ecos_patient.domain.errors import InvalidSessionTransition, TurnValidationError
from ecos_patient.domain.models import EvaluationRecord
from ecos_patient.domain.protocols import ScenarioRepositoryProtocol, TextGeneratorProtocol
from ecos_patient.domain.scenario import ScenarioConfig
from ecos_patient.domain.session import LifecycleEvent, LifecycleState, validate_transition
from ecos_patient.observability.logging import get_logger, log_fallback, short_id
from ecos_patient.observability.timing import timed

logger: logging.Logger = get_logger(__name__)

FALLBACK_REPLY = (
    "Excusez-moi {addressing}, pourriez-vous répéter votre question ? "
    "Je n'ai pas bien compris."
)

DEFAULT_MAX_TURN_CHARS = 500


@dataclass(slots=True)
class TurnRequest:
    session_id: str
    participant_id: str
    scenario_id: int
    text: str


@dataclass(slots=True)
class TurnResult:
    reply: str
    addressing: str
    emotional_summary: str | None = None
    used_fallback: bool = False


def fallback_reply(addressing: str) -> str:
    return FALLBACK_REPLY.format(addressing=addressing)


def validate_turn(request: TurnRequest, max_chars: int = DEFAULT_MAX_TURN_CHARS) -> None:
    """Rejeita entrada inválida antes de qualquer mutação.

    Raises:
        TurnValidationError: ids ausentes, texto vazio ou longo demais
    """
    if not request.session_id or not request.session_id.strip():
        raise TurnValidationError("session_id is required", field="session_id")
    if not request.participant_id or not request.participant_id.strip():
        raise TurnValidationError("participant_id is required", field="participant_id")
    if not request.text or not request.text.strip():
        raise TurnValidationError("text cannot be empty", field="text")
    if len(request.text) > max_chars:
        raise TurnValidationError(f"text is too long (max {max_chars} characters)", field="text")


class SessionOrchestrator:
    """Compõe os três serviços num turno de conversa."""

    def __init__(
        self,
        cache: ConversationCache,
        engine: EmotionalStateEngine,
        gateway: PersistenceGateway,
        generator: TextGeneratorProtocol,
        scenarios: ScenarioRepositoryProtocol,
        generation_timeout_seconds: float = 20.0,
        max_turn_chars: int = DEFAULT_MAX_TURN_CHARS,
        generation_history_messages: int = 8,
        persist_in_background: bool = True,
    ) -> None:
        self._cache = cache
        self._engine = engine
        self._gateway = gateway
        self._generator = generator
        self._scenarios = scenarios
        self._generation_timeout = generation_timeout_seconds
        self._max_turn_chars = max_turn_chars
        self._history_messages = generation_history_messages
        self._persist_in_background = persist_in_background
        self._locks: dict[str, asyncio.Lock] = {}
        self._lifecycle: dict[str, LifecycleState] = {}
        self._persist_tail: dict[str, asyncio.Task[Any]] = {}
        self._cache.add_eviction_listener(self._prune_idle_sessions)

    @property
    def cache(self) -> ConversationCache:
        return self._cache

    @property
    def gateway(self) -> PersistenceGateway:
        return self._gateway

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Turno
    # ------------------------------------------------------------------

    async def handle_turn(
        self,
        session_id: str,
        participant_id: str,
        scenario_id: int,
        text: str,
    ) -> TurnResult:
        """Processa um turno; sempre retorna uma resposta bem formada.

        Raises:
            TurnValidationError: entrada inválida (nada é alterado)
            InvalidSessionTransition: sessão já encerrada
        """
        validate_turn(
            TurnRequest(session_id, participant_id, scenario_id, text), self._max_turn_chars
        )

        async with self._lock_for(session_id):
            state = await self._current_state(session_id)
            if state is LifecycleState.UNINITIALIZED:
                event = LifecycleEvent.FIRST_TURN
            else:
                event = LifecycleEvent.TURN
            ok, next_state, reason = validate_transition(state, event)
            if not ok or next_state is None:
                raise InvalidSessionTransition(reason)

            try:
                return await self._run_turn(
                    session_id, participant_id, scenario_id, text, state, next_state
                )
            except Exception as e:
                addressing = self._cache.get_addressing(session_id)
                logger.error(
                    "Turn failed; returning fallback reply",
                    extra={
                        "session_id": short_id(session_id),
                        "scenario_id": scenario_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                log_fallback(logger, "turn", reason=type(e).__name__, session_id=session_id)
                return TurnResult(
                    reply=fallback_reply(addressing),
                    addressing=addressing,
                    used_fallback=True,
                )

    async def _run_turn(
        self,
        session_id: str,
        participant_id: str,
        scenario_id: int,
        text: str,
        state: LifecycleState,
        next_state: LifecycleState,
    ) -> TurnResult:
        scenario = await self._load_scenario(scenario_id)

        entry = self._cache.initialize(
            session_id,
            participant_id,
            scenario_id,
            persona=scenario.persona if scenario else None,
        )

        tracking = self._engine.is_enabled(scenario)
        if tracking and entry.emotional_state is None:
            self._cache.update_emotional_state(session_id, self._engine.initialize(scenario))

        self._cache.update_role(session_id, text)
        addressing = self._cache.get_addressing(session_id)

        reply, used_fallback = await self._generate_reply(session_id, scenario, addressing, text)

        summary: str | None = None
        current = self._cache.get_emotional_state(session_id)
        if tracking and current is not None:
            analysis = self._engine.analyze(text, scenario)
            updated = self._engine.transition(current, analysis, scenario)
            self._cache.update_emotional_state(session_id, updated)
            summary = self._engine.summarize(updated, scenario)
            logger.info(
                "Emotional state updated",
                extra={
                    "session_id": short_id(session_id),
                    "emotional_summary": summary,
                    "adaptive": analysis.is_adaptive,
                    "score": analysis.score,
                    "agitation_change": analysis.agitation_change,
                },
            )

        self._cache.append_message(session_id, MessageRole.PARTICIPANT, text)
        self._cache.append_message(session_id, MessageRole.ACTOR, reply)

        self._lifecycle[session_id] = next_state
        create = state is LifecycleState.UNINITIALIZED

        async def persist() -> list[WriteResult]:
            return await self._persist_exchange(
                session_id, participant_id, scenario_id, text, reply, create
            )

        task = self._schedule_persist(session_id, persist)
        if not self._persist_in_background:
            await task

        return TurnResult(
            reply=reply,
            addressing=addressing,
            emotional_summary=summary,
            used_fallback=used_fallback,
        )

    async def _load_scenario(self, scenario_id: int) -> ScenarioConfig | None:
        """Configuração ausente ou indisponível → rastreamento desabilitado."""
        try:
            return await self._scenarios.get(scenario_id)
        except Exception as e:
            logger.warning(
                "Scenario lookup failed; using defaults",
                extra={"scenario_id": scenario_id, "error": str(e)},
            )
            return None

    async def _generate_reply(
        self,
        session_id: str,
        scenario: ScenarioConfig | None,
        addressing: str,
        text: str,
    ) -> tuple[str, bool]:
        context = self._cache.get_context(session_id)
        directives = ""
        if context.emotional_state is not None:
            directives = self._engine.behavioral_directives(
                context.emotional_state.agitation_level, scenario
            )
        system_prompt = build_system_prompt(
            scenario.persona if scenario else None, context, addressing, directives
        )
        history = self._cache.get_messages(session_id, self._history_messages)
        if not history:
            history = [
                {
                    "role": "assistant",
                    "content": opening_line(scenario.opening_line if scenario else None),
                }
            ]

        start = time.perf_counter()
        try:
            with timed(
                "actor_generation",
                warn_after_ms=self._generation_timeout * 1000 / 2,
                session_id=short_id(session_id),
            ):
                reply = await asyncio.wait_for(
                    self._generator.generate(system_prompt, history, text),
                    self._generation_timeout,
                )
        except Exception as e:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            reason = "timeout" if isinstance(e, TimeoutError) else type(e).__name__
            log_fallback(
                logger, "generation", reason=reason, elapsed_ms=elapsed_ms, session_id=session_id
            )
            return fallback_reply(addressing), True

        if not reply or not reply.strip():
            log_fallback(logger, "generation", reason="empty_reply", session_id=session_id)
            return fallback_reply(addressing), True
        return reply, False

    # ------------------------------------------------------------------
    # Persistência (fire-and-continue, ordenada por sessão)
    # ------------------------------------------------------------------

    def _schedule_persist(
        self, session_id: str, job: Callable[[], Awaitable[Any]]
    ) -> asyncio.Task[Any]:
        previous = self._persist_tail.get(session_id)

        async def run() -> Any:
            if previous is not None:
                with contextlib.suppress(Exception):
                    await previous
            return await job()

        task = asyncio.create_task(run())
        self._persist_tail[session_id] = task
        task.add_done_callback(lambda t: self._on_persist_done(session_id, t))
        return task

    def _on_persist_done(self, session_id: str, task: asyncio.Task[Any]) -> None:
        if self._persist_tail.get(session_id) is task:
            del self._persist_tail[session_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Background persistence failed",
                extra={"session_id": short_id(session_id), "error": str(task.exception())},
            )

    async def _persist_exchange(
        self,
        session_id: str,
        participant_id: str,
        scenario_id: int,
        question: str,
        reply: str,
        create_session: bool,
    ) -> list[WriteResult]:
        results: list[WriteResult] = []
        if create_session:
            results.append(
                await self._gateway.create_session(session_id, participant_id, scenario_id)
            )
        metadata = {"scenario_id": scenario_id, "source": "patient_simulator"}
        for role, text in ((MessageRole.PARTICIPANT, question), (MessageRole.ACTOR, reply)):
            results.append(await self._gateway.store_exchange(session_id, role, text, metadata))
        if not all(r.committed for r in results):
            logger.warning(
                "Exchange persisted only in fallback mirror",
                extra={
                    "session_id": short_id(session_id),
                    "fallback_writes": sum(1 for r in results if not r.committed),
                },
            )
        return results

    async def drain(self) -> None:
        """Aguarda todas as escritas em background."""
        while self._persist_tail:
            await asyncio.gather(*list(self._persist_tail.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.drain()

    # ------------------------------------------------------------------
    # Ciclo de vida da sessão
    # ------------------------------------------------------------------

    async def _current_state(self, session_id: str) -> LifecycleState:
        state = self._lifecycle.get(session_id)
        if state is not None:
            return state
        existing = await self._gateway.get_session(session_id)
        state = LifecycleState.from_status(existing.get("status") if existing else None)
        self._lifecycle[session_id] = state
        return state

    async def _change_status(self, session_id: str, event: LifecycleEvent) -> WriteResult:
        async with self._lock_for(session_id):
            state = await self._current_state(session_id)
            ok, next_state, reason = validate_transition(state, event)
            if not ok or next_state is None:
                raise InvalidSessionTransition(reason)

            status = SessionStatus(next_state.value)
            entry = self._cache.get_entry(session_id)

            async def persist() -> WriteResult:
                if state is LifecycleState.UNINITIALIZED:
                    # Cancelada antes do primeiro turno: cria já no status final
                    return await self._gateway.create_session(
                        session_id,
                        entry.participant_id if entry else "",
                        entry.scenario_id if entry else 0,
                        status=status,
                    )
                return await self._gateway.update_session_status(session_id, status)

            self._lifecycle[session_id] = next_state
            # Aguarda as escritas pendentes da sessão antes da mudança de status
            result = await self._schedule_persist(session_id, persist)
            logger.info(
                "Session status changed",
                extra={
                    "session_id": short_id(session_id),
                    "from_state": state.value,
                    "to_state": next_state.value,
                    "committed": result.committed,
                },
            )
            return result

    async def complete_session(self, session_id: str) -> WriteResult:
        """Marca a sessão como concluída (end_time registrado).

        Raises:
            InvalidSessionTransition: sessão não iniciada ou já encerrada
        """
        return await self._change_status(session_id, LifecycleEvent.COMPLETE)

    async def cancel_session(self, session_id: str) -> WriteResult:
        return await self._change_status(session_id, LifecycleEvent.CANCEL)

    async def record_evaluation(
        self,
        session_id: str,
        participant_id: str,
        scenario_id: int,
        scores: dict[str, float],
        global_score: float,
        strengths: list[str] | None = None,
        weaknesses: list[str] | None = None,
        recommendations: list[str] | None = None,
    ) -> WriteResult:
        evaluation = EvaluationRecord(
            session_id=session_id,
            participant_id=participant_id,
            scenario_id=scenario_id,
            scores=scores,
            global_score=global_score,
            strengths=strengths or [],
            weaknesses=weaknesses or [],
            recommendations=recommendations or [],
        )

        async def persist() -> WriteResult:
            return await self._gateway.store_evaluation(evaluation)

        return await self._schedule_persist(session_id, persist)

    def clear_session(self, session_id: str) -> bool:
        """Remove a sessão do cache (o registro remoto permanece)."""
        removed = self._cache.clear(session_id)
        self._forget(session_id)
        return removed

    def _forget(self, session_id: str) -> bool:
        """Descarta lock e estado de ciclo de vida de uma sessão ociosa.

        O estado volta a ser lido do gateway no próximo acesso.
        """
        lock = self._locks.get(session_id)
        if (lock is not None and lock.locked()) or session_id in self._persist_tail:
            return False
        self._locks.pop(session_id, None)
        self._lifecycle.pop(session_id, None)
        return True

    def _prune_idle_sessions(self, evicted: list[str]) -> None:
        """Listener do cache: ids fora do cache perdem lock e estado local."""
        candidates = [
            sid for sid in self._locks.keys() | self._lifecycle.keys() if sid not in self._cache
        ]
        pruned = sum(1 for sid in candidates if self._forget(sid))
        if pruned:
            logger.debug(
                "Idle session state pruned",
                extra={"pruned": pruned, "tracked": len(self._lifecycle)},
            )

    def stats(self) -> dict[str, Any]:
        cache_stats = self._cache.stats()
        gateway_stats = self._gateway.stats()
        return {
            "active_sessions": cache_stats.active_sessions,
            "total_messages": cache_stats.total_messages,
            "committed_writes": gateway_stats.committed_writes,
            "fallback_writes": gateway_stats.fallback_writes,
            "reconciled_writes": gateway_stats.reconciled_writes,
            "pending_fallbacks": gateway_stats.pending_fallbacks,
            "in_flight_writes": len(self._persist_tail),
        }
