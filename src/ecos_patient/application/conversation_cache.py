"""ConversationCache: memória curta das sessões ativas (processo único).

Responsabilidades:
- Histórico limitado por sessão (FIFO, padrão 20 mensagens)
- Papel declarado do participante e forma de tratamento
- Tópicos extraídos das falas do participante
- Estado emocional corrente
- Remoção por inatividade (TTL) em varredura periódica

Lookups de sessão desconhecida retornam vazio em vez de lançar exceção.
Todas as operações são síncronas: dentro de um event loop asyncio não há
ponto de suspensão entre o lookup e a criação da entrada em initialize(),
logo duas inicializações concorrentes resultam na mesma entrada.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from typing import Any

from ecos_patient.domain.emotional import EmotionalState
from ecos_patient.domain.enums import MessageRole, ParticipantRole
from ecos_patient.domain.models import (
    CacheStats,
    ConversationContext,
    ConversationMessage,
    SessionEntry,
)
from ecos_patient.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

SYMPTOM_KEYWORDS: tuple[str, ...] = (
    "douleur",
    "mal",
    "symptôme",
    "fièvre",
    "nausée",
    "fatigue",
    "toux",
)
QUESTION_PREFIXES: tuple[str, ...] = ("comment", "pourquoi")
QUESTION_PREVIEW_CHARS = 50

TRANSCRIPT_LABELS: dict[MessageRole, str] = {
    MessageRole.PARTICIPANT: "Étudiant",
    MessageRole.ACTOR: "Patient",
}
CHAT_ROLES: dict[MessageRole, str] = {
    MessageRole.PARTICIPANT: "user",
    MessageRole.ACTOR: "assistant",
}


class ConversationCache:
    """Mapa em memória session_id → SessionEntry com varredura por TTL."""

    def __init__(
        self,
        history_max_messages: int = 20,
        context_window_messages: int = 10,
        ttl_seconds: float = 30 * 60,
        sweep_interval_seconds: float = 5 * 60,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if history_max_messages < 1:
            raise ValueError("history_max_messages deve ser >= 1")
        self._entries: dict[str, SessionEntry] = {}
        self._max_messages = history_max_messages
        self._context_window = min(context_window_messages, history_max_messages)
        self._ttl = ttl_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock or time.monotonic
        self._sweep_task: asyncio.Task[None] | None = None
        self._eviction_listeners: list[Callable[[list[str]], None]] = []

    @classmethod
    def from_settings(cls, settings: Any) -> ConversationCache:
        return cls(
            history_max_messages=settings.history_max_messages,
            context_window_messages=settings.context_window_messages,
            ttl_seconds=settings.cache_ttl_seconds,
            sweep_interval_seconds=settings.cache_sweep_interval_seconds,
        )

    @property
    def history_bound(self) -> int:
        return self._max_messages

    # ------------------------------------------------------------------
    # Ciclo de vida da entrada
    # ------------------------------------------------------------------

    def initialize(
        self,
        session_id: str,
        participant_id: str,
        scenario_id: int,
        initial_emotional_state: EmotionalState | None = None,
        persona: str | None = None,
    ) -> SessionEntry:
        """Retorna a entrada existente (só renova atividade) ou cria uma nova."""
        now = self._clock()
        existing = self._entries.get(session_id)
        if existing is not None:
            existing.last_activity = now
            return existing

        entry = SessionEntry(
            session_id=session_id,
            participant_id=participant_id,
            scenario_id=scenario_id,
            last_activity=now,
            persona=persona,
            emotional_state=initial_emotional_state,
        )
        self._entries[session_id] = entry
        logger.info(
            "Conversation cache entry created",
            extra={
                "session_id": short_id(session_id),
                "scenario_id": scenario_id,
                "emotional_tracking": initial_emotional_state is not None,
            },
        )
        return entry

    def get_entry(self, session_id: str) -> SessionEntry | None:
        entry = self._entries.get(session_id)
        if entry is not None:
            entry.last_activity = self._clock()
        return entry

    def clear(self, session_id: str) -> bool:
        removed = self._entries.pop(session_id, None) is not None
        if removed:
            logger.info(
                "Conversation cache entry cleared",
                extra={"session_id": short_id(session_id)},
            )
        return removed

    # ------------------------------------------------------------------
    # Histórico
    # ------------------------------------------------------------------

    def append_message(
        self,
        session_id: str,
        role: MessageRole,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        entry = self._entries.get(session_id)
        if entry is None:
            logger.warning(
                "append_message on unknown session",
                extra={"session_id": short_id(session_id), "role": str(role)},
            )
            return

        tags = self._extract_topics(entry, text) if role is MessageRole.PARTICIPANT else []
        entry.history.append(
            ConversationMessage(role=role, content=text, tags=tags, metadata=metadata or {})
        )
        overflow = len(entry.history) - self._max_messages
        if overflow > 0:
            del entry.history[:overflow]
        entry.last_activity = self._clock()

        logger.debug(
            "Message appended",
            extra={
                "session_id": short_id(session_id),
                "role": str(role),
                "history_size": len(entry.history),
            },
        )

    @staticmethod
    def _extract_topics(entry: SessionEntry, text: str) -> list[str]:
        """Atualiza sintomas/perguntas da entrada e retorna os sintomas da fala."""
        lowered = text.lower()
        found = [kw for kw in SYMPTOM_KEYWORDS if kw in lowered]
        for symptom in found:
            if symptom not in entry.topics.symptoms_discussed:
                entry.topics.symptoms_discussed.append(symptom)

        if "?" in lowered or lowered.startswith(QUESTION_PREFIXES):
            question = text[:QUESTION_PREVIEW_CHARS]
            if len(text) > QUESTION_PREVIEW_CHARS:
                question += "..."
            if question not in entry.topics.questions_asked:
                entry.topics.questions_asked.append(question)
        return found

    def get_context(self, session_id: str, max_messages: int | None = None) -> ConversationContext:
        entry = self._entries.get(session_id)
        if entry is None:
            return ConversationContext()

        window = min(max_messages or self._context_window, self._max_messages)
        history_text = "\n".join(
            f"{TRANSCRIPT_LABELS[msg.role]}: {msg.content}" for msg in entry.history[-window:]
        )
        topics_lines = []
        if entry.topics.symptoms_discussed:
            topics_lines.append(
                f"Symptômes discutés: {', '.join(entry.topics.symptoms_discussed)}"
            )
        if entry.topics.questions_asked:
            topics_lines.append(f"Questions posées: {', '.join(entry.topics.questions_asked)}")

        return ConversationContext(
            history_text=history_text,
            role=entry.participant_role,
            topics_text="\n".join(topics_lines),
            emotional_state=entry.emotional_state,
        )

    def get_messages(self, session_id: str, max_messages: int = 10) -> list[dict[str, str]]:
        """Histórico recente no formato chat (user/assistant)."""
        entry = self._entries.get(session_id)
        if entry is None or max_messages <= 0:
            return []
        return [
            {"role": CHAT_ROLES[msg.role], "content": msg.content}
            for msg in entry.history[-max_messages:]
        ]

    # ------------------------------------------------------------------
    # Papel do participante
    # ------------------------------------------------------------------

    @staticmethod
    def detect_role(text: str) -> ParticipantRole:
        lowered = text.lower()
        if "infirmier" in lowered or "infirmière" in lowered:
            return ParticipantRole.INFIRMIER
        if "docteur" in lowered or "médecin" in lowered:
            return ParticipantRole.DOCTEUR
        return ParticipantRole.ETUDIANT

    def update_role(self, session_id: str, text: str) -> ParticipantRole | None:
        """Refina o papel apenas quando a fala identifica infirmier/docteur."""
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        detected = self.detect_role(text)
        if detected is not ParticipantRole.ETUDIANT and detected is not entry.participant_role:
            entry.participant_role = detected
            logger.info(
                "Participant role detected",
                extra={"session_id": short_id(session_id), "role": detected.value},
            )
        return entry.participant_role

    def get_addressing(self, session_id: str) -> str:
        entry = self._entries.get(session_id)
        if entry is not None and entry.participant_role is ParticipantRole.DOCTEUR:
            return ParticipantRole.DOCTEUR.value
        return ParticipantRole.INFIRMIER.value

    # ------------------------------------------------------------------
    # Estado emocional
    # ------------------------------------------------------------------

    def update_emotional_state(self, session_id: str, new_state: EmotionalState) -> None:
        entry = self._entries.get(session_id)
        if entry is None:
            logger.warning(
                "update_emotional_state on unknown session",
                extra={"session_id": short_id(session_id)},
            )
            return
        entry.emotional_state = new_state
        entry.last_activity = self._clock()

    def get_emotional_state(self, session_id: str) -> EmotionalState | None:
        entry = self._entries.get(session_id)
        return entry.emotional_state if entry else None

    # ------------------------------------------------------------------
    # Expiração e métricas
    # ------------------------------------------------------------------

    def add_eviction_listener(self, listener: Callable[[list[str]], None]) -> None:
        """Registra callback chamado com os ids removidos a cada varredura."""
        self._eviction_listeners.append(listener)

    def sweep_expired(self) -> int:
        """Remove entradas com ``now - last_activity > ttl``; retorna a contagem."""
        now = self._clock()
        expired = [
            session_id
            for session_id, entry in self._entries.items()
            if now - entry.last_activity > self._ttl
        ]
        for session_id in expired:
            del self._entries[session_id]
        for listener in self._eviction_listeners:
            listener(expired)

        if expired:
            logger.info(
                "Expired conversation sessions removed",
                extra={"removed": len(expired), "remaining": len(self._entries)},
            )
        return len(expired)

    def stats(self) -> CacheStats:
        oldest = min((e.last_activity for e in self._entries.values()), default=None)
        return CacheStats(
            active_sessions=len(self._entries),
            total_messages=sum(len(e.history) for e in self._entries.values()),
            oldest_activity=oldest,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    # ------------------------------------------------------------------
    # Varredura periódica
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.error("Conversation cache sweep failed", extra={"error": str(e)})

    def start(self) -> None:
        """Agenda a varredura periódica no event loop corrente."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def shutdown(self) -> None:
        """Cancela a varredura e descarta todas as entradas."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
        self._entries.clear()
        logger.info("Conversation cache shut down")
