"""PersistenceGateway: escrita/leitura resiliente no store remoto.

Toda tentativa de escrita é espelhada localmente, com sucesso ou não:
- sucesso → espelho com is_fallback=False (confirmado no store remoto)
- falha ou timeout → espelho com is_fallback=True (apenas em memória)

Falhas do store nunca sobem para o chamador: o resultado tipado
(`WriteResult.committed`) é o único sinal. Registros com is_fallback=True
são perdidos em restart do processo até que `reconcile()` os confirme.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ecos_patient.domain.enums import MessageRole, RecordKind, ReferenceKind, SessionStatus
from ecos_patient.domain.errors import RecordStoreError
from ecos_patient.domain.models import EvaluationRecord, PersistedRecord, SessionRecord
from ecos_patient.domain.protocols import RecordStoreProtocol
from ecos_patient.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TableSpec:
    """Mapeamento de um tipo de registro para a tabela remota."""

    table: str
    key_field: str
    on_conflict: str | None
    # Chave lógica é o session_id textual; a coluna remota guarda o id numérico
    session_foreign_key: bool = False


TABLES: dict[RecordKind, TableSpec] = {
    RecordKind.SESSION: TableSpec("sessions", "session_id", "session_id"),
    RecordKind.EXCHANGE: TableSpec("exchanges", "session_id", None, session_foreign_key=True),
    RecordKind.EVALUATION: TableSpec(
        "evaluations", "session_id", "session_id", session_foreign_key=True
    ),
}

REFERENCE_TABLES: dict[ReferenceKind, tuple[str, str]] = {
    ReferenceKind.PARTICIPANT: ("users", "email"),
}

EXCHANGE_ROLES: dict[MessageRole, str] = {
    MessageRole.PARTICIPANT: "user",
    MessageRole.ACTOR: "assistant",
}


@dataclass(slots=True)
class WriteResult:
    """Resultado de uma escrita; committed=False não é erro fatal."""

    committed: bool
    record: dict[str, Any]
    error: str | None = None


@dataclass(slots=True)
class GatewayStats:
    committed_writes: int = 0
    fallback_writes: int = 0
    reconciled_writes: int = 0
    pending_fallbacks: int = 0
    ensured_references: int = 0


@dataclass(slots=True)
class _Counters:
    committed: int = 0
    fallback: int = 0
    reconciled: int = 0


def _utcnow_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _strip_flag(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if k != "is_fallback"}


def _describe(error: BaseException) -> str:
    if isinstance(error, TimeoutError):
        return "timeout"
    return str(error) or type(error).__name__


class PersistenceGateway:
    """Wrapper write-through/read-through com espelho local por tipo."""

    def __init__(
        self,
        store: RecordStoreProtocol,
        timeout_seconds: float = 5.0,
        exchange_read_limit: int = 50,
    ) -> None:
        self._store = store
        self._timeout = timeout_seconds
        self._exchange_read_limit = exchange_read_limit
        self._mirrors: dict[RecordKind, dict[str, PersistedRecord]] = {
            RecordKind.SESSION: {},
            RecordKind.EVALUATION: {},
        }
        self._exchange_mirror: dict[str, list[PersistedRecord]] = {}
        self._ensured: set[tuple[ReferenceKind, str]] = set()
        self._counters = _Counters()
        self._reconcile_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Operações genéricas
    # ------------------------------------------------------------------

    async def write(
        self,
        kind: RecordKind,
        key: str,
        record: dict[str, Any],
        *,
        reference: tuple[ReferenceKind, str] | None = None,
    ) -> WriteResult:
        """Upsert remoto com espelhamento local; nunca lança erro do store.

        Args:
            kind: tipo lógico do registro
            key: session_id textual (chave do espelho)
            record: colunas do registro (sem is_fallback)
            reference: entidade referenciada a garantir antes da escrita
        """
        if reference is not None:
            await self.ensure_reference_exists(*reference)

        spec = TABLES[kind]
        record = _strip_flag(record)

        async def op() -> dict[str, Any]:
            row = dict(record)
            if spec.session_foreign_key:
                row[spec.key_field] = await self._resolve_session_pk(key)
            return await self._store.upsert(spec.table, row, on_conflict=spec.on_conflict)

        return await self._attempt(kind, key, record, op)

    async def read(self, kind: RecordKind, key: str) -> dict[str, Any] | None:
        """Lookup remoto; falha ou ausência → espelho local (qualquer flag) ou None.

        Escrita pendente (is_fallback=True) prevalece sobre a linha remota,
        que está desatualizada até a reconciliação.
        """
        spec = TABLES[kind]
        pending = self._mirrors[kind].get(key) if kind is not RecordKind.EXCHANGE else None
        if pending is not None and pending.is_fallback:
            return pending.as_dict()

        try:
            row = await asyncio.wait_for(self._select_latest(kind, key), self._timeout)
        except Exception as e:
            logger.warning(
                "Remote store read failed; using local mirror",
                extra={"kind": kind.value, "session_id": short_id(key), "error": _describe(e)},
            )
            row = None

        if row is not None:
            mirrored = PersistedRecord(data=row, is_fallback=False)
            if kind is not RecordKind.EXCHANGE:
                self._mirrors[kind][key] = mirrored
            return mirrored.as_dict()

        logger.debug(
            "Record not found remotely",
            extra={"kind": kind.value, "table": spec.table, "session_id": short_id(key)},
        )
        return self._mirror_lookup(kind, key)

    async def ensure_reference_exists(self, kind: ReferenceKind, natural_key: str | None) -> None:
        """Upsert best-effort da entidade referenciada, no máximo uma vez por chave."""
        if not natural_key:
            return
        normalized = natural_key.strip().lower()
        marker = (kind, normalized)
        if not normalized or marker in self._ensured:
            return

        table, key_field = REFERENCE_TABLES[kind]
        try:
            await asyncio.wait_for(
                self._store.upsert(
                    table,
                    {key_field: normalized, "updated_at": _utcnow_iso()},
                    on_conflict=key_field,
                ),
                self._timeout,
            )
        except Exception as e:
            logger.warning(
                "Failed to ensure referenced record",
                extra={"reference_kind": kind.value, "error": _describe(e)},
            )
            return

        self._ensured.add(marker)
        logger.info("Referenced record ensured", extra={"reference_kind": kind.value})

    # ------------------------------------------------------------------
    # Helpers tipados usados pelo orquestrador
    # ------------------------------------------------------------------

    async def create_session(
        self,
        session_id: str,
        participant_id: str,
        scenario_id: int,
        status: SessionStatus = SessionStatus.ACTIVE,
    ) -> WriteResult:
        record = SessionRecord(
            session_id=session_id,
            participant_id=participant_id,
            scenario_id=scenario_id,
            status=status,
        )
        row = record.to_row()
        row["updated_at"] = _utcnow_iso()
        return await self.write(
            RecordKind.SESSION,
            session_id,
            row,
            reference=(ReferenceKind.PARTICIPANT, participant_id),
        )

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        return await self.read(RecordKind.SESSION, session_id)

    async def update_session_status(self, session_id: str, status: SessionStatus) -> WriteResult:
        """Atualiza status (end_time carimbado em completed) por session_id."""
        now = _utcnow_iso()
        changes: dict[str, Any] = {"status": status.value, "updated_at": now}
        if status is SessionStatus.COMPLETED:
            changes["end_time"] = now

        existing = self._mirrors[RecordKind.SESSION].get(session_id)
        merged = {**(existing.data if existing else {"session_id": session_id}), **changes}

        async def op() -> dict[str, Any]:
            rows = await self._store.update("sessions", "session_id", session_id, changes)
            if not rows:
                raise RecordStoreError("session not found in remote store")
            return rows[0]

        return await self._attempt(RecordKind.SESSION, session_id, merged, op)

    async def store_exchange(
        self,
        session_id: str,
        role: MessageRole,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> WriteResult:
        """Grava uma fala da conversa (semântica de append)."""
        record: dict[str, Any] = {
            "role": EXCHANGE_ROLES[role],
            "question": text if role is MessageRole.PARTICIPANT else "",
            "response": text if role is MessageRole.ACTOR else "",
            "timestamp": _utcnow_iso(),
        }
        if metadata:
            record["metadata"] = metadata
        return await self.write(RecordKind.EXCHANGE, session_id, record)

    async def get_exchanges(
        self, session_id: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Falas confirmadas no store remoto seguidas das pendentes no espelho."""
        limit = limit or self._exchange_read_limit
        mirrored = self._exchange_mirror.get(session_id, [])
        pending = [item.as_dict() for item in mirrored if item.is_fallback]
        try:
            pk = await self._resolve_session_pk(session_id)
            rows = await asyncio.wait_for(
                self._store.select(
                    "exchanges",
                    {"session_id": pk},
                    order_by="timestamp",
                    ascending=True,
                    limit=limit,
                ),
                self._timeout,
            )
        except Exception as e:
            logger.warning(
                "Remote exchange history unavailable; using local mirror",
                extra={"session_id": short_id(session_id), "error": _describe(e)},
            )
            return [item.as_dict() for item in mirrored][-limit:]

        confirmed = [{**row, "is_fallback": False} for row in rows]
        return (confirmed + pending)[-limit:]

    async def store_evaluation(self, evaluation: EvaluationRecord) -> WriteResult:
        # session_id textual no espelho; a escrita remota troca pelo id numérico
        record = {**evaluation.to_row(), "session_id": evaluation.session_id}
        return await self.write(
            RecordKind.EVALUATION,
            evaluation.session_id,
            record,
            reference=(ReferenceKind.PARTICIPANT, evaluation.participant_id),
        )

    async def get_evaluation(self, session_id: str) -> dict[str, Any] | None:
        return await self.read(RecordKind.EVALUATION, session_id)

    # ------------------------------------------------------------------
    # Reconciliação do espelho
    # ------------------------------------------------------------------

    def pending_fallbacks(self) -> list[tuple[RecordKind, str]]:
        """Chaves cujo último registro existe apenas em memória."""
        pending: list[tuple[RecordKind, str]] = []
        for kind, mirror in self._mirrors.items():
            pending.extend((kind, key) for key, rec in mirror.items() if rec.is_fallback)
        for key, items in self._exchange_mirror.items():
            pending.extend((RecordKind.EXCHANGE, key) for item in items if item.is_fallback)
        return pending

    async def reconcile(self) -> int:
        """Reenvia registros pendentes; retorna quantos foram confirmados.

        Ordem: sessões, depois falas e avaliações (dependem do id numérico
        da sessão).
        """
        reconciled = await self._reconcile_kind(RecordKind.SESSION)
        reconciled += await self._reconcile_exchanges()
        reconciled += await self._reconcile_kind(RecordKind.EVALUATION)

        if reconciled:
            self._counters.reconciled += reconciled
            logger.info(
                "Fallback records reconciled",
                extra={"reconciled": reconciled, "pending": len(self.pending_fallbacks())},
            )
        return reconciled

    async def _reconcile_kind(self, kind: RecordKind) -> int:
        reconciled = 0
        for key, rec in list(self._mirrors[kind].items()):
            if not rec.is_fallback:
                continue
            participant = rec.data.get("student_email")
            reference = (ReferenceKind.PARTICIPANT, participant) if participant else None
            if (await self.write(kind, key, rec.data, reference=reference)).committed:
                reconciled += 1
        return reconciled

    async def _reconcile_exchanges(self) -> int:
        reconciled = 0
        spec = TABLES[RecordKind.EXCHANGE]
        for key, items in self._exchange_mirror.items():
            for item in items:
                if not item.is_fallback:
                    continue
                try:
                    row = dict(item.data)
                    row[spec.key_field] = await self._resolve_session_pk(key)
                    written = await asyncio.wait_for(
                        self._store.upsert(spec.table, row, on_conflict=spec.on_conflict),
                        self._timeout,
                    )
                except Exception as e:
                    logger.warning(
                        "Exchange reconciliation failed",
                        extra={"session_id": short_id(key), "error": _describe(e)},
                    )
                    break
                item.data = written
                item.is_fallback = False
                reconciled += 1
        return reconciled

    async def _reconcile_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                if self.pending_fallbacks():
                    await self.reconcile()
            except Exception as e:
                logger.error("Reconciliation sweep failed", extra={"error": str(e)})

    def start(self, reconcile_interval_seconds: float) -> None:
        """Agenda reconciliação periódica (intervalo <= 0 desabilita)."""
        if reconcile_interval_seconds <= 0:
            return
        if self._reconcile_task is None or self._reconcile_task.done():
            self._reconcile_task = asyncio.create_task(
                self._reconcile_loop(reconcile_interval_seconds)
            )

    async def shutdown(self) -> None:
        if self._reconcile_task is not None:
            self._reconcile_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconcile_task
            self._reconcile_task = None
        pending = self.pending_fallbacks()
        if pending:
            logger.warning(
                "Shutting down with unreconciled fallback records",
                extra={"pending": len(pending)},
            )

    def stats(self) -> GatewayStats:
        return GatewayStats(
            committed_writes=self._counters.committed,
            fallback_writes=self._counters.fallback,
            reconciled_writes=self._counters.reconciled,
            pending_fallbacks=len(self.pending_fallbacks()),
            ensured_references=len(self._ensured),
        )

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    async def _attempt(
        self,
        kind: RecordKind,
        key: str,
        record: dict[str, Any],
        op: Callable[[], Awaitable[dict[str, Any]]],
    ) -> WriteResult:
        try:
            row = await asyncio.wait_for(op(), self._timeout)
        except Exception as e:
            error = _describe(e)
            mirrored = PersistedRecord(data=dict(record), is_fallback=True)
            self._mirror(kind, key, mirrored)
            self._counters.fallback += 1
            logger.error(
                "Remote store write failed; record kept in fallback mirror",
                extra={
                    "kind": kind.value,
                    "session_id": short_id(key),
                    "error": error,
                    "fallback_used": True,
                },
            )
            return WriteResult(committed=False, record=mirrored.as_dict(), error=error)

        mirrored = PersistedRecord(data=dict(row or record), is_fallback=False)
        self._mirror(kind, key, mirrored)
        self._counters.committed += 1
        logger.debug(
            "Record committed",
            extra={"kind": kind.value, "session_id": short_id(key)},
        )
        return WriteResult(committed=True, record=mirrored.as_dict())

    def _mirror(self, kind: RecordKind, key: str, record: PersistedRecord) -> None:
        if kind is RecordKind.EXCHANGE:
            self._exchange_mirror.setdefault(key, []).append(record)
        else:
            self._mirrors[kind][key] = record

    def _mirror_lookup(self, kind: RecordKind, key: str) -> dict[str, Any] | None:
        if kind is RecordKind.EXCHANGE:
            items = self._exchange_mirror.get(key)
            return items[-1].as_dict() if items else None
        rec = self._mirrors[kind].get(key)
        return rec.as_dict() if rec else None

    async def _select_latest(self, kind: RecordKind, key: str) -> dict[str, Any] | None:
        spec = TABLES[kind]
        if spec.session_foreign_key:
            filter_value: Any = await self._resolve_session_pk(key)
        else:
            filter_value = key
        rows = await self._store.select(
            spec.table,
            {spec.key_field: filter_value},
            order_by="timestamp" if kind is RecordKind.EXCHANGE else None,
            ascending=False,
            limit=1,
        )
        return rows[0] if rows else None

    async def _resolve_session_pk(self, session_id: str) -> Any:
        """Id numérico da sessão no store remoto (chave estrangeira dos dependentes).

        Não toca o espelho: uma atualização de status pendente continua pendente.
        """
        mirrored = self._mirrors[RecordKind.SESSION].get(session_id)
        if mirrored is not None and mirrored.data.get("id") is not None:
            return mirrored.data["id"]
        rows = await self._store.select("sessions", {"session_id": session_id}, limit=1)
        if not rows or rows[0].get("id") is None:
            raise RecordStoreError("session not available in remote store")
        return rows[0]["id"]
