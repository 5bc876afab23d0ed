"""Store de registros em memória (apenas dev/testes).

Simula o comportamento relevante do store remoto: ids numéricos
auto-incrementais, upsert por coluna de conflito, select filtrado com
ordenação/limite e update por chave. `fail_with` permite simular
indisponibilidade nos testes.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from collections import defaultdict
from typing import Any

from ecos_patient.domain.protocols import RecordStoreProtocol
from ecos_patient.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class InMemoryRecordStore(RecordStoreProtocol):
    """Tabelas como listas de dicts (não usar em produção)."""

    def __init__(self, delay_seconds: float = 0.0) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._ids: dict[str, itertools.count[int]] = defaultdict(lambda: itertools.count(1))
        self.delay_seconds = delay_seconds
        self.fail_with: Exception | None = None
        self.fail_tables: set[str] | None = None
        self.calls: list[tuple[str, str]] = []

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Cópia das linhas de uma tabela (inspeção em testes)."""
        return copy.deepcopy(self._tables.get(table, []))

    async def _enter(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_with is not None and (self.fail_tables is None or table in self.fail_tables):
            raise self.fail_with

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str | None = None,
    ) -> dict[str, Any]:
        await self._enter("upsert", table)
        rows = self._tables[table]
        if on_conflict is not None and on_conflict in row:
            for existing in rows:
                if existing.get(on_conflict) == row[on_conflict]:
                    existing.update({k: v for k, v in row.items() if k != "id"})
                    return copy.deepcopy(existing)

        stored = copy.deepcopy(row)
        stored.setdefault("id", next(self._ids[table]))
        rows.append(stored)
        logger.debug("Row inserted (in-memory)", extra={"table": table})
        return copy.deepcopy(stored)

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        await self._enter("select", table)
        matches = [
            row
            for row in self._tables.get(table, [])
            if all(row.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by is not None:
            matches.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)))
            if not ascending:
                matches.reverse()
        elif not ascending:
            matches = matches[::-1]
        if limit is not None:
            matches = matches[:limit]
        return copy.deepcopy(matches)

    async def update(
        self,
        table: str,
        key_field: str,
        key: Any,
        changes: dict[str, Any],
    ) -> list[dict[str, Any]]:
        await self._enter("update", table)
        updated = []
        for row in self._tables.get(table, []):
            if row.get(key_field) == key:
                row.update(changes)
                updated.append(copy.deepcopy(row))
        return updated
