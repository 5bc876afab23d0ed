"""Protocolo do store remoto de registros (tabelas com linhas dict)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class RecordStoreProtocol(ABC):
    """Contrato mínimo assíncrono do store remoto.

    Implementações sinalizam falhas com exceção (RecordStoreError ou
    qualquer outra); quem decide o fallback é o PersistenceGateway.
    """

    @abstractmethod
    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str | None = None,
    ) -> dict[str, Any]:
        """Insere ou atualiza a linha; retorna a linha gravada."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Retorna linhas que batem com todos os filtros (igualdade)."""

    @abstractmethod
    async def update(
        self,
        table: str,
        key_field: str,
        key: Any,
        changes: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Atualiza as linhas com key_field == key; retorna as alteradas."""

    async def close(self) -> None:  # noqa: B027
        """Libera recursos de transporte (opcional)."""
