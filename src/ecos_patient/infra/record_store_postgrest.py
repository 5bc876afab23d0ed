"""Store de registros sobre a API REST do Supabase (PostgREST).

- upsert: POST com ``Prefer: resolution=merge-duplicates``
- select: GET com filtros ``eq.``, ``order`` e ``limit``
- update: PATCH filtrado pela chave

Resultado vazio é "não encontrado", nunca erro.
"""

from __future__ import annotations

import logging
from typing import Any

from ecos_patient.domain.errors import RecordStoreError
from ecos_patient.domain.protocols import RecordStoreProtocol
from ecos_patient.infra.http import HttpClient, HttpError
from ecos_patient.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

RETURN_REPRESENTATION = "return=representation"
MERGE_DUPLICATES = "resolution=merge-duplicates"


def _eq(value: Any) -> str:
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class PostgrestRecordStore(RecordStoreProtocol):
    """Tradução das operações de registro para chamadas REST."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def _call(self, method: str, table: str, **kwargs: Any) -> list[dict[str, Any]]:
        try:
            response = await self._http.request(method, f"/{table}", **kwargs)
        except HttpError as e:
            detail = f": {e.detail}" if e.detail else ""
            raise RecordStoreError(f"{method} {table} failed ({e}){detail}") from e

        if not response.content:
            return []
        body = response.json()
        if isinstance(body, dict):
            return [body]
        return list(body)

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, str] = {}
        prefer = [RETURN_REPRESENTATION]
        if on_conflict:
            params["on_conflict"] = on_conflict
            prefer.insert(0, MERGE_DUPLICATES)

        rows = await self._call(
            "POST",
            table,
            params=params,
            json=row,
            headers={"Prefer": ",".join(prefer)},
        )
        if not rows:
            raise RecordStoreError(f"POST {table} returned no row")
        return rows[0]

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {"select": "*"}
        params.update({column: _eq(value) for column, value in (filters or {}).items()})
        if order_by:
            params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"
        if limit is not None:
            params["limit"] = str(limit)
        return await self._call("GET", table, params=params)

    async def update(
        self,
        table: str,
        key_field: str,
        key: Any,
        changes: dict[str, Any],
    ) -> list[dict[str, Any]]:
        return await self._call(
            "PATCH",
            table,
            params={key_field: _eq(key)},
            json=changes,
            headers={"Prefer": RETURN_REPRESENTATION},
        )

    async def close(self) -> None:
        await self._http.close()
