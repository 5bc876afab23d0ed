"""Repositórios de configuração de cenário.

- StaticScenarioRepository: catálogo em memória (dev/testes)
- RecordStoreScenarioRepository: persona lida da tabela ``scenarios`` do
  store remoto, combinada com o perfil emocional do catálogo

Cenário ausente ou store indisponível nunca é erro: degrada para o
catálogo (ou None, que desabilita o rastreamento emocional).
"""

from __future__ import annotations

import asyncio
import logging

from ecos_patient.domain.protocols import RecordStoreProtocol, ScenarioRepositoryProtocol
from ecos_patient.domain.scenario import ScenarioConfig
from ecos_patient.infra.scenario_catalog import DEFAULT_SCENARIOS
from ecos_patient.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class StaticScenarioRepository(ScenarioRepositoryProtocol):
    def __init__(self, scenarios: dict[int, ScenarioConfig] | None = None) -> None:
        self._scenarios = dict(DEFAULT_SCENARIOS if scenarios is None else scenarios)

    async def get(self, scenario_id: int) -> ScenarioConfig | None:
        return self._scenarios.get(scenario_id)


class RecordStoreScenarioRepository(ScenarioRepositoryProtocol):
    """Persona do store remoto com cache por processo (somente leitura)."""

    def __init__(
        self,
        store: RecordStoreProtocol,
        catalog: dict[int, ScenarioConfig] | None = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._store = store
        self._catalog = dict(DEFAULT_SCENARIOS if catalog is None else catalog)
        self._timeout = timeout_seconds
        self._loaded: dict[int, ScenarioConfig | None] = {}

    async def get(self, scenario_id: int) -> ScenarioConfig | None:
        if scenario_id in self._loaded:
            return self._loaded[scenario_id]

        base = self._catalog.get(scenario_id)
        try:
            rows = await asyncio.wait_for(
                self._store.select("scenarios", {"id": scenario_id}, limit=1),
                self._timeout,
            )
        except Exception as e:
            # Sem cache: nova tentativa no próximo turno
            logger.warning(
                "Scenario lookup failed; using built-in catalog",
                extra={"scenario_id": scenario_id, "error": str(e)},
            )
            return base

        row = rows[0] if rows else None
        prompt = (row or {}).get("patient_prompt") or ""
        if not prompt.strip():
            logger.warning(
                "Scenario has no patient_prompt; using default persona",
                extra={"scenario_id": scenario_id, "found": row is not None},
            )
            config = base
        elif base is not None:
            title = row.get("title") or base.title
            config = base.model_copy(update={"persona": prompt, "title": title})
        else:
            config = ScenarioConfig(
                scenario_id=scenario_id, title=row.get("title") or "", persona=prompt
            )

        self._loaded[scenario_id] = config
        return config
