"""Protocolo de leitura de configuração de cenário."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecos_patient.domain.scenario import ScenarioConfig


class ScenarioRepositoryProtocol(ABC):
    """Lookup somente-leitura de cenários por id."""

    @abstractmethod
    async def get(self, scenario_id: int) -> ScenarioConfig | None: ...
