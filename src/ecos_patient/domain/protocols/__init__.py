"""Re-exports dos Protocolos de domínio para uso por Application."""

from __future__ import annotations

from ecos_patient.domain.protocols.record_store import RecordStoreProtocol
from ecos_patient.domain.protocols.scenario_repository import ScenarioRepositoryProtocol
from ecos_patient.domain.protocols.text_generator import TextGeneratorProtocol

__all__ = [
    "RecordStoreProtocol",
    "ScenarioRepositoryProtocol",
    "TextGeneratorProtocol",
]
