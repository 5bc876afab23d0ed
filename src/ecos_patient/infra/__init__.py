"""Camada de infraestrutura: adapters para serviços externos.

- Record store: InMemoryRecordStore, PostgrestRecordStore, create_record_store
- Cenários: StaticScenarioRepository, RecordStoreScenarioRepository
- HTTP: HttpClient (retry + circuit breaker)
- Secrets: ver ecos_patient.infra.secrets

Infraestrutura não decide regra de negócio; logs sem falas do participante.
Nenhum módulo aqui importa ecos_patient.config em tempo de import.
"""

from ecos_patient.infra.http import HttpClient, HttpClientConfig, HttpError, create_http_client
from ecos_patient.infra.record_store import create_record_store
from ecos_patient.infra.record_store_memory import InMemoryRecordStore
from ecos_patient.infra.record_store_postgrest import PostgrestRecordStore
from ecos_patient.infra.scenario_repository import (
    RecordStoreScenarioRepository,
    StaticScenarioRepository,
)

__all__ = [
    "HttpClient",
    "HttpClientConfig",
    "HttpError",
    "create_http_client",
    "create_record_store",
    "InMemoryRecordStore",
    "PostgrestRecordStore",
    "RecordStoreScenarioRepository",
    "StaticScenarioRepository",
]
