from __future__ import annotations

from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from ecos_patient.ai.openai_client import DeterministicActorGenerator
from ecos_patient.api.app import create_app
from ecos_patient.application.conversation_cache import ConversationCache
from ecos_patient.application.emotional_engine import EmotionalStateEngine
from ecos_patient.application.orchestrator import SessionOrchestrator
from ecos_patient.application.persistence_gateway import PersistenceGateway
from ecos_patient.config.settings import Settings, get_settings
from ecos_patient.infra.record_store_memory import InMemoryRecordStore
from ecos_patient.infra.scenario_repository import StaticScenarioRepository


class FakeClock:
    """Relógio monotônico controlado manualmente."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def gateway(record_store: InMemoryRecordStore) -> PersistenceGateway:
    return PersistenceGateway(record_store, timeout_seconds=0.5)


@pytest.fixture()
def make_orchestrator(
    gateway: PersistenceGateway,
) -> Callable[..., SessionOrchestrator]:
    def _make(generator=None, scenarios=None, cache=None, **kwargs) -> SessionOrchestrator:
        return SessionOrchestrator(
            cache=cache if cache is not None else ConversationCache(),
            engine=EmotionalStateEngine(),
            gateway=gateway,
            generator=generator or DeterministicActorGenerator(),
            scenarios=scenarios or StaticScenarioRepository(),
            **kwargs,
        )

    return _make


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("RECORD_STORE_BACKEND", "memory")
    monkeypatch.setenv("OPENAI_ENABLED", "false")
    monkeypatch.setenv("PERSIST_IN_BACKGROUND", "false")
    get_settings.cache_clear()
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


@pytest.fixture()
def settings_factory() -> Callable[..., Settings]:
    def _make(**overrides) -> Settings:
        values = {"environment": "development", "record_store_backend": "memory"}
        values.update(overrides)
        return Settings(**values)

    return _make
