"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ecos_patient.ai.openai_client import DeterministicActorGenerator, OpenAIActorGenerator
from ecos_patient.api.routes import router
from ecos_patient.application.conversation_cache import ConversationCache
from ecos_patient.application.emotional_engine import EmotionalStateEngine
from ecos_patient.application.orchestrator import SessionOrchestrator
from ecos_patient.application.persistence_gateway import PersistenceGateway
from ecos_patient.config.settings import Settings, get_settings
from ecos_patient.domain.protocols import (
    RecordStoreProtocol,
    ScenarioRepositoryProtocol,
    TextGeneratorProtocol,
)
from ecos_patient.infra.record_store import create_record_store
from ecos_patient.infra.scenario_repository import (
    RecordStoreScenarioRepository,
    StaticScenarioRepository,
)
from ecos_patient.observability.logging import configure_logging, get_logger
from ecos_patient.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def _create_scenario_repository(
    settings: Settings, store: RecordStoreProtocol
) -> ScenarioRepositoryProtocol:
    """Catálogo embutido em memória; persona remota quando o store é o Supabase."""
    if settings.record_store_backend.lower() == "supabase":
        return RecordStoreScenarioRepository(
            store, timeout_seconds=settings.remote_store_timeout_seconds
        )
    return StaticScenarioRepository()


def _create_generator(settings: Settings) -> TextGeneratorProtocol:
    """OpenAI atrás de feature flag; desligado → respostas determinísticas."""
    if settings.openai_enabled:
        logger.info("Actor generator: openai", extra={"model": settings.openai_model})
        return OpenAIActorGenerator.from_settings(settings)
    logger.info("Actor generator: deterministic")
    return DeterministicActorGenerator()


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    app.state.cache.start()
    app.state.gateway.start(settings.reconcile_interval_seconds)
    logger.info("Session engine started", extra={"environment": settings.environment})
    try:
        yield
    finally:
        await app.state.orchestrator.shutdown()
        await app.state.gateway.shutdown()
        await app.state.cache.shutdown()
        await app.state.record_store.close()
        logger.info("Session engine stopped")


def create_app(
    settings: Settings | None = None,
    *,
    store: RecordStoreProtocol | None = None,
    generator: TextGeneratorProtocol | None = None,
    scenarios: ScenarioRepositoryProtocol | None = None,
) -> FastAPI:
    """Cria a aplicação FastAPI.

    Colaboradores explícitos substituem os criados a partir de settings
    (usado em testes para injetar stores e geradores controlados).
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name, settings.log_format)

    validation_errors = settings.validate_all()
    if validation_errors:
        error_msg = "; ".join(validation_errors)
        raise ValueError(f"Configuração inválida: {error_msg}")

    app = FastAPI(title=settings.service_name, version=settings.version, lifespan=_lifespan)
    app.add_middleware(CorrelationIdMiddleware, header_name=settings.correlation_id_header)
    app.include_router(router)

    record_store = store or create_record_store(settings)
    cache = ConversationCache.from_settings(settings)
    gateway = PersistenceGateway(
        record_store, timeout_seconds=settings.remote_store_timeout_seconds
    )
    orchestrator = SessionOrchestrator(
        cache=cache,
        engine=EmotionalStateEngine(),
        gateway=gateway,
        generator=generator or _create_generator(settings),
        scenarios=scenarios or _create_scenario_repository(settings, record_store),
        generation_timeout_seconds=settings.openai_timeout_seconds,
        max_turn_chars=settings.max_turn_chars,
        generation_history_messages=settings.generation_history_messages,
        persist_in_background=settings.persist_in_background,
    )

    app.state.settings = settings
    app.state.record_store = record_store
    app.state.cache = cache
    app.state.gateway = gateway
    app.state.orchestrator = orchestrator

    return app


app = create_app()
