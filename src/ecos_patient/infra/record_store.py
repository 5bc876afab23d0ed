"""Factory do store de registros conforme configuração."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ecos_patient.domain.protocols import RecordStoreProtocol
from ecos_patient.observability.logging import get_logger

if TYPE_CHECKING:
    from ecos_patient.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_record_store(settings: Settings) -> RecordStoreProtocol:
    """Cria o store de registros.

    Raises:
        ValueError: backend desconhecido ou configuração incompleta
    """
    backend = settings.record_store_backend.lower()

    if backend == "memory":
        from ecos_patient.infra.record_store_memory import InMemoryRecordStore

        if settings.is_production or settings.is_staging:
            logger.warning("In-memory record store in non-development environment")
        logger.info("Record store backend: memory")
        return InMemoryRecordStore()

    if backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise ValueError(
                "supabase backend requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
            )

        from ecos_patient.infra.http import create_http_client
        from ecos_patient.infra.record_store_postgrest import PostgrestRecordStore

        logger.info("Record store backend: supabase")
        return PostgrestRecordStore(create_http_client(settings))

    raise ValueError(f"Unknown record_store_backend: {backend}")
