from __future__ import annotations

import logging

from ecos_patient.observability.logging import get_logger

from .env_provider import EnvSecretProvider
from .gcp_provider import SecretManagerProvider
from .protocol import SecretProvider

logger: logging.Logger = get_logger(__name__)


def create_secret_provider(backend: str = "env", project_id: str | None = None) -> SecretProvider:
    """Factory para criar o provider de secrets apropriado."""
    if backend == "env":
        logger.info("Usando EnvSecretProvider para secrets")
        return EnvSecretProvider()

    if backend == "secret_manager":
        logger.info(
            "Usando SecretManagerProvider para secrets",
            extra={"project_id": project_id},
        )
        return SecretManagerProvider(project_id=project_id)

    raise ValueError(f"Backend de secrets não reconhecido: {backend}")


def get_record_store_secrets(provider: SecretProvider) -> dict[str, str]:
    """Carrega credenciais do store remoto (Supabase).

    A service role key é obrigatória; a URL pode vir apenas de env var.
    """
    secrets: dict[str, str] = {
        "supabase_service_role_key": provider.get_secret("SUPABASE_SERVICE_ROLE_KEY"),
    }
    try:
        secrets["supabase_url"] = provider.get_secret("SUPABASE_URL")
    except RuntimeError:
        logger.warning("Secret opcional não encontrado", extra={"secret_name": "SUPABASE_URL"})
        secrets["supabase_url"] = ""
    return secrets


def get_openai_api_key(provider: SecretProvider) -> str | None:
    """Retorna a chave da OpenAI ou None (geração cai no fallback determinístico)."""
    if not provider.secret_exists("OPENAI_API_KEY"):
        logger.warning("Secret opcional não encontrado", extra={"secret_name": "OPENAI_API_KEY"})
        return None
    return provider.get_secret("OPENAI_API_KEY")
