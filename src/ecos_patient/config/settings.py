"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars ou Secret Manager.
Nunca hardcode secrets ou valores sensíveis.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from ecos_patient.infra.secrets import create_secret_provider
from ecos_patient.observability.logging import get_logger

# Backends aceitos para o store remoto de registros
RECORD_STORE_BACKENDS: frozenset[str] = frozenset({"memory", "supabase"})


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Aplicação
    service_name: str = "ecos_patient"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"  # json | text
    correlation_id_header: str = "X-Correlation-ID"

    # Cache de conversa (memória curta do paciente virtual)
    history_max_messages: int = 20  # Mensagens retidas por sessão (FIFO)
    context_window_messages: int = 10  # Mensagens no transcript do contexto
    cache_ttl_minutes: int = 30  # Inatividade antes da remoção
    cache_sweep_interval_seconds: int = 300  # Varredura periódica (5 min)

    # Turnos
    max_turn_chars: int = 500  # Limite de caracteres por mensagem do participante
    generation_history_messages: int = 8  # Histórico enviado ao gerador

    # Store remoto (Supabase/PostgREST)
    record_store_backend: str = "memory"  # memory | supabase
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None  # Secret Manager em prod
    remote_store_timeout_seconds: float = 5.0
    remote_store_max_retries: int = 1
    remote_store_backoff_seconds: float = 0.5
    remote_store_circuit_breaker_enabled: bool = True
    remote_store_circuit_breaker_fail_max: int = 5
    remote_store_circuit_breaker_reset_timeout_seconds: float = 30.0

    # Persistência
    persist_in_background: bool = True  # Escrita da troca não bloqueia a resposta
    reconcile_interval_seconds: int = 0  # 0 = reconciliação periódica desligada

    # OpenAI / geração de falas do paciente
    openai_api_key: str | None = None  # Secret Manager em prod
    openai_enabled: bool = False  # Feature flag (fail-safe: false)
    openai_model: str = "gpt-4o"
    openai_timeout_seconds: float = 20.0
    openai_max_retries: int = 1
    openai_temperature: float = 0.7
    openai_max_tokens: int = 300
    openai_top_p: float = 0.95
    openai_frequency_penalty: float = 0.5
    openai_presence_penalty: float = 0.5

    @property
    def cache_ttl_seconds(self) -> float:
        """TTL do cache em segundos."""
        return float(self.cache_ttl_minutes * 60)

    @property
    def supabase_rest_url(self) -> str | None:
        """Endpoint REST (PostgREST) derivado da URL do projeto."""
        if not self.supabase_url:
            return None
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")

    def validate_cache_config(self) -> list[str]:
        """Valida limites do cache de conversa.

        Retorna lista de erros (vazia = OK).
        """
        errors: list[str] = []
        if self.history_max_messages < 1:
            errors.append("HISTORY_MAX_MESSAGES deve ser >= 1")
        if not 1 <= self.context_window_messages <= self.history_max_messages:
            errors.append("CONTEXT_WINDOW_MESSAGES deve estar entre 1 e HISTORY_MAX_MESSAGES")
        if self.cache_ttl_minutes <= 0:
            errors.append("CACHE_TTL_MINUTES deve ser positivo")
        if self.cache_sweep_interval_seconds <= 0:
            errors.append("CACHE_SWEEP_INTERVAL_SECONDS deve ser positivo")
        if self.max_turn_chars < 1:
            errors.append("MAX_TURN_CHARS deve ser >= 1")
        return errors

    def validate_record_store_config(self) -> list[str]:
        """Valida backend do store remoto por ambiente.

        Em staging/prod, memory é proibido (dados se perdem no restart).
        """
        errors: list[str] = []
        backend = self.record_store_backend.lower()

        if backend not in RECORD_STORE_BACKENDS:
            errors.append(
                f"RECORD_STORE_BACKEND '{backend}' inválido. "
                f"Valores válidos: {sorted(RECORD_STORE_BACKENDS)}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "RECORD_STORE_BACKEND=memory é proibido em staging/production. "
                "Configure 'supabase'."
            )

        if backend == "supabase":
            if not self.supabase_url:
                errors.append("RECORD_STORE_BACKEND=supabase requer SUPABASE_URL configurado")
            if not self.supabase_service_role_key:
                errors.append(
                    "RECORD_STORE_BACKEND=supabase requer SUPABASE_SERVICE_ROLE_KEY configurado"
                )

        if self.remote_store_timeout_seconds <= 0:
            errors.append("REMOTE_STORE_TIMEOUT_SECONDS deve ser positivo")
        return errors

    def validate_openai_config(self) -> list[str]:
        """Valida configuração de OpenAI.

        Se openai_enabled=True, verifica se OPENAI_API_KEY está configurado.
        """
        errors: list[str] = []
        if self.openai_enabled and not self.openai_api_key:
            errors.append("OPENAI_ENABLED=true requer OPENAI_API_KEY configurado")
        if self.openai_timeout_seconds <= 0:
            errors.append("OPENAI_TIMEOUT_SECONDS deve ser positivo")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações de startup."""
        errors: list[str] = []
        errors.extend(self.validate_cache_config())
        errors.extend(self.validate_record_store_config())
        errors.extend(self.validate_openai_config())
        return errors

    def model_post_init(self, __context: Any) -> None:
        """Carrega secrets do Secret Manager em staging/production.

        - Development: secrets via env vars, nada a fazer
        - Staging/production: fail-closed se o Secret Manager não responder
        - Nunca logar valores de secrets
        """
        logger: logging.Logger = get_logger(__name__)
        skip_secret_manager = os.getenv("SKIP_SECRET_MANAGER", "").lower() == "true"

        if self.is_development:
            logger.debug(
                "Usando configuração de development (secrets via env vars)",
                extra={"environment": self.environment},
            )
            return

        if not (self.is_staging or self.is_production):
            logger.info(
                "Ambiente não-prod sem carregamento de Secret Manager",
                extra={"environment": self.environment},
            )
            return

        if skip_secret_manager:
            logger.error(
                "SKIP_SECRET_MANAGER é proibido em staging/production",
                extra={"environment": self.environment},
            )
            raise RuntimeError("SKIP_SECRET_MANAGER não é permitido em staging/production")

        # PYTEST_CURRENT_TEST é setado pelo pytest; evita chamada real ao Secret Manager
        if os.getenv("PYTEST_CURRENT_TEST"):
            logger.info(
                "Pulando Secret Manager em ambiente de teste controlado",
                extra={"environment": self.environment},
            )
            return

        project_id = os.getenv("GOOGLE_CLOUD_PROJECT")
        if not project_id:
            raise RuntimeError("GOOGLE_CLOUD_PROJECT obrigatório em staging/production")

        try:
            provider = create_secret_provider(backend="secret_manager", project_id=project_id)
        except Exception as e:
            raise RuntimeError(
                f"Não foi possível inicializar Secret Manager: {type(e).__name__}"
            ) from e

        # Mapa de secrets: nome no Secret Manager → atributo em Settings
        secret_mappings = {
            "SUPABASE_SERVICE_ROLE_KEY": "supabase_service_role_key",
            "OPENAI_API_KEY": "openai_api_key",
        }

        for secret_name, attr_name in secret_mappings.items():
            if getattr(self, attr_name):
                continue
            if not provider.secret_exists(secret_name):
                logger.warning(
                    "Secret não encontrado no Secret Manager",
                    extra={"secret_name": secret_name, "environment": self.environment},
                )
                continue
            try:
                setattr(self, attr_name, provider.get_secret(secret_name))
            except Exception as e:
                logger.error(
                    "Erro ao carregar secret do Secret Manager",
                    extra={
                        "secret_name": secret_name,
                        "error": type(e).__name__,
                        "environment": self.environment,
                    },
                )
                raise RuntimeError(f"Falha ao carregar {secret_name}: {type(e).__name__}") from e
            logger.info(
                "Secret carregado do Secret Manager",
                extra={"secret_name": secret_name, "environment": self.environment},
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings.

    A cache garante que mesmo múltiplas injeções não criam novos objetos.
    """
    return Settings()
