from __future__ import annotations

import logging
import os

from ecos_patient.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

# Nomes alternativos aceitos em desenvolvimento (deploys antigos usavam estes)
DEFAULT_ALIASES: dict[str, tuple[str, ...]] = {
    "OPENAI_API_KEY": ("OPENAI_KEY",),
    "SUPABASE_SERVICE_ROLE_KEY": ("SUPABASE_ANON_KEY",),
}


class EnvSecretProvider:
    """Provider para desenvolvimento local via variáveis de ambiente.

    Não deve ser usado em produção. Consulta o nome canônico e depois os
    aliases configurados, nessa ordem.
    """

    def __init__(self, aliases: dict[str, tuple[str, ...]] | None = None) -> None:
        self._aliases = DEFAULT_ALIASES if aliases is None else aliases

    def _candidates(self, name: str) -> tuple[str, ...]:
        return (name, *self._aliases.get(name, ()))

    def get_secret(self, name: str, version: str = "latest") -> str:
        """Lê secret de variável de ambiente (version é ignorado)."""
        for candidate in self._candidates(name):
            value = os.getenv(candidate)
            if value:
                logger.debug(
                    "Secret lido do ambiente",
                    extra={"secret_name": name, "env_var": candidate, "provider": "env"},
                )
                return value

        logger.warning(
            "Secret não encontrado no ambiente",
            extra={"secret_name": name, "provider": "env"},
        )
        raise RuntimeError(f"Secret {name} não encontrado no ambiente")

    def secret_exists(self, name: str) -> bool:
        """Verifica se alguma das env vars candidatas existe."""
        return any(os.getenv(candidate) for candidate in self._candidates(name))
