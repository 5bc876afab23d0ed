from __future__ import annotations

import logging
import os
from typing import Any

from ecos_patient.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class SecretManagerProvider:
    """Provider para Google Cloud Secret Manager.

    Requer google-cloud-secret-manager instalado e Application Default
    Credentials configurado. Valores lidos ficam em cache no processo:
    a chave do Supabase é consultada a cada boot, não a cada request.
    """

    def __init__(self, project_id: str | None = None, client: Any | None = None) -> None:
        self._project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        self._client = client
        self._cache: dict[tuple[str, str], str] = {}

    def _get_client(self) -> Any:
        """Retorna cliente do Secret Manager (lazy loading)."""
        if self._client is None:
            try:
                from google.cloud import secretmanager  # type: ignore[attr-defined]
            except ImportError as e:
                logger.error(
                    "google-cloud-secret-manager não instalado",
                    extra={"error": str(e)},
                )
                raise RuntimeError(
                    "Dependência google-cloud-secret-manager não encontrada. "
                    "Instale com: pip install google-cloud-secret-manager"
                ) from e
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _secret_path(self, name: str) -> str:
        if not self._project_id:
            raise RuntimeError(
                "project_id não configurado. "
                "Defina GOOGLE_CLOUD_PROJECT ou passe project_id ao construtor."
            )
        return f"projects/{self._project_id}/secrets/{name}"

    def get_secret(self, name: str, version: str = "latest") -> str:
        cache_key = (name, version)
        if cache_key in self._cache:
            return self._cache[cache_key]

        client = self._get_client()
        version_path = f"{self._secret_path(name)}/versions/{version}"

        try:
            response = client.access_secret_version(name=version_path)
            payload = response.payload.data.decode("utf-8")
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "Falha ao acessar Secret Manager",
                extra={"secret_name": name, "version": version, "error_type": type(e).__name__},
            )
            raise RuntimeError(
                f"Não foi possível acessar secret {name}: acesso negado ou não existe"
            ) from e

        self._cache[cache_key] = payload
        logger.info(
            "Secret lido do Secret Manager",
            extra={"secret_name": name, "version": version, "provider": "secret_manager"},
        )
        return payload

    def secret_exists(self, name: str) -> bool:
        client = self._get_client()
        try:
            client.get_secret(name=self._secret_path(name))
        except Exception:  # pylint: disable=broad-except
            return False
        return True
