"""Cliente HTTP assíncrono do store remoto (PostgREST/Supabase).

- Retry com backoff exponencial para 429, 5xx, timeout e erro de conexão
- Circuit breaker opcional (falha rápida quando o store está fora)
- Headers de autenticação injetados uma única vez
- Logs sem credenciais e sem payloads (podem conter falas do participante)
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from ecos_patient.infra.circuit_breaker import (
    BreakerState,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from ecos_patient.observability.logging import get_logger

if TYPE_CHECKING:
    from ecos_patient.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

_CREDENTIAL_PARAM = re.compile(r"(apikey|access_token)=[^&]+", re.IGNORECASE)


def _redact(url: str) -> str:
    return _CREDENTIAL_PARAM.sub(r"\1=***", url)


@dataclass
class HttpClientConfig:
    base_url: str = ""
    timeout_seconds: float = 5.0
    max_retries: int = 1
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 5.0
    default_headers: dict[str, str] = field(default_factory=dict)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)


class HttpError(Exception):
    """Falha de transporte; nunca carrega corpo de requisição."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable
        self.detail = detail


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def backoff_delay(attempt: int, base_seconds: float, max_seconds: float) -> float:
    return min((2**attempt) * base_seconds, max_seconds)


def _error_detail(response: httpx.Response) -> str | None:
    """Mensagem de erro do PostgREST (ex.: coluna inexistente), se houver."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("message") or body.get("hint")
    return None


class HttpClient:
    """Uso típico:

        client = HttpClient(config)
        response = await client.request("GET", "/sessions", params={...})
        await client.close()
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._breaker = CircuitBreaker(self._config.circuit_breaker)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Executa a requisição sob circuit breaker e retry.

        Raises:
            HttpError: circuito aberto, status não retentável ou retries esgotados
        """
        if not await self._breaker.allow_request():
            logger.warning(
                "Circuit breaker open; failing fast",
                extra={"method": method, "url": _redact(url), "breaker_state": "open"},
            )
            raise HttpError("Circuit breaker open", is_retryable=False)

        try:
            response = await self._send_with_retry(method, url, **kwargs)
        except HttpError as exc:
            state = await self._breaker.record_failure(exc.is_retryable)
            if state is BreakerState.OPEN:
                logger.error(
                    "Circuit breaker opened after consecutive failures",
                    extra={"method": method, "url": _redact(url)},
                )
            raise

        previous = self._breaker.state
        await self._breaker.record_success()
        if previous is not BreakerState.CLOSED:
            logger.info("Circuit breaker closed", extra={"method": method, "url": _redact(url)})
        return response

    async def _send_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        cfg = self._config
        last_error: HttpError | None = None

        for attempt in range(cfg.max_retries + 1):
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.TimeoutException as exc:
                last_error = HttpError("Timeout", is_retryable=True, detail=str(exc))
            except httpx.TransportError as exc:
                last_error = HttpError("Connection error", is_retryable=True, detail=str(exc))
            else:
                if response.is_success:
                    logger.debug(
                        "HTTP request succeeded",
                        extra={
                            "method": method,
                            "url": _redact(url),
                            "status_code": response.status_code,
                        },
                    )
                    return response
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=is_retryable_status(response.status_code),
                    detail=_error_detail(response),
                )
                if not last_error.is_retryable:
                    logger.warning(
                        "HTTP request rejected",
                        extra={
                            "method": method,
                            "url": _redact(url),
                            "status_code": response.status_code,
                            "detail": last_error.detail,
                        },
                    )
                    raise last_error

            logger.warning(
                "Transient HTTP failure",
                extra={
                    "method": method,
                    "url": _redact(url),
                    "attempt": attempt + 1,
                    "error": str(last_error),
                },
            )
            if attempt < cfg.max_retries:
                await asyncio.sleep(
                    backoff_delay(attempt, cfg.backoff_base_seconds, cfg.backoff_max_seconds)
                )

        logger.error(
            "HTTP retries exhausted",
            extra={"method": method, "url": _redact(url), "total_attempts": cfg.max_retries + 1},
        )
        raise last_error or HttpError("Request failed after retries")


def create_http_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """Cliente configurado para a API REST do Supabase."""
    key = settings.supabase_service_role_key or ""
    config = HttpClientConfig(
        base_url=settings.supabase_rest_url or "",
        timeout_seconds=float(settings.remote_store_timeout_seconds),
        max_retries=settings.remote_store_max_retries,
        backoff_base_seconds=float(settings.remote_store_backoff_seconds),
        default_headers={
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "User-Agent": f"{settings.service_name}/{settings.version}",
        },
        circuit_breaker=CircuitBreakerConfig(
            enabled=settings.remote_store_circuit_breaker_enabled,
            fail_max=settings.remote_store_circuit_breaker_fail_max,
            reset_timeout_seconds=float(
                settings.remote_store_circuit_breaker_reset_timeout_seconds
            ),
        ),
    )
    logger.info(
        "Record store HTTP client created",
        extra={"timeout_seconds": config.timeout_seconds, "max_retries": config.max_retries},
    )
    return HttpClient(config, transport=transport)
