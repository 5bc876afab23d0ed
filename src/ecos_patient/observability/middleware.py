"""Correlation id por request HTTP do simulador.

O id recebido no header configurado (``CORRELATION_ID_HEADER``) é reaproveitado
quando é curto e imprimível; caso contrário um UUID novo é gerado. O valor fica
num ContextVar lido pelo filtro de logging e devolvido no mesmo header.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

MAX_CORRELATION_ID_LENGTH = 128

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    return _correlation_id.get()


def set_correlation_id(value: str) -> None:
    """Fixa o id fora de um request (reconciliação periódica, testes)."""
    _correlation_id.set(value)


def accept_correlation_id(incoming: str | None) -> str:
    """Id do cliente, se utilizável nos logs; senão um UUID novo."""
    if (
        incoming
        and len(incoming) <= MAX_CORRELATION_ID_LENGTH
        and incoming.isprintable()
    ):
        return incoming
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    def __init__(  # type: ignore[no-untyped-def]
        self, app, header_name: str = "x-correlation-id"
    ) -> None:
        super().__init__(app)
        self._header_name = header_name.lower()

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        correlation_id = accept_correlation_id(request.headers.get(self._header_name))
        token = _correlation_id.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            _correlation_id.reset(token)

        response.headers[self._header_name] = correlation_id
        return response
