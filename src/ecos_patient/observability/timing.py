"""Latência por componente do turno (geração do paciente, persistência).

Cada bloco medido gera uma linha ``component_latency`` com o resultado do
bloco. Acima de ``warn_after_ms`` a linha sobe para WARNING, o que separa
gerações lentas (candidatas a fallback por timeout) do ruído normal.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Generator

from ecos_patient.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


@contextlib.contextmanager
def timed(
    component: str, warn_after_ms: float | None = None, **fields: object
) -> Generator[None, None, None]:
    """Mede o bloco e registra ``elapsed_ms`` e ``outcome`` (ok/error).

    Uso:
        with timed("actor_generation", warn_after_ms=5000, session_id=short_id(sid)):
            reply = await generator.generate(...)

    Exceções do bloco são registradas e relançadas.
    """
    start = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except BaseException:
        outcome = "error"
        raise
    finally:
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        extra = {"component": component, "elapsed_ms": elapsed_ms, "outcome": outcome, **fields}
        if warn_after_ms is not None and elapsed_ms > warn_after_ms:
            logger.warning("component_latency", extra={**extra, "slow": True})
        else:
            logger.info("component_latency", extra=extra)
