"""Circuit breaker para o store remoto.

Após `fail_max` falhas transitórias consecutivas o circuito abre e as
chamadas falham de imediato até `reset_timeout_seconds`; então uma chamada
de teste (half-open) decide se fecha ou reabre.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum


class BreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuração com defaults conservadores."""

    enabled: bool = False
    fail_max: int = 5
    reset_timeout_seconds: float = 30.0
    half_open_max_calls: int = 1


class CircuitBreaker:
    """Estado compartilhado entre as requisições de um mesmo cliente."""

    def __init__(
        self,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._clock = clock or time.monotonic
        self._lock = asyncio.Lock()
        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._probes_in_flight = 0

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._consecutive_failures

    def seconds_until_probe(self) -> float:
        """Tempo restante até a próxima chamada de teste (0 se não aberto)."""
        if self._state is not BreakerState.OPEN:
            return 0.0
        remaining = self._config.reset_timeout_seconds - (self._clock() - self._opened_at)
        return max(0.0, remaining)

    async def allow_request(self) -> bool:
        if not self._config.enabled:
            return True

        async with self._lock:
            if self._state is BreakerState.OPEN:
                if self.seconds_until_probe() > 0:
                    return False
                self._state = BreakerState.HALF_OPEN
                self._probes_in_flight = 0

            if self._state is BreakerState.HALF_OPEN:
                if self._probes_in_flight >= self._config.half_open_max_calls:
                    return False
                self._probes_in_flight += 1
            return True

    async def record_success(self) -> BreakerState:
        if self._config.enabled:
            async with self._lock:
                self._close()
        return self._state

    async def record_failure(self, is_retryable: bool) -> BreakerState:
        """Registra falha; erros não transitórios (ex.: 4xx de schema) não contam."""
        if not self._config.enabled:
            return self._state

        async with self._lock:
            if not is_retryable:
                self._close()
            elif self._state is BreakerState.HALF_OPEN:
                self._open()
            else:
                self._consecutive_failures += 1
                if self._consecutive_failures >= self._config.fail_max:
                    self._open()
            return self._state

    def _close(self) -> None:
        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._probes_in_flight = 0

    def _open(self) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = self._clock()
        self._probes_in_flight = 0
