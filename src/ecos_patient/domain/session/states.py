"""Estados do ciclo de vida de uma sessão de simulação.

uninitialized → active → completed | cancelled (terminais).
Os valores persistidos coincidem com SessionStatus.
"""

from __future__ import annotations

from enum import StrEnum

from ecos_patient.domain.enums import SessionStatus


class LifecycleState(StrEnum):
    """Posição da sessão no ciclo de vida."""

    UNINITIALIZED = "uninitialized"
    """Nenhum registro criado ainda (primeira fala não processada)."""

    ACTIVE = "active"
    """Sessão criada; falas sendo trocadas."""

    COMPLETED = "completed"
    """Simulação concluída pelo participante; end_time registrado."""

    CANCELLED = "cancelled"
    """Simulação abandonada."""

    @classmethod
    def from_status(cls, status: SessionStatus | str | None) -> LifecycleState:
        """Converte o status persistido; ausente → UNINITIALIZED."""
        if status is None:
            return cls.UNINITIALIZED
        try:
            return cls(str(status))
        except ValueError:
            return cls.UNINITIALIZED


TERMINAL_STATES = frozenset({LifecycleState.COMPLETED, LifecycleState.CANCELLED})
"""Estados sem transições de saída."""

NON_TERMINAL_STATES = frozenset({s for s in LifecycleState if s not in TERMINAL_STATES})
