"""FSM do ciclo de vida da sessão de simulação.

Exporta:
- LifecycleState: estados do ciclo de vida
- LifecycleEvent: eventos que disparam transições
- validate_transition: validador puro
"""

from ecos_patient.domain.session.events import LifecycleEvent
from ecos_patient.domain.session.states import (
    NON_TERMINAL_STATES,
    TERMINAL_STATES,
    LifecycleState,
)
from ecos_patient.domain.session.transitions import validate_transition

__all__ = [
    "LifecycleState",
    "LifecycleEvent",
    "validate_transition",
    "TERMINAL_STATES",
    "NON_TERMINAL_STATES",
]
