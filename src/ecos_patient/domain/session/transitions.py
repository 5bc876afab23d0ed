"""Tabela de transições do ciclo de vida.

- TRANSITIONS[(current_state, event)] = next_state
- Estados terminais não aparecem como origem
- Validação pura: sem side effects
"""

from __future__ import annotations

from ecos_patient.domain.session.events import LifecycleEvent
from ecos_patient.domain.session.states import TERMINAL_STATES, LifecycleState

TRANSITIONS: dict[tuple[LifecycleState, LifecycleEvent], LifecycleState] = {
    (LifecycleState.UNINITIALIZED, LifecycleEvent.FIRST_TURN): LifecycleState.ACTIVE,
    (LifecycleState.UNINITIALIZED, LifecycleEvent.CANCEL): LifecycleState.CANCELLED,
    (LifecycleState.ACTIVE, LifecycleEvent.TURN): LifecycleState.ACTIVE,
    (LifecycleState.ACTIVE, LifecycleEvent.COMPLETE): LifecycleState.COMPLETED,
    (LifecycleState.ACTIVE, LifecycleEvent.CANCEL): LifecycleState.CANCELLED,
}


def validate_transition(
    current_state: LifecycleState, event: LifecycleEvent
) -> tuple[bool, LifecycleState | None, str]:
    """Valida se uma transição é permitida.

    Retorna:
    - (True, next_state, ""): transição válida
    - (False, None, motivo): transição inválida

    Nunca lança exceção; apenas valida.
    """
    if current_state in TERMINAL_STATES:
        return False, None, f"Terminal state {current_state} has no transitions"

    next_state = TRANSITIONS.get((current_state, event))
    if next_state is None:
        return False, None, f"No transition from {current_state} on event {event}"
    return True, next_state, ""
