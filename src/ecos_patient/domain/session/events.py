"""Eventos do ciclo de vida da sessão."""

from __future__ import annotations

from enum import StrEnum


class LifecycleEvent(StrEnum):
    FIRST_TURN = "FIRST_TURN"  # primeira fala do participante
    TURN = "TURN"  # falas seguintes
    COMPLETE = "COMPLETE"
    CANCEL = "CANCEL"
