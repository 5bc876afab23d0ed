"""Exceções de domínio.

Taxonomia:
- TurnValidationError: entrada inválida, rejeitada antes de qualquer mutação
- ScenarioConfigError: configuração de cenário malformada (erro de programação)
- InvalidSessionTransition: mudança de status a partir de estado terminal
- GenerationError: falha do gerador de texto (tratada com fala de fallback)
- RecordStoreError: falha do store remoto (tratada com espelho local)
"""

from __future__ import annotations


class TurnValidationError(ValueError):
    """Mensagem do participante inválida (vazia, longa demais, ids ausentes)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ScenarioConfigError(ValueError):
    """Perfil emocional ou configuração de cenário inconsistente."""


class InvalidSessionTransition(RuntimeError):
    """Transição de status não permitida pela máquina de estados da sessão."""


class GenerationError(RuntimeError):
    """Gerador de falas do paciente indisponível ou com resposta inválida."""


class RecordStoreError(RuntimeError):
    """Falha do store remoto (rede, schema, linha ausente onde era exigida).

    Sempre capturada pelo PersistenceGateway e convertida em fallback.
    """
