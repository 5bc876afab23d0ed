"""Enums de domínio: papéis, status de sessão, categorias emocionais e tipos de registro."""

from __future__ import annotations

from enum import StrEnum


class MessageRole(StrEnum):
    """Autor de uma mensagem da conversa."""

    PARTICIPANT = "participant"  # estudante em formação
    ACTOR = "actor"  # paciente virtual


class ParticipantRole(StrEnum):
    """Papel declarado pelo participante ao se apresentar."""

    INFIRMIER = "infirmier"
    DOCTEUR = "docteur"
    ETUDIANT = "étudiant"


class SessionStatus(StrEnum):
    """Status persistido de uma sessão de simulação."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EmotionalCategory(StrEnum):
    """Faixa qualitativa derivada do nível de agitação.

    DISABLED indica cenário sem rastreamento emocional configurado.
    """

    CALM = "calm"
    NERVOUS = "nervous"
    AGITATED = "agitated"
    AGGRESSIVE = "aggressive"
    DISABLED = "disabled"


class RecordKind(StrEnum):
    """Recursos lógicos do store remoto gerenciados pelo gateway."""

    SESSION = "session"
    EXCHANGE = "exchange"
    EVALUATION = "evaluation"


class ReferenceKind(StrEnum):
    """Entidades referenciadas por chave estrangeira (upsert best-effort)."""

    PARTICIPANT = "participant"
