"""Protocolo do gerador de falas do paciente virtual."""

from __future__ import annotations

from abc import ABC, abstractmethod


class TextGeneratorProtocol(ABC):
    """Recebe prompt de sistema, histórico em formato chat e a fala atual."""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        history: list[dict[str, str]],
        user_text: str,
    ) -> str: ...
