"""Geradores de falas do paciente virtual.

- OpenAIActorGenerator: chat completion via AsyncOpenAI
- DeterministicActorGenerator: respostas fixas (dev/testes, OpenAI desabilitado)

Erros da API viram GenerationError; o orquestrador decide o fallback.
"""

from __future__ import annotations

import logging
from typing import Any

from openai import APIError, APITimeoutError, AsyncOpenAI

from ecos_patient.domain.errors import GenerationError
from ecos_patient.domain.protocols import TextGeneratorProtocol
from ecos_patient.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

EMPTY_COMPLETION_REPLY = "Je ne me sens pas bien..."

DETERMINISTIC_REPLIES: tuple[str, ...] = (
    "Je ne sais pas trop... Qu'est-ce que vous voulez savoir exactement ?",
    "Ça ne va pas très bien depuis quelques jours.",
    "Je préfère ne pas en parler tout de suite.",
    "Vous pouvez répéter ? Je suis un peu perdu.",
)


class OpenAIActorGenerator(TextGeneratorProtocol):
    """Gera a fala do paciente com o modelo de chat configurado."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        timeout_seconds: float = 20.0,
        max_retries: int = 1,
        temperature: float = 0.7,
        max_tokens: int = 300,
        top_p: float = 0.95,
        frequency_penalty: float = 0.5,
        presence_penalty: float = 0.5,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(
            api_key=api_key, timeout=timeout_seconds, max_retries=max_retries
        )
        self._model = model
        self._params: dict[str, Any] = {
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "frequency_penalty": frequency_penalty,
            "presence_penalty": presence_penalty,
        }

    @classmethod
    def from_settings(cls, settings: Any) -> OpenAIActorGenerator:
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout_seconds=settings.openai_timeout_seconds,
            max_retries=settings.openai_max_retries,
            temperature=settings.openai_temperature,
            max_tokens=settings.openai_max_tokens,
            top_p=settings.openai_top_p,
            frequency_penalty=settings.openai_frequency_penalty,
            presence_penalty=settings.openai_presence_penalty,
        )

    async def generate(
        self,
        system_prompt: str,
        history: list[dict[str, str]],
        user_text: str,
    ) -> str:
        messages: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
        messages.extend(history)
        messages.append({"role": "user", "content": user_text})

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,  # type: ignore[arg-type]
                **self._params,
            )
        except (APIError, APITimeoutError) as e:
            logger.warning(
                "actor_generation_error",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise GenerationError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        return content or EMPTY_COMPLETION_REPLY


class DeterministicActorGenerator(TextGeneratorProtocol):
    """Respostas fixas, escolhidas pela quantidade de falas já trocadas."""

    def __init__(self, replies: tuple[str, ...] = DETERMINISTIC_REPLIES) -> None:
        if not replies:
            raise ValueError("replies não pode ser vazio")
        self._replies = replies

    async def generate(
        self,
        system_prompt: str,
        history: list[dict[str, str]],
        user_text: str,
    ) -> str:
        turn = sum(1 for msg in history if msg.get("role") == "user")
        return self._replies[turn % len(self._replies)]
