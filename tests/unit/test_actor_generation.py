"""Testes de prompts do paciente e dos geradores de fala."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APITimeoutError

from ecos_patient.ai.openai_client import (
    DETERMINISTIC_REPLIES,
    EMPTY_COMPLETION_REPLY,
    DeterministicActorGenerator,
    OpenAIActorGenerator,
)
from ecos_patient.ai.prompts import (
    DEFAULT_OPENING_LINE,
    DEFAULT_PERSONA,
    build_system_prompt,
    opening_line,
    role_instruction,
)
from ecos_patient.domain.errors import GenerationError
from ecos_patient.domain.models import ConversationContext


def _completion(content: str | None) -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _mock_client(result=None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=result, side_effect=error)
    return client


class TestPrompts:
    def test_default_persona_when_scenario_has_none(self):
        prompt = build_system_prompt(None, ConversationContext(), "infirmier")

        assert DEFAULT_PERSONA in prompt
        assert "TU ES UN PATIENT, PAS UN SOIGNANT" in prompt
        assert "ÉTAT ÉMOTIONNEL ACTUEL" not in prompt

    def test_persona_directives_and_topics_are_included(self):
        context = ConversationContext(topics_text="Symptômes discutés: douleur")

        prompt = build_system_prompt(
            "Tu es Marc, 28 ans.", context, "docteur", directives="ÉTAT: CALME (20/100)"
        )

        assert "Tu es Marc, 28 ans." in prompt
        assert "ÉTAT: CALME (20/100)" in prompt
        assert "CONTEXTE MÉDICAL ACTUEL:" in prompt
        assert "Symptômes discutés: douleur" in prompt
        assert "ADAPTE ton comportement" in prompt
        assert role_instruction("docteur") in prompt

    def test_non_doctor_roles_use_infirmier_instruction(self):
        assert role_instruction("étudiant") == role_instruction("infirmier")
        assert "docteur" in role_instruction("docteur")

    def test_opening_line(self):
        assert opening_line(None) == DEFAULT_OPENING_LINE
        assert opening_line("J'ai mal.") == "J'ai mal."


class TestOpenAIActorGenerator:
    @pytest.mark.asyncio
    async def test_sends_system_history_and_user_messages(self):
        client = _mock_client(result=_completion("Laissez-moi tranquille."))
        generator = OpenAIActorGenerator(model="gpt-4o", temperature=0.7, client=client)
        history = [{"role": "assistant", "content": "Qui vous envoie ?"}]

        reply = await generator.generate("system", history, "Bonjour")

        assert reply == "Laissez-moi tranquille."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 300
        assert kwargs["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "assistant", "content": "Qui vous envoie ?"},
            {"role": "user", "content": "Bonjour"},
        ]

    @pytest.mark.asyncio
    async def test_empty_completion_uses_default_reply(self):
        generator = OpenAIActorGenerator(client=_mock_client(result=_completion(None)))

        assert await generator.generate("system", [], "Bonjour") == EMPTY_COMPLETION_REPLY

    @pytest.mark.asyncio
    async def test_api_errors_become_generation_error(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        client = _mock_client(error=APITimeoutError(request=request))
        generator = OpenAIActorGenerator(client=client)

        with pytest.raises(GenerationError):
            await generator.generate("system", [], "Bonjour")

    def test_from_settings(self, settings_factory):
        settings = settings_factory(
            openai_enabled=True, openai_api_key="sk-test", openai_model="gpt-4o-mini"
        )

        generator = OpenAIActorGenerator.from_settings(settings)

        assert generator._model == "gpt-4o-mini"
        assert generator._params["presence_penalty"] == 0.5


class TestDeterministicActorGenerator:
    @pytest.mark.asyncio
    async def test_reply_depends_on_user_turns(self):
        generator = DeterministicActorGenerator()
        history = [
            {"role": "user", "content": "a"},
            {"role": "assistant", "content": "b"},
        ]

        assert await generator.generate("s", [], "x") == DETERMINISTIC_REPLIES[0]
        assert await generator.generate("s", history, "x") == DETERMINISTIC_REPLIES[1]

    def test_rejects_empty_replies(self):
        with pytest.raises(ValueError):
            DeterministicActorGenerator(replies=())
