"""Completion providers: Claude (Anthropic) and Gemini (Google)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import anthropic
from google import genai
from google.genai import types

from twitch_sidekick.core.logging import get_session_stats, log_llm_round

if TYPE_CHECKING:
    from twitch_sidekick.config import LLMConfig
    from twitch_sidekick.core.responder import PromptPayload

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """The provider failed or returned something unusable."""


class CompletionProvider(Protocol):
    """Turns a prompt payload into reply text."""

    name: str
    model: str

    async def complete(self, payload: PromptPayload, timeout: float) -> str: ...


class AnthropicCompletionProvider:
    """Claude via the Messages API."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5"):
        self._client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model = model

    async def complete(self, payload: PromptPayload, timeout: float) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=payload.max_tokens,
                temperature=payload.temperature,
                system=payload.system,
                messages=[{"role": "user", "content": payload.render_user()}],
                timeout=timeout,
            )
        except anthropic.APIError as e:
            raise CompletionError(f"Anthropic request failed: {e}") from e

        log_llm_round(
            component=self.name,
            model=self.model,
            tokens_in=response.usage.input_tokens,
            tokens_out=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        get_session_stats().increment_api_call(self.model)

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text.strip():
            raise CompletionError(
                f"No text in response (content types: {[b.type for b in response.content]})"
            )
        return text.strip()


class GeminiCompletionProvider:
    """Gemini via google-genai."""

    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash"):
        self._client = genai.Client(api_key=api_key)
        self.model = model

    async def complete(self, payload: PromptPayload, timeout: float) -> str:
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=payload.render_user(),
            config=types.GenerateContentConfig(
                system_instruction=payload.system,
                temperature=payload.temperature,
                max_output_tokens=payload.max_tokens,
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            ),
        )

        usage = response.usage_metadata if response else None
        log_llm_round(
            component=self.name,
            model=self.model,
            tokens_in=usage.prompt_token_count if usage else None,
            tokens_out=usage.candidates_token_count if usage else None,
        )
        get_session_stats().increment_api_call(self.model)

        text = response.text if response else None
        if not text or not text.strip():
            raise CompletionError("Empty response from Gemini")
        return text.strip()


def create_completion_provider(config: LLMConfig) -> CompletionProvider | None:
    """Build the configured provider, or None when credentials are missing."""
    if config.provider == "anthropic":
        if not config.anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY not configured: generated replies disabled")
            return None
        return AnthropicCompletionProvider(
            config.anthropic_api_key.get_secret_value(), config.anthropic_model
        )

    if config.provider == "gemini":
        if not config.google_api_key:
            logger.warning("GOOGLE_API_KEY not configured: generated replies disabled")
            return None
        return GeminiCompletionProvider(
            config.google_api_key.get_secret_value(), config.gemini_model
        )

    logger.info("Completion provider disabled by configuration")
    return None
