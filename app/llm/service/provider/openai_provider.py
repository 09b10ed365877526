# app/llm/service/provider/openai_provider.py
from typing import Optional

import openai
from openai import AsyncOpenAI

from app.chat.entity.chat import GenerationRequest, TextResult
from app.conf.config import OpenAIConfig
from app.core.errors import DispatchError, ProviderError, TransportError, UNKNOWN_ERROR_MESSAGE
from app.core.logger import get_logger
from .base_provider import BaseProvider

logger = get_logger("OpenAIProvider")

# Sampling policy for chat completions
CHAT_TEMPERATURE = 0.5
CHAT_MAX_TOKENS = 2000
CHAT_TOP_P = 1
CHAT_FREQUENCY_PENALTY = 0.5
CHAT_PRESENCE_PENALTY = 0


def build_openai_client(config: OpenAIConfig) -> Optional[AsyncOpenAI]:
    # Retries are handled by the router so only transport failures are retried
    return AsyncOpenAI(api_key=config.api_key, max_retries=0) if config.api_key else None


def translate_openai_error(error: openai.OpenAIError, provider: str) -> DispatchError:
    """Map an OpenAI SDK exception onto the dispatch error taxonomy."""
    if isinstance(error, openai.APIStatusError):
        message = UNKNOWN_ERROR_MESSAGE
        body = error.body
        if isinstance(body, dict):
            # The SDK unwraps {"error": {...}} but older payloads keep the envelope
            inner = body.get("error") if isinstance(body.get("error"), dict) else body
            message = inner.get("message") or message
        return ProviderError(message, status=error.status_code, provider=provider)
    if isinstance(error, openai.APIConnectionError):
        return TransportError(f"{provider} unreachable: {error}")
    return ProviderError(str(error) or UNKNOWN_ERROR_MESSAGE, provider=provider)


class OpenAIProvider(BaseProvider):
    """Chat completion over the full conversation history."""

    name = "openai"

    def __init__(self, config: OpenAIConfig, client: Optional[AsyncOpenAI] = None):
        self.model = config.chat_model
        self.client = client or build_openai_client(config)
        self._enabled = self.client is not None

    def is_enabled(self) -> bool:
        return self._enabled

    async def generate(self, request: GenerationRequest) -> TextResult:
        if not self.is_enabled():
            raise ProviderError("OpenAI disabled: missing API key", provider=self.name)

        messages = [entry.model_dump() for entry in request.history]
        logger.debug(f"chat completion | model={self.model} history={len(messages)}")
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=CHAT_TEMPERATURE,
                max_tokens=CHAT_MAX_TOKENS,
                top_p=CHAT_TOP_P,
                frequency_penalty=CHAT_FREQUENCY_PENALTY,
                presence_penalty=CHAT_PRESENCE_PENALTY,
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e, self.name) from e

        if not resp.choices:
            raise ProviderError("OpenAI returned no choices", provider=self.name)
        content = (resp.choices[0].message.content or "").strip()
        if not content:
            raise ProviderError("OpenAI returned an empty completion", provider=self.name)
        return TextResult(text=content)
