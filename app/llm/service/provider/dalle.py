# app/llm/service/provider/dalle.py
from typing import Optional

import openai
from openai import AsyncOpenAI

from app.chat.entity.chat import GenerationRequest, ImageResult
from app.conf.config import OpenAIConfig
from app.core.errors import ProviderError
from app.core.logger import get_logger
from .base_provider import BaseProvider
from .openai_provider import build_openai_client, translate_openai_error

logger = get_logger("DalleProvider")


class DalleProvider(BaseProvider):
    """Single image from the OpenAI images endpoint, returned as a remote URL."""

    name = "DALL-E"

    def __init__(self, config: OpenAIConfig, client: Optional[AsyncOpenAI] = None):
        self.model = config.image_model
        self.client = client or build_openai_client(config)
        self._enabled = self.client is not None

    def is_enabled(self) -> bool:
        return self._enabled

    async def generate(self, request: GenerationRequest) -> ImageResult:
        if not self.is_enabled():
            raise ProviderError("DALL-E disabled: missing OpenAI API key", provider=self.name)

        params = {
            "prompt": request.prompt,
            "n": 1,
            "size": request.image_size,
            "response_format": "url",
        }
        if self.model:
            params["model"] = self.model

        logger.debug(f"image request | size={request.image_size}")
        try:
            resp = await self.client.images.generate(**params)
        except openai.OpenAIError as e:
            raise translate_openai_error(e, self.name) from e

        url = resp.data[0].url if resp.data else None
        if not url:
            raise ProviderError("DALL-E returned no image", provider=self.name)
        return ImageResult(images=[url])
