# app/llm/service/router_service.py
import asyncio
from typing import Dict, Optional

from app.chat.entity.chat import GenerationRequest, GenerationResult
from app.conf.config import ProviderCallPolicy
from app.core.errors import TransportError
from app.core.logger import get_logger
from app.llm.service.provider.base_provider import BaseProvider

logger = get_logger("ProviderRouter")


class ProviderRouter:
    """
    Selects the adapter for a turn and calls it under the call policy:
    a per-call deadline, and bounded exponential-backoff retries for
    transport failures only. Provider rejections are never retried.
    """

    def __init__(
        self,
        text_provider: BaseProvider,
        image_providers: Dict[str, BaseProvider],
        fallback_image_provider: str,
        policy: Optional[ProviderCallPolicy] = None,
    ):
        if fallback_image_provider not in image_providers:
            raise ValueError(f"Unknown fallback image provider: {fallback_image_provider}")
        self.text_provider = text_provider
        self.image_providers = image_providers
        self.fallback_image_provider = fallback_image_provider
        self.policy = policy or ProviderCallPolicy()

    def select_image_provider(self, selector: Optional[str]) -> BaseProvider:
        """Exact selector match, otherwise the fallback provider."""
        provider = self.image_providers.get(selector or "")
        if provider is None:
            logger.debug(f"No image provider named {selector!r}; using {self.fallback_image_provider}")
            provider = self.image_providers[self.fallback_image_provider]
        return provider

    async def _with_timeout(self, coro, timeout_ms: int):
        """Helper to apply timeout."""
        try:
            return await asyncio.wait_for(coro, timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise TransportError(f"Provider call exceeded {timeout_ms}ms deadline")

    async def _sleep(self, ms: int):
        await asyncio.sleep(ms / 1000)

    async def generate(self, provider: BaseProvider, request: GenerationRequest) -> GenerationResult:
        attempts = max(1, self.policy.max_retries + 1)
        for attempt in range(attempts):
            try:
                return await self._with_timeout(provider.generate(request), self.policy.request_timeout_ms)
            except TransportError as e:
                if attempt == attempts - 1:
                    logger.error(f"Provider {provider.name} unreachable after {attempts} attempt(s): {e}")
                    raise
                delay = self.policy.retry_delay_ms * (2 ** attempt)
                logger.warning(
                    f"Provider {provider.name} attempt {attempt + 1}/{attempts} failed: {e}. "
                    f"Retrying in {delay}ms..."
                )
                await self._sleep(delay)

    def __repr__(self):
        return f"<ProviderRouter image_providers={list(self.image_providers)}>"
