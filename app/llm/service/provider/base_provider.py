# app/llm/service/provider/base_provider.py
from abc import ABC, abstractmethod

from app.chat.entity.chat import GenerationRequest, GenerationResult


class BaseProvider(ABC):
    """Abstract base for every generation service adapter."""

    name: str = "provider"

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate a result for the request.

        Raises ProviderError when the service rejects the request and
        TransportError when it cannot be reached.
        """

    def is_enabled(self) -> bool:
        """Whether this provider is enabled/usable (e.g., API key present)."""
        return True
