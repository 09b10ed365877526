"""Tests for ProviderRouter call policy and selection."""

import asyncio

import pytest

from app.chat.entity.chat import GenerationRequest, TextResult
from app.conf.config import ProviderCallPolicy
from app.core.errors import ProviderError, TransportError
from app.llm.service.provider.base_provider import BaseProvider
from app.llm.service.router_service import ProviderRouter
from conftest import FakeProvider

REQUEST = GenerationRequest(prompt="hi", capability="text")


class SlowProvider(BaseProvider):
    name = "slow"

    def __init__(self):
        self.calls = 0

    async def generate(self, request):
        self.calls += 1
        await asyncio.sleep(5)


def make_router(text_provider, max_retries=2, timeout_ms=2000):
    images = {"DALL-E": FakeProvider("DALL-E"), "stability": FakeProvider("stability")}
    return ProviderRouter(
        text_provider=text_provider,
        image_providers=images,
        fallback_image_provider="stability",
        policy=ProviderCallPolicy(request_timeout_ms=timeout_ms, max_retries=max_retries, retry_delay_ms=0),
    )


class TestSelection:
    def test_exact_name(self):
        router = make_router(FakeProvider("openai"))
        assert router.select_image_provider("DALL-E").name == "DALL-E"

    @pytest.mark.parametrize("selector", [None, "", "Stable Diffusion", "dall-e"])
    def test_anything_else_uses_fallback(self, selector):
        router = make_router(FakeProvider("openai"))
        assert router.select_image_provider(selector).name == "stability"

    def test_fallback_must_exist(self):
        with pytest.raises(ValueError):
            ProviderRouter(FakeProvider("openai"), {"DALL-E": FakeProvider("DALL-E")}, fallback_image_provider="nope")


class TestCallPolicy:
    @pytest.mark.asyncio
    async def test_transport_errors_retry_until_budget_exhausted(self):
        provider = FakeProvider("openai", [TransportError("down")])
        router = make_router(provider, max_retries=2)

        with pytest.raises(TransportError):
            await router.generate(provider, REQUEST)

        assert len(provider.requests) == 3

    @pytest.mark.asyncio
    async def test_provider_errors_are_not_retried(self):
        provider = FakeProvider("openai", [ProviderError("quota", status=429)])
        router = make_router(provider)

        with pytest.raises(ProviderError):
            await router.generate(provider, REQUEST)

        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_deadline_becomes_transport_error(self):
        provider = SlowProvider()
        router = make_router(provider, max_retries=0, timeout_ms=20)

        with pytest.raises(TransportError, match="deadline"):
            await router.generate(provider, REQUEST)

        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_negative_retry_budget_still_calls_once(self):
        provider = FakeProvider("openai", [TextResult(text="ok")])
        router = make_router(provider, max_retries=-3)

        assert (await router.generate(provider, REQUEST)).text == "ok"
        assert len(provider.requests) == 1
