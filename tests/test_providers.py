"""Tests for the text, DALL-E and Stability adapters."""

import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from app.chat.entity.chat import GenerationRequest, HistoryEntry
from app.conf.config import OpenAIConfig, StabilityConfig
from app.core.errors import InvalidImageSizeError, ProviderError, TransportError
from app.llm.service.provider.dalle import DalleProvider
from app.llm.service.provider.openai_provider import OpenAIProvider, translate_openai_error
from app.llm.service.provider.stability import StabilityProvider, parse_image_size
from conftest import PNG_1, PNG_2

OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class FakeCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


class FakeImages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


def fake_openai_client(completions=None, images=None):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions), images=images)


def completion(*contents):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=c)) for c in contents])


def text_request(*turns):
    history = [HistoryEntry(role=role, content=content) for role, content in turns]
    return GenerationRequest(prompt=history[-1].content, capability="text", history=history)


def status_error(status: int, body: dict):
    response = httpx.Response(status, request=OPENAI_REQUEST, json={"error": body})
    return openai.APIStatusError(f"Error code: {status}", response=response, body=body)


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_sends_history_and_policy(self):
        completions = FakeCompletions(response=completion("  Hello back!  \n"))
        provider = OpenAIProvider(OpenAIConfig(api_key="sk-test"), client=fake_openai_client(completions))

        result = await provider.generate(text_request(("user", "Hi"), ("system", "generated image"), ("user", "Again")))

        assert result.text == "Hello back!"
        call = completions.calls[0]
        assert call["model"] == "gpt-4"
        assert call["messages"] == [
            {"role": "user", "content": "Hi"},
            {"role": "system", "content": "generated image"},
            {"role": "user", "content": "Again"},
        ]
        assert call["temperature"] == 0.5
        assert call["max_tokens"] == 2000
        assert call["top_p"] == 1
        assert call["frequency_penalty"] == 0.5
        assert call["presence_penalty"] == 0

    @pytest.mark.asyncio
    async def test_no_choices_is_provider_error(self):
        provider = OpenAIProvider(OpenAIConfig(api_key="sk-test"), client=fake_openai_client(FakeCompletions(completion())))

        with pytest.raises(ProviderError, match="no choices"):
            await provider.generate(text_request(("user", "Hi")))

    @pytest.mark.asyncio
    async def test_blank_content_is_provider_error(self):
        provider = OpenAIProvider(OpenAIConfig(api_key="sk-test"), client=fake_openai_client(FakeCompletions(completion(None))))

        with pytest.raises(ProviderError, match="empty"):
            await provider.generate(text_request(("user", "Hi")))

    @pytest.mark.asyncio
    async def test_status_error_carries_upstream_status_and_message(self):
        error = status_error(429, {"message": "Rate limit reached for gpt-4", "type": "requests"})
        provider = OpenAIProvider(OpenAIConfig(api_key="sk-test"), client=fake_openai_client(FakeCompletions(error=error)))

        with pytest.raises(ProviderError) as exc:
            await provider.generate(text_request(("user", "Hi")))

        assert exc.value.status_code == 429
        assert exc.value.message == "Rate limit reached for gpt-4"

    def test_connection_error_maps_to_transport(self):
        error = openai.APIConnectionError(request=OPENAI_REQUEST)

        assert isinstance(translate_openai_error(error, "openai"), TransportError)

    @pytest.mark.asyncio
    async def test_disabled_without_key(self):
        provider = OpenAIProvider(OpenAIConfig(api_key=None))

        assert not provider.is_enabled()
        with pytest.raises(ProviderError):
            await provider.generate(text_request(("user", "Hi")))


class TestDalleProvider:
    @pytest.mark.asyncio
    async def test_requests_one_url_image(self):
        images = FakeImages(response=SimpleNamespace(data=[SimpleNamespace(url="https://oai.test/img.png")]))
        provider = DalleProvider(OpenAIConfig(api_key="sk-test"), client=fake_openai_client(images=images))

        result = await provider.generate(GenerationRequest(prompt="a cat", capability="image", image_size="512x512"))

        assert result.images == ["https://oai.test/img.png"]
        assert images.calls == [{"prompt": "a cat", "n": 1, "size": "512x512", "response_format": "url"}]

    @pytest.mark.asyncio
    async def test_rejected_prompt(self):
        error = status_error(400, {"message": "Your request was rejected by the safety system."})
        provider = DalleProvider(OpenAIConfig(api_key="sk-test"), client=fake_openai_client(images=FakeImages(error=error)))

        with pytest.raises(ProviderError) as exc:
            await provider.generate(GenerationRequest(prompt="x", capability="image", image_size="512x512"))

        assert exc.value.status_code == 400
        assert "safety system" in exc.value.message


class TestImageSizeParsing:
    def test_square(self):
        assert parse_image_size("512x512") == (512, 512)

    def test_width_first(self):
        assert parse_image_size("768x512") == (768, 512)

    @pytest.mark.parametrize("size", ["512", "512x", "x512", "axb", "512*512", "", None, "0x512", "-1x5"])
    def test_malformed_sizes_fail_fast(self, size):
        with pytest.raises(InvalidImageSizeError, match="expected '<width>x<height>'|positive"):
            parse_image_size(size)


def stability_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = StabilityConfig(api_key="sk-stab", api_host="https://stability.test", engine_id="sd-test")
    return StabilityProvider(config, client=client)


class TestStabilityProvider:
    @pytest.mark.asyncio
    async def test_builds_request_and_keeps_artifact_order(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"artifacts": [
                {"base64": PNG_1, "seed": 1, "finishReason": "SUCCESS"},
                {"base64": PNG_2, "seed": 2, "finishReason": "SUCCESS"},
            ]})

        result = await stability_with(handler).generate(
            GenerationRequest(prompt="two moons", capability="image", image_size="256x384")
        )

        assert result.images == [PNG_1, PNG_2]
        assert seen["url"] == "https://stability.test/v1/generation/sd-test/text-to-image"
        assert seen["auth"] == "Bearer sk-stab"
        assert seen["body"] == {
            "text_prompts": [{"text": "two moons", "weight": 0.5}],
            "cfg_scale": 7,
            "clip_guidance_preset": "FAST_BLUE",
            "height": 384,
            "width": 256,
            "samples": 1,
            "steps": 30,
        }

    @pytest.mark.asyncio
    async def test_non_success_status_is_provider_error(self):
        def handler(request):
            return httpx.Response(401, json={"id": "x", "name": "unauthorized", "message": "Missing API key"})

        with pytest.raises(ProviderError) as exc:
            await stability_with(handler).generate(GenerationRequest(prompt="p", capability="image", image_size="512x512"))

        assert exc.value.status_code == 401
        assert exc.value.message == "Missing API key"

    @pytest.mark.asyncio
    async def test_network_failure_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError):
            await stability_with(handler).generate(GenerationRequest(prompt="p", capability="image", image_size="512x512"))

    @pytest.mark.asyncio
    async def test_bad_size_never_hits_network(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"artifacts": []})

        with pytest.raises(InvalidImageSizeError):
            await stability_with(handler).generate(GenerationRequest(prompt="p", capability="image", image_size="large"))

        assert calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("artifacts", [
        [{"base64": PNG_1}, {"finishReason": "ERROR"}],
        [{"base64": PNG_1}, "not-an-object"],
    ])
    async def test_malformed_artifact_is_provider_error(self, artifacts):
        def handler(request):
            return httpx.Response(200, json={"artifacts": artifacts})

        with pytest.raises(ProviderError, match="malformed artifact") as exc:
            await stability_with(handler).generate(GenerationRequest(prompt="p", capability="image", image_size="512x512"))

        assert exc.value.status_code == 502
