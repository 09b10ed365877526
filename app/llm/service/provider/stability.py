# app/llm/service/provider/stability.py
import re
from typing import Optional, Tuple

import httpx

from app.chat.entity.chat import GenerationRequest, ImageResult
from app.conf.config import StabilityConfig
from app.core.errors import InvalidImageSizeError, ProviderError, TransportError, UNKNOWN_ERROR_MESSAGE
from app.core.logger import get_logger
from .base_provider import BaseProvider

# Generation policy
PROMPT_WEIGHT = 0.5
CFG_SCALE = 7
CLIP_GUIDANCE_PRESET = "FAST_BLUE"
SAMPLES = 1
STEPS = 30

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*x\s*(\d+)\s*$", re.IGNORECASE)


def parse_image_size(size: Optional[str]) -> Tuple[int, int]:
    """Parse '<width>x<height>' into integers, e.g. '512x512' -> (512, 512)."""
    match = _SIZE_PATTERN.match(size or "")
    if not match:
        raise InvalidImageSizeError(f"Invalid image size {size!r}: expected '<width>x<height>', e.g. '512x512'")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise InvalidImageSizeError(f"Invalid image size {size!r}: dimensions must be positive")
    return width, height


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or UNKNOWN_ERROR_MESSAGE
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text or UNKNOWN_ERROR_MESSAGE


class StabilityProvider(BaseProvider):
    """Handles Stability AI text-to-image generation."""

    name = "stability"

    def __init__(self, config: StabilityConfig, client: Optional[httpx.AsyncClient] = None):
        self.api_key = config.api_key
        self.endpoint = f"{config.api_host.rstrip('/')}/v1/generation/{config.engine_id}/text-to-image"
        self._client = client
        self._enabled = bool(self.api_key)
        self._logger = get_logger("StabilityProvider")

    def is_enabled(self) -> bool:
        return self._enabled

    async def _post(self, payload: dict, headers: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.endpoint, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=120.0) as client:
            return await client.post(self.endpoint, json=payload, headers=headers)

    async def generate(self, request: GenerationRequest) -> ImageResult:
        width, height = parse_image_size(request.image_size)
        if not self._enabled:
            raise ProviderError("Stability provider disabled: missing STABILITY_API_KEY", provider=self.name)

        payload = {
            "text_prompts": [{"text": request.prompt, "weight": PROMPT_WEIGHT}],
            "cfg_scale": CFG_SCALE,
            "clip_guidance_preset": CLIP_GUIDANCE_PRESET,
            "height": height,
            "width": width,
            "samples": SAMPLES,
            "steps": STEPS,
        }
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            res = await self._post(payload, headers)
        except httpx.RequestError as e:
            self._logger.error(f"Stability request failed: {e}")
            raise TransportError(f"Stability unreachable: {e}") from e

        if res.is_error:
            message = _error_message(res)
            self._logger.error(f"Stability API error: status={res.status_code} message={message}")
            raise ProviderError(message, status=res.status_code, provider=self.name)

        try:
            data = res.json()
        except ValueError as e:
            raise ProviderError("Stability returned a malformed response", status=502, provider=self.name) from e
        artifacts = (data.get("artifacts") or []) if isinstance(data, dict) else []

        if not artifacts:
            raise ProviderError("Stability returned no artifacts", provider=self.name)
        images = []
        for artifact in artifacts:
            payload = artifact.get("base64") if isinstance(artifact, dict) else None
            if not payload:
                raise ProviderError("Stability returned a malformed artifact", status=502, provider=self.name)
            images.append(payload)
        self._logger.info(f"Stability generated {len(images)} artifact(s) at {width}x{height}")
        return ImageResult(images=images)
