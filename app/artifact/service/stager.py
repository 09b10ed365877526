# app/artifact/service/stager.py
"""
Artifact staging: turns a generated image into a durable, publicly
resolvable URL.

Accepted payloads:
    - remote URLs (``http://`` / ``https://``), fetched over HTTP
    - base64 strings, optionally prefixed with ``data:image/<ext>;base64,``

Every call uploads a new object named ``<uuid4>.<ext>``, so staging the
same payload twice yields two distinct artifacts.
"""

import base64
import binascii
import re
import uuid
from abc import ABC, abstractmethod
from typing import Optional, Tuple
from urllib.parse import urlparse

import httpx

from app.chat.entity.chat import StagedArtifact
from app.core.errors import StagingError
from app.core.logger import get_logger

logger = get_logger("ArtifactStager")

DEFAULT_EXTENSION = "png"
DEFAULT_CONTENT_TYPE = "image/png"
TEN_YEARS_SECONDS = 10 * 365 * 24 * 3600

_DATA_URL_PREFIX = re.compile(r"^data:(image/([\w.+-]+));base64,", re.IGNORECASE)
_EXTENSION = re.compile(r"^[a-z0-9]{1,5}$", re.IGNORECASE)


class IBlobStore(ABC):
    @abstractmethod
    async def upload(self, data: bytes, name: str, content_type: str) -> str:
        pass

    @abstractmethod
    async def create_signed_url(self, name: str, expires_in: int) -> str:
        pass

    @abstractmethod
    async def delete(self, name: str) -> None:
        pass


def _extension_for(content_type: str) -> str:
    subtype = content_type.split("/", 1)[-1].split(";")[0].strip().lower()
    subtype = subtype.split("+")[0]  # svg+xml -> svg
    return subtype if _EXTENSION.match(subtype) else DEFAULT_EXTENSION


def decode_inline_image(payload: str) -> Tuple[bytes, str, str]:
    """Decode a base64 image payload into (bytes, content_type, extension)."""
    content_type = DEFAULT_CONTENT_TYPE
    extension = DEFAULT_EXTENSION
    data = payload.strip()

    match = _DATA_URL_PREFIX.match(data)
    if match:
        content_type = match.group(1).lower()
        extension = _extension_for(content_type)
        data = data[match.end():]

    try:
        raw = base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise StagingError(f"Image payload is not valid base64: {e}") from e
    if not raw:
        raise StagingError("Image payload is empty")
    return raw, content_type, extension


def is_remote_url(payload: str) -> bool:
    return payload.startswith("http://") or payload.startswith("https://")


class ArtifactStager:
    """Uploads generated images to the blob store and issues long-lived read URLs."""

    def __init__(
        self,
        blob_store: IBlobStore,
        http_client: Optional[httpx.AsyncClient] = None,
        url_expiry_seconds: int = TEN_YEARS_SECONDS,
    ):
        self.blob_store = blob_store
        self._http_client = http_client
        self.url_expiry_seconds = url_expiry_seconds

    async def _get(self, url: str) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(url, follow_redirects=True)
        async with httpx.AsyncClient(timeout=60.0) as client:
            return await client.get(url, follow_redirects=True)

    async def _fetch(self, url: str) -> Tuple[bytes, str, str]:
        try:
            res = await self._get(url)
            res.raise_for_status()
        except httpx.HTTPError as e:
            raise StagingError(f"Could not fetch generated image: {e}") from e

        content_type = (res.headers.get("content-type") or DEFAULT_CONTENT_TYPE).split(";")[0].strip()
        path_ext = urlparse(url).path.rsplit(".", 1)
        if len(path_ext) == 2 and _EXTENSION.match(path_ext[1]):
            extension = path_ext[1].lower()
        else:
            extension = _extension_for(content_type)
        return res.content, content_type, extension

    async def stage(self, payload: str) -> StagedArtifact:
        if is_remote_url(payload):
            data, content_type, extension = await self._fetch(payload)
        else:
            data, content_type, extension = decode_inline_image(payload)

        name = f"{uuid.uuid4()}.{extension}"
        try:
            await self.blob_store.upload(data, name, content_type)
        except Exception as e:
            raise StagingError(f"Uploading {name} failed: {e}") from e

        try:
            url = await self.blob_store.create_signed_url(name, self.url_expiry_seconds)
        except Exception as e:
            await self._delete_quietly(name)
            raise StagingError(f"Issuing read URL for {name} failed: {e}") from e

        logger.info(f"Staged artifact {name} ({len(data)} bytes, {content_type})")
        return StagedArtifact(url=url, name=name, content_type=content_type, size=len(data))

    async def discard(self, artifact: StagedArtifact) -> None:
        """Delete a previously staged artifact."""
        try:
            await self.blob_store.delete(artifact.name)
        except Exception as e:
            raise StagingError(f"Deleting {artifact.name} failed: {e}") from e
        logger.info(f"Discarded artifact {artifact.name}")

    async def _delete_quietly(self, name: str) -> None:
        try:
            await self.blob_store.delete(name)
        except Exception as e:
            logger.warning(f"Could not remove orphaned upload {name}: {e}")
