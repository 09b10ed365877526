import httpx
import logging
from typing import Optional
from urllib.parse import quote

from pkg.storage.types import StorageConfig


class SupabaseStorageClient:
    """Supabase Storage REST API client"""

    def __init__(self, logger: logging.Logger, config: StorageConfig, client: Optional[httpx.AsyncClient] = None):
        self.logger = logger
        self.url = config.url.rstrip('/')
        self.bucket = config.bucket
        self.async_client = client or httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {config.service_key}",
                "apikey": config.service_key,
            },
            timeout=config.timeout
        )
        self.logger.info(f"Supabase storage client initialized for bucket {self.bucket}")

    def _object_path(self, name: str) -> str:
        return f"{quote(self.bucket)}/{quote(name)}"

    async def upload(self, data: bytes, name: str, content_type: str) -> str:
        """Upload bytes under name, returns the object key"""
        try:
            response = await self.async_client.post(
                f"{self.url}/storage/v1/object/{self._object_path(name)}",
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "false"},
            )
            response.raise_for_status()
            self.logger.debug(f"Uploaded {name} ({len(data)} bytes, {content_type})")
            return name
        except Exception as e:
            self.logger.error(f"Storage upload of {name} failed: {e}")
            raise

    async def create_signed_url(self, name: str, expires_in: int) -> str:
        """Issue a read URL for name valid for expires_in seconds"""
        try:
            response = await self.async_client.post(
                f"{self.url}/storage/v1/object/sign/{self._object_path(name)}",
                json={"expiresIn": expires_in},
            )
            response.raise_for_status()
            data = response.json()
            signed = data.get("signedURL") or data.get("signedUrl")
            if not signed:
                raise ValueError(f"Storage returned no signed URL for {name}")
            if signed.startswith("http"):
                return signed
            return f"{self.url}/storage/v1/{signed.lstrip('/')}"
        except Exception as e:
            self.logger.error(f"Signing {name} failed: {e}")
            raise

    async def delete(self, name: str) -> None:
        """Delete object"""
        try:
            response = await self.async_client.delete(
                f"{self.url}/storage/v1/object/{self._object_path(name)}"
            )
            response.raise_for_status()
            self.logger.debug(f"Deleted {name}")
        except Exception as e:
            self.logger.error(f"Storage delete of {name} failed: {e}")
            raise

    async def close(self) -> None:
        await self.async_client.aclose()
