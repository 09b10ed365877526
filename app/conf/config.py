# app/conf/config.py

from dataclasses import dataclass, field
from typing import Optional

from app.core.config import Settings
from pkg.db_util.types import PostgresConfig
from pkg.storage.types import StorageConfig


@dataclass
class OpenAIConfig:
    api_key: Optional[str]
    chat_model: str = "gpt-4"
    image_model: Optional[str] = None  # None keeps the API default (dall-e-2)


@dataclass
class StabilityConfig:
    api_key: Optional[str]
    api_host: str = "https://api.stability.ai"
    engine_id: str = "stable-diffusion-v1-5"


@dataclass
class ProviderCallPolicy:
    request_timeout_ms: int = 60000
    max_retries: int = 2
    retry_delay_ms: int = 500


@dataclass
class AppConfig:

    openai: OpenAIConfig

    stability: StabilityConfig

    storage: StorageConfig

    postgres: Optional[PostgresConfig]

    call_policy: ProviderCallPolicy = field(default_factory=ProviderCallPolicy)


def build_app_config(s: Settings) -> AppConfig:
    """Turn environment settings into the explicit config objects handed to each component."""
    postgres = None
    if s.POSTGRES_HOST and s.POSTGRES_USER and s.POSTGRES_PASSWORD:
        postgres = PostgresConfig(
            host=s.POSTGRES_HOST.strip(),
            port=s.POSTGRES_PORT,
            username=s.POSTGRES_USER.strip(),
            password=s.POSTGRES_PASSWORD.strip(),
            database=s.POSTGRES_DB.strip(),
            pool_timeout=30,
        )

    return AppConfig(
        openai=OpenAIConfig(
            api_key=s.OPENAI_API_KEY,
            chat_model=s.OPENAI_CHAT_MODEL,
            image_model=s.OPENAI_IMAGE_MODEL,
        ),
        stability=StabilityConfig(
            api_key=s.STABILITY_API_KEY,
            api_host=s.STABILITY_API_HOST.rstrip("/"),
            engine_id=s.STABILITY_ENGINE_ID,
        ),
        storage=StorageConfig(
            url=(s.SUPABASE_URL or "").rstrip("/"),
            service_key=s.SUPABASE_SERVICE_KEY or "",
            bucket=s.STORAGE_BUCKET,
            signed_url_expiry_seconds=s.SIGNED_URL_EXPIRY_SECONDS,
        ),
        postgres=postgres,
        call_policy=ProviderCallPolicy(
            request_timeout_ms=s.REQUEST_TIMEOUT_MS,
            max_retries=s.PROVIDER_MAX_RETRIES,
            retry_delay_ms=s.PROVIDER_RETRY_DELAY_MS,
        ),
    )
