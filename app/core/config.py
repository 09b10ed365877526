import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global configuration for environment variables."""

    APP_NAME: str = "Chat Dispatch Service"
    ENV: str = os.getenv("ENV", "development")

    # Server config
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", 5000))
    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "https://chat-cbd.vercel.app")

    # Provider credentials
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    OPENAI_CHAT_MODEL: str = os.getenv("OPENAI_CHAT_MODEL", "gpt-4")
    OPENAI_IMAGE_MODEL: str | None = os.getenv("OPENAI_IMAGE_MODEL")
    STABILITY_API_KEY: str | None = os.getenv("STABILITY_API_KEY")
    STABILITY_API_HOST: str = os.getenv("STABILITY_API_HOST", "https://api.stability.ai")
    STABILITY_ENGINE_ID: str = os.getenv("STABILITY_ENGINE_ID", "stable-diffusion-v1-5")

    # Conversation store
    POSTGRES_HOST: str | None = os.getenv("POSTGRES_HOST")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", 5432))
    POSTGRES_USER: str | None = os.getenv("POSTGRES_USER")
    POSTGRES_PASSWORD: str | None = os.getenv("POSTGRES_PASSWORD")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "postgres")

    # Blob store (Supabase Storage)
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_KEY: str | None = os.getenv("SUPABASE_SERVICE_KEY")
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "generated-images")
    SIGNED_URL_EXPIRY_SECONDS: int = int(os.getenv("SIGNED_URL_EXPIRY_SECONDS", 10 * 365 * 24 * 3600))

    # Provider call policy
    REQUEST_TIMEOUT_MS: int = int(os.getenv("REQUEST_TIMEOUT_MS", "60000"))
    PROVIDER_MAX_RETRIES: int = int(os.getenv("PROVIDER_MAX_RETRIES", "2"))
    PROVIDER_RETRY_DELAY_MS: int = int(os.getenv("PROVIDER_RETRY_DELAY_MS", "500"))

    # Self-ping keepalive (disabled when unset)
    KEEPALIVE_URL: str | None = os.getenv("KEEPALIVE_URL")
    KEEPALIVE_INTERVAL_SECONDS: int = int(os.getenv("KEEPALIVE_INTERVAL_SECONDS", 14 * 60))

    # Debug
    DEBUG: bool = os.getenv("DEBUG", "True").lower() in ("1", "true")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


settings = Settings()
