from dataclasses import dataclass


@dataclass
class StorageConfig:
    url: str
    service_key: str
    bucket: str = "generated-images"
    signed_url_expiry_seconds: int = 10 * 365 * 24 * 3600  # effectively permanent
    timeout: float = 30.0
