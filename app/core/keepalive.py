import asyncio
from typing import Optional

import httpx

from app.core.logger import get_logger

logger = get_logger("Keepalive")


async def ping_once(url: str, client: httpx.AsyncClient) -> Optional[int]:
    """GET url once, returning the status code or None on network failure."""
    try:
        res = await client.get(url)
        logger.info(f"Self-ping status: {res.status_code}")
        return res.status_code
    except httpx.HTTPError as e:
        logger.error(f"Self-ping error: {e}")
        return None


async def run_keepalive(url: str, interval_seconds: float, client: Optional[httpx.AsyncClient] = None) -> None:
    """Ping url every interval_seconds until cancelled, keeping free-tier hosts awake."""
    owned = client is None
    client = client or httpx.AsyncClient(timeout=10.0)
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            logger.debug("Pinging to keep the server awake...")
            await ping_once(url, client)
    finally:
        if owned:
            await client.aclose()
