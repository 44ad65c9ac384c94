"""
Remove.bg Service
Synchronous background removal over HTTP.
"""

import logging
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import NonRetryableError, ProviderError, RetryableError
from app.core.retry import with_retry

logger = logging.getLogger(__name__)

PROVIDER = "remove.bg"


class RemoveBgService:
    """Service for remove.bg background removal."""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.REMOVEBG_API_KEY
        self.api_url = api_url or settings.REMOVEBG_API_URL

    @with_retry(max_retries=2, retry_delay=2.0)
    async def remove_background(self, image_url: str) -> bytes:
        """
        Remove the background of an image.

        Args:
            image_url: Publicly reachable source image

        Returns:
            Transparent PNG bytes
        """
        if not self.api_key:
            raise NonRetryableError("REMOVEBG_API_KEY is not configured")

        logger.info(f"[RemoveBg] Removing background: {image_url[:80]}")

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.api_url,
                    data={"image_url": image_url, "size": "auto", "format": "png"},
                    headers={"X-Api-Key": self.api_key},
                    timeout=settings.DOWNLOAD_TIMEOUT,
                )
        except httpx.TransportError as e:
            raise RetryableError(f"remove.bg unreachable: {e}")

        if response.status_code == 429 or response.status_code >= 500:
            raise RetryableError(f"remove.bg HTTP {response.status_code}")
        if response.status_code != 200:
            raise ProviderError(PROVIDER, self._error_title(response))

        logger.info(f"[RemoveBg] Background removed ({len(response.content)} bytes)")
        return response.content

    @staticmethod
    def _error_title(response: httpx.Response) -> str:
        try:
            errors = response.json().get("errors") or []
        except ValueError:
            errors = []
        if errors and errors[0].get("title"):
            return errors[0]["title"]
        return f"HTTP {response.status_code}"
