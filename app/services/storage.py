"""
Storage Service
Handles blob storage for generated assets - supports Google Cloud Storage and local filesystem.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import RetryableError, NonRetryableError
from app.core.retry import with_retry

logger = logging.getLogger(__name__)

GCS_PUBLIC_PREFIX = "https://storage.googleapis.com/"


class StorageService:
    """Service for file storage operations."""

    def __init__(self, base_path: Optional[str] = None):
        self.use_gcs = settings.USE_GCS and base_path is None

        if self.use_gcs:
            # Google Cloud Storage
            from google.cloud import storage
            self.gcs_client = storage.Client(project=settings.GCP_PROJECT_ID or None)
            self.bucket = self.gcs_client.bucket(settings.GCS_BUCKET)
            logger.info(f"[Storage] Using Google Cloud Storage: {settings.GCS_BUCKET}")
        else:
            self.base_path = Path(base_path or settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

    async def upload_bytes(self, data: bytes, path: str, content_type: str = "image/png") -> str:
        """Upload bytes and return the public URL."""
        if self.use_gcs:
            return await self._upload_gcs(data, path, content_type)
        return await self._upload_local(data, path)

    async def _upload_gcs(self, data: bytes, path: str, content_type: str) -> str:
        """Upload to Google Cloud Storage."""
        blob = self.bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        return self.get_public_url(path)

    def _local_path(self, path: str) -> Path:
        """Resolve `path` under the storage root; anything outside it does not exist."""
        root = self.base_path.resolve()
        file_path = (root / path).resolve()
        if not file_path.is_relative_to(root) or file_path == root:
            raise FileNotFoundError(f"Path outside storage: {path}")
        return file_path

    async def _upload_local(self, data: bytes, path: str) -> str:
        """Save file to local filesystem."""
        file_path = self._local_path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "wb") as f:
            f.write(data)

        return self.get_public_url(path)

    async def get_file(self, path: str) -> bytes:
        """Get file contents; paths escaping the storage root raise FileNotFoundError."""
        if self.use_gcs:
            if ".." in path.split("/"):
                raise FileNotFoundError(f"Path outside storage: {path}")
            blob = self.bucket.blob(path)
            return blob.download_as_bytes()
        file_path = self._local_path(path)
        with open(file_path, "rb") as f:
            return f.read()

    def get_public_url(self, path: str) -> str:
        """Get public URL for file."""
        if self.use_gcs:
            return f"{GCS_PUBLIC_PREFIX}{settings.GCS_BUCKET}/{path}"
        return f"{settings.PUBLIC_FILES_URL.rstrip('/')}/{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        """Map one of our own public URLs back to its storage path."""
        files_prefix = f"{settings.PUBLIC_FILES_URL.rstrip('/')}/"
        if url.startswith(files_prefix):
            return url[len(files_prefix):]
        if url.startswith(GCS_PUBLIC_PREFIX):
            # Format: https://storage.googleapis.com/bucket-name/path/to/file.png
            parts = url[len(GCS_PUBLIC_PREFIX):].split("/", 1)
            if len(parts) > 1:
                return parts[1]
        return None

    async def download_bytes(self, url: str) -> bytes:
        """
        Download file bytes from a URL (our own storage or http(s)://).

        Args:
            url: File URL

        Returns:
            File bytes
        """
        own_path = self.path_from_url(url)
        if own_path is not None:
            try:
                return await self.get_file(own_path)
            except FileNotFoundError as e:
                raise NonRetryableError(f"Stored file not found: {e}")

        if url.startswith(("http://", "https://")):
            return await fetch_url(url)

        raise NonRetryableError(f"Unsupported URL scheme: {url[:80]}")


@with_retry(max_retries=2, retry_delay=1.0)
async def fetch_url(url: str, timeout: Optional[float] = None) -> bytes:
    """GET a remote file; 5xx and transport errors are retried."""
    try:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            response = await client.get(url, timeout=timeout or settings.DOWNLOAD_TIMEOUT)
    except httpx.TransportError as e:
        raise RetryableError(f"Download failed for {url[:80]}: {e}")

    if response.status_code >= 500:
        raise RetryableError(f"Download failed for {url[:80]}: HTTP {response.status_code}")
    if response.status_code >= 400:
        raise NonRetryableError(f"Download failed for {url[:80]}: HTTP {response.status_code}")
    return response.content


__all__ = ["StorageService", "fetch_url"]
