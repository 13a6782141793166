"""
Object storage for catalog images (Supabase Storage REST API).

Files land in one bucket under a logical folder per collection. Names are
generated from a millisecond timestamp plus a random suffix because nothing
checks for an existing object before upload.
"""

import logging
import mimetypes
import secrets
import time
from typing import Optional

import httpx

from config import Settings
from exceptions import CollaboratorError, ValidationError

logger = logging.getLogger(__name__)

FOLDERS = ("products", "categories", "brands")
_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def make_object_path(filename: str, folder: str = "products") -> str:
    if folder not in FOLDERS:
        raise ValidationError(f"Unknown storage folder: {folder}")
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{folder}/{int(time.time() * 1000)}_{suffix}.{ext}"


class ObjectStorage:
    def __init__(self, base_url: Optional[str], api_key: Optional[str], bucket: str = "images",
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "ObjectStorage":
        return cls(settings.SUPABASE_URL, settings.SUPABASE_KEY, settings.STORAGE_BUCKET, client=client)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=30.0) as client:
            return await client.request(method, url, **kwargs)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def path_from_url(self, public_url: str) -> Optional[str]:
        marker = f"/{self.bucket}/"
        if not public_url or marker not in public_url:
            return None
        return public_url.split(marker, 1)[1] or None

    async def upload(self, content: bytes, filename: str, folder: str = "products",
                     content_type: Optional[str] = None) -> str:
        """Upload `content` and return its public URL."""
        if not self.configured:
            raise CollaboratorError("Storage not configured")
        path = make_object_path(filename, folder)
        headers = {
            **self._headers(),
            "Content-Type": content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream",
            "cache-control": "3600",
            "x-upsert": "false",
        }
        try:
            resp = await self._request(
                "POST", f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                content=content, headers=headers,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Upload of %s failed: %s", path, e)
            raise CollaboratorError(f"Upload failed: {e}") from e
        return self.public_url(path)

    async def delete(self, public_url: Optional[str]) -> None:
        """Best effort: failures are logged, never raised."""
        if not self.configured or not public_url:
            return
        path = self.path_from_url(public_url)
        if path is None:
            logger.warning("Not a storage URL, skipping delete: %s", public_url)
            return
        try:
            resp = await self._request(
                "DELETE", f"{self.base_url}/storage/v1/object/{self.bucket}",
                json={"prefixes": [path]}, headers=self._headers(),
            )
            resp.raise_for_status()
        except Exception:
            logger.exception("Failed to delete image %s", path)
