"""Object storage for outbound media (Supabase Storage)."""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Protocol

import requests

from ..errors import StorageError

LOGGER = logging.getLogger(__name__)


class MediaStorage(Protocol):
    def upload(
        self,
        data: bytes,
        folder: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        ...


class SupabaseStorage:
    """Uploads bytes into a public bucket and returns their public URL."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._bucket = bucket
        self._session = session or requests.Session()
        self._timeout = timeout

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{path}"

    def upload(
        self,
        data: bytes,
        folder: str,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        if not data:
            raise StorageError("Cannot upload an empty file")
        name = f"{uuid.uuid4().hex}_{filename}" if filename else uuid.uuid4().hex
        path = f"{folder.strip('/')}/{name}"
        url = f"{self._base_url}/storage/v1/object/{self._bucket}/{path}"
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": content_type or "application/octet-stream",
        }
        try:
            response = self._session.post(url, data=data, headers=headers, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.error("Media upload to %s failed: %s", path, exc)
            raise StorageError(f"Failed to upload media: {exc}") from exc
        LOGGER.info("Uploaded %d bytes to %s", len(data), path)
        return self.public_url(path)
