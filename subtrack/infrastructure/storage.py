"""
Blob storage client for the managed backend's storage REST API.

Endpoints used:
  POST {STORAGE_URL}/storage/v1/object/{bucket}/{path}        upload (x-upsert)
  POST {STORAGE_URL}/storage/v1/object/sign/{bucket}/{path}   signed URL
  POST {STORAGE_URL}/storage/v1/object/list/{bucket}          list (existence check)
"""
import logging
import time
from typing import Callable

import requests

from subtrack.config import get_settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    pass


class BlobStorage:
    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        timeout: float = 10,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout
        self.http = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "BlobStorage":
        settings = get_settings()
        return cls(settings.STORAGE_URL, settings.STORAGE_SERVICE_KEY, settings.STORAGE_BUCKET)

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        headers.update(extra)
        return headers

    def upload(self, path: str, data: bytes, content_type: str, cache_control: str = "3600") -> None:
        """Upload (overwrite) an object. Raises StorageError on any failure."""
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        try:
            resp = self.http.post(
                url,
                data=data,
                headers=self._headers(**{
                    "Content-Type": content_type,
                    "cache-control": f"max-age={cache_control}",
                    "x-upsert": "true",
                }),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"Upload of {path} failed: {e}") from e
        if resp.status_code >= 400:
            raise StorageError(f"Upload of {path} failed: HTTP {resp.status_code} {resp.text[:200]}")

    def upload_with_retry(
        self,
        path: str,
        data: bytes,
        content_type: str,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Upload with linear backoff between attempts (backoff × attempt seconds).

        Raises:
            StorageError: after the last failed attempt
        """
        last_error: StorageError | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                self.upload(path, data, content_type)
                return
            except StorageError as e:
                last_error = e
                logger.warning("Upload attempt %d/%d for %s failed: %s", attempt, max_attempts, path, e)
                if attempt < max_attempts:
                    sleep(backoff_seconds * attempt)
        raise StorageError(f"Upload failed after {max_attempts} attempts: {last_error}")

    def create_signed_url(self, path: str, expires_in: int = 3600) -> str:
        url = f"{self.base_url}/storage/v1/object/sign/{self.bucket}/{path}"
        try:
            resp = self.http.post(
                url,
                json={"expiresIn": expires_in},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"Signing {path} failed: {e}") from e
        if resp.status_code >= 400:
            raise StorageError(f"Signing {path} failed: HTTP {resp.status_code}")
        signed = (resp.json() or {}).get("signedURL")
        if not signed:
            raise StorageError(f"Signing {path} failed: empty response")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"
