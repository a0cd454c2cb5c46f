"""
Object storage collaborator: signed URLs and artifact uploads.
"""

from __future__ import annotations

import io
import logging
import secrets
import time
from threading import Lock
from typing import Protocol
from urllib.parse import quote, unquote

import requests
from requests.adapters import BaseAdapter

from storybook_fulfillment.common.errors import StorageError
from storybook_fulfillment.common.http import build_session

logger = logging.getLogger(__name__)


class ArtifactStorage(Protocol):
    def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str: ...

    def upload(self, bucket: str, path: str, payload: bytes, content_type: str) -> None: ...


class InMemoryStorage:
    """
    Process-local storage used by tests and local rendering runs.

    Signed URLs point at ``base_url`` and embed an expiry so that
    :meth:`read_signed_url` can serve them back, either to a fake HTTP session
    or through :class:`InMemoryStorageAdapter` on a real one.
    """

    def __init__(self, *, base_url: str = "https://storage.local") -> None:
        self.base_url = base_url.rstrip("/")
        self._lock = Lock()
        self._objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.upload_count = 0

    def put(self, bucket: str, path: str, payload: bytes, content_type: str = "image/png") -> None:
        with self._lock:
            self._objects[(bucket, path)] = (payload, content_type)

    def get(self, bucket: str, path: str) -> bytes | None:
        with self._lock:
            stored = self._objects.get((bucket, path))
        return stored[0] if stored else None

    def keys(self, bucket: str | None = None) -> list[tuple[str, str]]:
        with self._lock:
            return sorted(key for key in self._objects if bucket is None or key[0] == bucket)

    def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        if self.get(bucket, path) is None:
            raise StorageError(f"Object not found: {bucket}/{path}")
        expires = int(time.time()) + int(ttl_seconds)
        token = secrets.token_urlsafe(8)
        return f"{self.base_url}/{bucket}/{quote(path)}?token={token}&expires={expires}"

    def upload(self, bucket: str, path: str, payload: bytes, content_type: str) -> None:
        with self._lock:
            self._objects[(bucket, path)] = (bytes(payload), content_type)
            self.upload_count += 1

    def read_signed_url(self, url: str) -> bytes | None:
        if not url.startswith(self.base_url + "/"):
            return None
        remainder = url[len(self.base_url) + 1 :].split("?", 1)[0]
        bucket, _, quoted_path = remainder.partition("/")
        return self.get(bucket, unquote(quoted_path))


class InMemoryStorageAdapter(BaseAdapter):
    """
    Transport adapter answering GETs for URLs minted by an :class:`InMemoryStorage`.

    Mount it on the ``base_url`` prefix of a :class:`requests.Session` so
    that local runs can download their own artifacts::

        session.mount(storage.base_url + "/", InMemoryStorageAdapter(storage))
    """

    def __init__(self, storage: InMemoryStorage) -> None:
        super().__init__()
        self._storage = storage

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        payload = self._storage.read_signed_url(request.url) if request.method == "GET" else None
        response = requests.Response()
        response.request = request
        response.url = request.url
        if payload is None:
            response.status_code, response.reason = 404, "Not Found"
            payload = b""
        else:
            response.status_code, response.reason = 200, "OK"
        response.headers["Content-Length"] = str(len(payload))
        response.raw = io.BytesIO(payload)
        return response

    def close(self) -> None:
        pass


class SupabaseStorage:
    """
    Storage backed by the Supabase Storage REST API.
    """

    def __init__(
        self,
        *,
        base_url: str,
        service_role_key: str,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        retries: int = 3,
    ) -> None:
        if not base_url or not service_role_key:
            raise ValueError("Supabase storage requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.")
        self._base_url = base_url.rstrip("/")
        self._key = service_role_key
        self._timeout = timeout
        # Signing and upserting uploads are safe to repeat.
        self._session = session or build_session(
            retries=retries,
            allowed_methods=frozenset({"GET", "POST", "PUT"}),
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._key}", "apikey": self._key}

    def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        endpoint = f"{self._base_url}/storage/v1/object/sign/{bucket}/{quote(path)}"
        try:
            response = self._session.post(
                endpoint,
                json={"expiresIn": int(ttl_seconds)},
                headers=self._headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise StorageError(f"Signed URL request failed for {bucket}/{path}: {exc}") from exc

        if not response.ok:
            raise StorageError(
                f"Failed to sign {bucket}/{path}: {response.status_code} {response.text[:200]}"
            )

        signed = (response.json() or {}).get("signedURL") or (response.json() or {}).get("signedUrl")
        if not signed:
            raise StorageError(f"Signed URL missing from storage response for {bucket}/{path}")
        if signed.startswith("http"):
            return signed
        return f"{self._base_url}/storage/v1{signed}"

    def upload(self, bucket: str, path: str, payload: bytes, content_type: str) -> None:
        endpoint = f"{self._base_url}/storage/v1/object/{bucket}/{quote(path)}"
        headers = {**self._headers, "Content-Type": content_type, "x-upsert": "true"}
        try:
            response = self._session.post(
                endpoint,
                data=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise StorageError(f"Upload failed for {bucket}/{path}: {exc}") from exc

        if not response.ok:
            raise StorageError(
                f"Failed to upload {bucket}/{path}: {response.status_code} {response.text[:200]}"
            )
        logger.info(
            "Uploaded artifact",
            extra={"bucket": bucket, "path": path, "size_bytes": len(payload)},
        )
