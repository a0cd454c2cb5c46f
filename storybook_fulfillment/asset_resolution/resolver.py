"""
Turn stored asset references into fetchable URLs and image bytes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

import requests

from storybook_fulfillment.common.errors import StorageError
from storybook_fulfillment.common.http import build_session, is_absolute_url
from storybook_fulfillment.integrations.storage import ArtifactStorage

logger = logging.getLogger(__name__)

DEFAULT_ASSET_TTL_SECONDS = 60 * 60


@dataclass(frozen=True)
class ResolvedAsset:
    """
    Outcome of resolving one stored reference.

    ``url`` is ``None`` when resolution failed; ``error`` then carries the reason.
    Callers decide whether a failed asset is fatal.
    """

    reference: str
    url: str | None
    bucket: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return bool(self.url)


class AssetResolver:
    """
    Resolve storage paths to time-limited signed URLs and download their bytes.

    Parameters
    ----------
    storage:
        Storage collaborator able to mint signed URLs.
    ttl_seconds:
        Lifetime of minted URLs. Must outlive document assembly.
    session:
        Optional pre-configured :class:`requests.Session`. Mainly useful for testing.
    """

    def __init__(
        self,
        storage: ArtifactStorage,
        *,
        ttl_seconds: int = DEFAULT_ASSET_TTL_SECONDS,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        retries: int = 3,
    ) -> None:
        self._storage = storage
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._session = session or build_session(retries=retries)

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def resolve(self, bucket: str, path: str | None) -> ResolvedAsset:
        reference = (path or "").strip()
        if not reference:
            return ResolvedAsset(reference="", url=None, bucket=bucket, error="empty reference")

        # Legacy rows and externally hosted art already carry a full URL.
        if is_absolute_url(reference):
            return ResolvedAsset(reference=reference, url=reference)

        try:
            url = self._storage.create_signed_url(bucket, reference, self._ttl_seconds)
        except StorageError as exc:
            logger.warning(
                "Unable to sign asset reference",
                extra={"bucket": bucket, "path": reference, "error": str(exc)},
            )
            return ResolvedAsset(reference=reference, url=None, bucket=bucket, error=str(exc))

        return ResolvedAsset(reference=reference, url=url, bucket=bucket)

    def resolve_many(
        self,
        bucket: str,
        paths: Sequence[str | None],
        *,
        max_workers: int = 4,
    ) -> list[ResolvedAsset]:
        """
        Resolve independent references concurrently, returned in input order.
        """
        if not paths:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(paths)))) as executor:
            return list(executor.map(lambda path: self.resolve(bucket, path), paths))

    def fetch_bytes(self, url: str | None) -> bytes | None:
        if not url:
            return None
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Asset download failed", extra={"url": _redact(url), "error": str(exc)})
            return None
        return response.content


def _redact(url: str) -> str:
    return url.split("?", 1)[0]
