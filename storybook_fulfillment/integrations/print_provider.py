"""
Print-on-demand provider client (Lulu xPress print jobs).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Mapping, Protocol

import requests

from storybook_fulfillment.common.errors import PrintProviderError
from storybook_fulfillment.common.http import build_session

logger = logging.getLogger(__name__)

TOKEN_PATH = "/auth/realms/glasstree/protocol/openid-connect/token"
PRINT_JOBS_PATH = "/print-jobs/"
TOKEN_REFRESH_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class ManufacturingJob:
    """
    One print job. ``external_id`` carries the order id so the job can be
    matched back to its order.
    """

    external_id: str
    title: str
    product_code: str
    interior_url: str
    cover_url: str
    shipping_address: Mapping[str, Any]
    contact_email: str
    shipping_level: str = "MAIL"
    quantity: int = 1

    def to_payload(self) -> dict[str, Any]:
        return {
            "external_id": self.external_id,
            "line_items": [
                {
                    "external_id": self.external_id,
                    "title": self.title,
                    "quantity": self.quantity,
                    "printable_normalization": {
                        "pod_package_id": self.product_code,
                        "cover": {"source_url": self.cover_url},
                        "interior": {"source_url": self.interior_url},
                    },
                }
            ],
            "shipping_address": dict(self.shipping_address),
            "shipping_level": self.shipping_level,
            "contact_email": self.contact_email,
        }


@dataclass(frozen=True)
class SubmittedJob:
    job_id: str
    status: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict)


class PrintProvider(Protocol):
    def submit_manufacturing_job(self, job: ManufacturingJob) -> SubmittedJob: ...


class LuluPrintProvider:
    def __init__(
        self,
        *,
        api_url: str,
        client_key: str | None,
        client_secret: str | None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        retries: int = 3,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._client_key = client_key
        self._client_secret = client_secret
        self._timeout = timeout
        self._session = session or build_session(retries=retries)
        self._lock = Lock()
        self._token: str | None = None
        self._token_expires_at = 0.0

    def submit_manufacturing_job(self, job: ManufacturingJob) -> SubmittedJob:
        response = self._post_job(job)
        if response.status_code == 401:
            logger.info("Provider token rejected; refreshing once")
            self._invalidate_token()
            response = self._post_job(job)

        if not response.ok:
            raise PrintProviderError(
                f"Print job submission failed: {response.status_code} {response.text[:300]}",
                status_code=response.status_code,
            )

        payload = response.json()
        job_id = payload.get("id")
        if job_id in (None, ""):
            raise PrintProviderError("Print job response did not include an id", status_code=response.status_code)

        status = (payload.get("status") or {}).get("name")
        logger.info(
            "Submitted print job",
            extra={"order_id": job.external_id, "provider_job_id": str(job_id), "provider_status": status},
        )
        return SubmittedJob(job_id=str(job_id), status=status, raw=payload)

    def _post_job(self, job: ManufacturingJob) -> requests.Response:
        try:
            return self._session.post(
                f"{self.api_url}{PRINT_JOBS_PATH}",
                json=job.to_payload(),
                headers={
                    "Authorization": f"Bearer {self._access_token()}",
                    "Content-Type": "application/json",
                    "Cache-Control": "no-cache",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise PrintProviderError(f"Print job submission failed: {exc}") from exc

    def _access_token(self) -> str:
        with self._lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            if not self._client_key or not self._client_secret:
                raise PrintProviderError("Print provider credentials are not configured")

            try:
                response = self._session.post(
                    f"{self.api_url}{TOKEN_PATH}",
                    data={"grant_type": "client_credentials"},
                    auth=(self._client_key, self._client_secret),
                    timeout=self._timeout,
                )
            except requests.RequestException as exc:
                raise PrintProviderError(f"Token request failed: {exc}") from exc

            if not response.ok:
                raise PrintProviderError(
                    f"Token request failed: {response.status_code} {response.text[:200]}",
                    status_code=response.status_code,
                )

            payload = response.json()
            token = payload.get("access_token")
            if not token:
                raise PrintProviderError("Token response did not include an access token")
            expires_in = float(payload.get("expires_in") or 3600)
            self._token = str(token)
            self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0)
            return self._token

    def _invalidate_token(self) -> None:
        with self._lock:
            self._token = None
            self._token_expires_at = 0.0
