from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorEnvelope(BaseModel):
    error: ErrorBody


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
    order_id: str | None = None
    status: str | None = None
    applied: list[str] = []


class FulfillmentFailureBody(BaseModel):
    kind: str
    step: str
    message: str
    retryable: bool
    page_number: int | None = None


class FulfillmentResponse(BaseModel):
    order_id: str
    outcome: str
    status: str | None = None
    download_url: str | None = None
    download_expires_at: datetime | None = None
    provider_job_id: str | None = None
    failure: FulfillmentFailureBody | None = None


class DownloadResponse(BaseModel):
    order_id: str
    url: str
    expires_at: datetime | None = None
