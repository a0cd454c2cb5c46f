from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool

from storybook_fulfillment.api.schemas import WebhookAck
from storybook_fulfillment.common.errors import MalformedPayloadError, SignatureError
from storybook_fulfillment.reconciliation import SIGNATURE_HEADER, ReconciliationListener, verify_signature


def build_webhook_router(
    listener: ReconciliationListener,
    *,
    signing_secret: str | None,
    require_signature: bool = False,
) -> APIRouter:
    """
    Provider callback endpoint.

    200 once the event is durably recorded (duplicates and stale events
    included), 400 malformed body, 401 bad signature, 404 unknown job,
    500 only when the order could not be written.
    """
    router = APIRouter(prefix="/webhooks", tags=["webhooks"])

    @router.post("/print-provider", response_model=WebhookAck)
    async def print_provider_webhook(request: Request) -> WebhookAck:
        body = await request.body()
        if signing_secret:
            if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), signing_secret):
                raise SignatureError()
        elif require_signature:
            raise SignatureError("Webhook signing secret is not configured")

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise MalformedPayloadError("Body is not valid JSON") from exc

        result = await run_in_threadpool(listener.handle, payload)
        return WebhookAck(**result.to_dict())

    return router
