from __future__ import annotations

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool

from storybook_fulfillment.api.schemas import DownloadResponse, FulfillmentFailureBody, FulfillmentResponse
from storybook_fulfillment.common.errors import ApiError, InvalidTransitionError, OrderNotFoundError
from storybook_fulfillment.fulfillment import FulfillmentDispatcher, FulfillmentResult


class OrderNotFoundApiError(ApiError):
    def __init__(self, order_id: str) -> None:
        super().__init__(code="ORDER_NOT_FOUND", message=f"Order {order_id} not found", status_code=404)


class OrderNotReadyError(ApiError):
    def __init__(self, message: str = "Order has no downloadable book yet") -> None:
        super().__init__(code="ORDER_NOT_READY", message=message, status_code=409)


def _to_response(result: FulfillmentResult) -> FulfillmentResponse:
    failure = None
    if result.failure is not None:
        failure = FulfillmentFailureBody(
            kind=result.failure.kind,
            step=result.failure.step,
            message=result.failure.message,
            retryable=result.failure.retryable,
            page_number=result.failure.page_number,
        )
    return FulfillmentResponse(
        order_id=result.order_id,
        outcome=result.outcome.value,
        status=result.status.value if result.status else None,
        download_url=result.download.url if result.download else None,
        download_expires_at=result.download.expires_at if result.download else None,
        provider_job_id=result.provider_job_id,
        failure=failure,
    )


def build_orders_router(dispatcher: FulfillmentDispatcher) -> APIRouter:
    router = APIRouter(prefix="/api/orders", tags=["orders"])

    @router.post("/{order_id}/fulfill", response_model=FulfillmentResponse)
    async def fulfill_order(order_id: str) -> FulfillmentResponse:
        try:
            result = await run_in_threadpool(dispatcher.run, order_id)
        except OrderNotFoundError as exc:
            raise OrderNotFoundApiError(order_id) from exc
        return _to_response(result)

    @router.get("/{order_id}/download", response_model=DownloadResponse)
    async def download_link(order_id: str) -> DownloadResponse:
        try:
            handle = await run_in_threadpool(dispatcher.refresh_download, order_id)
        except OrderNotFoundError as exc:
            raise OrderNotFoundApiError(order_id) from exc
        except InvalidTransitionError as exc:
            raise OrderNotReadyError() from exc
        return DownloadResponse(order_id=order_id, url=handle.url, expires_at=handle.expires_at)

    return router
