"""
Order persistence behind a narrow keyed interface.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Mapping, Protocol

from storybook_fulfillment.common.errors import OrderNotFoundError
from storybook_fulfillment.integrations.postgrest import PostgrestClient
from storybook_fulfillment.orders.models import Order, OrderStatus, PendingEvent

logger = logging.getLogger(__name__)

FIELD_COLUMNS: dict[str, str] = {
    "status": "status",
    "amount_paid": "amount_paid",
    "cover_color_id": "cover_color_id",
    "text_color_id": "text_color_id",
    "dedication_text": "dedication_text",
    "shipping_level": "shipping_level_id",
    "contact_email": "contact_email",
    "customer_name": "customer_name",
    "provider_job_id": "lulu_order_id",
    "artifact_path": "download_path",
    "cover_artifact_path": "cover_path",
    "download_url": "download_url",
    "download_expires_at": "download_expires_at",
    "tracking_number": "tracking_number",
    "tracking_url": "tracking_url",
    "updated_at": "updated_at",
    "completed_at": "completed_at",
    "fulfillment_attempt": "fulfillment_attempt",
    "processing_started_at": "processing_started_at",
    "last_error": "last_error",
    "needs_review": "needs_review",
    "pending_events": "pending_events",
    "processed_event_ids": "processed_event_ids",
    "revision": "revision",
}


class OrderRepository(Protocol):
    def create(self, order: Order) -> Order: ...

    def get(self, order_id: str) -> Order | None: ...

    def get_by_provider_job_id(self, provider_job_id: str) -> Order | None: ...

    def compare_and_swap(
        self,
        order_id: str,
        *,
        expected_status: OrderStatus,
        expected_attempt: int | None = None,
        expected_revision: int | None = None,
        changes: Mapping[str, Any],
    ) -> Order | None:
        """
        Apply ``changes`` only if the stored row still matches; ``None`` otherwise.

        Passing ``expected_revision`` also guards fields the status does not
        cover, and bumps the stored revision by one on success.
        """
        ...

    def update_fields(self, order_id: str, changes: Mapping[str, Any]) -> Order: ...


def changes_to_row(changes: Mapping[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for name, value in changes.items():
        if name == "shipping_address":
            if value is not None:
                row.update(value.to_row())
            continue
        try:
            column = FIELD_COLUMNS[name]
        except KeyError as exc:
            raise ValueError(f"Order field {name!r} cannot be updated") from exc
        row[column] = _serialize(value)
    return row


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return [item.to_dict() if isinstance(item, PendingEvent) else item for item in value]
    return value


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self._lock = Lock()
        self._orders: dict[str, Order] = {}

    def create(self, order: Order) -> Order:
        with self._lock:
            if order.id in self._orders:
                raise ValueError(f"Order {order.id} already exists")
            self._orders[order.id] = order
        return order

    def get(self, order_id: str) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    def get_by_provider_job_id(self, provider_job_id: str) -> Order | None:
        with self._lock:
            for order in self._orders.values():
                if order.provider_job_id == provider_job_id:
                    return order
        return None

    def compare_and_swap(
        self,
        order_id: str,
        *,
        expected_status: OrderStatus,
        expected_attempt: int | None = None,
        expected_revision: int | None = None,
        changes: Mapping[str, Any],
    ) -> Order | None:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.status is not OrderStatus(expected_status):
                return None
            if expected_attempt is not None and current.fulfillment_attempt != expected_attempt:
                return None
            if expected_revision is not None and current.revision != expected_revision:
                return None
            values = dict(changes)
            if expected_revision is not None:
                values["revision"] = expected_revision + 1
            updated = replace(current, **values)
            self._orders[order_id] = updated
            return updated

    def update_fields(self, order_id: str, changes: Mapping[str, Any]) -> Order:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise OrderNotFoundError(order_id)
            updated = replace(current, **dict(changes))
            self._orders[order_id] = updated
            return updated


class SupabaseOrderRepository:
    """``book_orders`` rows through PostgREST; conditional PATCH provides the CAS."""

    def __init__(self, client: PostgrestClient, *, table: str = "book_orders") -> None:
        self._client = client
        self._table = table

    def create(self, order: Order) -> Order:
        return Order.from_row(self._client.insert(self._table, order.to_row()))

    def get(self, order_id: str) -> Order | None:
        rows = self._client.select(self._table, {"id": order_id})
        return Order.from_row(rows[0]) if rows else None

    def get_by_provider_job_id(self, provider_job_id: str) -> Order | None:
        rows = self._client.select(self._table, {"lulu_order_id": provider_job_id})
        if len(rows) > 1:
            logger.warning(
                "Multiple orders share a provider job id",
                extra={"provider_job_id": provider_job_id, "matches": len(rows)},
            )
        return Order.from_row(rows[0]) if rows else None

    def compare_and_swap(
        self,
        order_id: str,
        *,
        expected_status: OrderStatus,
        expected_attempt: int | None = None,
        expected_revision: int | None = None,
        changes: Mapping[str, Any],
    ) -> Order | None:
        filters: dict[str, Any] = {"id": order_id, "status": OrderStatus(expected_status).value}
        values = dict(changes)
        if expected_attempt is not None:
            filters["fulfillment_attempt"] = expected_attempt
        if expected_revision is not None:
            filters["revision"] = expected_revision
            values["revision"] = expected_revision + 1
        rows = self._client.update(self._table, filters, changes_to_row(values))
        return Order.from_row(rows[0]) if rows else None

    def update_fields(self, order_id: str, changes: Mapping[str, Any]) -> Order:
        rows = self._client.update(self._table, {"id": order_id}, changes_to_row(changes))
        if not rows:
            raise OrderNotFoundError(order_id)
        return Order.from_row(rows[0])
