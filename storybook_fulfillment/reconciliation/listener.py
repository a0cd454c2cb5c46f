"""
Applies print-provider status callbacks to the order lifecycle.

Events may arrive late, twice, or out of order. Each one is matched to its
order by provider job id and then:

* recorded and ignored if already seen (duplicate),
* acknowledged without change if it is at or behind the current status,
* applied if it is the next legal step (and any buffered events that have
  become legal are applied after it),
* buffered on the order if it jumps ahead of a step not yet reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping

from storybook_fulfillment.common.errors import (
    MalformedPayloadError,
    PersistenceError,
    StorageError,
    UnknownJobError,
)
from storybook_fulfillment.integrations.creations import CreationSource
from storybook_fulfillment.integrations.notifications import BOOK_SHIPPED_TEMPLATE, Notifier
from storybook_fulfillment.orders.models import Order, OrderStatus, PendingEvent, remember_event_id, utcnow
from storybook_fulfillment.orders.repository import OrderRepository
from storybook_fulfillment.orders.state_machine import TERMINAL_STATUSES, can_transition, is_stale, status_rank
from storybook_fulfillment.reconciliation.status_map import ProviderStatusMap

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    STALE = "stale"
    BUFFERED = "buffered"
    ACKNOWLEDGED = "acknowledged"
    UNKNOWN_STATUS = "unknown_status"
    IGNORED_TOPIC = "ignored_topic"


@dataclass(frozen=True)
class ProviderEvent:
    job_id: str
    provider_status: str
    event_id: str
    topic: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    carrier_name: str | None = None
    occurred_at: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProviderEvent":
        if not isinstance(payload, Mapping):
            raise MalformedPayloadError("Webhook body must be a JSON object")
        data = payload.get("data")
        if not isinstance(data, Mapping):
            raise MalformedPayloadError("Webhook body is missing 'data'")

        job_id = data.get("id")
        status = data.get("status")
        status_name = status.get("name") if isinstance(status, Mapping) else status
        if job_id in (None, "") or not isinstance(status_name, str) or not status_name.strip():
            raise MalformedPayloadError("Webhook data requires 'id' and 'status.name'")

        tracking_number = tracking_url = carrier_name = None
        line_items = data.get("line_items") or []
        if not isinstance(line_items, list):
            raise MalformedPayloadError("'line_items' must be a list")
        for item in line_items:
            if not isinstance(item, Mapping):
                continue
            tracking_number = item.get("tracking_id") or tracking_number
            urls = item.get("tracking_urls") or []
            if isinstance(urls, list) and urls:
                tracking_url = str(urls[0])
            carrier_name = item.get("carrier_name") or carrier_name

        occurred_at = data.get("date_modified")
        if occurred_at is None and isinstance(status, Mapping):
            occurred_at = status.get("changed")

        normalized_status = status_name.strip().upper()
        event_id = f"{job_id}:{normalized_status}"
        if occurred_at:
            event_id = f"{event_id}:{occurred_at}"

        return cls(
            job_id=str(job_id),
            provider_status=normalized_status,
            event_id=event_id,
            topic=payload.get("topic"),
            tracking_number=str(tracking_number) if tracking_number else None,
            tracking_url=tracking_url,
            carrier_name=str(carrier_name) if carrier_name else None,
            occurred_at=str(occurred_at) if occurred_at else None,
        )


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: ReconciliationOutcome
    order_id: str | None = None
    status: OrderStatus | None = None
    applied: tuple[OrderStatus, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "received": True,
            "outcome": self.outcome.value,
            "order_id": self.order_id,
            "status": self.status.value if self.status else None,
            "applied": [status.value for status in self.applied],
        }


class ReconciliationListener:
    def __init__(
        self,
        repository: OrderRepository,
        status_map: ProviderStatusMap,
        *,
        notifier: Notifier | None = None,
        creations: CreationSource | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_write_attempts: int = 3,
    ) -> None:
        self.repository = repository
        self.status_map = status_map
        self.notifier = notifier
        self.creations = creations
        self.clock = clock
        self.max_write_attempts = max_write_attempts

    def handle(self, payload: Any) -> ReconciliationResult:
        event = ProviderEvent.from_payload(payload)
        if event.topic and event.topic != self.status_map.topic:
            logger.info("Ignoring webhook topic %s", event.topic)
            return ReconciliationResult(outcome=ReconciliationOutcome.IGNORED_TOPIC)

        try:
            order = self.repository.get_by_provider_job_id(event.job_id)
        except StorageError as exc:
            raise PersistenceError(f"Order lookup failed: {exc}") from exc
        if order is None:
            raise UnknownJobError(f"No order for provider job {event.job_id}")

        try:
            result, updated = self._apply(order, event)
        except StorageError as exc:
            logger.error(
                "Could not persist provider event",
                exc_info=True,
                extra={"order_id": order.id, "provider_job_id": event.job_id},
            )
            raise PersistenceError(f"Order update failed: {exc}") from exc

        if updated is not None and OrderStatus.SHIPPED in result.applied:
            self._send_shipped_email(updated)
        return result

    # ------------------------------------------------------------------ core

    def _apply(self, order: Order, event: ProviderEvent) -> tuple[ReconciliationResult, Order | None]:
        mapping = self.status_map.lookup(event.provider_status)
        log_context = {"order_id": order.id, "provider_job_id": event.job_id, "provider_status": mapping.provider_status}

        if not mapping.known:
            logger.warning("Unknown provider status; order left unchanged", extra=log_context)
            return ReconciliationResult(ReconciliationOutcome.UNKNOWN_STATUS, order.id, order.status), None

        for _ in range(self.max_write_attempts):
            if self._seen(order, event.event_id):
                logger.info("Duplicate provider event", extra=log_context)
                return ReconciliationResult(ReconciliationOutcome.DUPLICATE, order.id, order.status), None

            outcome, changes, applied = self._plan(order, event, mapping.target)
            updated = self.repository.compare_and_swap(
                order.id,
                expected_status=order.status,
                expected_revision=order.revision,
                changes=changes,
            )
            if updated is not None:
                self._log_outcome(outcome, applied, updated, log_context)
                return ReconciliationResult(outcome, updated.id, updated.status, tuple(applied)), updated

            refreshed = self.repository.get(order.id)
            if refreshed is None:
                raise UnknownJobError(f"Order {order.id} disappeared")
            order = refreshed

        raise PersistenceError(f"Order {order.id} kept changing while applying {event.event_id}")

    def _plan(
        self,
        order: Order,
        event: ProviderEvent,
        target: OrderStatus | None,
    ) -> tuple[ReconciliationOutcome, dict[str, Any], list[OrderStatus]]:
        now = self.clock()
        changes: dict[str, Any] = {"updated_at": now}
        self._merge_tracking(changes, order, event.tracking_number, event.tracking_url)

        if target is None:
            outcome = ReconciliationOutcome.ACKNOWLEDGED
            changes["processed_event_ids"] = remember_event_id(order.processed_event_ids, event.event_id)
            return outcome, changes, []

        if is_stale(order.status, target):
            changes["processed_event_ids"] = remember_event_id(order.processed_event_ids, event.event_id)
            return ReconciliationOutcome.STALE, changes, []

        if not can_transition(order.status, target, order.channel):
            pending = order.pending_events + (
                PendingEvent(
                    event_id=event.event_id,
                    status=target,
                    received_at=now,
                    tracking_number=event.tracking_number,
                    tracking_url=event.tracking_url,
                ),
            )
            changes["pending_events"] = pending
            return ReconciliationOutcome.BUFFERED, changes, []

        status = target
        applied = [target]
        processed = remember_event_id(order.processed_event_ids, event.event_id)
        remaining = list(order.pending_events)

        progressed = True
        while progressed and remaining:
            progressed = False
            for pending_event in sorted(remaining, key=lambda item: status_rank(item.status)):
                if can_transition(status, pending_event.status, order.channel):
                    status = pending_event.status
                    applied.append(status)
                elif not is_stale(status, pending_event.status):
                    continue
                remaining.remove(pending_event)
                processed = remember_event_id(processed, pending_event.event_id)
                self._merge_tracking(changes, order, pending_event.tracking_number, pending_event.tracking_url)
                progressed = True
                break

        changes.update(
            status=status,
            pending_events=tuple(remaining),
            processed_event_ids=processed,
        )
        if status in TERMINAL_STATUSES:
            changes["completed_at"] = now
        return ReconciliationOutcome.APPLIED, changes, applied

    @staticmethod
    def _seen(order: Order, event_id: str) -> bool:
        if event_id in order.processed_event_ids:
            return True
        return any(pending.event_id == event_id for pending in order.pending_events)

    @staticmethod
    def _merge_tracking(
        changes: dict[str, Any],
        order: Order,
        tracking_number: str | None,
        tracking_url: str | None,
    ) -> None:
        if tracking_number and tracking_number != order.tracking_number:
            changes["tracking_number"] = tracking_number
        if tracking_url and tracking_url != order.tracking_url:
            changes["tracking_url"] = tracking_url

    @staticmethod
    def _log_outcome(
        outcome: ReconciliationOutcome,
        applied: list[OrderStatus],
        order: Order,
        log_context: dict[str, Any],
    ) -> None:
        if outcome is ReconciliationOutcome.BUFFERED:
            logger.warning(
                "Provider event arrived ahead of order status; buffered",
                extra={**log_context, "order_status": order.status.value},
            )
        elif outcome is ReconciliationOutcome.APPLIED:
            logger.info(
                "Provider event applied",
                extra={**log_context, "applied": [status.value for status in applied]},
            )
        else:
            logger.info("Provider event acknowledged", extra={**log_context, "outcome": outcome.value})

    def _send_shipped_email(self, order: Order) -> None:
        recipient = order.recipient_email
        if self.notifier is None or not recipient:
            return
        try:
            book_title, artist_name = "your book", ""
            if self.creations is not None:
                creation = self.creations.get_creation(order.creation_id)
                book_title, artist_name = creation.title, creation.artist_name
            self.notifier.send_delivery_email(
                recipient,
                BOOK_SHIPPED_TEMPLATE,
                {
                    "customer_name": order.recipient_name,
                    "book_title": book_title,
                    "artist_name": artist_name,
                    "order_id": order.id[:8].upper(),
                    "tracking_number": order.tracking_number or "",
                    "tracking_url": order.tracking_url or "",
                },
            )
        except Exception:
            logger.warning("Shipped email failed", exc_info=True, extra={"order_id": order.id})
