"""
Order records and the value objects stored on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from storybook_fulfillment.pdf_generation.specs import BookType, Channel

DEFAULT_SHIPPING_LEVEL = "MAIL"
MAX_PROCESSED_EVENT_IDS = 50


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_RECEIVED = "payment_received"
    PROCESSING = "processing"
    GENERATING_PDF = "generating_pdf"
    PDF_READY = "pdf_ready"
    SUBMITTED_TO_PRINTER = "submitted_to_printer"
    IN_PRODUCTION = "in_production"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ShippingAddress:
    name: str
    street1: str
    city: str
    postcode: str
    country_code: str = "US"
    street2: str | None = None
    state_code: str | None = None
    phone_number: str | None = None
    email: str | None = None

    def to_provider_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "street1": self.street1,
            "city": self.city,
            "postcode": self.postcode,
            "country_code": self.country_code,
        }
        optional = {
            "street2": self.street2,
            "state_code": self.state_code,
            "phone_number": self.phone_number,
            "email": self.email,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload

    def to_row(self) -> dict[str, Any]:
        return {
            "shipping_name": self.name,
            "shipping_address": self.street1,
            "shipping_address2": self.street2,
            "shipping_city": self.city,
            "shipping_state": self.state_code,
            "shipping_zip": self.postcode,
            "shipping_country": self.country_code,
            "shipping_phone": self.phone_number,
            "shipping_email": self.email,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ShippingAddress | None":
        if not row.get("shipping_name") or not row.get("shipping_address"):
            return None
        return cls(
            name=str(row["shipping_name"]),
            street1=str(row["shipping_address"]),
            street2=row.get("shipping_address2") or None,
            city=str(row.get("shipping_city") or ""),
            state_code=row.get("shipping_state") or None,
            postcode=str(row.get("shipping_zip") or ""),
            country_code=str(row.get("shipping_country") or "US"),
            phone_number=row.get("shipping_phone") or None,
            email=row.get("shipping_email") or None,
        )


@dataclass(frozen=True)
class DownloadHandle:
    url: str
    expires_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "expires_at": format_timestamp(self.expires_at)}


@dataclass(frozen=True)
class GeneratedArtifact:
    """A document persisted to the artifact store."""

    bucket: str
    path: str
    size_bytes: int
    page_count: int
    sha256: str
    generated_at: datetime = field(default_factory=utcnow)
    content_type: str = "application/pdf"


@dataclass(frozen=True)
class PendingEvent:
    """A provider status change received before the order could accept it."""

    event_id: str
    status: OrderStatus
    received_at: datetime
    tracking_number: str | None = None
    tracking_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "status": self.status.value,
            "received_at": format_timestamp(self.received_at),
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PendingEvent":
        return cls(
            event_id=str(payload["event_id"]),
            status=OrderStatus(payload["status"]),
            received_at=parse_timestamp(payload.get("received_at")) or utcnow(),
            tracking_number=payload.get("tracking_number") or None,
            tracking_url=payload.get("tracking_url") or None,
        )


@dataclass(frozen=True)
class Order:
    id: str
    user_id: str
    creation_id: str
    channel: Channel
    amount_paid: int = 0
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    book_type: BookType | None = None
    cover_color_id: str | None = None
    text_color_id: str | None = None
    dedication_text: str | None = None
    shipping_address: ShippingAddress | None = None
    shipping_level: str = DEFAULT_SHIPPING_LEVEL
    contact_email: str | None = None
    customer_name: str | None = None
    provider_job_id: str | None = None
    artifact_path: str | None = None
    cover_artifact_path: str | None = None
    download_url: str | None = None
    download_expires_at: datetime | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    fulfillment_attempt: int = 0
    processing_started_at: datetime | None = None
    last_error: str | None = None
    needs_review: bool = False
    pending_events: tuple[PendingEvent, ...] = ()
    processed_event_ids: tuple[str, ...] = ()
    revision: int = 0

    @property
    def order_type(self) -> str:
        if self.channel is Channel.DIGITAL:
            return "ebook"
        return (self.book_type or BookType.HARDCOVER).value

    @property
    def download_handle(self) -> DownloadHandle | None:
        if not self.download_url:
            return None
        return DownloadHandle(url=self.download_url, expires_at=self.download_expires_at)

    @property
    def recipient_email(self) -> str | None:
        if self.contact_email:
            return self.contact_email
        if self.shipping_address is not None:
            return self.shipping_address.email
        return None

    @property
    def recipient_name(self) -> str:
        if self.customer_name:
            return self.customer_name
        if self.shipping_address is not None:
            return self.shipping_address.name
        return "Friend"

    def with_changes(self, **changes: Any) -> "Order":
        return replace(self, **changes)

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "creation_id": self.creation_id,
            "order_type": self.order_type,
            "status": self.status.value,
            "amount_paid": self.amount_paid,
            "cover_color_id": self.cover_color_id,
            "text_color_id": self.text_color_id,
            "dedication_text": self.dedication_text,
            "shipping_level_id": self.shipping_level,
            "contact_email": self.contact_email,
            "customer_name": self.customer_name,
            "lulu_order_id": self.provider_job_id,
            "download_path": self.artifact_path,
            "cover_path": self.cover_artifact_path,
            "download_url": self.download_url,
            "download_expires_at": format_timestamp(self.download_expires_at),
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "completed_at": format_timestamp(self.completed_at),
            "fulfillment_attempt": self.fulfillment_attempt,
            "processing_started_at": format_timestamp(self.processing_started_at),
            "last_error": self.last_error,
            "needs_review": self.needs_review,
            "pending_events": [event.to_dict() for event in self.pending_events],
            "processed_event_ids": list(self.processed_event_ids),
            "revision": self.revision,
        }
        if self.shipping_address is not None:
            row.update(self.shipping_address.to_row())
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Order":
        order_type = str(row.get("order_type") or "ebook")
        if order_type == "ebook":
            channel, book_type = Channel.DIGITAL, None
        else:
            channel, book_type = Channel.PHYSICAL, BookType(order_type)

        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id") or ""),
            creation_id=str(row.get("creation_id") or ""),
            channel=channel,
            book_type=book_type,
            amount_paid=int(row.get("amount_paid") or 0),
            status=OrderStatus(row.get("status") or OrderStatus.PENDING_PAYMENT.value),
            cover_color_id=row.get("cover_color_id"),
            text_color_id=row.get("text_color_id"),
            dedication_text=row.get("dedication_text"),
            shipping_address=ShippingAddress.from_row(row),
            shipping_level=row.get("shipping_level_id") or DEFAULT_SHIPPING_LEVEL,
            contact_email=row.get("contact_email"),
            customer_name=row.get("customer_name"),
            provider_job_id=row.get("lulu_order_id"),
            artifact_path=row.get("download_path"),
            cover_artifact_path=row.get("cover_path"),
            download_url=row.get("download_url"),
            download_expires_at=parse_timestamp(row.get("download_expires_at")),
            tracking_number=row.get("tracking_number"),
            tracking_url=row.get("tracking_url"),
            created_at=parse_timestamp(row.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(row.get("updated_at")) or utcnow(),
            completed_at=parse_timestamp(row.get("completed_at")),
            fulfillment_attempt=int(row.get("fulfillment_attempt") or 0),
            processing_started_at=parse_timestamp(row.get("processing_started_at")),
            last_error=row.get("last_error"),
            needs_review=bool(row.get("needs_review")),
            pending_events=tuple(PendingEvent.from_dict(item) for item in row.get("pending_events") or ()),
            processed_event_ids=tuple(str(item) for item in row.get("processed_event_ids") or ()),
            revision=int(row.get("revision") or 0),
        )


def remember_event_id(processed: tuple[str, ...], event_id: str) -> tuple[str, ...]:
    """Append an event id, keeping only the most recent ones."""
    if event_id in processed:
        return processed
    return (processed + (event_id,))[-MAX_PROCESSED_EVENT_IDS:]
