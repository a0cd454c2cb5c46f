"""
Drives one paid order from ``payment_received`` to its channel's hand-off.

A run is short-lived and stateless: everything it needs to resume lives on
the order record and in the artifact store. The ``processing`` status plus a
lease timestamp acts as a soft lock so concurrent runs do not both generate.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from storybook_fulfillment.asset_resolution import AssetResolver
from storybook_fulfillment.book.content import BookContent
from storybook_fulfillment.common.errors import (
    ContentError,
    FulfillmentError,
    InvalidTransitionError,
    OrderNotFoundError,
    PrintProviderError,
)
from storybook_fulfillment.integrations.creations import CreationSource
from storybook_fulfillment.integrations.notifications import EBOOK_DELIVERY_TEMPLATE, Notifier
from storybook_fulfillment.integrations.print_provider import ManufacturingJob, PrintProvider
from storybook_fulfillment.integrations.storage import ArtifactStorage
from storybook_fulfillment.orders.models import DownloadHandle, GeneratedArtifact, Order, OrderStatus, utcnow
from storybook_fulfillment.orders.repository import OrderRepository
from storybook_fulfillment.orders.state_machine import OrderStateMachine, can_transition
from storybook_fulfillment.pdf_generation.assembler import AssembledDocument, DocumentAssembler, DocumentRole
from storybook_fulfillment.pdf_generation.specs import BookType, Channel, get_book_type_config

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
_SHIPPED_STATUSES = {
    OrderStatus.SUBMITTED_TO_PRINTER,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
}
_IN_FLIGHT_STATUSES = {OrderStatus.PROCESSING, OrderStatus.GENERATING_PDF, OrderStatus.PDF_READY}


class FulfillmentOutcome(str, Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    SUBMITTED = "submitted"
    ALREADY_SUBMITTED = "already_submitted"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"
    NEEDS_REVIEW = "needs_review"


@dataclass(frozen=True)
class FulfillmentFailure:
    kind: str
    step: str
    message: str
    retryable: bool
    page_number: int | None = None


@dataclass(frozen=True)
class FulfillmentResult:
    order_id: str
    outcome: FulfillmentOutcome
    status: OrderStatus | None = None
    download: DownloadHandle | None = None
    provider_job_id: str | None = None
    failure: FulfillmentFailure | None = None
    artifacts: tuple[GeneratedArtifact, ...] = ()

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class _RunTrace:
    step: str = "load"
    artifacts: list[GeneratedArtifact] = field(default_factory=list)


def safe_title(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:50].rstrip("-") or "storybook"


def format_amount(cents: int) -> str:
    return f"${cents / 100:.2f}"


class FulfillmentDispatcher:
    def __init__(
        self,
        *,
        repository: OrderRepository,
        creations: CreationSource,
        storage: ArtifactStorage,
        resolver: AssetResolver,
        assembler: DocumentAssembler,
        print_provider: PrintProvider | None = None,
        notifier: Notifier | None = None,
        artifact_bucket: str = "book-pdfs",
        drawings_bucket: str = "drawings",
        page_images_bucket: str = "page-images",
        download_ttl_seconds: int = 7 * 24 * 60 * 60,
        print_source_ttl_seconds: int = 24 * 60 * 60,
        max_attempts: int = 3,
        lease_seconds: int = 600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.state_machine = OrderStateMachine(repository)
        self.creations = creations
        self.storage = storage
        self.resolver = resolver
        self.assembler = assembler
        self.print_provider = print_provider
        self.notifier = notifier
        self.artifact_bucket = artifact_bucket
        self.drawings_bucket = drawings_bucket
        self.page_images_bucket = page_images_bucket
        self.download_ttl_seconds = download_ttl_seconds
        self.print_source_ttl_seconds = print_source_ttl_seconds
        self.max_attempts = max_attempts
        self.lease_seconds = lease_seconds
        self.clock = clock

    # ------------------------------------------------------------------ entry points

    def run(self, order_id: str) -> FulfillmentResult:
        """
        Fulfill one order. Run failures never escape: they come back as a
        ``failed`` (or ``needs_review``) result and are recorded on the order.
        Only an unknown order id raises.
        """
        order = self.repository.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        trace = _RunTrace()
        try:
            return self._run(order, trace)
        except InvalidTransitionError as exc:
            current = self.repository.get(order_id)
            logger.warning(
                "Order moved underneath this run; leaving it to the other writer",
                extra={"order_id": order_id, "step": trace.step, "detail": str(exc)},
            )
            return FulfillmentResult(
                order_id=order_id,
                outcome=FulfillmentOutcome.IN_PROGRESS,
                status=current.status if current is not None else None,
                artifacts=tuple(trace.artifacts),
            )
        except Exception as exc:
            return self._record_failure(order_id, exc, trace)

    def refresh_download(self, order_id: str) -> DownloadHandle:
        """Re-sign the stored ebook of a completed digital order."""
        order = self.repository.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status is not OrderStatus.COMPLETED or not order.artifact_path:
            raise InvalidTransitionError(order.status.value, "download", order_id=order_id)

        handle = self._sign_download(order.artifact_path)
        self.repository.update_fields(
            order_id,
            {
                "download_url": handle.url,
                "download_expires_at": handle.expires_at,
                "updated_at": self.clock(),
            },
        )
        return handle

    # ------------------------------------------------------------------ run steps

    def _run(self, order: Order, trace: _RunTrace) -> FulfillmentResult:
        trace.step = "idempotency"
        short_circuit = self._short_circuit(order)
        if short_circuit is not None:
            return short_circuit

        trace.step = "claim"
        claimed = self._claim(order)
        if claimed is None:
            current = self.repository.get(order.id)
            return FulfillmentResult(
                order_id=order.id,
                outcome=FulfillmentOutcome.IN_PROGRESS,
                status=current.status if current is not None else None,
            )

        if claimed.status is OrderStatus.PDF_READY:
            return self._deliver(claimed, trace)

        if claimed.status is OrderStatus.PROCESSING:
            claimed = self.state_machine.apply(claimed, OrderStatus.GENERATING_PDF)

        trace.step = "resolve_content"
        creation = self.creations.get_creation(claimed.creation_id)
        content = BookContent.from_creation(
            creation,
            resolver=self.resolver,
            drawings_bucket=self.drawings_bucket,
            page_images_bucket=self.page_images_bucket,
            dedication=claimed.dedication_text,
        )

        trace.step = "assemble"
        assembly = self.assembler.assemble(
            content,
            channel=claimed.channel,
            cover_color_id=claimed.cover_color_id,
            text_color_id=claimed.text_color_id,
            book_type=claimed.book_type or BookType.HARDCOVER,
        )

        trace.step = "persist"
        stamp = int(self.clock().timestamp() * 1000)
        changes: dict[str, str] = {}
        for document in assembly.documents:
            artifact = self._upload(claimed, content, document, stamp)
            trace.artifacts.append(artifact)
            if document.role is DocumentRole.PRINT_COVER:
                changes["cover_artifact_path"] = artifact.path
            else:
                changes["artifact_path"] = artifact.path

        ready = self.state_machine.apply(claimed, OrderStatus.PDF_READY, **changes)
        return self._deliver(ready, trace)

    def _short_circuit(self, order: Order) -> FulfillmentResult | None:
        if order.status is OrderStatus.COMPLETED:
            handle = order.download_handle
            if handle is None and order.artifact_path:
                handle = self.refresh_download(order.id)
            return FulfillmentResult(
                order_id=order.id,
                outcome=FulfillmentOutcome.ALREADY_COMPLETED,
                status=order.status,
                download=handle,
            )

        if order.status in _SHIPPED_STATUSES:
            return FulfillmentResult(
                order_id=order.id,
                outcome=FulfillmentOutcome.ALREADY_SUBMITTED,
                status=order.status,
                provider_job_id=order.provider_job_id,
            )

        if order.needs_review:
            return FulfillmentResult(
                order_id=order.id,
                outcome=FulfillmentOutcome.NEEDS_REVIEW,
                status=order.status,
            )

        if order.status in _IN_FLIGHT_STATUSES and self._lease_active(order):
            return FulfillmentResult(
                order_id=order.id,
                outcome=FulfillmentOutcome.IN_PROGRESS,
                status=order.status,
            )

        startable = {OrderStatus.PAYMENT_RECEIVED, OrderStatus.PDF_READY} | _IN_FLIGHT_STATUSES
        if order.status not in startable:
            return FulfillmentResult(
                order_id=order.id,
                outcome=FulfillmentOutcome.FAILED,
                status=order.status,
                failure=FulfillmentFailure(
                    kind="invalid_state",
                    step="idempotency",
                    message=f"Order in status {order.status.value} cannot be fulfilled",
                    retryable=False,
                ),
            )
        return None

    def _lease_active(self, order: Order) -> bool:
        if order.processing_started_at is None:
            return False
        return self.clock() - order.processing_started_at < timedelta(seconds=self.lease_seconds)

    def _claim(self, order: Order) -> Order | None:
        """
        Take the soft lock: fresh orders move to ``processing``; abandoned
        in-flight orders and ``pdf_ready`` resumes keep their status. Every
        claim counts as an attempt and the counter is part of the
        compare-and-swap.
        """
        now = self.clock()
        changes = {
            "fulfillment_attempt": order.fulfillment_attempt + 1,
            "processing_started_at": now,
            "updated_at": now,
            "last_error": None,
        }
        if order.status is OrderStatus.PAYMENT_RECEIVED:
            if not can_transition(order.status, OrderStatus.PROCESSING):
                raise InvalidTransitionError(order.status.value, OrderStatus.PROCESSING.value, order_id=order.id)
            changes["status"] = OrderStatus.PROCESSING
        elif order.status is OrderStatus.PDF_READY:
            logger.info(
                "Resuming from stored artifact",
                extra={"order_id": order.id, "artifact_path": order.artifact_path},
            )
        else:
            logger.warning(
                "Reclaiming abandoned fulfillment run",
                extra={"order_id": order.id, "attempt": order.fulfillment_attempt},
            )

        claimed = self.repository.compare_and_swap(
            order.id,
            expected_status=order.status,
            expected_attempt=order.fulfillment_attempt,
            changes=changes,
        )
        if claimed is not None:
            logger.info(
                "Fulfillment run started",
                extra={"order_id": order.id, "attempt": claimed.fulfillment_attempt},
            )
        return claimed

    def _upload(
        self,
        order: Order,
        content: BookContent,
        document: AssembledDocument,
        stamp: int,
    ) -> GeneratedArtifact:
        path = self._artifact_path(order, content, document.role, stamp)
        self.storage.upload(self.artifact_bucket, path, document.payload, PDF_CONTENT_TYPE)
        logger.info(
            "Uploaded artifact",
            extra={
                "order_id": order.id,
                "artifact_path": path,
                "page_count": document.page_count,
                "size_bytes": document.size_bytes,
            },
        )
        return GeneratedArtifact(
            bucket=self.artifact_bucket,
            path=path,
            size_bytes=document.size_bytes,
            page_count=document.page_count,
            sha256=document.sha256,
            generated_at=self.clock(),
        )

    @staticmethod
    def _artifact_path(order: Order, content: BookContent, role: DocumentRole, stamp: int) -> str:
        if role is DocumentRole.DIGITAL_BOOK:
            return f"ebooks/{order.id}/{safe_title(content.title)}-{stamp}.pdf"
        kind = "cover" if role is DocumentRole.PRINT_COVER else "interior"
        return f"books/{order.id}/{kind}-{stamp}.pdf"

    # ------------------------------------------------------------------ channel hand-off

    def _deliver(self, order: Order, trace: _RunTrace) -> FulfillmentResult:
        if not order.artifact_path:
            raise ContentError(f"Order {order.id} is pdf_ready without a stored artifact")
        if order.channel is Channel.DIGITAL:
            return self._deliver_digital(order, trace)
        return self._submit_to_printer(order, trace)

    def _deliver_digital(self, order: Order, trace: _RunTrace) -> FulfillmentResult:
        trace.step = "sign_download"
        handle = self._sign_download(order.artifact_path)

        trace.step = "complete"
        completed = self.state_machine.apply(
            order,
            OrderStatus.COMPLETED,
            download_url=handle.url,
            download_expires_at=handle.expires_at,
            processing_started_at=None,
            last_error=None,
        )

        trace.step = "notify"
        self._send_ebook_email(completed, handle)
        return FulfillmentResult(
            order_id=order.id,
            outcome=FulfillmentOutcome.COMPLETED,
            status=completed.status,
            download=handle,
            artifacts=tuple(trace.artifacts),
        )

    def _submit_to_printer(self, order: Order, trace: _RunTrace) -> FulfillmentResult:
        job_id = order.provider_job_id
        if job_id:
            logger.info(
                "Print job already recorded; skipping resubmission",
                extra={"order_id": order.id, "provider_job_id": job_id},
            )
        else:
            trace.step = "submit"
            job_id = self._submit_job(order)
            order = self.repository.update_fields(
                order.id, {"provider_job_id": job_id, "updated_at": self.clock()}
            )

        trace.step = "mark_submitted"
        submitted = self.state_machine.apply(
            order,
            OrderStatus.SUBMITTED_TO_PRINTER,
            processing_started_at=None,
            last_error=None,
        )
        return FulfillmentResult(
            order_id=order.id,
            outcome=FulfillmentOutcome.SUBMITTED,
            status=submitted.status,
            provider_job_id=job_id,
            artifacts=tuple(trace.artifacts),
        )

    def _submit_job(self, order: Order) -> str:
        if self.print_provider is None:
            raise PrintProviderError("No print provider configured")
        if order.shipping_address is None:
            raise ContentError(f"Physical order {order.id} has no shipping address")
        if not order.cover_artifact_path:
            raise ContentError(f"Physical order {order.id} has no cover artifact")

        ttl = self.print_source_ttl_seconds
        interior_url = self.storage.create_signed_url(self.artifact_bucket, order.artifact_path, ttl)
        cover_url = self.storage.create_signed_url(self.artifact_bucket, order.cover_artifact_path, ttl)
        creation = self.creations.get_creation(order.creation_id)

        job = ManufacturingJob(
            external_id=order.id,
            title=creation.title,
            product_code=get_book_type_config(order.book_type or BookType.HARDCOVER).product_code,
            interior_url=interior_url,
            cover_url=cover_url,
            shipping_address=order.shipping_address.to_provider_payload(),
            contact_email=order.recipient_email or "",
            shipping_level=order.shipping_level,
        )
        return self.print_provider.submit_manufacturing_job(job).job_id

    def _sign_download(self, artifact_path: str) -> DownloadHandle:
        url = self.storage.create_signed_url(self.artifact_bucket, artifact_path, self.download_ttl_seconds)
        return DownloadHandle(
            url=url,
            expires_at=self.clock() + timedelta(seconds=self.download_ttl_seconds),
        )

    def _send_ebook_email(self, order: Order, handle: DownloadHandle) -> None:
        recipient = order.recipient_email
        if self.notifier is None or not recipient:
            return
        try:
            creation = self.creations.get_creation(order.creation_id)
            self.notifier.send_delivery_email(
                recipient,
                EBOOK_DELIVERY_TEMPLATE,
                {
                    "customer_name": order.recipient_name,
                    "book_title": creation.title,
                    "artist_name": creation.artist_name,
                    "download_url": handle.url,
                    "order_id": order.id[:8].upper(),
                    "amount_paid": format_amount(order.amount_paid),
                },
            )
        except Exception:
            logger.warning("Ebook delivery email failed", exc_info=True, extra={"order_id": order.id})

    # ------------------------------------------------------------------ failures

    def _record_failure(self, order_id: str, exc: Exception, trace: _RunTrace) -> FulfillmentResult:
        kind = exc.kind if isinstance(exc, FulfillmentError) else "internal"
        logger.error(
            "Fulfillment run failed",
            exc_info=exc,
            extra={"order_id": order_id, "step": trace.step, "failure_kind": kind},
        )

        current = self.repository.get(order_id)
        escalate = current is not None and current.fulfillment_attempt >= self.max_attempts
        changes = {
            "last_error": f"{trace.step}: {exc}"[:1000],
            "processing_started_at": None,
            "updated_at": self.clock(),
        }
        if escalate:
            changes["needs_review"] = True
            logger.error(
                "Order flagged for manual review",
                extra={"order_id": order_id, "attempt": current.fulfillment_attempt},
            )
        try:
            current = self.repository.update_fields(order_id, changes)
        except Exception:
            logger.exception("Could not record fulfillment failure", extra={"order_id": order_id})

        failure = FulfillmentFailure(
            kind=kind,
            step=trace.step,
            message=str(exc),
            retryable=not escalate and kind in {"transient", "internal"},
            page_number=getattr(exc, "page_number", None),
        )
        return FulfillmentResult(
            order_id=order_id,
            outcome=FulfillmentOutcome.NEEDS_REVIEW if escalate else FulfillmentOutcome.FAILED,
            status=current.status if current is not None else None,
            failure=failure,
            artifacts=tuple(trace.artifacts),
        )
