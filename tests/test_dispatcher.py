from __future__ import annotations

from datetime import timedelta

import pytest

from storybook_fulfillment.common.errors import InvalidTransitionError, OrderNotFoundError
from storybook_fulfillment.fulfillment import FulfillmentOutcome, safe_title
from storybook_fulfillment.integrations import BOOK_SHIPPED_TEMPLATE, EBOOK_DELIVERY_TEMPLATE, InMemoryStorage
from storybook_fulfillment.orders import InMemoryOrderRepository, OrderStatus
from storybook_fulfillment.pdf_generation import Channel, count_pages

from .conftest import FIXED_NOW, RecordingNotifier, png_bytes


def _artifact_keys(storage: InMemoryStorage) -> list[tuple[str, str]]:
    return storage.keys("book-pdfs")


def test_digital_order_completes_with_fourteen_page_ebook(
    add_creation, add_order, make_dispatcher, repository: InMemoryOrderRepository, storage: InMemoryStorage,
    notifier: RecordingNotifier,
) -> None:
    add_creation(pages=12)
    add_order(channel=Channel.DIGITAL)

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.COMPLETED
    assert result.ok
    order = repository.get("order-1")
    assert order.status is OrderStatus.COMPLETED
    assert order.completed_at is not None
    assert order.processing_started_at is None
    assert order.fulfillment_attempt == 1

    (bucket, path), = _artifact_keys(storage)
    assert path == order.artifact_path
    assert path.startswith("ebooks/order-1/the-dragon-who-loved-crayons-")
    assert count_pages(storage.get(bucket, path)) == 14
    assert result.artifacts[0].page_count == 14

    assert result.download.url == order.download_url
    assert order.download_expires_at == FIXED_NOW + timedelta(days=7)

    recipient, template, variables = notifier.sent[0]
    assert (recipient, template) == ("parent@example.com", EBOOK_DELIVERY_TEMPLATE)
    assert variables["download_url"] == result.download.url
    assert variables["amount_paid"] == "$14.99"
    assert variables["order_id"] == "ORDER-1"


def test_second_run_of_completed_order_reuses_artifact_and_link(
    add_creation, add_order, make_dispatcher, storage: InMemoryStorage, notifier: RecordingNotifier
) -> None:
    add_creation(pages=3)
    add_order(channel=Channel.DIGITAL)
    dispatcher = make_dispatcher()

    first = dispatcher.run("order-1")
    uploads = storage.upload_count
    second = dispatcher.run("order-1")

    assert second.outcome is FulfillmentOutcome.ALREADY_COMPLETED
    assert second.download == first.download
    assert storage.upload_count == uploads
    assert len(notifier.sent) == 1


def test_missing_page_image_aborts_before_upload(
    add_creation, add_order, make_dispatcher, repository: InMemoryOrderRepository, storage: InMemoryStorage
) -> None:
    add_creation(pages=12, missing_pages=(3,))
    add_order(channel=Channel.DIGITAL)

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.FAILED
    assert result.failure.kind == "content"
    assert result.failure.page_number == 3
    assert result.failure.step == "resolve_content"
    assert not result.failure.retryable
    assert _artifact_keys(storage) == []

    order = repository.get("order-1")
    assert order.status not in {OrderStatus.COMPLETED, OrderStatus.SUBMITTED_TO_PRINTER, OrderStatus.PDF_READY}
    assert order.download_url is None
    assert "page 3" in order.last_error
    assert order.processing_started_at is None


def test_failed_run_can_be_retried_after_the_asset_appears(
    add_creation, add_order, make_dispatcher, repository: InMemoryOrderRepository, storage: InMemoryStorage
) -> None:
    add_creation(pages=4, missing_pages=(2,))
    add_order(channel=Channel.DIGITAL)
    dispatcher = make_dispatcher()
    assert dispatcher.run("order-1").outcome is FulfillmentOutcome.FAILED

    storage.put("page-images", "creation-1/page-2.png", png_bytes())
    result = dispatcher.run("order-1")

    assert result.outcome is FulfillmentOutcome.COMPLETED
    order = repository.get("order-1")
    assert order.fulfillment_attempt == 2
    assert order.last_error is None


def test_repeated_failures_escalate_to_manual_review(
    add_creation, add_order, make_dispatcher, repository: InMemoryOrderRepository
) -> None:
    add_creation(pages=2, missing_pages=(1,))
    add_order(channel=Channel.DIGITAL)
    dispatcher = make_dispatcher(max_attempts=2)

    first = dispatcher.run("order-1")
    second = dispatcher.run("order-1")
    third = dispatcher.run("order-1")

    assert first.outcome is FulfillmentOutcome.FAILED
    assert second.outcome is FulfillmentOutcome.NEEDS_REVIEW
    assert repository.get("order-1").needs_review
    assert third.outcome is FulfillmentOutcome.NEEDS_REVIEW
    assert repository.get("order-1").fulfillment_attempt == 2


def test_active_lease_reports_in_progress(add_creation, add_order, make_dispatcher, clock) -> None:
    add_creation(pages=2)
    add_order(status=OrderStatus.PROCESSING, processing_started_at=clock(), fulfillment_attempt=1)

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.IN_PROGRESS


def test_expired_lease_is_reclaimed(
    add_creation, add_order, make_dispatcher, clock, repository: InMemoryOrderRepository
) -> None:
    add_creation(pages=2)
    add_order(status=OrderStatus.GENERATING_PDF, processing_started_at=clock(), fulfillment_attempt=1)
    clock.advance(minutes=11)

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.COMPLETED
    assert repository.get("order-1").fulfillment_attempt == 2


def test_unpaid_order_cannot_be_fulfilled(add_order, make_dispatcher, repository) -> None:
    add_order(status=OrderStatus.PENDING_PAYMENT)

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.FAILED
    assert result.failure.kind == "invalid_state"
    assert repository.get("order-1").status is OrderStatus.PENDING_PAYMENT


def test_unknown_order_raises(make_dispatcher) -> None:
    with pytest.raises(OrderNotFoundError):
        make_dispatcher().run("nope")


def test_physical_order_is_submitted_with_interior_and_cover(
    add_creation, add_order, make_dispatcher, print_provider, repository: InMemoryOrderRepository,
    storage: InMemoryStorage, notifier: RecordingNotifier,
) -> None:
    add_creation(pages=12)
    add_order(channel=Channel.PHYSICAL)

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.SUBMITTED
    assert result.provider_job_id == "job-1"
    order = repository.get("order-1")
    assert order.status is OrderStatus.SUBMITTED_TO_PRINTER
    assert order.provider_job_id == "job-1"
    assert order.artifact_path.startswith("books/order-1/interior-")
    assert order.cover_artifact_path.startswith("books/order-1/cover-")
    assert count_pages(storage.get("book-pdfs", order.artifact_path)) == 32
    assert count_pages(storage.get("book-pdfs", order.cover_artifact_path)) == 1

    job = print_provider.jobs[0]
    assert job.external_id == "order-1"
    assert job.product_code == "0850X0850FCPRECW060UW444MXX"
    assert job.shipping_address["city"] == "Portland"
    assert job.interior_url.startswith("https://storage.local/book-pdfs/books/order-1/interior-")
    assert job.contact_email == "parent@example.com"
    assert notifier.sent == []


def test_physical_order_is_never_submitted_twice(
    add_creation, add_order, make_dispatcher, print_provider
) -> None:
    add_creation(pages=2)
    add_order(channel=Channel.PHYSICAL)
    dispatcher = make_dispatcher()

    dispatcher.run("order-1")
    again = dispatcher.run("order-1")

    assert again.outcome is FulfillmentOutcome.ALREADY_SUBMITTED
    assert again.provider_job_id == "job-1"
    assert len(print_provider.jobs) == 1


def test_provider_failure_keeps_artifacts_and_resumes_from_pdf_ready(
    add_creation, add_order, make_dispatcher, failing_print_provider, print_provider,
    repository: InMemoryOrderRepository, storage: InMemoryStorage,
) -> None:
    add_creation(pages=2)
    add_order(channel=Channel.PHYSICAL)

    failed = make_dispatcher(print_provider=failing_print_provider).run("order-1")

    assert failed.outcome is FulfillmentOutcome.FAILED
    assert failed.failure.kind == "transient"
    assert failed.failure.retryable
    assert repository.get("order-1").status is OrderStatus.PDF_READY
    uploads = storage.upload_count

    resumed = make_dispatcher().run("order-1")

    assert resumed.outcome is FulfillmentOutcome.SUBMITTED
    assert storage.upload_count == uploads
    assert len(print_provider.jobs) == 1


def test_persistent_provider_failure_escalates_from_pdf_ready(
    add_creation, add_order, make_dispatcher, failing_print_provider, repository: InMemoryOrderRepository,
    storage: InMemoryStorage,
) -> None:
    add_creation(pages=2)
    add_order(channel=Channel.PHYSICAL)
    dispatcher = make_dispatcher(print_provider=failing_print_provider, max_attempts=2)

    outcomes = [dispatcher.run("order-1").outcome for _ in range(4)]

    assert outcomes == [
        FulfillmentOutcome.FAILED,
        FulfillmentOutcome.NEEDS_REVIEW,
        FulfillmentOutcome.NEEDS_REVIEW,
        FulfillmentOutcome.NEEDS_REVIEW,
    ]
    order = repository.get("order-1")
    assert order.status is OrderStatus.PDF_READY
    assert order.fulfillment_attempt == 2
    assert order.needs_review
    assert len(failing_print_provider.jobs) == 2
    assert storage.upload_count == 2


def test_resume_from_pdf_ready_waits_for_an_active_lease(
    add_creation, add_order, make_dispatcher, print_provider, clock, repository: InMemoryOrderRepository
) -> None:
    add_creation(pages=2)
    add_order(
        channel=Channel.PHYSICAL,
        status=OrderStatus.PDF_READY,
        artifact_path="books/order-1/interior-1.pdf",
        cover_artifact_path="books/order-1/cover-1.pdf",
        processing_started_at=clock(),
        fulfillment_attempt=1,
    )

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.IN_PROGRESS
    assert print_provider.jobs == []
    assert repository.get("order-1").fulfillment_attempt == 1


def test_recorded_job_id_skips_resubmission(
    add_creation, add_order, make_dispatcher, print_provider, repository: InMemoryOrderRepository
) -> None:
    add_creation(pages=2)
    add_order(
        channel=Channel.PHYSICAL,
        status=OrderStatus.PDF_READY,
        artifact_path="books/order-1/interior-1.pdf",
        cover_artifact_path="books/order-1/cover-1.pdf",
        provider_job_id="job-77",
    )

    result = make_dispatcher().run("order-1")

    assert result.outcome is FulfillmentOutcome.SUBMITTED
    assert result.provider_job_id == "job-77"
    assert print_provider.jobs == []
    assert repository.get("order-1").status is OrderStatus.SUBMITTED_TO_PRINTER


def test_email_failure_does_not_fail_the_order(
    add_creation, add_order, make_dispatcher, repository: InMemoryOrderRepository
) -> None:
    add_creation(pages=2)
    add_order(channel=Channel.DIGITAL)

    result = make_dispatcher(notifier=RecordingNotifier(fail=True)).run("order-1")

    assert result.outcome is FulfillmentOutcome.COMPLETED
    assert repository.get("order-1").status is OrderStatus.COMPLETED


def test_refresh_download_re_signs_completed_order(
    add_creation, add_order, make_dispatcher, clock, repository: InMemoryOrderRepository
) -> None:
    add_creation(pages=2)
    add_order(channel=Channel.DIGITAL)
    dispatcher = make_dispatcher()
    dispatcher.run("order-1")
    clock.advance(days=8)

    handle = dispatcher.refresh_download("order-1")

    assert handle.expires_at == clock() + timedelta(days=7)
    assert repository.get("order-1").download_url == handle.url


def test_refresh_download_requires_completed_order(add_order, make_dispatcher) -> None:
    add_order(channel=Channel.DIGITAL)

    with pytest.raises(InvalidTransitionError):
        make_dispatcher().refresh_download("order-1")


def test_safe_title_slugifies_for_storage_paths() -> None:
    assert safe_title("Luna & the Paper Moon!") == "luna-the-paper-moon"
    assert safe_title("!!!") == "storybook"
    assert len(safe_title("a" * 80)) == 50


def test_shipped_template_key_is_distinct() -> None:
    assert BOOK_SHIPPED_TEMPLATE != EBOOK_DELIVERY_TEMPLATE
