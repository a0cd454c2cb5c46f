from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
import requests
from PIL import Image

from storybook_fulfillment.asset_resolution import AssetResolver
from storybook_fulfillment.common.errors import PrintProviderError
from storybook_fulfillment.fulfillment import FulfillmentDispatcher
from storybook_fulfillment.integrations import (
    CreationRecord,
    InMemoryCreationSource,
    InMemoryStorage,
    ManufacturingJob,
    SubmittedJob,
)
from storybook_fulfillment.orders import InMemoryOrderRepository, Order, OrderStatus, ShippingAddress
from storybook_fulfillment.pdf_generation import BookType, Channel, DocumentAssembler, StorybookPageCompositor

FIXED_NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


def png_bytes(color: tuple[int, int, int] = (220, 130, 90), size: tuple[int, int] = (48, 36)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", payload: Any = None) -> None:
        self.status_code = status_code
        self.content = content
        self._payload = payload
        self.text = content.decode("utf-8", errors="replace") if content else ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        return self._payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


class StorageBackedSession:
    """Serves signed URLs minted by an :class:`InMemoryStorage`."""

    def __init__(self, storage: InMemoryStorage) -> None:
        self.storage = storage
        self.requested: list[str] = []

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.requested.append(url)
        payload = self.storage.read_signed_url(url)
        if payload is None:
            return FakeResponse(status_code=404)
        return FakeResponse(content=payload)


class RecordingPrintProvider:
    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.jobs: list[ManufacturingJob] = []
        self.fail_with = fail_with

    def submit_manufacturing_job(self, job: ManufacturingJob) -> SubmittedJob:
        self.jobs.append(job)
        if self.fail_with is not None:
            raise self.fail_with
        return SubmittedJob(job_id=f"job-{len(self.jobs)}", status="CREATED")


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.fail = fail

    def send_delivery_email(self, recipient: str, template_key: str, variables) -> bool:
        if self.fail:
            raise RuntimeError("mail backend down")
        self.sent.append((recipient, template_key, dict(variables)))
        return True


class SteppingClock:
    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def session(storage: InMemoryStorage) -> StorageBackedSession:
    return StorageBackedSession(storage)


@pytest.fixture
def resolver(storage: InMemoryStorage, session: StorageBackedSession) -> AssetResolver:
    return AssetResolver(storage, session=session)


@pytest.fixture
def compositor(resolver: AssetResolver) -> StorybookPageCompositor:
    return StorybookPageCompositor(fetch_image=resolver.fetch_bytes)


@pytest.fixture
def assembler(compositor: StorybookPageCompositor) -> DocumentAssembler:
    return DocumentAssembler(compositor)


@pytest.fixture
def creations() -> InMemoryCreationSource:
    return InMemoryCreationSource()


@pytest.fixture
def repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def print_provider() -> RecordingPrintProvider:
    return RecordingPrintProvider()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def add_creation(storage: InMemoryStorage, creations: InMemoryCreationSource) -> Callable[..., CreationRecord]:
    def _add(
        creation_id: str = "creation-1",
        *,
        pages: int = 12,
        missing_pages: tuple[int, ...] = (),
        title: str = "The Dragon Who Loved Crayons",
        with_original: bool = True,
    ) -> CreationRecord:
        page_paths: list[str] = []
        for number in range(1, pages + 1):
            path = f"{creation_id}/page-{number}.png"
            page_paths.append(path)
            if number not in missing_pages:
                storage.put("page-images", path, png_bytes((30 + number * 7 % 200, 120, 160)))

        original_path = None
        if with_original:
            original_path = f"{creation_id}/original.png"
            storage.put("drawings", original_path, png_bytes((250, 240, 200), size=(60, 80)))

        creation = CreationRecord(
            id=creation_id,
            title=title,
            artist_name="Maya",
            artist_age="6",
            year="2025",
            original_image_path=original_path,
            analysis_pages=tuple(
                {"pageNumber": number, "text": f"On page {number} the dragon found a new colour."}
                for number in range(1, pages + 1)
            ),
            page_images=tuple(page_paths),
        )
        creations.add(creation)
        return creation

    return _add


@pytest.fixture
def add_order(repository: InMemoryOrderRepository, clock: SteppingClock) -> Callable[..., Order]:
    def _add(
        order_id: str = "order-1",
        *,
        channel: Channel = Channel.DIGITAL,
        status: OrderStatus = OrderStatus.PAYMENT_RECEIVED,
        creation_id: str = "creation-1",
        **overrides: Any,
    ) -> Order:
        fields: dict[str, Any] = {
            "id": order_id,
            "user_id": "user-1",
            "creation_id": creation_id,
            "channel": channel,
            "status": status,
            "amount_paid": 1499,
            "contact_email": "parent@example.com",
            "customer_name": "Sam",
            "created_at": clock(),
            "updated_at": clock(),
        }
        if channel is Channel.PHYSICAL:
            fields["book_type"] = BookType.HARDCOVER
            fields["shipping_address"] = ShippingAddress(
                name="Sam Parent",
                street1="1 Crayon Way",
                city="Portland",
                state_code="OR",
                postcode="97201",
                country_code="US",
                phone_number="5550100",
            )
        fields.update(overrides)
        return repository.create(Order(**fields))

    return _add


@pytest.fixture
def make_dispatcher(
    repository: InMemoryOrderRepository,
    creations: InMemoryCreationSource,
    storage: InMemoryStorage,
    resolver: AssetResolver,
    assembler: DocumentAssembler,
    print_provider: RecordingPrintProvider,
    notifier: RecordingNotifier,
    clock: SteppingClock,
) -> Callable[..., FulfillmentDispatcher]:
    def _make(**overrides: Any) -> FulfillmentDispatcher:
        options: dict[str, Any] = {
            "repository": repository,
            "creations": creations,
            "storage": storage,
            "resolver": resolver,
            "assembler": assembler,
            "print_provider": print_provider,
            "notifier": notifier,
            "clock": clock,
        }
        options.update(overrides)
        return FulfillmentDispatcher(**options)

    return _make


@pytest.fixture
def failing_print_provider() -> RecordingPrintProvider:
    return RecordingPrintProvider(fail_with=PrintProviderError("provider unavailable", status_code=503))
