from __future__ import annotations

import fitz
import pytest

from storybook_fulfillment.book import BookContent, StoryPage
from storybook_fulfillment.common.errors import AssemblyError, ContentError, MissingAssetError, RenderError
from storybook_fulfillment.pdf_generation import (
    BookType,
    Channel,
    DocumentAssembler,
    DocumentRole,
    StorybookPageCompositor,
    count_pages,
    digital_page_count,
    get_cover_wrap_spec,
    merge_documents,
)
from storybook_fulfillment.pdf_generation.specs import DIGITAL_PAGE_SIZE, GENERATOR_NAME, INTERIOR_PAGE_SIZE

from .conftest import png_bytes

IMAGE_HOST = "https://images.test/"


def _fetcher(missing: set[str] | None = None, payloads: dict[str, bytes] | None = None):
    missing = missing or set()
    payloads = payloads or {}

    def fetch(url: str | None) -> bytes | None:
        if not url or url in missing:
            return None
        return payloads.get(url, png_bytes())

    return fetch


def _content(pages: int, *, title: str = "Luna and the Paper Moon") -> BookContent:
    return BookContent(
        title=title,
        artist_name="Maya",
        artist_age="6",
        year="2025",
        dedication="For Grandpa, who taught me to draw.",
        original_image_url=f"{IMAGE_HOST}original.png",
        pages=tuple(
            StoryPage(number, f"Page {number}: Luna climbed a little higher.", f"{IMAGE_HOST}{number}.png")
            for number in range(1, pages + 1)
        ),
    )


def _assembler(**fetch_kwargs) -> DocumentAssembler:
    return DocumentAssembler(StorybookPageCompositor(fetch_image=_fetcher(**fetch_kwargs)))


def _page_sizes(payload: bytes) -> list[tuple[float, float]]:
    document = fitz.open(stream=payload, filetype="pdf")
    try:
        return [(round(page.rect.width, 1), round(page.rect.height, 1)) for page in document]
    finally:
        document.close()


def test_digital_book_has_cover_story_pages_and_back_cover() -> None:
    result = _assembler().assemble(_content(12), channel=Channel.DIGITAL, cover_color_id="sage")

    document = result.get(DocumentRole.DIGITAL_BOOK)
    assert document.page_count == 14 == digital_page_count(12)
    assert count_pages(document.payload) == 14
    assert set(_page_sizes(document.payload)) == {(round(DIGITAL_PAGE_SIZE[0], 1), round(DIGITAL_PAGE_SIZE[1], 1))}
    assert not result.has(DocumentRole.PRINT_COVER)


def test_digital_book_carries_bibliographic_metadata() -> None:
    document = _assembler().assemble_digital(_content(3))

    pdf = fitz.open(stream=document.payload, filetype="pdf")
    try:
        metadata = pdf.metadata
    finally:
        pdf.close()
    assert metadata["title"] == "Luna and the Paper Moon"
    assert metadata["author"] == "Maya"
    assert metadata["creator"] == GENERATOR_NAME


def test_digital_page_order_follows_story_numbers() -> None:
    document = _assembler().assemble_digital(_content(4))

    pdf = fitz.open(stream=document.payload, filetype="pdf")
    try:
        texts = [page.get_text() for page in pdf]
    finally:
        pdf.close()
    assert "Luna and the Paper Moon" in texts[0]
    for index in range(1, 5):
        assert f"Page {index}:" in texts[index]
    assert GENERATOR_NAME in texts[-1]


def test_missing_story_image_names_the_page() -> None:
    assembler = _assembler(missing={f"{IMAGE_HOST}7.png"})

    with pytest.raises(MissingAssetError) as excinfo:
        assembler.assemble_digital(_content(12))

    assert excinfo.value.page_number == 7


def test_missing_cover_art_renders_placeholder_instead_of_failing() -> None:
    assembler = _assembler(missing={f"{IMAGE_HOST}original.png"})

    document = assembler.assemble_digital(_content(2))

    assert document.page_count == 4


def test_corrupt_image_bytes_raise_render_error() -> None:
    assembler = _assembler(payloads={f"{IMAGE_HOST}2.png": b"not an image"})

    with pytest.raises(RenderError):
        assembler.assemble_digital(_content(3))


@pytest.mark.parametrize("story_pages", [1, 12, 26])
def test_print_interior_is_always_thirty_two_pages(story_pages: int) -> None:
    document = _assembler().assemble_print_interior(_content(story_pages))

    assert document.role is DocumentRole.PRINT_INTERIOR
    assert document.page_count == 32
    assert set(_page_sizes(document.payload)) == {
        (round(INTERIOR_PAGE_SIZE[0], 1), round(INTERIOR_PAGE_SIZE[1], 1))
    }


def test_print_interior_rejects_too_many_story_pages() -> None:
    with pytest.raises(AssemblyError):
        _assembler().assemble_print_interior(_content(27))


def test_book_without_story_pages_is_a_content_error() -> None:
    empty = BookContent(title="Empty", artist_name="Ada", pages=())

    with pytest.raises(ContentError):
        _assembler().assemble_print_interior(empty)
    with pytest.raises(ContentError):
        _assembler().assemble_digital(empty)


def test_print_cover_wrap_matches_spine_geometry() -> None:
    result = _assembler().assemble(_content(12), channel=Channel.PHYSICAL, book_type=BookType.HARDCOVER)

    cover = result.get(DocumentRole.PRINT_COVER)
    spec = get_cover_wrap_spec(32, BookType.HARDCOVER)
    assert cover.page_count == 1
    width, height = _page_sizes(cover.payload)[0]
    assert width == pytest.approx(spec.page_size[0], abs=0.5)
    assert height == pytest.approx(spec.page_size[1], abs=0.5)
    assert spec.width_inches == pytest.approx(17.0 + 32 * 0.00225 + 0.25)
    assert result.get(DocumentRole.PRINT_INTERIOR).page_count == 32


def test_progress_callback_reports_each_page() -> None:
    events: list[tuple[str, dict]] = []
    assembler = DocumentAssembler(
        StorybookPageCompositor(fetch_image=_fetcher()),
        progress_callback=lambda stage, payload: events.append((stage, payload)),
    )

    assembler.assemble_digital(_content(2))

    stages = [stage for stage, _ in events]
    assert stages[0] == "digital:start"
    assert stages.count("digital:page") == 4
    assert stages[-1] == "digital:complete"


def test_interior_page_count_must_be_bindable() -> None:
    with pytest.raises(ValueError):
        DocumentAssembler(StorybookPageCompositor(fetch_image=_fetcher()), interior_page_count=33)


def test_merge_preserves_part_order_and_rejects_garbage() -> None:
    compositor = StorybookPageCompositor(fetch_image=_fetcher())
    parts = [compositor.compose_end_page(), compositor.compose_blank_page(), compositor.compose_drawing_page()]

    merged = merge_documents(parts, metadata={"title": "Parts"})

    assert merged.page_count == 3
    assert len(merged.sha256) == 64
    with pytest.raises(AssemblyError):
        merge_documents([])
    with pytest.raises(AssemblyError):
        merge_documents([parts[0], b""])
