from __future__ import annotations

from pathlib import Path

import pytest

from storybook_fulfillment.asset_resolution import AssetResolver
from storybook_fulfillment.book import BookContent, StoryPage
from storybook_fulfillment.common.errors import ContentError, MissingAssetError
from storybook_fulfillment.integrations import CreationRecord, InMemoryStorage


def _resolve(creation: CreationRecord, resolver: AssetResolver, **kwargs) -> BookContent:
    return BookContent.from_creation(
        creation,
        resolver=resolver,
        drawings_bucket="drawings",
        page_images_bucket="page-images",
        **kwargs,
    )


def test_creation_resolves_to_signed_page_urls(add_creation, resolver: AssetResolver) -> None:
    creation = add_creation(pages=4)

    content = _resolve(creation, resolver, dedication="  For Grandma  ")

    assert [page.page_number for page in content.pages] == [1, 2, 3, 4]
    assert all(page.image_url.startswith("https://storage.local/page-images/") for page in content.pages)
    assert content.original_image_url.startswith("https://storage.local/drawings/")
    assert content.dedication == "For Grandma"
    assert content.byline == "by Maya"


def test_missing_page_image_names_the_page(add_creation, resolver: AssetResolver) -> None:
    creation = add_creation(pages=12, missing_pages=(7,))

    with pytest.raises(MissingAssetError) as excinfo:
        _resolve(creation, resolver)

    assert excinfo.value.page_number == 7


def test_legacy_absolute_image_url_is_used_when_storage_path_missing(
    storage: InMemoryStorage, resolver: AssetResolver
) -> None:
    creation = CreationRecord(
        id="legacy",
        title="Old Story",
        artist_name="Leo",
        analysis_pages=({"pageNumber": 1, "text": "Once.", "imageUrl": "https://cdn.example.com/1.png"},),
        page_images=(),
    )

    content = _resolve(creation, resolver)

    assert content.pages[0].image_url == "https://cdn.example.com/1.png"
    assert content.original_image_url is None


def test_missing_original_drawing_is_tolerated(add_creation, resolver: AssetResolver) -> None:
    creation = add_creation(pages=2, with_original=False)

    content = _resolve(creation, resolver)

    assert content.original_image_url is None
    assert len(content.pages) == 2


def test_creation_without_pages_is_a_content_error(resolver: AssetResolver) -> None:
    creation = CreationRecord(id="empty", title="Nothing", artist_name="Ada")

    with pytest.raises(ContentError):
        _resolve(creation, resolver)


def test_page_numbers_must_be_contiguous() -> None:
    with pytest.raises(ContentError):
        BookContent(
            title="Gap",
            artist_name="Ada",
            pages=(StoryPage(1, "one"), StoryPage(3, "three")),
        )


def test_yaml_round_trip_preserves_pages(tmp_path: Path) -> None:
    content = BookContent(
        title="Moon Picnic",
        artist_name="Ivy",
        artist_age="7",
        dedication="For the stars",
        pages=(StoryPage(1, "We packed sandwiches.", "https://cdn/1.png"), StoryPage(2, "We flew.", None)),
    )
    source = tmp_path / "book.yaml"
    source.write_text(content.to_yaml(), encoding="utf-8")

    loaded = BookContent.from_yaml(source)

    assert loaded == content
    assert loaded.missing_page_images() == [2]


def test_creation_row_parsing_defaults_blank_fields() -> None:
    record = CreationRecord.from_row(
        {
            "id": "c9",
            "title": "  ",
            "artist_name": None,
            "artist_age": 5,
            "analysis_json": {"pages": [{"pageNumber": 1, "text": "Hi"}]},
            "page_images": ["c9/page-1.png"],
        }
    )

    assert record.title == "Untitled Story"
    assert record.artist_name == "Unknown Artist"
    assert record.artist_age == "5"
    assert record.page_images == ("c9/page-1.png",)


def test_creation_row_with_malformed_analysis_is_rejected() -> None:
    with pytest.raises(ContentError):
        CreationRecord.from_row({"id": "c1", "analysis_json": {"pages": "not-a-list"}})


def test_page_images_follow_stored_order_when_analysis_is_unsorted(
    storage: InMemoryStorage, resolver: AssetResolver
) -> None:
    storage.put("page-images", "story/second.png", b"second")
    storage.put("page-images", "story/first.png", b"first")
    creation = CreationRecord(
        id="shuffled",
        title="Backwards Day",
        artist_name="Noa",
        analysis_pages=(
            {"pageNumber": 2, "text": "Then the rain stopped."},
            {"pageNumber": 1, "text": "It rained all morning."},
        ),
        page_images=("story/second.png", "story/first.png"),
    )

    content = _resolve(creation, resolver)

    first, second = content.pages
    assert first.text == "It rained all morning."
    assert "/page-images/story/first.png?" in first.image_url
    assert "/page-images/story/second.png?" in second.image_url


def test_non_numeric_page_number_is_a_content_error(storage: InMemoryStorage, resolver: AssetResolver) -> None:
    storage.put("page-images", "story/1.png", b"one")
    creation = CreationRecord(
        id="words",
        title="Counting",
        artist_name="Noa",
        analysis_pages=({"pageNumber": "three", "text": "Oops."},),
        page_images=("story/1.png",),
    )

    with pytest.raises(ContentError, match="invalid number"):
        _resolve(creation, resolver)
