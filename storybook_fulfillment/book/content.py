"""
Book content assembled fresh for each fulfillment attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from storybook_fulfillment.asset_resolution import AssetResolver
from storybook_fulfillment.common.errors import ContentError, MissingAssetError
from storybook_fulfillment.common.http import is_absolute_url
from storybook_fulfillment.integrations.creations import CreationRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoryPage:
    """A single illustrated story page."""

    page_number: int
    text: str
    image_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "text": self.text,
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class BookContent:
    """
    Everything the document assembler needs to render one book.

    Image fields hold fetchable URLs once resolved; ``None`` marks an asset
    that has not been generated or could not be resolved.
    """

    title: str
    artist_name: str
    pages: tuple[StoryPage, ...]
    artist_age: str | None = None
    year: str | None = None
    dedication: str = ""
    original_image_url: str | None = None
    hero_image_url: str | None = None

    def __post_init__(self) -> None:
        validate_page_sequence(self.pages)

    @property
    def byline(self) -> str:
        return f"by {self.artist_name}"

    def missing_page_images(self) -> list[int]:
        return [page.page_number for page in self.pages if not page.image_url]

    def require_page_images(self) -> None:
        missing = self.missing_page_images()
        if missing:
            raise MissingAssetError(
                f"Story pages without a resolvable image: {missing}",
                page_number=missing[0],
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist_name": self.artist_name,
            "artist_age": self.artist_age,
            "year": self.year,
            "dedication": self.dedication,
            "original_image_url": self.original_image_url,
            "hero_image_url": self.hero_image_url,
            "pages": [page.to_dict() for page in self.pages],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "BookContent":
        if "pages" not in payload:
            raise ValueError("Book content payload must include 'pages'.")

        pages: list[StoryPage] = []
        for entry in payload.get("pages") or []:
            try:
                page_number = int(entry["page_number"])
                text = str(entry.get("text") or "").strip()
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"Invalid page entry: {entry}") from exc
            image_url = str(entry.get("image_url") or "").strip() or None
            pages.append(StoryPage(page_number=page_number, text=text, image_url=image_url))

        return cls(
            title=str(payload.get("title") or "").strip() or "Untitled Story",
            artist_name=str(payload.get("artist_name") or "").strip() or "Unknown Artist",
            artist_age=_optional_str(payload.get("artist_age")),
            year=_optional_str(payload.get("year")),
            dedication=str(payload.get("dedication") or "").strip(),
            original_image_url=_optional_str(payload.get("original_image_url")),
            hero_image_url=_optional_str(payload.get("hero_image_url")),
            pages=tuple(sorted(pages, key=lambda page: page.page_number)),
        )

    @classmethod
    def from_yaml(cls, source: str | Path) -> "BookContent":
        path = Path(source)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError("Book content YAML must deserialize to a mapping.")
        return cls.from_dict(data)

    @classmethod
    def from_creation(
        cls,
        creation: CreationRecord,
        *,
        resolver: AssetResolver,
        drawings_bucket: str,
        page_images_bucket: str,
        dedication: str | None = None,
    ) -> "BookContent":
        return resolve_book_content(
            creation,
            resolver=resolver,
            drawings_bucket=drawings_bucket,
            page_images_bucket=page_images_bucket,
            dedication=dedication,
        )


def validate_page_sequence(pages: Sequence[StoryPage]) -> None:
    """
    Story pages must be numbered 1..N in order with no gaps.
    """
    for expected, page in enumerate(pages, start=1):
        if page.page_number != expected:
            raise ContentError(
                f"Story pages must be contiguous from 1; expected page {expected}, "
                f"found {page.page_number}."
            )


def resolve_book_content(
    creation: CreationRecord,
    *,
    resolver: AssetResolver,
    drawings_bucket: str,
    page_images_bucket: str,
    dedication: str | None = None,
) -> BookContent:
    """
    Build :class:`BookContent` from a stored creation, signing every image
    reference. A story page whose image cannot be resolved aborts the build.
    """
    # page_images is aligned with the stored order of analysis pages, not their numbers.
    numbered: list[tuple[int, int, Mapping[str, Any]]] = []
    for index, raw_page in enumerate(creation.analysis_pages):
        try:
            page_number = int(raw_page.get("pageNumber") or raw_page.get("page_number") or index + 1)
        except (TypeError, ValueError) as exc:
            raise ContentError(f"Creation {creation.id} page {index + 1} has an invalid number.") from exc
        numbered.append((page_number, index, raw_page))
    if not numbered:
        raise ContentError(f"Creation {creation.id} has no story pages.")
    numbered.sort(key=lambda item: (item[0], item[1]))

    storage_paths = [
        creation.page_images[index] if index < len(creation.page_images) else None
        for _, index, _ in numbered
    ]
    resolved = resolver.resolve_many(page_images_bucket, storage_paths)

    pages: list[StoryPage] = []
    for (page_number, _, raw_page), asset in zip(numbered, resolved):
        image_url = asset.url
        legacy_url = str(raw_page.get("imageUrl") or "").strip()
        if not image_url and is_absolute_url(legacy_url):
            logger.warning(
                "Falling back to legacy image URL",
                extra={"creation_id": creation.id, "page_number": page_number},
            )
            image_url = legacy_url

        if not image_url:
            raise MissingAssetError(
                f"Story page {page_number} of creation {creation.id} has no resolvable image"
                + (f" ({asset.error})" if asset.error else ""),
                page_number=page_number,
            )

        pages.append(
            StoryPage(
                page_number=page_number,
                text=str(raw_page.get("text") or "").strip(),
                image_url=image_url,
            )
        )

    original = resolver.resolve(drawings_bucket, creation.original_image_path)
    if not original.ok:
        logger.warning(
            "Original drawing unavailable; covers render without it",
            extra={"creation_id": creation.id, "error": original.error},
        )

    return BookContent(
        title=creation.title,
        artist_name=creation.artist_name,
        artist_age=creation.artist_age,
        year=creation.year,
        dedication=(dedication or "").strip(),
        original_image_url=original.url,
        hero_image_url=original.url,
        pages=tuple(pages),
    )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
