"""
Turns book content into the complete deliverable for one fulfillment channel.

Sub-documents are rendered one after another and merged in generation order.
Rendering is kept sequential so a single invocation stays inside a bounded
compute budget.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from storybook_fulfillment.book.content import BookContent
from storybook_fulfillment.common.errors import AssemblyError, ContentError
from storybook_fulfillment.pdf_generation.compositor import CoverSide, StorybookPageCompositor
from storybook_fulfillment.pdf_generation.merge import count_pages, merge_documents
from storybook_fulfillment.pdf_generation.specs import (
    BACK_MATTER_PAGES,
    DIGITAL_PAGE_SIZE,
    FIXED_PAGE_COUNT,
    FRONT_MATTER_PAGES,
    GENERATOR_NAME,
    INTERIOR_PAGE_SIZE,
    MIN_STORY_PAGES,
    BookType,
    Channel,
    validate_page_count,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], None]


class DocumentRole(str, Enum):
    DIGITAL_BOOK = "digital_book"
    PRINT_INTERIOR = "print_interior"
    PRINT_COVER = "print_cover"


@dataclass(frozen=True)
class AssembledDocument:
    role: DocumentRole
    payload: bytes
    page_count: int

    @property
    def size_bytes(self) -> int:
        return len(self.payload)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.payload).hexdigest()


@dataclass(frozen=True)
class AssemblyResult:
    channel: Channel
    documents: tuple[AssembledDocument, ...]

    def get(self, role: DocumentRole) -> AssembledDocument:
        for document in self.documents:
            if document.role is role:
                return document
        raise KeyError(role)

    def has(self, role: DocumentRole) -> bool:
        return any(document.role is role for document in self.documents)


def digital_page_count(story_pages: int) -> int:
    """Front cover, one page per story page, back cover."""
    return 1 + story_pages + 1


class DocumentAssembler:
    """
    Produce the binary documents for a channel.

    Digital: front cover + story pages + back cover, merged into one PDF with
    bibliographic metadata.

    Physical: an interior of exactly ``interior_page_count`` pages (front
    matter, story pages, back matter, then blank padding) and a separate
    full-wrap cover sized for that page count.
    """

    def __init__(
        self,
        compositor: StorybookPageCompositor,
        *,
        interior_page_count: int = FIXED_PAGE_COUNT,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        validate_page_count(interior_page_count)
        self.compositor = compositor
        self.interior_page_count = interior_page_count
        self.progress_callback = progress_callback

    @property
    def max_story_pages(self) -> int:
        return self.interior_page_count - FRONT_MATTER_PAGES - BACK_MATTER_PAGES

    def assemble(
        self,
        content: BookContent,
        *,
        channel: Channel | str,
        cover_color_id: str | None = None,
        text_color_id: str | None = None,
        book_type: BookType | str = BookType.SOFTCOVER,
    ) -> AssemblyResult:
        channel = Channel(channel)
        if channel is Channel.DIGITAL:
            documents = (
                self.assemble_digital(
                    content,
                    cover_color_id=cover_color_id,
                    text_color_id=text_color_id,
                ),
            )
        else:
            documents = (
                self.assemble_print_interior(content),
                self.assemble_print_cover(
                    content,
                    book_type=book_type,
                    cover_color_id=cover_color_id,
                    text_color_id=text_color_id,
                ),
            )
        return AssemblyResult(channel=channel, documents=documents)

    def assemble_digital(
        self,
        content: BookContent,
        *,
        cover_color_id: str | None = None,
        text_color_id: str | None = None,
    ) -> AssembledDocument:
        self._require_story_pages(content)
        content.require_page_images()
        total = digital_page_count(len(content.pages))
        self._notify("digital:start", title=content.title, total_pages=total)

        parts: list[bytes] = [
            self.compositor.compose_cover_page(
                content,
                cover_color_id=cover_color_id,
                text_color_id=text_color_id,
                side=CoverSide.FRONT,
                page_size=DIGITAL_PAGE_SIZE,
            )
        ]
        self._notify("digital:page", rendered=len(parts), total_pages=total)

        for page in content.pages:
            parts.append(
                self.compositor.compose_interior_page(
                    page,
                    page_size=DIGITAL_PAGE_SIZE,
                    require_image=True,
                    folio=page.page_number,
                )
            )
            self._notify("digital:page", rendered=len(parts), total_pages=total)

        parts.append(
            self.compositor.compose_cover_page(
                content,
                cover_color_id=cover_color_id,
                text_color_id=text_color_id,
                side=CoverSide.BACK,
                page_size=DIGITAL_PAGE_SIZE,
            )
        )
        self._notify("digital:page", rendered=len(parts), total_pages=total)

        merged = merge_documents(parts, metadata=self._metadata(content))
        if merged.page_count != total:
            raise AssemblyError(
                f"Digital book '{content.title}' has {merged.page_count} pages, expected {total}"
            )

        logger.info(
            "Assembled digital book",
            extra={"title": content.title, "page_count": merged.page_count, "size_bytes": merged.size_bytes},
        )
        self._notify("digital:complete", page_count=merged.page_count, size_bytes=merged.size_bytes)
        return AssembledDocument(DocumentRole.DIGITAL_BOOK, merged.payload, merged.page_count)

    def assemble_print_interior(self, content: BookContent) -> AssembledDocument:
        self._require_story_pages(content)
        story_count = len(content.pages)
        if story_count > self.max_story_pages:
            raise AssemblyError(
                f"'{content.title}' has {story_count} story pages; a "
                f"{self.interior_page_count}-page interior holds at most {self.max_story_pages}"
            )
        content.require_page_images()
        self._notify("interior:start", title=content.title, total_pages=self.interior_page_count)

        compositor = self.compositor
        parts: list[bytes] = [
            compositor.compose_belongs_to_page(page_size=INTERIOR_PAGE_SIZE),
            compositor.compose_title_page(content, page_size=INTERIOR_PAGE_SIZE),
            compositor.compose_dedication_page(content, page_size=INTERIOR_PAGE_SIZE),
        ]
        for page in content.pages:
            parts.append(
                compositor.compose_interior_page(
                    page,
                    page_size=INTERIOR_PAGE_SIZE,
                    require_image=True,
                    folio=len(parts) + 1,
                )
            )
            self._notify("interior:page", rendered=len(parts), total_pages=self.interior_page_count)

        parts.append(compositor.compose_end_page(page_size=INTERIOR_PAGE_SIZE))
        parts.append(compositor.compose_about_artist_page(content, page_size=INTERIOR_PAGE_SIZE))
        parts.append(compositor.compose_drawing_page(page_size=INTERIOR_PAGE_SIZE))

        padding = self.interior_page_count - len(parts)
        for _ in range(padding):
            parts.append(compositor.compose_blank_page(page_size=INTERIOR_PAGE_SIZE))

        merged = merge_documents(parts, metadata=self._metadata(content))
        if merged.page_count != self.interior_page_count:
            raise AssemblyError(
                f"Print interior for '{content.title}' has {merged.page_count} pages, "
                f"expected {self.interior_page_count}"
            )

        logger.info(
            "Assembled print interior",
            extra={
                "title": content.title,
                "story_pages": story_count,
                "blank_pages": padding,
                "size_bytes": merged.size_bytes,
            },
        )
        self._notify("interior:complete", page_count=merged.page_count, size_bytes=merged.size_bytes)
        return AssembledDocument(DocumentRole.PRINT_INTERIOR, merged.payload, merged.page_count)

    def assemble_print_cover(
        self,
        content: BookContent,
        *,
        book_type: BookType | str = BookType.SOFTCOVER,
        cover_color_id: str | None = None,
        text_color_id: str | None = None,
    ) -> AssembledDocument:
        self._notify("cover:start", title=content.title, book_type=str(BookType(book_type).value))
        payload = self.compositor.compose_cover_wrap(
            content,
            page_count=self.interior_page_count,
            book_type=book_type,
            cover_color_id=cover_color_id,
            text_color_id=text_color_id,
        )
        page_count = count_pages(payload)
        if page_count != 1:
            raise AssemblyError(f"Cover wrap for '{content.title}' has {page_count} pages, expected 1")
        self._notify("cover:complete", size_bytes=len(payload))
        return AssembledDocument(DocumentRole.PRINT_COVER, payload, page_count)

    @staticmethod
    def _require_story_pages(content: BookContent) -> None:
        if len(content.pages) < MIN_STORY_PAGES:
            raise ContentError(f"'{content.title}' has no story pages")

    @staticmethod
    def _metadata(content: BookContent) -> dict[str, str]:
        return {
            "title": content.title,
            "author": content.artist_name,
            "subject": f"{content.title} by {content.artist_name}",
            "creator": GENERATOR_NAME,
            "producer": GENERATOR_NAME,
        }

    def _notify(self, stage: str, **payload: Any) -> None:
        if self.progress_callback is not None:
            self.progress_callback(stage, payload)
