"""
Single-page renderers for storybook documents.

Every ``compose_*`` call returns the bytes of a one-page PDF. The document
assembler decides the order and merges the pages, so a compositor never needs
to know where its page ends up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Callable, Optional, Sequence

import requests
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch, mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from storybook_fulfillment.book.content import BookContent, StoryPage
from storybook_fulfillment.common.errors import FulfillmentError, MissingAssetError, RenderError
from storybook_fulfillment.pdf_generation.specs import (
    BLEED_INCHES,
    DIGITAL_PAGE_SIZE,
    GENERATOR_NAME,
    INTERIOR_PAGE_SIZE,
    BookType,
    get_cover_color,
    get_cover_wrap_spec,
    get_text_color,
)
from storybook_fulfillment.pdf_generation.text_fitting import fit_line, fit_paragraph

logger = logging.getLogger(__name__)

ImageFetcher = Callable[[str], Optional[bytes]]

SITE_URL = "onceuponadrawing.com"
TAGLINE = "Every drawing has a story."
DEFAULT_DEDICATION = "For every young artist with a story to tell."
PLACEHOLDER_TEXT = "Illustration unavailable"
MIN_SPINE_TEXT_POINTS = 20


class CoverSide(str, Enum):
    FRONT = "front"
    BACK = "back"


@dataclass(frozen=True)
class PageLayoutConfig:
    page_background: colors.Color
    accent_color: colors.Color
    text_color: colors.Color
    caption_color: colors.Color
    placeholder_color: colors.Color


DEFAULT_LAYOUT = PageLayoutConfig(
    page_background=colors.HexColor("#FFFDF8"),
    accent_color=colors.HexColor("#FFB347"),
    text_color=colors.HexColor("#2F2A40"),
    caption_color=colors.HexColor("#4B506D"),
    placeholder_color=colors.HexColor("#E4E4EC"),
)


@dataclass(frozen=True)
class _Box:
    x: float
    y: float
    width: float
    height: float


class StorybookPageCompositor:
    """
    Render individual storybook pages at a fixed physical size.

    Images are fetched through ``fetch_image`` (usually the asset resolver).
    An image that cannot be fetched becomes a marked placeholder unless the
    caller asks for it with ``require_image=True``; bytes that cannot be
    decoded always raise :class:`RenderError`.
    """

    def __init__(
        self,
        *,
        fetch_image: ImageFetcher | None = None,
        margin_mm: float = 14.0,
        layout: PageLayoutConfig = DEFAULT_LAYOUT,
        request_timeout: float = 30.0,
    ) -> None:
        self.margin = margin_mm * mm
        self.layout = layout
        self.request_timeout = request_timeout
        self._fetch_image = fetch_image or self._download_image

        self.body_font, self.body_bold_font = self._configure_story_fonts()

        self.caption_style = ParagraphStyle(
            name="Caption",
            fontName=self.body_font,
            fontSize=18,
            leading=25,
            alignment=TA_CENTER,
            textColor=self.layout.text_color,
        )
        self.dedication_style = ParagraphStyle(
            name="Dedication",
            fontName="Helvetica-Oblique",
            fontSize=14,
            leading=19,
            alignment=TA_CENTER,
            textColor=self.layout.text_color,
        )
        self.note_style = ParagraphStyle(
            name="Note",
            fontName=self.body_font,
            fontSize=15,
            leading=21,
            alignment=TA_CENTER,
            textColor=self.layout.caption_color,
        )

    # ------------------------------------------------------------------ covers

    def compose_cover_page(
        self,
        content: BookContent,
        *,
        cover_color_id: str | None = None,
        text_color_id: str | None = None,
        side: CoverSide | str = CoverSide.FRONT,
        page_size: tuple[float, float] = DIGITAL_PAGE_SIZE,
    ) -> bytes:
        background = get_cover_color(cover_color_id)
        text_color = get_text_color(text_color_id)
        side = CoverSide(side)

        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            pdf.setFillColor(background)
            pdf.rect(0, 0, width, height, stroke=0, fill=1)
            box = _Box(0, 0, width, height)
            if side is CoverSide.FRONT:
                self._draw_front_cover(pdf, content, box, text_color)
            else:
                self._draw_back_cover(pdf, content, box, text_color)

        return self._single_page(page_size, draw, label=f"{side.value} cover")

    def compose_cover_wrap(
        self,
        content: BookContent,
        *,
        page_count: int,
        book_type: BookType | str = BookType.SOFTCOVER,
        cover_color_id: str | None = None,
        text_color_id: str | None = None,
    ) -> bytes:
        """
        Full-wrap print cover: back panel, spine and front panel on one sheet
        with bleed on every outer edge.
        """
        spec = get_cover_wrap_spec(page_count, book_type)
        background = get_cover_color(cover_color_id)
        text_color = get_text_color(text_color_id)

        bleed = spec.bleed_inches * inch
        panel = spec.panel_width_inches * inch
        spine = spec.spine_width_inches * inch
        panel_height = spec.height_inches * inch - 2 * bleed

        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            pdf.setFillColor(background)
            pdf.rect(0, 0, width, height, stroke=0, fill=1)

            self._draw_back_cover(pdf, content, _Box(bleed, bleed, panel, panel_height), text_color)
            self._draw_front_cover(
                pdf, content, _Box(bleed + panel + spine, bleed, panel, panel_height), text_color
            )
            if spine > MIN_SPINE_TEXT_POINTS:
                self._draw_spine(pdf, content, _Box(bleed + panel, bleed, spine, panel_height), text_color)

        return self._single_page(spec.page_size, draw, label="cover wrap")

    def _draw_front_cover(
        self,
        pdf: canvas.Canvas,
        content: BookContent,
        box: _Box,
        text_color: colors.Color,
    ) -> None:
        art_url = content.hero_image_url or content.original_image_url
        band_height = box.height * 0.30
        art_box = _Box(
            box.x + self.margin,
            box.y + box.height * 0.35,
            box.width - 2 * self.margin,
            box.height * 0.65 - self.margin,
        )
        reader = self._load_image(art_url, required=False, label="cover art")
        if reader is not None:
            self._draw_image_fit(pdf, reader, art_box)

        band = _Box(box.x + self.margin, box.y + self.margin, box.width - 2 * self.margin, band_height)
        pdf.saveState()
        pdf.setFillColor(colors.white)
        pdf.setFillAlpha(0.85)
        pdf.roundRect(band.x, band.y, band.width, band.height, 18, stroke=0, fill=1)
        pdf.restoreState()

        text_width = band.width - 2 * (self.margin * 0.6)
        center_x = band.x + band.width / 2

        title, title_size = fit_line(
            content.title, self.body_bold_font, max_width=text_width, max_size=32, min_size=14
        )
        pdf.setFillColor(text_color)
        pdf.setFont(self.body_bold_font, title_size)
        pdf.drawCentredString(center_x, band.y + band.height * 0.55, title)

        byline, byline_size = fit_line(
            self._byline(content), self.body_font, max_width=text_width, max_size=16, min_size=9
        )
        pdf.setFont(self.body_font, byline_size)
        pdf.drawCentredString(center_x, band.y + band.height * 0.25, byline)

    def _draw_back_cover(
        self,
        pdf: canvas.Canvas,
        content: BookContent,
        box: _Box,
        text_color: colors.Color,
    ) -> None:
        center_x = box.x + box.width / 2
        text_width = box.width - 2 * self.margin
        top = box.y + box.height - self.margin

        pdf.setFillColor(text_color)
        brand, brand_size = fit_line(
            GENERATOR_NAME, self.body_bold_font, max_width=text_width, max_size=20, min_size=10
        )
        pdf.setFont(self.body_bold_font, brand_size)
        pdf.drawCentredString(center_x, top - brand_size, brand)
        pdf.setFont("Helvetica-Oblique", 12)
        pdf.drawCentredString(center_x, top - brand_size - 20, TAGLINE)

        drawing_box = _Box(
            box.x + box.width * 0.25,
            box.y + box.height * 0.42,
            box.width * 0.5,
            box.height * 0.40,
        )
        reader = self._load_image(content.original_image_url, required=False, label="original drawing")
        if reader is not None:
            placed = self._draw_image_fit(pdf, reader, drawing_box, frame_color=colors.white)
            credit_y = placed.y - 18
        else:
            credit_y = drawing_box.y - 18

        credit, credit_size = fit_line(
            self._artwork_credit(content),
            self.body_font,
            max_width=text_width,
            max_size=12,
            min_size=7,
        )
        pdf.setFillColor(text_color)
        pdf.setFont(self.body_font, credit_size)
        pdf.drawCentredString(center_x, credit_y, credit)

        dedication_box = _Box(
            box.x + self.margin * 1.5,
            box.y + self.margin + 24,
            box.width - 3 * self.margin,
            max(credit_y - 14 - (box.y + self.margin + 24), 0),
        )
        style = ParagraphStyle(name="BackDedication", parent=self.dedication_style, textColor=text_color)
        self._draw_paragraph(pdf, content.dedication, style, dedication_box, min_size=8)

        pdf.setFillColor(text_color)
        pdf.setFont("Helvetica", 10)
        pdf.drawCentredString(center_x, box.y + self.margin, SITE_URL)

    def _draw_spine(
        self,
        pdf: canvas.Canvas,
        content: BookContent,
        box: _Box,
        text_color: colors.Color,
    ) -> None:
        label = f"{content.title}  |  {content.artist_name}"
        max_size = min(box.width * 0.6, 12)
        text, size = fit_line(
            label,
            self.body_bold_font,
            max_width=box.height - 2 * self.margin,
            max_size=max_size,
            min_size=min(5, max_size),
        )
        pdf.saveState()
        pdf.translate(box.x + box.width / 2, box.y + box.height / 2)
        pdf.rotate(-90)
        pdf.setFillColor(text_color)
        pdf.setFont(self.body_bold_font, size)
        pdf.drawCentredString(0, -size / 3, text)
        pdf.restoreState()

    # ------------------------------------------------------------------ interior pages

    def compose_interior_page(
        self,
        page: StoryPage,
        *,
        page_size: tuple[float, float] = DIGITAL_PAGE_SIZE,
        require_image: bool = False,
        folio: int | None = None,
    ) -> bytes:
        """Story page: illustration above, caption bubble below, page number in the footer."""
        reader = self._load_image(
            page.image_url,
            required=require_image,
            label=f"page {page.page_number}",
            page_number=page.page_number,
        )

        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            inset = self._safe_inset(width)
            self._fill_background(pdf, width, height)

            image_box = _Box(inset, height * 0.34, width - 2 * inset, height * 0.66 - inset)
            if reader is not None:
                self._draw_image_fit(pdf, reader, image_box)
            else:
                self._draw_placeholder(pdf, image_box)

            bubble = _Box(inset, inset + 18, width - 2 * inset, height * 0.34 - inset - 30)
            pdf.saveState()
            pdf.setFillColor(self._lighten(self.layout.accent_color, 0.75))
            pdf.roundRect(bubble.x, bubble.y, bubble.width, bubble.height, 20, stroke=0, fill=1)
            pdf.restoreState()
            self._draw_sparkles(pdf, bubble)

            padding = self.margin * 0.5
            text_box = _Box(
                bubble.x + padding,
                bubble.y + padding,
                bubble.width - 2 * padding,
                bubble.height - 2 * padding,
            )
            self._draw_paragraph(pdf, page.text, self.caption_style, text_box, min_size=9)

            if folio is not None:
                self._draw_footer(pdf, str(folio), width, inset)

        return self._single_page(page_size, draw, label=f"page {page.page_number}")

    def compose_belongs_to_page(self, *, page_size: tuple[float, float] = INTERIOR_PAGE_SIZE) -> bytes:
        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            self._fill_background(pdf, width, height)
            inset = self._safe_inset(width)
            pdf.setFillColor(self.layout.text_color)
            pdf.setFont(self.body_bold_font, 26)
            pdf.drawCentredString(width / 2, height * 0.58, "This book belongs to")
            pdf.saveState()
            pdf.setStrokeColor(self.layout.caption_color)
            pdf.setLineWidth(1.2)
            pdf.setDash(4, 4)
            pdf.line(inset + width * 0.12, height * 0.45, width - inset - width * 0.12, height * 0.45)
            pdf.restoreState()

        return self._single_page(page_size, draw, label="belongs-to page")

    def compose_title_page(
        self,
        content: BookContent,
        *,
        page_size: tuple[float, float] = INTERIOR_PAGE_SIZE,
    ) -> bytes:
        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            self._fill_background(pdf, width, height)
            text_width = width - 2 * self._safe_inset(width) - 2 * self.margin

            title, title_size = fit_line(
                content.title, self.body_bold_font, max_width=text_width, max_size=34, min_size=14
            )
            pdf.setFillColor(self.layout.text_color)
            pdf.setFont(self.body_bold_font, title_size)
            pdf.drawCentredString(width / 2, height * 0.58, title)

            byline, byline_size = fit_line(
                self._byline(content), self.body_font, max_width=text_width, max_size=18, min_size=9
            )
            pdf.setFillColor(self.layout.caption_color)
            pdf.setFont(self.body_font, byline_size)
            pdf.drawCentredString(width / 2, height * 0.58 - title_size - 16, byline)

            pdf.setFont("Helvetica-Oblique", 11)
            pdf.drawCentredString(width / 2, self._safe_inset(width) + 20, GENERATOR_NAME)

        return self._single_page(page_size, draw, label="title page")

    def compose_dedication_page(
        self,
        content: BookContent,
        *,
        page_size: tuple[float, float] = INTERIOR_PAGE_SIZE,
    ) -> bytes:
        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            self._fill_background(pdf, width, height)
            inset = self._safe_inset(width) + self.margin
            box = _Box(inset, height * 0.3, width - 2 * inset, height * 0.4)
            self._draw_paragraph(
                pdf,
                content.dedication or DEFAULT_DEDICATION,
                ParagraphStyle(name="DedicationPage", parent=self.dedication_style, fontSize=20, leading=28),
                box,
                min_size=9,
            )

        return self._single_page(page_size, draw, label="dedication page")

    def compose_end_page(self, *, page_size: tuple[float, float] = INTERIOR_PAGE_SIZE) -> bytes:
        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            self._fill_background(pdf, width, height)
            self._draw_sparkles(pdf, _Box(width * 0.2, height * 0.3, width * 0.6, height * 0.4))
            pdf.setFillColor(self.layout.text_color)
            pdf.setFont(self.body_bold_font, 40)
            pdf.drawCentredString(width / 2, height / 2 - 12, "The End")

        return self._single_page(page_size, draw, label="end page")

    def compose_about_artist_page(
        self,
        content: BookContent,
        *,
        page_size: tuple[float, float] = INTERIOR_PAGE_SIZE,
    ) -> bytes:
        reader = self._load_image(content.original_image_url, required=False, label="original drawing")

        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            self._fill_background(pdf, width, height)
            inset = self._safe_inset(width)

            pdf.setFillColor(self.layout.text_color)
            pdf.setFont(self.body_bold_font, 26)
            pdf.drawCentredString(width / 2, height - inset - 40, "About the Artist")

            drawing_box = _Box(width * 0.25, height * 0.36, width * 0.5, height * 0.42)
            if reader is not None:
                self._draw_image_fit(pdf, reader, drawing_box, frame_color=colors.white)
            else:
                self._draw_placeholder(pdf, drawing_box)

            box = _Box(inset + self.margin, inset + 20, width - 2 * (inset + self.margin), height * 0.36 - inset - 36)
            self._draw_paragraph(pdf, self._about_artist_text(content), self.note_style, box, min_size=8)

        return self._single_page(page_size, draw, label="about-the-artist page")

    def compose_drawing_page(self, *, page_size: tuple[float, float] = INTERIOR_PAGE_SIZE) -> bytes:
        def draw(pdf: canvas.Canvas, width: float, height: float) -> None:
            self._fill_background(pdf, width, height)
            inset = self._safe_inset(width)
            pdf.setFillColor(self.layout.text_color)
            pdf.setFont(self.body_bold_font, 24)
            pdf.drawCentredString(width / 2, height - inset - 36, "Your Turn to Draw!")
            pdf.saveState()
            pdf.setStrokeColor(self.layout.caption_color)
            pdf.setDash(6, 4)
            pdf.roundRect(inset + 10, inset + 10, width - 2 * inset - 20, height - 2 * inset - 70, 14, stroke=1, fill=0)
            pdf.restoreState()

        return self._single_page(page_size, draw, label="drawing page")

    def compose_blank_page(self, *, page_size: tuple[float, float] = INTERIOR_PAGE_SIZE) -> bytes:
        return self._single_page(page_size, lambda pdf, width, height: None, label="blank page")

    # ------------------------------------------------------------------ helpers

    def _single_page(
        self,
        page_size: tuple[float, float],
        draw: Callable[[canvas.Canvas, float, float], None],
        *,
        label: str,
    ) -> bytes:
        buffer = BytesIO()
        width, height = page_size
        try:
            pdf = canvas.Canvas(buffer, pagesize=page_size)
            pdf.setCreator(GENERATOR_NAME)
            draw(pdf, width, height)
            pdf.showPage()
            pdf.save()
        except FulfillmentError:
            raise
        except Exception as exc:
            raise RenderError(f"Failed to render {label}: {exc}") from exc
        return buffer.getvalue()

    def _load_image(
        self,
        url: str | None,
        *,
        required: bool,
        label: str,
        page_number: int | None = None,
    ) -> ImageReader | None:
        payload = self._fetch_image(url) if url else None
        if payload is None:
            if required:
                raise MissingAssetError(f"No image available for {label}", page_number=page_number)
            if url:
                logger.warning("Image for %s could not be fetched; drawing placeholder", label)
            return None
        try:
            reader = ImageReader(BytesIO(payload))
            reader.getSize()
        except Exception as exc:
            raise RenderError(f"Corrupt image bytes for {label}: {exc}") from exc
        return reader

    def _download_image(self, url: str) -> bytes | None:
        try:
            response = requests.get(url, timeout=self.request_timeout)
            response.raise_for_status()
        except requests.RequestException:
            return None
        return response.content

    def _draw_image_fit(
        self,
        pdf: canvas.Canvas,
        reader: ImageReader,
        box: _Box,
        *,
        frame_color: colors.Color | None = None,
    ) -> _Box:
        img_width, img_height = reader.getSize()
        scale = min(box.width / img_width, box.height / img_height)
        draw_width = img_width * scale
        draw_height = img_height * scale
        placed = _Box(
            box.x + (box.width - draw_width) / 2,
            box.y + (box.height - draw_height) / 2,
            draw_width,
            draw_height,
        )
        if frame_color is not None:
            pdf.saveState()
            pdf.setFillColor(frame_color)
            pdf.rect(placed.x - 6, placed.y - 6, placed.width + 12, placed.height + 12, stroke=0, fill=1)
            pdf.restoreState()
        pdf.drawImage(reader, placed.x, placed.y, placed.width, placed.height, mask="auto")
        return placed

    def _draw_placeholder(self, pdf: canvas.Canvas, box: _Box) -> None:
        pdf.saveState()
        pdf.setFillColor(self.layout.placeholder_color)
        pdf.setStrokeColor(self.layout.caption_color)
        pdf.setDash(5, 4)
        pdf.roundRect(box.x, box.y, box.width, box.height, 12, stroke=1, fill=1)
        pdf.setFillColor(self.layout.caption_color)
        pdf.setFont("Helvetica-Oblique", 14)
        pdf.drawCentredString(box.x + box.width / 2, box.y + box.height / 2, PLACEHOLDER_TEXT)
        pdf.restoreState()

    def _draw_paragraph(
        self,
        pdf: canvas.Canvas,
        text: str,
        style: ParagraphStyle,
        box: _Box,
        *,
        min_size: float,
    ) -> None:
        if box.width <= 0 or box.height <= 0:
            return
        paragraph = fit_paragraph(text, style, width=box.width, height=box.height, min_size=min_size)
        if paragraph is None:
            return
        _, used = paragraph.wrap(box.width, box.height)
        paragraph.drawOn(pdf, box.x, box.y + (box.height - used) / 2)

    def _draw_footer(self, pdf: canvas.Canvas, text: str, width: float, bottom: float) -> None:
        pdf.setFillColor(self.layout.caption_color)
        pdf.setFont("Helvetica-Oblique", 10)
        pdf.drawCentredString(width / 2, bottom + 4, text)

    def _fill_background(self, pdf: canvas.Canvas, width: float, height: float) -> None:
        pdf.setFillColor(self.layout.page_background)
        pdf.rect(0, 0, width, height, stroke=0, fill=1)

    def _safe_inset(self, width: float) -> float:
        """Margin plus bleed when the page is a print page."""
        bleed = BLEED_INCHES * inch if width > DIGITAL_PAGE_SIZE[0] else 0.0
        return self.margin + bleed

    def _draw_sparkles(self, pdf: canvas.Canvas, box: _Box) -> None:
        sparkles = [
            (box.x + box.width * 0.06, box.y + box.height * 0.86, 5),
            (box.x + box.width * 0.94, box.y + box.height * 0.80, 7),
            (box.x + box.width * 0.08, box.y + box.height * 0.18, 4),
            (box.x + box.width * 0.92, box.y + box.height * 0.14, 5),
        ]
        pdf.saveState()
        pdf.setFillColor(self._lighten(self.layout.accent_color, 0.45))
        for cx, cy, radius in sparkles:
            pdf.circle(cx, cy, radius, stroke=0, fill=1)
        pdf.restoreState()

    @staticmethod
    def _byline(content: BookContent) -> str:
        if content.artist_age:
            return f"{content.byline}, age {content.artist_age}"
        return content.byline

    @staticmethod
    def _artwork_credit(content: BookContent) -> str:
        details = [f"Original artwork by {content.artist_name}"]
        if content.artist_age:
            details.append(f"age {content.artist_age}")
        if content.year:
            details.append(str(content.year))
        return ", ".join(details)

    @staticmethod
    def _about_artist_text(content: BookContent) -> str:
        text = f"{content.artist_name} drew the picture that started this story"
        if content.artist_age:
            text += f" at age {content.artist_age}"
        if content.year:
            text += f" in {content.year}"
        return text + ". Every page grew from that one drawing."

    @staticmethod
    def _lighten(color: colors.Color, amount: float = 0.5) -> colors.Color:
        amount = max(0.0, min(amount, 1.0))
        r = color.red + (1 - color.red) * amount
        g = color.green + (1 - color.green) * amount
        b = color.blue + (1 - color.blue) * amount
        return colors.Color(r, g, b)

    def _configure_story_fonts(self) -> tuple[str, str]:
        playful_options = [
            (
                "ComicSansMS",
                "ComicSansMS-Bold",
                ["Comic Sans MS.ttf", "ComicSansMS.ttf"],
                ["Comic Sans MS Bold.ttf", "ComicSansMS-Bold.ttf"],
            ),
        ]

        search_roots = [
            Path("/Library/Fonts"),
            Path.home() / "Library" / "Fonts",
            Path("C:/Windows/Fonts"),
            Path("/usr/share/fonts"),
            Path("/usr/local/share/fonts"),
        ]

        for regular_name, bold_name, regular_candidates, bold_candidates in playful_options:
            regular_ready = self._register_font_if_available(regular_name, regular_candidates, search_roots)
            bold_ready = self._register_font_if_available(bold_name, bold_candidates, search_roots)
            if regular_ready and bold_ready:
                return regular_name, bold_name

        return "Helvetica", "Helvetica-Bold"

    @staticmethod
    def _register_font_if_available(
        font_name: str,
        candidate_filenames: Sequence[str],
        search_roots: Sequence[Path],
    ) -> bool:
        if font_name in pdfmetrics.getRegisteredFontNames():
            return True

        for root in search_roots:
            for candidate in candidate_filenames:
                font_path = root / candidate
                if not font_path.exists():
                    continue
                try:
                    pdfmetrics.registerFont(TTFont(font_name, str(font_path)))
                except Exception as exc:
                    logger.debug("Skipping font %s: %s", font_path, exc)
                    continue
                return True
        return False
