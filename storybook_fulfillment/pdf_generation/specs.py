"""
Print geometry, product codes and colour palettes for the square storybook.

Format: 8.5" x 8.5" square, 60# uncoated white paper.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from reportlab.lib import colors
from reportlab.lib.units import inch

GENERATOR_NAME = "Once Upon a Drawing"

BOOK_WIDTH_INCHES = 8.5
BOOK_HEIGHT_INCHES = 8.5
BLEED_INCHES = 0.125
COVER_BLEED_TOTAL_INCHES = 0.25

FIXED_PAGE_COUNT = 32
MIN_PROVIDER_PAGE_COUNT = 24
MAX_PROVIDER_PAGE_COUNT = 800

FRONT_MATTER_PAGES = 3
BACK_MATTER_PAGES = 3
MAX_STORY_PAGES = FIXED_PAGE_COUNT - FRONT_MATTER_PAGES - BACK_MATTER_PAGES
MIN_STORY_PAGES = 1

# Digital pages carry no bleed; print interior pages carry 1/8" on every side.
DIGITAL_PAGE_SIZE = (BOOK_WIDTH_INCHES * inch, BOOK_HEIGHT_INCHES * inch)
INTERIOR_PAGE_SIZE = (
    (BOOK_WIDTH_INCHES + 2 * BLEED_INCHES) * inch,
    (BOOK_HEIGHT_INCHES + 2 * BLEED_INCHES) * inch,
)


class BookType(str, Enum):
    SOFTCOVER = "softcover"
    HARDCOVER = "hardcover"


@dataclass(frozen=True)
class BookTypeConfig:
    type: BookType
    product_code: str
    display_name: str
    page_thickness_inches: float
    binding_type: str


BOOK_TYPES: dict[BookType, BookTypeConfig] = {
    BookType.SOFTCOVER: BookTypeConfig(
        type=BookType.SOFTCOVER,
        product_code="0850X0850FCPRESS060UW444MXX",
        display_name="Softcover Perfect Bound",
        page_thickness_inches=0.00225,
        binding_type="PERFECT_BOUND",
    ),
    BookType.HARDCOVER: BookTypeConfig(
        type=BookType.HARDCOVER,
        product_code="0850X0850FCPRECW060UW444MXX",
        display_name="Hardcover Casewrap",
        page_thickness_inches=0.00225,
        binding_type="CASEWRAP",
    ),
}


def get_book_type_config(book_type: BookType | str) -> BookTypeConfig:
    try:
        return BOOK_TYPES[BookType(book_type)]
    except ValueError as exc:
        raise ValueError(f"Unknown book type: {book_type}") from exc


def validate_page_count(page_count: int) -> None:
    if page_count % 2 != 0:
        raise ValueError("Page count must be even for binding")
    if page_count < MIN_PROVIDER_PAGE_COUNT:
        raise ValueError(f"Minimum page count is {MIN_PROVIDER_PAGE_COUNT} pages")
    if page_count > MAX_PROVIDER_PAGE_COUNT:
        raise ValueError(f"Maximum page count is {MAX_PROVIDER_PAGE_COUNT} pages")


def calculate_spine_width(page_count: int, book_type: BookType | str = BookType.SOFTCOVER) -> float:
    """Spine width in inches: page count times paper thickness."""
    validate_page_count(page_count)
    return page_count * get_book_type_config(book_type).page_thickness_inches


@dataclass(frozen=True)
class CoverWrapSpec:
    """
    Full-wrap cover geometry: back panel, spine and front panel plus bleed.
    All values in inches.
    """

    width_inches: float
    height_inches: float
    spine_width_inches: float
    panel_width_inches: float = BOOK_WIDTH_INCHES
    bleed_inches: float = BLEED_INCHES

    @property
    def page_size(self) -> tuple[float, float]:
        return (self.width_inches * inch, self.height_inches * inch)


def get_cover_wrap_spec(
    page_count: int,
    book_type: BookType | str = BookType.SOFTCOVER,
) -> CoverWrapSpec:
    spine = calculate_spine_width(page_count, book_type)
    return CoverWrapSpec(
        width_inches=BOOK_WIDTH_INCHES * 2 + spine + COVER_BLEED_TOTAL_INCHES,
        height_inches=BOOK_HEIGHT_INCHES + COVER_BLEED_TOTAL_INCHES,
        spine_width_inches=spine,
    )


DEFAULT_COVER_COLOR_ID = "soft-blue"
DEFAULT_TEXT_COLOR_ID = "gunmetal"

COVER_COLORS: dict[str, colors.Color] = {
    "soft-blue": colors.HexColor("#E0F2FE"),
    "cream": colors.HexColor("#FEF9E7"),
    "sage": colors.HexColor("#D5E8D4"),
    "blush": colors.HexColor("#FCE4EC"),
    "lavender": colors.HexColor("#E8DEF8"),
    "buttercup": colors.HexColor("#FFF9C4"),
    "black": colors.HexColor("#1A1A1A"),
    "navy": colors.HexColor("#1B2A4A"),
}

TEXT_COLORS: dict[str, colors.Color] = {
    "gunmetal": colors.HexColor("#2D343C"),
    "navy": colors.HexColor("#1E2432"),
    "forest": colors.HexColor("#164834"),
    "burgundy": colors.HexColor("#80192C"),
    "white": colors.HexColor("#FFFFFF"),
    "gold": colors.HexColor("#B5912F"),
}


def get_cover_color(color_id: str | None) -> colors.Color:
    return COVER_COLORS.get(color_id or DEFAULT_COVER_COLOR_ID, COVER_COLORS[DEFAULT_COVER_COLOR_ID])


def get_text_color(color_id: str | None) -> colors.Color:
    return TEXT_COLORS.get(color_id or DEFAULT_TEXT_COLOR_ID, TEXT_COLORS[DEFAULT_TEXT_COLOR_ID])


class Channel(str, Enum):
    """How a finished book reaches the customer."""

    DIGITAL = "digital"
    PHYSICAL = "physical"
