from __future__ import annotations

from reportlab.lib.styles import ParagraphStyle

from storybook_fulfillment.pdf_generation.text_fitting import (
    ELLIPSIS,
    fit_font_size,
    fit_line,
    fit_paragraph,
    text_width,
)


def test_short_text_keeps_maximum_size() -> None:
    assert fit_font_size("Hi", "Helvetica", max_width=300, max_size=24, min_size=8) == 24


def test_long_text_shrinks_until_it_fits() -> None:
    title = "The Extraordinary Adventures of a Very Small Dragon"
    size = fit_font_size(title, "Helvetica-Bold", max_width=300, max_size=32, min_size=8)

    assert 8 <= size < 32
    assert text_width(title, "Helvetica-Bold", size) <= 300


def test_fit_line_truncates_at_minimum_size() -> None:
    text, size = fit_line("W" * 200, "Helvetica", max_width=100, max_size=12, min_size=10)

    assert size == 10
    assert text.endswith(ELLIPSIS)
    assert text_width(text, "Helvetica", size) <= 100


def test_fit_paragraph_shrinks_before_dropping_words() -> None:
    style = ParagraphStyle(name="Body", fontName="Helvetica", fontSize=18, leading=24)
    text = "The dragon drew a rainbow across the whole sky and everyone cheered. " * 3

    paragraph = fit_paragraph(text, style, width=300, height=120, min_size=8)

    assert paragraph is not None
    _, needed = paragraph.wrap(300, 120)
    assert needed <= 120
    assert paragraph.style.fontSize < 18


def test_fit_paragraph_drops_words_when_box_is_tiny() -> None:
    style = ParagraphStyle(name="Body", fontName="Helvetica", fontSize=12, leading=15)

    paragraph = fit_paragraph("word " * 400, style, width=120, height=40, min_size=10)

    assert paragraph is not None
    assert paragraph.getPlainText().endswith(ELLIPSIS)


def test_fit_paragraph_escapes_markup_and_skips_empty_text() -> None:
    style = ParagraphStyle(name="Body", fontName="Helvetica", fontSize=12, leading=15)

    assert fit_paragraph("   ", style, width=100, height=100, min_size=6) is None
    paragraph = fit_paragraph("Tom & <Jerry>", style, width=300, height=100, min_size=6)
    assert paragraph.getPlainText() == "Tom & <Jerry>"
