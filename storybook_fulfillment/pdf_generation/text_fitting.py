"""
Helpers that keep text inside its box: shrink first, truncate as a last resort.
"""

from __future__ import annotations

from xml.sax.saxutils import escape

from reportlab.lib.styles import ParagraphStyle
from reportlab.pdfbase import pdfmetrics
from reportlab.platypus import Paragraph

ELLIPSIS = "..."


def text_width(text: str, font_name: str, font_size: float) -> float:
    return pdfmetrics.stringWidth(text, font_name, font_size)


def fit_font_size(
    text: str,
    font_name: str,
    *,
    max_width: float,
    max_size: float,
    min_size: float,
    step: float = 0.5,
) -> float:
    """
    Largest size in ``[min_size, max_size]`` at which ``text`` fits ``max_width``.
    Returns ``min_size`` when even that overflows; callers truncate afterwards.
    """
    size = max_size
    while size > min_size and text_width(text, font_name, size) > max_width:
        size -= step
    return max(size, min_size)


def truncate_to_width(text: str, font_name: str, font_size: float, max_width: float) -> str:
    if text_width(text, font_name, font_size) <= max_width:
        return text
    trimmed = text
    while trimmed and text_width(trimmed + ELLIPSIS, font_name, font_size) > max_width:
        trimmed = trimmed[:-1]
    trimmed = trimmed.rstrip()
    return trimmed + ELLIPSIS if trimmed else ""


def fit_line(
    text: str,
    font_name: str,
    *,
    max_width: float,
    max_size: float,
    min_size: float,
) -> tuple[str, float]:
    """Return the (possibly truncated) text and the font size to draw it at."""
    size = fit_font_size(text, font_name, max_width=max_width, max_size=max_size, min_size=min_size)
    return truncate_to_width(text, font_name, size, max_width), size


def fit_paragraph(
    text: str,
    style: ParagraphStyle,
    *,
    width: float,
    height: float,
    min_size: float,
    step: float = 1.0,
) -> Paragraph | None:
    """
    Build a paragraph that wraps inside ``width`` x ``height``.

    The font shrinks towards ``min_size``; if the text still overflows, trailing
    words are dropped and an ellipsis is appended. Empty text yields ``None``.
    """
    cleaned = (text or "").strip()
    if not cleaned:
        return None

    leading_ratio = (style.leading / style.fontSize) if style.fontSize else 1.3

    def _build(candidate: str, size: float) -> tuple[Paragraph, float]:
        sized = ParagraphStyle(
            name=f"{style.name}-{size:g}",
            parent=style,
            fontSize=size,
            leading=size * leading_ratio,
        )
        paragraph = Paragraph(escape(candidate).replace("\n", "<br/>"), sized)
        _, needed = paragraph.wrap(width, height)
        return paragraph, needed

    size = float(style.fontSize)
    while True:
        paragraph, needed = _build(cleaned, size)
        if needed <= height:
            return paragraph
        if size - step < min_size:
            break
        size -= step

    words = cleaned.split()
    while words:
        words.pop()
        paragraph, needed = _build(" ".join(words) + ELLIPSIS, size)
        if needed <= height:
            return paragraph
    return None
