"""
Story content model shared by the PDF and fulfillment layers.
"""

from .content import BookContent, StoryPage, resolve_book_content, validate_page_sequence

__all__ = ["BookContent", "StoryPage", "resolve_book_content", "validate_page_sequence"]
