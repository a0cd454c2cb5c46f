"""
PDF rendering for digital books and print-ready interiors and covers.
"""

from .assembler import AssembledDocument, AssemblyResult, DocumentAssembler, DocumentRole, digital_page_count
from .compositor import CoverSide, StorybookPageCompositor
from .merge import MergedDocument, count_pages, merge_documents
from .specs import BookType, Channel, get_cover_wrap_spec

__all__ = [
    "AssembledDocument",
    "AssemblyResult",
    "BookType",
    "Channel",
    "CoverSide",
    "DocumentAssembler",
    "DocumentRole",
    "MergedDocument",
    "StorybookPageCompositor",
    "count_pages",
    "digital_page_count",
    "get_cover_wrap_spec",
    "merge_documents",
]
