"""
Page-exact merging of single-page PDFs into one document.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Mapping, Sequence

import fitz

from storybook_fulfillment.common.errors import AssemblyError


@dataclass(frozen=True)
class MergedDocument:
    payload: bytes
    page_count: int

    @property
    def size_bytes(self) -> int:
        return len(self.payload)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.payload).hexdigest()


def count_pages(payload: bytes) -> int:
    try:
        document = fitz.open(stream=payload, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise AssemblyError(f"Unreadable PDF payload: {exc}") from exc
    try:
        return document.page_count
    finally:
        document.close()


def merge_documents(
    parts: Sequence[bytes],
    *,
    metadata: Mapping[str, str] | None = None,
) -> MergedDocument:
    """
    Copy every page of every part, in the given order, into a new document.

    Pages are copied as PDF objects, never re-rasterised. The merged page
    count must equal the sum of the parts; anything else is an assembly error.
    """
    if not parts:
        raise AssemblyError("Nothing to merge")

    expected_pages = 0
    try:
        merged = fitz.open()
        try:
            for index, payload in enumerate(parts):
                if not payload:
                    raise AssemblyError(f"Sub-document {index} is empty")
                source = fitz.open(stream=payload, filetype="pdf")
                try:
                    expected_pages += source.page_count
                    merged.insert_pdf(source)
                finally:
                    source.close()

            if merged.page_count != expected_pages:
                raise AssemblyError(
                    f"Merged page count {merged.page_count} does not match "
                    f"sub-document total {expected_pages}"
                )
            if metadata:
                merged.set_metadata(dict(metadata))
            page_count = merged.page_count
            payload_bytes = merged.tobytes(garbage=3, deflate=True)
        finally:
            merged.close()
    except AssemblyError:
        raise
    except (RuntimeError, ValueError) as exc:
        raise AssemblyError(f"PDF merge failed: {exc}") from exc

    return MergedDocument(payload=payload_bytes, page_count=page_count)
