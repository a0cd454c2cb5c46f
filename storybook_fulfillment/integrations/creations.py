"""
Read access to stored creations (the story content behind an order).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Mapping, Protocol, Sequence

from storybook_fulfillment.common.errors import ContentError

from .postgrest import PostgrestClient

CREATION_COLUMNS = (
    "id,title,artist_name,artist_age,year,original_image_path,analysis_json,page_images"
)


@dataclass(frozen=True)
class CreationRecord:
    """
    Structured story content produced upstream by the AI generation flow.

    ``analysis_pages`` mirrors ``analysis_json.pages`` (``pageNumber``, ``text``,
    ``imageUrl``); ``page_images`` holds page-images bucket paths aligned by index.
    """

    id: str
    title: str
    artist_name: str
    artist_age: str | None = None
    year: str | None = None
    original_image_path: str | None = None
    analysis_pages: tuple[Mapping[str, Any], ...] = ()
    page_images: tuple[str | None, ...] = field(default_factory=tuple)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CreationRecord":
        if not row.get("id"):
            raise ContentError("Creation row is missing its id.")
        analysis = row.get("analysis_json") or {}
        if not isinstance(analysis, Mapping):
            raise ContentError(f"Creation {row['id']} has malformed analysis_json.")
        raw_pages = analysis.get("pages") or []
        if not isinstance(raw_pages, Sequence) or isinstance(raw_pages, (str, bytes)):
            raise ContentError(f"Creation {row['id']} has malformed story pages.")

        return cls(
            id=str(row["id"]),
            title=str(row.get("title") or "").strip() or "Untitled Story",
            artist_name=str(row.get("artist_name") or "").strip() or "Unknown Artist",
            artist_age=_optional_str(row.get("artist_age")),
            year=_optional_str(row.get("year")),
            original_image_path=_optional_str(row.get("original_image_path")),
            analysis_pages=tuple(dict(page) for page in raw_pages if isinstance(page, Mapping)),
            page_images=tuple(_optional_str(path) for path in (row.get("page_images") or [])),
        )


class CreationSource(Protocol):
    def get_creation(self, creation_id: str) -> CreationRecord: ...


class InMemoryCreationSource:
    def __init__(self, creations: Sequence[CreationRecord] = ()) -> None:
        self._lock = Lock()
        self._creations = {creation.id: creation for creation in creations}

    def add(self, creation: CreationRecord) -> None:
        with self._lock:
            self._creations[creation.id] = creation

    def get_creation(self, creation_id: str) -> CreationRecord:
        with self._lock:
            creation = self._creations.get(creation_id)
        if creation is None:
            raise ContentError(f"Creation {creation_id} not found.")
        return creation


class SupabaseCreationSource:
    def __init__(self, client: PostgrestClient, *, table: str = "creations") -> None:
        self._client = client
        self._table = table

    def get_creation(self, creation_id: str) -> CreationRecord:
        rows = self._client.select(self._table, {"id": creation_id}, columns=CREATION_COLUMNS)
        if not rows:
            raise ContentError(f"Creation {creation_id} not found.")
        return CreationRecord.from_row(rows[0])


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
