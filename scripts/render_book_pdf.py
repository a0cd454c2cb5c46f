"""
Render a book content YAML into a digital ebook or print-ready PDFs.

Usage:
    python scripts/render_book_pdf.py \
        --content book_content.yaml \
        --channel digital \
        --output my_story.pdf

For the physical channel ``--output`` names the interior; the cover wrap is
written next to it with a ``-cover`` suffix.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storybook_fulfillment import BookContent, BookType, Channel, DocumentAssembler  # noqa: E402
from storybook_fulfillment.pdf_generation import DocumentRole, StorybookPageCompositor  # noqa: E402
from storybook_fulfillment.pdf_generation.specs import COVER_COLORS, TEXT_COLORS  # noqa: E402


class ProgressTracker:
    """
    Command-line progress for document assembly.
    """

    def __init__(self) -> None:
        self._page_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "digital:start" | "interior:start":
                label = "Ebook pages" if stage.startswith("digital") else "Interior pages"
                self._write(f"Rendering '{payload.get('title')}'...")
                self._page_bar = tqdm(total=payload.get("total_pages", 0), desc=label, unit="page")
            case "digital:page" | "interior:page":
                if self._page_bar is not None:
                    self._page_bar.n = payload.get("rendered", 0)
                    self._page_bar.refresh()
            case "digital:complete" | "interior:complete":
                self.close()
                self._write(f"Merged {payload.get('page_count')} pages ({payload.get('size_bytes')} bytes).")
            case "cover:start":
                self._write(f"Rendering {payload.get('book_type')} cover wrap...")
            case "cover:complete":
                self._write(f"Cover wrap ready ({payload.get('size_bytes')} bytes).")

    def close(self) -> None:
        if self._page_bar is not None:
            self._page_bar.close()
            self._page_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render book content YAML into storybook PDFs.")
    parser.add_argument(
        "--content",
        required=True,
        help="Path to the book content YAML (title, artist_name, pages with image_url).",
    )
    parser.add_argument(
        "--output",
        required=True,
        help="Destination PDF file path.",
    )
    parser.add_argument(
        "--channel",
        choices=[channel.value for channel in Channel],
        default=Channel.DIGITAL.value,
        help="digital renders one ebook; physical renders interior and cover wrap (default: digital).",
    )
    parser.add_argument(
        "--book-type",
        choices=[book_type.value for book_type in BookType],
        default=BookType.HARDCOVER.value,
        help="Binding used to size the print cover spine (default: hardcover).",
    )
    parser.add_argument("--cover-color", choices=sorted(COVER_COLORS), default=None)
    parser.add_argument("--text-color", choices=sorted(TEXT_COLORS), default=None)
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Timeout in seconds for downloading illustration assets (default: 30).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    content = BookContent.from_yaml(args.content)
    tracker = ProgressTracker()
    assembler = DocumentAssembler(
        StorybookPageCompositor(request_timeout=args.timeout),
        progress_callback=tracker,
    )

    try:
        result = assembler.assemble(
            content,
            channel=args.channel,
            cover_color_id=args.cover_color,
            text_color_id=args.text_color,
            book_type=args.book_type,
        )
    finally:
        tracker.close()

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if result.has(DocumentRole.DIGITAL_BOOK):
        output_path.write_bytes(result.get(DocumentRole.DIGITAL_BOOK).payload)
        print(f"Rendered ebook PDF to {output_path}")
        return 0

    output_path.write_bytes(result.get(DocumentRole.PRINT_INTERIOR).payload)
    cover_path = output_path.with_name(f"{output_path.stem}-cover{output_path.suffix or '.pdf'}")
    cover_path.write_bytes(result.get(DocumentRole.PRINT_COVER).payload)
    print(f"Rendered print interior to {output_path} and cover wrap to {cover_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
