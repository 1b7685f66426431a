from __future__ import annotations

import logging
from typing import Iterator

import fitz

from courtbatch.core.errors import StructuralFormatError
from courtbatch.infrastructure.pdf.positioned_text import PositionedTextIndex, PositionedToken, round_coordinate

logger = logging.getLogger(__name__)

# Wrapped lines of one cell start at the same X, one line height below.
CELL_X_TOLERANCE = 1.0
LINE_GAP_RATIO = 1.6


class PyMuPDFPageReader:
    """Turns a PDF byte buffer into one PositionedTextIndex per page."""

    def iter_pages(self, pdf_bytes: bytes) -> Iterator[PositionedTextIndex]:
        if not pdf_bytes:
            raise StructuralFormatError("The PDF buffer is empty.")
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as exc:
            raise StructuralFormatError(f"Could not open PDF: {exc}") from exc

        try:
            logger.info("PDF loaded, %d page(s)", doc.page_count)
            for page in doc:
                yield PositionedTextIndex(self._page_tokens(page))
        finally:
            doc.close()

    def read_pages(self, pdf_bytes: bytes) -> list[PositionedTextIndex]:
        return list(self.iter_pages(pdf_bytes))

    @staticmethod
    def _page_tokens(page) -> list[PositionedToken]:
        spans = []
        for block in page.get_text("dict")["blocks"]:
            if block.get("type", 0) != 0:
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "").strip()
                    if not text:
                        continue
                    _, y0, _, y1 = span["bbox"]
                    origin_x, origin_y = span["origin"]
                    spans.append(
                        (
                            text,
                            round_coordinate(origin_x),
                            round_coordinate(origin_y),
                            round_coordinate(y1 - y0),
                        )
                    )

        tokens: list[PositionedToken] = []
        for index, (text, x, y, height) in enumerate(spans):
            following = spans[index + 1] if index + 1 < len(spans) else None
            tokens.append(
                PositionedToken(
                    text=text,
                    x=x,
                    y=y,
                    has_eol=following is not None and _continues_cell(x, y, height, following[1], following[2]),
                    height=height,
                )
            )
        return tokens


def _continues_cell(x: float, y: float, height: float, next_x: float, next_y: float) -> bool:
    """True when the next span in content order is the wrapped rest of this cell.

    That is the line right below, starting in the same column.
    """
    if abs(next_x - x) > CELL_X_TOLERANCE:
        return False
    gap = next_y - y
    return 0 < gap <= max(height, 1.0) * LINE_GAP_RATIO
