from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from courtbatch.core.cnj import CNJ_PATTERN, normalize_whitespace
from courtbatch.core.errors import HeaderFormatError, StructuralFormatError
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.domain.models.manifest import ExtractedManifest, ManifestHeader
from courtbatch.domain.models.process import ProcessDraft
from courtbatch.infrastructure.pdf.positioned_text import PositionedTextIndex, PositionedToken
from courtbatch.infrastructure.pdf.pymupdf_reader import PyMuPDFPageReader

logger = logging.getLogger(__name__)

HEADER_ANCHOR = "Comarca"
HEADER_PATTERN = re.compile(
    r"Processos\s+distribu[ií]dos\s+em\s+(\d{2}/\d{2}/\d{4})\s+Sistema\s+([A-Za-z0-9_-]+)",
    re.IGNORECASE,
)
# The token right before the anchor is a column caption, not header prose.
_HEADER_TRAILING_SKIP = 1


@dataclass(frozen=True, slots=True)
class ReportLayout:
    """Fixed column geometry of one court's distribution report.

    ``process_x`` is None when process numbers are recognized by pattern alone.
    ``forum_x`` is None when the report has no forum column.
    """

    system: SourceSystem
    header_offset: int
    district_x: float
    division_x: float
    class_x: float
    forum_x: float | None = None
    process_x: float | None = None


ESAJ_LAYOUT = ReportLayout(
    system=SourceSystem.ESAJ,
    header_offset=10,
    district_x=74.016,
    forum_x=187.272,
    division_x=309.528,
    class_x=583.992,
)

EPROC_LAYOUT = ReportLayout(
    system=SourceSystem.EPROC,
    header_offset=8,
    district_x=74.016,
    division_x=191.736,
    process_x=389.736,
    class_x=503.784,
)

LAYOUTS: dict[SourceSystem, ReportLayout] = {
    SourceSystem.ESAJ: ESAJ_LAYOUT,
    SourceSystem.EPROC: EPROC_LAYOUT,
}


@dataclass(frozen=True, slots=True)
class _Anchor:
    process_number: str
    y: float


def parse_header_text(text: str) -> ManifestHeader:
    match = HEADER_PATTERN.search(text)
    if match is None:
        raise HeaderFormatError("Unrecognized manifest header.")
    try:
        distribution_date = datetime.strptime(match.group(1), "%d/%m/%Y").date()
    except ValueError as exc:
        raise HeaderFormatError(f"Invalid distribution date in header: {match.group(1)}") from exc
    return ManifestHeader(
        distribution_date=distribution_date,
        system_token=match.group(2),
        description=normalize_whitespace(text),
    )


def resolve_batch_system(header: ManifestHeader, requested: SourceSystem) -> SourceSystem:
    if header.system_token.upper() == "SAJ":
        return SourceSystem.ESAJ
    return requested


class TableExtractor:
    def __init__(self, page_reader: PyMuPDFPageReader | None = None) -> None:
        self.page_reader = page_reader or PyMuPDFPageReader()

    def extract(self, pdf_bytes: bytes, system: SourceSystem) -> ExtractedManifest:
        if not pdf_bytes:
            raise StructuralFormatError("The PDF buffer is empty.")
        return self.extract_pages(self.page_reader.iter_pages(pdf_bytes), system)

    def extract_pages(self, pages, system: SourceSystem) -> ExtractedManifest:
        layout = LAYOUTS[system]
        header: ManifestHeader | None = None
        unique: dict[str, ProcessDraft] = {}
        rows_found = 0
        page_number = 0

        for page_number, page in enumerate(pages, start=1):
            if page_number == 1:
                header = self.parse_header(page)
            if page_number % 100 == 0:
                logger.info("Extracting page %d...", page_number)

            drafts = self.extract_page(page, layout, page_number=page_number)
            logger.debug("%d process(es) found on page %d", len(drafts), page_number)
            rows_found += len(drafts)
            for draft in drafts:
                unique.setdefault(draft.process_number, draft)

        if header is None:
            raise StructuralFormatError("The PDF has no pages.")

        duplicates = rows_found - len(unique)
        if duplicates:
            logger.warning("%d duplicated process number(s) dropped from the PDF", duplicates)
        logger.info("%d unique process(es) extracted from %d page(s)", len(unique), page_number)

        return ExtractedManifest(
            header=header,
            processes=list(unique.values()),
            pages=page_number,
            rows_found=rows_found,
            internal_duplicates=duplicates,
        )

    def parse_header(self, first_page: PositionedTextIndex) -> ManifestHeader:
        header_index = first_page.index_of(HEADER_ANCHOR)
        if header_index == -1:
            raise StructuralFormatError(
                f"Header anchor {HEADER_ANCHOR!r} not found on page 1; not a distribution report."
            )
        preamble = first_page.slice(0, max(header_index - _HEADER_TRAILING_SKIP, 0))
        return parse_header_text(preamble.joined_text())

    def extract_page(
        self,
        page: PositionedTextIndex,
        layout: ReportLayout,
        *,
        page_number: int = 1,
    ) -> list[ProcessDraft]:
        header_index = page.index_of(HEADER_ANCHOR)
        if header_index == -1:
            if page_number == 1:
                raise StructuralFormatError(f"Header anchor {HEADER_ANCHOR!r} not found on page 1.")
            data_region = page
        else:
            data_region = page.slice(header_index + layout.header_offset)

        drafts: list[ProcessDraft] = []
        for anchor in self._find_anchors(data_region, layout):
            drafts.append(
                ProcessDraft(
                    process_number=anchor.process_number,
                    district=page.text_at(layout.district_x, anchor.y),
                    forum=page.text_at(layout.forum_x, anchor.y) if layout.forum_x is not None else "",
                    division=page.text_at(layout.division_x, anchor.y),
                    class_name=page.text_at(layout.class_x, anchor.y),
                )
            )
        return drafts

    def _find_anchors(self, data_region: PositionedTextIndex, layout: ReportLayout) -> list[_Anchor]:
        if layout.process_x is None:
            anchors = []
            for token in data_region:
                match = CNJ_PATTERN.search(token.text)
                if match:
                    anchors.append(_Anchor(process_number=match.group(0), y=token.y))
            return anchors

        column = data_region.at_x(layout.process_x)
        if all(CNJ_PATTERN.fullmatch(token.text) for token in column):
            return [_Anchor(process_number=token.text, y=token.y) for token in column]
        return self._rebuild_wrapped_numbers(column.tokens)

    @staticmethod
    def _rebuild_wrapped_numbers(column: list[PositionedToken]) -> list[_Anchor]:
        """Join process-number cells split over several lines.

        The anchor of a rebuilt cell is the Y of its first line.
        """
        anchors: list[_Anchor] = []
        index = 0
        while index < len(column):
            start = column[index]
            parts = [start.text]
            while column[index].has_eol and index + 1 < len(column):
                index += 1
                parts.append(column[index].text)
            index += 1

            compact = re.sub(r"\s+", "", "".join(parts))
            match = CNJ_PATTERN.search(compact)
            if match:
                anchors.append(_Anchor(process_number=match.group(0), y=start.y))
        return anchors
