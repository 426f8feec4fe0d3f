"""Printable stock requisition form (KEW.PS-8) rendered with reportlab.

All layout constants are millimetres measured from the top-left corner of an
A4 page; :func:`_y` flips them into reportlab's bottom-left coordinates.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import date
from typing import Sequence

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas as pdf_canvas

from indentapp.exports import documents
from indentapp.records import RequisitionLine


PAGE_WIDTH = A4[0] / mm
PAGE_HEIGHT = A4[1] / mm

MARGIN_LEFT = 7
MARGIN_RIGHT = 7
MARGIN_BOTTOM = 50

REFERENCE_Y = 15
TITLE_Y = 25
TABLE_TOP = 30

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"
REFERENCE_FONT_SIZE = 8
TITLE_FONT_SIZE = 12
TABLE_FONT_SIZE = 10
SIGNATURE_FONT_SIZE = 9

HEADERS = (
    "Bil",
    "Perihal stok",
    "Kuantiti",
    "Catatan",
    "Kuantiti Diluluskan",
    "Catatan",
)
COLUMN_WIDTHS = (11, 78, 29, 25, 29, 25)
CENTERED_COLUMNS = frozenset({0, 2, 4})
CELL_PADDING = 3
MIN_ROW_HEIGHT = 9
LINE_WIDTH = 0.2
THICK_LINE_WIDTH = 0.8
# Left edge of "Kuantiti Diluluskan", filled in by the approving officer.
THICK_BORDER_COLUMN = 4

SIGNATURE_Y = PAGE_HEIGHT - MARGIN_BOTTOM
SIGNATURE_LINE_OFFSETS = (0, 15, 20, 25, 30)

_POINT_IN_MM = 25.4 / 72


@dataclass(frozen=True)
class SignatureBlock:
    requester_name: str = ""
    requester_position: str = ""

    def columns(self) -> tuple[tuple[float, tuple[str, ...]], ...]:
        return (
            (
                15,
                (
                    "Pemohon",
                    "(Tandatangan)",
                    f"Nama : {self.requester_name}".rstrip(),
                    f"Jawatan : {self.requester_position}".rstrip(),
                    "Tarikh :",
                ),
            ),
            (
                PAGE_WIDTH / 2 - 20,
                ("Pegawai Pelulus", "(Tandatangan)", "Nama :", "Jawatan :", "Tarikh :"),
            ),
            (
                PAGE_WIDTH - 60,
                ("Penerima", "(Tandatangan)", "Nama :", "Jawatan :", "Tarikh :"),
            ),
        )


@dataclass(frozen=True)
class TableRow:
    cells: tuple[tuple[str, ...], ...]
    height: float


def _y(top: float) -> float:
    return (PAGE_HEIGHT - top) * mm


def _line_height(font_size: float) -> float:
    return font_size * _POINT_IN_MM * 1.15


def layout_row(values: Sequence[str], font: str = FONT) -> TableRow:
    cells = []
    for value, width in zip(values, COLUMN_WIDTHS):
        text_width = (width - 2 * CELL_PADDING) * mm
        lines = simpleSplit(str(value), font, TABLE_FONT_SIZE, text_width) or [""]
        cells.append(tuple(lines))
    tallest = max(len(lines) for lines in cells)
    height = max(MIN_ROW_HEIGHT, tallest * _line_height(TABLE_FONT_SIZE) + 2 * CELL_PADDING)
    return TableRow(cells=tuple(cells), height=height)


def body_rows(lines: Sequence[RequisitionLine]) -> list[TableRow]:
    return [
        layout_row(
            (
                str(index),
                line.item_name,
                str(line.requested_qty or 0),
                "",
                "",
                "",
            )
        )
        for index, line in enumerate(lines, start=1)
    ]


def paginate_rows(rows: Sequence[TableRow], header: TableRow) -> list[list[TableRow]]:
    """Split body rows into pages, each page repeating the table header."""

    available = PAGE_HEIGHT - MARGIN_BOTTOM - TABLE_TOP - header.height
    pages: list[list[TableRow]] = [[]]
    used = 0.0
    for row in rows:
        if pages[-1] and used + row.height > available:
            pages.append([])
            used = 0.0
        pages[-1].append(row)
        used += row.height
    return pages


class RequisitionFormRenderer:
    def __init__(self, canvas: pdf_canvas.Canvas, signatures: SignatureBlock) -> None:
        self.canvas = canvas
        self.signatures = signatures
        self.pages = 0

    def draw_source(self, source: str, lines: Sequence[RequisitionLine]) -> int:
        header = layout_row(HEADERS, font=FONT_BOLD)
        pages = paginate_rows(body_rows(lines), header)
        for rows in pages:
            self._draw_page(source, header, rows)
        return len(pages)

    def _draw_page(self, source: str, header: TableRow, rows: Sequence[TableRow]) -> None:
        c = self.canvas
        self._draw_reference()
        c.setFont(FONT_BOLD, TITLE_FONT_SIZE)
        c.drawCentredString(
            PAGE_WIDTH / 2 * mm, _y(TITLE_Y), f"BORANG PERMOHONAN STOK UBAT ({source})"
        )

        top = TABLE_TOP
        self._draw_row(header, top, bold=True)
        top += header.height
        for row in rows:
            self._draw_row(row, top)
            top += row.height

        self._draw_signatures()
        c.showPage()
        self.pages += 1

    def _draw_reference(self) -> None:
        c = self.canvas
        c.setFont(FONT_ITALIC, REFERENCE_FONT_SIZE)
        c.drawString(MARGIN_LEFT * mm, _y(REFERENCE_Y), "Pekeliling Perbendaharaan Malaysia")
        c.setFont(FONT, REFERENCE_FONT_SIZE)
        c.drawCentredString(PAGE_WIDTH / 2 * mm, _y(REFERENCE_Y), "AM 6.5 LAMPIRAN B")
        c.drawRightString((PAGE_WIDTH - MARGIN_RIGHT) * mm, _y(REFERENCE_Y), "KEW.PS-8")

    def _draw_row(self, row: TableRow, top: float, *, bold: bool = False) -> None:
        c = self.canvas
        c.setLineWidth(LINE_WIDTH * mm)
        c.setFont(FONT_BOLD if bold else FONT, TABLE_FONT_SIZE)
        line_height = _line_height(TABLE_FONT_SIZE)
        ascent = TABLE_FONT_SIZE * _POINT_IN_MM * 0.8

        left = MARGIN_LEFT
        thick_border_x = None
        for index, (cell_lines, width) in enumerate(zip(row.cells, COLUMN_WIDTHS)):
            c.rect(left * mm, _y(top + row.height), width * mm, row.height * mm, stroke=1, fill=0)
            block_top = top + (row.height - len(cell_lines) * line_height) / 2
            for line_index, text in enumerate(cell_lines):
                baseline = _y(block_top + ascent + line_index * line_height)
                if bold or index in CENTERED_COLUMNS:
                    c.drawCentredString((left + width / 2) * mm, baseline, text)
                else:
                    c.drawString((left + CELL_PADDING) * mm, baseline, text)
            if index == THICK_BORDER_COLUMN:
                thick_border_x = left
            left += width

        if thick_border_x is not None:
            c.setLineWidth(THICK_LINE_WIDTH * mm)
            c.line(thick_border_x * mm, _y(top), thick_border_x * mm, _y(top + row.height))
            c.setLineWidth(LINE_WIDTH * mm)

    def _draw_signatures(self) -> None:
        c = self.canvas
        c.setFont(FONT, SIGNATURE_FONT_SIZE)
        for x, labels in self.signatures.columns():
            for offset, label in zip(SIGNATURE_LINE_OFFSETS, labels):
                c.drawString(x * mm, _y(SIGNATURE_Y + offset), label)


def render_requisition_form(
    groups: documents.GroupedLines,
    *,
    signatures: SignatureBlock | None = None,
    title: str | None = None,
) -> bytes:
    """Render every non-empty source into one PDF, each starting on a new page."""

    non_empty = documents.non_empty_groups(groups)
    if not non_empty:
        raise documents.EmptyExportError("No items to export.")

    buffer = io.BytesIO()
    canvas = pdf_canvas.Canvas(buffer, pagesize=A4)
    canvas.setTitle(title or "Borang Permohonan Stok Ubat")
    renderer = RequisitionFormRenderer(canvas, signatures or SignatureBlock())
    for source, lines in non_empty.items():
        renderer.draw_source(source, lines)
    canvas.save()
    return buffer.getvalue()


def export_requisition_forms(
    grouped: documents.GroupedLines,
    *,
    signatures: SignatureBlock | None = None,
    combined: bool = False,
    today: date | None = None,
) -> list[documents.ExportedDocument]:
    """One PDF per non-empty source, or a single combined PDF."""

    stamp = documents.date_stamp(today)
    non_empty = documents.non_empty_groups(grouped)
    if not non_empty:
        raise documents.EmptyExportError("No items to export.")

    if combined:
        return [
            documents.ExportedDocument(
                filename=f"Indent_ED_{stamp}.pdf",
                content=render_requisition_form(non_empty, signatures=signatures),
                mimetype=documents.PDF_MIMETYPE,
            )
        ]

    return [
        documents.ExportedDocument(
            filename=f"Indent_ED_{documents.filename_part(source)}_{stamp}.pdf",
            content=render_requisition_form(
                {source: lines},
                signatures=signatures,
                title=f"Borang Permohonan Stok Ubat ({source})",
            ),
            mimetype=documents.PDF_MIMETYPE,
        )
        for source, lines in non_empty.items()
    ]
