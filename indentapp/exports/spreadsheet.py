from __future__ import annotations

import io
import re
from datetime import date
from typing import Callable, NamedTuple

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from indentapp.exports import documents
from indentapp.records import RequisitionLine


class Column(NamedTuple):
    header: str
    width: int
    value: Callable[[RequisitionLine], object]


def _item_attr(name: str) -> Callable[[RequisitionLine], object]:
    def getter(line: RequisitionLine) -> object:
        if line.item is None:
            return ""
        return getattr(line.item, name) or ""

    return getter


def _quantity(line: RequisitionLine) -> object:
    return line.requested_qty or 0


LAYOUTS: dict[str, tuple[Column, ...]] = {
    "summary": (
        Column("Drug Name", 30, lambda line: line.item_name),
        Column("Quantity", 15, _quantity),
    ),
    "detailed": (
        Column("Drug Name", 30, lambda line: line.item_name),
        Column("Type", 14, _item_attr("type")),
        Column("Location", 14, _item_attr("location_code")),
        Column("Quantity", 15, _quantity),
        Column("Remarks", 40, _item_attr("remarks")),
    ),
}

_INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


def sheet_title(source: str) -> str:
    title = _INVALID_TITLE_CHARS.sub("", source).strip()
    return (title or "Sheet")[:31]


def build_workbook(grouped: documents.GroupedLines, *, layout: str = "summary") -> Workbook:
    """One sheet per non-empty source: a header row then one row per request."""

    try:
        columns = LAYOUTS[layout]
    except KeyError:
        raise ValueError(f"Unknown spreadsheet layout: {layout}") from None

    groups = documents.non_empty_groups(grouped)
    if not groups:
        raise documents.EmptyExportError("No items to export.")

    workbook = Workbook()
    workbook.remove(workbook.active)
    for source, lines in groups.items():
        sheet = workbook.create_sheet(title=sheet_title(source))
        sheet.append([column.header for column in columns])
        for line in lines:
            sheet.append([column.value(line) for column in columns])
        for index, column in enumerate(columns, start=1):
            sheet.column_dimensions[get_column_letter(index)].width = column.width
    return workbook


def export_spreadsheet(
    grouped: documents.GroupedLines,
    *,
    layout: str = "summary",
    today: date | None = None,
) -> documents.ExportedDocument:
    workbook = build_workbook(grouped, layout=layout)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return documents.ExportedDocument(
        filename=f"Indent_Cart_{documents.date_stamp(today)}.xlsx",
        content=buffer.getvalue(),
        mimetype=documents.XLSX_MIMETYPE,
    )
