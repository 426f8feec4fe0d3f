"""Exported document type and helpers shared by the cart exporters."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from werkzeug.utils import secure_filename

from indentapp.records import RequisitionLine


XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIMETYPE = "application/pdf"
ZIP_MIMETYPE = "application/zip"


class EmptyExportError(ValueError):
    """Raised when every source bucket is empty."""


@dataclass(frozen=True)
class ExportedDocument:
    filename: str
    content: bytes
    mimetype: str


GroupedLines = Mapping[str, Sequence[RequisitionLine]]


def date_stamp(today: date | None = None) -> str:
    return (today or date.today()).isoformat()


def filename_part(source: str) -> str:
    """Source tag as it may appear inside a file or zip entry name."""

    return secure_filename(source) or "Source"


def non_empty_groups(grouped: GroupedLines) -> dict[str, list[RequisitionLine]]:
    return {source: list(lines) for source, lines in grouped.items() if lines}


def bundle_documents(
    documents: Iterable[ExportedDocument], filename: str
) -> ExportedDocument:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for document in documents:
            archive.writestr(document.filename, document.content)
    return ExportedDocument(filename=filename, content=buffer.getvalue(), mimetype=ZIP_MIMETYPE)


def write_documents(documents: Iterable[ExportedDocument], directory: str | Path) -> list[Path]:
    """Save documents one after another; files already written are kept on failure."""

    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for document in documents:
        path = target / document.filename
        path.write_bytes(document.content)
        written.append(path)
    return written
