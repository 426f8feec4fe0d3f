"""Cart exports: spreadsheet workbook and printable requisition forms."""

from indentapp.exports.documents import (
    PDF_MIMETYPE,
    XLSX_MIMETYPE,
    ZIP_MIMETYPE,
    EmptyExportError,
    ExportedDocument,
    bundle_documents,
    date_stamp,
    non_empty_groups,
    write_documents,
)
from indentapp.exports.requisition_form import (
    SignatureBlock,
    export_requisition_forms,
    render_requisition_form,
)
from indentapp.exports.spreadsheet import build_workbook, export_spreadsheet

__all__ = [
    "PDF_MIMETYPE",
    "XLSX_MIMETYPE",
    "ZIP_MIMETYPE",
    "EmptyExportError",
    "ExportedDocument",
    "SignatureBlock",
    "build_workbook",
    "bundle_documents",
    "date_stamp",
    "export_requisition_forms",
    "export_spreadsheet",
    "non_empty_groups",
    "render_requisition_form",
    "write_documents",
]
