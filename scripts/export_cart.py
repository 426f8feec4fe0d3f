#!/usr/bin/env python
"""Write the current cart's spreadsheet and requisition forms to a directory."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date
from pathlib import Path

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from indentapp import create_app, exports  # noqa: E402
from indentapp.backend import Backend  # noqa: E402
from indentapp.viewmodels.cart import CartViewModel  # noqa: E402


LOG = logging.getLogger("export_cart")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export the pending indent cart.")
    parser.add_argument(
        "--output",
        type=str,
        default="exports",
        help="Directory to write files into (default: ./exports)",
    )
    parser.add_argument(
        "--layout",
        choices=("summary", "detailed"),
        default=None,
        help="Spreadsheet layout (default: SPREADSHEET_LAYOUT setting).",
    )
    parser.add_argument(
        "--combined",
        action="store_true",
        help="Write one PDF covering every source instead of one per source.",
    )
    parser.add_argument("--no-xlsx", action="store_true", help="Skip the spreadsheet.")
    parser.add_argument("--no-pdf", action="store_true", help="Skip the requisition forms.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    app = create_app()
    output = Path(args.output)

    with app.app_context():
        if not app.config.get("DATABASE_AVAILABLE", True):
            LOG.error("Database unavailable: %s", app.config.get("DATABASE_ERROR"))
            return 2

        view = CartViewModel(
            Backend(),
            sources=app.config["INDENT_SOURCES"],
            default_source=app.config["DEFAULT_INDENT_SOURCE"],
        )
        if not view.load():
            LOG.error("Failed to load cart items")
            return 1

        documents: list[exports.ExportedDocument] = []
        today = date.today()
        if not args.no_xlsx:
            spreadsheet = view.export_spreadsheet(
                layout=args.layout or app.config["SPREADSHEET_LAYOUT"], today=today
            )
            if spreadsheet is not None:
                documents.append(spreadsheet)
        if not args.no_pdf:
            documents.extend(
                view.export_forms(
                    signatures=exports.SignatureBlock(
                        requester_name=app.config.get("REQUESTER_NAME", ""),
                        requester_position=app.config.get("REQUESTER_POSITION", ""),
                    ),
                    combined=args.combined,
                    today=today,
                )
            )

        for notice in view.notices.pop_all():
            level = logging.INFO if notice.level == "success" else logging.WARNING
            LOG.log(level, notice.message)

        if not documents:
            return 1

        try:
            written = exports.write_documents(documents, output)
        except OSError:
            LOG.exception("Failed writing exports to %s", output)
            return 1

    for path in written:
        print(path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
