from __future__ import annotations

import traceback

from flask import Blueprint, current_app, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from indentapp.extensions import db

bp = Blueprint("errors", __name__)


def _format_stacktrace(error: BaseException | None) -> str:
    if error is None:
        return ""

    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    # Allow HTTP errors that are not 500 to propagate to their default handlers.
    if isinstance(error, HTTPException) and error.code != 500:
        return error

    root_error: BaseException | None = getattr(error, "original_exception", None)
    if root_error is None or not isinstance(root_error, BaseException):
        root_error = error

    error_message = "Internal Server Error"
    if isinstance(error, HTTPException) and error.description:
        error_message = error.description
    else:
        error_message = str(error) or error_message

    current_app.logger.exception("Unhandled exception", exc_info=error)

    try:
        db.session.rollback()
    except Exception:
        current_app.logger.exception("Failed to roll back session after error")

    if request.path.startswith("/api/"):
        return jsonify({"error": "Internal Server Error"}), 500

    stacktrace = _format_stacktrace(root_error) if current_app.debug else ""
    return (
        render_template(
            "errors/server_error.html",
            error_message=error_message,
            stacktrace=stacktrace,
            endpoint=request.endpoint,
            path=request.path,
        ),
        500,
    )
