from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint, current_app, jsonify, request

from indentapp.backend import Backend, BackendError
from indentapp.services import change_feed

bp = Blueprint("api", __name__, url_prefix="/api")


@bp.get("/items/search")
def search_items():
    """Name search for the quick-add dialog.

    An empty query returns an empty list rather than every item.
    """

    query = (request.args.get("q") or "").strip()
    if not query:
        return jsonify([])
    if len(query) > 80:
        return jsonify({"error": "Query must be 80 characters or fewer."}), 400

    try:
        matches = Backend().search_items(query, limit=current_app.config["QUICK_ADD_LIMIT"])
    except BackendError:
        current_app.logger.exception("Error searching drugs for %r", query)
        return jsonify({"error": "Failed to search drugs"}), 503

    return jsonify([asdict(item) for item in matches])


@bp.get("/items/<int:item_id>")
def item_detail(item_id: int):
    try:
        item = Backend().get_item(item_id)
    except BackendError:
        current_app.logger.exception("Error fetching drug %s", item_id)
        return jsonify({"error": "Failed to load drug"}), 503
    if item is None:
        return jsonify({"error": "Item not found."}), 404
    return jsonify(asdict(item))


@bp.get("/changes")
def list_changes():
    """Committed changes after ``since``, for pages polling for live updates.

    ``last_sequence`` is the cursor for the next poll. When the page was cut
    at ``limit`` it points at the last event returned, so polling again picks
    up the rest. ``reset`` means older events were dropped from the buffer
    and the client should reload before applying ``events``.
    """

    since = request.args.get("since", 0, type=int)
    table = request.args.get("table") or None
    limit = min(request.args.get("limit", 100, type=int), 500)

    feed = change_feed.get_feed()
    if feed is None:
        return jsonify({"last_sequence": 0, "events": [], "reset": False})

    page = feed.poll(since, limit=limit, table=table)
    return jsonify(
        {
            "last_sequence": page.next_sequence,
            "events": [event.to_json() for event in page.events],
            "reset": page.reset,
        }
    )
