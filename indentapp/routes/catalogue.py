from flask import Blueprint, current_app, render_template, request

from indentapp.services.catalogue_view import page_state, shared_catalogue
from indentapp.viewmodels.catalogue import (
    ALL_SECTIONS,
    GRID,
    LIST,
    current_page,
    section_options,
    total_pages,
    visible_items,
)

bp = Blueprint("locator", __name__, url_prefix="/locator")

PAGE_SIZE_CHOICES = (12, 24, 48)


@bp.route("/")
def locator_home():
    page = request.args.get("page", 1, type=int)
    size = request.args.get("size", current_app.config["CATALOGUE_PAGE_SIZE"], type=int)
    query = (request.args.get("q") or "").strip()
    section = request.args.get("section") or ALL_SECTIONS
    view_mode = request.args.get("view", GRID)

    view = shared_catalogue()
    state = page_state(
        view,
        query=query,
        section=section,
        page=page,
        page_size=size,
        view_mode=view_mode,
    )
    matches = visible_items(state)

    return render_template(
        "locator.html",
        state=state,
        items=current_page(state),
        total=len(matches),
        pages=total_pages(state),
        sections=section_options(state),
        all_sections=ALL_SECTIONS,
        view_modes=(GRID, LIST),
        page_sizes=PAGE_SIZE_CHOICES,
    )
