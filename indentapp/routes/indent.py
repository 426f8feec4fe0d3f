from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

from indentapp.backend import Backend, BackendError
from indentapp.forms import FormValidationError, parse_quantity
from indentapp.services.catalogue_view import page_state, shared_catalogue
from indentapp.utils.notices import flash_notices, safe_next
from indentapp.viewmodels.cart import CartViewModel
from indentapp.viewmodels.catalogue import (
    ALL_SECTIONS,
    current_page,
    section_options,
    total_pages,
    visible_items,
)

bp = Blueprint("indent", __name__, url_prefix="/indent")


def _cart_view() -> CartViewModel:
    return CartViewModel(
        Backend(),
        sources=current_app.config["INDENT_SOURCES"],
        default_source=current_app.config["DEFAULT_INDENT_SOURCE"],
    )


def _render_indent_page(form_errors=None, failed_item_id=None, status=200):
    page = request.args.get("page", 1, type=int)
    query = (request.args.get("q") or "").strip()
    section = request.args.get("section") or ALL_SECTIONS

    view = shared_catalogue()
    state = page_state(
        view,
        query=query,
        section=section,
        page=page,
        page_size=current_app.config["CATALOGUE_PAGE_SIZE"],
    )

    try:
        pending_count = Backend().count_pending()
    except BackendError:
        current_app.logger.exception("Error counting pending requests")
        pending_count = None

    return (
        render_template(
            "indent.html",
            state=state,
            items=current_page(state),
            total=len(visible_items(state)),
            pages=total_pages(state),
            sections=section_options(state),
            all_sections=ALL_SECTIONS,
            pending_count=pending_count,
            quick_add_limit=current_app.config["QUICK_ADD_LIMIT"],
            form_errors=form_errors or {},
            failed_item_id=failed_item_id,
        ),
        status,
    )


@bp.route("/")
def indent_home():
    return _render_indent_page()


@bp.route("/items/<int:item_id>/request", methods=["POST"])
def request_item(item_id: int):
    try:
        quantity = parse_quantity(request.form)
    except FormValidationError as exc:
        return _render_indent_page(form_errors=exc.errors, failed_item_id=item_id, status=400)

    view = _cart_view()
    view.add_to_cart(item_id, quantity)
    flash_notices(view.notices)
    return redirect(safe_next(request.form.get("next"), url_for("indent.indent_home")))


@bp.route("/quick-add", methods=["POST"])
def quick_add():
    """Add an item picked from the search dialog."""

    item_id = request.form.get("item_id", type=int)
    if not item_id:
        flash("Please select a drug", "danger")
        return redirect(url_for("indent.indent_home"))
    return request_item(item_id)
