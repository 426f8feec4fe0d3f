from dataclasses import asdict

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)

from indentapp.backend import Backend, BackendError
from indentapp.forms import FormValidationError, parse_item_form
from indentapp.utils.natural_sort import sort_items
from indentapp.viewmodels.catalogue import page_count, paginate

bp = Blueprint("settings", __name__, url_prefix="/settings")


@bp.route("/")
def settings_home():
    return redirect(url_for("settings.inventory_table"))


@bp.route("/inventory")
def inventory_table():
    page = request.args.get("page", 1, type=int)
    size = request.args.get("size", current_app.config["INVENTORY_PAGE_SIZE"], type=int)
    selected_type = request.args.get("type") or None
    selected_source = request.args.get("source") or None
    sort_param = request.args.get("sort", "name")

    try:
        items = Backend().list_items(
            order="location" if sort_param == "location" else "name",
            item_type=selected_type,
            source=selected_source,
        )
    except BackendError:
        current_app.logger.exception("Error fetching inventory items")
        flash("Failed to load inventory items", "danger")
        items = []

    if sort_param == "location":
        items = sort_items(items)

    return render_template(
        "settings/inventory.html",
        items=paginate(items, page, size),
        total=len(items),
        page=page,
        size=size,
        pages=page_count(len(items), size),
        selected_type=selected_type,
        selected_source=selected_source,
        sort=sort_param,
    )


def _item_values(item) -> dict:
    return {name: "" if value is None else value for name, value in asdict(item).items()}


def _item_form_kwargs():
    return {
        "item_types": current_app.config["ITEM_TYPES"],
        "sources": current_app.config["INDENT_SOURCES"],
    }


@bp.route("/inventory/add", methods=["GET", "POST"])
def add_item():
    if request.method == "POST":
        try:
            fields = parse_item_form(request.form, **_item_form_kwargs())
        except FormValidationError as exc:
            return (
                render_template(
                    "settings/edit_item.html", item=None, form=request.form, errors=exc.errors
                ),
                400,
            )
        try:
            item = Backend().create_item(fields)
        except BackendError:
            current_app.logger.exception("Error adding inventory item")
            flash("Failed to add drug", "danger")
            return (
                render_template(
                    "settings/edit_item.html", item=None, form=request.form, errors={}
                ),
                500,
            )
        flash(f"{item.name} added successfully", "success")
        return redirect(url_for("settings.inventory_table"))

    return render_template("settings/edit_item.html", item=None, form=None, errors={})


@bp.route("/inventory/<int:item_id>/edit", methods=["GET", "POST"])
def edit_item(item_id: int):
    backend = Backend()
    try:
        item = backend.get_item(item_id)
    except BackendError:
        current_app.logger.exception("Error loading inventory item %s", item_id)
        flash("Failed to load drug", "danger")
        return redirect(url_for("settings.inventory_table"))
    if item is None:
        abort(404)

    if request.method == "POST":
        try:
            fields = parse_item_form(request.form, **_item_form_kwargs())
        except FormValidationError as exc:
            return (
                render_template(
                    "settings/edit_item.html", item=item, form=request.form, errors=exc.errors
                ),
                400,
            )
        try:
            updated = backend.update_item(item_id, fields)
        except BackendError:
            current_app.logger.exception("Error updating inventory item %s", item_id)
            flash("Failed to update drug", "danger")
            return (
                render_template(
                    "settings/edit_item.html", item=item, form=request.form, errors={}
                ),
                500,
            )
        if updated is None:
            flash("This drug no longer exists.", "warning")
        else:
            flash(f"{updated.name} updated successfully", "success")
        return redirect(url_for("settings.inventory_table"))

    return render_template("settings/edit_item.html", item=item, form=_item_values(item), errors={})


@bp.route("/inventory/<int:item_id>/delete", methods=["POST"])
def delete_item(item_id: int):
    if request.form.get("confirm") != "yes":
        flash("Confirm removal before deleting this drug.", "warning")
        return redirect(url_for("settings.inventory_table"))

    try:
        deleted = Backend().delete_item(item_id)
    except BackendError:
        current_app.logger.exception("Error deleting inventory item %s", item_id)
        flash("Failed to delete drug", "danger")
        return redirect(url_for("settings.inventory_table"))

    if deleted:
        flash("Drug deleted successfully", "success")
    else:
        flash("This drug no longer exists.", "warning")
    return redirect(url_for("settings.inventory_table"))
