import io
from datetime import date, datetime

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)

from indentapp import exports
from indentapp.backend import Backend
from indentapp.forms import FormValidationError, parse_line_edit
from indentapp.utils.notices import flash_notices
from indentapp.viewmodels.cart import CartViewModel, HistoryViewModel

bp = Blueprint("cart", __name__, url_prefix="/cart")


def _cart_view() -> CartViewModel:
    return CartViewModel(
        Backend(),
        sources=current_app.config["INDENT_SOURCES"],
        default_source=current_app.config["DEFAULT_INDENT_SOURCE"],
    )


def _signatures() -> exports.SignatureBlock:
    return exports.SignatureBlock(
        requester_name=current_app.config.get("REQUESTER_NAME", ""),
        requester_position=current_app.config.get("REQUESTER_POSITION", ""),
    )


def _download(document: exports.ExportedDocument):
    return send_file(
        io.BytesIO(document.content),
        mimetype=document.mimetype,
        as_attachment=True,
        download_name=document.filename,
    )


@bp.route("/")
def cart_home():
    view = _cart_view()
    view.load()
    flash_notices(view.notices)
    return render_template(
        "cart/cart.html",
        state=view.state,
        grouped=view.grouped,
        total_items=view.total_items,
        spreadsheet_layout=current_app.config["SPREADSHEET_LAYOUT"],
    )


@bp.route("/<int:request_id>/edit", methods=["GET", "POST"])
def edit_line(request_id: int):
    view = _cart_view()
    view.load()
    draft = view.open_edit(request_id)
    if draft is None:
        flash_notices(view.notices)
        flash("This item is no longer in the cart.", "warning")
        return redirect(url_for("cart.cart_home"))

    if request.method == "POST":
        try:
            quantity, item_fields = parse_line_edit(
                request.form, current_app.config["INDENT_SOURCES"]
            )
        except FormValidationError as exc:
            return (
                render_template(
                    "cart/edit.html",
                    draft=draft,
                    form=request.form,
                    errors=exc.errors,
                ),
                400,
            )
        view.save_edit(request_id, quantity, item_fields)
        flash_notices(view.notices)
        return redirect(url_for("cart.cart_home"))

    return render_template("cart/edit.html", draft=draft, form=None, errors={})


@bp.route("/<int:request_id>/delete", methods=["POST"])
def delete_line(request_id: int):
    view = _cart_view()
    view.delete(request_id, confirmed=request.form.get("confirm") == "yes")
    flash_notices(view.notices)
    return redirect(url_for("cart.cart_home"))


@bp.route("/approve", methods=["POST"])
def approve_cart():
    view = _cart_view()
    view.approve_all()
    flash_notices(view.notices)
    return redirect(url_for("cart.cart_home"))


############################
# EXPORTS
############################
@bp.route("/export/xlsx")
def export_xlsx():
    layout = request.args.get("layout") or current_app.config["SPREADSHEET_LAYOUT"]
    view = _cart_view()
    view.load()
    document = view.export_spreadsheet(layout=layout)
    if document is None:
        flash_notices(view.notices)
        return redirect(url_for("cart.cart_home"))
    return _download(document)


@bp.route("/export/pdf")
def export_pdf():
    """Per-source forms bundled in a zip, or one combined form with ``?combined=1``."""

    combined = request.args.get("combined") in {"1", "true", "yes"}
    view = _cart_view()
    view.load()
    documents = view.export_forms(signatures=_signatures(), combined=combined)
    if not documents:
        flash_notices(view.notices)
        return redirect(url_for("cart.cart_home"))
    if len(documents) == 1:
        return _download(documents[0])
    bundle = exports.bundle_documents(
        documents, f"Indent_ED_{exports.date_stamp()}.zip"
    )
    return _download(bundle)


@bp.route("/export/pdf/<source>")
def export_source_pdf(source: str):
    view = _cart_view()
    view.load()
    documents = view.export_forms(signatures=_signatures(), sources=[source])
    if not documents:
        flash_notices(view.notices)
        return redirect(url_for("cart.cart_home"))
    return _download(documents[0])


############################
# HISTORY
############################
def _parse_day(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        return None


@bp.route("/history")
def history():
    raw_day = request.args.get("date")
    day = _parse_day(raw_day)
    if raw_day and day is None:
        flash("Invalid date. Showing today's indents instead.", "warning")

    view = HistoryViewModel(
        Backend(),
        sources=current_app.config["INDENT_SOURCES"],
        default_source=current_app.config["DEFAULT_INDENT_SOURCE"],
    )
    state = view.load(day or date.today())
    flash_notices(view.notices)
    return render_template(
        "cart/history.html",
        state=state,
        grouped=view.grouped,
        total_items=view.total_items,
    )
