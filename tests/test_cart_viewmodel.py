import os
import sys
from datetime import date, datetime

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from indentapp.backend import BackendError
from indentapp.records import CatalogueItem, RequisitionLine
from indentapp.viewmodels.cart import (
    CartViewModel,
    HistoryViewModel,
    group_by_source,
)


def _line(line_id, name, source=None, qty="10", status="Pending", created_at=None):
    item = CatalogueItem(id=line_id, name=name, section="A1", row="1", bin="1", indent_source=source)
    return RequisitionLine(
        id=line_id,
        item_id=line_id,
        requested_qty=qty,
        status=status,
        created_at=created_at or datetime(2024, 5, 1, 9, 30),
        item=item,
    )


class FakeCartBackend:
    def __init__(self, lines=()):
        self.lines = list(lines)
        self.failing = set()
        self.calls = []

    def _check(self, operation):
        self.calls.append(operation)
        if operation in self.failing:
            raise BackendError(f"{operation} failed", operation=operation)

    def pending_lines(self):
        self._check("pending_lines")
        return [line for line in self.lines if line.status == "Pending"]

    def create_request(self, item_id, requested_qty):
        self._check("create_request")
        line = _line(len(self.lines) + 100, f"Item {item_id}", qty=requested_qty)
        self.lines.append(line)
        return line

    def save_line_edit(self, request_id, requested_qty, item_fields=None):
        self._check("save_line_edit")
        for index, line in enumerate(self.lines):
            if line.id == request_id and line.status == "Pending":
                self.lines[index] = line.with_quantity(requested_qty)
                return True
        return False

    def delete_request(self, request_id):
        self._check("delete_request")
        before = len(self.lines)
        self.lines = [line for line in self.lines if line.id != request_id]
        return len(self.lines) < before

    def approve_pending(self):
        self._check("approve_pending")
        count = 0
        for index, line in enumerate(self.lines):
            if line.status == "Pending":
                self.lines[index] = RequisitionLine(
                    line.id, line.item_id, line.requested_qty, "Approved", line.created_at, line.item
                )
                count += 1
        return count

    def approved_dates(self):
        self._check("approved_dates")
        return sorted(
            {line.created_at.date() for line in self.lines if line.status == "Approved"},
            reverse=True,
        )

    def approved_lines_between(self, start, end):
        self._check("approved_lines_between")
        return [
            line
            for line in self.lines
            if line.status == "Approved" and start <= line.created_at <= end
        ]


def _messages(view):
    return [(notice.level, notice.message) for notice in view.notices.pop_all()]


def test_group_by_source_keeps_every_known_bucket():
    grouped = group_by_source([_line(1, "Paracetamol", "IPD")])

    assert list(grouped) == ["IPD", "OPD", "MFG"]
    assert [line.id for line in grouped["IPD"]] == [1]
    assert grouped["OPD"] == []
    assert grouped["MFG"] == []


def test_group_by_source_routes_untagged_and_unknown_lines():
    lines = [_line(1, "Paracetamol", None), _line(2, "Insulin", "WARD"), _line(3, "Zinc", " ")]

    grouped = group_by_source(lines)

    assert [line.id for line in grouped["OPD"]] == [1, 3]
    assert [line.id for line in grouped["WARD"]] == [2]
    assert list(grouped)[-1] == "WARD"
    assert sum(len(bucket) for bucket in grouped.values()) == len(lines)


def test_load_groups_pending_lines():
    backend = FakeCartBackend(
        [_line(1, "Paracetamol", "IPD"), _line(2, "Ibuprofen", "MFG", status="Approved")]
    )
    view = CartViewModel(backend)

    assert view.load() is True
    assert view.total_items == 1
    assert [line.id for line in view.grouped["IPD"]] == [1]


def test_load_failure_raises_notice():
    backend = FakeCartBackend()
    backend.failing.add("pending_lines")
    view = CartViewModel(backend)

    assert view.load() is False
    assert view.state.error == "Failed to load cart items"
    assert _messages(view) == [("danger", "Failed to load cart items")]


def test_add_to_cart_reports_success_and_reloads():
    backend = FakeCartBackend()
    view = CartViewModel(backend)

    assert view.add_to_cart(5, "2 boxes") is True
    assert _messages(view) == [("success", "Item added to cart")]
    assert view.total_items == 1
    assert view.state.lines[0].requested_qty == "2 boxes"


def test_add_to_cart_failure():
    backend = FakeCartBackend()
    backend.failing.add("create_request")
    view = CartViewModel(backend)

    assert view.add_to_cart(5, "2") is False
    assert _messages(view) == [("danger", "Failed to add item to cart")]


def test_save_edit_updates_quantity_and_closes_editor():
    backend = FakeCartBackend([_line(1, "Paracetamol", "OPD", qty="10")])
    view = CartViewModel(backend)
    view.load()
    draft = view.open_edit(1)
    assert draft.requested_qty == "10"

    assert view.save_edit(1, "5x30's", {"remarks": "urgent"}) is True
    assert view.state.editing is None
    assert view.state.lines[0].requested_qty == "5x30's"
    assert _messages(view) == [("success", "Quantity updated")]


def test_failed_combined_edit_leaves_line_untouched():
    backend = FakeCartBackend([_line(1, "Paracetamol", "OPD", qty="10")])
    backend.failing.add("save_line_edit")
    view = CartViewModel(backend)
    view.load()

    assert view.save_edit(1, "99", {"min_qty": 1}) is False
    assert backend.lines[0].requested_qty == "10"
    assert _messages(view) == [("danger", "Failed to update quantity")]


def test_edit_of_missing_line_warns():
    view = CartViewModel(FakeCartBackend())
    view.load()

    assert view.open_edit(42) is None
    assert view.save_edit(42, "1") is False
    assert _messages(view) == [("warning", "This item is no longer in the cart.")]


def test_delete_requires_confirmation():
    backend = FakeCartBackend([_line(1, "Paracetamol")])
    view = CartViewModel(backend)

    assert view.delete(1) is False
    assert "delete_request" not in backend.calls
    assert _messages(view) == [("warning", "Confirm removal before deleting this item.")]

    assert view.delete(1, confirmed=True) is True
    assert _messages(view) == [("success", "Item removed from cart")]
    assert view.total_items == 0


def test_approve_all_clears_cart():
    backend = FakeCartBackend([_line(1, "Paracetamol"), _line(2, "Ibuprofen")])
    view = CartViewModel(backend)
    view.load()

    assert view.approve_all() == 2
    assert view.total_items == 0
    assert _messages(view) == [("success", "Indent cleared successfully!")]


def test_approve_with_empty_cart_warns():
    view = CartViewModel(FakeCartBackend())

    assert view.approve_all() == 0
    assert _messages(view) == [("warning", "No pending items in cart")]


def test_approve_failure_reports_notice():
    backend = FakeCartBackend([_line(1, "Paracetamol")])
    backend.failing.add("approve_pending")
    view = CartViewModel(backend)

    assert view.approve_all() is None
    assert _messages(view) == [("danger", "Failed to clear indent")]


def test_export_with_empty_cart_warns():
    view = CartViewModel(FakeCartBackend())
    view.load()

    assert view.export_spreadsheet() is None
    assert view.export_forms() == []
    assert _messages(view) == [
        ("warning", "No items to export."),
        ("warning", "No items to export."),
    ]


def test_export_spreadsheet_and_forms():
    backend = FakeCartBackend([_line(1, "Paracetamol", "IPD"), _line(2, "Insulin", "MFG")])
    view = CartViewModel(backend)
    view.load()

    document = view.export_spreadsheet(today=date(2024, 5, 1))
    forms = view.export_forms(today=date(2024, 5, 1))

    assert document.filename == "Indent_Cart_2024-05-01.xlsx"
    assert [form.filename for form in forms] == [
        "Indent_ED_IPD_2024-05-01.pdf",
        "Indent_ED_MFG_2024-05-01.pdf",
    ]
    assert _messages(view) == [
        ("success", "Excel file exported successfully!"),
        ("success", "Successfully exported 2 PDF file(s)!"),
    ]


def test_export_spreadsheet_with_unknown_layout_fails_cleanly():
    view = CartViewModel(FakeCartBackend([_line(1, "Paracetamol", "IPD")]))
    view.load()

    assert view.export_spreadsheet(layout="fancy") is None
    assert _messages(view) == [("danger", "Failed to export to Excel")]


def test_history_loads_one_day_grouped():
    backend = FakeCartBackend(
        [
            _line(1, "Paracetamol", "IPD", status="Approved", created_at=datetime(2024, 5, 1, 8)),
            _line(2, "Insulin", "MFG", status="Approved", created_at=datetime(2024, 5, 2, 8)),
            _line(3, "Zinc", "OPD", status="Pending", created_at=datetime(2024, 5, 1, 9)),
        ]
    )
    view = HistoryViewModel(backend)

    state = view.load(date(2024, 5, 1))

    assert [line.id for line in state.lines] == [1]
    assert state.dates_with_indents == (date(2024, 5, 2), date(2024, 5, 1))
    assert [line.id for line in view.grouped["IPD"]] == [1]
    assert view.total_items == 1


def test_history_failure_keeps_previous_lines():
    backend = FakeCartBackend(
        [_line(1, "Paracetamol", "IPD", status="Approved", created_at=datetime(2024, 5, 1, 8))]
    )
    view = HistoryViewModel(backend)
    view.load(date(2024, 5, 1))

    backend.failing.add("approved_lines_between")
    state = view.load(date(2024, 5, 1))

    assert state.error == "Failed to load indent items"
    assert [line.id for line in state.lines] == [1]
    assert [notice.message for notice in view.notices.pop_all()] == ["Failed to load indent items"]
