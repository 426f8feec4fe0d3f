"""Requisition cart and indent history.

Lines are grouped into source buckets. Every mutation goes to the backend and
is followed by a full re-read of the pending lines.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping, Sequence

from indentapp import exports
from indentapp.backend import Backend, BackendError
from indentapp.records import RequisitionLine
from indentapp.viewmodels.notice import Notice, NoticeLog
from indentapp.viewmodels.scope import ViewScope


LOG = logging.getLogger(__name__)

DEFAULT_SOURCES = ("IPD", "OPD", "MFG")
DEFAULT_SOURCE = "OPD"


def group_by_source(
    lines: Iterable[RequisitionLine],
    sources: Sequence[str] = DEFAULT_SOURCES,
    default_source: str = DEFAULT_SOURCE,
) -> dict[str, list[RequisitionLine]]:
    """Bucket lines by their item's source tag.

    Known sources always get a bucket, in configured order. Lines without a
    tag go to ``default_source``; an unrecognised tag gets a bucket of its own
    after the known ones, so every line lands in exactly one bucket.
    """

    grouped: dict[str, list[RequisitionLine]] = {source: [] for source in sources}
    for line in lines:
        source = (line.source or "").strip() or default_source
        grouped.setdefault(source, []).append(line)
    return grouped


@dataclass(frozen=True)
class EditDraft:
    request_id: int
    item_name: str
    requested_qty: str
    min_qty: int | None = None
    max_qty: int | None = None
    indent_source: str | None = None
    remarks: str | None = None

    @classmethod
    def from_line(cls, line: RequisitionLine) -> "EditDraft":
        item = line.item
        return cls(
            request_id=line.id,
            item_name=line.item_name,
            requested_qty=line.requested_qty,
            min_qty=item.min_qty if item else None,
            max_qty=item.max_qty if item else None,
            indent_source=item.indent_source if item else None,
            remarks=item.remarks if item else None,
        )


@dataclass(frozen=True)
class CartState:
    lines: tuple[RequisitionLine, ...] = ()
    sources: tuple[str, ...] = DEFAULT_SOURCES
    default_source: str = DEFAULT_SOURCE
    editing: EditDraft | None = None
    loading: bool = True
    error: str | None = None
    last_notice: Notice | None = None


@dataclass(frozen=True)
class LinesLoaded:
    lines: tuple[RequisitionLine, ...]


@dataclass(frozen=True)
class LoadFailed:
    message: str


@dataclass(frozen=True)
class EditOpened:
    request_id: int


@dataclass(frozen=True)
class EditClosed:
    pass


@dataclass(frozen=True)
class NoticeRaised:
    notice: Notice


def reduce_cart(state: CartState, event) -> CartState:
    if isinstance(event, LinesLoaded):
        editing = state.editing
        if editing is not None and not any(line.id == editing.request_id for line in event.lines):
            editing = None
        return replace(state, lines=tuple(event.lines), loading=False, error=None, editing=editing)
    if isinstance(event, LoadFailed):
        return replace(state, loading=False, error=event.message)
    if isinstance(event, EditOpened):
        for line in state.lines:
            if line.id == event.request_id:
                return replace(state, editing=EditDraft.from_line(line))
        return replace(state, editing=None)
    if isinstance(event, EditClosed):
        return replace(state, editing=None)
    if isinstance(event, NoticeRaised):
        return replace(state, last_notice=event.notice)
    raise TypeError(f"Unknown cart event: {event!r}")


def grouped_lines(state: CartState) -> dict[str, list[RequisitionLine]]:
    return group_by_source(state.lines, state.sources, state.default_source)


def total_items(state: CartState) -> int:
    return len(state.lines)


class CartViewModel:
    def __init__(
        self,
        backend: Backend,
        *,
        sources: Sequence[str] = DEFAULT_SOURCES,
        default_source: str = DEFAULT_SOURCE,
    ) -> None:
        self.backend = backend
        self.notices = NoticeLog()
        self._state = CartState(sources=tuple(sources), default_source=default_source)
        self._state_lock = threading.RLock()
        self._scope = ViewScope()

    @property
    def state(self) -> CartState:
        with self._state_lock:
            return self._state

    @property
    def grouped(self) -> dict[str, list[RequisitionLine]]:
        return grouped_lines(self.state)

    @property
    def total_items(self) -> int:
        return total_items(self.state)

    def dispatch(self, event) -> CartState:
        with self._state_lock:
            self._state = reduce_cart(self._state, event)
            return self._state

    def _notify(self, level: str, message: str) -> None:
        notice = self.notices.raise_notice(level, message)
        self.dispatch(NoticeRaised(notice))

    def load(self) -> bool:
        try:
            return self._scope.run(self.backend.pending_lines, self._apply_loaded)
        except BackendError:
            LOG.exception("Error fetching cart items")
            if not self._scope.closed:
                self.dispatch(LoadFailed("Failed to load cart items"))
                self._notify("danger", "Failed to load cart items")
            return False

    def _apply_loaded(self, lines: list[RequisitionLine]) -> None:
        self.dispatch(LinesLoaded(tuple(lines)))

    def unmount(self) -> None:
        self._scope.close()

    ############################
    # MUTATIONS
    ############################
    def add_to_cart(self, item_id: int, requested_qty: str) -> bool:
        try:
            self.backend.create_request(item_id, requested_qty)
        except BackendError:
            LOG.exception("Error adding item %s to cart", item_id)
            self._notify("danger", "Failed to add item to cart")
            return False
        self._notify("success", "Item added to cart")
        self.load()
        return True

    def open_edit(self, request_id: int) -> EditDraft | None:
        return self.dispatch(EditOpened(request_id)).editing

    def close_edit(self) -> None:
        self.dispatch(EditClosed())

    def save_edit(
        self,
        request_id: int,
        requested_qty: str,
        item_fields: Mapping[str, Any] | None = None,
    ) -> bool:
        try:
            saved = self.backend.save_line_edit(request_id, requested_qty, item_fields)
        except BackendError:
            LOG.exception("Error updating quantity for request %s", request_id)
            self._notify("danger", "Failed to update quantity")
            return False
        if not saved:
            self._notify("warning", "This item is no longer in the cart.")
        else:
            self._notify("success", "Quantity updated")
        self.close_edit()
        self.load()
        return saved

    def delete(self, request_id: int, *, confirmed: bool = False) -> bool:
        if not confirmed:
            self._notify("warning", "Confirm removal before deleting this item.")
            return False
        try:
            deleted = self.backend.delete_request(request_id)
        except BackendError:
            LOG.exception("Error deleting request %s", request_id)
            self._notify("danger", "Failed to remove item")
            return False
        if deleted:
            self._notify("success", "Item removed from cart")
        else:
            self._notify("warning", "This item is no longer in the cart.")
        self.load()
        return deleted

    def approve_all(self) -> int | None:
        try:
            approved = self.backend.approve_pending()
        except BackendError:
            LOG.exception("Error clearing indent")
            self._notify("danger", "Failed to clear indent")
            return None
        if approved:
            self._notify("success", "Indent cleared successfully!")
        else:
            self._notify("warning", "No pending items in cart")
        self.load()
        return approved

    ############################
    # EXPORTS
    ############################
    def export_spreadsheet(
        self, *, layout: str = "summary", today: date | None = None
    ) -> exports.ExportedDocument | None:
        grouped = exports.non_empty_groups(self.grouped)
        if not grouped:
            self._notify("warning", "No items to export.")
            return None
        try:
            document = exports.export_spreadsheet(grouped, layout=layout, today=today)
        except Exception:
            LOG.exception("Error exporting to Excel")
            self._notify("danger", "Failed to export to Excel")
            return None
        self._notify("success", "Excel file exported successfully!")
        return document

    def export_forms(
        self,
        *,
        signatures: exports.SignatureBlock | None = None,
        combined: bool = False,
        sources: Sequence[str] | None = None,
        today: date | None = None,
    ) -> list[exports.ExportedDocument]:
        grouped = exports.non_empty_groups(self.grouped)
        if sources is not None:
            grouped = {source: grouped[source] for source in sources if source in grouped}
        if not grouped:
            self._notify("warning", "No items to export.")
            return []
        try:
            documents = exports.export_requisition_forms(
                grouped, signatures=signatures, combined=combined, today=today
            )
        except Exception:
            LOG.exception("Error exporting to PDF")
            self._notify("danger", "Failed to export to PDF")
            return []
        self._notify("success", f"Successfully exported {len(documents)} PDF file(s)!")
        return documents


############################
# HISTORY
############################
@dataclass(frozen=True)
class HistoryState:
    day: date
    lines: tuple[RequisitionLine, ...] = ()
    dates_with_indents: tuple[date, ...] = ()
    error: str | None = None


class HistoryViewModel:
    """Approved indents for one calendar day."""

    def __init__(
        self,
        backend: Backend,
        *,
        sources: Sequence[str] = DEFAULT_SOURCES,
        default_source: str = DEFAULT_SOURCE,
    ) -> None:
        self.backend = backend
        self.sources = tuple(sources)
        self.default_source = default_source
        self.notices = NoticeLog()
        self.state = HistoryState(day=date.today())

    def load(self, day: date | None = None) -> HistoryState:
        day = day or self.state.day
        state = HistoryState(day=day, dates_with_indents=self.state.dates_with_indents)

        try:
            dates = tuple(self.backend.approved_dates())
        except BackendError:
            LOG.exception("Error fetching indent dates")
            self.notices.danger("Failed to load indent dates")
        else:
            state = replace(state, dates_with_indents=dates)

        start = datetime.combine(day, time.min)
        end = datetime.combine(day, time.max)
        try:
            lines = self.backend.approved_lines_between(start, end)
        except BackendError:
            LOG.exception("Error fetching indent items for %s", day)
            self.notices.danger("Failed to load indent items")
            state = replace(state, lines=self.state.lines, error="Failed to load indent items")
        else:
            state = replace(state, lines=tuple(lines))

        self.state = state
        return state

    @property
    def grouped(self) -> dict[str, list[RequisitionLine]]:
        return group_by_source(self.state.lines, self.sources, self.default_source)

    @property
    def total_items(self) -> int:
        return len(self.state.lines)
