"""Row-level access to the inventory and indent tables.

Views never query the database directly; they go through :class:`Backend`,
which returns detached records and turns every SQLAlchemy failure into a
:class:`BackendError` after rolling the session back.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Iterator, Mapping

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from indentapp.extensions import db
from indentapp.models import IndentRequest, IndentStatus, InventoryItem
from indentapp.records import CatalogueItem, RequisitionLine
from indentapp.services import change_feed


ITEM_FIELDS = (
    "name",
    "type",
    "section",
    "row",
    "bin",
    "min_qty",
    "max_qty",
    "indent_source",
    "remarks",
    "image_url",
)

# Item fields that may be edited together with a cart line.
LINE_ITEM_FIELDS = ("min_qty", "max_qty", "indent_source", "remarks")


class BackendError(Exception):
    """A database call failed; the session has been rolled back."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class Backend:
    def __init__(self, session=None, feed: change_feed.ChangeFeed | None = None) -> None:
        self._session = session
        self._feed = feed

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @property
    def feed(self) -> change_feed.ChangeFeed | None:
        return self._feed if self._feed is not None else change_feed.get_feed()

    @contextmanager
    def _call(self, operation: str, *, commit: bool = False) -> Iterator[Any]:
        session = self.session
        try:
            yield session
            if commit:
                session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise BackendError(f"{operation} failed: {exc}", operation=operation) from exc

    def subscribe(self, table: str, callback) -> change_feed.Subscription:
        feed = self.feed
        if feed is None:
            raise BackendError("No change feed is configured.", operation="subscribe")
        return feed.subscribe(table, callback)

    ############################
    # CATALOGUE ITEMS
    ############################
    def list_items(
        self,
        *,
        order: str = "name",
        item_type: str | None = None,
        source: str | None = None,
    ) -> list[CatalogueItem]:
        with self._call("list_items") as session:
            query = session.query(InventoryItem)
            if item_type:
                query = query.filter(InventoryItem.type == item_type)
            if source:
                query = query.filter(InventoryItem.indent_source == source)
            if order == "location":
                query = query.order_by(
                    InventoryItem.section.asc(),
                    InventoryItem.row.asc(),
                    InventoryItem.bin.asc(),
                )
            else:
                query = query.order_by(InventoryItem.name.asc(), InventoryItem.id.asc())
            return [CatalogueItem.from_model(item) for item in query.all()]

    def get_item(self, item_id: int) -> CatalogueItem | None:
        with self._call("get_item") as session:
            item = session.get(InventoryItem, item_id)
            return CatalogueItem.from_model(item) if item is not None else None

    def search_items(self, query: str, *, limit: int = 20) -> list[CatalogueItem]:
        """Case-insensitive name search used by the quick-add dialog."""

        text = (query or "").strip()
        if not text:
            return []
        with self._call("search_items") as session:
            matches = (
                session.query(InventoryItem)
                .filter(InventoryItem.name.ilike(f"%{text}%"))
                .order_by(InventoryItem.name.asc())
                .limit(limit)
                .all()
            )
            return [CatalogueItem.from_model(item) for item in matches]

    def create_item(self, fields: Mapping[str, Any]) -> CatalogueItem:
        with self._call("create_item", commit=True) as session:
            item = InventoryItem(**_pick(fields, ITEM_FIELDS))
            session.add(item)
            session.flush()
            created = CatalogueItem.from_model(item)
        return created

    def update_item(self, item_id: int, fields: Mapping[str, Any]) -> CatalogueItem | None:
        with self._call("update_item", commit=True) as session:
            item = session.get(InventoryItem, item_id)
            if item is None:
                return None
            for name, value in _pick(fields, ITEM_FIELDS).items():
                setattr(item, name, value)
            session.flush()
            updated = CatalogueItem.from_model(item)
        return updated

    def delete_item(self, item_id: int) -> bool:
        with self._call("delete_item", commit=True) as session:
            item = session.get(InventoryItem, item_id)
            if item is None:
                return False
            session.delete(item)
        return True

    ############################
    # REQUISITION REQUESTS
    ############################
    def _lines_query(self, session, status: str):
        return (
            session.query(IndentRequest)
            .options(joinedload(IndentRequest.item))
            .filter(IndentRequest.status == status)
            .order_by(IndentRequest.created_at.desc(), IndentRequest.id.desc())
        )

    def pending_lines(self) -> list[RequisitionLine]:
        with self._call("pending_lines") as session:
            rows = self._lines_query(session, IndentStatus.PENDING).all()
            return [RequisitionLine.from_model(row) for row in rows]

    def approved_lines_between(self, start: datetime, end: datetime) -> list[RequisitionLine]:
        with self._call("approved_lines_between") as session:
            rows = (
                self._lines_query(session, IndentStatus.APPROVED)
                .filter(IndentRequest.created_at >= start)
                .filter(IndentRequest.created_at <= end)
                .all()
            )
            return [RequisitionLine.from_model(row) for row in rows]

    def approved_dates(self) -> list[date]:
        with self._call("approved_dates") as session:
            rows = (
                session.query(IndentRequest.created_at)
                .filter(IndentRequest.status == IndentStatus.APPROVED)
                .order_by(IndentRequest.created_at.desc())
                .all()
            )
        seen: list[date] = []
        for (created_at,) in rows:
            if created_at is None:
                continue
            day = created_at.date()
            if day not in seen:
                seen.append(day)
        return seen

    def get_line(self, request_id: int) -> RequisitionLine | None:
        with self._call("get_line") as session:
            row = session.get(IndentRequest, request_id)
            return RequisitionLine.from_model(row) if row is not None else None

    def create_request(self, item_id: int, requested_qty: str) -> RequisitionLine:
        with self._call("create_request", commit=True) as session:
            if session.get(InventoryItem, item_id) is None:
                raise BackendError(
                    f"Inventory item {item_id} does not exist.", operation="create_request"
                )
            row = IndentRequest(
                item_id=item_id,
                requested_qty=requested_qty,
                status=IndentStatus.PENDING,
            )
            session.add(row)
            session.flush()
            line = RequisitionLine.from_model(row)
        return line

    def update_request_quantity(self, request_id: int, requested_qty: str) -> bool:
        return self.save_line_edit(request_id, requested_qty)

    def save_line_edit(
        self,
        request_id: int,
        requested_qty: str,
        item_fields: Mapping[str, Any] | None = None,
    ) -> bool:
        """Write a cart line's quantity and its item's fields in one transaction."""

        with self._call("save_line_edit", commit=True) as session:
            row = session.get(IndentRequest, request_id)
            if row is None or row.status != IndentStatus.PENDING:
                return False
            row.requested_qty = requested_qty
            if item_fields:
                item = session.get(InventoryItem, row.item_id)
                for name, value in _pick(item_fields, LINE_ITEM_FIELDS).items():
                    setattr(item, name, value)
        return True

    def delete_request(self, request_id: int) -> bool:
        with self._call("delete_request", commit=True) as session:
            row = session.get(IndentRequest, request_id)
            if row is None or row.status != IndentStatus.PENDING:
                return False
            session.delete(row)
        return True

    def approve_pending(self) -> int:
        """Move every request that is Pending right now to Approved."""

        with self._call("approve_pending", commit=True) as session:
            pending_ids = [
                request_id
                for (request_id,) in session.query(IndentRequest.id)
                .filter(IndentRequest.status == IndentStatus.PENDING)
                .all()
            ]
            if not pending_ids:
                return 0
            session.execute(
                update(IndentRequest)
                .where(IndentRequest.id.in_(pending_ids))
                .where(IndentRequest.status == IndentStatus.PENDING)
                .values(status=IndentStatus.APPROVED)
                .execution_options(synchronize_session=False)
            )
            for request_id in pending_ids:
                change_feed.queue_change(
                    session,
                    "indent_requests",
                    change_feed.UPDATE,
                    request_id,
                    {"id": request_id, "status": IndentStatus.APPROVED},
                )
        session.expire_all()
        return len(pending_ids)

    def count_pending(self) -> int:
        with self._call("count_pending") as session:
            return (
                session.query(func.count(IndentRequest.id))
                .filter(IndentRequest.status == IndentStatus.PENDING)
                .scalar()
                or 0
            )


def _pick(fields: Mapping[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
    return {name: fields[name] for name in allowed if name in fields}
