"""Row change notifications for the inventory and indent tables.

Every committed INSERT/UPDATE/DELETE on a tracked table is published to the
application's :class:`ChangeFeed` with the row payload, so subscribers can
patch their copies instead of re-reading whole tables.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Deque

from flask import Flask, current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session


LOG = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

TRACKED_TABLES = ("inventory_items", "indent_requests")

_EXTENSION_KEY = "indent_change_feed"
_PENDING_KEY = "indent_change_feed_pending"


@dataclass(frozen=True)
class ChangeEvent:
    sequence: int
    table: str
    kind: str
    record_id: int
    record: dict[str, Any] | None
    timestamp: datetime

    def to_json(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "table": self.table,
            "event": self.kind,
            "id": self.record_id,
            "record": self.record,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ChangePage:
    """One poll's worth of events.

    ``next_sequence`` is the value to send back as ``since``. ``reset`` is
    set when events after ``since`` have already left the buffer, so the
    caller has to reload instead of patching.
    """

    events: list[ChangeEvent]
    next_sequence: int
    reset: bool


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, callback: ChangeCallback) -> None:
        self.feed = feed
        self.table = table
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.feed._remove(self)


class ChangeFeed:
    def __init__(self, maxlen: int = 200) -> None:
        self._events: Deque[ChangeEvent] = deque(maxlen=maxlen)
        self._subscribers: dict[str, list[Subscription]] = {}
        self._sequence = itertools.count(1)
        self._last_sequence = 0
        self._lock = threading.Lock()

    @property
    def last_sequence(self) -> int:
        return self._last_sequence

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        subscription = Subscription(self, table, callback)
        with self._lock:
            self._subscribers.setdefault(table, []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            listeners = self._subscribers.get(subscription.table, [])
            if subscription in listeners:
                listeners.remove(subscription)

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, []))

    def publish(
        self,
        table: str,
        kind: str,
        record_id: int,
        record: dict[str, Any] | None = None,
    ) -> ChangeEvent:
        with self._lock:
            sequence = next(self._sequence)
            change = ChangeEvent(
                sequence=sequence,
                table=table,
                kind=kind,
                record_id=record_id,
                record=record,
                timestamp=datetime.utcnow(),
            )
            self._events.append(change)
            self._last_sequence = sequence
            listeners = list(self._subscribers.get(table, []))

        for subscription in listeners:
            if not subscription.active:
                continue
            try:
                subscription.callback(change)
            except Exception:
                LOG.exception(
                    "Change subscriber failed for %s %s #%s", table, kind, record_id
                )
        return change

    def events_since(
        self, sequence: int, limit: int = 200, table: str | None = None
    ) -> list[ChangeEvent]:
        if limit <= 0:
            return []
        with self._lock:
            newer = [
                change
                for change in self._events
                if change.sequence > sequence and (table is None or change.table == table)
            ]
        return newer[:limit]

    def poll(self, since: int, limit: int = 100, table: str | None = None) -> ChangePage:
        limit = max(limit, 1)
        with self._lock:
            reset = bool(self._events) and self._events[0].sequence > since + 1
            if reset:
                since = self._events[0].sequence - 1
            newer = [
                change
                for change in self._events
                if change.sequence > since and (table is None or change.table == table)
            ]
            last_sequence = self._last_sequence

        events = newer[:limit]
        if len(newer) > limit:
            next_sequence = events[-1].sequence
        else:
            next_sequence = max(last_sequence, since)
        return ChangePage(events=events, next_sequence=next_sequence, reset=reset)


def get_feed(app: Flask | None = None) -> ChangeFeed | None:
    if app is None:
        if not has_app_context():
            return None
        app = current_app
    return app.extensions.get(_EXTENSION_KEY)


def queue_change(
    session: Session,
    table: str,
    kind: str,
    record_id: int,
    record: dict[str, Any] | None = None,
) -> None:
    """Queue a change that the session's next commit will publish.

    Needed for statements that bypass the unit of work, such as bulk UPDATEs.
    """

    session.info.setdefault(_PENDING_KEY, []).append((table, kind, record_id, record))


def _queue_object(session: Session, obj: Any, kind: str) -> None:
    table = getattr(obj, "__tablename__", None)
    if table not in TRACKED_TABLES:
        return
    record = None if kind == DELETE else obj.to_payload()
    queue_change(session, table, kind, obj.id, record)


def _after_flush(session: Session, flush_context) -> None:
    for obj in session.new:
        _queue_object(session, obj, INSERT)
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            _queue_object(session, obj, UPDATE)
    for obj in session.deleted:
        _queue_object(session, obj, DELETE)


def _after_commit(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    feed = get_feed()
    if feed is None:
        return
    for table, kind, record_id, record in pending:
        feed.publish(table, kind, record_id, record)


def _after_rollback(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def _install_session_hooks() -> None:
    hooks = (
        ("after_flush", _after_flush),
        ("after_commit", _after_commit),
        ("after_rollback", _after_rollback),
    )
    for name, handler in hooks:
        if not event.contains(Session, name, handler):
            event.listen(Session, name, handler)


def init_app(app: Flask) -> ChangeFeed:
    feed = ChangeFeed(maxlen=app.config.get("CHANGE_FEED_BUFFER", 200))
    app.extensions[_EXTENSION_KEY] = feed
    _install_session_hooks()
    return feed
