from __future__ import annotations

import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from indentapp import create_app
from indentapp.backend import Backend
from indentapp.extensions import db
from indentapp.models import InventoryItem
from indentapp.services import change_feed


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


def _collect(feed, table):
    received = []
    feed.subscribe(table, received.append)
    return received


def test_commit_publishes_insert_update_delete(app):
    feed = change_feed.get_feed(app)
    received = _collect(feed, "inventory_items")

    item = InventoryItem(name="Paracetamol", section="A1", row="1", bin="1")
    db.session.add(item)
    db.session.commit()

    item.name = "Paracetamol 500mg"
    db.session.commit()

    db.session.delete(item)
    db.session.commit()

    assert [event.kind for event in received] == [
        change_feed.INSERT,
        change_feed.UPDATE,
        change_feed.DELETE,
    ]
    assert received[0].record["location_code"] == "A1-1-1"
    assert received[1].record["name"] == "Paracetamol 500mg"
    assert received[2].record is None
    assert [event.sequence for event in received] == [1, 2, 3]


def test_rollback_discards_queued_changes(app):
    feed = change_feed.get_feed(app)
    received = _collect(feed, "inventory_items")

    db.session.add(InventoryItem(name="Zinc", section="A1", row="1", bin="1"))
    db.session.flush()
    db.session.rollback()
    db.session.commit()

    assert received == []


def test_subscribers_only_see_their_table(app):
    feed = change_feed.get_feed(app)
    items = _collect(feed, "inventory_items")
    requests = _collect(feed, "indent_requests")

    backend = Backend()
    created = backend.create_item({"name": "Insulin", "section": "F", "row": "1", "bin": "2"})
    backend.create_request(created.id, "5")

    assert [event.kind for event in items] == [change_feed.INSERT]
    assert [event.kind for event in requests] == [change_feed.INSERT]


def test_bulk_approve_publishes_each_request(app):
    feed = change_feed.get_feed(app)
    backend = Backend()
    item = backend.create_item({"name": "Insulin", "section": "F", "row": "1", "bin": "2"})
    first = backend.create_request(item.id, "1")
    second = backend.create_request(item.id, "2")

    received = _collect(feed, "indent_requests")
    backend.approve_pending()

    assert sorted(event.record_id for event in received) == [first.id, second.id]
    assert {event.record["status"] for event in received} == {"Approved"}


def test_failing_subscriber_does_not_block_others(app):
    feed = change_feed.get_feed(app)

    def _broken(event):
        raise RuntimeError("boom")

    feed.subscribe("inventory_items", _broken)
    received = _collect(feed, "inventory_items")

    feed.publish("inventory_items", change_feed.DELETE, 1)

    assert len(received) == 1


def test_unsubscribe_stops_delivery():
    feed = change_feed.ChangeFeed()
    received = []
    subscription = feed.subscribe("inventory_items", received.append)

    subscription.unsubscribe()
    subscription.unsubscribe()
    feed.publish("inventory_items", change_feed.DELETE, 1)

    assert received == []
    assert feed.subscriber_count("inventory_items") == 0


def test_events_since_is_bounded_and_filterable():
    feed = change_feed.ChangeFeed(maxlen=3)
    for record_id in range(1, 6):
        table = "inventory_items" if record_id % 2 else "indent_requests"
        feed.publish(table, change_feed.UPDATE, record_id, {"id": record_id})

    assert [event.sequence for event in feed.events_since(0)] == [3, 4, 5]
    assert [event.sequence for event in feed.events_since(4)] == [5]
    assert [event.record_id for event in feed.events_since(0, table="indent_requests")] == [4]
    assert feed.events_since(0, limit=0) == []
    assert feed.last_sequence == 5


def test_change_event_json_shape():
    feed = change_feed.ChangeFeed()
    event = feed.publish("inventory_items", change_feed.INSERT, 7, {"id": 7})

    payload = event.to_json()
    assert payload["event"] == "INSERT"
    assert payload["id"] == 7
    assert payload["table"] == "inventory_items"
    assert payload["record"] == {"id": 7}


def test_poll_cursor_stops_at_last_returned_event():
    feed = change_feed.ChangeFeed()
    for record_id in range(1, 6):
        feed.publish("inventory_items", change_feed.INSERT, record_id, {"id": record_id})

    first = feed.poll(0, limit=2)
    assert [event.sequence for event in first.events] == [1, 2]
    assert first.next_sequence == 2
    assert first.reset is False

    rest = feed.poll(first.next_sequence, limit=10)
    assert [event.sequence for event in rest.events] == [3, 4, 5]
    assert rest.next_sequence == 5

    assert feed.poll(5).events == []
    assert feed.poll(5).next_sequence == 5


def test_poll_flags_reset_when_events_left_the_buffer():
    feed = change_feed.ChangeFeed(maxlen=3)
    for record_id in range(1, 6):
        feed.publish("inventory_items", change_feed.UPDATE, record_id, {"id": record_id})

    page = feed.poll(1)
    assert page.reset is True
    assert [event.sequence for event in page.events] == [3, 4, 5]

    assert feed.poll(2).reset is False
    assert change_feed.ChangeFeed().poll(0).reset is False
