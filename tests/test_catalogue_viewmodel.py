import os
import sys
import time

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from indentapp.backend import BackendError
from indentapp.records import CatalogueItem
from indentapp.services.change_feed import DELETE, UPDATE, ChangeFeed
from indentapp.viewmodels.catalogue import (
    LOAD_FAILED_MESSAGE,
    CatalogueState,
    CatalogueViewModel,
    ItemsLoaded,
    PageChanged,
    QueryChanged,
    SectionChanged,
    ViewModeChanged,
    current_page,
    matches_query,
    reduce_catalogue,
    replay,
    section_options,
    total_pages,
    visible_items,
)


class FakeBackend:
    def __init__(self, items=(), feed=None):
        self.items = list(items)
        self.feed = feed
        self.list_calls = 0
        self.fail = False
        self.before_return = None

    def subscribe(self, table, callback):
        return self.feed.subscribe(table, callback)

    def list_items(self):
        self.list_calls += 1
        if self.fail:
            raise BackendError("list_items failed", operation="list_items")
        snapshot = list(self.items)
        if self.before_return is not None:
            hook, self.before_return = self.before_return, None
            hook()
        return snapshot


def _item(item_id, name, section="A1", row="1", bin_="1", **extra):
    return CatalogueItem(id=item_id, name=name, section=section, row=row, bin=bin_, **extra)


def _wait_for(predicate, timeout=1.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_query_filters_by_name_case_insensitively():
    items = (
        _item(1, "Paracetamol 500mg"),
        _item(2, "PARACETAMOL Syrup"),
        _item(3, "Ibuprofen 400mg"),
    )
    state = replay(CatalogueState(), [ItemsLoaded(items), QueryChanged("para")])

    assert {item.id for item in visible_items(state)} == {1, 2}


def test_query_matches_type_location_and_remarks():
    items = (
        _item(1, "Paracetamol", type="Tablet"),
        _item(2, "Salbutamol", type="Inhaler"),
        _item(3, "Insulin", location_code="FRIDGE-2-1"),
        _item(4, "Lactulose", remarks="Keep upright"),
    )

    def ids_for(query):
        state = replay(CatalogueState(), [ItemsLoaded(items), QueryChanged(query)])
        return {item.id for item in visible_items(state)}

    assert ids_for("inhal") == {2}
    assert ids_for("fridge") == {3}
    assert ids_for("UPRIGHT") == {4}
    assert ids_for("") == {1, 2, 3, 4}
    assert ids_for("   ") == {1, 2, 3, 4}
    assert matches_query(items[3], "upright")
    assert not matches_query(items[0], "upright")


def test_filter_changes_reset_page():
    state = CatalogueState(page=3)

    assert reduce_catalogue(state, QueryChanged("x")).page == 1
    assert reduce_catalogue(state, SectionChanged("B1")).page == 1
    assert reduce_catalogue(state, ViewModeChanged("list")).page == 3


def test_unknown_view_mode_is_ignored():
    state = CatalogueState()

    assert reduce_catalogue(state, ViewModeChanged("cards")) is state


def test_unknown_event_raises():
    with pytest.raises(TypeError):
        reduce_catalogue(CatalogueState(), object())


def test_pagination_splits_filtered_items():
    items = tuple(_item(i, f"Drug {i:02d}", bin_=str(i)) for i in range(1, 26))
    state = replay(CatalogueState(page_size=10), [ItemsLoaded(items)])

    assert total_pages(state) == 3
    assert len(current_page(state)) == 10

    last = reduce_catalogue(state, PageChanged(3))
    assert len(current_page(last)) == 5

    beyond = reduce_catalogue(state, PageChanged(4))
    assert current_page(beyond) == []


def test_section_filter_and_natural_section_order():
    items = (
        _item(1, "Amoxicillin", section="A10"),
        _item(2, "Cetirizine", section="A2"),
        _item(3, "Metformin", section="A1"),
    )
    state = replay(CatalogueState(), [ItemsLoaded(items), SectionChanged("A2")])

    assert section_options(state) == ["A1", "A2", "A10"]
    assert [item.id for item in visible_items(state)] == [2]


def test_items_are_shown_in_shelf_order():
    items = (
        _item(1, "Zinc", section="A2", row="10"),
        _item(2, "Aspirin", section="A2", row="2"),
        _item(3, "Bisoprolol", section="A10", row="1"),
    )
    state = replay(CatalogueState(), [ItemsLoaded(items)])

    assert [item.id for item in visible_items(state)] == [2, 1, 3]


def test_mount_subscribes_and_loads():
    feed = ChangeFeed()
    backend = FakeBackend([_item(1, "Paracetamol")], feed=feed)
    view = CatalogueViewModel(backend)

    assert view.mount() is True
    assert view.mounted
    assert feed.subscriber_count("inventory_items") == 1
    assert [item.name for item in view.state.items] == ["Paracetamol"]
    assert view.state.loading is False


def test_change_with_payload_patches_cache_without_reload():
    feed = ChangeFeed()
    backend = FakeBackend([_item(1, "Paracetamol"), _item(2, "Ibuprofen")], feed=feed)
    view = CatalogueViewModel(backend)
    view.mount()

    payload = {
        "id": 1,
        "name": "Paracetamol 500mg",
        "section": "B1",
        "row": "2",
        "bin": "3",
        "location_code": "B1-2-3",
    }
    feed.publish("inventory_items", UPDATE, 1, payload)

    assert backend.list_calls == 1
    names = {item.id: item.name for item in view.state.items}
    assert names[1] == "Paracetamol 500mg"

    feed.publish("inventory_items", DELETE, 2)
    assert [item.id for item in view.state.items] == [1]
    assert backend.list_calls == 1


def test_change_without_payload_triggers_reload():
    feed = ChangeFeed()
    backend = FakeBackend([_item(1, "Paracetamol")], feed=feed)
    view = CatalogueViewModel(backend)
    view.mount()

    backend.items.append(_item(2, "Ibuprofen"))
    feed.publish("inventory_items", UPDATE, 2, None)

    assert backend.list_calls == 2
    assert len(view.state.items) == 2


def test_shared_view_marks_cache_stale_instead_of_reloading():
    feed = ChangeFeed()
    backend = FakeBackend([_item(1, "Paracetamol")], feed=feed)
    view = CatalogueViewModel(backend, reload_on_miss=False)
    view.mount()

    feed.publish("inventory_items", UPDATE, 1, None)

    assert backend.list_calls == 1
    assert view.cache.is_stale(max_age=None)


def test_load_failure_keeps_last_items_and_raises_notice():
    backend = FakeBackend([_item(1, "Paracetamol")])
    view = CatalogueViewModel(backend)
    view.reload()

    backend.fail = True
    assert view.reload() is False

    assert view.state.error == LOAD_FAILED_MESSAGE
    assert [item.id for item in view.state.items] == [1]
    notices = view.notices.pop_all()
    assert [(notice.level, notice.message) for notice in notices] == [
        ("danger", LOAD_FAILED_MESSAGE)
    ]


def test_stale_reload_does_not_overwrite_newer_result():
    backend = FakeBackend([_item(1, "Old name")])
    view = CatalogueViewModel(backend)

    def newer_reload_finishes_first():
        backend.items = [_item(1, "New name")]
        view.reload()

    backend.before_return = newer_reload_finishes_first
    assert view.reload() is False

    assert [item.name for item in view.state.items] == ["New name"]


def test_unmounted_view_ignores_changes_and_results():
    feed = ChangeFeed()
    backend = FakeBackend([_item(1, "Paracetamol")], feed=feed)
    view = CatalogueViewModel(backend)
    view.mount()
    view.unmount()

    assert feed.subscriber_count("inventory_items") == 0
    assert view.reload() is False
    view.handle_change(feed.publish("inventory_items", DELETE, 1))
    assert [item.id for item in view.state.items] == [1]


def test_view_can_be_mounted_again_after_unmount():
    feed = ChangeFeed()
    backend = FakeBackend([_item(1, "Paracetamol")], feed=feed)
    view = CatalogueViewModel(backend, debounce_seconds=0.02)
    view.mount()
    view.unmount()

    backend.items.append(_item(2, "Ibuprofen"))
    assert view.mount() is True
    assert view.mounted
    assert feed.subscriber_count("inventory_items") == 1
    assert sorted(item.id for item in view.state.items) == [1, 2]

    feed.publish("inventory_items", DELETE, 1)
    assert [item.id for item in view.state.items] == [2]

    view.type_query("ibu")
    assert _wait_for(lambda: view.state.query == "ibu")
    view.unmount()
    assert feed.subscriber_count("inventory_items") == 0


def test_typed_query_is_debounced():
    view = CatalogueViewModel(FakeBackend([_item(1, "Paracetamol")]), debounce_seconds=0.02)
    view.reload()

    view.type_query("p")
    view.type_query("pa")
    view.type_query("para")
    assert view.state.query == ""

    assert _wait_for(lambda: view.state.query == "para")
    view.unmount()


def test_set_query_cancels_pending_debounce():
    view = CatalogueViewModel(FakeBackend(), debounce_seconds=0.05)
    view.type_query("ibu")
    view.set_query("para")

    time.sleep(0.1)
    assert view.state.query == "para"
    view.unmount()


def test_unmount_cancels_pending_query():
    view = CatalogueViewModel(FakeBackend(), debounce_seconds=0.05)
    view.type_query("para")
    view.unmount()

    time.sleep(0.1)
    assert view.state.query == ""
