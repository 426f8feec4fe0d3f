"""Catalogue browsing: filter, natural sort and pagination of inventory items.

State changes go through :func:`reduce_catalogue`, a pure function from
``(state, event)`` to the next state. :class:`CatalogueViewModel` wraps it with
the side effects of a mounted screen: loading through the backend, applying
change events to a :class:`CatalogueCache` and debouncing typed queries.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from indentapp.backend import Backend, BackendError
from indentapp.records import CatalogueItem
from indentapp.services.change_feed import DELETE, ChangeEvent, Subscription
from indentapp.utils.debounce import Debouncer
from indentapp.utils.natural_sort import sort_items, sort_sections
from indentapp.viewmodels.notice import NoticeLog
from indentapp.viewmodels.scope import ViewScope


LOG = logging.getLogger(__name__)

ALL_SECTIONS = "ALL"
GRID = "grid"
LIST = "list"
VIEW_MODES = (GRID, LIST)

LOAD_FAILED_MESSAGE = "Failed to load inventory items"

ITEMS_TABLE = "inventory_items"


@dataclass(frozen=True)
class CatalogueState:
    items: tuple[CatalogueItem, ...] = ()
    query: str = ""
    section: str = ALL_SECTIONS
    page: int = 1
    page_size: int = 12
    view_mode: str = GRID
    loading: bool = True
    error: str | None = None


@dataclass(frozen=True)
class ItemsLoaded:
    items: tuple[CatalogueItem, ...]


@dataclass(frozen=True)
class LoadFailed:
    message: str


@dataclass(frozen=True)
class QueryChanged:
    query: str


@dataclass(frozen=True)
class SectionChanged:
    section: str


@dataclass(frozen=True)
class PageChanged:
    page: int


@dataclass(frozen=True)
class PageSizeChanged:
    page_size: int


@dataclass(frozen=True)
class ViewModeChanged:
    view_mode: str


def reduce_catalogue(state: CatalogueState, event) -> CatalogueState:
    if isinstance(event, ItemsLoaded):
        return replace(state, items=tuple(event.items), loading=False, error=None)
    if isinstance(event, LoadFailed):
        # Keep the last good items on screen.
        return replace(state, loading=False, error=event.message)
    if isinstance(event, QueryChanged):
        return replace(state, query=event.query or "", page=1)
    if isinstance(event, SectionChanged):
        return replace(state, section=event.section or ALL_SECTIONS, page=1)
    if isinstance(event, PageChanged):
        return replace(state, page=max(int(event.page), 1))
    if isinstance(event, PageSizeChanged):
        return replace(state, page_size=max(int(event.page_size), 1), page=1)
    if isinstance(event, ViewModeChanged):
        if event.view_mode not in VIEW_MODES:
            return state
        return replace(state, view_mode=event.view_mode)
    raise TypeError(f"Unknown catalogue event: {event!r}")


def replay(state: CatalogueState, events: Iterable) -> CatalogueState:
    for event in events:
        state = reduce_catalogue(state, event)
    return state


############################
# SELECTORS
############################
def matches_query(item: CatalogueItem, query: str) -> bool:
    needle = (query or "").strip().lower()
    if not needle:
        return True
    fields = (item.name, item.type, item.location_code, item.remarks)
    return any(needle in value.lower() for value in fields if value)


def matches_section(item: CatalogueItem, section: str) -> bool:
    if not section or section == ALL_SECTIONS:
        return True
    return item.section == section


def filter_items(
    items: Iterable[CatalogueItem], query: str = "", section: str = ALL_SECTIONS
) -> list[CatalogueItem]:
    return [
        item for item in items if matches_section(item, section) and matches_query(item, query)
    ]


def paginate(items: Sequence, page: int, page_size: int) -> list:
    if page < 1 or page_size < 1:
        return []
    start = (page - 1) * page_size
    return list(items[start : start + page_size])


def page_count(total: int, page_size: int) -> int:
    if page_size < 1:
        return 0
    return math.ceil(total / page_size)


def visible_items(state: CatalogueState) -> list[CatalogueItem]:
    return sort_items(filter_items(state.items, state.query, state.section))


def current_page(state: CatalogueState) -> list[CatalogueItem]:
    return paginate(visible_items(state), state.page, state.page_size)


def total_pages(state: CatalogueState) -> int:
    return page_count(len(visible_items(state)), state.page_size)


def section_options(state: CatalogueState) -> list[str]:
    return sort_sections(item.section for item in state.items)


############################
# CACHE
############################
class CatalogueCache:
    """Items keyed by id, patched in place from change events."""

    def __init__(self) -> None:
        self._items: dict[int, CatalogueItem] = {}
        self._lock = threading.Lock()
        self.loaded_at: float | None = None

    def replace(self, items: Iterable[CatalogueItem]) -> None:
        with self._lock:
            self._items = {item.id: item for item in items}
            self.loaded_at = time.monotonic()

    def apply(self, change: ChangeEvent) -> bool:
        """Patch one change; ``False`` means the event cannot be applied."""

        with self._lock:
            if change.kind == DELETE:
                self._items.pop(change.record_id, None)
                return True
            if not change.record:
                return False
            try:
                item = CatalogueItem.from_mapping(change.record)
            except (KeyError, TypeError, ValueError):
                return False
            self._items[item.id] = item
            return True

    def snapshot(self) -> tuple[CatalogueItem, ...]:
        with self._lock:
            items = list(self._items.values())
        items.sort(key=lambda item: (item.name.lower(), item.id))
        return tuple(items)

    def invalidate(self) -> None:
        with self._lock:
            self.loaded_at = None

    def is_stale(self, max_age: float | None) -> bool:
        if self.loaded_at is None:
            return True
        if max_age is None:
            return False
        return time.monotonic() - self.loaded_at > max_age

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


############################
# VIEW MODEL
############################
class CatalogueViewModel:
    def __init__(
        self,
        backend: Backend,
        *,
        page_size: int = 12,
        debounce_seconds: float = 0.3,
        cache: CatalogueCache | None = None,
        reload_on_miss: bool = True,
    ) -> None:
        self.backend = backend
        self.reload_on_miss = reload_on_miss
        self.cache = cache or CatalogueCache()
        self.notices = NoticeLog()
        self._state = CatalogueState(page_size=page_size)
        self._state_lock = threading.RLock()
        self._scope = ViewScope()
        self._debouncer = Debouncer(debounce_seconds)
        self._subscription: Subscription | None = None

    @property
    def state(self) -> CatalogueState:
        with self._state_lock:
            return self._state

    @property
    def mounted(self) -> bool:
        return self._subscription is not None and not self._scope.closed

    def dispatch(self, event) -> CatalogueState:
        with self._state_lock:
            self._state = reduce_catalogue(self._state, event)
            return self._state

    def mount(self) -> bool:
        if self._scope.closed:
            # Results still in flight for the previous mount stay tied to the
            # closed scope and are dropped.
            self._scope = ViewScope()
            self._debouncer = Debouncer(self._debouncer.delay)
        if self.backend.feed is not None and self._subscription is None:
            self._subscription = self.backend.subscribe(ITEMS_TABLE, self.handle_change)
        return self.reload()

    def reload(self) -> bool:
        try:
            return self._scope.run(self.backend.list_items, self._apply_loaded)
        except BackendError:
            LOG.exception("Error fetching inventory items")
            if not self._scope.closed:
                self.dispatch(LoadFailed(LOAD_FAILED_MESSAGE))
                self.notices.danger(LOAD_FAILED_MESSAGE)
            return False

    def _apply_loaded(self, items: list[CatalogueItem]) -> None:
        self.cache.replace(items)
        self.dispatch(ItemsLoaded(self.cache.snapshot()))

    def handle_change(self, change: ChangeEvent) -> None:
        if self._scope.closed:
            return
        if self.cache.apply(change):
            self.dispatch(ItemsLoaded(self.cache.snapshot()))
        elif self.reload_on_miss:
            self.reload()
        else:
            self.cache.invalidate()

    def type_query(self, text: str) -> None:
        self._debouncer.call(self.dispatch, QueryChanged(text))

    def set_query(self, text: str) -> CatalogueState:
        self._debouncer.cancel()
        return self.dispatch(QueryChanged(text))

    def select_section(self, section: str) -> CatalogueState:
        return self.dispatch(SectionChanged(section))

    def go_to_page(self, page: int) -> CatalogueState:
        return self.dispatch(PageChanged(page))

    def set_view_mode(self, view_mode: str) -> CatalogueState:
        return self.dispatch(ViewModeChanged(view_mode))

    def unmount(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._debouncer.close()
        self._scope.close()

    @property
    def page_items(self) -> list[CatalogueItem]:
        return current_page(self.state)

    @property
    def page_count(self) -> int:
        return total_pages(self.state)

    @property
    def sections(self) -> list[str]:
        return section_options(self.state)
