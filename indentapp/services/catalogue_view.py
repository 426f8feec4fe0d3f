"""Worker-wide catalogue snapshot shared by the locator and indent pages.

Each worker process mounts one :class:`CatalogueViewModel` against the change
feed. Requests never mutate it; they replay their own query string on top of
the cached items with :func:`page_state`.
"""

from __future__ import annotations

import threading

from flask import Flask, current_app

from indentapp.backend import Backend
from indentapp.viewmodels.catalogue import (
    ALL_SECTIONS,
    GRID,
    CatalogueState,
    CatalogueViewModel,
    ItemsLoaded,
    LoadFailed,
    PageChanged,
    PageSizeChanged,
    QueryChanged,
    SectionChanged,
    ViewModeChanged,
    replay,
)


EXTENSION_KEY = "indent_catalogue"

_lock = threading.Lock()


def shared_catalogue(app: Flask | None = None) -> CatalogueViewModel:
    app = app or current_app._get_current_object()
    with _lock:
        view = app.extensions.get(EXTENSION_KEY)
        if view is None:
            view = CatalogueViewModel(
                Backend(),
                page_size=app.config["CATALOGUE_PAGE_SIZE"],
                debounce_seconds=app.config["SEARCH_DEBOUNCE_MS"] / 1000,
                reload_on_miss=False,
            )
            app.extensions[EXTENSION_KEY] = view

        if not view.mounted:
            view.mount()
        elif view.cache.is_stale(app.config.get("CATALOGUE_CACHE_SECONDS")):
            view.reload()
    # Shared across users: load failures surface through ``state.error`` only.
    view.notices.pop_all()
    return view


def page_state(
    view: CatalogueViewModel,
    *,
    query: str = "",
    section: str = ALL_SECTIONS,
    page: int = 1,
    page_size: int | None = None,
    view_mode: str = GRID,
) -> CatalogueState:
    """Replay one request's filters over the shared snapshot."""

    shared = view.state
    events = [
        ItemsLoaded(view.cache.snapshot()),
        ViewModeChanged(view_mode),
        QueryChanged(query),
        SectionChanged(section),
        PageSizeChanged(page_size or shared.page_size),
        PageChanged(page),
    ]
    if shared.error:
        events.append(LoadFailed(shared.error))
    return replay(CatalogueState(), events)


def unmount_shared_catalogue(app: Flask) -> None:
    with _lock:
        view = app.extensions.pop(EXTENSION_KEY, None)
    if view is not None:
        view.unmount()
