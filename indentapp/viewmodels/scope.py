from __future__ import annotations

import threading
from typing import Callable, TypeVar


T = TypeVar("T")


class ViewScope:
    """Ties asynchronous results to the lifetime of one mounted view.

    Each fetch takes a token from :meth:`begin`. A result is only applied when
    its token is still the newest one and the view has not been closed, so a
    slow reload can never overwrite a newer one or touch a torn-down view.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def accepts(self, token: int) -> bool:
        with self._lock:
            return not self._closed and token == self._generation

    def run(self, fetch: Callable[[], T], apply: Callable[[T], None]) -> bool:
        token = self.begin()
        result = fetch()
        with self._lock:
            if self._closed or token != self._generation:
                return False
            apply(result)
        return True

    def close(self) -> None:
        with self._lock:
            self._closed = True
