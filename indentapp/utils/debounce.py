from __future__ import annotations

import threading
from typing import Any, Callable


class Debouncer:
    """Run the most recent call once ``delay`` seconds after the last one.

    Every call cancels the timer of the call before it, so a burst of
    keystrokes collapses into a single invocation. ``cancel()`` drops a
    pending call; after ``close()`` new calls are ignored.
    """

    def __init__(self, delay: float) -> None:
        self.delay = max(float(delay), 0.0)
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.delay, self._fire, args=(func, args, kwargs))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self, func, args, kwargs) -> None:
        with self._lock:
            if self._closed or self._timer is not threading.current_thread():
                return
            self._timer = None
        func(*args, **kwargs)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def close(self) -> None:
        self.cancel()
        with self._lock:
            self._closed = True
