from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from typing import Any, Protocol

"""Per-row debounced re-validation.

Each key (entity, row index) owns at most one scheduled task. Scheduling the
same key again cancels the previous task and restarts the quiet period, so
only the state after the last edit is validated. flush() runs everything that
is still pending right away (bulk operations, CLI shutdown).

The timer factory is injectable (threading.Timer by default) so tests can
fire callbacks without sleeping.
"""

__all__ = [
    "TimerHandle",
    "RowDebouncer",
]

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _thread_timer(delay: float, fn: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    return timer


class RowDebouncer:
    """Coalescing scheduler keyed by row.

    callback(key) is invoked once per quiet period with the key that was
    scheduled.
    """

    def __init__(
        self,
        delay_seconds: float,
        callback: Callable[[Any], None],
        *,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self.delay_seconds = delay_seconds
        self._callback = callback
        self._timer_factory = timer_factory or _thread_timer
        self._handles: dict[Hashable, tuple[int, TimerHandle]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def schedule(self, key: Hashable) -> None:
        with self._lock:
            previous = self._handles.pop(key, None)
            if previous is not None:
                previous[1].cancel()
            self._generation += 1
            generation = self._generation
            handle = self._timer_factory(self.delay_seconds, lambda: self._fire(key, generation))
            self._handles[key] = (generation, handle)
        handle.start()

    def _fire(self, key: Hashable, generation: int) -> None:
        with self._lock:
            current = self._handles.get(key)
            # cancel() が間に合わなかった古いタイマーは無視
            if current is None or current[0] != generation:
                return
            del self._handles[key]
        logger.debug(f"debounce fired key={key}")
        self._callback(key)

    def cancel(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._handles.pop(key, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def cancel_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Cancel every pending key matching predicate. Returns the number cancelled."""
        with self._lock:
            keys = [k for k in self._handles if predicate(k)]
            entries = [self._handles.pop(k) for k in keys]
        for _, handle in entries:
            handle.cancel()
        return len(entries)

    def pending(self) -> list[Hashable]:
        with self._lock:
            return list(self._handles)

    def flush(self) -> list[Hashable]:
        """Cancel all timers and run their callbacks now, in scheduling order."""
        with self._lock:
            entries = sorted(self._handles.items(), key=lambda kv: kv[1][0])
            self._handles.clear()
        for _, (_, handle) in entries:
            handle.cancel()
        keys = [k for k, _ in entries]
        for key in keys:
            self._callback(key)
        return keys

    def __len__(self) -> int:
        return len(self._handles)
