"""
Filter & Search — non-mutating narrowing of an agent collection.

``filter_items`` applies a conjunction of per-dimension allow-lists,
``search_items`` a case-insensitive substring match, and ``apply_view``
composes the two the way the canvas endpoint does before grouping.

``SearchDebouncer`` is the trailing-edge debounce used for interactive search:
only the most recent query submitted within the delay window reaches the
callback.
"""

from __future__ import annotations

import logging
import threading

from agentcanvas.services.display import raw_value, resolve_value

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("name", "objective", "description")


def _matches(value, allowed: list) -> bool:
    # list-valued dimensions (tools) match when any element is allowed
    if isinstance(value, list):
        return any(v in allowed for v in value)
    return value in allowed


def filter_items(items, filter_map: dict | None) -> list:
    """Keep items whose value is allowed for every filtered dimension.

    Dimensions with an empty or missing allow-list are ignored. An item with
    no value for a filtered dimension is excluded.
    """
    active = {dim: list(vals) for dim, vals in (filter_map or {}).items() if vals}
    if not active:
        return list(items or [])

    kept = []
    for item in items or []:
        for dim, allowed in active.items():
            value = resolve_value(item, dim)
            if not _has_value(item, dim) or not _matches(value, allowed):
                break
        else:
            kept.append(item)
    return kept


def _has_value(item: dict, dimension: str) -> bool:
    # resolve_value substitutes a default for missing values; filters must not
    # treat that default as a real value
    raw = raw_value(item, dimension)
    if raw is None:
        return False
    if isinstance(raw, (str, list)) and not raw:
        return False
    return True


def _haystack(item: dict) -> str:
    parts = [str(item.get(f) or "") for f in SEARCH_FIELDS]
    parts.append(" ".join(str(t) for t in item.get("tools") or []))
    return " ".join(parts).lower()


def search_items(items, query) -> list:
    """Case-insensitive substring search over name, objective, description and tools."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(items or [])
    return [item for item in items or [] if needle in _haystack(item)]


def apply_view(items, filter_map: dict | None = None, query: str | None = None) -> list:
    return search_items(filter_items(items, filter_map), query)


class SearchDebouncer:
    """Trailing-edge debounce for search input.

    Each ``submit`` cancels the pending timer and starts a new one, so the
    callback only ever sees the last query of a burst.

    Usage:
        debouncer = SearchDebouncer(lambda q: recompute(q), delay=0.25)
        debouncer.submit("sal")
        debouncer.submit("sales")   # "sal" is dropped
    """

    def __init__(self, callback, delay: float = 0.25):
        self._callback = callback
        self._delay = delay
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._pending: str | None = None
        self._generation = 0

    @property
    def pending(self) -> str | None:
        return self._pending

    def submit(self, query: str) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._pending = query
            self._timer = threading.Timer(self._delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def _take(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._generation += 1
            query, self._pending = self._pending, None
            return query

    def _fire(self, generation: int) -> None:
        with self._lock:
            # a timer that lost the race with a newer submit must not fire
            if generation != self._generation:
                return
            self._timer = None
            self._generation += 1
            query, self._pending = self._pending, None
        if query is not None:
            self._callback(query)

    def flush(self) -> bool:
        """Run the pending query now. Returns False when nothing was pending."""
        query = self._take()
        if query is None:
            return False
        self._callback(query)
        return True

    def cancel(self) -> None:
        query = self._take()
        if query is not None:
            logger.debug("Dropped pending search query %r", query)
