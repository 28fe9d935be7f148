"""
Canvas workspace — in-memory mirror of one canvas plus the view pipeline.

The workspace holds a read-only copy of the canvas's agent records, refreshed
from the store, and derives everything the canvas editor shows from it:

    records -> filter_items -> search_items -> group_by -> [Group, ...]

Writes go to the store first. The mirror is only replaced after the store call
succeeds, so a StoreError leaves the previous collection in place.
"""

from __future__ import annotations

import copy
import logging

from agentcanvas.core.exceptions import NotFoundError, ValidationError
from agentcanvas.services.display import DEFAULT_DIMENSION, get_dimension
from agentcanvas.services.edit_session import EditorContext, EditSession
from agentcanvas.services.filtering import SearchDebouncer, apply_view
from agentcanvas.services.grouping import group_by, group_stats
from agentcanvas.services.legacy_import import normalize_document, to_flat_records

logger = logging.getLogger(__name__)

# record keys the agent editor may change
EDITABLE_FIELDS = (
    "name", "objective", "description", "tools", "journeySteps",
    "demoLink", "videoLink", "metrics", "roiContribution", "tags", "agentNumber",
)


class CanvasWorkspace:
    """Editor-side state for one canvas.

    Args:
        store: An ``AgentStore`` (or anything with the same record interface).
        canvas_id: The canvas being shown.
        search_delay: Debounce delay in seconds for ``submit_search``.
    """

    def __init__(self, store, canvas_id, search_delay: float = 0.25):
        self.store = store
        self.canvas_id = canvas_id
        self.items: list[dict] = []
        self.dimension = DEFAULT_DIMENSION
        self.filters: dict[str, list] = {}
        self.query = ""
        self.editor = EditorContext()
        self._listeners = []
        self._debouncer = SearchDebouncer(self._apply_query, delay=search_delay)

    # ── mirror ────────────────────────────────────────────────────────

    def refresh(self) -> list[dict]:
        """Reload the mirror from the store (StoreError propagates, mirror kept)."""
        items = self.store.list(self.canvas_id)
        self.items = items
        return items

    def _find(self, agent_id) -> int:
        for idx, item in enumerate(self.items):
            if item.get("id") == agent_id:
                return idx
        raise NotFoundError("Agent", agent_id)

    # ── view pipeline ─────────────────────────────────────────────────

    def set_dimension(self, dimension: str) -> None:
        if get_dimension(dimension) is None:
            raise ValidationError(f"Unknown dimension '{dimension}'",
                                  details={"dimension": "unknown"})
        self.dimension = dimension

    def set_filter(self, dimension: str, values) -> None:
        if values:
            self.filters[dimension] = list(values)
        else:
            self.filters.pop(dimension, None)

    def visible_items(self) -> list[dict]:
        return apply_view(self.items, self.filters, self.query)

    def groups(self):
        return group_by(self.visible_items(), self.dimension)

    def view(self) -> dict:
        groups = self.groups()
        return {
            "canvasId": self.canvas_id,
            "dimension": self.dimension,
            "filters": copy.deepcopy(self.filters),
            "query": self.query,
            "groups": [g.to_dict() for g in groups],
            "stats": group_stats(groups),
        }

    # ── debounced search ──────────────────────────────────────────────

    def on_view_change(self, listener) -> None:
        """Register ``listener(view_dict)``, called after each applied search."""
        self._listeners.append(listener)

    def submit_search(self, query: str) -> None:
        self._debouncer.submit(query)

    def flush_search(self) -> bool:
        return self._debouncer.flush()

    def cancel_search(self) -> None:
        self._debouncer.cancel()

    def _apply_query(self, query: str) -> None:
        self.query = query or ""
        view = self.view()
        for listener in self._listeners:
            listener(view)

    # ── writes ────────────────────────────────────────────────────────

    def create(self, record: dict) -> dict:
        agent_id = self.store.create(self.canvas_id, record)
        self.refresh()
        return self.items[self._find(agent_id)]

    def update(self, agent_id, partial: dict) -> dict:
        self._find(agent_id)
        self.store.update(agent_id, partial)
        self.refresh()
        return self.items[self._find(agent_id)]

    def delete(self, agent_id) -> None:
        self._find(agent_id)
        self.store.delete(agent_id)
        self.refresh()

    def replace_from_document(self, raw_document) -> list[dict]:
        """Normalize a legacy document and substitute the canvas's agents with it."""
        records = to_flat_records(normalize_document(raw_document), canvas_id=self.canvas_id)
        self.store.bulk_replace(self.canvas_id, records)
        return self.refresh()

    # ── editing ───────────────────────────────────────────────────────

    def _persist(self, phase):
        def on_commit(value, index, is_new):
            partial = {k: value[k] for k in EDITABLE_FIELDS if k in value}
            for key in ("demoLink", "videoLink"):
                partial.setdefault(key, None)
            metrics = value.get("metrics")
            if isinstance(metrics, dict) and metrics.get("roiContribution"):
                partial["roiContribution"] = metrics["roiContribution"]
            if is_new:
                partial["phase"] = phase
                agent_id = self.store.create(self.canvas_id, partial)
            else:
                agent_id = self.items[index]["id"]
                self.store.update(agent_id, partial)
            return self.store.get(agent_id)
        return on_commit

    def edit_agent(self, agent_id=None, phase: str | None = None) -> EditSession:
        """Open the editor on an existing agent, or on a new one in ``phase``."""
        if agent_id is not None:
            index = self._find(agent_id)
            target_phase = self.items[index].get("phase")
            return self.editor.open_agent(
                self.items, index=index, on_commit=self._persist(target_phase))
        target_phase = phase or "Backlog"
        siblings = sum(
            1 for item in self.items
            if item.get("phase") == target_phase and not item.get("deletedAt")
        )
        return self.editor.open_agent(
            self.items, sibling_count=siblings, on_commit=self._persist(target_phase))
