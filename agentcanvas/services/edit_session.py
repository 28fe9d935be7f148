"""
Dual-View Synchronizer — one agent or section draft, edited as form or YAML.

An ``EditSession`` owns a deep copy of the entity being edited (the *draft*)
and exposes it through two views:

  - ``form``: flat field values as a form would hold them
    (``name``, ``tools``, ``usageThisWeek``, ``groupName``, ...);
  - ``text``: the draft serialized as YAML.

Every view switch and the final commit pass through validation. A failed
transition never touches the view the user is leaving, so the previous view
stays authoritative. Errors from the ``EditorInputError`` family are caught
here and returned as a ``TransitionResult``; nothing is raised to the caller
for bad input.

Sessions are created through an ``EditorContext``, which holds at most one
open session; opening another discards the previous draft uncommitted.

Usage:
    ctx = EditorContext()
    session = ctx.open_agent(group["agents"], index=0)
    session.form["name"] = "Renamed"
    result = session.switch_to(ViewMode.TEXT)     # form -> draft -> YAML
    session.text = session.text.replace("Renamed", "Final")
    result = session.commit()                     # YAML -> draft -> collection
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum

from agentcanvas.core.exceptions import (
    EditorInputError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from agentcanvas.services import yaml_codec
from agentcanvas.services.display import DEFAULT_METRICS, is_record_metrics, metrics_display
from agentcanvas.services.identifiers import assign_sequence_number, ensure_group_id
from agentcanvas.services.schema import decode_agent, decode_group, violations_to_error

logger = logging.getLogger(__name__)


class ViewMode(str, Enum):
    FORM = "form"
    TEXT = "text"


class EntityKind(str, Enum):
    AGENT = "agent"
    GROUP = "section"


AGENT_TEXT_FIELDS = ("name", "objective", "description", "demoLink", "videoLink")
AGENT_LIST_FIELDS = ("tools", "journeySteps")
AGENT_METRIC_FIELDS = ("usageThisWeek", "timeSaved", "roiContribution")
GROUP_TEXT_FIELDS = ("groupName", "groupId", "groupClass", "phaseTag", "flowDisplayName")

AGENT_TEMPLATE = {
    "name": "",
    "objective": "",
    "description": "",
    "tools": [],
    "journeySteps": [],
    "metrics": dict(DEFAULT_METRICS),
}

GROUP_TEMPLATE = {
    "groupName": "",
    "groupId": "",
    "groupClass": "",
    "showInFlow": True,
    "isSupport": False,
    "flowDisplayName": "",
    "agents": [],
}


@dataclass
class TransitionResult:
    """Outcome of a view switch or commit.

    ``error`` is the exception class name (``ParseError``, ``ShapeError``,
    ``ValidationError``, ``StoreError``) when ``ok`` is False.
    """
    ok: bool
    error: str | None = None
    message: str = ""
    details: dict = field(default_factory=dict)
    value: dict | None = None
    index: int | None = None

    @classmethod
    def failed(cls, exc: Exception) -> "TransitionResult":
        return cls(
            ok=False,
            error=type(exc).__name__,
            message=str(exc),
            details=dict(getattr(exc, "details", None) or {}),
        )

    def to_dict(self) -> dict:
        data = {"ok": self.ok, "error": self.error, "message": self.message}
        if self.details:
            data["details"] = self.details
        if self.value is not None:
            data["value"] = self.value
            data["index"] = self.index
        return data


def _lines(value, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    raise ValidationError(
        f"{field_name} must be a list or newline-separated text",
        details={field_name: "invalid type"},
    )


def _text(value, field_name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValidationError(f"{field_name} must be text", details={field_name: "invalid type"})


class EditSession:
    """Edit state for a single agent or section.

    Args:
        kind: ``EntityKind.AGENT`` or ``EntityKind.GROUP``.
        collection: The list the committed draft is merged into (a section's
            agents, a document's agentGroups, a canvas's flat records).
        index: Slot of the edited entity in ``collection``; -1 for a new one.
        template: Starting value for a new entity.
        sibling_count: Size used for numbering a new entity when it differs
            from ``len(collection)`` (e.g. agents of one phase inside a flat
            canvas list).
        on_commit: Optional ``(value, index, is_new) -> dict | None`` hook run
            before the merge. It may return a replacement value (the stored
            record). A ``StoreError`` from it aborts the commit with the
            collection untouched.
    """

    def __init__(
        self,
        kind: EntityKind,
        collection: list,
        index: int = -1,
        template: dict | None = None,
        sibling_count: int | None = None,
        on_commit=None,
    ):
        if index >= len(collection):
            raise NotFoundError(kind.value, index)
        self.kind = kind
        self.collection = collection
        self.index = index
        self.is_new = index < 0
        self.sibling_count = sibling_count
        self.on_commit = on_commit

        if self.is_new:
            base = template if template is not None else (
                AGENT_TEMPLATE if kind is EntityKind.AGENT else GROUP_TEMPLATE)
            self._original = None
        else:
            base = collection[index]
            self._original = copy.deepcopy(collection[index])

        self.draft: dict | None = copy.deepcopy(base)
        self.mode = ViewMode.FORM
        self.form: dict = self._populate_form(self.draft)
        self.text: str = ""
        self.closed = False

    # ── views ─────────────────────────────────────────────────────────

    def _populate_form(self, draft: dict) -> dict:
        if self.kind is EntityKind.AGENT:
            metrics = metrics_display(draft.get("metrics"), draft.get("roiContribution"))
            form = {key: draft.get(key) or "" for key in AGENT_TEXT_FIELDS}
            for key in AGENT_LIST_FIELDS:
                value = draft.get(key)
                form[key] = list(value) if isinstance(value, list) else []
            for key in AGENT_METRIC_FIELDS:
                form[key] = metrics.get(key, "")
            tags = draft.get("tags")
            form["tags"] = dict(tags) if isinstance(tags, dict) else {}
            return form
        return {key: draft.get(key) or "" for key in GROUP_TEXT_FIELDS}

    def _size(self) -> int:
        if self.sibling_count is not None:
            return self.sibling_count
        return len(self.collection)

    def _prior_number(self):
        if self._original is None:
            return None
        key = "agentNumber" if self.kind is EntityKind.AGENT else "groupNumber"
        return self._original.get(key)

    def _number(self, current) -> int:
        return assign_sequence_number(
            current,
            is_new=self.is_new,
            collection_size=self._size(),
            prior=self._prior_number(),
            position=None if self.is_new else self.index,
            start=1 if self.kind is EntityKind.AGENT else 0,
        )

    def _draft_from_form(self) -> dict:
        if self.form is None or not isinstance(self.form, dict):
            raise ValidationError("Unable to read form data", details={"form": "missing"})
        base = copy.deepcopy(self.draft or {})
        form = self.form

        if self.kind is EntityKind.AGENT:
            for key in AGENT_TEXT_FIELDS:
                if key in form:
                    base[key] = _text(form[key], key)
            for key in ("demoLink", "videoLink"):
                if not base.get(key):
                    base.pop(key, None)
            for key in AGENT_LIST_FIELDS:
                if key in form:
                    base[key] = _lines(form[key], key)
            current = base.get("metrics")
            metrics = {} if is_record_metrics(current) or not isinstance(current, dict) else dict(current)
            metrics.update(metrics_display(current, base.get("roiContribution")))
            for key in AGENT_METRIC_FIELDS:
                if key in form:
                    metrics[key] = _text(form[key], key)
            base["metrics"] = metrics
            if base.get("roiContribution"):
                # a stored record keeps the hoisted field in step with the form
                base["roiContribution"] = metrics["roiContribution"]
            if "tags" in form:
                if not isinstance(form["tags"], dict):
                    raise ValidationError("tags must be a mapping", details={"tags": "invalid type"})
                base["tags"] = {k: v for k, v in form["tags"].items() if v not in (None, "")}
            base["agentNumber"] = self._number(base.get("agentNumber"))
        else:
            for key in GROUP_TEXT_FIELDS:
                if key in form:
                    base[key] = _text(form[key], key)
            base["groupNumber"] = self._number(base.get("groupNumber"))
        return base

    # ── transitions ───────────────────────────────────────────────────

    def _check_open(self):
        if self.closed:
            raise RuntimeError(f"{self.kind.value} edit session is closed")

    def sync_from_form(self) -> None:
        """Rebuild the draft from the form fields. Raises on unreadable input."""
        self._check_open()
        self.draft = self._draft_from_form()

    def apply_from_text(self) -> None:
        """Replace the draft with the parsed text view and repopulate the form.

        Raises ParseError/ShapeError leaving draft and form untouched.
        """
        self._check_open()
        parsed = yaml_codec.load_mapping(self.text, expected=self.kind.value)
        form = self._populate_form(parsed)
        self.draft = parsed
        self.form = form

    def switch_to(self, mode: ViewMode) -> TransitionResult:
        self._check_open()
        mode = ViewMode(mode)
        if mode is self.mode:
            return TransitionResult(ok=True)
        try:
            if mode is ViewMode.TEXT:
                self.sync_from_form()
                self.text = yaml_codec.dump(self.draft)
            else:
                self.apply_from_text()
        except EditorInputError as exc:
            logger.info("Blocked %s view switch to %s: %s", self.kind.value, mode.value, exc)
            return TransitionResult.failed(exc)
        self.mode = mode
        return TransitionResult(ok=True)

    def _sync_active_view(self) -> None:
        if self.mode is ViewMode.TEXT:
            self.apply_from_text()
        else:
            self.sync_from_form()

    def _validated(self) -> dict:
        if self.kind is EntityKind.AGENT:
            value, violations = decode_agent(self.draft, path="agent", strict=True)
        else:
            value, violations = decode_group(
                self.draft, path="section", require_agents=False, decode_agents=False)
        if violations:
            raise violations_to_error(violations)
        return value

    def commit(self) -> TransitionResult:
        """Validate the visible view and merge the draft into the collection."""
        self._check_open()
        try:
            self._sync_active_view()
            value = self._validated()
        except EditorInputError as exc:
            logger.info("Blocked %s commit: %s", self.kind.value, exc)
            return TransitionResult.failed(exc)

        if self.kind is EntityKind.AGENT:
            value["agentNumber"] = self._number(value.get("agentNumber"))
        else:
            value["groupNumber"] = self._number(value.get("groupNumber"))
            if self.is_new:
                value["agents"] = value.get("agents") if isinstance(value.get("agents"), list) else []
            else:
                value["agents"] = self.collection[self.index].get("agents", [])
            ensure_group_id(value, self.collection, self.index)

        if self.on_commit is not None:
            try:
                stored = self.on_commit(value, self.index, self.is_new)
            except (StoreError, EditorInputError) as exc:
                logger.warning("Store rejected %s commit: %s", self.kind.value, exc)
                return TransitionResult.failed(exc)
            if stored is not None:
                value = stored

        if self.is_new:
            self.collection.append(value)
            index = len(self.collection) - 1
        else:
            self.collection[self.index] = value
            index = self.index
        self._clear()
        return TransitionResult(ok=True, value=value, index=index)

    def cancel(self) -> None:
        self._clear()

    def _clear(self) -> None:
        self.draft = None
        self.form = {}
        self.text = ""
        self.closed = True


class EditorContext:
    """Holds the single open edit session of one editor."""

    def __init__(self):
        self.session: EditSession | None = None

    @property
    def active(self) -> bool:
        return self.session is not None and not self.session.closed

    def _open(self, session: EditSession) -> EditSession:
        if self.active:
            logger.debug(
                "Discarding open %s draft without commit", self.session.kind.value)
            self.session.cancel()
        self.session = session
        return session

    def open_agent(self, agents: list, index: int = -1, template: dict | None = None, **kwargs) -> EditSession:
        return self._open(EditSession(EntityKind.AGENT, agents, index, template, **kwargs))

    def open_group(self, groups: list, index: int = -1, template: dict | None = None, **kwargs) -> EditSession:
        return self._open(EditSession(EntityKind.GROUP, groups, index, template, **kwargs))

    def close(self) -> None:
        if self.session is not None:
            self.session.cancel()
        self.session = None
