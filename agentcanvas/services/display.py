"""
Tag/Metrics Display Adapter — dimension registry and presentation lookups.

A *dimension* is a categorical attribute an agent can be grouped or filtered
by. Each one is described by a ``DimensionSpec``: how to read the value off a
record, what to use when it is missing, and the ordered vocabulary of known
values with their label/color/icon. Grouping and filtering consult the
registry instead of branching on dimension names, so adding a dimension is a
matter of adding an entry to ``DIMENSIONS``.

Unknown values are never an error: ``display_for`` falls back to the raw value
as label, neutral gray and the dimension's generic icon.

Usage:
    from agentcanvas.services.display import display_for, tool_display
    display_for("status", "active")   # DisplayInfo("Active", "#10B981", "check-circle")
    tool_display("Web Search")        # DisplayInfo("Web Search", "#10B981", "globe")
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

NEUTRAL_COLOR = "#6B7280"
GENERIC_TAG_ICON = "tag"
GENERIC_TOOL_ICON = "box"
DEFAULT_DIMENSION = "phase"
UNCATEGORIZED = "Uncategorized"
UNASSIGNED = "unassigned"

# Phase groups cycle through this palette by first-seen order.
SECTION_COLOR_PALETTE = (
    "#F59E0B",
    "#8B5CF6",
    "#10B981",
    "#EC4899",
    "#3B82F6",
    "#06B6D4",
    "#EF4444",
    "#6366F1",
)

DEFAULT_METRICS = {
    "usageThisWeek": "0",
    "timeSaved": "0",
    "roiContribution": "Medium",
}

_WHITESPACE = re.compile(r"\s+")


# ═════════════════════════════════════════════════════════════════════════════
# Value objects
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DisplayInfo:
    label: str
    color: str
    icon: str

    def to_dict(self) -> dict:
        return {"label": self.label, "color": self.color, "icon": self.icon}


@dataclass(frozen=True)
class TagValue:
    """One entry of a dimension's vocabulary."""
    id: str
    label: str
    color: str
    icon: str

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "color": self.color, "icon": self.icon}


def _tag_resolver(dimension: str) -> Callable[[dict], object]:
    def resolve(item: dict):
        tags = item.get("tags") or {}
        return tags.get(dimension) if isinstance(tags, dict) else None
    return resolve


def _phase_resolver(item: dict):
    return item.get("phase")


@dataclass(frozen=True)
class DimensionSpec:
    """Registry entry describing one groupable/filterable dimension.

    ``vocabulary`` order is the group order for non-default dimensions.
    ``palette`` marks the default dimension, whose groups are colored by
    creation order rather than by value. ``normalize_keys`` applies the
    tool-style lookup (lowercase, whitespace to hyphen).
    """
    id: str
    label: str
    icon: str
    resolver: Callable[[dict], object]
    default_value: str = UNASSIGNED
    vocabulary: tuple[TagValue, ...] = ()
    palette: bool = False
    normalize_keys: bool = False
    groupable: bool = True
    fallback_icon: str | None = None
    _index: dict = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        self._index.update({v.id: (pos, v) for pos, v in enumerate(self.vocabulary)})

    def key(self, raw) -> str:
        text = "" if raw is None else str(raw)
        if self.normalize_keys:
            return _WHITESPACE.sub("-", text.strip().lower())
        return text

    def lookup(self, raw) -> TagValue | None:
        entry = self._index.get(self.key(raw))
        return entry[1] if entry else None

    def position(self, raw) -> int | None:
        entry = self._index.get(self.key(raw))
        return entry[0] if entry else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "icon": self.icon,
            "defaultValue": self.default_value,
            "groupable": self.groupable,
            "values": [v.to_dict() for v in self.vocabulary],
        }


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════

def _vocab(*rows) -> tuple[TagValue, ...]:
    return tuple(TagValue(*row) for row in rows)


DIMENSIONS: dict[str, DimensionSpec] = {
    spec.id: spec
    for spec in (
        DimensionSpec(
            id="phase",
            label="Phase",
            icon="layers",
            resolver=_phase_resolver,
            default_value=UNCATEGORIZED,
            palette=True,
        ),
        DimensionSpec(
            id="department",
            label="Department",
            icon="building-2",
            resolver=_tag_resolver("department"),
            vocabulary=_vocab(
                ("sales", "Sales", "#3B82F6", "trending-up"),
                ("engineering", "Engineering", "#8B5CF6", "code-2"),
                ("marketing", "Marketing", "#EC4899", "megaphone"),
                ("operations", "Operations", "#F59E0B", "settings"),
                ("support", "Support", "#10B981", "headphones"),
                ("finance", "Finance", "#06B6D4", "wallet"),
                ("hr", "HR", "#F472B6", "users"),
                ("legal", "Legal", "#6366F1", "scale"),
            ),
        ),
        DimensionSpec(
            id="status",
            label="Status",
            icon="activity",
            resolver=_tag_resolver("status"),
            vocabulary=_vocab(
                ("active", "Active", "#10B981", "check-circle"),
                ("draft", "Draft", "#6B7280", "edit-3"),
                ("review", "In Review", "#F59E0B", "eye"),
                ("deprecated", "Deprecated", "#EF4444", "archive"),
            ),
        ),
        DimensionSpec(
            id="implementationStatus",
            label="Implementation",
            icon="git-branch",
            resolver=_tag_resolver("implementationStatus"),
            vocabulary=_vocab(
                ("ideation", "Ideation", "#A78BFA", "lightbulb"),
                ("planning", "Planning", "#6366F1", "clipboard-list"),
                ("development", "Development", "#F59E0B", "code"),
                ("testing", "Testing", "#06B6D4", "flask-conical"),
                ("deployed", "Deployed", "#10B981", "rocket"),
                ("monitoring", "Monitoring", "#3B82F6", "activity"),
            ),
        ),
        DimensionSpec(
            id="priority",
            label="Priority",
            icon="flag",
            resolver=_tag_resolver("priority"),
            vocabulary=_vocab(
                ("p0", "P0 Critical", "#DC2626", "alert-triangle"),
                ("p1", "P1 High", "#F59E0B", "arrow-up"),
                ("p2", "P2 Medium", "#3B82F6", "minus"),
                ("p3", "P3 Low", "#6B7280", "arrow-down"),
            ),
        ),
        DimensionSpec(
            id="tool",
            label="Tool",
            icon="wrench",
            resolver=lambda item: item.get("tools"),
            normalize_keys=True,
            groupable=False,
            fallback_icon=GENERIC_TOOL_ICON,
            vocabulary=_vocab(
                ("forms", "Forms", "#06B6D4", "file-input"),
                ("code", "Code", "#8B5CF6", "code-2"),
                ("rag", "RAG", "#F59E0B", "file-search"),
                ("web-search", "Web Search", "#10B981", "globe"),
                ("deep-research", "Deep Research", "#EC4899", "search"),
                ("context", "Context", "#EF4444", "database"),
                ("email", "Email", "#3B82F6", "mail"),
                ("calendar", "Calendar", "#6366F1", "calendar"),
                ("slack", "Slack", "#E11D48", "message-square"),
                ("api", "API", "#14B8A6", "plug"),
            ),
        ),
    )
}


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════

def get_dimension(dimension: str | None) -> DimensionSpec | None:
    """Return the registry entry for ``dimension`` (None for unknown ids)."""
    return DIMENSIONS.get(dimension or DEFAULT_DIMENSION)


def groupable_dimensions() -> list[str]:
    return [d.id for d in DIMENSIONS.values() if d.groupable]


def display_for(dimension: str, raw_value) -> DisplayInfo:
    """Label/color/icon for a value. Never raises."""
    spec = DIMENSIONS.get(dimension)
    label = "" if raw_value is None else str(raw_value)
    if spec is None:
        return DisplayInfo(label, NEUTRAL_COLOR, GENERIC_TAG_ICON)
    hit = spec.lookup(raw_value)
    if hit is not None:
        return DisplayInfo(hit.label, hit.color, hit.icon)
    return DisplayInfo(label, NEUTRAL_COLOR, spec.fallback_icon or spec.icon or GENERIC_TAG_ICON)


def tool_display(name) -> DisplayInfo:
    return display_for("tool", name)


def raw_value(item: dict, dimension: str):
    """The item's stored value for a dimension, None when absent.

    Unknown dimensions are read straight from ``item["tags"]``.
    """
    spec = DIMENSIONS.get(dimension)
    return spec.resolver(item) if spec else _tag_resolver(dimension)(item)


def resolve_value(item: dict, dimension: str):
    """Read the item's value for a dimension, defaulting when missing."""
    spec = DIMENSIONS.get(dimension)
    default = spec.default_value if spec else UNASSIGNED
    value = raw_value(item, dimension)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return value


def unique_values(items, dimension: str) -> list:
    """Distinct values present in ``items`` for a dimension, in first-seen order.

    List-valued dimensions (tools) contribute each element.
    """
    seen: dict = {}
    for item in items or []:
        if item.get("deletedAt"):
            continue
        raw = raw_value(item, dimension)
        values = raw if isinstance(raw, list) else [raw]
        for value in values:
            if value is None or value == "":
                continue
            seen.setdefault(value, None)
    return list(seen)


def registry_snapshot() -> dict:
    """Serializable view of the registry for the ``/tags`` endpoint."""
    return {
        "defaultDimension": DEFAULT_DIMENSION,
        "neutralColor": NEUTRAL_COLOR,
        "sectionPalette": list(SECTION_COLOR_PALETTE),
        "dimensions": [d.to_dict() for d in DIMENSIONS.values()],
    }


def is_record_metrics(metrics) -> bool:
    """True for the stored ``{adoption, satisfaction}`` shape."""
    if not isinstance(metrics, dict):
        return False
    has_record_keys = "adoption" in metrics or "satisfaction" in metrics
    has_display_keys = "usageThisWeek" in metrics or "timeSaved" in metrics
    return has_record_keys and not has_display_keys


def _display_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def metrics_display(metrics, roi_contribution=None) -> dict:
    """UI metrics triple with defaults filled in.

    Accepts either metrics shape; a stored ``{adoption, satisfaction}`` pair is
    shown as ``usageThisWeek``/``timeSaved``. A record-level
    ``roi_contribution`` overrides the one inside ``metrics``.
    """
    merged = dict(DEFAULT_METRICS)
    if is_record_metrics(metrics):
        if metrics.get("adoption") is not None:
            merged["usageThisWeek"] = _display_number(metrics["adoption"])
        if metrics.get("satisfaction") is not None:
            merged["timeSaved"] = _display_number(metrics["satisfaction"])
        if metrics.get("roiContribution"):
            merged["roiContribution"] = metrics["roiContribution"]
    elif isinstance(metrics, dict):
        merged.update({k: v for k, v in metrics.items() if v is not None})
    if roi_contribution:
        merged["roiContribution"] = roi_contribution
    return merged
