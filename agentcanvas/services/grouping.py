"""
Grouping Engine — partition a flat agent collection into ordered groups.

Groups are value objects recomputed on every call; nothing here is cached or
persisted. Output is deterministic for identical input (including the input
order of items).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from agentcanvas.services.display import (
    DEFAULT_DIMENSION,
    SECTION_COLOR_PALETTE,
    display_for,
    get_dimension,
    resolve_value,
)
from agentcanvas.services.identifiers import slugify

logger = logging.getLogger(__name__)

# Values outside a dimension's vocabulary sort after every known value.
UNKNOWN_ORDER = 999


@dataclass
class Group:
    id: str
    label: str
    color: str
    icon: str
    order: int
    items: list = field(default_factory=list)
    item_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "color": self.color,
            "icon": self.icon,
            "order": self.order,
            "items": self.items,
            "itemCount": self.item_count,
        }


def _order_hint(item: dict):
    value = item.get("phaseOrder")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None


def _item_order(item: dict):
    value = item.get("agentOrder")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def _group_key(value) -> str:
    return value if isinstance(value, str) else str(value)


def group_by(items, dimension: str = DEFAULT_DIMENSION) -> list[Group]:
    """Group active items by ``dimension``.

    Default dimension (``phase``): groups colored by creation order from the
    section palette, ordered by the first item's ``phaseOrder`` (else the
    creation index). Other dimensions: display metadata from the registry,
    ordered by vocabulary position (unknown values last).
    """
    dimension = dimension or DEFAULT_DIMENSION
    spec = get_dimension(dimension)
    use_palette = bool(spec and spec.palette)

    groups: dict[str, Group] = {}
    for item in items or []:
        if item.get("deletedAt"):
            continue
        value = resolve_value(item, dimension)
        key = _group_key(value)
        group = groups.get(key)
        if group is None:
            index = len(groups)
            if use_palette:
                hint = _order_hint(item)
                group = Group(
                    id=slugify(key) or f"group-{index + 1}",
                    label=key,
                    color=SECTION_COLOR_PALETTE[index % len(SECTION_COLOR_PALETTE)],
                    icon=spec.icon,
                    order=index if hint is None else hint,
                )
            else:
                info = display_for(dimension, value)
                position = spec.position(value) if spec else None
                group = Group(
                    id=key,
                    label=info.label,
                    color=info.color,
                    icon=info.icon,
                    order=UNKNOWN_ORDER if position is None else position,
                )
            groups[key] = group
        group.items.append(item)

    # sorted() is stable: equal orders keep creation order
    result = sorted(groups.values(), key=lambda g: g.order)
    for group in result:
        group.items.sort(key=_item_order)
        group.item_count = len(group.items)
    _dedupe_ids(result)
    return result


def _dedupe_ids(groups: list[Group]) -> None:
    """Make group ids unique within one pass ("Ops" and "ops!" both slug to ops)."""
    seen: set[str] = set()
    for group in groups:
        candidate, suffix = group.id, 2
        while candidate in seen:
            candidate = f"{group.id}-{suffix}"
            suffix += 1
        group.id = candidate
        seen.add(candidate)


def group_stats(groups) -> dict:
    total_agents = sum(g.item_count for g in groups)
    total_groups = len(groups)
    avg = round(total_agents / total_groups, 1) if total_groups else 0
    return {
        "totalAgents": total_agents,
        "totalGroups": total_groups,
        "avgPerGroup": avg,
    }
