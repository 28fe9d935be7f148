"""
Identifier Allocator — slugs, group ids and sequence numbers.

Every fallback for a missing id or number lives here so the importer, the
edit session and the canvas endpoints all apply the same policy:

  - ids already assigned are never reassigned (only trimmed);
  - new ids are slugs of the name, probed ``base``, ``base-2``, ``base-3``...
    until free within the sibling set;
  - sequence numbers survive edits that drop them.

All functions are pure.

Usage:
    from agentcanvas.services.identifiers import derive_id
    derive_id("New Section!!", set())             # -> "new-section"
    derive_id("New Section!!", {"new-section"})   # -> "new-section-2"
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value) -> str:
    """Lowercase, collapse non-alphanumeric runs to ``-``, strip edge hyphens."""
    if value is None:
        return ""
    return _NON_ALNUM.sub("-", str(value).strip().lower()).strip("-")


def _first_free(base: str, taken) -> str:
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def derive_id(
    name,
    existing_ids: Iterable[str],
    current_id=None,
    sibling_count: int | None = None,
) -> str:
    """Return a sibling-unique id for ``name``.

    Args:
        name: Human label, possibly empty or None.
        existing_ids: Ids already in use by siblings (the entity's own slot
            must already be excluded when re-deriving for an edit).
        current_id: Id the entity already carries. A non-empty value wins.
        sibling_count: Size of the sibling set for the positional fallback;
            defaults to ``len(existing_ids)``.
    """
    if isinstance(current_id, str) and current_id.strip():
        return current_id.strip()

    taken = set(existing_ids)
    base = slugify(name)
    if not base:
        n = len(taken) if sibling_count is None else sibling_count
        base = f"section-{n + 1}"
    return _first_free(base, taken)


def existing_group_ids(groups, exclude_index: int = -1) -> set[str]:
    """Collect the non-empty trimmed ``groupId`` values of a group list."""
    ids = set()
    for idx, group in enumerate(groups or []):
        if idx == exclude_index or not isinstance(group, dict):
            continue
        gid = group.get("groupId")
        if isinstance(gid, str) and gid.strip():
            ids.add(gid.strip())
    return ids


def ensure_group_id(group: dict, groups, index: int = -1) -> str:
    """Assign ``group["groupId"]`` in place and return it.

    ``index`` is the group's own slot in ``groups`` (-1 for a group that is
    not in the list yet).
    """
    group["groupId"] = derive_id(
        group.get("groupName"),
        existing_group_ids(groups, exclude_index=index),
        current_id=group.get("groupId"),
        sibling_count=len(groups or []),
    )
    return group["groupId"]


def _valid_number(value, start: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= start


def assign_sequence_number(
    current,
    *,
    is_new: bool,
    collection_size: int,
    prior=None,
    position: int | None = None,
    start: int = 1,
) -> int:
    """Pick the running number for an agent or group being saved.

    Keeps a valid ``current``. A new entity gets the slot one past the end of
    the collection; an edited one gets back the number of the original target
    (``prior``) or, failing that, its position.

    ``start`` is the numbering origin: agents count from 1 (``agentNumber``),
    groups from 0 (``groupNumber`` doubles as the phase order).
    """
    if _valid_number(current, start):
        return current
    if is_new:
        return collection_size + start
    if _valid_number(prior, start):
        return prior
    if position is not None:
        return position + start
    return collection_size + start - 1


def unique_slug(title, existing_slugs: Iterable[str], fallback: str = "canvas", max_length: int = 100) -> str:
    """Allocate a canvas slug unique within one org."""
    base = slugify(title)[:max_length].strip("-") or fallback
    return _first_free(base, set(existing_slugs))
