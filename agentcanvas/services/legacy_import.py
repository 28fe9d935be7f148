"""
Legacy Document Normalizer/Importer.

Converts between the hierarchical legacy YAML document::

    documentTitle: ...
    sectionDefaults: {icon, showInFlow, isSupport}
    toolsConfig: {tool: {label, color, icon}}
    agentGroups:
      - groupName: ...
        agents: [{name, objective, tools, metrics, ...}]

and the flat agent records stored per canvas (``phase``/``phaseOrder``/
``agentOrder`` stamped on every record).

Import is validate-then-write: ``prepare_import`` either returns a complete
``ImportPlan`` or raises, so the caller never writes a partial canvas.
Export prefers the YAML stored at import time; regeneration from records is
lossy (cosmetic section fields are not kept on records) and only a fallback.

Metrics are bridged between the document's display triple
``{usageThisWeek, timeSaved, roiContribution}`` and the record's numeric pair
``{adoption, satisfaction}`` (with ``roiContribution`` hoisted to the record).
The bridge guesses the shape from the keys present; see DESIGN.md.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from agentcanvas.core.exceptions import ParseError, ShapeError, ValidationError
from agentcanvas.services import yaml_codec
from agentcanvas.services.display import is_record_metrics, metrics_display
from agentcanvas.services.identifiers import derive_id, unique_slug
from agentcanvas.services.schema import (
    decode_document_shape,
    decode_group,
    section_defaults,
    type_name,
    violations_to_error,
)

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_TITLE = "Imported Canvas"
CANVAS_TITLE_MAX = 200
SLUG_MAX = 100

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


# ═════════════════════════════════════════════════════════════════════════════
# Metrics bridge
# ═════════════════════════════════════════════════════════════════════════════

def _leading_float(value) -> float:
    """Parse the leading number of a value ("12 hrs" -> 12); 0 when none."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value or ""))
        if not match:
            return 0
        number = float(match.group(0))
    return int(number) if number.is_integer() else number


def metrics_to_record(metrics) -> tuple[dict, str | None]:
    """Document metrics -> (record metrics, hoisted roiContribution)."""
    if not isinstance(metrics, dict) or not metrics:
        return {}, None
    roi = metrics.get("roiContribution")
    if is_record_metrics(metrics):
        return {
            "adoption": _leading_float(metrics.get("adoption")),
            "satisfaction": _leading_float(metrics.get("satisfaction")),
        }, roi
    return {
        "adoption": _leading_float(metrics.get("usageThisWeek")),
        "satisfaction": _leading_float(metrics.get("timeSaved")),
    }, roi


def metrics_from_record(record: dict) -> dict:
    """Record -> document/display metrics triple."""
    return metrics_display(record.get("metrics"), record.get("roiContribution"))


# ═════════════════════════════════════════════════════════════════════════════
# Document -> records
# ═════════════════════════════════════════════════════════════════════════════

def normalize_document(raw) -> dict:
    """Validate a parsed legacy document and fill structural defaults.

    Raises ValidationError for the first violation, e.g.
    ``agentGroups[1].agents[0].name is required``.
    """
    doc, violations = decode_document_shape(raw)
    if violations:
        raise violations_to_error(violations[:1])

    seen_ids: set[str] = set()
    groups = []
    for idx, group in enumerate(doc["agentGroups"]):
        value, violations = decode_group(
            group, path=f"agentGroups[{idx}]", position=idx, seen_ids=seen_ids)
        if violations:
            raise violations_to_error(violations[:1])
        groups.append(value)
    doc["agentGroups"] = groups
    return doc


def to_flat_records(doc: dict, canvas_id=None) -> list[dict]:
    """Flatten a normalized document into agent records, in document order."""
    records = []
    for group in doc.get("agentGroups", []):
        for position, agent in enumerate(group.get("agents", [])):
            metrics, roi = metrics_to_record(agent.get("metrics"))
            record = {
                "name": agent["name"],
                "objective": agent.get("objective", ""),
                "description": agent.get("description", ""),
                "tools": list(agent.get("tools", [])),
                "journeySteps": list(agent.get("journeySteps", [])),
                "metrics": metrics,
                "roiContribution": roi,
                "tags": dict(agent.get("tags") or {}),
                "phase": group["groupName"],
                "phaseOrder": group["groupNumber"],
                "agentOrder": position,
                "agentNumber": agent.get("agentNumber", position + 1),
            }
            for key in ("demoLink", "videoLink"):
                if agent.get(key):
                    record[key] = agent[key]
            if canvas_id is not None:
                record["canvasId"] = canvas_id
            records.append(record)
    return records


# ═════════════════════════════════════════════════════════════════════════════
# Records -> document
# ═════════════════════════════════════════════════════════════════════════════

def _canvas_title(canvas) -> str:
    if canvas is None:
        return DEFAULT_IMPORT_TITLE
    if isinstance(canvas, dict):
        return canvas.get("title") or DEFAULT_IMPORT_TITLE
    return getattr(canvas, "title", None) or DEFAULT_IMPORT_TITLE


def _agent_entry(record: dict) -> dict:
    entry = {"name": record.get("name", "")}
    if record.get("agentNumber"):
        entry["agentNumber"] = record["agentNumber"]
    for key in ("objective", "description"):
        if record.get(key):
            entry[key] = record[key]
    for key in ("tools", "journeySteps"):
        if record.get(key):
            entry[key] = list(record[key])
    for key in ("demoLink", "videoLink"):
        if record.get(key):
            entry[key] = record[key]
    if record.get("metrics") or record.get("roiContribution"):
        entry["metrics"] = metrics_from_record(record)
    if record.get("tags"):
        entry["tags"] = dict(record["tags"])
    return entry


def _order_key(value):
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


def to_document(canvas, items, settings: dict | None = None) -> dict:
    """Regenerate a legacy document from flat records (soft-deleted skipped)."""
    settings = settings or {}
    phases: dict[str, dict] = {}
    for item in items or []:
        if item.get("deletedAt"):
            continue
        phase = item.get("phase") or "Uncategorized"
        bucket = phases.setdefault(phase, {"order": item.get("phaseOrder"), "agents": []})
        bucket["agents"].append(item)

    ordered = sorted(phases.items(), key=lambda entry: _order_key(entry[1]["order"]))
    seen_ids: set[str] = set()
    groups = []
    for position, (phase, bucket) in enumerate(ordered):
        group_id = derive_id(phase, seen_ids, sibling_count=position)
        seen_ids.add(group_id)
        agents = sorted(bucket["agents"], key=lambda a: _order_key(a.get("agentOrder")))
        order = bucket["order"]
        groups.append({
            "groupId": group_id,
            "groupName": phase,
            "groupNumber": order if isinstance(order, int) and not isinstance(order, bool) else position,
            "agents": [_agent_entry(a) for a in agents],
        })

    doc = {
        "documentTitle": _canvas_title(canvas),
        "sectionDefaults": section_defaults(settings.get("sectionDefaults")),
    }
    if settings.get("toolsConfig"):
        doc["toolsConfig"] = dict(settings["toolsConfig"])
    doc["agentGroups"] = groups
    return doc


def export_document_text(canvas, items, settings: dict | None = None) -> str:
    """YAML for export: the stored original when there is one, else regenerated."""
    stored = None
    if isinstance(canvas, dict):
        stored = canvas.get("documentText")
    elif canvas is not None:
        stored = getattr(canvas, "document_text", None)
    if stored:
        return stored
    return yaml_codec.dump(to_document(canvas, items, settings))


# ═════════════════════════════════════════════════════════════════════════════
# Import
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ImportPlan:
    """Everything needed to create the canvas; nothing has been written yet."""
    title: str
    slug: str
    document: dict
    records: list[dict] = field(default_factory=list)

    @property
    def settings(self) -> dict:
        return {
            "sectionDefaults": self.document.get("sectionDefaults", {}),
            "toolsConfig": self.document.get("toolsConfig", {}),
        }

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "slug": self.slug,
            "agentCount": len(self.records),
            "groupCount": len(self.document.get("agentGroups", [])),
        }


def validate_title(title, max_length: int = CANVAS_TITLE_MAX) -> str:
    """Return the trimmed title or raise ValidationError."""
    text = "" if title is None else str(title).strip()
    if not text:
        raise ValidationError("Canvas title is required", details={"title": "required"})
    if len(text) > max_length:
        raise ValidationError(
            f"Canvas title must be {max_length} characters or less",
            details={"title": f"max {max_length} characters"},
        )
    return text


def parse_legacy_yaml(text) -> dict:
    """Parse import text into a raw document mapping (empty text -> {})."""
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("YAML text is required", details={"yaml": "required"})
    value = yaml_codec.load(text)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ShapeError("document", type_name(value))
    return value


def extract_title(text) -> str | None:
    """Best-effort documentTitle for an import preview; None when unavailable."""
    try:
        value = yaml_codec.load(text) if isinstance(text, str) else None
    except ParseError:
        return None
    if isinstance(value, dict) and value.get("documentTitle"):
        return str(value["documentTitle"]).strip() or None
    return None


def prepare_import(
    text,
    override_title=None,
    existing_slugs=(),
    title_max_length: int = CANVAS_TITLE_MAX,
) -> ImportPlan:
    """Parse, normalize and flatten an import. Raises before any write."""
    raw = parse_legacy_yaml(text)
    document = normalize_document(raw)
    override = str(override_title).strip() if override_title is not None else ""
    title = validate_title(
        override or (document.get("documentTitle") or "").strip() or DEFAULT_IMPORT_TITLE,
        max_length=title_max_length,
    )
    slug = unique_slug(title, existing_slugs, max_length=SLUG_MAX)
    records = to_flat_records(document)
    logger.info(
        "Prepared legacy import '%s' (%d groups, %d agents)",
        title, len(document["agentGroups"]), len(records),
    )
    return ImportPlan(title=title, slug=slug, document=document, records=records)
