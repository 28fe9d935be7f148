"""
Schema decoder — shared structural validation for agents, groups and documents.

Each ``decode_*`` function takes an untrusted value (parsed YAML, a form
payload, a JSON body) and returns ``(value, violations)``: a normalized copy
with defaults filled in, plus the list of ``Violation``s found in check order.
``value`` is None only when the input is not a mapping at all.

The legacy importer raises on the first violation; the edit session and the
HTTP layer report all of them as field-level details.

Usage:
    agent, violations = decode_agent(raw, path="agentGroups[0].agents[2]", position=2)
    if violations:
        raise violations_to_error(violations)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from urllib.parse import urlparse

from agentcanvas.core.exceptions import ValidationError
from agentcanvas.services.display import DEFAULT_METRICS, is_record_metrics
from agentcanvas.services.identifiers import derive_id

AGENT_NAME_MAX = 100
AGENT_OBJECTIVE_MAX = 500
AGENT_DESCRIPTION_MAX = 1000
PHASE_MAX = 50

DEFAULT_SECTION = {
    "icon": "target",
    "showInFlow": True,
    "isSupport": False,
}

_OPTIONAL_LINKS = ("demoLink", "videoLink")


@dataclass(frozen=True)
class Violation:
    """One structural problem, addressed by a dotted/indexed field path."""
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path} {self.message}"

    def to_dict(self) -> dict:
        return {"path": self.path, "message": self.message}


def violations_to_error(violations: list[Violation]) -> ValidationError:
    """Build a ValidationError whose message is the first violation."""
    return ValidationError(
        str(violations[0]),
        details={v.path: v.message for v in violations},
    )


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def type_name(value) -> str:
    if isinstance(value, list):
        return "list"
    if value is None:
        return "null"
    return type(value).__name__


def _as_number(value):
    """Return an int for integral numbers, the float otherwise, None for non-numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _as_whole(value):
    """Return an int for integral numbers (2.0 included), None otherwise."""
    parsed = _as_number(value)
    return parsed if isinstance(parsed, int) else None


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _check_string(out: dict, key: str, path: str, violations: list, max_len=None, strict=False):
    value = out.get(key)
    if value is None:
        out[key] = ""
        return
    if not isinstance(value, str):
        violations.append(Violation(_join(path, key), "must be a string"))
        return
    if strict and max_len and len(value) > max_len:
        violations.append(Violation(_join(path, key), f"must be at most {max_len} characters"))


def _check_list(out: dict, key: str, path: str, violations: list):
    value = out.get(key)
    if value is None:
        out[key] = []
        return
    if not isinstance(value, list):
        violations.append(Violation(_join(path, key), "must be a list"))
        return
    out[key] = [str(v) for v in value if v is not None and str(v).strip()]


# ═════════════════════════════════════════════════════════════════════════════
# Agents
# ═════════════════════════════════════════════════════════════════════════════

def decode_agent(
    raw,
    path: str = "agent",
    position: int | None = None,
    strict: bool = False,
    name_max: int = AGENT_NAME_MAX,
):
    """Decode one agent mapping.

    Args:
        raw: Untrusted value.
        path: Field path prefix used in violation messages.
        position: Zero-based slot in the parent list; fills a missing
            ``agentNumber`` with ``position + 1``. When None a missing number
            is left absent (the edit session assigns it on commit).
        strict: Also enforce editor limits (field lengths, link URLs,
            non-negative metrics, phase length).
    """
    violations: list[Violation] = []
    if not isinstance(raw, dict):
        violations.append(Violation(path, f"must be an object, got {type_name(raw)}"))
        return None, violations

    out = copy.deepcopy(raw)

    name = out.get("name")
    if not isinstance(name, str) or not name.strip():
        violations.append(Violation(_join(path, "name"), "is required"))
    else:
        out["name"] = name.strip()
        if strict and len(out["name"]) > name_max:
            violations.append(Violation(
                _join(path, "name"), f"must be at most {name_max} characters"))

    number = out.get("agentNumber")
    if number is None:
        if position is not None:
            out["agentNumber"] = position + 1
        else:
            out.pop("agentNumber", None)
    else:
        parsed = _as_whole(number)
        if parsed is None or parsed <= 0:
            violations.append(Violation(_join(path, "agentNumber"), "must be a positive integer"))
        else:
            out["agentNumber"] = parsed

    _check_string(out, "objective", path, violations, AGENT_OBJECTIVE_MAX, strict)
    _check_string(out, "description", path, violations, AGENT_DESCRIPTION_MAX, strict)
    _check_list(out, "tools", path, violations)
    _check_list(out, "journeySteps", path, violations)

    for key in _OPTIONAL_LINKS:
        link = out.get(key)
        if link is None or link == "":
            out.pop(key, None)
        elif not isinstance(link, str):
            violations.append(Violation(_join(path, key), "must be a string"))
        elif strict and not _is_url(link.strip()):
            violations.append(Violation(_join(path, key), "must be a valid http(s) URL"))
        else:
            out[key] = link.strip()

    metrics = out.get("metrics")
    if metrics is None:
        out["metrics"] = dict(DEFAULT_METRICS)
    elif not isinstance(metrics, dict):
        violations.append(Violation(_join(path, "metrics"), "must be an object"))
    else:
        if is_record_metrics(metrics):
            merged = dict(metrics)
        else:
            merged = dict(DEFAULT_METRICS)
            merged.update({k: v for k, v in metrics.items() if v is not None})
        out["metrics"] = merged
        if strict:
            for key, value in merged.items():
                num = _as_number(value)
                if num is not None and num < 0:
                    violations.append(Violation(
                        _join(path, f"metrics.{key}"), "must be greater than or equal to 0"))

    tags = out.get("tags")
    if tags is None:
        out["tags"] = {}
    elif not isinstance(tags, dict):
        violations.append(Violation(_join(path, "tags"), "must be an object"))

    if strict and "phase" in out:
        phase = out.get("phase")
        if not isinstance(phase, str) or not phase.strip():
            violations.append(Violation(_join(path, "phase"), "is required"))
        elif len(phase.strip()) > PHASE_MAX:
            violations.append(Violation(
                _join(path, "phase"), f"must be at most {PHASE_MAX} characters"))
        else:
            out["phase"] = phase.strip()

    return out, violations


# ═════════════════════════════════════════════════════════════════════════════
# Groups
# ═════════════════════════════════════════════════════════════════════════════

def decode_group(
    raw,
    path: str = "group",
    position: int | None = None,
    seen_ids: set | None = None,
    require_agents: bool = True,
    decode_agents: bool = True,
):
    """Decode one group mapping.

    ``seen_ids`` (when given) is the set of ids already used in the document;
    the group's id is allocated against it and added to it. Without it the
    id is only trimmed, leaving allocation to the caller.
    """
    violations: list[Violation] = []
    if not isinstance(raw, dict):
        violations.append(Violation(path, f"must be an object, got {type_name(raw)}"))
        return None, violations

    out = copy.deepcopy(raw)

    name = out.get("groupName")
    if not isinstance(name, str) or not name.strip():
        violations.append(Violation(_join(path, "groupName"), "is required"))
    else:
        out["groupName"] = name.strip()

    number = out.get("groupNumber")
    if number is None:
        if position is not None:
            out["groupNumber"] = position
        else:
            out.pop("groupNumber", None)
    else:
        parsed = _as_whole(number)
        if parsed is None or parsed < 0:
            violations.append(Violation(_join(path, "groupNumber"), "must be a non-negative integer"))
        else:
            out["groupNumber"] = parsed

    gid = out.get("groupId")
    if gid is not None and not isinstance(gid, str):
        gid = str(gid)
    if seen_ids is not None:
        out["groupId"] = derive_id(
            out.get("groupName"),
            seen_ids,
            current_id=gid,
            sibling_count=position if position is not None else len(seen_ids),
        )
        seen_ids.add(out["groupId"])
    elif isinstance(gid, str) and gid.strip():
        out["groupId"] = gid.strip()
    else:
        out.pop("groupId", None)

    phase_tag = out.get("phaseTag")
    if phase_tag is not None and not isinstance(phase_tag, str):
        violations.append(Violation(_join(path, "phaseTag"), "must be a string"))

    agents = out.get("agents")
    if agents is None and not require_agents:
        out["agents"] = []
    elif not isinstance(agents, list):
        violations.append(Violation(_join(path, "agents"), "must be a list"))
    elif decode_agents:
        decoded = []
        for idx, agent in enumerate(agents):
            value, agent_violations = decode_agent(
                agent, path=f"{_join(path, 'agents')}[{idx}]", position=idx)
            violations.extend(agent_violations)
            decoded.append(value)
        out["agents"] = decoded

    return out, violations


# ═════════════════════════════════════════════════════════════════════════════
# Documents
# ═════════════════════════════════════════════════════════════════════════════

def section_defaults(raw) -> dict:
    """Fill the section defaults block. Accepts the older ``iconType`` key."""
    result = dict(DEFAULT_SECTION)
    if isinstance(raw, dict):
        if "icon" not in raw and "iconType" in raw:
            result["icon"] = raw["iconType"]
        result.update({k: v for k, v in raw.items() if v is not None and k != "iconType"})
    return result


def decode_document_shape(raw):
    """Check the document root without descending into groups."""
    violations: list[Violation] = []
    if not isinstance(raw, dict):
        violations.append(Violation("document", f"must be an object, got {type_name(raw)}"))
        return None, violations

    out = dict(raw)
    groups = out.get("agentGroups")
    if not isinstance(groups, list):
        violations.append(Violation("agentGroups", "must be a list"))

    out["sectionDefaults"] = section_defaults(out.get("sectionDefaults"))

    tools = out.get("toolsConfig")
    if tools is None:
        out["toolsConfig"] = {}
    elif not isinstance(tools, dict):
        violations.append(Violation("toolsConfig", "must be an object"))

    title = out.get("documentTitle")
    if title is not None and not isinstance(title, str):
        out["documentTitle"] = str(title)

    return out, violations
