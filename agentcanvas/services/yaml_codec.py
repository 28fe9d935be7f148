"""YAML codec for drafts and legacy documents (PyYAML, safe loader only)."""

from __future__ import annotations

import yaml

from agentcanvas.core.exceptions import ParseError, ShapeError
from agentcanvas.services.schema import type_name


def dump(value) -> str:
    """Serialize with insertion-ordered keys, block style, unicode kept."""
    return yaml.safe_dump(
        value,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=120,
    )


def load(text: str | None):
    """Parse YAML text, raising ParseError with the 1-based line when known."""
    if text is None:
        return None
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        problem = getattr(exc, "problem", None) or str(exc)
        where = f" (line {line})" if line else ""
        raise ParseError(f"YAML parse error{where}: {problem}", line=line) from exc


def load_mapping(text: str | None, expected: str = "document") -> dict:
    """Parse YAML that must describe exactly one mapping."""
    value = load(text)
    if not isinstance(value, dict):
        raise ShapeError(expected, type_name(value))
    return value
