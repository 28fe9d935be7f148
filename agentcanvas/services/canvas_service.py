"""
Canvas service — canvas CRUD, legacy import and export.

Module-level functions; every one takes the caller's ``org_id`` and never sees
canvases of other orgs. Writes go through one commit per call; the import
creates the canvas and all of its agents in a single transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from agentcanvas.core.exceptions import ConflictError, StoreError, ValidationError
from agentcanvas.models import db
from agentcanvas.models.canvas import Canvas
from agentcanvas.services.agent_store import AgentStore
from agentcanvas.services.identifiers import slugify, unique_slug
from agentcanvas.services.legacy_import import (
    CANVAS_TITLE_MAX,
    SLUG_MAX,
    export_document_text,
    prepare_import,
    validate_title,
)
from agentcanvas.services.schema import section_defaults

logger = logging.getLogger(__name__)


def _commit(operation: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Canvas %s hit a constraint: %s", operation, exc.orig)
        raise ConflictError("Canvas", "slug") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Canvas %s failed", operation)
        raise StoreError(operation, str(getattr(exc, "orig", None) or exc)) from exc


def _org_slugs(org_id: str, exclude_id=None) -> set[str]:
    # soft-deleted canvases keep their slug reserved (unique index)
    query = db.session.query(Canvas.slug).filter(Canvas.org_id == org_id)
    if exclude_id is not None:
        query = query.filter(Canvas.id != exclude_id)
    return {row[0] for row in query.all()}


def _settings_payload(data: dict) -> dict:
    out = {}
    if "sectionDefaults" in data:
        if not isinstance(data["sectionDefaults"], dict):
            raise ValidationError("sectionDefaults must be an object",
                                  details={"sectionDefaults": "invalid type"})
        out["section_defaults"] = section_defaults(data["sectionDefaults"])
    if "toolsConfig" in data:
        if not isinstance(data["toolsConfig"], dict):
            raise ValidationError("toolsConfig must be an object",
                                  details={"toolsConfig": "invalid type"})
        out["tools_config"] = dict(data["toolsConfig"])
    return out


def _requested_slug(value, org_id: str, exclude_id=None) -> str:
    slug = slugify(value)[:SLUG_MAX].strip("-")
    if not slug:
        raise ValidationError("slug must contain letters or digits", details={"slug": "invalid"})
    if slug in _org_slugs(org_id, exclude_id):
        raise ConflictError("Canvas", "slug", slug)
    return slug


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════

def list_canvases(org_id: str) -> list[dict]:
    rows = (
        Canvas.query_for_org(org_id)
        .filter(Canvas.deleted_at.is_(None))
        .order_by(Canvas.title, Canvas.id)
        .all()
    )
    return [c.to_dict() for c in rows]


def get_canvas(org_id: str, canvas_id) -> Canvas:
    return AgentStore(org_id).get_canvas(canvas_id)


def create_canvas(org_id: str, data: dict, actor: str = "system",
                  title_max_length: int = CANVAS_TITLE_MAX) -> Canvas:
    title = validate_title(data.get("title"), max_length=title_max_length)
    if data.get("slug"):
        slug = _requested_slug(data["slug"], org_id)
    else:
        slug = unique_slug(title, _org_slugs(org_id), max_length=SLUG_MAX)
    canvas = Canvas(
        org_id=org_id,
        title=title,
        slug=slug,
        section_defaults=section_defaults(None),
        tools_config={},
        created_by=actor,
        updated_by=actor,
    )
    for attr, value in _settings_payload(data).items():
        setattr(canvas, attr, value)
    db.session.add(canvas)
    _commit("create_canvas")
    logger.info("Canvas %s '%s' created (org=%s)", canvas.id, slug, org_id)
    return canvas


def update_canvas(org_id: str, canvas_id, data: dict, actor: str = "system",
                  title_max_length: int = CANVAS_TITLE_MAX) -> Canvas:
    canvas = get_canvas(org_id, canvas_id)
    if "title" in data:
        canvas.title = validate_title(data["title"], max_length=title_max_length)
    if data.get("slug") and data["slug"] != canvas.slug:
        canvas.slug = _requested_slug(data["slug"], org_id, exclude_id=canvas.id)
    for attr, value in _settings_payload(data).items():
        setattr(canvas, attr, value)
    canvas.updated_by = actor
    _commit("update_canvas")
    return canvas


def delete_canvas(org_id: str, canvas_id, actor: str = "system") -> None:
    canvas = get_canvas(org_id, canvas_id)
    canvas.soft_delete()
    canvas.updated_by = actor
    _commit("delete_canvas")
    logger.info("Canvas %s deleted (org=%s)", canvas_id, org_id)


# ═════════════════════════════════════════════════════════════════════════════
# Import / export
# ═════════════════════════════════════════════════════════════════════════════

def import_canvas(org_id: str, text, override_title=None, actor: str = "system",
                  title_max_length: int = CANVAS_TITLE_MAX) -> dict:
    """Create a canvas from legacy YAML. Nothing is written unless all of it is valid."""
    plan = prepare_import(
        text,
        override_title=override_title,
        existing_slugs=_org_slugs(org_id),
        title_max_length=title_max_length,
    )
    settings = plan.settings
    canvas = Canvas(
        org_id=org_id,
        title=plan.title,
        slug=plan.slug,
        document_text=text,
        section_defaults=settings["sectionDefaults"],
        tools_config=settings["toolsConfig"],
        created_by=actor,
        updated_by=actor,
    )
    try:
        db.session.add(canvas)
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Canvas import failed while creating canvas")
        raise StoreError("import", str(getattr(exc, "orig", None) or exc)) from exc

    store = AgentStore(org_id, actor=actor)
    try:
        store.bulk_replace(canvas.id, plan.records, commit=False)
    except (ValidationError, SQLAlchemyError) as exc:
        db.session.rollback()
        if isinstance(exc, SQLAlchemyError):
            logger.exception("Canvas import failed while writing agents")
            raise StoreError("import", str(getattr(exc, "orig", None) or exc)) from exc
        raise
    _commit("import")
    logger.info("Imported canvas %s '%s' with %d agents (org=%s)",
                canvas.id, plan.slug, len(plan.records), org_id)
    result = plan.to_dict()
    result["canvasId"] = canvas.id
    return result


def export_canvas(org_id: str, canvas_id, regenerate: bool = False) -> tuple[Canvas, str]:
    """Return the canvas and its YAML export text.

    The YAML stored at import wins unless ``regenerate`` is set.
    """
    store = AgentStore(org_id)
    canvas = store.get_canvas(canvas_id)
    items = store.list(canvas_id)
    if regenerate:
        return canvas, export_document_text(canvas.to_dict(), items, canvas.settings)
    return canvas, export_document_text(canvas, items, canvas.settings)
