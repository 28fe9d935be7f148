"""
AgentCanvas
Canvas blueprint — canvases, agents, grouped views, legacy import/export.

Endpoints summary:
    CANVAS   /api/v1/canvases                          GET, POST
             /api/v1/canvases/<cid>                    GET, PUT, DELETE
             /api/v1/canvases/import                   POST  (YAML body or JSON {yaml, title})
             /api/v1/canvases/import/preview           POST  (title only, nothing written)
             /api/v1/canvases/<cid>/export             GET   (?regenerate=1)

    AGENT    /api/v1/canvases/<cid>/agents             GET, POST
             /api/v1/agents/<aid>                      GET, PUT, DELETE
             /api/v1/agents/<aid>/history              GET
             /api/v1/canvases/<cid>/phases/rename      POST

    VIEW     /api/v1/canvases/<cid>/groups             GET   (?dimension=&q=&<dim>=v1,v2)
             /api/v1/tags                              GET   (dimension registry)

Every route acts for ``g.org_id`` (see middleware/org_context.py).
"""

import logging
from functools import wraps

from flask import Blueprint, Response, current_app, g, jsonify, request

from agentcanvas import limiter
from agentcanvas.core.exceptions import EditorInputError, ValidationError
from agentcanvas.middleware.rate_limiter import org_rate_limit_key
from agentcanvas.services import canvas_service
from agentcanvas.services.agent_store import AgentStore
from agentcanvas.services.display import DEFAULT_DIMENSION, get_dimension, registry_snapshot
from agentcanvas.services.filtering import apply_view
from agentcanvas.services.grouping import group_by, group_stats
from agentcanvas.services.legacy_import import extract_title
from agentcanvas.utils.errors import E, api_error, error_from_exception

logger = logging.getLogger(__name__)

canvas_bp = Blueprint("canvas", __name__, url_prefix="/api/v1")

_import_limit = limiter.shared_limit(
    lambda: current_app.config.get("IMPORT_RATE_LIMIT", "10/minute"),
    scope="canvas_import",
    key_func=org_rate_limit_key,
)

_YAML_TYPES = ("yaml", "text/plain")

# query-string keys that are not dimension filters
_VIEW_PARAMS = frozenset({"dimension", "q"})


# ── Helpers ──────────────────────────────────────────────────────────────────

def _actor() -> str:
    return (request.headers.get("X-Actor") or "").strip() or "anonymous"


def _store() -> AgentStore:
    return AgentStore(
        g.org_id,
        actor=_actor(),
        name_max_length=current_app.config.get("AGENT_NAME_MAX_LENGTH", 100),
    )


def _title_max() -> int:
    return current_app.config.get("CANVAS_TITLE_MAX_LENGTH", 200)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "invalid type"})
    return data


def handle_errors(view):
    """Translate domain exceptions into api_error responses."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001
            response = error_from_exception(exc)
            if response is not None:
                level = logging.WARNING if not isinstance(exc, EditorInputError) else logging.INFO
                logger.log(level, "%s %s -> %s: %s", request.method, request.path,
                           type(exc).__name__, exc)
                return response
            logger.exception("Unhandled error on %s %s", request.method, request.path)
            return api_error(E.INTERNAL, "Internal server error")

    return wrapper


def _filters_from_args() -> dict:
    filters = {}
    for key in request.args:
        if key in _VIEW_PARAMS:
            continue
        if get_dimension(key) is None:
            raise ValidationError(f"Unknown filter dimension '{key}'", details={key: "unknown"})
        values = []
        for raw in request.args.getlist(key):
            values.extend(v.strip() for v in raw.split(",") if v.strip())
        if values:
            filters[key] = values
    return filters


# ═══════════════════════════════════════════════════════════════════════════
#  CANVAS CRUD
# ═══════════════════════════════════════════════════════════════════════════

@canvas_bp.route("/canvases", methods=["GET"])
@handle_errors
def list_canvases():
    items = canvas_service.list_canvases(g.org_id)
    return jsonify({"items": items, "total": len(items)})


@canvas_bp.route("/canvases", methods=["POST"])
@handle_errors
def create_canvas():
    canvas = canvas_service.create_canvas(
        g.org_id, _json_body(), actor=_actor(), title_max_length=_title_max())
    return jsonify(canvas.to_dict()), 201


@canvas_bp.route("/canvases/<int:canvas_id>", methods=["GET"])
@handle_errors
def get_canvas(canvas_id):
    canvas = canvas_service.get_canvas(g.org_id, canvas_id)
    result = canvas.to_dict()
    result["agents"] = _store().list(canvas_id)
    return jsonify(result)


@canvas_bp.route("/canvases/<int:canvas_id>", methods=["PUT"])
@handle_errors
def update_canvas(canvas_id):
    canvas = canvas_service.update_canvas(
        g.org_id, canvas_id, _json_body(), actor=_actor(), title_max_length=_title_max())
    return jsonify(canvas.to_dict())


@canvas_bp.route("/canvases/<int:canvas_id>", methods=["DELETE"])
@handle_errors
def delete_canvas(canvas_id):
    canvas_service.delete_canvas(g.org_id, canvas_id, actor=_actor())
    return jsonify({"deleted": True, "id": canvas_id})


# ═══════════════════════════════════════════════════════════════════════════
#  LEGACY IMPORT / EXPORT
# ═══════════════════════════════════════════════════════════════════════════

def _import_payload() -> tuple[str, str | None]:
    """(yaml text, override title) from a YAML body or a JSON envelope."""
    content_type = request.content_type or ""
    if any(t in content_type for t in _YAML_TYPES):
        return request.get_data(as_text=True), request.args.get("title")
    data = _json_body()
    text = data.get("yaml")
    if text is not None and not isinstance(text, str):
        raise ValidationError("yaml must be a string", details={"yaml": "invalid type"})
    return text, data.get("title")


@canvas_bp.route("/canvases/import", methods=["POST"])
@_import_limit
@handle_errors
def import_canvas():
    text, title = _import_payload()
    result = canvas_service.import_canvas(
        g.org_id, text, override_title=title, actor=_actor(), title_max_length=_title_max())
    return jsonify(result), 201


@canvas_bp.route("/canvases/import/preview", methods=["POST"])
@handle_errors
def preview_import():
    text, _ = _import_payload()
    return jsonify({"title": extract_title(text)})


@canvas_bp.route("/canvases/<int:canvas_id>/export", methods=["GET"])
@handle_errors
def export_canvas(canvas_id):
    regenerate = request.args.get("regenerate", "").lower() in ("1", "true", "yes")
    canvas, text = canvas_service.export_canvas(g.org_id, canvas_id, regenerate=regenerate)
    return Response(
        text,
        mimetype="application/x-yaml",
        headers={"Content-Disposition": f'attachment; filename="{canvas.slug}.yaml"'},
    )


# ═══════════════════════════════════════════════════════════════════════════
#  AGENTS
# ═══════════════════════════════════════════════════════════════════════════

@canvas_bp.route("/canvases/<int:canvas_id>/agents", methods=["GET"])
@handle_errors
def list_agents(canvas_id):
    items = _store().list(canvas_id)
    return jsonify({"items": items, "total": len(items)})


@canvas_bp.route("/canvases/<int:canvas_id>/agents", methods=["POST"])
@handle_errors
def create_agent(canvas_id):
    store = _store()
    agent_id = store.create(canvas_id, _json_body())
    return jsonify(store.get(agent_id)), 201


@canvas_bp.route("/agents/<int:agent_id>", methods=["GET"])
@handle_errors
def get_agent(agent_id):
    return jsonify(_store().get(agent_id))


@canvas_bp.route("/agents/<int:agent_id>", methods=["PUT"])
@handle_errors
def update_agent(agent_id):
    return jsonify(_store().update(agent_id, _json_body()))


@canvas_bp.route("/agents/<int:agent_id>", methods=["DELETE"])
@handle_errors
def delete_agent(agent_id):
    _store().delete(agent_id)
    return jsonify({"deleted": True, "id": agent_id})


@canvas_bp.route("/agents/<int:agent_id>/history", methods=["GET"])
@handle_errors
def agent_history(agent_id):
    items = _store().history(agent_id)
    return jsonify({"items": items, "total": len(items)})


@canvas_bp.route("/canvases/<int:canvas_id>/phases/rename", methods=["POST"])
@handle_errors
def rename_phase(canvas_id):
    data = _json_body()
    old = data.get("oldPhase")
    if not isinstance(old, str) or not old.strip():
        raise ValidationError("oldPhase is required", details={"oldPhase": "required"})
    count = _store().rename_phase(canvas_id, old.strip(), data.get("newPhase"))
    return jsonify({"renamed": count})


# ═══════════════════════════════════════════════════════════════════════════
#  GROUPED VIEW
# ═══════════════════════════════════════════════════════════════════════════

@canvas_bp.route("/canvases/<int:canvas_id>/groups", methods=["GET"])
@handle_errors
def grouped_view(canvas_id):
    dimension = request.args.get("dimension") or DEFAULT_DIMENSION
    spec = get_dimension(dimension)
    if spec is None or not spec.groupable:
        raise ValidationError(f"Cannot group by '{dimension}'", details={"dimension": "invalid"})
    filters = _filters_from_args()
    query = request.args.get("q", "")

    items = apply_view(_store().list(canvas_id), filters, query)
    groups = group_by(items, dimension)
    return jsonify({
        "canvasId": canvas_id,
        "dimension": dimension,
        "filters": filters,
        "query": query,
        "groups": [grp.to_dict() for grp in groups],
        "stats": group_stats(groups),
    })


@canvas_bp.route("/tags", methods=["GET"])
@handle_errors
def tag_registry():
    return jsonify(registry_snapshot())
