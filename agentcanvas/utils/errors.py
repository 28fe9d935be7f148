"""Standardised API error responses.

Usage
-----
    from agentcanvas.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Canvas not found")
    return api_error(E.VALIDATION_REQUIRED, "name is required")
    return api_error(E.PARSE, "YAML parse error (line 3): ...", details={"line": 3})
"""

from __future__ import annotations

from flask import jsonify

from agentcanvas.core.exceptions import (
    ConflictError,
    NotFoundError,
    ParseError,
    ShapeError,
    StoreError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for every application error
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Editor input – HTTP 400
    PARSE = "ERR_PARSE"
    SHAPE = "ERR_SHAPE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Payload guards
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA = "ERR_UNSUPPORTED_MEDIA"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Persistence – HTTP 502 (store unreachable / write failed)
    STORE = "ERR_STORE"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 400,
    E.PARSE: 400,
    E.SHAPE: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA: 415,
    E.METHOD_NOT_ALLOWED: 405,
    E.RATE_LIMITED: 429,
    E.STORE: 502,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field violations, parse line, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_from_exception(exc: Exception):
    """Map a domain exception to its ``api_error`` response.

    Returns None for exceptions that are not part of the domain hierarchy;
    the caller decides how to report those.
    """
    if isinstance(exc, ParseError):
        details = {"line": exc.line} if exc.line is not None else None
        return api_error(E.PARSE, str(exc), details=details)
    if isinstance(exc, ShapeError):
        return api_error(E.SHAPE, str(exc),
                         details={"expected": exc.expected, "actual": exc.actual})
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details or None)
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(exc),
                         details={exc.field: "already exists"} if exc.field else None)
    if isinstance(exc, StoreError):
        return api_error(E.STORE, str(exc))
    return None
