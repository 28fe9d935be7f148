"""
Org Context Middleware — resolves the organization every API request acts for.

The org comes from the ``X-Org-Id`` header, falling back to the
``DEFAULT_ORG_ID`` config value. API requests that end up with no org are
rejected with 400; every downstream store query filters by ``g.org_id``.

Chain order:
  timing.py  →  org_context.py  →  route handler
"""

import logging
import re

from flask import current_app, g, request

from agentcanvas.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ORG_HEADER = "X-Org-Id"

# Paths that need no org
ORG_SKIP_PREFIXES = (
    "/api/v1/health",
)

_ORG_ID_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,100}$")


def resolve_org_id():
    """Org id for the current request, or None."""
    raw = (request.headers.get(ORG_HEADER) or "").strip()
    if raw:
        return raw
    return current_app.config.get("DEFAULT_ORG_ID")


def init_org_context(app):
    """Register the org context middleware as a before_request hook."""

    @app.before_request
    def _org_context():
        g.org_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in ORG_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None
        if request.method == "OPTIONS":
            return None

        org_id = resolve_org_id()
        if not org_id:
            logger.warning("Request without org: %s %s", request.method, request.path)
            return api_error(E.VALIDATION_REQUIRED,
                             f"{ORG_HEADER} header is required",
                             details={"orgId": "required"})
        if not _ORG_ID_RE.match(org_id):
            return api_error(E.VALIDATION_INVALID,
                             f"{ORG_HEADER} header is malformed",
                             details={"orgId": "invalid"})

        g.org_id = org_id
        return None

    logger.info("Org context middleware installed")
