"""
Rate limiting configuration.

The Limiter instance is created in agentcanvas/__init__.py with no default
limits; this module applies per-route limits:

    - Legacy import:   IMPORT_RATE_LIMIT (default 10/minute), shared limit
                       declared on the route in canvas_bp
    - Canvas API:      120/minute
    - Health check:    exempt

Keys are the caller's org when known, else the remote address.

Usage:
    from agentcanvas.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

CANVAS_API_LIMIT = "120/minute"


def org_rate_limit_key():
    """Rate limit key: org id if resolved, else remote IP."""
    org_id = g.get("org_id")
    if org_id:
        return f"org:{org_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """Apply rate limits to the API. Disabled in testing mode."""
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("canvas")
    if bp:
        limiter.limit(CANVAS_API_LIMIT, key_func=org_rate_limit_key)(bp)

    health = app.view_functions.get("health")
    if health is not None:
        limiter.exempt(health)

    app.logger.info("Rate limiter configured: import=%s, canvas api=%s",
                    app.config.get("IMPORT_RATE_LIMIT"), CANVAS_API_LIMIT)
