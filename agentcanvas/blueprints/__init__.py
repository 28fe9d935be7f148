"""
AgentCanvas
Blueprint registry.

    canvas_bp  — /api/v1 canvases, agents, grouped views, import/export
    health_bp  — /api/v1/health probes
"""
