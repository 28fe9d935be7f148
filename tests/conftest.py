"""
Shared pytest fixtures for the AgentCanvas test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB reset w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org_headers / other_org_headers: X-Org-Id headers for two orgs
    - store: AgentStore bound to the default test org
    - canvas: Pre-created Canvas entity
"""

import pytest

from agentcanvas import create_app
from agentcanvas.models import db as _db

TEST_ORG = "org_test"
OTHER_ORG = "org_other"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def org_headers():
    return {"X-Org-Id": TEST_ORG, "X-Actor": "tester@example.test"}


@pytest.fixture()
def other_org_headers():
    return {"X-Org-Id": OTHER_ORG, "X-Actor": "intruder@example.test"}


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def store():
    """AgentStore for the default test org."""
    from agentcanvas.services.agent_store import AgentStore
    return AgentStore(TEST_ORG, actor="tester@example.test")


@pytest.fixture()
def canvas():
    """Create and return an empty canvas in the default test org."""
    from agentcanvas.services.canvas_service import create_canvas
    return create_canvas(TEST_ORG, {"title": "Sales Automation"}, actor="tester@example.test")
