"""
Canvas workspace — mirror, view pipeline and editor integration.
"""

import copy

import pytest

from agentcanvas.core.exceptions import NotFoundError, StoreError, ValidationError
from agentcanvas.services.edit_session import ViewMode
from agentcanvas.services.workspace import CanvasWorkspace


class FakeStore:
    """In-memory record store with a switchable failure mode."""

    def __init__(self, records=()):
        self.records = {}
        self.next_id = 1
        self.fail = False
        for record in records:
            self.create(1, record)

    def _check(self, operation):
        if self.fail:
            raise StoreError(operation, "backend unavailable")

    def list(self, canvas_id):
        self._check("list")
        return [copy.deepcopy(r) for r in self.records.values() if not r.get("deletedAt")]

    def get(self, agent_id):
        return copy.deepcopy(self.records[agent_id])

    def create(self, canvas_id, record):
        self._check("create")
        agent_id = self.next_id
        self.next_id += 1
        self.records[agent_id] = dict(record, id=agent_id, canvasId=canvas_id)
        return agent_id

    def update(self, agent_id, partial):
        self._check("update")
        self.records[agent_id].update(partial)
        return self.get(agent_id)

    def delete(self, agent_id):
        self._check("delete")
        self.records[agent_id]["deletedAt"] = 1

    def bulk_replace(self, canvas_id, records):
        self._check("bulk_replace")
        self.records = {}
        for record in records:
            self.create(canvas_id, record)


def _records():
    return [
        {"name": "Lead Scorer", "phase": "Discover", "phaseOrder": 0, "agentOrder": 0,
         "agentNumber": 1, "tools": ["rag"], "tags": {"status": "active"}},
        {"name": "Invoice Bot", "phase": "Build", "phaseOrder": 1, "agentOrder": 0,
         "agentNumber": 1, "tools": ["email"], "tags": {"status": "draft"}},
    ]


@pytest.fixture()
def workspace():
    ws = CanvasWorkspace(FakeStore(_records()), canvas_id=1, search_delay=60)
    ws.refresh()
    return ws


class TestView:
    def test_default_grouping(self, workspace):
        view = workspace.view()
        assert [g["label"] for g in view["groups"]] == ["Discover", "Build"]
        assert view["stats"]["totalAgents"] == 2

    def test_regroup_and_filter(self, workspace):
        workspace.set_dimension("status")
        workspace.set_filter("tool", ["email"])
        groups = workspace.groups()
        assert [g.id for g in groups] == ["draft"]

    def test_clearing_filter(self, workspace):
        workspace.set_filter("tool", ["email"])
        workspace.set_filter("tool", [])
        assert len(workspace.visible_items()) == 2

    def test_unknown_dimension(self, workspace):
        with pytest.raises(ValidationError):
            workspace.set_dimension("zodiac")

    def test_debounced_search_notifies_listener(self, workspace):
        views = []
        workspace.on_view_change(views.append)
        workspace.submit_search("lead")
        workspace.submit_search("invoice")
        assert workspace.flush_search()
        assert len(views) == 1
        assert views[0]["query"] == "invoice"
        assert views[0]["stats"]["totalAgents"] == 1


class TestWrites:
    def test_store_error_keeps_mirror(self, workspace):
        before = copy.deepcopy(workspace.items)
        workspace.store.fail = True
        with pytest.raises(StoreError):
            workspace.update(workspace.items[0]["id"], {"name": "Changed"})
        with pytest.raises(StoreError):
            workspace.refresh()
        assert workspace.items == before

    def test_delete_refreshes(self, workspace):
        workspace.delete(workspace.items[0]["id"])
        assert [i["name"] for i in workspace.items] == ["Invoice Bot"]

    def test_unknown_agent(self, workspace):
        with pytest.raises(NotFoundError):
            workspace.update(999, {"name": "x"})

    def test_replace_from_document(self, workspace):
        doc = {"agentGroups": [{"groupName": "Ops", "agents": [{"name": "A"}, {"name": "B"}]}]}
        items = workspace.replace_from_document(doc)
        assert [(i["name"], i["phase"], i["agentOrder"]) for i in items] == [
            ("A", "Ops", 0), ("B", "Ops", 1)]


class TestEditing:
    def test_edit_existing_agent_persists(self, workspace):
        agent_id = workspace.items[1]["id"]
        session = workspace.edit_agent(agent_id)
        session.form["objective"] = "Chase unpaid invoices"
        result = session.commit()
        assert result.ok
        assert workspace.store.records[agent_id]["objective"] == "Chase unpaid invoices"
        assert workspace.items[1]["objective"] == "Chase unpaid invoices"

    def test_new_agent_goes_to_phase(self, workspace):
        session = workspace.edit_agent(phase="Build")
        session.form["name"] = "Reconciler"
        result = session.commit()
        assert result.ok
        assert result.value["phase"] == "Build"
        assert result.value["agentNumber"] == 2

    def test_store_failure_on_commit_keeps_session_open(self, workspace):
        agent_id = workspace.items[0]["id"]
        session = workspace.edit_agent(agent_id)
        session.switch_to(ViewMode.TEXT)
        session.text = session.text.replace("Lead Scorer", "Lead Ranker")
        workspace.store.fail = True
        result = session.commit()
        assert result.error == "StoreError"
        assert workspace.items[0]["name"] == "Lead Scorer"
        assert not session.closed
