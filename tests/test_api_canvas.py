"""
Canvas HTTP API — canvases, agents, grouped views, import/export.
"""

import yaml

API = "/api/v1"

LEGACY_YAML = """documentTitle: Revenue Agents
agentGroups:
  - groupName: Discover
    agents:
      - name: Lead Scorer
        tools: [rag]
        tags: {status: active}
  - groupName: Ops
    agents:
      - name: A
      - name: B
        tags: {status: draft}
"""


def _post(client, url, data=None, headers=None):
    return client.post(API + url, json=data or {}, headers=headers)


def _get(client, url, headers=None):
    return client.get(API + url, headers=headers)


def _put(client, url, data=None, headers=None):
    return client.put(API + url, json=data or {}, headers=headers)


def _delete(client, url, headers=None):
    return client.delete(API + url, headers=headers)


def _canvas(client, headers, title="Sales Automation"):
    res = _post(client, "/canvases", {"title": title}, headers)
    assert res.status_code == 201
    return res.get_json()


def _import(client, headers, text=LEGACY_YAML, title=None):
    body = {"yaml": text}
    if title:
        body["title"] = title
    return _post(client, "/canvases/import", body, headers)


# ── health & org scoping ──


class TestHealthAndOrg:
    def test_health_needs_no_org(self, client):
        res = client.get(API + "/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live_probe(self, client):
        res = client.get(API + "/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_missing_org_rejected(self, client):
        res = _get(client, "/canvases")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_request_id_header(self, client, org_headers):
        res = _get(client, "/canvases", org_headers)
        assert res.headers.get("X-Request-ID")
        assert "X-Request-Duration-Ms" in res.headers

    def test_non_json_body_rejected(self, client, org_headers):
        res = client.post(API + "/canvases", data="title=x", headers=org_headers,
                          content_type="application/x-www-form-urlencoded")
        assert res.status_code == 415


# ── canvases ──


class TestCanvasCrud:
    def test_create_and_list(self, client, org_headers):
        created = _canvas(client, org_headers)
        assert created["slug"] == "sales-automation"
        assert created["orgId"] == "org_test"
        res = _get(client, "/canvases", org_headers)
        assert res.get_json()["total"] == 1

    def test_duplicate_title_gets_new_slug(self, client, org_headers):
        _canvas(client, org_headers)
        assert _canvas(client, org_headers)["slug"] == "sales-automation-2"

    def test_explicit_duplicate_slug_conflicts(self, client, org_headers):
        _canvas(client, org_headers)
        res = _post(client, "/canvases", {"title": "Other", "slug": "sales-automation"}, org_headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_title_required(self, client, org_headers):
        res = _post(client, "/canvases", {"title": "  "}, org_headers)
        assert res.status_code == 400
        assert res.get_json()["details"] == {"title": "required"}

    def test_update_and_delete(self, client, org_headers):
        cid = _canvas(client, org_headers)["id"]
        res = _put(client, f"/canvases/{cid}", {"title": "Renamed",
                                                "toolsConfig": {"rag": {"label": "RAG"}}}, org_headers)
        assert res.status_code == 200
        assert res.get_json()["title"] == "Renamed"
        assert res.get_json()["toolsConfig"] == {"rag": {"label": "RAG"}}

        assert _delete(client, f"/canvases/{cid}", org_headers).status_code == 200
        assert _get(client, f"/canvases/{cid}", org_headers).status_code == 404

    def test_other_org_sees_404(self, client, org_headers, other_org_headers):
        cid = _canvas(client, org_headers)["id"]
        res = _get(client, f"/canvases/{cid}", other_org_headers)
        assert res.status_code == 404
        assert _get(client, "/canvases", other_org_headers).get_json()["total"] == 0


# ── agents ──


class TestAgents:
    def test_crud_and_history(self, client, org_headers):
        cid = _canvas(client, org_headers)["id"]
        res = _post(client, f"/canvases/{cid}/agents",
                    {"name": "Lead Scorer", "phase": "Discover", "tools": ["rag"]}, org_headers)
        assert res.status_code == 201
        agent = res.get_json()
        assert agent["agentNumber"] == 1

        res = _put(client, f"/agents/{agent['id']}", {"objective": "Rank leads"}, org_headers)
        assert res.get_json()["objective"] == "Rank leads"

        assert _delete(client, f"/agents/{agent['id']}", org_headers).status_code == 200
        history = _get(client, f"/agents/{agent['id']}/history", org_headers).get_json()
        assert [h["changeType"] for h in history["items"]] == ["create", "update", "delete"]
        assert history["items"][0]["changedBy"] == "tester@example.test"

    def test_validation_details(self, client, org_headers):
        cid = _canvas(client, org_headers)["id"]
        res = _post(client, f"/canvases/{cid}/agents", {"name": "x" * 101}, org_headers)
        assert res.status_code == 400
        assert "agent.name" in res.get_json()["details"]

    def test_null_order_on_update_is_a_client_error(self, client, org_headers):
        cid = _canvas(client, org_headers)["id"]
        aid = _post(client, f"/canvases/{cid}/agents", {"name": "Bot"}, org_headers).get_json()["id"]
        res = _put(client, f"/agents/{aid}", {"phaseOrder": None}, org_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert res.get_json()["details"] == {"agent.phaseOrder": "must be an integer"}

    def test_unknown_agent(self, client, org_headers):
        res = _put(client, "/agents/4242", {"name": "x"}, org_headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
        assert res.get_json()["error"] == "Agent not found"
        assert "org_test" not in res.get_data(as_text=True)

    def test_rename_phase(self, client, org_headers):
        cid = _canvas(client, org_headers)["id"]
        _post(client, f"/canvases/{cid}/agents", {"name": "A", "phase": "Build"}, org_headers)
        res = _post(client, f"/canvases/{cid}/phases/rename",
                    {"oldPhase": "Build", "newPhase": "Construct"}, org_headers)
        assert res.get_json() == {"renamed": 1}
        res = _post(client, f"/canvases/{cid}/phases/rename",
                    {"oldPhase": "Build", "newPhase": "Again"}, org_headers)
        assert res.status_code == 404


# ── grouped view ──


class TestGroupedView:
    def test_default_phase_groups(self, client, org_headers):
        cid = _import(client, org_headers).get_json()["canvasId"]
        data = _get(client, f"/canvases/{cid}/groups", org_headers).get_json()
        assert [g["label"] for g in data["groups"]] == ["Discover", "Ops"]
        assert [g["itemCount"] for g in data["groups"]] == [1, 2]
        assert data["stats"] == {"totalAgents": 3, "totalGroups": 2, "avgPerGroup": 1.5}

    def test_group_by_status_with_filter_and_search(self, client, org_headers):
        cid = _import(client, org_headers).get_json()["canvasId"]
        data = _get(client, f"/canvases/{cid}/groups?dimension=status&status=active,draft",
                    org_headers).get_json()
        assert [g["id"] for g in data["groups"]] == ["active", "draft"]

        data = _get(client, f"/canvases/{cid}/groups?q=lead", org_headers).get_json()
        assert data["stats"]["totalAgents"] == 1

    def test_tool_is_not_groupable(self, client, org_headers):
        cid = _canvas(client, org_headers)["id"]
        res = _get(client, f"/canvases/{cid}/groups?dimension=tool", org_headers)
        assert res.status_code == 400

    def test_tag_registry(self, client, org_headers):
        data = _get(client, "/tags", org_headers).get_json()
        assert data["defaultDimension"] == "phase"


# ── import / export ──


class TestImportExport:
    def test_import_json_envelope(self, client, org_headers):
        res = _import(client, org_headers)
        assert res.status_code == 201
        data = res.get_json()
        assert data["title"] == "Revenue Agents"
        assert data["agentCount"] == 3
        agents = _get(client, f"/canvases/{data['canvasId']}/agents", org_headers).get_json()
        ops = [a for a in agents["items"] if a["phase"] == "Ops"]
        assert [(a["name"], a["phaseOrder"], a["agentOrder"]) for a in ops] == [
            ("A", 1, 0), ("B", 1, 1)]

    def test_import_raw_yaml_body(self, client, org_headers):
        res = client.post(API + "/canvases/import?title=Raw", data=LEGACY_YAML,
                          content_type="application/x-yaml", headers=org_headers)
        assert res.status_code == 201
        assert res.get_json()["title"] == "Raw"

    def test_invalid_record_writes_nothing(self, client, org_headers):
        bad = LEGACY_YAML + "      - objective: nameless\n"
        res = _import(client, org_headers, bad)
        assert res.status_code == 400
        assert res.get_json()["error"] == "agentGroups[1].agents[2].name is required"
        assert _get(client, "/canvases", org_headers).get_json()["total"] == 0

    def test_fractional_group_number_names_document_field(self, client, org_headers):
        text = "agentGroups:\n  - groupName: X\n    groupNumber: 1.5\n    agents:\n      - name: A\n"
        res = _import(client, org_headers, text)
        assert res.status_code == 400
        assert "agentGroups[0].groupNumber" in res.get_json()["details"]
        assert _get(client, "/canvases", org_headers).get_json()["total"] == 0

    def test_parse_and_shape_errors(self, client, org_headers):
        res = _import(client, org_headers, "agentGroups: [")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_PARSE"

        res = _import(client, org_headers, "- a\n- b\n")
        assert res.get_json()["code"] == "ERR_SHAPE"

    def test_preview_title(self, client, org_headers):
        res = _post(client, "/canvases/import/preview", {"yaml": LEGACY_YAML}, org_headers)
        assert res.get_json() == {"title": "Revenue Agents"}

    def test_export_prefers_stored_document(self, client, org_headers):
        cid = _import(client, org_headers).get_json()["canvasId"]
        res = _get(client, f"/canvases/{cid}/export", org_headers)
        assert res.status_code == 200
        assert res.get_data(as_text=True) == LEGACY_YAML
        assert "revenue-agents.yaml" in res.headers["Content-Disposition"]

    def test_export_regenerates_after_edit(self, client, org_headers):
        cid = _import(client, org_headers).get_json()["canvasId"]
        agents = _get(client, f"/canvases/{cid}/agents", org_headers).get_json()["items"]
        _put(client, f"/agents/{agents[0]['id']}", {"name": "Lead Ranker"}, org_headers)

        res = _get(client, f"/canvases/{cid}/export?regenerate=1", org_headers)
        doc = yaml.safe_load(res.get_data(as_text=True))
        assert doc["documentTitle"] == "Revenue Agents"
        assert doc["agentGroups"][0]["agents"][0]["name"] == "Lead Ranker"
        assert [g["groupId"] for g in doc["agentGroups"]] == ["discover", "ops"]


class TestImportCommand:
    def test_cli_import_creates_canvas(self, app, client, org_headers, tmp_path):
        path = tmp_path / "revenue.yaml"
        path.write_text(LEGACY_YAML, encoding="utf-8")

        result = app.test_cli_runner().invoke(
            args=["import-canvas", str(path), "--org", "org_test", "--title", "From Disk"])
        assert result.exit_code == 0, result.output

        items = _get(client, "/canvases", org_headers).get_json()["items"]
        assert [c["title"] for c in items] == ["From Disk"]
