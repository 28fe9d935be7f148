"""
Legacy document normalizer/importer and exporter (pure functions).
"""

import pytest

from agentcanvas.core.exceptions import ParseError, ShapeError, ValidationError
from agentcanvas.services import yaml_codec
from agentcanvas.services.legacy_import import (
    DEFAULT_IMPORT_TITLE,
    export_document_text,
    extract_title,
    metrics_from_record,
    metrics_to_record,
    normalize_document,
    parse_legacy_yaml,
    prepare_import,
    to_document,
    to_flat_records,
)

LEGACY_YAML = """
documentTitle: Revenue Agents
sectionDefaults:
  iconType: rocket
toolsConfig:
  rag: {label: RAG, color: "#F59E0B"}
agentGroups:
  - groupName: Discover
    agents:
      - name: Lead Scorer
        tools: [rag]
        metrics: {usageThisWeek: "40", timeSaved: "6 hrs", roiContribution: High}
        tags: {status: active}
  - groupName: Ops
    agents:
      - name: A
      - name: B
"""


class TestNormalize:
    def test_second_group_records(self):
        records = to_flat_records(normalize_document(parse_legacy_yaml(LEGACY_YAML)))
        ops = [r for r in records if r["phase"] == "Ops"]
        assert [(r["name"], r["phaseOrder"], r["agentOrder"]) for r in ops] == [
            ("A", 1, 0), ("B", 1, 1)]
        assert [r["agentNumber"] for r in ops] == [1, 2]

    def test_group_ids_and_section_defaults(self):
        doc = normalize_document(parse_legacy_yaml(LEGACY_YAML))
        assert [g["groupId"] for g in doc["agentGroups"]] == ["discover", "ops"]
        assert doc["sectionDefaults"]["icon"] == "rocket"

    def test_first_violation_is_reported(self):
        raw = {"agentGroups": [{"groupName": "X", "agents": []},
                               {"groupName": "Y", "agents": [{"objective": "?"}, {}]}]}
        with pytest.raises(ValidationError) as exc_info:
            normalize_document(raw)
        assert str(exc_info.value) == "agentGroups[1].agents[0].name is required"

    def test_fractional_numbers_rejected(self):
        raw = {"agentGroups": [{"groupName": "X", "groupNumber": 1.5, "agents": []}]}
        with pytest.raises(ValidationError) as exc_info:
            normalize_document(raw)
        assert str(exc_info.value) == "agentGroups[0].groupNumber must be a non-negative integer"

        raw = {"agentGroups": [{"groupName": "X", "agents": [{"name": "A", "agentNumber": 2.5}]}]}
        with pytest.raises(ValidationError) as exc_info:
            normalize_document(raw)
        assert str(exc_info.value) == "agentGroups[0].agents[0].agentNumber must be a positive integer"

    def test_integral_float_numbers_accepted(self):
        raw = {"agentGroups": [{"groupName": "X", "groupNumber": 2.0,
                                "agents": [{"name": "A", "agentNumber": 3.0}]}]}
        records = to_flat_records(normalize_document(raw))
        assert (records[0]["phaseOrder"], records[0]["agentNumber"]) == (2, 3)

    def test_missing_agent_groups(self):
        with pytest.raises(ValidationError, match="agentGroups must be a list"):
            normalize_document({"documentTitle": "x"})

    def test_metrics_bridged_to_record(self):
        records = to_flat_records(normalize_document(parse_legacy_yaml(LEGACY_YAML)))
        assert records[0]["metrics"] == {"adoption": 40, "satisfaction": 6}
        assert records[0]["roiContribution"] == "High"


class TestParse:
    def test_empty_text_rejected(self):
        with pytest.raises(ValidationError):
            parse_legacy_yaml("   ")

    def test_list_document_is_shape_error(self):
        with pytest.raises(ShapeError):
            parse_legacy_yaml("- a\n- b\n")

    def test_malformed_yaml_is_parse_error(self):
        with pytest.raises(ParseError) as exc_info:
            parse_legacy_yaml("agentGroups: [\n")
        assert exc_info.value.line is not None

    def test_extract_title(self):
        assert extract_title(LEGACY_YAML) == "Revenue Agents"
        assert extract_title("agentGroups: [") is None
        assert extract_title("- x") is None


class TestPrepareImport:
    def test_plan(self):
        plan = prepare_import(LEGACY_YAML, existing_slugs={"revenue-agents"})
        assert plan.title == "Revenue Agents"
        assert plan.slug == "revenue-agents-2"
        assert plan.to_dict() == {"title": "Revenue Agents", "slug": "revenue-agents-2",
                                  "agentCount": 3, "groupCount": 2}
        assert plan.settings["toolsConfig"]["rag"]["label"] == "RAG"

    def test_override_title(self):
        assert prepare_import(LEGACY_YAML, override_title=" Q3 Plan ").title == "Q3 Plan"

    def test_default_title(self):
        assert prepare_import("agentGroups: []").title == DEFAULT_IMPORT_TITLE

    def test_title_too_long(self):
        with pytest.raises(ValidationError, match="200 characters"):
            prepare_import(LEGACY_YAML, override_title="t" * 201)


class TestExport:
    def test_stored_document_wins(self):
        canvas = {"title": "T", "documentText": "documentTitle: original\n"}
        assert export_document_text(canvas, []) == "documentTitle: original\n"

    def test_regenerated_document_round_trips_records(self):
        records = to_flat_records(normalize_document(parse_legacy_yaml(LEGACY_YAML)))
        doc = yaml_codec.load(export_document_text({"title": "Revenue Agents"}, records))
        assert doc["documentTitle"] == "Revenue Agents"
        assert [g["groupName"] for g in doc["agentGroups"]] == ["Discover", "Ops"]
        assert [g["groupNumber"] for g in doc["agentGroups"]] == [0, 1]
        scorer = doc["agentGroups"][0]["agents"][0]
        assert scorer["metrics"] == {"usageThisWeek": "40", "timeSaved": "6",
                                     "roiContribution": "High"}

    def test_deleted_records_skipped(self):
        doc = to_document(None, [{"name": "gone", "phase": "X", "deletedAt": 1}])
        assert doc["agentGroups"] == []
        assert doc["documentTitle"] == DEFAULT_IMPORT_TITLE


class TestMetricsBridge:
    def test_display_to_record(self):
        assert metrics_to_record({"usageThisWeek": "12 runs", "timeSaved": "2.5h"}) == (
            {"adoption": 12, "satisfaction": 2.5}, None)

    def test_record_to_display(self):
        shown = metrics_from_record({"metrics": {"adoption": 3, "satisfaction": 4},
                                     "roiContribution": "Low"})
        assert shown == {"usageThisWeek": "3", "timeSaved": "4", "roiContribution": "Low"}

    def test_empty(self):
        assert metrics_to_record(None) == ({}, None)
