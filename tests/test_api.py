"""
FastAPI endpoint tests for the Case File Verifier API.

Uses httpx + FastAPI TestClient — no real server needed.
"""

from __future__ import annotations

import copy

import api
import pytest
from api import app
from fastapi.testclient import TestClient
from main import SAMPLE_CASE

from case_verifier import __version__
from case_verifier.config import EngineSettings
from case_verifier.engine import RuleEngine
from case_verifier.rules import DEFAULT_RULE_DEFINITIONS
from conftest import TODAY

client = TestClient(app)


@pytest.fixture(scope="module", autouse=True)
def _warm_engine() -> None:
    """Initialise the engine once for all API tests (bypasses lifespan)."""
    api._engine = RuleEngine(settings=EngineSettings(today=TODAY))
    yield  # type: ignore[misc]
    api._engine = None


class TestHealthEndpoint:
    def test_health_returns_200(self) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200

    def test_health_response_shape(self) -> None:
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert data["rules_loaded"] == len(DEFAULT_RULE_DEFINITIONS)


class TestRulesEndpoints:
    def test_lists_default_rules(self) -> None:
        data = client.get("/rules").json()
        assert [r["id"] for r in data] == [d["id"] for d in DEFAULT_RULE_DEFINITIONS]

    def test_validates_rules(self) -> None:
        rules = [*DEFAULT_RULE_DEFINITIONS, {"id": "future", "type": "biometrics_check"}]
        data = client.post("/rules/validate", json={"rules": rules}).json()
        assert data["valid"] is True
        assert len(data["rule_ids"]) == len(DEFAULT_RULE_DEFINITIONS)
        assert data["skipped"] == 1

    def test_rejects_unknown_placeholder(self) -> None:
        bad = copy.deepcopy(DEFAULT_RULE_DEFINITIONS[0])
        bad["messageTemplate"] = "Gap for {member} at {employer}"
        resp = client.post("/rules/validate", json={"rules": [bad]})
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "RULE_TEMPLATE_INVALID"

    def test_rejects_invalid_config(self) -> None:
        bad = copy.deepcopy(DEFAULT_RULE_DEFINITIONS[0])
        bad["config"] = {"section": "hobbies"}
        resp = client.post("/rules/validate", json={"rules": [bad]})
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "RULE_CONFIG_INVALID"


class TestEvaluateEndpoint:
    def test_sample_case_is_blocked(self) -> None:
        resp = client.post("/evaluate", json={"case": SAMPLE_CASE})
        assert resp.status_code == 200
        data = resp.json()
        assert data["case_id"] == "CASE-2024-0117"
        assert data["passed"] is False
        assert data["error_count"] >= 1

    def test_sample_case_findings(self) -> None:
        data = client.post("/evaluate", json={"case": SAMPLE_CASE}).json()
        failed = {f["rule_id"] for f in data["findings"] if f["status"] == "FAIL"}
        assert {"history-gaps", "history-overlaps", "schedule-a-required", "university-years"} <= failed
        assert "unassigned_document" in failed

    def test_gap_details_are_month_strings(self) -> None:
        data = client.post("/evaluate", json={"case": SAMPLE_CASE}).json()
        gap = next(f for f in data["findings"] if f["rule_id"] == "history-gaps" and f["status"] == "FAIL")
        assert gap["details"]["gap"] == {"start": "2020-03", "end": "2020-08"}
        assert gap["include_in_email"] is True

    def test_custom_rules_replace_defaults(self) -> None:
        resp = client.post("/evaluate", json={"case": SAMPLE_CASE, "rules": []})
        data = resp.json()
        assert [f["rule_id"] for f in data["findings"]] == ["unassigned_document"]
        assert data["passed"] is True

    def test_invalid_snapshot_is_rejected(self) -> None:
        case = copy.deepcopy(SAMPLE_CASE)
        case["members"].append(copy.deepcopy(case["members"][0]))
        resp = client.post("/evaluate", json={"case": case})
        assert resp.status_code == 422
