"""
Tests — strategy snapshot orchestration.

Covers:
    - snapshot shape: artifacts, alignment, three moves, supported levers
    - actions linked to a move id record intent → in_progress
    - outcomes linked by session id adopt the move, populate impact
      windows and produce decision attribution for 7 and 14 days
    - recent ledger entries surface on the snapshot
    - workspace control tower snapshot: health, trend, risk matrix
"""

from conftest import NOW_ISO, WEEK_KEY
from control_tower.models.scenario import SUPPORTED_LEVERS
from control_tower.services.ledger_store import record_scenario_result
from control_tower.services.strategy_snapshot import (
    attach_strategy_to_snapshot,
    build_strategy_snapshot,
    build_workspace_control_tower_snapshot,
    extract_control_score,
)

WS = "ws-alpha"


class TestStrategySnapshot:
    def test_shape(self, store):
        snapshot = build_strategy_snapshot(store, WS, now_iso=NOW_ISO)
        assert snapshot["workspace_id"] == WS
        assert snapshot["week_key"] == WEEK_KEY
        assert len(snapshot["artifacts"]) == 3
        assert [m["kind"] for m in snapshot["weekly_moves"]] == ["focus", "stability", "optimization"]
        assert all(m["adoption"]["status"] == "not_started" for m in snapshot["weekly_moves"])
        assert snapshot["scenario_simulator"] == {"supported_levers": SUPPORTED_LEVERS}
        assert "decision_attribution" not in snapshot
        assert "scenario_ledger" not in snapshot

    def test_linked_action_records_intent(self, store):
        move_id = build_strategy_snapshot(store, WS, now_iso=NOW_ISO)["weekly_moves"][1]["id"]
        snapshot = build_strategy_snapshot(
            store, WS, recent_actions=[{"id": move_id, "title": "Review approvals"}], now_iso=NOW_ISO
        )
        statuses = {m["id"]: m["adoption"]["status"] for m in snapshot["weekly_moves"]}
        assert statuses[move_id] == "in_progress"

    def test_linked_outcome_adopts_and_attributes(self, store):
        move_id = build_strategy_snapshot(store, WS, now_iso=NOW_ISO)["weekly_moves"][0]["id"]
        outcomes = [{
            "intent": "ship focus",
            "outcome": "completed",
            "session_id": move_id,
            "occurred_at": "2026-01-03T00:00:00Z",
        }]
        snapshot = build_strategy_snapshot(store, WS, outcomes=outcomes, now_iso=NOW_ISO)

        focus = next(m for m in snapshot["weekly_moves"] if m["id"] == move_id)
        assert focus["adoption"]["status"] == "adopted"
        assert focus["adoption"]["adopted_at_iso"] == "2026-01-03T00:00:00.000Z"
        assert sorted(focus["adoption"]["impact"]) == ["d3"]
        assert focus["adoption"]["impact"]["d3"]["health_delta"] == 2
        assert focus["adoption"]["impact"]["d3"]["alignment_delta"] == 1

        attribution = snapshot["decision_attribution"]
        assert [a["window"] for a in attribution] == [7, 14]
        assert all(a["decision_id"] == move_id and a["delta_score"] == 2 for a in attribution)

    def test_ledger_preview(self, store):
        record_scenario_result(store, WS, {"scenario_id": "s1", "lever": "reduce_drift", "horizon": 7}, NOW_ISO)
        snapshot = build_strategy_snapshot(store, WS, now_iso=NOW_ISO)
        assert len(snapshot["scenario_ledger"]) == 1


class TestControlTowerSnapshot:
    def test_seeded_workspace(self, store):
        snapshot = build_workspace_control_tower_snapshot(store, WS, now_iso=NOW_ISO)
        # alignment 32, low confidence, full weekly plan (+6)
        assert snapshot["health_score"] == 38
        assert snapshot["trend_7d"] == {"score": -18}
        assert snapshot["generated_at_iso"] == NOW_ISO
        node = snapshot["portfolio_risk_matrix"][0]
        assert node["exposure_score"] == 62
        assert node["risk_level"] == "high"
        assert node["trend"] == "deteriorating"
        strategy = snapshot["strategy"]
        assert strategy["week_key"] == WEEK_KEY
        assert len(strategy["weekly_moves"]) == 3
        assert strategy["alignment"]["alignment_score"] == 32

    def test_control_score_extraction(self):
        assert extract_control_score({"health_score": 70}) == 70
        assert extract_control_score({"strategy": {"alignment": {"alignment_score": 55}}}) == 55
        assert extract_control_score({}) is None
        assert extract_control_score(None) is None

    def test_attach_strategy_defaults(self):
        snapshot = attach_strategy_to_snapshot({"health_score": 50}, [])
        assert snapshot["health_score"] == 50
        assert snapshot["strategy"]["alignment"]["alignment_score"] == 50
        assert snapshot["strategy"]["weekly_moves"] == []
