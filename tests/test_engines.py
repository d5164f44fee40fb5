"""
Tests — scoring engines.

Covers:
    - move impact deltas, windows, first-observation freeze
    - portfolio risk exposure, levels, trend and signals
    - decision attribution (ROI, confidence per window)
    - scenario simulator deltas, adjustments and validation
    - scenario ledger ordering, cap and actual updates
    - calibration accuracy
    - strategic soft bias on decision candidates
"""

import pytest

from conftest import NOW_ISO
from control_tower.core.exceptions import NotFoundError, ValidationError
from control_tower.services.adoption_store import get_adoption
from control_tower.services.attribution_engine import compute_decision_attribution
from control_tower.services.calibration import compute_prediction_accuracy, summarize_calibration
from control_tower.services.impact_engine import (
    build_impact_snapshot,
    compute_move_impact,
    derive_windows,
)
from control_tower.services.ledger_store import (
    MAX_ENTRIES,
    add_ledger_entry,
    get_ledger_entries,
    record_scenario_result,
    update_ledger_actual,
)
from control_tower.services.risk_engine import compute_portfolio_risk, risk_level, risk_trend
from control_tower.services.scenario_engine import run_scenario_simulation
from control_tower.services.soft_bias import (
    apply_strategic_moves_soft_bias,
    apply_strategic_soft_bias,
)
from control_tower.services.strategic_moves import generate_strategic_moves

WS = "ws-alpha"


def _snapshot(health, alignment, momentum):
    return {
        "health_score": health,
        "strategy": {"alignment": {"alignment_score": alignment}},
        "trend_7d": {"score": momentum},
    }


# ═════════════════════════════════════════════════════════════════════════════
# Impact
# ═════════════════════════════════════════════════════════════════════════════

class TestImpact:
    def test_deltas_between_snapshots(self):
        impact = build_impact_snapshot(_snapshot(50, 60, 5), _snapshot(58, 55, 10))
        assert impact == {"health_delta": 8, "alignment_delta": -5, "momentum_delta": 5, "confidence": "low"}

    def test_deltas_are_clamped(self):
        impact = build_impact_snapshot(_snapshot(0, 0, 0), _snapshot(100, 0, 0))
        assert impact["health_delta"] == 40

    def test_metrics_fallback_path(self):
        impact = build_impact_snapshot({"metrics": {"health_score": 40}}, {"overview": {"health_score": 45}})
        assert impact["health_delta"] == 5

    def test_windows_reached(self):
        windows = derive_windows("2026-01-01T00:00:00Z", "2026-01-09T00:00:00Z", {"health_delta": 1})
        assert sorted(windows) == ["d3", "d7"]
        assert derive_windows("garbage", NOW_ISO, {}) == {}

    def test_windows_frozen_at_first_observation(self, store):
        move = generate_strategic_moves(WS, [], {}, [], [], "2026-01-01T00:00:00Z")[0]
        move.id = "m1"
        move.adoption = {"status": "adopted", "adopted_at_iso": "2026-01-01T00:00:00.000Z"}

        compute_move_impact(store, WS, move, _snapshot(50, 50, 0), _snapshot(55, 50, 0), "2026-01-05T00:00:00Z")
        assert move.adoption["impact"]["d3"]["health_delta"] == 5

        compute_move_impact(store, WS, move, _snapshot(50, 50, 0), _snapshot(62, 50, 0), "2026-01-09T00:00:00Z")
        assert move.adoption["impact"]["d3"]["health_delta"] == 5
        assert move.adoption["impact"]["d7"]["health_delta"] == 12

        record = get_adoption(store, WS, "m1")
        assert sorted(record.impact) == ["d3", "d7"]
        assert record.adopted_at_iso == "2026-01-01T00:00:00.000Z"

    def test_not_adopted_is_untouched(self, store):
        move = generate_strategic_moves(WS, [], {}, [], [], NOW_ISO)[0]
        move.adoption = {"status": "in_progress"}
        compute_move_impact(store, WS, move, _snapshot(0, 0, 0), _snapshot(50, 0, 0), NOW_ISO)
        assert "impact" not in move.adoption


# ═════════════════════════════════════════════════════════════════════════════
# Risk
# ═════════════════════════════════════════════════════════════════════════════

class TestRisk:
    @pytest.mark.parametrize("health,exposure,level", [
        (75, 25, "low"),
        (50, 50, "medium"),
        (25, 75, "high"),
        (10, 90, "critical"),
    ])
    def test_levels_from_health(self, health, exposure, level):
        node = compute_portfolio_risk(health)[0]
        assert node["exposure_score"] == exposure
        assert node["risk_level"] == level
        assert node["id"] == "portfolio"

    def test_negative_attribution_raises_exposure(self):
        node = compute_portfolio_risk(80, decision_attribution=[{"delta_score": -5}, {"delta_score": 3}])[0]
        assert node["exposure_score"] == 30
        assert node["signals"] == ["Negative decision impact detected"]

    def test_wins_and_suppressed_intents(self):
        node = compute_portfolio_risk(80, recent_wins=3, suppressed_intents=4)[0]
        # 20 - 3 + 2
        assert node["exposure_score"] == 19
        assert node["signals"] == ["Suppressed intents reduce momentum", "Recent wins mitigate risk"]

    def test_signals_capped_at_three(self):
        node = compute_portfolio_risk(
            10, decision_attribution=[{"delta_score": -2}], recent_wins=1, suppressed_intents=2
        )[0]
        assert len(node["signals"]) == 3
        assert node["signals"][0] == "Elevated exposure vs. health baseline"

    def test_unknown_health(self):
        assert compute_portfolio_risk(None) is None
        assert compute_portfolio_risk(float("nan")) is None

    def test_trend_and_level_helpers(self):
        assert risk_trend(1) == "improving"
        assert risk_trend(-1) == "deteriorating"
        assert risk_trend(0.2) == "stable"
        assert risk_trend(None) == "stable"
        assert risk_level(26) == "medium"


# ═════════════════════════════════════════════════════════════════════════════
# Attribution
# ═════════════════════════════════════════════════════════════════════════════

class TestAttribution:
    def test_positive_delta(self):
        result = compute_decision_attribution("d1", "2026-01-01T00:00:00Z", 60, 65, 14)
        assert result["delta_score"] == 5
        assert result["estimated_roi"] == 5000
        assert result["confidence"] == 0.75
        assert result["explanation"] == (
            "Over a 14-day window, this decision improved the Control Score by 5 points, "
            "resulting in an estimated ROI of 5000. Confidence level: 0.75."
        )

    @pytest.mark.parametrize("window,confidence", [(7, 0.6), (30, 0.9)])
    def test_confidence_per_window(self, window, confidence):
        assert compute_decision_attribution("d1", NOW_ISO, 50, 48, window)["confidence"] == confidence

    def test_unsupported_window(self):
        with pytest.raises(ValidationError):
            compute_decision_attribution("d1", NOW_ISO, 50, 55, 10)


# ═════════════════════════════════════════════════════════════════════════════
# Scenario simulator
# ═════════════════════════════════════════════════════════════════════════════

class TestScenario:
    def test_optimize_roi_fourteen_days(self):
        snapshot = {
            "health_score": 70,
            "decision_attribution": [{"estimated_roi": 5000, "confidence": 0.75}],
        }
        result = run_scenario_simulation(snapshot, {"id": "s1", "label": "ROI", "lever": "optimize_roi", "horizon": 14})
        assert result["predicted"] == {
            "health_score_delta": pytest.approx(1.6),
            "risk_exposure_delta": pytest.approx(-1.6),
            "roi_delta": 1440,
        }
        assert result["confidence"] == pytest.approx(0.8)
        assert result["scenario_id"] == "s1"
        assert "Confidence: 80%." in result["explanation"]

    def test_high_exposure_amplifies_risk_reduction(self):
        snapshot = {"health_score": 50, "portfolio_risk_matrix": [{"exposure_score": 80}]}
        result = run_scenario_simulation(snapshot, {"lever": "prioritize_execution", "horizon": 7})
        assert result["predicted"]["risk_exposure_delta"] == pytest.approx(-3.6)
        assert result["confidence"] == pytest.approx(0.6)

    def test_negative_roi_baseline(self):
        snapshot = {"health_score": 60, "decision_attribution": [{"estimated_roi": -2000, "confidence": 0.6}]}
        result = run_scenario_simulation(snapshot, {"lever": "reduce_drift", "horizon": 30})
        assert result["predicted"]["roi_delta"] == 528

    def test_missing_health_returns_none(self):
        assert run_scenario_simulation({}, {"lever": "reduce_drift", "horizon": 7}) is None

    @pytest.mark.parametrize("scenario", [
        {"lever": "grow_fast", "horizon": 7},
        {"lever": "reduce_drift", "horizon": 21},
    ])
    def test_invalid_scenarios(self, scenario):
        with pytest.raises(ValidationError):
            run_scenario_simulation({"health_score": 50}, scenario)


# ═════════════════════════════════════════════════════════════════════════════
# Ledger & calibration
# ═════════════════════════════════════════════════════════════════════════════

PREDICTED = {"health_score_delta": 2, "risk_exposure_delta": -3, "roi_delta": 500}


class TestLedger:
    def test_record_scenario_result(self, store):
        result = {"scenario_id": "s1", "lever": "reduce_drift", "horizon": 7, "predicted": PREDICTED}
        entry = record_scenario_result(store, WS, result, NOW_ISO)
        assert entry["id"].startswith("led_")
        assert entry["created_at"] == NOW_ISO
        assert "actual" not in entry
        assert get_ledger_entries(store, WS) == [entry]

    def test_newest_first_and_capped(self, store):
        for i in range(MAX_ENTRIES + 5):
            add_ledger_entry(store, WS, {
                "id": f"entry-{i:03d}",
                "scenario_id": "s1",
                "lever": "reduce_drift",
                "horizon": 7,
                "created_at": f"2026-01-01T{i // 60:02d}:{i % 60:02d}:00Z",
                "predicted": PREDICTED,
            })
        entries = get_ledger_entries(store, WS)
        assert len(entries) == MAX_ENTRIES
        assert entries[0]["id"] == "entry-204"
        assert entries[-1]["id"] == "entry-005"
        assert len(get_ledger_entries(store, WS, limit=10)) == 10

    def test_update_actual(self, store):
        entry = record_scenario_result(store, WS, {"scenario_id": "s1", "lever": "reduce_drift", "predicted": PREDICTED}, NOW_ISO)
        entries = update_ledger_actual(store, WS, entry["id"], {"health_score_delta": 1})
        assert entries[0]["actual"] == {"health_score_delta": 1, "risk_exposure_delta": 0, "roi_delta": 0}

    def test_update_unknown_entry(self, store):
        with pytest.raises(NotFoundError):
            update_ledger_actual(store, WS, "led_missing", {})


class TestCalibration:
    def test_perfect_prediction(self):
        entry = {"id": "e1", "predicted": PREDICTED, "actual": PREDICTED}
        assert compute_prediction_accuracy(entry) == 1.0

    def test_accuracy_from_mean_absolute_error(self):
        entry = {"predicted": {"health_score_delta": 2}, "actual": {"health_score_delta": -1}}
        # mae = 3 / 3
        assert compute_prediction_accuracy(entry) == pytest.approx(0.5)

    def test_no_actual(self):
        assert compute_prediction_accuracy({"predicted": PREDICTED}) == 0.0

    def test_summary(self):
        entries = [
            {"predicted": PREDICTED, "actual": PREDICTED},
            {"predicted": {"health_score_delta": 2}, "actual": {"health_score_delta": -1}},
            {"predicted": PREDICTED},
        ]
        summary = summarize_calibration(entries)
        assert summary["entries"] == 3
        assert summary["with_actual"] == 2
        assert summary["mean_accuracy"] == pytest.approx(0.75)
        assert summarize_calibration([])["mean_accuracy"] == 0.0


# ═════════════════════════════════════════════════════════════════════════════
# Soft bias
# ═════════════════════════════════════════════════════════════════════════════

class TestSoftBias:
    def test_low_alignment_boosts_focus(self):
        candidates = [{"kind": "optimization", "score": 1.0}, {"kind": "focus", "score": 1.0}]
        ranked = apply_strategic_soft_bias(candidates, {"alignment_score": 50})
        assert ranked[0] == {"kind": "focus", "score": 1.06}
        assert candidates[1]["score"] == 1.0

    def test_drift_boosts_stabilization(self):
        ranked = apply_strategic_soft_bias(
            [{"kind": "focus", "score": 1.0}, {"kind": "stabilization", "score": 1.0}],
            {"alignment_score": 70, "drift_detected": True},
        )
        assert ranked[0]["kind"] == "stabilization"
        assert ranked[0]["score"] == 1.08

    def test_moves_bias_matches_action_kinds(self):
        moves = [{"title": "Stabilize", "week_key": "2026-W02", "recommended_actions": [{"kind": "workflow"}]}]
        ranked, diagnostics = apply_strategic_moves_soft_bias(
            [{"kind": "content", "title": "publish post", "score": 1.0},
             {"kind": "workflow_cleanup", "title": "x", "score": 1.0}],
            moves,
        )
        assert ranked[0] == {"kind": "workflow_cleanup", "title": "x", "score": 1.03}
        assert ranked[1]["score"] == 1.0
        assert diagnostics == {"strategy_moves": {"week_key": "2026-W02", "titles": ["Stabilize"]}}

    def test_moves_boost_is_capped(self):
        moves = [{"title": "All", "recommended_actions": [
            {"kind": "workflow"}, {"kind": "content"}, {"kind": "calendar"}, {"kind": "quality"},
        ]}]
        ranked, _ = apply_strategic_moves_soft_bias(
            [{"kind": "ops content calendar quality", "score": 1.0}], moves, "2026-W02"
        )
        assert ranked[0]["score"] == 1.12

    def test_no_moves_no_diagnostics(self):
        ranked, diagnostics = apply_strategic_moves_soft_bias([{"kind": "x", "score": 2.0}], [])
        assert ranked == [{"kind": "x", "score": 2.0}]
        assert diagnostics == {}
