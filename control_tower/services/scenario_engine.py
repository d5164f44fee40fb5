"""
Scenario Simulator — "what if we pull this lever for N days?"

Per-lever daily rates are scaled by the horizon multiplier, then adjusted:
risk reduction ×1.2 when baseline exposure is ≥76, ROI ×1.1 when the
attributed baseline ROI is negative. Deltas are clamped to health ±10,
risk ±20 and ROI ±5000.
"""

from __future__ import annotations

import logging

from control_tower.core.exceptions import ValidationError
from control_tower.models.scenario import SUPPORTED_HORIZONS, SUPPORTED_LEVERS, ScenarioInput, ScenarioLever
from control_tower.utils.helpers import clamp, is_finite_number, round1, round_half_up

logger = logging.getLogger(__name__)

# lever → (health, risk, roi) before horizon scaling
LEVER_RATES = {
    ScenarioLever.PRIORITIZE_EXECUTION.value: (2.0, -3.0, 500.0),
    ScenarioLever.REDUCE_DRIFT.value: (1.5, -5.0, 200.0),
    ScenarioLever.OPTIMIZE_ROI.value: (1.0, -1.0, 900.0),
    ScenarioLever.STABILIZE_WORKFLOW.value: (2.5, -4.0, 300.0),
}
HORIZON_MULTIPLIER = {7: 1.0, 14: 1.6, 30: 2.4}
BASE_CONFIDENCE = {7: 0.65, 14: 0.75, 30: 0.85}
HIGH_EXPOSURE = 76


def _scenario(scenario) -> ScenarioInput:
    if isinstance(scenario, ScenarioInput):
        return scenario
    if isinstance(scenario, dict):
        return ScenarioInput.from_dict(scenario)
    raise ValidationError("Scenario must be an object")


def run_scenario_simulation(snapshot: dict, scenario) -> dict | None:
    """Predicted deltas for one scenario, or None when health is unknown."""
    scenario = _scenario(scenario)
    if scenario.lever not in LEVER_RATES:
        raise ValidationError(
            f"Unknown scenario lever: {scenario.lever}",
            details={"lever": scenario.lever, "supported": SUPPORTED_LEVERS},
        )
    if scenario.horizon not in SUPPORTED_HORIZONS:
        raise ValidationError(
            f"Unsupported scenario horizon: {scenario.horizon}",
            details={"horizon": scenario.horizon, "supported": list(SUPPORTED_HORIZONS)},
        )

    health = (snapshot or {}).get("health_score")
    if not is_finite_number(health):
        return None

    base_health = clamp(health, 0, 100)
    matrix = snapshot.get("portfolio_risk_matrix") or []
    matrix_exposure = matrix[0].get("exposure_score") if matrix and isinstance(matrix[0], dict) else None
    if is_finite_number(matrix_exposure):
        base_exposure = clamp(matrix_exposure, 0, 100)
    else:
        base_exposure = clamp(100 - base_health, 0, 100)

    attribution = [a for a in snapshot.get("decision_attribution") or [] if isinstance(a, dict)]
    base_roi = sum(a["estimated_roi"] for a in attribution if is_finite_number(a.get("estimated_roi")))

    multiplier = HORIZON_MULTIPLIER[scenario.horizon]
    health_rate, risk_rate, roi_rate = LEVER_RATES[scenario.lever]
    health_delta = health_rate * multiplier
    risk_delta = risk_rate * multiplier
    roi_delta = roi_rate * multiplier

    if base_exposure >= HIGH_EXPOSURE and risk_delta < 0:
        risk_delta *= 1.2
    if base_roi < 0:
        roi_delta *= 1.1

    health_delta = round1(clamp(health_delta, -10, 10))
    risk_delta = round1(clamp(risk_delta, -20, 20))
    roi_delta = round_half_up(clamp(roi_delta, -5000, 5000))

    confidence = BASE_CONFIDENCE[scenario.horizon]
    if attribution:
        avg = sum(a.get("confidence") if is_finite_number(a.get("confidence")) else 0 for a in attribution) / len(attribution)
        if avg >= 0.75:
            confidence = min(0.9, confidence + 0.05)
    if base_exposure >= HIGH_EXPOSURE:
        confidence = max(0.55, confidence - 0.05)

    direction = "reduce" if risk_delta <= 0 else "increase"
    explanation = (
        f"Scenario '{scenario.label}' over {scenario.horizon} days is expected to improve Health by "
        f"{health_delta} points, {direction} Risk Exposure by {abs(risk_delta)}, and change estimated ROI by "
        f"{roi_delta}. Confidence: {round_half_up(confidence * 100)}%."
    )
    return {
        "scenario_id": scenario.id,
        "lever": scenario.lever,
        "horizon": scenario.horizon,
        "predicted": {
            "health_score_delta": health_delta,
            "risk_exposure_delta": risk_delta,
            "roi_delta": roi_delta,
        },
        "confidence": confidence,
        "explanation": explanation,
    }
