"""Scenario simulation inputs and ledger entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from control_tower.models.strategy import pick
from control_tower.utils.helpers import normalize_iso, to_float


class ScenarioLever(str, Enum):
    PRIORITIZE_EXECUTION = "prioritize_execution"
    REDUCE_DRIFT = "reduce_drift"
    OPTIMIZE_ROI = "optimize_roi"
    STABILIZE_WORKFLOW = "stabilize_workflow"


SUPPORTED_LEVERS = [lever.value for lever in ScenarioLever]
SUPPORTED_HORIZONS = (7, 14, 30)
DELTA_FIELDS = ("health_score_delta", "risk_exposure_delta", "roi_delta")


@dataclass
class ScenarioInput:
    id: str
    label: str
    lever: str
    horizon: int

    @classmethod
    def from_dict(cls, data: dict) -> "ScenarioInput":
        lever = str(pick(data, "lever", default=""))
        horizon = pick(data, "horizon", default=7)
        return cls(
            id=str(pick(data, "id", "scenario_id", "scenarioId", default="") or lever),
            label=str(pick(data, "label", default=lever)),
            lever=lever,
            horizon=int(horizon) if isinstance(horizon, (int, float)) and not isinstance(horizon, bool) else 0,
        )


def normalize_deltas(data) -> dict:
    """Three prediction deltas; non-finite or missing values read as 0."""
    data = data if isinstance(data, dict) else {}
    aliases = {
        "health_score_delta": "healthScoreDelta",
        "risk_exposure_delta": "riskExposureDelta",
        "roi_delta": "roiDelta",
    }
    return {key: to_float(pick(data, key, aliases[key]), 0) for key in DELTA_FIELDS}


@dataclass
class ScenarioLedgerEntry:
    id: str
    scenario_id: str
    lever: str
    horizon: int
    created_at: str
    predicted: dict = field(default_factory=dict)
    actual: dict | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "scenario_id": self.scenario_id,
            "lever": self.lever,
            "horizon": self.horizon,
            "predicted": dict(self.predicted),
            "created_at": self.created_at,
        }
        if self.actual is not None:
            data["actual"] = dict(self.actual)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ScenarioLedgerEntry":
        actual = pick(data, "actual")
        horizon = to_float(pick(data, "horizon"), 7)
        return cls(
            id=str(pick(data, "id", default="")),
            scenario_id=str(pick(data, "scenario_id", "scenarioId", default="")),
            lever=str(pick(data, "lever", default="")),
            horizon=int(horizon),
            created_at=normalize_iso(pick(data, "created_at", "createdAt")),
            predicted=normalize_deltas(pick(data, "predicted")),
            actual=normalize_deltas(actual) if isinstance(actual, dict) else None,
        )
