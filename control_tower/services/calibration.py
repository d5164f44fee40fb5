"""Prediction accuracy of recorded scenarios: 1 / (1 + mean absolute error)."""

from control_tower.models.scenario import DELTA_FIELDS, ScenarioLedgerEntry


def compute_prediction_accuracy(entry) -> float:
    """0 when no actual has been recorded yet, 1 for a perfect prediction."""
    if isinstance(entry, dict):
        entry = ScenarioLedgerEntry.from_dict(entry)
    if entry.actual is None:
        return 0.0
    mae = sum(abs(entry.predicted[k] - entry.actual[k]) for k in DELTA_FIELDS) / len(DELTA_FIELDS)
    return 1 / (1 + mae)


def summarize_calibration(entries) -> dict:
    """Mean accuracy over entries that carry an actual."""
    scored = [compute_prediction_accuracy(e) for e in entries if (e.get("actual") if isinstance(e, dict) else e.actual)]
    return {
        "entries": len(entries),
        "with_actual": len(scored),
        "mean_accuracy": sum(scored) / len(scored) if scored else 0.0,
    }
