"""Decision attribution: Control Score change and estimated ROI after adoption."""

from control_tower.core.exceptions import ValidationError

ATTRIBUTION_WINDOWS = (7, 14, 30)
ROI_PER_POINT = 1000


def confidence_for_window(window: int) -> float:
    if window == 7:
        return 0.6
    if window == 14:
        return 0.75
    return 0.9


def _fmt(value):
    """Render whole floats without a trailing '.0'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compute_decision_attribution(decision_id, adopted_at, baseline_score, current_score, window) -> dict:
    if window not in ATTRIBUTION_WINDOWS:
        raise ValidationError(f"Unsupported attribution window: {window}", details={"window": window})
    delta = current_score - baseline_score
    roi = delta * ROI_PER_POINT
    confidence = confidence_for_window(window)
    return {
        "decision_id": decision_id,
        "adopted_at": adopted_at,
        "window": window,
        "baseline_score": baseline_score,
        "current_score": current_score,
        "delta_score": delta,
        "estimated_roi": roi,
        "confidence": confidence,
        "explanation": (
            f"Over a {window}-day window, this decision improved the Control Score by {_fmt(delta)} points, "
            f"resulting in an estimated ROI of {_fmt(roi)}. Confidence level: {confidence}."
        ),
    }
