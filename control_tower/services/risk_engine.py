"""
Portfolio Risk Engine.

    exposure = clamp(100 − health + negative_adj − wins_adj + suppressed_adj, 0, 100)

    negative_adj    0-25   2 × |sum of negative attribution deltas|
    wins_adj        0-5    recent wins
    suppressed_adj  0-10   suppressed intents / 2

Levels: ≤25 low, ≤50 medium, ≤75 high, otherwise critical.
"""

from __future__ import annotations

from enum import Enum

from control_tower.utils.helpers import clamp, is_finite_number, round_half_up


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DETERIORATING = "deteriorating"


MAX_SIGNALS = 3


def risk_level(exposure_score) -> str:
    if exposure_score <= 25:
        return RiskLevel.LOW.value
    if exposure_score <= 50:
        return RiskLevel.MEDIUM.value
    if exposure_score <= 75:
        return RiskLevel.HIGH.value
    return RiskLevel.CRITICAL.value


def risk_trend(score_delta) -> str:
    if not is_finite_number(score_delta):
        return RiskTrend.STABLE.value
    if score_delta > 0.5:
        return RiskTrend.IMPROVING.value
    if score_delta < -0.5:
        return RiskTrend.DETERIORATING.value
    return RiskTrend.STABLE.value


def _score(value) -> int:
    return round_half_up(clamp(value, 0, 100))


def negative_attribution_magnitude(decision_attribution) -> float:
    total = 0.0
    for item in decision_attribution or []:
        delta = item.get("delta_score") if isinstance(item, dict) else None
        if is_finite_number(delta) and delta < 0:
            total += delta
    return abs(total)


def compute_portfolio_risk(health_score, score_delta=None, decision_attribution=None, recent_wins=None, suppressed_intents=None):
    """One-node risk matrix, or None when health is unknown."""
    if not is_finite_number(health_score):
        return None

    safe_health = clamp(health_score, 0, 100)
    sum_negative = negative_attribution_magnitude(decision_attribution)
    wins = recent_wins if is_finite_number(recent_wins) else 0
    suppressed = suppressed_intents if is_finite_number(suppressed_intents) else 0

    negative_adj = _score(clamp(round_half_up(sum_negative * 2), 0, 25))
    wins_adj = _score(clamp(round_half_up(wins), 0, 5))
    suppressed_adj = _score(clamp(round_half_up(suppressed / 2), 0, 10))

    exposure = _score(100 - safe_health + negative_adj - wins_adj + suppressed_adj)
    level = risk_level(exposure)

    signals = []
    if level in (RiskLevel.HIGH.value, RiskLevel.CRITICAL.value):
        signals.append("Elevated exposure vs. health baseline")
    if sum_negative > 0:
        signals.append("Negative decision impact detected")
    if suppressed > 0:
        signals.append("Suppressed intents reduce momentum")
    if wins > 0:
        signals.append("Recent wins mitigate risk")

    node = {
        "id": "portfolio",
        "label": "Portfolio Overview",
        "exposure_score": exposure,
        "risk_level": level,
        "trend": risk_trend(score_delta),
    }
    if signals:
        node["signals"] = signals[:MAX_SIGNALS]
    return [node]
