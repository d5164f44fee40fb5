"""
Executive report diagnostics: signal strength, risk heatmap, systemic
patterns and the portfolio phase. Inputs are portfolio row dicts.
"""

from __future__ import annotations

from enum import Enum

from control_tower.models.portfolio import SEVERITY_RANK, HealthBand
from control_tower.utils.helpers import clamp, round_half_up, to_float

MAX_PATTERNS = 5
MAX_AFFECTED = 10


class PortfolioPhase(str, Enum):
    STABILIZATION = "Stabilization Phase"
    REALIGNMENT = "Realignment Phase"
    OPTIMIZATION = "Optimization Phase"
    EXPANSION = "Expansion Phase"


def has_risk(row: dict, code: str) -> bool:
    return any(risk.get("code") == code for risk in row.get("risks", []))


def _inputs(snapshot) -> dict:
    alignment = ((snapshot or {}).get("strategy") or {}).get("alignment") or {}
    inputs = (alignment.get("diagnostics") or {}).get("inputs") or {}
    return {k: max(0, int(to_float(inputs.get(k), 0))) for k in ("artifacts", "actions", "outcomes")}


# ═════════════════════════════════════════════════════════════════════════════
# Signal strength
# ═════════════════════════════════════════════════════════════════════════════

SIGNAL_NOTES = {
    "high": "Signal is sufficient for high-confidence diagnosis.",
    "medium": "Signal is moderate; validate assumptions in next review cycle.",
    "low": "Signal is weak; increase artifact and outcome evidence before major decisions.",
}


def compute_signal_strength(snapshot) -> dict:
    """Evidence volume; artifacts and outcomes weigh double."""
    inputs = _inputs(snapshot)
    weighted = inputs["artifacts"] * 2 + inputs["actions"] + inputs["outcomes"] * 2
    if weighted >= 25:
        confidence = "high"
    elif weighted >= 10:
        confidence = "medium"
    else:
        confidence = "low"
    return {**inputs, "confidence": confidence, "note": SIGNAL_NOTES[confidence]}


# ═════════════════════════════════════════════════════════════════════════════
# Heatmap
# ═════════════════════════════════════════════════════════════════════════════

def _percent(count: int, total: int) -> int:
    return round_half_up(clamp(count / total * 100, 0, 100))


def compute_risk_distribution(rows: list[dict]) -> dict:
    total = len(rows) or 1
    at_risk = sum(1 for r in rows if r["health_band"] in (HealthBand.CRITICAL.value, HealthBand.RISK.value))
    drifting = sum(1 for r in rows if r["drift_detected"])
    high_confidence = sum(1 for r in rows if r["confidence"] == "high")
    low_signal = sum(1 for r in rows if has_risk(r, "low_signal") or r["confidence"] == "low")
    return {
        "at_risk_percent": _percent(at_risk, total),
        "drifting_percent": _percent(drifting, total),
        "high_confidence_percent": _percent(high_confidence, total),
        "low_signal_percent": _percent(low_signal, total),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Systemic patterns
# ═════════════════════════════════════════════════════════════════════════════

def _severity_for_ratio(ratio: float) -> str:
    if ratio >= 0.5:
        return "high"
    if ratio >= 0.25:
        return "medium"
    return "low"


def _pattern(code, title, severity, narrative, rows):
    return {
        "code": code,
        "title": title,
        "severity": severity,
        "narrative": narrative,
        "affected": [
            {"workspace_id": r["workspace_id"], "slug": r["workspace_slug"], "name": r["workspace_name"]}
            for r in rows[:MAX_AFFECTED]
        ],
    }


def detect_systemic_patterns(rows: list[dict]) -> list[dict]:
    total = len(rows) or 1
    patterns = []

    drifting = [r for r in rows if r["drift_detected"]]
    if len(drifting) >= 2:
        patterns.append(_pattern(
            "drift_cluster", "Drift cluster", _severity_for_ratio(len(drifting) / total),
            "Strategic drift is concentrated across multiple workspaces, indicating systemic execution instability.",
            drifting,
        ))

    low_alignment = [r for r in rows if r["strategic_alignment_score"] < 55]
    if len(low_alignment) >= 2:
        patterns.append(_pattern(
            "low_alignment_pattern", "Low alignment pattern", _severity_for_ratio(len(low_alignment) / total),
            "Alignment scores indicate strategic intent is not consistently reflected in execution priorities.",
            low_alignment,
        ))

    stalled = [r for r in rows if has_risk(r, "stalled_execution")]
    if len(stalled) >= 2:
        patterns.append(_pattern(
            "execution_bottleneck", "Execution bottleneck", _severity_for_ratio(len(stalled) / total),
            "Operational bottlenecks are preventing actions from closing into outcomes.",
            stalled,
        ))

    no_plan = [r for r in rows if has_risk(r, "no_weekly_plan")]
    if len(no_plan) >= 2:
        patterns.append(_pattern(
            "missing_weekly_planning", "Missing weekly planning", _severity_for_ratio(len(no_plan) / total),
            "A material share of workspaces lacks a complete weekly strategic move set.",
            no_plan,
        ))

    leverage = [r for r in rows if r["health_band"] == HealthBand.STRONG.value and r["momentum_band"] == "up"]
    if len(leverage) >= 2:
        patterns.append(_pattern(
            "high_performance_leverage_zone", "High-performance leverage zone",
            "low" if len(leverage) / total >= 0.25 else "medium",
            "High-performing workspaces create an opportunity to transfer proven playbooks across the portfolio.",
            leverage,
        ))

    patterns.sort(key=lambda p: (-SEVERITY_RANK[p["severity"]], p["title"]))
    return patterns[:MAX_PATTERNS]


# ═════════════════════════════════════════════════════════════════════════════
# Phase
# ═════════════════════════════════════════════════════════════════════════════

def classify_portfolio_phase(rows: list[dict], risk_distribution: dict, patterns: list[dict]) -> str:
    total = len(rows) or 1
    critical_ratio = sum(1 for r in rows if r["health_band"] == HealthBand.CRITICAL.value) / total
    drift_ratio = sum(1 for r in rows if r["drift_detected"]) / total
    strong_ratio = sum(1 for r in rows if r["health_band"] == HealthBand.STRONG.value) / total

    if critical_ratio >= 0.35 or risk_distribution["at_risk_percent"] >= 55:
        return PortfolioPhase.STABILIZATION.value
    low_alignment = any(p["code"] == "low_alignment_pattern" and p["severity"] != "low" for p in patterns)
    if drift_ratio >= 0.35 or low_alignment:
        return PortfolioPhase.REALIGNMENT.value
    if strong_ratio >= 0.4 and risk_distribution["drifting_percent"] <= 25:
        return PortfolioPhase.EXPANSION.value
    return PortfolioPhase.OPTIMIZATION.value
