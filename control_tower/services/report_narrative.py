"""
Executive report wording: headline, portfolio narrative, per-workspace
diagnosis, confidence notes, and the priority playbooks.
"""

from __future__ import annotations

from control_tower.models.portfolio import HealthBand
from control_tower.services.report_diagnostics import PortfolioPhase, has_risk
from control_tower.utils.helpers import round_half_up

MAX_PLAYS = 3


def _mean(values) -> int:
    values = list(values)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


# ═════════════════════════════════════════════════════════════════════════════
# Portfolio
# ═════════════════════════════════════════════════════════════════════════════

def generate_executive_headline(phase: str, rows: list[dict], patterns: list[dict]) -> str:
    drifting = sum(1 for r in rows if r["drift_detected"])
    critical = sum(1 for r in rows if r["health_band"] == HealthBand.CRITICAL.value)
    strong = sum(1 for r in rows if r["health_band"] == HealthBand.STRONG.value)

    if phase == PortfolioPhase.STABILIZATION.value:
        return (
            f"Portfolio execution is structurally unstable: {critical} critical workspaces and "
            f"{drifting} drifting segments require immediate stabilization."
        )
    if phase == PortfolioPhase.REALIGNMENT.value:
        return (
            "Portfolio direction is fragmented: drift and alignment gaps indicate strategic "
            "realignment is needed across operating units."
        )
    if phase == PortfolioPhase.EXPANSION.value:
        return (
            f"Core portfolio is stable with {strong} strong workspaces; leverage transfer can "
            "accelerate expansion without increasing systemic risk."
        )
    dominant = patterns[0]["title"] if patterns else "mixed execution signals"
    return f"Portfolio is operationally stable with {dominant.lower()} as the primary optimization opportunity."


def generate_portfolio_narrative(rows: list[dict], phase: str, patterns: list[dict]) -> str:
    alignment_avg = _mean(r["strategic_alignment_score"] for r in rows)
    health_avg = _mean(r["health_score"] for r in rows)
    if patterns:
        top = patterns[0]
        clause = f"Primary structural signal: {top['title'].lower()} affecting {len(top['affected'])} workspaces."
    else:
        clause = "No concentrated structural pattern detected beyond baseline variance."
    return f"Phase: {phase}. Portfolio averages are alignment {alignment_avg} and health {health_avg}. {clause}"


# ═════════════════════════════════════════════════════════════════════════════
# Workspace
# ═════════════════════════════════════════════════════════════════════════════

def generate_diagnosis_for_workspace(row: dict, snapshot) -> str:
    execution_problem = has_risk(row, "stalled_execution") or has_risk(row, "no_weekly_plan")
    strategy_problem = has_risk(row, "misalignment") or has_risk(row, "strategic_drift")
    if execution_problem and strategy_problem:
        problem = "strategy-execution coupling"
    elif strategy_problem:
        problem = "strategic positioning"
    else:
        problem = "execution cadence"
    scope = "systemic" if row["drift_detected"] or len(row["risks"]) >= 3 else "localized"

    alignment = ((snapshot or {}).get("strategy") or {}).get("alignment") or {}
    misaligned = alignment.get("top_misaligned") if isinstance(alignment.get("top_misaligned"), list) else []
    if misaligned:
        evidence = f"Evidence indicates {len(misaligned)} misaligned signals in current cycle."
    else:
        evidence = "Evidence indicates no concentrated misalignment incident."

    if row["drift_detected"]:
        focus = "drift closure"
    elif row["health_band"] == HealthBand.CRITICAL.value:
        focus = "health recovery"
    else:
        focus = "targeted optimization"
    return (
        f"{row['workspace_name']} shows {problem} pressure with {scope} impact. {evidence} "
        f"Current status suggests intervention should prioritize {focus}."
    )


def generate_confidence_note(signal: dict) -> str:
    return (
        f"Confidence: {signal['confidence'].upper()} (artifacts {signal['artifacts']}, "
        f"actions {signal['actions']}, outcomes {signal['outcomes']}). {signal['note']}"
    )


# ═════════════════════════════════════════════════════════════════════════════
# Playbooks
# ═════════════════════════════════════════════════════════════════════════════

PLAYBOOKS = {
    "stabilize": {
        "title": "Stabilize",
        "why_this_matters": "Critical health and drift concentration can cascade into broader execution failure.",
        "what_will_change": "Operational volatility is reduced through strict closure and WIP control.",
        "actions": [
            "Freeze non-priority work in critical workspaces.",
            "Close open decision loops within 48 hours.",
            "Assign single-thread owner for each critical workspace.",
            "Review blocked actions daily until risk band improves.",
        ],
        "expected_outcome": "Critical ratio declines and near-term execution reliability recovers.",
    },
    "realign": {
        "title": "Realign",
        "why_this_matters": "Low alignment weakens strategic coherence and reduces return on effort.",
        "what_will_change": "Weekly action sets map directly to strategic priorities and measurable outcomes.",
        "actions": [
            "Re-state top priority per workspace in one sentence.",
            "Remove actions that do not map to a priority.",
            "Define one measurable success metric for each priority.",
            "Run weekly alignment review with explicit keep/drop decisions.",
        ],
        "expected_outcome": "Alignment score increases and drift frequency declines.",
    },
    "optimize": {
        "title": "Optimize",
        "why_this_matters": "Stable segments can create leverage when replicated into at-risk areas.",
        "what_will_change": "High-performing execution patterns are transferred as standard operating plays.",
        "actions": [
            "Identify top two strong workspaces and extract repeatable plays.",
            "Apply one optimization play to each risk workspace.",
            "Track outcome delta over one weekly cycle.",
        ],
        "expected_outcome": "Portfolio average health and momentum improve without additional strategic drift.",
    },
    "signal_strengthening": {
        "title": "Signal Strengthening",
        "why_this_matters": "Low signal quality reduces confidence in strategic diagnosis.",
        "what_will_change": "Artifact and outcome evidence increase, improving decision reliability.",
        "actions": [
            "Require minimum artifact and outcome logging per workspace.",
            "Add weekly evidence check in portfolio review.",
            "Escalate low-signal workspaces until baseline sufficiency is met.",
        ],
        "expected_outcome": "Confidence distribution shifts from low to medium/high across portfolio diagnostics.",
    },
}

PHASE_PLAY_ORDER = {
    PortfolioPhase.STABILIZATION.value: ("stabilize", "realign", "optimize"),
    PortfolioPhase.REALIGNMENT.value: ("realign", "stabilize", "optimize"),
    PortfolioPhase.OPTIMIZATION.value: ("optimize", "realign", "stabilize"),
    PortfolioPhase.EXPANSION.value: ("optimize", "realign", "stabilize"),
}


def select_priority_plays(phase: str, has_low_signal: bool) -> list[dict]:
    """Phase-ordered plays; low signal takes the last of the three slots."""
    order = list(PHASE_PLAY_ORDER.get(phase, PHASE_PLAY_ORDER[PortfolioPhase.OPTIMIZATION.value]))
    if has_low_signal:
        order = order[:MAX_PLAYS - 1] + ["signal_strengthening"]
    return [
        {"id": play_id, **PLAYBOOKS[play_id], "actions": list(PLAYBOOKS[play_id]["actions"]), "priority": index + 1}
        for index, play_id in enumerate(order[:MAX_PLAYS])
    ]
