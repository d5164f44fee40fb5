"""
Portfolio Aggregator.

Maps one snapshot per workspace into a ranked row, then derives the
portfolio summary and cross-workspace insights:

    rows      worst first: band → drift → health → alignment → momentum → name
    summary   totals + one headline (critical > drifting > strong > stable)
    insights  clusters of ≥2 (≥3 for misalignment), else a baseline insight

Snapshots are loosely shaped dicts; every score is read through a chain of
fallback paths and clamped, so a missing or malformed snapshot still
produces a row.
"""

from __future__ import annotations

import logging

from control_tower.models.moves import MOVE_KIND_ORDER
from control_tower.models.portfolio import SEVERITY_RANK, HealthBand, MomentumBand, PortfolioRow
from control_tower.services import portfolio_copy as copy
from control_tower.utils.helpers import clamp, normalize_iso, round_half_up, stable_hash, to_float

logger = logging.getLogger(__name__)

MAX_RISKS = 5
MAX_INSIGHTS = 6
MAX_AFFECTED = 6
MAX_PLAY_STEPS = 5
MAX_NOTES = 3


# ═════════════════════════════════════════════════════════════════════════════
# Snapshot readers
# ═════════════════════════════════════════════════════════════════════════════

def _dig(data, *path):
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _alignment_block(snapshot):
    for path in (("strategy", "strategic_alignment"), ("strategy", "alignment"), ("strategic_alignment",)):
        block = _dig(snapshot, *path)
        if isinstance(block, dict):
            return block
    return {}


def _number(snapshot, paths, default):
    for path in paths:
        value = to_float(_dig(snapshot, *path))
        if value is not None:
            return value
    return default


def _top_moves(snapshot) -> list[dict]:
    moves = _dig(snapshot, "strategy", "weekly_moves")
    if not isinstance(moves, list):
        return []
    return [
        {"title": m["title"], "kind": m["kind"]}
        for m in moves
        if isinstance(m, dict) and isinstance(m.get("title"), str) and m.get("kind") in MOVE_KIND_ORDER
    ][:3]


def _risk(code, severity, evidence):
    return {"code": code, "label": copy.RISK_LABELS[code], "severity": severity, "evidence": evidence}


def _risks(health, alignment_score, drift, confidence, top_moves, alignment) -> list[dict]:
    risks = []
    if drift:
        risks.append(_risk("strategic_drift", "high", f"Alignment {alignment_score}, drift detected"))
    if health < 40:
        risks.append(_risk("low_health", "high", f"Health {health}"))
    if alignment_score < 55:
        risks.append(_risk("misalignment", "high" if alignment_score < 45 else "medium", f"Alignment {alignment_score}"))
    if len(top_moves) < 3:
        risks.append(_risk("no_weekly_plan", "medium", f"Weekly moves {len(top_moves)}/3"))

    misaligned = alignment.get("top_misaligned") if isinstance(alignment.get("top_misaligned"), list) else []
    stalled = [
        entry for entry in misaligned
        if isinstance(entry, dict) and any(m in str(entry.get("reason", "")).lower() for m in copy.STALLED_MARKERS)
    ]
    if stalled:
        risks.append(_risk("stalled_execution", "medium", f"Detected {len(stalled)} stalled signals"))

    inputs = _dig(alignment, "diagnostics", "inputs") or {}
    artifacts, actions = inputs.get("artifacts"), inputs.get("actions")
    if (
        confidence == "low"
        and isinstance(artifacts, (int, float))
        and isinstance(actions, (int, float))
        and artifacts < 1
        and actions < 5
    ):
        risks.append(_risk("low_signal", "low", f"Inputs artifacts={artifacts}, actions={actions}"))

    risks.sort(key=lambda r: (-SEVERITY_RANK[r["severity"]], r["code"]))
    return risks[:MAX_RISKS]


def map_workspace_to_row(workspace: dict, snapshot, now_iso: str) -> PortfolioRow:
    snapshot = snapshot if isinstance(snapshot, dict) else {}
    alignment = _alignment_block(snapshot)

    alignment_score = round_half_up(clamp(to_float(alignment.get("alignment_score"), 50), 0, 100))
    drift = alignment.get("drift_detected") is True
    confidence = alignment.get("confidence") if alignment.get("confidence") in ("high", "medium") else "low"
    health = round_half_up(clamp(
        _number(snapshot, (("health_score",), ("metrics", "health_score"), ("overview", "health_score")), alignment_score),
        0, 100,
    ))
    momentum = round_half_up(clamp(
        _number(snapshot, (("impact", "trend_7d", "score"), ("trend_7d", "score"), ("metrics", "momentum_7d")), 0),
        -100, 100,
    ))
    top_moves = _top_moves(snapshot)

    return PortfolioRow(
        workspace_id=str(workspace.get("id", "")),
        workspace_slug=str(workspace.get("slug") or workspace.get("id", "")),
        workspace_name=str(workspace.get("name") or workspace.get("slug") or workspace.get("id", "")),
        health_score=health,
        momentum_7d=momentum,
        strategic_alignment_score=alignment_score,
        drift_detected=drift,
        confidence=confidence,
        risks=_risks(health, alignment_score, drift, confidence, top_moves, alignment),
        top_moves=top_moves,
        updated_at_iso=normalize_iso(snapshot.get("generated_at_iso") or snapshot.get("updated_at_iso"), now_iso),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Insights
# ═════════════════════════════════════════════════════════════════════════════

def make_insight(key: str, severity: str, rows: list[PortfolioRow], play_key: str) -> dict:
    title, narrative = copy.INSIGHTS[key]
    affected = [row.ref() for row in rows[:MAX_AFFECTED]]
    ids = ",".join(sorted(ref["workspace_id"] for ref in affected))
    play = copy.PLAYBOOKS[play_key]
    return {
        "id": "pin_" + stable_hash(f"{title}|{ids}"),
        "title": title,
        "narrative": narrative,
        "severity": severity,
        "affected_workspaces": affected,
        "recommended_play": {"title": play["title"], "steps": list(play["steps"])[:MAX_PLAY_STEPS]},
    }


def build_insights(rows: list[PortfolioRow]) -> list[dict]:
    insights = []
    drifting = [r for r in rows if r.drift_detected]
    if len(drifting) >= 2:
        insights.append(make_insight("drift", "high", drifting, "drift"))

    critical = [r for r in rows if r.health_band == HealthBand.CRITICAL.value]
    if len(critical) >= 2:
        insights.append(make_insight("critical", "high", critical, "critical"))

    misaligned = [r for r in rows if r.strategic_alignment_score < 55]
    if len(misaligned) >= 3:
        insights.append(make_insight("misalignment", "medium", misaligned, "misalignment"))

    no_plan = [r for r in rows if r.has_risk("no_weekly_plan")]
    if len(no_plan) >= 2:
        insights.append(make_insight("no_plan", "medium", no_plan, "no_plan"))

    rising = [r for r in rows if r.health_band == HealthBand.STRONG.value and r.momentum_band == MomentumBand.UP.value]
    if len(rising) >= 2:
        insights.append(make_insight("opportunity", "low", rising, "opportunity"))

    if not insights and rows:
        insights.append(make_insight("baseline", "low", rows, "no_plan"))
    return insights[:MAX_INSIGHTS]


# ═════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═════════════════════════════════════════════════════════════════════════════

def _summary(rows: list[PortfolioRow]) -> dict:
    critical = [r for r in rows if r.health_band == HealthBand.CRITICAL.value]
    drifting = [r for r in rows if r.drift_detected]
    strong = [r for r in rows if r.health_band == HealthBand.STRONG.value]

    if critical:
        headline = copy.headline_critical(len(critical))
    elif drifting:
        headline = copy.headline_drifting(len(drifting))
    elif strong:
        headline = copy.headline_strong(len(strong))
    else:
        headline = copy.HEADLINE_STABLE

    notes = []
    if rows:
        worst = rows[0]
        notes.append(
            f"Most at risk: {worst.workspace_name} "
            f"(Health {worst.health_score}, Alignment {worst.strategic_alignment_score})"
        )
    if drifting:
        notes.append("Drift hotspots: " + ", ".join(r.workspace_name for r in drifting[:2]))
    if strong:
        notes.append("Top performers: " + ", ".join(r.workspace_name for r in strong[:2]))

    return {
        "total": len(rows),
        "critical": len(critical),
        "drifting": len(drifting),
        "strong": len(strong),
        "headline": headline,
        "notes": notes[:MAX_NOTES],
    }


def rank_rows(rows: list[PortfolioRow]) -> list[PortfolioRow]:
    return sorted(rows, key=PortfolioRow.sort_key)


def build_portfolio_snapshot(workspaces, load_workspace_snapshot, now_iso=None) -> dict:
    """Rank every workspace and summarise the portfolio.

    *load_workspace_snapshot* is called once per workspace, in input order.
    """
    now_iso = normalize_iso(now_iso)
    rows = []
    for workspace in workspaces or []:
        snapshot = load_workspace_snapshot(workspace["id"])
        rows.append(map_workspace_to_row(workspace, snapshot, now_iso))
    rows = rank_rows(rows)
    logger.debug("Portfolio snapshot: %d rows", len(rows))
    return {
        "generated_at_iso": now_iso,
        "summary": _summary(rows),
        "insights": build_insights(rows),
        "rows": [row.to_dict() for row in rows],
    }
