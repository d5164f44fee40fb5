"""
Executive Report Engine.

Builds the board-level report model for a set of workspaces:

    1. scope filter + workspace cap (sorted by slug)
    2. portfolio snapshot → filtered rows → ranking matrix (top 10)
    3. systemic patterns, risk heatmap, phase, priority plays, headline
    4. per-workspace brief: signal, diagnosis, weekly moves with adoption,
       risk register and five prescribed actions
    5. accountability overview + audit trail from the adoption store

Workspaces are processed sequentially in slug order so the output is
deterministic. Snapshot loading is delegated to the caller.
"""

from __future__ import annotations

import logging

from control_tower.models.adoption import AdoptionStatus
from control_tower.models.moves import EFFORTS, MOVE_KIND_ORDER, RISKS
from control_tower.models.portfolio import HealthBand
from control_tower.services.adoption_store import get_adoption_meta, list_recent_adoption_events
from control_tower.services.portfolio_service import build_portfolio_snapshot
from control_tower.services.report_diagnostics import (
    classify_portfolio_phase,
    compute_risk_distribution,
    compute_signal_strength,
    detect_systemic_patterns,
    has_risk,
)
from control_tower.services.report_narrative import (
    generate_confidence_note,
    generate_diagnosis_for_workspace,
    generate_executive_headline,
    generate_portfolio_narrative,
    select_priority_plays,
)
from control_tower.utils.helpers import DAY_SECONDS, normalize_iso, round_half_up, to_float, to_millis

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Content Control Tower"
DEFAULT_SUBTITLE = "Strategic Portfolio Intelligence"
MAX_WORKSPACES = 25
RANKING_MATRIX_SIZE = 10
MAX_RISK_REGISTER = 5
PRESCRIPTION_SIZE = 5
MAX_AUDIT_EVENTS = 3

SCOPES = ("all", "critical", "drifting", "strong", "misalignment", "no_plan")

BASELINE_SIGNAL = "Baseline snapshot (at adoption)"
OUTCOME_SIGNAL = "Outcome events (72h)"
INTENT_SIGNAL = "Intent sessions (2h)"

CONFIDENCE_NOTES = {
    "high": "Impact is measured with high confidence based on sufficient signals.",
    "medium": "Impact is directional; confidence is medium due to limited signals.",
    "low": "Impact is early and may be noisy; confidence is low due to sparse signals.",
}
_CONFIDENCE_SCORE = {"high": 3, "medium": 2}


# ═════════════════════════════════════════════════════════════════════════════
# Scope
# ═════════════════════════════════════════════════════════════════════════════

def normalize_scope(value) -> str:
    if not isinstance(value, str) or not value.strip():
        return "all"
    return value.strip().lower()


def clamp_workspaces(workspaces, limit: int = MAX_WORKSPACES) -> list[dict]:
    return sorted(workspaces or [], key=lambda ws: str(ws.get("slug", "")))[:limit]


def apply_filter(rows: list[dict], scope: str) -> list[dict]:
    """Unknown scopes keep every row."""
    if scope == "critical":
        return [r for r in rows if r["health_band"] == HealthBand.CRITICAL.value]
    if scope == "drifting":
        return [r for r in rows if r["drift_detected"]]
    if scope == "strong":
        return [r for r in rows if r["health_band"] == HealthBand.STRONG.value]
    if scope == "misalignment":
        return [r for r in rows if has_risk(r, "misalignment")]
    if scope == "no_plan":
        return [r for r in rows if has_risk(r, "no_weekly_plan")]
    return list(rows)


# ═════════════════════════════════════════════════════════════════════════════
# Prescription
# ═════════════════════════════════════════════════════════════════════════════

def effort_from_score(score) -> str:
    if score >= 70:
        return "S"
    if score >= 45:
        return "M"
    return "L"


def _prescription(title, why, effort, expected_outcome):
    return {"title": title, "why": why, "effort": effort, "expected_outcome": expected_outcome}


def workspace_next_actions(row: dict) -> list[dict]:
    """Exactly five prescribed actions, most specific first."""
    actions = []
    if row["drift_detected"]:
        actions.append(_prescription(
            "Close strategic drift loops",
            "Drift indicates execution divergence from portfolio direction.",
            "M",
            "Drift signal declines in the next weekly cycle.",
        ))
    if has_risk(row, "misalignment"):
        actions.append(_prescription(
            "Redefine top weekly priority",
            "Misalignment reduces strategic return on execution effort.",
            "S",
            "Alignment score increases through explicit priority mapping.",
        ))
    if row["health_band"] in (HealthBand.CRITICAL.value, HealthBand.RISK.value):
        actions.append(_prescription(
            "Reduce non-priority WIP",
            "Lower WIP is required to restore execution reliability.",
            "M",
            "Health score recovers by reducing operational overload.",
        ))
    if has_risk(row, "no_weekly_plan"):
        actions.append(_prescription(
            "Define 3 weekly strategic moves",
            "Missing weekly plan weakens operational focus.",
            "S",
            "Focus, stability and optimization tracks become explicit.",
        ))
    actions.append(_prescription(
        "Tighten leverage loop",
        "Systematic optimization captures value from current momentum.",
        effort_from_score(row["health_score"]),
        "Incremental health and alignment gains with controlled risk.",
    ))
    while len(actions) < PRESCRIPTION_SIZE:
        actions.append(_prescription(
            "Validate weekly success metric",
            "Metric discipline improves execution learning cycle.",
            "S",
            "Higher confidence in strategy-to-outcome interpretation.",
        ))
    return actions[:PRESCRIPTION_SIZE]


# ═════════════════════════════════════════════════════════════════════════════
# Weekly moves & accountability
# ═════════════════════════════════════════════════════════════════════════════

def _signed(value) -> str:
    return f"+{value}" if value >= 0 else str(value)


def _impact_7d(adoption: dict):
    impact = (adoption.get("impact") or {}).get("d7")
    if not isinstance(impact, dict):
        return None
    health, alignment = impact.get("health_delta"), impact.get("alignment_delta")
    if not isinstance(health, (int, float)) or not isinstance(alignment, (int, float)):
        return None
    return impact


def confidence_bucket(scores: list) -> str:
    if not scores:
        return "low"
    average = sum(scores) / len(scores)
    if average >= 2.5:
        return "high"
    if average >= 1.75:
        return "medium"
    return "low"


class _Accountability:
    """Running counters across every brief in the report."""

    def __init__(self, now_iso: str):
        self.now_ms = to_millis(now_iso)
        self.adopted_last_7_days = 0
        self.in_progress = 0
        self.ignored = 0
        self.total_moves = 0
        self.impact_samples = []
        self.confidence_samples = []
        self.last_update = None
        self.events = []
        self.has_outcomes = False
        self.has_intents = False

    def track_move(self, status: str, adoption: dict, impact) -> None:
        self.total_moves += 1
        if status == AdoptionStatus.IGNORED.value:
            self.ignored += 1
        elif status == AdoptionStatus.IN_PROGRESS.value:
            self.in_progress += 1
        elif status == AdoptionStatus.ADOPTED.value and isinstance(adoption.get("adopted_at_iso"), str):
            adopted_ms = to_millis(adoption["adopted_at_iso"])
            if adopted_ms is not None and self.now_ms is not None and self.now_ms - adopted_ms <= 7 * DAY_SECONDS * 1000:
                self.adopted_last_7_days += 1
        if impact is not None:
            self.impact_samples.append(impact["health_delta"] + impact["alignment_delta"])
            self.confidence_samples.append(_CONFIDENCE_SCORE.get(str(impact.get("confidence") or "low"), 1))

    def track_meta(self, meta) -> None:
        if not meta:
            return
        candidate = meta["last_updated_at_iso"]
        if self.last_update is None or (to_millis(candidate) or 0) > (to_millis(self.last_update) or 0):
            self.last_update = candidate

    def recent_events(self) -> list[dict]:
        ordered = sorted(
            self.events,
            key=lambda e: (-(to_millis(e["at_iso"]) or 0), e["move_title"], e["status"], e["source"], e["workspace_id"]),
        )
        return [
            {k: e[k] for k in ("move_title", "status", "at_iso", "source")}
            for e in ordered[:MAX_AUDIT_EVENTS]
        ]

    def to_dict(self) -> dict:
        signals = []
        if self.has_outcomes:
            signals.append(OUTCOME_SIGNAL)
        if self.has_intents:
            signals.append(INTENT_SIGNAL)
        signals.append(BASELINE_SIGNAL)
        audit = {
            "last_adoption_update_at_iso": self.last_update,
            "signals_used": signals,
            "confidence_note": CONFIDENCE_NOTES[confidence_bucket(self.confidence_samples)],
        }
        if self.events:
            audit["recent_adoption_events"] = self.recent_events()
        samples = self.impact_samples
        return {
            "adopted_last_7_days": self.adopted_last_7_days,
            "ignored": self.ignored,
            "in_progress": self.in_progress,
            "total_moves": self.total_moves,
            "avg_impact_delta_7": round_half_up(sum(samples) / len(samples)) if samples else 0,
            "audit": audit,
        }


def _brief_moves(snapshot: dict, accountability: _Accountability) -> list[dict]:
    raw = ((snapshot.get("strategy") or {}).get("weekly_moves")) or []
    moves = [m for m in raw if isinstance(m, dict) and m.get("kind") in MOVE_KIND_ORDER][:3]
    briefs = []
    for move in moves:
        adoption = move.get("adoption") if isinstance(move.get("adoption"), dict) else {}
        status = adoption.get("status")
        if status not in [s.value for s in AdoptionStatus]:
            status = AdoptionStatus.NOT_STARTED.value
        impact = _impact_7d(adoption)
        accountability.track_move(status, adoption, impact)

        health_delta = to_float((move.get("expected_impact") or {}).get("health_score_delta"), 0)
        brief = {
            "kind": move["kind"],
            "title": str(move.get("title") or "Strategic move"),
            "metric": str(move.get("success_metric") or "Define measurable weekly target"),
            "effort": move.get("effort") if move.get("effort") in EFFORTS else "M",
            "risk": move.get("risk") if move.get("risk") in RISKS else "medium",
            "expected_impact": f"Health delta {round_half_up(health_delta)}",
            "adoption_status": status,
        }
        if impact is not None:
            brief["impact_7d_text"] = (
                f"Impact (7d): {_signed(impact['health_delta'])} Health, "
                f"{_signed(impact['alignment_delta'])} Alignment, "
                f"Confidence {impact.get('confidence') or 'low'}"
            )
        briefs.append(brief)
    return briefs


# ═════════════════════════════════════════════════════════════════════════════
# Layout
# ═════════════════════════════════════════════════════════════════════════════

def build_report_layout(workspace_briefs: list[dict]) -> list[dict]:
    sections = [
        {"id": "executive-summary", "title": "Executive Summary", "page_break_before": False, "page_hint": 1},
        {
            "id": "portfolio-structural-analysis",
            "title": "Portfolio Structural Analysis",
            "page_break_before": True,
            "page_hint": 2,
        },
    ]
    for index, brief in enumerate(workspace_briefs):
        sections.append({
            "id": f"workspace-{brief['workspace_slug']}",
            "title": f"Workspace Strategic Brief: {brief['workspace_name']}",
            "page_break_before": True,
            "page_hint": 3 + index,
        })
    return sections


# ═════════════════════════════════════════════════════════════════════════════
# Report
# ═════════════════════════════════════════════════════════════════════════════

def _mean(values) -> int:
    values = list(values)
    return round_half_up(sum(values) / len(values)) if values else 0


def build_executive_report(
    store,
    workspaces,
    load_workspace_snapshot,
    load_portfolio_snapshot=None,
    now_iso=None,
    filter=None,
    title=DEFAULT_TITLE,
    subtitle=DEFAULT_SUBTITLE,
    max_workspaces=MAX_WORKSPACES,
) -> dict:
    """Assemble the executive report model.

    Args:
        store: cache store holding adoption metadata and audit events.
        workspaces: ``[{id, slug, name}, ...]``.
        load_workspace_snapshot: ``(workspace_id, now_iso) -> dict``.
        load_portfolio_snapshot: ``(now_iso, workspaces) -> dict``; defaults
            to ranking the workspace snapshots with ``build_portfolio_snapshot``.
        now_iso: report timestamp; malformed values fall back to the epoch.
        filter: scope (``all|critical|drifting|strong|misalignment|no_plan``).

    Returns:
        dict report model with an ``accountability`` block.
    """
    scope = normalize_scope(filter)
    now_iso = normalize_iso(now_iso)
    workspace_list = clamp_workspaces(workspaces, max_workspaces)

    if load_portfolio_snapshot is None:
        def load_portfolio_snapshot(at_iso, items):
            return build_portfolio_snapshot(items, lambda ws_id: load_workspace_snapshot(ws_id, at_iso), at_iso)

    portfolio_snapshot = load_portfolio_snapshot(now_iso, workspace_list)
    rows = apply_filter(portfolio_snapshot.get("rows") or [], scope)

    patterns = detect_systemic_patterns(rows)
    heatmap = compute_risk_distribution(rows)
    phase = classify_portfolio_phase(rows, heatmap, patterns)
    has_low_signal = any(has_risk(r, "low_signal") for r in rows)
    plays = select_priority_plays(phase, has_low_signal)

    accountability = _Accountability(now_iso)
    rows_by_id = {r["workspace_id"]: r for r in rows}
    briefs = []
    attribution = []

    for workspace in workspace_list:
        row = rows_by_id.get(workspace["id"])
        if row is None:
            continue
        snapshot = load_workspace_snapshot(workspace["id"], now_iso)
        snapshot = snapshot if isinstance(snapshot, dict) else {}

        accountability.track_meta(get_adoption_meta(store, workspace["id"]))
        for event in list_recent_adoption_events(store, workspace["id"], MAX_AUDIT_EVENTS):
            accountability.events.append({**event, "workspace_id": workspace["id"]})

        signal = compute_signal_strength(snapshot)
        if signal["outcomes"] > 0:
            accountability.has_outcomes = True
        if signal["actions"] > 0:
            accountability.has_intents = True
        if isinstance(snapshot.get("decision_attribution"), list):
            attribution.extend(snapshot["decision_attribution"])

        briefs.append({
            "workspace_id": row["workspace_id"],
            "workspace_slug": row["workspace_slug"],
            "workspace_name": row["workspace_name"],
            "strategic_status": {
                "health": row["health_score"],
                "alignment": row["strategic_alignment_score"],
                "drift": row["drift_detected"],
                "confidence": row["confidence"],
            },
            "executive_diagnosis": generate_diagnosis_for_workspace(row, snapshot),
            "weekly_moves": _brief_moves(snapshot, accountability),
            "risk_register": [
                {"label": r["label"], "severity": r["severity"], "evidence": r["evidence"]}
                for r in row["risks"][:MAX_RISK_REGISTER]
            ],
            "operational_prescription": workspace_next_actions(row),
            "signal": {**signal, "note": generate_confidence_note(signal)},
        })

    model = {
        "meta": {
            "title": title,
            "subtitle": subtitle,
            "generated_at_iso": now_iso,
            "scope": scope,
            "phase": phase,
        },
        "executive_summary": {
            "strategic_headline": generate_executive_headline(phase, rows, patterns),
            "portfolio_narrative": generate_portfolio_narrative(rows, phase, patterns),
            "kpis": {
                "total_workspaces": len(rows),
                "critical": sum(1 for r in rows if r["health_band"] == HealthBand.CRITICAL.value),
                "drifting": sum(1 for r in rows if r["drift_detected"]),
                "strong": sum(1 for r in rows if r["health_band"] == HealthBand.STRONG.value),
                "average_alignment": _mean(r["strategic_alignment_score"] for r in rows),
                "average_health": _mean(r["health_score"] for r in rows),
            },
            "priority_plays": plays,
        },
        "structural_analysis": {
            "ranking_matrix": rows[:RANKING_MATRIX_SIZE],
            "systemic_patterns": patterns,
            "risk_heatmap": heatmap,
        },
        "workspace_briefs": briefs,
        "source": {
            "portfolio_snapshot": portfolio_snapshot,
            "workspace_snapshot_count": len(briefs),
        },
        "layout": {"sections": build_report_layout(briefs)},
        "accountability": accountability.to_dict(),
    }
    if attribution:
        model["decision_attribution"] = attribution

    logger.info(
        "Executive report built: scope=%s phase=%s rows=%d briefs=%d",
        scope, phase, len(rows), len(briefs),
    )
    return model
