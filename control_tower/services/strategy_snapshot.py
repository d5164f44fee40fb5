"""
Strategy snapshot orchestration — one workspace, one point in time.

Pipeline:
    artifacts → alignment → weekly moves → adoption events (intent/outcome)
      → adoption enrichment → move impact → decision attribution
      → recent ledger entries → supported scenario levers

Each stage degrades on its own: a failed alignment becomes the neutral
result, failed move generation is retried from neutral inputs. The
returned dicts are what the portfolio and report engines read.
"""

from __future__ import annotations

import logging

from control_tower.models.adoption import AdoptionStatus
from control_tower.models.scenario import SUPPORTED_LEVERS
from control_tower.models.strategy import coerce_actions, coerce_outcomes
from control_tower.services.adoption_engine import enrich_moves_with_adoption
from control_tower.services.adoption_store import record_adoption_event
from control_tower.services.artifact_store import get_strategic_artifacts
from control_tower.services.attribution_engine import compute_decision_attribution
from control_tower.services.impact_engine import compute_move_impact
from control_tower.services.ledger_store import get_ledger_entries
from control_tower.services.risk_engine import compute_portfolio_risk
from control_tower.services.strategic_alignment import (
    StrategicAlignmentResult,
    safe_compute_strategic_alignment,
)
from control_tower.services.strategic_moves import get_or_generate_weekly_moves
from control_tower.utils.helpers import clamp, is_finite_number, iso_week_key, normalize_iso, round_half_up

logger = logging.getLogger(__name__)

ATTRIBUTION_WINDOWS = (7, 14)
LEDGER_PREVIEW = 10


# ═════════════════════════════════════════════════════════════════════════════
# Move linking
# ═════════════════════════════════════════════════════════════════════════════

def _link_action(action, moves):
    ids = {m.id for m in moves}
    for candidate in (action.id, action.title, action.name, action.kind, action.type):
        if not candidate:
            continue
        if candidate in ids:
            return candidate
        for move in moves:
            if move.id in candidate:
                return move.id
    return None


def _link_outcome(outcome, moves):
    ids = {m.id for m in moves}
    if outcome.session_id in ids:
        return outcome.session_id
    for move in moves:
        if outcome.details and move.id in outcome.details:
            return move.id
    return None


def _record_events(store, workspace_id, moves, actions, outcomes, now_iso):
    titles = {m.id: m.title for m in moves}
    for action in actions:
        move_id = _link_action(action, moves)
        if move_id:
            record_adoption_event(
                store, workspace_id, move_id, "intent",
                occurred_at_iso=action.created_at or now_iso, move_title=titles[move_id],
            )
    for outcome in outcomes:
        move_id = _link_outcome(outcome, moves)
        if move_id:
            record_adoption_event(
                store, workspace_id, move_id, "outcome",
                occurred_at_iso=outcome.occurred_at or outcome.created_at or now_iso,
                move_title=titles[move_id],
            )


# ═════════════════════════════════════════════════════════════════════════════
# Snapshots
# ═════════════════════════════════════════════════════════════════════════════

def extract_control_score(snapshot):
    """health_score, else strategy.alignment.alignment_score, else None."""
    if not isinstance(snapshot, dict):
        return None
    if is_finite_number(snapshot.get("health_score")):
        return snapshot["health_score"]
    alignment = (snapshot.get("strategy") or {}).get("alignment") or {}
    if isinstance(alignment, dict) and is_finite_number(alignment.get("alignment_score")):
        return alignment["alignment_score"]
    return None


def _default_baseline(alignment: StrategicAlignmentResult) -> dict:
    return {
        "health_score": clamp(alignment.alignment_score - 2, 0, 100),
        "strategy": {"alignment": {"alignment_score": clamp(alignment.alignment_score - 1, 0, 100)}},
    }


def build_strategy_snapshot(store, workspace_id, recent_actions=None, outcomes=None, now_iso=None, baseline_snapshot=None, current_snapshot=None) -> dict:
    now_iso = normalize_iso(now_iso)
    week_key = iso_week_key(now_iso)
    actions = coerce_actions(recent_actions)
    outcome_events = coerce_outcomes(outcomes)

    artifacts = get_strategic_artifacts(store, workspace_id, now_iso)
    alignment = safe_compute_strategic_alignment(workspace_id, artifacts, actions, outcome_events, now_iso)

    try:
        moves = get_or_generate_weekly_moves(store, workspace_id, artifacts, alignment, actions, outcome_events, now_iso)
    except Exception:
        logger.exception("Weekly moves unavailable for workspace %s; using neutral inputs", workspace_id)
        moves = get_or_generate_weekly_moves(
            store, workspace_id, [], StrategicAlignmentResult.neutral(), [], [], now_iso
        )

    _record_events(store, workspace_id, moves, actions, outcome_events, now_iso)
    moves = enrich_moves_with_adoption(store, workspace_id, moves, now_iso)

    alignment_dict = alignment.to_dict()
    baseline = baseline_snapshot if baseline_snapshot is not None else _default_baseline(alignment)
    current = current_snapshot if current_snapshot is not None else {
        "health_score": clamp(alignment.alignment_score, 0, 100),
        "strategy": {"artifacts": [a.to_dict() for a in artifacts], "alignment": alignment_dict},
    }

    adopted = []
    for move in moves:
        if (move.adoption or {}).get("status") == AdoptionStatus.ADOPTED.value:
            compute_move_impact(store, workspace_id, move, baseline, current, now_iso)
            if (move.adoption or {}).get("adopted_at_iso"):
                adopted.append(move)

    snapshot = {
        "workspace_id": workspace_id,
        "week_key": week_key,
        "artifacts": [a.to_dict() for a in artifacts],
        "alignment": alignment_dict,
        "weekly_moves": [m.to_dict() for m in moves],
        "scenario_simulator": {"supported_levers": list(SUPPORTED_LEVERS)},
    }

    baseline_score = extract_control_score(baseline)
    current_score = extract_control_score(current)
    if baseline_score is not None and current_score is not None and adopted:
        snapshot["decision_attribution"] = [
            compute_decision_attribution(move.id, move.adoption["adopted_at_iso"], baseline_score, current_score, window)
            for move in adopted
            for window in ATTRIBUTION_WINDOWS
        ]

    ledger = get_ledger_entries(store, workspace_id, LEDGER_PREVIEW)
    if ledger:
        snapshot["scenario_ledger"] = ledger
    return snapshot


def attach_strategy_to_snapshot(snapshot: dict, artifacts, alignment=None, weekly_moves=None, week_key=None) -> dict:
    """Copy of *snapshot* with a ``strategy`` block attached."""
    weekly_moves = [m if isinstance(m, dict) else m.to_dict() for m in weekly_moves or []]
    if alignment is None:
        alignment = StrategicAlignmentResult.neutral()
    if hasattr(alignment, "to_dict"):
        alignment = alignment.to_dict()
    if week_key is None:
        week_key = weekly_moves[0]["week_key"] if weekly_moves else iso_week_key(None)
    return {
        **snapshot,
        "strategy": {
            "artifacts": [a if isinstance(a, dict) else a.to_dict() for a in artifacts or []],
            "alignment": alignment,
            "weekly_moves": weekly_moves,
            "week_key": week_key,
        },
    }


def build_workspace_control_tower_snapshot(store, workspace_id, now_iso=None, recent_actions=None, outcomes=None) -> dict:
    """Workspace snapshot: health, 7-day trend, risk matrix and the strategy block."""
    now_iso = normalize_iso(now_iso)
    strategy = build_strategy_snapshot(store, workspace_id, recent_actions, outcomes, now_iso)
    alignment = strategy["alignment"]

    score = alignment["alignment_score"]
    drift_penalty = 20 if alignment["drift_detected"] else 0
    confidence_boost = {"high": 8, "medium": 4}.get(alignment["confidence"], 0)
    plan_boost = 6 if len(strategy["weekly_moves"]) >= 3 else 0
    health_score = clamp(round_half_up(score - drift_penalty + confidence_boost + plan_boost), 0, 100)
    trend_score = clamp(round_half_up(score - 50 - drift_penalty / 2), -100, 100)

    risk_matrix = compute_portfolio_risk(
        health_score,
        score_delta=trend_score,
        decision_attribution=strategy.get("decision_attribution"),
        recent_wins=alignment["diagnostics"]["inputs"].get("outcomes"),
    )

    snapshot = {
        "workspace_id": workspace_id,
        "generated_at_iso": now_iso,
        "health_score": health_score,
        "trend_7d": {"score": trend_score},
    }
    for key in ("decision_attribution", "scenario_simulator", "scenario_ledger"):
        if strategy.get(key):
            snapshot[key] = strategy[key]
    if risk_matrix:
        snapshot["portfolio_risk_matrix"] = risk_matrix
    return attach_strategy_to_snapshot(
        snapshot,
        strategy["artifacts"],
        alignment=alignment,
        weekly_moves=strategy["weekly_moves"],
        week_key=strategy["week_key"],
    )
