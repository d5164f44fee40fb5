"""
Move impact — what changed between the adoption baseline and now.

Snapshots are the loosely shaped workspace snapshots produced by
``strategy_snapshot``; values are read through the same fallback paths the
portfolio uses (top level, ``metrics``, ``overview``).
"""

from __future__ import annotations

import logging
import math

from control_tower.models.adoption import IMPACT_WINDOWS, AdoptionSource, AdoptionStatus
from control_tower.services.adoption_store import set_adoption_status
from control_tower.utils.helpers import clamp, days_between, normalize_iso, round_half_up, to_float

logger = logging.getLogger(__name__)

MAX_DELTA = 40


def _dig(data, *path):
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _first(snapshot, *paths):
    for path in paths:
        value = to_float(_dig(snapshot, *path))
        if value is not None:
            return value
    return 0.0


def pick_health(snapshot) -> float:
    return clamp(_first(snapshot, ("health_score",), ("metrics", "health_score"), ("overview", "health_score")), -100, 100)


def pick_alignment(snapshot) -> float:
    return clamp(_first(
        snapshot,
        ("strategy", "alignment", "alignment_score"),
        ("strategic_alignment", "alignment_score"),
    ), -100, 100)


def pick_momentum(snapshot) -> float:
    return clamp(_first(snapshot, ("trend_7d", "score"), ("metrics", "momentum_7d")), -100, 100)


def impact_confidence(snapshot) -> str:
    inputs = _dig(snapshot, "strategy", "alignment", "diagnostics", "inputs") or {}
    artifacts = _dig(snapshot, "strategy", "artifacts")
    artifact_count = len(artifacts) if isinstance(artifacts, list) else (to_float(inputs.get("artifacts")) or 0)
    outcomes = to_float(inputs.get("outcomes")) or 0
    evidence = artifact_count + outcomes
    if evidence >= 10 and outcomes >= 1:
        return "high"
    if evidence >= 3:
        return "medium"
    return "low"


def _delta(current, baseline) -> int:
    return clamp(round_half_up(current - baseline), -MAX_DELTA, MAX_DELTA)


def build_impact_snapshot(baseline_snapshot, current_snapshot) -> dict:
    return {
        "health_delta": _delta(pick_health(current_snapshot), pick_health(baseline_snapshot)),
        "alignment_delta": _delta(pick_alignment(current_snapshot), pick_alignment(baseline_snapshot)),
        "momentum_delta": _delta(pick_momentum(current_snapshot), pick_momentum(baseline_snapshot)),
        "confidence": impact_confidence(current_snapshot),
    }


def derive_windows(adopted_at_iso, now_iso, impact: dict) -> dict:
    """Windows whose day offset has elapsed since adoption."""
    elapsed = days_between(adopted_at_iso, now_iso)
    if elapsed is None:
        return {}
    days = math.floor(elapsed)
    return {name: dict(impact) for name, offset in IMPACT_WINDOWS if days >= offset}


def compute_move_impact(store, workspace_id, move, baseline_snapshot, current_snapshot, now_iso=None):
    """Populate impact windows for an adopted move and persist them.

    Windows already on the record are kept as first observed; only newly
    reached windows take the current delta.
    """
    adoption = move.adoption or {}
    adopted_at = adoption.get("adopted_at_iso")
    if adoption.get("status") != AdoptionStatus.ADOPTED.value or not adopted_at:
        return move

    now_iso = normalize_iso(now_iso)
    fresh = derive_windows(adopted_at, now_iso, build_impact_snapshot(baseline_snapshot, current_snapshot))
    existing = adoption.get("impact") or {}
    merged = {name: dict(existing[name]) for name, _ in IMPACT_WINDOWS if isinstance(existing.get(name), dict)}
    added = [name for name in fresh if name not in merged]
    for name in added:
        merged[name] = fresh[name]

    move.adoption = {**adoption, "impact": merged}
    if added:
        set_adoption_status(
            store, workspace_id, move.id, AdoptionStatus.ADOPTED.value,
            now_iso=now_iso, adopted_at_iso=adopted_at, impact=merged,
            move_title=move.title, source=AdoptionSource.OUTCOME.value,
        )
    return move
