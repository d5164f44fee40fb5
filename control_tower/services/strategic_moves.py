"""
Weekly Strategic Moves.

Derives exactly three moves per workspace-week, always in the order
focus → stability → optimization, and memoises them per ISO week:

    ctv3:strategy:moves:<workspace_id>:<week_key>      (TTL 8 days)

Generation is pure. Ids are assigned on save from a stable hash of
workspace, week, slot and normalised title, so regenerating the same
week always yields the same ids.
"""

from __future__ import annotations

import logging

from control_tower.models.moves import MOVE_KIND_ORDER, MoveKind, StrategicMove
from control_tower.models.strategy import ArtifactType, coerce_actions, coerce_artifacts, coerce_outcomes
from control_tower.services.cache_service import MOVES_TTL
from control_tower.services.strategic_alignment import StrategicAlignmentResult
from control_tower.utils.helpers import (
    DAY_SECONDS,
    clamp,
    iso_week_key,
    norm,
    normalize_iso,
    stable_hash,
    to_millis,
)

logger = logging.getLogger(__name__)

NEGATIVE_WINDOW_DAYS = 14
NEGATIVE_OUTCOMES = ("abandoned", "ignored", "failed", "canceled", "cancelled")
LOW_ACTION_COUNT = 5

_TYPE_ORDER = {
    ArtifactType.PRIORITY.value: 0,
    ArtifactType.EXPERIMENT.value: 1,
    ArtifactType.HYPOTHESIS.value: 2,
    ArtifactType.ASSUMPTION.value: 3,
    ArtifactType.DECISION.value: 4,
}
_CONFIDENCE_DOWN = {"high": "medium", "medium": "low", "low": "low"}

_RATIONALE = {
    MoveKind.FOCUS.value: "Based on current alignment and execution spread, focused delivery should improve measurable outcomes.",
    MoveKind.STABILITY.value: "Based on current drift and unmatched actions, stability work is likely to restore throughput.",
    MoveKind.OPTIMIZATION.value: "Given current strategy signals, a controlled optimization loop should compound gains.",
}


def _action(title, kind, reason):
    return {"title": title, "kind": kind, "reason": reason}


def _link(artifact):
    return {"artifact_id": artifact.id, "title": artifact.title, "type": artifact.type}


def moves_key(workspace_id: str, week_key: str) -> str:
    return f"ctv3:strategy:moves:{workspace_id}:{week_key}"


# ═════════════════════════════════════════════════════════════════════════════
# Inputs
# ═════════════════════════════════════════════════════════════════════════════

def _alignment_view(alignment) -> StrategicAlignmentResult:
    if isinstance(alignment, StrategicAlignmentResult):
        return alignment
    data = alignment if isinstance(alignment, dict) else {}
    score = data.get("alignment_score", data.get("alignmentScore", 50))
    return StrategicAlignmentResult(
        alignment_score=clamp(score, 0, 100) if score is not None else 50,
        confidence=data.get("confidence") if data.get("confidence") in _CONFIDENCE_DOWN else "low",
        drift_detected=bool(data.get("drift_detected", data.get("driftDetected", False))),
        top_aligned=[dict(x) for x in data.get("top_aligned", data.get("topAligned", [])) if isinstance(x, dict)],
    )


def _sorted_artifacts(artifacts):
    def key(artifact):
        created = to_millis(artifact.created_at)
        return (
            0 if artifact.is_active else 1,
            _TYPE_ORDER.get(artifact.type, 9),
            -(created if created is not None else float("-inf")),
            artifact.title,
            artifact.id,
        )

    return sorted(artifacts, key=key)


def count_negative_outcomes(outcomes, now_iso: str, days: int = NEGATIVE_WINDOW_DAYS) -> int:
    now_ms = to_millis(now_iso)
    if now_ms is None:
        return 0
    floor = now_ms - days * DAY_SECONDS * 1000
    count = 0
    for event in outcomes:
        if norm(event.outcome) not in NEGATIVE_OUTCOMES:
            continue
        ts = to_millis(event.occurred_at or event.created_at)
        if ts is not None and ts >= floor:
            count += 1
    return count


def _pick_priority(artifacts, alignment):
    active = [a for a in artifacts if a.is_active]
    if alignment.top_aligned:
        top_id = alignment.top_aligned[0].get("artifact_id")
        for artifact in active:
            if artifact.id == top_id:
                return artifact
    return next((a for a in active if a.type == ArtifactType.PRIORITY.value), None)


# ═════════════════════════════════════════════════════════════════════════════
# Sizing
# ═════════════════════════════════════════════════════════════════════════════

def _risk(score, drift, negatives) -> str:
    if drift or negatives >= 2:
        return "high"
    if score >= 80:
        return "low"
    return "medium"


def _effort(score, drift, actions) -> str:
    if drift and score < 50:
        return "L"
    has_metric_action = any(
        "define" in a["title"].lower() and "metric" in a["title"].lower() for a in actions
    )
    if len(actions) >= 3 or has_metric_action:
        return "M"
    return "S"


def _health_delta(score, drift, negatives) -> int:
    delta = 3
    if drift:
        delta += 2 if negatives >= 2 else 4
    if score > 80:
        delta += 5
    if score < 50:
        delta += 2
    return clamp(delta, -5, 12)


# ═════════════════════════════════════════════════════════════════════════════
# Generation
# ═════════════════════════════════════════════════════════════════════════════

def generate_strategic_moves(workspace_id, artifacts, alignment, recent_actions=None, outcomes=None, now_iso=None) -> list[StrategicMove]:
    """Build the three weekly moves. Ids stay empty until ``save_weekly_moves``."""
    now_iso = normalize_iso(now_iso)
    week_key = iso_week_key(now_iso)
    artifacts = _sorted_artifacts(coerce_artifacts(artifacts, workspace_id))
    actions = coerce_actions(recent_actions)
    outcome_events = coerce_outcomes(outcomes)
    alignment = _alignment_view(alignment)

    score = clamp(alignment.alignment_score, 0, 100)
    drift = bool(alignment.drift_detected)
    negatives = count_negative_outcomes(outcome_events, now_iso)
    recovery = drift or score < 60 or negatives >= 2
    leverage = score > 80

    active = [a for a in artifacts if a.is_active]
    priority = _pick_priority(artifacts, alignment)
    learning = next(
        (a for a in active if a.type in (ArtifactType.HYPOTHESIS.value, ArtifactType.EXPERIMENT.value)),
        None,
    )

    # ── Focus ────────────────────────────────────────────────────────
    if priority is not None:
        focus = {
            "title": f"Focus on: {priority.title}",
            "why": priority.intent or "Concentrating execution on one priority increases throughput and measurable impact.",
            "links": [priority],
            "success_metric": priority.success_metric
            or "Define a success metric for this priority (one number, one deadline).",
            "actions": [
                _action("Pick 5 items that directly ship this priority", "content",
                        "Concentrates execution on the declared strategic objective."),
                _action("Assign owner + weekly checkpoint", "workflow", "Clarifies accountability and cadence."),
                _action("Set a WIP limit for non-priority work", "ops", "Prevents execution fragmentation."),
            ],
            "notes": ["move:focus"],
        }
    else:
        focus = {
            "title": "Define one strategic priority for the next 7 days",
            "why": "Without a clear focus, execution fragments and impact drops.",
            "links": [],
            "success_metric": "Define a success metric for this priority (one number, one deadline).",
            "actions": [
                _action("Write the priority in one sentence", "ops", "Creates a single weekly direction."),
                _action("Define one success metric", "quality", "Makes progress measurable."),
                _action("Assign an owner", "workflow", "Establishes clear responsibility."),
            ],
            "notes": ["move:focus", "mode:bootstrap"],
        }

    # ── Stability ────────────────────────────────────────────────────
    stability = {
        "title": "Stabilize execution: close open loops and reduce WIP"
        if recovery else "Keep the system clean: maintain approval and publishing hygiene",
        "why": "Drift is usually a workflow issue: open loops, unclear ownership, and scattered work."
        if recovery else "Clean workflow prevents hidden delays and protects cadence.",
        "links": [learning] if learning is not None else [],
        "success_metric": "Reduce open loops by 50% and enforce a 24–48h decision SLA."
        if recovery else "No item stays blocked longer than 48h.",
        "actions": [
            _action("Review approvals: approve/reject within SLA", "workflow", "Reduces decision latency."),
            _action("Archive or re-scope stalled items", "ops", "Removes backlog drag."),
            _action("Set explicit WIP limit for each stage", "workflow", "Prevents queue overload."),
        ],
        "notes": ["move:stability", "mode:recovery" if recovery else "mode:hygiene"],
    }

    # ── Optimization ─────────────────────────────────────────────────
    opt_links = []
    for candidate in (learning, priority):
        if candidate is not None and candidate.id not in {a.id for a in opt_links}:
            opt_links.append(candidate)
    optimization = {
        "title": "Optimize leverage: improve conversion where it matters most"
        if leverage else "Run one controlled experiment with a clear hypothesis",
        "why": "When alignment is strong, small optimizations compound."
        if leverage else "Experiments turn uncertainty into learning and strategic clarity.",
        "links": opt_links[:3],
        "success_metric": "Improve one key metric by 5–10% (CTR, conversion, retention)."
        if leverage else "One hypothesis tested with a measurable outcome.",
        "actions": [
            _action("Run one optimization experiment on the highest-traffic asset", "quality",
                    "Compounds gains on proven traffic."),
            _action("Tighten copy/CTA on top-performing content", "content", "Improves conversion efficiency."),
        ] if leverage else [
            _action("Define hypothesis + metric + stop condition", "quality", "Creates controlled learning."),
            _action("Ship the experiment to a small audience first", "calendar",
                    "Limits downside and improves signal quality."),
        ],
        "notes": ["move:optimization", "mode:leverage" if leverage else "mode:experiment"],
    }

    confidence = alignment.confidence if alignment.confidence in _CONFIDENCE_DOWN else "low"
    if len(actions) < LOW_ACTION_COUNT:
        confidence = _CONFIDENCE_DOWN[confidence]

    moves = []
    for kind, draft in (
        (MoveKind.FOCUS.value, focus),
        (MoveKind.STABILITY.value, stability),
        (MoveKind.OPTIMIZATION.value, optimization),
    ):
        moves.append(StrategicMove(
            id="",
            workspace_id=workspace_id,
            week_key=week_key,
            kind=kind,
            title=draft["title"],
            why=draft["why"],
            success_metric=draft["success_metric"],
            effort=_effort(score, drift, draft["actions"]),
            risk=_risk(score, drift, negatives),
            created_at=now_iso,
            linked_artifacts=[_link(a) for a in draft["links"]],
            expected_impact={
                "health_score_delta": _health_delta(score, drift, negatives),
                "confidence": confidence,
                "rationale": _RATIONALE[kind],
            },
            recommended_actions=draft["actions"],
            diagnostics={
                "alignment_score": score,
                "drift_detected": drift,
                "inputs": {"artifacts": len(artifacts), "actions": len(actions), "outcomes": len(outcome_events)},
                "notes": draft["notes"] + [f"negatives={negatives}"],
            },
        ))
    return moves


# ═════════════════════════════════════════════════════════════════════════════
# Persistence
# ═════════════════════════════════════════════════════════════════════════════

def move_id(workspace_id: str, week_key: str, index: int, title: str) -> str:
    return "smv_" + stable_hash(f"{workspace_id}|{week_key}|{index}|{norm(title)}")


def _ordered(moves):
    return sorted(moves, key=lambda m: (MOVE_KIND_ORDER.get(m.kind, 3), m.title))


def get_weekly_moves(store, workspace_id: str, week_key: str):
    """Cached moves for the week, or None when missing or shape-invalid."""
    raw = store.get(moves_key(workspace_id, week_key))
    if raw is None:
        return None
    if not isinstance(raw, list) or len(raw) != 3:
        logger.warning("Discarding cached moves for workspace %s (%s): wrong count", workspace_id, week_key)
        return None
    try:
        moves = [StrategicMove.from_dict(item) for item in raw]
    except ValueError as exc:
        logger.warning("Discarding cached moves for workspace %s (%s): %s", workspace_id, week_key, exc)
        return None
    if any(m.week_key != week_key for m in moves):
        return None
    return _ordered(moves)


def save_weekly_moves(store, workspace_id: str, week_key: str, moves) -> list[StrategicMove]:
    ordered = _ordered(moves)
    for index, move in enumerate(ordered):
        move.workspace_id = workspace_id
        move.week_key = week_key
        move.id = move_id(workspace_id, week_key, index, move.title)
        move.adoption = None
    store.set(moves_key(workspace_id, week_key), [m.to_dict() for m in ordered], MOVES_TTL)
    return ordered


def get_or_generate_weekly_moves(store, workspace_id, artifacts, alignment, recent_actions=None, outcomes=None, now_iso=None) -> list[StrategicMove]:
    """Return this week's moves, generating and caching them on a miss."""
    now_iso = normalize_iso(now_iso)
    week_key = iso_week_key(now_iso)
    cached = get_weekly_moves(store, workspace_id, week_key)
    if cached is not None:
        return cached

    try:
        moves = generate_strategic_moves(workspace_id, artifacts, alignment, recent_actions, outcomes, now_iso)
    except Exception:
        logger.exception("Move generation failed for workspace %s; regenerating from neutral inputs", workspace_id)
        moves = generate_strategic_moves(
            workspace_id, [], StrategicAlignmentResult.neutral(), [], [], now_iso
        )
    return save_weekly_moves(store, workspace_id, week_key, moves)
