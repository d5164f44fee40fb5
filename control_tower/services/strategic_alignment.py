"""
Strategic Alignment Analyzer.

Scores how well recent actions support the workspace's *active* artifacts
and flags strategic drift. Pure and deterministic: same artifacts,
actions, outcomes and ``now_iso`` always give the same result.

Score composition (0-100):
    coverage        0-40   share of actions matched to an active artifact
    focus           0-30   concentration of matches on a single priority
    outcome         0-20   completed vs. negative outcomes in the last 14 days
    drift penalty   0/10   withheld when ad-hoc work or negatives dominate

Usage:
    from control_tower.services.strategic_alignment import compute_strategic_alignment
    result = compute_strategic_alignment(artifacts, actions, outcomes, now_iso)
    result.alignment_score, result.drift_detected
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from control_tower.models.strategy import (
    ArtifactType,
    coerce_actions,
    coerce_artifacts,
    coerce_outcomes,
)
from control_tower.utils.helpers import (
    DAY_SECONDS,
    clamp,
    normalize_iso,
    round_half_up,
    to_millis,
    tokenize,
    unique_sorted,
)

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Thresholds
# ═════════════════════════════════════════════════════════════════════════════

MIN_MATCH_STRENGTH = 0.25
OUTCOME_WINDOW_DAYS = 14
NEGATIVE_OUTCOMES = ("abandoned", "ignored")

DRIFT_REASON_COVERAGE = "Too many actions do not support active priorities."
DRIFT_REASON_NEGATIVES = "Negative outcomes keep recurring in strategic areas."
DRIFT_REASON_SCATTERED = "Execution focus is scattered across too many priorities."
DRIFT_REASON_FALLBACK = "insufficient data"


# ═════════════════════════════════════════════════════════════════════════════
# Result
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class StrategicAlignmentResult:
    alignment_score: int
    confidence: str
    drift_detected: bool
    drift_reason: str | None = None
    top_aligned: list[dict] = field(default_factory=list)
    top_misaligned: list[dict] = field(default_factory=list)
    recommended_corrections: list[dict] = field(default_factory=list)
    diagnostics: dict = field(default_factory=dict)

    @property
    def inputs(self) -> dict:
        return self.diagnostics.get("inputs", {})

    def to_dict(self) -> dict:
        return {
            "alignment_score": self.alignment_score,
            "confidence": self.confidence,
            "drift_detected": self.drift_detected,
            "drift_reason": self.drift_reason,
            "top_aligned": [dict(item) for item in self.top_aligned],
            "top_misaligned": [dict(item) for item in self.top_misaligned],
            "recommended_corrections": [dict(item) for item in self.recommended_corrections],
            "diagnostics": {
                "inputs": dict(self.inputs),
                "notes": list(self.diagnostics.get("notes", [])),
            },
        }

    @classmethod
    def neutral(cls, artifacts: int = 0, actions: int = 0, outcomes: int = 0) -> "StrategicAlignmentResult":
        """Safe stand-in used when the analyzer cannot run."""
        return cls(
            alignment_score=50,
            confidence="low",
            drift_detected=False,
            drift_reason=DRIFT_REASON_FALLBACK,
            diagnostics={
                "inputs": {"artifacts": artifacts, "actions": actions, "outcomes": outcomes},
                "notes": ["fallback:neutral"],
            },
        )


# ═════════════════════════════════════════════════════════════════════════════
# Matching
# ═════════════════════════════════════════════════════════════════════════════

def artifact_tokens(artifact) -> list[str]:
    return unique_sorted(tokenize(f"{artifact.title} {artifact.intent} {' '.join(artifact.tags)}"))


def match_strength(artifact_bag: list[str], action_bag: list[str]) -> float:
    """Token-overlap ratio in [0, 1]; the normaliser is never below 2."""
    if not artifact_bag or not action_bag:
        return 0.0
    action_set = set(action_bag)
    hits = sum(1 for token in artifact_bag if token in action_set)
    return min(1.0, hits / max(2, min(len(artifact_bag), len(action_bag))))


def _top_match(artifacts, bags: dict, action_id: str, action_text: str):
    """Strongest artifact for one action (max, never a sum), or None."""
    action_bag = unique_sorted(tokenize(action_text))
    candidates = []
    for artifact in artifacts:
        strength = match_strength(bags[artifact.id], action_bag)
        if strength >= MIN_MATCH_STRENGTH:
            candidates.append((artifact, strength))
    if not candidates:
        return None
    # strongest, then newest artifact, then lexicographic id
    candidates.sort(key=lambda c: (-c[1], -(to_millis(c[0].created_at) or 0), c[0].id))
    artifact, strength = candidates[0]
    return {"artifact_id": artifact.id, "action_id": action_id, "signal": "keyword", "strength": strength}


def _confidence(artifacts: int, actions: int) -> str:
    if artifacts >= 3 and actions >= 8:
        return "high"
    if artifacts >= 1 and actions >= 5:
        return "medium"
    return "low"


def _recent(outcomes, now_iso: str, days: int = OUTCOME_WINDOW_DAYS):
    now_ms = to_millis(now_iso)
    if now_ms is None:
        return []
    floor = now_ms - days * DAY_SECONDS * 1000
    recent = []
    for event in outcomes:
        ts = to_millis(event.occurred_at)
        if ts is not None and ts >= floor:
            recent.append(event)
    return recent


def _recommendations(active, negatives_matched: int, drift_detected: bool, alignment_score: int) -> list[dict]:
    out = []
    priorities = [a for a in active if a.type == ArtifactType.PRIORITY.value]
    missing_metric = any(
        a.type == ArtifactType.EXPERIMENT.value and not a.success_metric for a in active
    )

    if not priorities:
        out.append({
            "title": "Add a priority",
            "why": "Without an active priority, actions lose coherence.",
            "effort": "S",
        })
    if drift_detected or alignment_score < 70:
        out.append({
            "title": "Pick 1 priority for the next 7 days",
            "why": "Focus reduces scattered execution.",
            "effort": "S",
        })
        out.append({
            "title": "Close 3 open loops (approve/reject)",
            "why": "Clears the decision backlog and reduces drift.",
            "effort": "M",
        })
    if missing_metric:
        out.append({
            "title": "Define a success metric for the experiment",
            "why": "Without a metric the value of the test cannot be judged.",
            "effort": "S",
        })
    if negatives_matched > 0:
        out.append({
            "title": "Stop or adjust the experiment",
            "why": "Negative outcomes suggest the hypothesis needs a correction.",
            "effort": "M",
        })
    out.append({
        "title": "Archive dead hypotheses",
        "why": "Removes noise and sharpens the direction.",
        "effort": "S",
    })
    return out[:5]


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════

def compute_strategic_alignment(artifacts, recent_actions=None, outcomes=None, now_iso=None) -> StrategicAlignmentResult:
    """Score alignment between active artifacts and recent execution."""
    now_iso = normalize_iso(now_iso)
    artifacts = coerce_artifacts(artifacts)
    actions = coerce_actions(recent_actions)
    outcome_events = coerce_outcomes(outcomes)

    active = [a for a in artifacts if a.is_active]
    bags = {a.id: artifact_tokens(a) for a in active}

    matches = []
    for index, action in enumerate(actions):
        match = _top_match(active, bags, action.id or f"action-{index + 1}", action.text)
        if match is not None:
            matches.append(match)

    total_actions = len(actions)
    matched_actions = len({m["action_id"] for m in matches if m["action_id"]})
    coverage = matched_actions / total_actions if total_actions else 0.0
    score_coverage = clamp(round_half_up(coverage * 40), 0, 40)

    # ── Focus concentration ──────────────────────────────────────────
    priority_ids = {a.id for a in active if a.type == ArtifactType.PRIORITY.value}
    by_priority: dict[str, int] = {}
    for match in matches:
        if match["artifact_id"] in priority_ids:
            by_priority[match["artifact_id"]] = by_priority.get(match["artifact_id"], 0) + 1
    priority_matches = sum(by_priority.values())
    top1_share = max(by_priority.values()) / priority_matches if priority_matches else 0.0

    score_focus = 30 if top1_share >= 0.45 else 22 if top1_share >= 0.3 else 12
    if len(by_priority) > 3:
        score_focus = max(0, score_focus - 6)

    # ── Outcomes ─────────────────────────────────────────────────────
    matched_ids = {m["artifact_id"] for m in matches}
    recent = _recent(outcome_events, now_iso)

    negatives_matched = 0
    for event in recent:
        if event.outcome not in NEGATIVE_OUTCOMES:
            continue
        event_tokens = set(tokenize(event.text))
        if any(a.id in matched_ids and event_tokens.intersection(bags[a.id]) for a in active):
            negatives_matched += 1

    wins_matched = 0
    for event in recent:
        if event.outcome != "completed":
            continue
        event_tokens = set(tokenize(event.text))
        if any(a.id in priority_ids and event_tokens.intersection(bags[a.id]) for a in active):
            wins_matched += 1

    score_outcome = 10 + (10 if wins_matched else 0) - (10 if negatives_matched else 0)
    score_outcome = clamp(score_outcome, 0, 20)

    adhoc_ratio = (total_actions - matched_actions) / total_actions if total_actions else 0.0
    score_drift = 0 if (adhoc_ratio >= 0.65 or negatives_matched >= 2) else 10

    alignment_score = clamp(score_coverage + score_focus + score_outcome + score_drift, 0, 100)

    # ── Drift ────────────────────────────────────────────────────────
    low_coverage = coverage < 0.35 and total_actions >= 8
    scattered = top1_share < 0.25 and total_actions >= 10
    drift_detected = low_coverage or negatives_matched >= 2 or scattered
    drift_reason = None
    if low_coverage:
        drift_reason = DRIFT_REASON_COVERAGE
    elif negatives_matched >= 2:
        drift_reason = DRIFT_REASON_NEGATIVES
    elif scattered:
        drift_reason = DRIFT_REASON_SCATTERED

    titles = {a.id: a.title for a in active}
    top_aligned = sorted(
        (
            {"artifact_id": m["artifact_id"], "title": titles[m["artifact_id"]], "strength": m["strength"]}
            for m in matches
        ),
        key=lambda item: (-item["strength"], item["artifact_id"]),
    )[:5]

    top_misaligned = []
    if coverage < 0.35:
        top_misaligned.append({
            "reason": "Low action coverage",
            "evidence": f"{matched_actions}/{total_actions} actions matched to strategy.",
            "severity": "high",
        })
    if len(by_priority) > 3:
        top_misaligned.append({
            "reason": "Scattered priorities",
            "evidence": f"Active work touches {len(by_priority)} priorities.",
            "severity": "medium",
        })
    if negatives_matched > 0:
        top_misaligned.append({
            "reason": "Negative outcomes",
            "evidence": f"{negatives_matched} negative strategic signals.",
            "severity": "high" if negatives_matched >= 2 else "medium",
        })

    return StrategicAlignmentResult(
        alignment_score=alignment_score,
        confidence=_confidence(len(active), total_actions),
        drift_detected=drift_detected,
        drift_reason=drift_reason,
        top_aligned=top_aligned,
        top_misaligned=top_misaligned,
        recommended_corrections=_recommendations(active, negatives_matched, drift_detected, alignment_score),
        diagnostics={
            "inputs": {"artifacts": len(active), "actions": total_actions, "outcomes": len(outcome_events)},
            "notes": [
                f"coverage={coverage:.2f}",
                f"focusTop1={top1_share:.2f}",
                f"negatives={negatives_matched}",
            ],
        },
    )


def safe_compute_strategic_alignment(workspace_id, artifacts, recent_actions=None, outcomes=None, now_iso=None):
    """compute_strategic_alignment that degrades to the neutral result instead of raising."""
    try:
        return compute_strategic_alignment(artifacts, recent_actions, outcomes, now_iso)
    except Exception:
        logger.exception("Alignment failed for workspace %s; using neutral fallback", workspace_id)
        return StrategicAlignmentResult.neutral(
            artifacts=len(artifacts or []),
            actions=len(recent_actions or []),
            outcomes=len(outcomes or []),
        )
