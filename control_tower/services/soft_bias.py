"""
Soft bias for decision candidates.

Nudges (never replaces) the score of ranked candidates toward what the
current strategy asks for. Candidates are dicts with at least ``score``
and optionally ``kind`` / ``title``; inputs are not mutated.
"""

from control_tower.utils.helpers import clamp

MAX_MOVES_BOOST = 0.12
GROUP_BOOST = 0.03

# (action kinds that enable the group, candidate-kind keywords, title keywords)
_KEYWORD_GROUPS = (
    (("workflow", "ops"), ("workflow", "ops", "cleanup", "approve", "reject", "wip"), ("cleanup", "approve", "reject", "wip")),
    (("content",), ("content", "ship", "publish"), ("ship", "publish", "content")),
    (("calendar",), ("calendar", "schedule"), ("schedule", "calendar")),
    (("quality",), ("quality", "optimize", "improve"), ("optimize", "improve", "quality")),
)


def _has_keyword(value, keywords) -> bool:
    text = str(value or "").lower()
    return any(keyword in text for keyword in keywords)


def _ranked(candidates):
    return sorted(candidates, key=lambda c: (-c["score"], c.get("kind") or ""))


def apply_strategic_soft_bias(candidates, alignment=None) -> list[dict]:
    candidates = [dict(c) for c in candidates or []]
    if not candidates:
        return []
    if hasattr(alignment, "to_dict"):
        alignment = alignment.to_dict()
    alignment = alignment or {}
    score = clamp(alignment.get("alignment_score", 50), 0, 100)
    drift = alignment.get("drift_detected") is True

    boosts = {
        "stabilization": 0.08 if drift else 0.0,
        "focus": 0.06 if score < 60 else 0.0,
        "optimization": 0.05 if score > 80 else 0.0,
    }
    for candidate in candidates:
        multiplier = 1 + boosts.get(candidate.get("kind"), 0.0)
        candidate["score"] = round(candidate["score"] * multiplier, 6)
    return _ranked(candidates)


def apply_strategic_moves_soft_bias(candidates, weekly_moves=None, week_key=None):
    """Boost candidates matching this week's recommended action kinds.

    Returns ``(candidates, diagnostics)``.
    """
    candidates = [dict(c) for c in candidates or []]
    moves = [m if isinstance(m, dict) else m.to_dict() for m in weekly_moves or []]
    if not candidates:
        return [], {}
    if not moves:
        return _ranked(candidates), {}

    action_kinds = {action.get("kind") for move in moves for action in move.get("recommended_actions", [])}
    for candidate in candidates:
        boost = 0.0
        for enabling, kind_words, title_words in _KEYWORD_GROUPS:
            if not action_kinds.intersection(enabling):
                continue
            if _has_keyword(candidate.get("kind"), kind_words) or _has_keyword(candidate.get("title"), title_words):
                boost += GROUP_BOOST
        candidate["score"] = round(candidate["score"] * (1 + clamp(boost, 0, MAX_MOVES_BOOST)), 6)

    diagnostics = {
        "strategy_moves": {
            "week_key": week_key or moves[0].get("week_key", ""),
            "titles": [m.get("title", "") for m in moves],
        }
    }
    return _ranked(candidates), diagnostics
