"""
Weekly strategic move record and its strict shape check.

A cached move that fails ``StrategicMove.from_dict`` is treated as a cache
miss by the moves store, so validation here is all-or-nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class MoveKind(str, Enum):
    FOCUS = "focus"
    STABILITY = "stability"
    OPTIMIZATION = "optimization"


MOVE_KIND_ORDER = {MoveKind.FOCUS.value: 0, MoveKind.STABILITY.value: 1, MoveKind.OPTIMIZATION.value: 2}
ACTION_KINDS = ("workflow", "content", "calendar", "quality", "ops")
EFFORTS = ("S", "M", "L")
RISKS = ("low", "medium", "high")
CONFIDENCES = ("low", "medium", "high")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require(condition: bool, what: str) -> None:
    if not condition:
        raise ValueError(f"invalid strategic move: {what}")


@dataclass
class StrategicMove:
    id: str
    workspace_id: str
    week_key: str
    kind: str
    title: str
    why: str
    success_metric: str
    effort: str
    risk: str
    created_at: str
    linked_artifacts: list[dict] = field(default_factory=list)
    expected_impact: dict = field(default_factory=dict)
    recommended_actions: list[dict] = field(default_factory=list)
    diagnostics: dict = field(default_factory=dict)
    adoption: dict | None = None

    @property
    def order(self):
        return (MOVE_KIND_ORDER.get(self.kind, 3), self.title)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "week_key": self.week_key,
            "kind": self.kind,
            "title": self.title,
            "why": self.why,
            "linked_artifacts": [dict(link) for link in self.linked_artifacts],
            "success_metric": self.success_metric,
            "effort": self.effort,
            "risk": self.risk,
            "expected_impact": dict(self.expected_impact),
            "recommended_actions": [dict(action) for action in self.recommended_actions],
            "created_at": self.created_at,
            "diagnostics": {
                **self.diagnostics,
                "inputs": dict(self.diagnostics.get("inputs", {})),
                "notes": list(self.diagnostics.get("notes", [])),
            },
        }
        if self.adoption is not None:
            data["adoption"] = dict(self.adoption)
        return data

    @classmethod
    def from_dict(cls, data) -> "StrategicMove":
        """Strict constructor; raises ValueError on any missing or mistyped field."""
        _require(isinstance(data, dict), "not an object")
        for key in ("id", "workspace_id", "week_key", "title", "why", "success_metric", "created_at"):
            _require(isinstance(data.get(key), str), key)
        _require(data.get("kind") in MOVE_KIND_ORDER, "kind")
        _require(data.get("effort") in EFFORTS, "effort")
        _require(data.get("risk") in RISKS, "risk")

        links = data.get("linked_artifacts")
        _require(isinstance(links, list), "linked_artifacts")
        for link in links:
            _require(
                isinstance(link, dict)
                and all(isinstance(link.get(k), str) for k in ("artifact_id", "title", "type")),
                "linked_artifacts entry",
            )

        actions = data.get("recommended_actions")
        _require(isinstance(actions, list), "recommended_actions")
        for action in actions:
            _require(
                isinstance(action, dict)
                and isinstance(action.get("title"), str)
                and isinstance(action.get("reason"), str)
                and action.get("kind") in ACTION_KINDS,
                "recommended_actions entry",
            )

        impact = data.get("expected_impact")
        _require(
            isinstance(impact, dict)
            and _is_number(impact.get("health_score_delta"))
            and impact.get("confidence") in CONFIDENCES
            and isinstance(impact.get("rationale"), str),
            "expected_impact",
        )

        diagnostics = data.get("diagnostics")
        _require(isinstance(diagnostics, dict), "diagnostics")
        inputs = diagnostics.get("inputs")
        notes = diagnostics.get("notes")
        _require(
            _is_number(diagnostics.get("alignment_score"))
            and isinstance(diagnostics.get("drift_detected"), bool)
            and isinstance(inputs, dict)
            and all(_is_number(inputs.get(k)) for k in ("artifacts", "actions", "outcomes"))
            and isinstance(notes, list)
            and all(isinstance(note, str) for note in notes),
            "diagnostics",
        )

        adoption = data.get("adoption")
        return cls(
            id=data["id"],
            workspace_id=data["workspace_id"],
            week_key=data["week_key"],
            kind=data["kind"],
            title=data["title"],
            why=data["why"],
            success_metric=data["success_metric"],
            effort=data["effort"],
            risk=data["risk"],
            created_at=data["created_at"],
            linked_artifacts=[dict(link) for link in links],
            expected_impact=dict(impact),
            recommended_actions=[dict(action) for action in actions],
            diagnostics={**diagnostics, "inputs": dict(inputs), "notes": list(notes)},
            adoption=dict(adoption) if isinstance(adoption, dict) else None,
        )


def is_strategic_move(value) -> bool:
    try:
        StrategicMove.from_dict(value)
    except ValueError:
        return False
    return True
