"""
Strategy domain records: artifacts, recent actions, outcome events.

Callers hand the engine loosely-typed dicts (JSON bodies, cached payloads,
legacy camelCase exports). ``from_dict`` is the single normalisation step;
everything past it works on these dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ArtifactType(str, Enum):
    PRIORITY = "priority"
    HYPOTHESIS = "hypothesis"
    EXPERIMENT = "experiment"
    ASSUMPTION = "assumption"
    DECISION = "decision"


class ArtifactStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class Horizon(str, Enum):
    NOW = "now"
    THIS_MONTH = "this_month"
    THIS_QUARTER = "this_quarter"
    THIS_YEAR = "this_year"


def pick(data: dict, *keys, default=None):
    """First present, non-None value among *keys* (snake_case first, then legacy)."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _opt_str(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _enum_value(enum_cls, value, default):
    try:
        return enum_cls(str(value)).value
    except ValueError:
        return default.value


@dataclass
class StrategicArtifact:
    id: str
    workspace_id: str
    type: str
    title: str
    intent: str
    created_at: str
    description: str = ""
    status: str = ArtifactStatus.ACTIVE.value
    created_by: str = "system"
    success_metric: str | None = None
    owner: str | None = None
    horizon: str = Horizon.THIS_QUARTER.value
    tags: list[str] = field(default_factory=list)
    updated_at: str | None = None
    archived_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ArtifactStatus.ACTIVE.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "intent": self.intent,
            "success_metric": self.success_metric,
            "owner": self.owner,
            "horizon": self.horizon,
            "tags": list(self.tags),
            "created_at": self.created_at,
            "created_by": self.created_by,
            "updated_at": self.updated_at,
            "archived_at": self.archived_at,
        }

    @classmethod
    def from_dict(cls, data: dict, workspace_id: str | None = None) -> "StrategicArtifact":
        tags = pick(data, "tags", default=[])
        return cls(
            id=str(pick(data, "id", default="")),
            workspace_id=str(pick(data, "workspace_id", "workspaceId", default=workspace_id or "")),
            type=_enum_value(ArtifactType, pick(data, "type", default="priority"), ArtifactType.PRIORITY),
            title=str(pick(data, "title", default="")),
            description=str(pick(data, "description", default="")),
            status=_enum_value(ArtifactStatus, pick(data, "status", default="active"), ArtifactStatus.ACTIVE),
            intent=str(pick(data, "intent", default="")),
            success_metric=_opt_str(pick(data, "success_metric", "successMetric")),
            owner=_opt_str(pick(data, "owner")),
            horizon=_enum_value(Horizon, pick(data, "horizon", default="this_quarter"), Horizon.THIS_QUARTER),
            tags=[str(t) for t in tags] if isinstance(tags, (list, tuple)) else [],
            created_at=str(pick(data, "created_at", "createdAt", default="")),
            created_by=str(pick(data, "created_by", "createdBy", default="system")),
            updated_at=_opt_str(pick(data, "updated_at", "updatedAt")),
            archived_at=_opt_str(pick(data, "archived_at", "archivedAt")),
        )


@dataclass
class StrategicAction:
    """A recent operational action (session, approval, published item...)."""
    id: str | None = None
    title: str | None = None
    name: str | None = None
    type: str | None = None
    kind: str | None = None
    status: str | None = None
    created_at: str | None = None

    @property
    def text(self) -> str:
        return " ".join(part or "" for part in (self.title, self.name, self.type, self.kind)).strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "name": self.name,
            "type": self.type,
            "kind": self.kind,
            "status": self.status,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StrategicAction":
        return cls(
            id=_opt_str(pick(data, "id")),
            title=_opt_str(pick(data, "title")),
            name=_opt_str(pick(data, "name")),
            type=_opt_str(pick(data, "type")),
            kind=_opt_str(pick(data, "kind")),
            status=_opt_str(pick(data, "status")),
            created_at=_opt_str(pick(data, "created_at", "createdAt")),
        )


@dataclass
class OutcomeEvent:
    """Observed result of an intent: completed, abandoned, ignored, failed..."""
    intent: str = ""
    outcome: str = ""
    occurred_at: str | None = None
    created_at: str | None = None
    details: str = ""
    session_id: str | None = None

    @property
    def text(self) -> str:
        return f"{self.intent} {self.details}"

    def to_dict(self) -> dict:
        return {
            "intent": self.intent,
            "outcome": self.outcome,
            "occurred_at": self.occurred_at,
            "created_at": self.created_at,
            "details": self.details,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OutcomeEvent":
        evidence = data.get("evidence") if isinstance(data.get("evidence"), dict) else {}
        return cls(
            intent=str(pick(data, "intent", default="")),
            outcome=str(pick(data, "outcome", "status", default="")),
            occurred_at=_opt_str(pick(data, "occurred_at", "occurredAt")),
            created_at=_opt_str(pick(data, "created_at", "createdAt")),
            details=str(pick(data, "details", default=evidence.get("details") or "")),
            session_id=_opt_str(pick(data, "session_id", "sessionId")),
        )


def coerce_actions(items) -> list[StrategicAction]:
    return [
        item if isinstance(item, StrategicAction) else StrategicAction.from_dict(item)
        for item in (items or [])
        if isinstance(item, (StrategicAction, dict))
    ]


def coerce_outcomes(items) -> list[OutcomeEvent]:
    return [
        item if isinstance(item, OutcomeEvent) else OutcomeEvent.from_dict(item)
        for item in (items or [])
        if isinstance(item, (OutcomeEvent, dict))
    ]


def coerce_artifacts(items, workspace_id: str | None = None) -> list[StrategicArtifact]:
    return [
        item if isinstance(item, StrategicArtifact) else StrategicArtifact.from_dict(item, workspace_id)
        for item in (items or [])
        if isinstance(item, (StrategicArtifact, dict))
    ]
