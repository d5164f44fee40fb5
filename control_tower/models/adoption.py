"""
Adoption records: did a workspace act on a weekly move, and what changed.

    not_started ──intent──▶ in_progress ──outcome──▶ adopted
         └───────── 14 days of silence ─────────▶ ignored
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

IMPACT_WINDOWS = (("d3", 3), ("d7", 7), ("d14", 14), ("d30", 30))


class AdoptionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ADOPTED = "adopted"
    IGNORED = "ignored"


class AdoptionSource(str, Enum):
    INTENT = "intent"
    OUTCOME = "outcome"
    HEURISTIC = "heuristic"
    MANUAL = "manual"


def status_value(value, default: str = AdoptionStatus.NOT_STARTED.value) -> str:
    try:
        return AdoptionStatus(value).value
    except ValueError:
        return default


@dataclass
class AdoptionRecord:
    workspace_id: str
    move_id: str
    status: str
    updated_at_iso: str
    adopted_at_iso: str | None = None
    impact: dict = field(default_factory=dict)  # window ("d7") → impact snapshot dict

    @property
    def is_adopted(self) -> bool:
        return self.status == AdoptionStatus.ADOPTED.value

    def as_move_adoption(self) -> dict:
        data = {"status": self.status}
        if self.adopted_at_iso:
            data["adopted_at_iso"] = self.adopted_at_iso
        if self.impact:
            data["impact"] = {k: dict(v) for k, v in self.impact.items()}
        return data

    def to_dict(self) -> dict:
        return {
            "workspace_id": self.workspace_id,
            "move_id": self.move_id,
            "status": self.status,
            "adopted_at_iso": self.adopted_at_iso,
            "impact": {k: dict(v) for k, v in self.impact.items()},
            "updated_at_iso": self.updated_at_iso,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AdoptionRecord | None":
        if not isinstance(data, dict) or not isinstance(data.get("move_id"), str):
            return None
        impact = data.get("impact") if isinstance(data.get("impact"), dict) else {}
        return cls(
            workspace_id=str(data.get("workspace_id") or ""),
            move_id=data["move_id"],
            status=status_value(data.get("status")),
            updated_at_iso=str(data.get("updated_at_iso") or ""),
            adopted_at_iso=data.get("adopted_at_iso") if isinstance(data.get("adopted_at_iso"), str) else None,
            impact={k: dict(v) for k, v in impact.items() if isinstance(v, dict)},
        )


@dataclass
class AdoptionAuditEvent:
    move_id: str
    move_title: str
    status: str
    at_iso: str
    source: str

    def to_dict(self) -> dict:
        return {
            "move_id": self.move_id,
            "move_title": self.move_title,
            "status": self.status,
            "at_iso": self.at_iso,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AdoptionAuditEvent | None":
        if not isinstance(data, dict):
            return None
        fields = ("move_id", "move_title", "status", "at_iso", "source")
        if not all(isinstance(data.get(k), str) for k in fields):
            return None
        return cls(**{k: data[k] for k in fields})


@dataclass
class WorkspaceAdoptionSummary:
    adopted_last_7_days: int = 0
    ignored: int = 0
    in_progress: int = 0
    total_moves: int = 0
    avg_impact_delta_7: int = 0

    def to_dict(self) -> dict:
        return {
            "adopted_last_7_days": self.adopted_last_7_days,
            "ignored": self.ignored,
            "in_progress": self.in_progress,
            "total_moves": self.total_moves,
            "avg_impact_delta_7": self.avg_impact_delta_7,
        }
