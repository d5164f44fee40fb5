"""Portfolio rows and bands."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class HealthBand(str, Enum):
    CRITICAL = "critical"
    RISK = "risk"
    OK = "ok"
    STRONG = "strong"


class MomentumBand(str, Enum):
    DOWN = "down"
    FLAT = "flat"
    UP = "up"


HEALTH_BAND_ORDER = {
    HealthBand.CRITICAL.value: 0,
    HealthBand.RISK.value: 1,
    HealthBand.OK.value: 2,
    HealthBand.STRONG.value: 3,
}
SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}


def health_band(score) -> str:
    if score < 40:
        return HealthBand.CRITICAL.value
    if score < 60:
        return HealthBand.RISK.value
    if score < 80:
        return HealthBand.OK.value
    return HealthBand.STRONG.value


def momentum_band(momentum) -> str:
    if momentum < -5:
        return MomentumBand.DOWN.value
    if momentum > 5:
        return MomentumBand.UP.value
    return MomentumBand.FLAT.value


@dataclass
class PortfolioRow:
    workspace_id: str
    workspace_slug: str
    workspace_name: str
    health_score: int
    momentum_7d: int
    strategic_alignment_score: int
    drift_detected: bool
    confidence: str
    updated_at_iso: str
    risks: list[dict] = field(default_factory=list)
    top_moves: list[dict] = field(default_factory=list)

    @property
    def health_band(self) -> str:
        return health_band(self.health_score)

    @property
    def momentum_band(self) -> str:
        return momentum_band(self.momentum_7d)

    @property
    def rank_key(self) -> str:
        """Zero-padded composite; lexical order equals ranking order."""
        return ":".join((
            str(HEALTH_BAND_ORDER[self.health_band]),
            "0" if self.drift_detected else "1",
            f"{self.health_score:03d}",
            f"{self.strategic_alignment_score:03d}",
            f"{self.momentum_7d + 100:03d}",
            self.workspace_name.lower(),
            self.workspace_id,
        ))

    def sort_key(self):
        return (
            HEALTH_BAND_ORDER[self.health_band],
            0 if self.drift_detected else 1,
            self.health_score,
            self.strategic_alignment_score,
            self.momentum_7d,
            self.workspace_name.lower(),
            self.workspace_id,
        )

    def has_risk(self, code: str) -> bool:
        return any(risk["code"] == code for risk in self.risks)

    def ref(self) -> dict:
        return {"workspace_id": self.workspace_id, "name": self.workspace_name, "slug": self.workspace_slug}

    def to_dict(self) -> dict:
        return {
            "workspace_id": self.workspace_id,
            "workspace_slug": self.workspace_slug,
            "workspace_name": self.workspace_name,
            "health_score": self.health_score,
            "health_band": self.health_band,
            "momentum_7d": self.momentum_7d,
            "momentum_band": self.momentum_band,
            "strategic_alignment_score": self.strategic_alignment_score,
            "drift_detected": self.drift_detected,
            "confidence": self.confidence,
            "risks": [dict(r) for r in self.risks],
            "top_moves": [dict(m) for m in self.top_moves],
            "updated_at_iso": self.updated_at_iso,
            "rank_key": self.rank_key,
        }
