"""
Strategic Artifact Store.

Per-workspace list of priorities, hypotheses, experiments, assumptions and
decisions, persisted as one versioned JSON payload in the cache store.

Capacity rules:
  - at most 100 active artifacts; when exceeded the oldest *decision* is
    archived first, then the oldest active artifact of any type
  - at most 300 archived artifacts; the oldest are dropped
  - artifacts are never hard-deleted by an explicit call

Usage:
    from control_tower.services.artifact_store import get_strategic_artifacts
    artifacts = get_strategic_artifacts(store, "ws-1", now_iso)
"""

import json
import logging
import uuid
from dataclasses import replace

from control_tower.core.exceptions import CapacityError
from control_tower.models.strategy import (
    ArtifactStatus,
    ArtifactType,
    Horizon,
    StrategicArtifact,
    pick,
)
from control_tower.services.cache_service import STRATEGY_TTL
from control_tower.utils.helpers import normalize_iso, to_millis

logger = logging.getLogger(__name__)

STORE_VERSION = 1
MAX_ACTIVE = 100
MAX_ARCHIVED = 300

_LIMITS = {
    "title": 80,
    "description": 600,
    "intent": 140,
    "success_metric": 120,
    "owner": 80,
    "created_by": 80,
    "tag": 20,
}
_MAX_TAGS = 8

DEFAULT_TITLE = "Untitled strategic artifact"
DEFAULT_INTENT = "Define the goal and expected effect."

DEFAULT_ARTIFACTS = (
    {
        "type": "priority",
        "title": "Ship consistent weekly content cadence",
        "description": "Keep a predictable publishing rhythm backed by quality and review SLAs.",
        "intent": "Increase delivery predictability and pipeline stability.",
        "success_metric": "At least 1 publication per week for 8 weeks",
        "horizon": "this_quarter",
        "tags": ["cadence", "delivery"],
    },
    {
        "type": "hypothesis",
        "title": "Publishing cadence improves inbound conversion",
        "description": "A regular publishing rhythm lifts inbound conversion through better visibility.",
        "intent": "Validate the effect of publishing regularity on conversion.",
        "success_metric": "+15% inbound conversion in 6 weeks",
        "horizon": "this_quarter",
        "tags": ["inbound", "conversion"],
    },
    {
        "type": "assumption",
        "title": "ICP values decision-grade insights over volume",
        "description": "The target audience values the quality of conclusions over publishing volume.",
        "intent": "Keep the focus on insight quality and strategic usefulness.",
        "success_metric": "CTR for insight-first content above baseline CTR",
        "horizon": "this_year",
        "tags": ["icp", "positioning"],
    },
)


def store_key(workspace_id: str) -> str:
    return f"ctv3:strategy:{workspace_id}"


def _new_id() -> str:
    return str(uuid.uuid4())


# ── Sanitisation ─────────────────────────────────────────────────────────


def _clip(value, limit: int) -> str:
    return str(value).strip()[:limit] if isinstance(value, str) else ""


def _clip_optional(value, limit: int):
    clipped = _clip(value, limit)
    return clipped or None


def _normalize_tags(tags) -> list[str]:
    if not isinstance(tags, (list, tuple)):
        return []
    cleaned = [_clip(str(tag).lower(), _LIMITS["tag"]) for tag in tags]
    return [tag for tag in cleaned if tag][:_MAX_TAGS]


def _choice(enum_cls, value, default):
    try:
        return enum_cls(value).value
    except ValueError:
        return default.value


def sanitize_artifact(workspace_id: str, record, now_iso: str):
    """Validate one stored/incoming record; returns None when unusable."""
    if not isinstance(record, dict):
        return None

    title = _clip(pick(record, "title", default="Untitled"), _LIMITS["title"])
    intent = _clip(pick(record, "intent", default=""), _LIMITS["intent"])
    if not title or not intent:
        return None

    artifact_id = pick(record, "id")
    created_at = pick(record, "created_at", "createdAt")
    created_by = _clip(pick(record, "created_by", "createdBy", default=""), _LIMITS["created_by"])
    updated_at = pick(record, "updated_at", "updatedAt")
    archived_at = pick(record, "archived_at", "archivedAt")

    return StrategicArtifact(
        id=artifact_id if isinstance(artifact_id, str) and artifact_id else _new_id(),
        workspace_id=workspace_id,
        type=_choice(ArtifactType, pick(record, "type"), ArtifactType.PRIORITY),
        title=title,
        description=_clip(pick(record, "description", default=""), _LIMITS["description"]),
        status=_choice(ArtifactStatus, pick(record, "status"), ArtifactStatus.ACTIVE),
        intent=intent,
        success_metric=_clip_optional(pick(record, "success_metric", "successMetric"), _LIMITS["success_metric"]),
        owner=_clip_optional(pick(record, "owner"), _LIMITS["owner"]),
        horizon=_choice(Horizon, pick(record, "horizon"), Horizon.THIS_QUARTER),
        tags=_normalize_tags(pick(record, "tags")),
        created_at=created_at if isinstance(created_at, str) else now_iso,
        created_by=created_by or "system",
        updated_at=updated_at if isinstance(updated_at, str) else None,
        archived_at=archived_at if isinstance(archived_at, str) else None,
    )


# ── Ordering & limits ────────────────────────────────────────────────────


def _created_key(artifact: StrategicArtifact):
    return (to_millis(artifact.created_at) or 0, artifact.id)


def enforce_limits(artifacts: list[StrategicArtifact], now_iso: str) -> list[StrategicArtifact]:
    """Apply the active/archived caps; returns active newest-first, then archived newest-first."""
    active = sorted((a for a in artifacts if a.is_active), key=_created_key)
    archived = [a for a in artifacts if not a.is_active]

    while len(active) > MAX_ACTIVE:
        decisions = [a for a in active if a.type == ArtifactType.DECISION.value]
        victim = decisions[0] if decisions else active[0]
        active.remove(victim)
        archived.append(replace(
            victim,
            status=ArtifactStatus.ARCHIVED.value,
            archived_at=now_iso,
            updated_at=now_iso,
        ))
        logger.info("Artifact %s auto-archived (active cap %d)", victim.id, MAX_ACTIVE)

    archived = sorted(archived, key=_created_key, reverse=True)[:MAX_ARCHIVED]
    return sorted(active, key=_created_key, reverse=True) + archived


# ── Payload I/O ──────────────────────────────────────────────────────────


def _empty_payload(now_iso: str) -> dict:
    return {"version": STORE_VERSION, "updated_at": now_iso, "artifacts": []}


def _parse_payload(workspace_id: str, raw, now_iso: str):
    """Returns (updated_at, artifacts) from a raw cached payload."""
    if not isinstance(raw, dict) or raw.get("version") != STORE_VERSION:
        return now_iso, []
    items = raw.get("artifacts") if isinstance(raw.get("artifacts"), list) else []
    artifacts = [a for a in (sanitize_artifact(workspace_id, item, now_iso) for item in items) if a is not None]
    updated_at = pick(raw, "updated_at", "updatedAt")
    return (updated_at if isinstance(updated_at, str) else now_iso), enforce_limits(artifacts, now_iso)


def _digest(updated_at: str, artifacts: list[StrategicArtifact]) -> str:
    return json.dumps(
        {"version": STORE_VERSION, "updated_at": updated_at, "artifacts": [a.to_dict() for a in artifacts]},
        sort_keys=True,
    )


def _save(store, workspace_id: str, artifacts: list[StrategicArtifact], now_iso: str) -> list[StrategicArtifact]:
    bounded = enforce_limits(list(artifacts), now_iso)
    store.set(
        store_key(workspace_id),
        {"version": STORE_VERSION, "updated_at": now_iso, "artifacts": [a.to_dict() for a in bounded]},
        STRATEGY_TTL,
    )
    return bounded


def _load(store, workspace_id: str, now_iso: str) -> list[StrategicArtifact]:
    return _parse_payload(workspace_id, store.get(store_key(workspace_id)), now_iso)[1]


def _newest_first(artifacts):
    return sorted(artifacts, key=_created_key, reverse=True)


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════


def get_strategic_artifacts(store, workspace_id: str, now_iso=None) -> list[StrategicArtifact]:
    """Load artifacts, seeding defaults for an empty workspace.

    Re-persists when sanitisation or limit enforcement changed the payload.
    """
    now_iso = normalize_iso(now_iso)
    raw = store.get(store_key(workspace_id))
    updated_at, artifacts = _parse_payload(workspace_id, raw, now_iso)

    if not artifacts:
        return seed_default_strategy_if_empty(store, workspace_id, now_iso)

    raw_digest = ""
    if isinstance(raw, dict) and raw.get("version") == STORE_VERSION:
        raw_items = raw.get("artifacts") if isinstance(raw.get("artifacts"), list) else []
        raw_digest = json.dumps(
            {"version": STORE_VERSION, "updated_at": raw.get("updated_at"), "artifacts": raw_items},
            sort_keys=True,
        )
    if raw_digest != _digest(updated_at, artifacts):
        logger.debug("Strategy payload for %s normalised; re-saving", workspace_id)
        _save(store, workspace_id, artifacts, now_iso)

    return _newest_first(artifacts)


def save_strategic_artifact(store, workspace_id: str, data: dict, now_iso=None) -> StrategicArtifact:
    """Create a new artifact; missing title/intent get neutral defaults."""
    now_iso = normalize_iso(now_iso)
    existing = _load(store, workspace_id, now_iso)
    data = data or {}

    title = _clip(pick(data, "title", default=DEFAULT_TITLE), _LIMITS["title"]) or DEFAULT_TITLE
    intent = _clip(pick(data, "intent", default=DEFAULT_INTENT), _LIMITS["intent"]) or DEFAULT_INTENT
    created_by = _clip(pick(data, "created_by", "createdBy", default=""), _LIMITS["created_by"])

    artifact = StrategicArtifact(
        id=_new_id(),
        workspace_id=workspace_id,
        type=_choice(ArtifactType, pick(data, "type"), ArtifactType.PRIORITY),
        title=title,
        description=_clip(pick(data, "description", default=""), _LIMITS["description"]),
        status=_choice(ArtifactStatus, pick(data, "status", default="active"), ArtifactStatus.ACTIVE),
        intent=intent,
        success_metric=_clip_optional(pick(data, "success_metric", "successMetric"), _LIMITS["success_metric"]),
        owner=_clip_optional(pick(data, "owner"), _LIMITS["owner"]),
        horizon=_choice(Horizon, pick(data, "horizon"), Horizon.THIS_QUARTER),
        tags=_normalize_tags(pick(data, "tags")),
        created_at=now_iso,
        created_by=created_by or "system",
        updated_at=now_iso,
    )

    saved = _save(store, workspace_id, [artifact] + existing, now_iso)
    logger.info("Artifact %s (%s) saved for workspace %s", artifact.id, artifact.type, workspace_id)
    return next((a for a in saved if a.id == artifact.id), artifact)


def archive_strategic_artifact(store, workspace_id: str, artifact_id: str, archived_by=None, now_iso=None) -> bool:
    """Archive an active artifact. False if missing or already archived."""
    now_iso = normalize_iso(now_iso)
    artifacts = _load(store, workspace_id, now_iso)
    target = next((a for a in artifacts if a.id == artifact_id), None)
    if target is None or not target.is_active:
        return False

    owner = _clip_optional(archived_by, _LIMITS["owner"]) or target.owner
    updated = [
        replace(a, status=ArtifactStatus.ARCHIVED.value, archived_at=now_iso, updated_at=now_iso, owner=owner)
        if a.id == artifact_id else a
        for a in artifacts
    ]
    _save(store, workspace_id, updated, now_iso)
    return True


def restore_strategic_artifact(store, workspace_id: str, artifact_id: str, now_iso=None) -> bool:
    """Re-activate an archived artifact. False if missing or already active.

    Raises CapacityError when the workspace already holds MAX_ACTIVE active artifacts.
    """
    now_iso = normalize_iso(now_iso)
    artifacts = _load(store, workspace_id, now_iso)
    target = next((a for a in artifacts if a.id == artifact_id), None)
    if target is None or target.is_active:
        return False
    if sum(1 for a in artifacts if a.is_active) >= MAX_ACTIVE:
        raise CapacityError("artifact", MAX_ACTIVE, workspace_id=workspace_id)

    updated = [
        replace(a, status=ArtifactStatus.ACTIVE.value, archived_at=None, updated_at=now_iso)
        if a.id == artifact_id else a
        for a in artifacts
    ]
    _save(store, workspace_id, updated, now_iso)
    return True


def seed_default_strategy_if_empty(store, workspace_id: str, now_iso=None) -> list[StrategicArtifact]:
    """Seed one priority, one hypothesis and one assumption into an empty workspace."""
    now_iso = normalize_iso(now_iso)
    artifacts = _load(store, workspace_id, now_iso)
    if artifacts:
        return _newest_first(artifacts)

    seeded = [
        StrategicArtifact(
            id=_new_id(),
            workspace_id=workspace_id,
            owner="system",
            created_by="system",
            created_at=now_iso,
            updated_at=now_iso,
            **{**entry, "tags": list(entry["tags"])},
        )
        for entry in DEFAULT_ARTIFACTS
    ]
    logger.info("Seeded %d default strategic artifacts for workspace %s", len(seeded), workspace_id)
    return _newest_first(_save(store, workspace_id, seeded, now_iso))
