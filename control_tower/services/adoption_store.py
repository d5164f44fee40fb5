"""
Adoption Store — per-move adoption records plus a per-workspace audit trail.

Keys (all TTL 45 days):
    ctv3:adoption:<workspace_id>:<move_id>     AdoptionRecord
    ctv3:adoption:index:<workspace_id>         sorted move ids with a record
    ctv3:adoption:meta:<workspace_id>          {last_updated_at_iso}
    ctv3:adoption:events:<workspace_id>        newest-first audit events (≤50)

Every write goes through ``set_adoption_status`` so the index, meta and
audit trail always move together.
"""

from __future__ import annotations

import logging

from control_tower.core.exceptions import ValidationError
from control_tower.models.adoption import (
    AdoptionAuditEvent,
    AdoptionRecord,
    AdoptionSource,
    AdoptionStatus,
)
from control_tower.services.cache_service import ADOPTION_TTL
from control_tower.utils.helpers import normalize_iso, to_millis

logger = logging.getLogger(__name__)

MAX_EVENTS = 50
EVENT_TYPES = ("intent", "outcome")


def record_key(workspace_id: str, move_id: str) -> str:
    return f"ctv3:adoption:{workspace_id}:{move_id}"


def index_key(workspace_id: str) -> str:
    return f"ctv3:adoption:index:{workspace_id}"


def meta_key(workspace_id: str) -> str:
    return f"ctv3:adoption:meta:{workspace_id}"


def events_key(workspace_id: str) -> str:
    return f"ctv3:adoption:events:{workspace_id}"


def _event_sort_key(event: AdoptionAuditEvent):
    return (-(to_millis(event.at_iso) or 0), event.move_id, event.status, event.source)


def _require_ids(workspace_id, move_id):
    if not workspace_id or not move_id:
        raise ValidationError("workspace_id and move_id are required")


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════

def get_adoption(store, workspace_id: str, move_id: str) -> AdoptionRecord | None:
    record = AdoptionRecord.from_dict(store.get(record_key(workspace_id, move_id)))
    if record is not None:
        record.workspace_id = workspace_id
    return record


def get_adoption_meta(store, workspace_id: str) -> dict | None:
    meta = store.get(meta_key(workspace_id))
    if not isinstance(meta, dict) or not isinstance(meta.get("last_updated_at_iso"), str):
        return None
    return {"last_updated_at_iso": meta["last_updated_at_iso"]}


def _load_events(store, workspace_id: str) -> list[AdoptionAuditEvent]:
    raw = store.get(events_key(workspace_id))
    if not isinstance(raw, list):
        return []
    events = [e for e in (AdoptionAuditEvent.from_dict(item) for item in raw) if e is not None]
    return sorted(events, key=_event_sort_key)


def list_recent_adoption_events(store, workspace_id: str, limit: int = 3) -> list[dict]:
    limit = max(0, min(MAX_EVENTS, int(limit)))
    return [e.to_dict() for e in _load_events(store, workspace_id)[:limit]]


def list_workspace_adoptions(store, workspace_id: str, move_ids=None) -> list[AdoptionRecord]:
    if move_ids is None:
        raw = store.get(index_key(workspace_id))
        move_ids = [m for m in raw if isinstance(m, str)] if isinstance(raw, list) else []
    records = []
    for move_id in sorted(set(move_ids)):
        record = get_adoption(store, workspace_id, move_id)
        if record is not None:
            records.append(record)
    return records


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════

def _touch_index(store, workspace_id: str, move_id: str) -> None:
    raw = store.get(index_key(workspace_id))
    ids = {m for m in raw if isinstance(m, str)} if isinstance(raw, list) else set()
    ids.add(move_id)
    store.set(index_key(workspace_id), sorted(ids), ADOPTION_TTL)


def _touch_meta(store, workspace_id: str, now_iso: str) -> None:
    current = get_adoption_meta(store, workspace_id)
    latest = now_iso
    if current and (to_millis(current["last_updated_at_iso"]) or 0) > (to_millis(now_iso) or 0):
        latest = current["last_updated_at_iso"]
    store.set(meta_key(workspace_id), {"last_updated_at_iso": latest}, ADOPTION_TTL)


def _append_event(store, workspace_id: str, event: AdoptionAuditEvent) -> None:
    events = sorted(_load_events(store, workspace_id) + [event], key=_event_sort_key)[:MAX_EVENTS]
    store.set(events_key(workspace_id), [e.to_dict() for e in events], ADOPTION_TTL)


def set_adoption_status(
    store,
    workspace_id: str,
    move_id: str,
    status: str,
    now_iso=None,
    adopted_at_iso=None,
    impact=None,
    move_title=None,
    source=AdoptionSource.HEURISTIC.value,
) -> AdoptionRecord:
    """Write one adoption record and append the matching audit event."""
    _require_ids(workspace_id, move_id)
    try:
        status = AdoptionStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown adoption status: {status}", details={"status": status})
    now_iso = normalize_iso(now_iso)
    current = get_adoption(store, workspace_id, move_id)

    if status == AdoptionStatus.ADOPTED.value:
        adopted_at = adopted_at_iso or (current.adopted_at_iso if current else None) or now_iso
    else:
        adopted_at = current.adopted_at_iso if current else None
    if adopted_at is not None:
        adopted_at = normalize_iso(adopted_at)

    record = AdoptionRecord(
        workspace_id=workspace_id,
        move_id=move_id,
        status=status,
        updated_at_iso=now_iso,
        adopted_at_iso=adopted_at,
        impact=dict(impact) if impact is not None else (dict(current.impact) if current else {}),
    )
    store.set(record_key(workspace_id, move_id), record.to_dict(), ADOPTION_TTL)
    _touch_index(store, workspace_id, move_id)
    _touch_meta(store, workspace_id, now_iso)
    _append_event(store, workspace_id, AdoptionAuditEvent(
        move_id=move_id,
        move_title=move_title or move_id,
        status=status,
        at_iso=now_iso,
        source=source,
    ))
    logger.debug("Adoption %s/%s → %s (%s)", workspace_id, move_id, status, source)
    return record


def record_adoption_event(store, workspace_id: str, move_id: str, event_type: str, occurred_at_iso=None, move_title=None) -> AdoptionRecord:
    """Apply an intent or outcome signal to a move.

    intent:  not_started → in_progress; any other state is left alone.
    outcome: → adopted. An existing adoption time is kept unless this event
             is earlier, so repeated outcomes never push it forward.
    """
    _require_ids(workspace_id, move_id)
    if event_type not in EVENT_TYPES:
        raise ValidationError(f"Unknown adoption event type: {event_type}", details={"type": event_type})
    occurred_at_iso = normalize_iso(occurred_at_iso)
    current = get_adoption(store, workspace_id, move_id)

    if event_type == "intent":
        if current is not None and current.status != AdoptionStatus.NOT_STARTED.value:
            return current
        return set_adoption_status(
            store, workspace_id, move_id, AdoptionStatus.IN_PROGRESS.value,
            now_iso=occurred_at_iso, move_title=move_title, source=AdoptionSource.INTENT.value,
        )

    adopted_at = occurred_at_iso
    if current is not None and current.adopted_at_iso:
        if (to_millis(current.adopted_at_iso) or 0) <= (to_millis(occurred_at_iso) or 0):
            adopted_at = current.adopted_at_iso
        if current.is_adopted and adopted_at == current.adopted_at_iso:
            return current
    return set_adoption_status(
        store, workspace_id, move_id, AdoptionStatus.ADOPTED.value,
        now_iso=occurred_at_iso, adopted_at_iso=adopted_at, move_title=move_title,
        source=AdoptionSource.OUTCOME.value,
    )
