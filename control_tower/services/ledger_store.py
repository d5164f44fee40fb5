"""
Scenario Ledger — predicted vs. actual deltas per workspace.

Stored under ``ctv3:ledger:<workspace_id>`` (TTL 45 days), newest first and
capped at 200 entries; order is created_at desc, then scenario id, then id.
"""

from __future__ import annotations

import logging
import uuid

from control_tower.core.exceptions import NotFoundError, ValidationError
from control_tower.models.scenario import ScenarioLedgerEntry, normalize_deltas
from control_tower.services.cache_service import LEDGER_TTL
from control_tower.utils.helpers import normalize_iso, to_millis

logger = logging.getLogger(__name__)

MAX_ENTRIES = 200


def ledger_key(workspace_id: str) -> str:
    return f"ctv3:ledger:{workspace_id}"


def _sort_key(entry: ScenarioLedgerEntry):
    return (-(to_millis(entry.created_at) or 0), entry.scenario_id, entry.id)


def _load(store, workspace_id: str) -> list[ScenarioLedgerEntry]:
    raw = store.get(ledger_key(workspace_id))
    if not isinstance(raw, list):
        return []
    return [ScenarioLedgerEntry.from_dict(item) for item in raw if isinstance(item, dict)]


def _save(store, workspace_id: str, entries) -> list[ScenarioLedgerEntry]:
    kept = sorted(entries, key=_sort_key)[:MAX_ENTRIES]
    dropped = len(entries) - len(kept)
    if dropped > 0:
        logger.info("Ledger %s pruned %d oldest entries", workspace_id, dropped)
    store.set(ledger_key(workspace_id), [e.to_dict() for e in kept], LEDGER_TTL)
    return kept


def get_ledger_entries(store, workspace_id: str, limit=MAX_ENTRIES) -> list[dict]:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = MAX_ENTRIES
    limit = max(0, min(MAX_ENTRIES, limit))
    return [e.to_dict() for e in sorted(_load(store, workspace_id), key=_sort_key)[:limit]]


def add_ledger_entry(store, workspace_id: str, entry) -> list[dict]:
    if not workspace_id:
        raise ValidationError("workspace_id is required")
    record = entry if isinstance(entry, ScenarioLedgerEntry) else ScenarioLedgerEntry.from_dict(entry)
    if not record.id:
        record.id = f"led_{uuid.uuid4().hex[:12]}"
    _save(store, workspace_id, _load(store, workspace_id) + [record])
    return get_ledger_entries(store, workspace_id)


def record_scenario_result(store, workspace_id: str, result: dict, now_iso=None) -> dict:
    """Append a simulation result as a ledger entry and return the entry."""
    entry = ScenarioLedgerEntry(
        id=f"led_{uuid.uuid4().hex[:12]}",
        scenario_id=str(result.get("scenario_id") or ""),
        lever=str(result.get("lever") or ""),
        horizon=int(result.get("horizon") or 7),
        created_at=normalize_iso(now_iso),
        predicted=normalize_deltas(result.get("predicted")),
    )
    add_ledger_entry(store, workspace_id, entry)
    return entry.to_dict()


def update_ledger_actual(store, workspace_id: str, entry_id: str, actual: dict) -> list[dict]:
    entries = _load(store, workspace_id)
    target = next((e for e in entries if e.id == entry_id), None)
    if target is None:
        raise NotFoundError("Ledger entry", entry_id, workspace_id=workspace_id)
    target.actual = normalize_deltas(actual)
    _save(store, workspace_id, entries)
    return get_ledger_entries(store, workspace_id)
