"""
Adoption enrichment for weekly moves.

A move read without any adoption record is classified lazily: once it is
14 days old it becomes ``ignored`` and that verdict is persisted once;
younger moves read as ``not_started`` without touching the store.
"""

from __future__ import annotations

import logging

from control_tower.models.adoption import (
    AdoptionSource,
    AdoptionStatus,
    WorkspaceAdoptionSummary,
)
from control_tower.services.adoption_store import get_adoption, set_adoption_status
from control_tower.utils.helpers import days_between, normalize_iso, round_half_up

logger = logging.getLogger(__name__)

IGNORE_AFTER_DAYS = 14
RECENT_ADOPTION_DAYS = 7


def derive_status_from_age(created_at, now_iso) -> str:
    age = days_between(created_at, now_iso)
    if age is not None and age >= IGNORE_AFTER_DAYS:
        return AdoptionStatus.IGNORED.value
    return AdoptionStatus.NOT_STARTED.value


def _adoption_for(store, workspace_id, move, now_iso) -> dict:
    existing = get_adoption(store, workspace_id, move.id)
    if existing is not None:
        return existing.as_move_adoption()

    status = derive_status_from_age(move.created_at, now_iso)
    if status == AdoptionStatus.IGNORED.value:
        logger.info("Move %s in workspace %s ignored after %d days", move.id, workspace_id, IGNORE_AFTER_DAYS)
        persisted = set_adoption_status(
            store, workspace_id, move.id, status,
            now_iso=now_iso, move_title=move.title, source=AdoptionSource.HEURISTIC.value,
        )
        return persisted.as_move_adoption()
    return {"status": status}


def enrich_moves_with_adoption(store, workspace_id: str, moves, now_iso=None):
    """Attach the current adoption record to each move, keeping move order."""
    now_iso = normalize_iso(now_iso)
    for move in moves:
        move.workspace_id = workspace_id
        move.adoption = _adoption_for(store, workspace_id, move, now_iso)
    return moves


def impact_sample(adoption: dict | None, window: str = "d7"):
    """health + alignment delta for *window*, or None when not yet populated."""
    impact = ((adoption or {}).get("impact") or {}).get(window)
    if not isinstance(impact, dict):
        return None
    return (impact.get("health_delta") or 0) + (impact.get("alignment_delta") or 0)


def summarize_workspace_adoption(moves, now_iso=None) -> WorkspaceAdoptionSummary:
    now_iso = normalize_iso(now_iso)
    summary = WorkspaceAdoptionSummary(total_moves=len(moves))
    samples = []
    for move in moves:
        adoption = move.adoption or {}
        status = adoption.get("status", AdoptionStatus.NOT_STARTED.value)
        if status == AdoptionStatus.IGNORED.value:
            summary.ignored += 1
        elif status == AdoptionStatus.IN_PROGRESS.value:
            summary.in_progress += 1
        elif status == AdoptionStatus.ADOPTED.value:
            age = days_between(adoption.get("adopted_at_iso"), now_iso)
            if age is not None and 0 <= age <= RECENT_ADOPTION_DAYS:
                summary.adopted_last_7_days += 1
        sample = impact_sample(adoption)
        if sample is not None:
            samples.append(sample)
    if samples:
        summary.avg_impact_delta_7 = round_half_up(sum(samples) / len(samples))
    return summary
