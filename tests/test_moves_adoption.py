"""
Tests — weekly strategic moves and adoption tracking.

Covers:
    - generation: exactly three moves in focus/stability/optimization order
    - bootstrap focus when no priority exists; leverage vs experiment mode
    - risk / effort / health delta sizing and confidence downgrade
    - weekly memoisation: stable ids, malformed cache regenerates
    - adoption state machine (intent, outcome, manual, 14-day ignore)
    - audit trail cap and meta timestamp
    - workspace adoption summary
"""

import pytest

from conftest import NOW_ISO, WEEK_KEY
from control_tower.core.exceptions import ValidationError
from control_tower.models.moves import StrategicMove, is_strategic_move
from control_tower.services.adoption_engine import (
    enrich_moves_with_adoption,
    summarize_workspace_adoption,
)
from control_tower.services.adoption_store import (
    MAX_EVENTS,
    get_adoption,
    get_adoption_meta,
    list_recent_adoption_events,
    list_workspace_adoptions,
    record_adoption_event,
    set_adoption_status,
)
from control_tower.services.strategic_moves import (
    generate_strategic_moves,
    get_or_generate_weekly_moves,
    get_weekly_moves,
    moves_key,
)

WS = "ws-alpha"

PRIORITY = {
    "id": "art-1",
    "type": "priority",
    "title": "Ship weekly content cadence",
    "intent": "Increase delivery predictability",
    "success_metric": "1 post per week",
    "created_at": "2026-01-01T00:00:00.000Z",
}
HYPOTHESIS = {
    "id": "art-2",
    "type": "hypothesis",
    "title": "Cadence lifts conversion",
    "intent": "Validate cadence effect",
    "created_at": "2026-01-02T00:00:00.000Z",
}


def _moves(store, now_iso=NOW_ISO):
    return get_or_generate_weekly_moves(store, WS, [PRIORITY], {"alignment_score": 65}, [], [], now_iso)


# ═════════════════════════════════════════════════════════════════════════════
# Generation
# ═════════════════════════════════════════════════════════════════════════════

class TestGenerateMoves:
    def test_bootstrap_without_priority(self):
        moves = generate_strategic_moves(WS, [], {"alignment_score": 50}, [], [], NOW_ISO)
        assert [m.kind for m in moves] == ["focus", "stability", "optimization"]
        assert moves[0].title == "Define one strategic priority for the next 7 days"
        assert moves[1].title.startswith("Stabilize execution")
        assert moves[2].title == "Run one controlled experiment with a clear hypothesis"
        assert all(m.week_key == WEEK_KEY for m in moves)
        assert all(m.risk == "medium" for m in moves)
        assert all(m.expected_impact["health_score_delta"] == 3 for m in moves)
        assert all(m.expected_impact["confidence"] == "low" for m in moves)

    def test_leverage_mode_links_artifacts(self):
        alignment = {
            "alignment_score": 85,
            "confidence": "high",
            "top_aligned": [{"artifact_id": "art-1", "title": "x", "strength": 1}],
        }
        moves = generate_strategic_moves(WS, [PRIORITY, HYPOTHESIS], alignment, [], [], NOW_ISO)
        focus, stability, optimization = moves
        assert focus.title == "Focus on: Ship weekly content cadence"
        assert focus.success_metric == "1 post per week"
        assert stability.title.startswith("Keep the system clean")
        assert [link["artifact_id"] for link in stability.linked_artifacts] == ["art-2"]
        assert optimization.title.startswith("Optimize leverage")
        assert [link["artifact_id"] for link in optimization.linked_artifacts] == ["art-2", "art-1"]
        assert focus.risk == "low"
        # 3 base + 5 for strong alignment
        assert focus.expected_impact["health_score_delta"] == 8
        # fewer than 5 recent actions downgrades one step
        assert focus.expected_impact["confidence"] == "medium"

    def test_drift_with_low_alignment(self):
        outcomes = [
            {"intent": "a", "outcome": "failed", "occurred_at": "2026-01-05T00:00:00Z"},
            {"intent": "b", "outcome": "Cancelled", "occurred_at": "2026-01-06T00:00:00Z"},
        ]
        moves = generate_strategic_moves(
            WS, [PRIORITY], {"alignment_score": 40, "drift_detected": True}, [], outcomes, NOW_ISO
        )
        assert all(m.risk == "high" for m in moves)
        assert all(m.effort == "L" for m in moves)
        # 3 base + 2 drift with negatives + 2 low alignment
        assert moves[0].expected_impact["health_score_delta"] == 7
        assert "negatives=2" in moves[0].diagnostics["notes"]

    def test_negative_window_has_no_upper_bound(self):
        outcomes = [
            {"intent": "a", "outcome": "abandoned", "occurred_at": "2026-01-09T00:00:00Z"},
            {"intent": "b", "outcome": "ignored", "occurred_at": "2026-02-01T00:00:00Z"},
            {"intent": "c", "outcome": "abandoned", "occurred_at": "2025-12-01T00:00:00Z"},
        ]
        moves = generate_strategic_moves(WS, [PRIORITY], {"alignment_score": 85}, [], outcomes, NOW_ISO)
        assert "negatives=2" in moves[0].diagnostics["notes"]
        assert moves[1].title.startswith("Stabilize execution")
        assert all(m.risk == "high" for m in moves)

    def test_generated_moves_pass_shape_check(self):
        for move in generate_strategic_moves(WS, [PRIORITY], {}, [], [], NOW_ISO):
            assert is_strategic_move(move.to_dict())

    def test_shape_check_rejects_bad_kind(self):
        data = generate_strategic_moves(WS, [], {}, [], [], NOW_ISO)[0].to_dict()
        data["kind"] = "growth"
        with pytest.raises(ValueError):
            StrategicMove.from_dict(data)


class TestWeeklyMemoisation:
    def test_ids_are_stable_within_week(self, store):
        first = _moves(store)
        second = _moves(store)
        assert [m.id for m in first] == [m.id for m in second]
        assert all(m.id.startswith("smv_") for m in first)
        assert len({m.id for m in first}) == 3

    def test_regeneration_yields_same_ids(self, store):
        first = [m.id for m in _moves(store)]
        store.delete(moves_key(WS, WEEK_KEY))
        assert [m.id for m in _moves(store)] == first

    def test_malformed_cache_regenerates(self, store):
        store.set(moves_key(WS, WEEK_KEY), [{"bogus": 1}, {"bogus": 2}, {"bogus": 3}], 60)
        assert get_weekly_moves(store, WS, WEEK_KEY) is None
        moves = _moves(store)
        assert len(moves) == 3
        assert get_weekly_moves(store, WS, WEEK_KEY) is not None

    def test_new_week_new_moves(self, store):
        this_week = _moves(store)
        next_week = _moves(store, "2026-01-14T12:00:00.000Z")
        assert next_week[0].week_key == "2026-W03"
        assert {m.id for m in this_week}.isdisjoint({m.id for m in next_week})


# ═════════════════════════════════════════════════════════════════════════════
# Adoption state machine
# ═════════════════════════════════════════════════════════════════════════════

class TestAdoptionTransitions:
    def test_intent_then_outcome(self, store):
        record = record_adoption_event(store, WS, "m1", "intent", "2026-01-05T09:00:00Z", "Move one")
        assert record.status == "in_progress"
        assert record.adopted_at_iso is None

        record = record_adoption_event(store, WS, "m1", "outcome", "2026-01-06T09:00:00Z")
        assert record.status == "adopted"
        assert record.adopted_at_iso == "2026-01-06T09:00:00.000Z"

    def test_outcome_keeps_earliest_adoption_time(self, store):
        record_adoption_event(store, WS, "m1", "outcome", "2026-01-06T09:00:00Z")
        later = record_adoption_event(store, WS, "m1", "outcome", "2026-01-07T09:00:00Z")
        assert later.adopted_at_iso == "2026-01-06T09:00:00.000Z"
        earlier = record_adoption_event(store, WS, "m1", "outcome", "2026-01-05T09:00:00Z")
        assert earlier.adopted_at_iso == "2026-01-05T09:00:00.000Z"

    def test_intent_does_not_revive_ignored(self, store):
        set_adoption_status(store, WS, "m1", "ignored", NOW_ISO)
        record = record_adoption_event(store, WS, "m1", "intent", NOW_ISO)
        assert record.status == "ignored"

    def test_outcome_revives_ignored(self, store):
        set_adoption_status(store, WS, "m1", "ignored", NOW_ISO)
        assert record_adoption_event(store, WS, "m1", "outcome", NOW_ISO).status == "adopted"

    def test_unknown_status_and_event_type(self, store):
        with pytest.raises(ValidationError):
            set_adoption_status(store, WS, "m1", "done", NOW_ISO)
        with pytest.raises(ValidationError):
            record_adoption_event(store, WS, "m1", "click", NOW_ISO)

    def test_missing_ids_rejected(self, store):
        with pytest.raises(ValidationError):
            set_adoption_status(store, WS, "", "adopted", NOW_ISO)


class TestAdoptionAudit:
    def test_events_newest_first_and_capped(self, store):
        for i in range(MAX_EVENTS + 5):
            set_adoption_status(
                store, WS, f"m{i}", "in_progress",
                now_iso=f"2026-01-0{1 + i // 24}T{i % 24:02d}:00:00Z",
                move_title=f"Move {i}", source="manual",
            )
        events = list_recent_adoption_events(store, WS, limit=100)
        assert len(events) == MAX_EVENTS
        assert events[0]["move_id"] == f"m{MAX_EVENTS + 4}"
        assert events[0]["source"] == "manual"
        assert len(list_recent_adoption_events(store, WS)) == 3

    def test_meta_tracks_latest_update(self, store):
        assert get_adoption_meta(store, WS) is None
        set_adoption_status(store, WS, "m1", "adopted", "2026-01-06T00:00:00Z")
        set_adoption_status(store, WS, "m2", "adopted", "2026-01-05T00:00:00Z")
        assert get_adoption_meta(store, WS) == {"last_updated_at_iso": "2026-01-06T00:00:00.000Z"}

    def test_index_lists_records(self, store):
        set_adoption_status(store, WS, "m2", "in_progress", NOW_ISO)
        set_adoption_status(store, WS, "m1", "adopted", NOW_ISO)
        assert [r.move_id for r in list_workspace_adoptions(store, WS)] == ["m1", "m2"]


# ═════════════════════════════════════════════════════════════════════════════
# Enrichment & summary
# ═════════════════════════════════════════════════════════════════════════════

class TestEnrichment:
    def test_fresh_moves_read_not_started_without_writes(self, store):
        moves = enrich_moves_with_adoption(store, WS, _moves(store), NOW_ISO)
        assert all(m.adoption == {"status": "not_started"} for m in moves)
        assert get_adoption(store, WS, moves[0].id) is None

    def test_stale_moves_are_ignored_and_persisted(self, store):
        moves = _moves(store)
        later = "2026-01-21T12:00:00.000Z"
        enriched = enrich_moves_with_adoption(store, WS, moves, later)
        assert all(m.adoption["status"] == "ignored" for m in enriched)
        assert get_adoption(store, WS, moves[0].id).status == "ignored"
        events = list_recent_adoption_events(store, WS, limit=10)
        assert {e["source"] for e in events} == {"heuristic"}

    def test_summary_counts(self, store):
        moves = _moves(store)
        record_adoption_event(store, WS, moves[0].id, "outcome", "2026-01-05T00:00:00Z")
        record_adoption_event(store, WS, moves[1].id, "intent", "2026-01-05T00:00:00Z")
        set_adoption_status(store, WS, moves[2].id, "ignored", NOW_ISO)
        enriched = enrich_moves_with_adoption(store, WS, moves, NOW_ISO)
        summary = summarize_workspace_adoption(enriched, NOW_ISO).to_dict()
        assert summary == {
            "adopted_last_7_days": 1,
            "ignored": 1,
            "in_progress": 1,
            "total_moves": 3,
            "avg_impact_delta_7": 0,
        }
