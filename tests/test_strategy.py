"""
Tests — strategic artifact store and alignment analyzer.

Covers:
    - default seeding for an empty workspace (exactly once)
    - create with neutral defaults, tag normalisation
    - archive / restore transitions and their False results
    - active cap: the oldest decision is auto-archived first
    - version mismatch reads as empty
    - alignment scoring: coverage, focus, wins, negatives, drift
    - determinism and the neutral fallback
"""

import pytest

from conftest import NOW_ISO
from control_tower.core.exceptions import CapacityError
from control_tower.services import strategic_alignment
from control_tower.services.artifact_store import (
    MAX_ACTIVE,
    archive_strategic_artifact,
    get_strategic_artifacts,
    restore_strategic_artifact,
    save_strategic_artifact,
    store_key,
)
from control_tower.services.strategic_alignment import (
    DRIFT_REASON_FALLBACK,
    DRIFT_REASON_NEGATIVES,
    compute_strategic_alignment,
    safe_compute_strategic_alignment,
)

WS = "ws-alpha"


def _priority(**overrides):
    data = {
        "id": "art-1",
        "type": "priority",
        "title": "Ship weekly content cadence",
        "intent": "Increase delivery predictability",
        "tags": ["cadence"],
        "created_at": "2026-01-01T00:00:00.000Z",
    }
    data.update(overrides)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Artifact store
# ═════════════════════════════════════════════════════════════════════════════

class TestArtifactSeeding:
    def test_empty_workspace_gets_three_defaults(self, store):
        artifacts = get_strategic_artifacts(store, WS, NOW_ISO)
        assert len(artifacts) == 3
        assert {a.type for a in artifacts} == {"priority", "hypothesis", "assumption"}
        assert all(a.is_active and a.created_by == "system" for a in artifacts)

    def test_seed_happens_once(self, store):
        first = [a.id for a in get_strategic_artifacts(store, WS, NOW_ISO)]
        second = [a.id for a in get_strategic_artifacts(store, WS, NOW_ISO)]
        assert first == second

    def test_unknown_version_is_treated_as_empty(self, store):
        store.set(store_key(WS), {"version": 99, "artifacts": [_priority()]}, 60)
        artifacts = get_strategic_artifacts(store, WS, NOW_ISO)
        assert "art-1" not in {a.id for a in artifacts}
        assert len(artifacts) == 3


class TestArtifactWrites:
    def test_save_applies_defaults(self, store):
        artifact = save_strategic_artifact(store, WS, {"title": "  ", "type": "bogus"}, NOW_ISO)
        assert artifact.title == "Untitled strategic artifact"
        assert artifact.intent == "Define the goal and expected effect."
        assert artifact.type == "priority"
        assert artifact.created_at == NOW_ISO

    def test_tags_are_lowercased_and_capped(self, store):
        tags = ["SEO"] + [f"t{i}" for i in range(10)]
        artifact = save_strategic_artifact(store, WS, {"title": "Grow", "tags": tags}, NOW_ISO)
        assert artifact.tags[0] == "seo"
        assert len(artifact.tags) == 8

    def test_archive_and_restore(self, store):
        artifact = save_strategic_artifact(store, WS, {"title": "Grow organic"}, NOW_ISO)
        assert archive_strategic_artifact(store, WS, artifact.id, now_iso=NOW_ISO) is True
        assert archive_strategic_artifact(store, WS, artifact.id, now_iso=NOW_ISO) is False

        stored = {a.id: a for a in get_strategic_artifacts(store, WS, NOW_ISO)}
        assert stored[artifact.id].status == "archived"
        assert stored[artifact.id].archived_at == NOW_ISO

        assert restore_strategic_artifact(store, WS, artifact.id, NOW_ISO) is True
        assert restore_strategic_artifact(store, WS, artifact.id, NOW_ISO) is False

    def test_unknown_id_returns_false(self, store):
        assert archive_strategic_artifact(store, WS, "missing", now_iso=NOW_ISO) is False
        assert restore_strategic_artifact(store, WS, "missing", NOW_ISO) is False


class TestActiveCap:
    def test_oldest_decision_is_archived_first(self, store):
        decision_id = None
        for i in range(MAX_ACTIVE + 1):
            now_iso = f"2026-01-01T{i // 60:02d}:{i % 60:02d}:00.000Z"
            kind = "decision" if i == 5 else "priority"
            artifact = save_strategic_artifact(store, WS, {"title": f"Item {i}", "type": kind}, now_iso)
            if kind == "decision":
                decision_id = artifact.id

        artifacts = get_strategic_artifacts(store, WS, NOW_ISO)
        active = [a for a in artifacts if a.is_active]
        archived = [a for a in artifacts if not a.is_active]
        assert len(active) == MAX_ACTIVE
        assert [a.id for a in archived] == [decision_id]

        # at capacity: restore is refused with the active limit
        with pytest.raises(CapacityError) as exc:
            restore_strategic_artifact(store, WS, decision_id, NOW_ISO)
        assert exc.value.limit == MAX_ACTIVE


# ═════════════════════════════════════════════════════════════════════════════
# Alignment
# ═════════════════════════════════════════════════════════════════════════════

class TestAlignmentScoring:
    def test_no_inputs(self):
        result = compute_strategic_alignment([], [], [], NOW_ISO)
        # coverage 0 + focus 12 + outcome 10 + drift 10
        assert result.alignment_score == 32
        assert result.confidence == "low"
        assert result.drift_detected is False
        assert result.top_misaligned[0]["reason"] == "Low action coverage"
        titles = [r["title"] for r in result.recommended_corrections]
        assert titles[0] == "Add a priority"
        assert titles[-1] == "Archive dead hypotheses"

    def test_matched_action_scores_coverage_and_focus(self):
        actions = [{"id": "a1", "title": "Publish weekly content cadence post"}]
        result = compute_strategic_alignment([_priority()], actions, [], NOW_ISO)
        assert result.alignment_score == 90
        assert result.top_aligned == [{"artifact_id": "art-1", "title": "Ship weekly content cadence", "strength": 0.6}]
        assert result.inputs == {"artifacts": 1, "actions": 1, "outcomes": 0}

    def test_completed_outcome_on_priority_is_a_win(self):
        actions = [{"id": "a1", "title": "Publish weekly content cadence post"}]
        outcomes = [{"intent": "weekly cadence review", "outcome": "completed", "occurred_at": "2026-01-06T00:00:00Z"}]
        result = compute_strategic_alignment([_priority()], actions, outcomes, NOW_ISO)
        assert result.alignment_score == 100

    def test_repeated_negative_outcomes_flag_drift(self):
        actions = [{"id": "a1", "title": "Publish weekly content cadence post"}]
        outcomes = [
            {"intent": "content cadence experiment", "outcome": "abandoned", "occurred_at": "2026-01-05T00:00:00Z"},
            {"intent": "cadence rollout", "outcome": "ignored", "occurred_at": "2026-01-06T00:00:00Z"},
        ]
        result = compute_strategic_alignment([_priority()], actions, outcomes, NOW_ISO)
        assert result.drift_detected is True
        assert result.drift_reason == DRIFT_REASON_NEGATIVES
        # 40 + 30 + 0 + 0
        assert result.alignment_score == 70

    def test_outcomes_outside_window_are_ignored(self):
        actions = [{"id": "a1", "title": "Publish weekly content cadence post"}]
        outcomes = [
            {"intent": "content cadence", "outcome": "abandoned", "occurred_at": "2025-11-01T00:00:00Z"},
            {"intent": "content cadence", "outcome": "abandoned", "occurred_at": "2025-11-02T00:00:00Z"},
        ]
        result = compute_strategic_alignment([_priority()], actions, outcomes, NOW_ISO)
        assert result.drift_detected is False

    def test_archived_artifacts_do_not_match(self):
        actions = [{"id": "a1", "title": "Publish weekly content cadence post"}]
        result = compute_strategic_alignment([_priority(status="archived")], actions, [], NOW_ISO)
        assert result.top_aligned == []

    def test_deterministic(self):
        actions = [{"id": f"a{i}", "title": f"Weekly cadence task {i}"} for i in range(9)]
        first = compute_strategic_alignment([_priority()], actions, [], NOW_ISO).to_dict()
        second = compute_strategic_alignment([_priority()], actions, [], NOW_ISO).to_dict()
        assert first == second


class TestAlignmentFallback:
    def test_neutral_result_on_failure(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("analyzer down")

        monkeypatch.setattr(strategic_alignment, "compute_strategic_alignment", boom)
        result = safe_compute_strategic_alignment(WS, [_priority()], [{"title": "x"}], [], NOW_ISO)
        assert result.alignment_score == 50
        assert result.confidence == "low"
        assert result.drift_reason == DRIFT_REASON_FALLBACK
        assert result.inputs == {"artifacts": 1, "actions": 1, "outcomes": 0}

    @pytest.mark.parametrize("actions,expected", [(0, "low"), (5, "medium")])
    def test_confidence_thresholds(self, actions, expected):
        items = [{"id": f"a{i}", "title": "noise"} for i in range(actions)]
        assert compute_strategic_alignment([_priority()], items, [], NOW_ISO).confidence == expected
