"""
Tests — executive report model and its HTML / PDF renderings.

Covers:
    - workspace cap and slug ordering, scope filters
    - exactly five prescribed actions per workspace
    - weekly move briefs with adoption status and 7-day impact text
    - accountability counters, audit trail and signals used
    - report layout sections
    - decision attribution normalisation (validation, order, cap)
    - HTML sections and escaping
    - PDF structure: header, trailer, stream length, xref offsets, fixed page clipping
"""

import re

import pytest

from conftest import NOW_ISO
from control_tower.services.adoption_store import set_adoption_status
from control_tower.services.attribution_engine import compute_decision_attribution
from control_tower.services.executive_report import (
    BASELINE_SIGNAL,
    CONFIDENCE_NOTES,
    INTENT_SIGNAL,
    OUTCOME_SIGNAL,
    build_executive_report,
    workspace_next_actions,
)
from control_tower.services.report_render import (
    escape_pdf_text,
    format_audit_timestamp,
    normalize_decision_attribution,
    render_executive_report_html,
    render_executive_report_pdf,
    report_text_lines,
    truncate_insight,
)

WORKSPACES = [
    {"id": "ws-b", "slug": "beta", "name": "<Beta & Co>"},
    {"id": "ws-a", "slug": "alpha", "name": "Alpha"},
]


def _move(kind, adoption=None, **extra):
    move = {
        "kind": kind,
        "title": f"{kind.title()} move",
        "success_metric": "One number, one deadline",
        "effort": "S",
        "risk": "high",
        "expected_impact": {"health_score_delta": 7},
    }
    if adoption is not None:
        move["adoption"] = adoption
    move.update(extra)
    return move


def _workspace_snapshot(health, alignment, drift=False, moves=None, attribution=None, inputs=None):
    snapshot = {
        "health_score": health,
        "trend_7d": {"score": 0},
        "strategy": {
            "alignment": {
                "alignment_score": alignment,
                "drift_detected": drift,
                "confidence": "medium",
                "top_misaligned": [],
                "diagnostics": {"inputs": inputs or {"artifacts": 0, "actions": 0, "outcomes": 0}},
            },
            "weekly_moves": moves if moves is not None else [_move(k) for k in ("focus", "stability", "optimization")],
        },
    }
    if attribution is not None:
        snapshot["decision_attribution"] = attribution
    return snapshot


ALPHA_MOVES = [
    _move("focus", {
        "status": "adopted",
        "adopted_at_iso": "2026-01-05T00:00:00.000Z",
        "impact": {"d7": {"health_delta": 4, "alignment_delta": 2, "confidence": "high"}},
    }),
    _move("stability", {"status": "in_progress"}),
    _move("optimization", {"status": "ignored"}),
]

SNAPSHOTS = {
    "ws-a": _workspace_snapshot(
        30, 40, drift=True, moves=ALPHA_MOVES,
        attribution=[compute_decision_attribution("dec-1", "2026-01-01T00:00:00Z", 60, 65, 7)],
        inputs={"artifacts": 3, "actions": 8, "outcomes": 1},
    ),
    "ws-b": _workspace_snapshot(85, 80),
}


def _report(store, **kwargs):
    return build_executive_report(
        store, WORKSPACES, lambda ws_id, at_iso: SNAPSHOTS[ws_id], now_iso=NOW_ISO, **kwargs
    )


# ═════════════════════════════════════════════════════════════════════════════
# Model
# ═════════════════════════════════════════════════════════════════════════════

class TestReportModel:
    def test_meta_and_kpis(self, store):
        model = _report(store)
        assert model["meta"]["title"] == "Content Control Tower"
        assert model["meta"]["scope"] == "all"
        assert model["meta"]["phase"] == "Stabilization Phase"
        kpis = model["executive_summary"]["kpis"]
        assert kpis["total_workspaces"] == 2
        assert kpis["critical"] == 1
        assert kpis["strong"] == 1
        assert kpis["average_health"] == 58
        assert [p["id"] for p in model["executive_summary"]["priority_plays"]] == ["stabilize", "realign", "optimize"]

    def test_briefs_follow_slug_order(self, store):
        model = _report(store)
        assert [b["workspace_slug"] for b in model["workspace_briefs"]] == ["alpha", "beta"]
        assert model["source"]["workspace_snapshot_count"] == 2

    def test_workspace_cap(self, store):
        model = _report(store, max_workspaces=1)
        assert [b["workspace_id"] for b in model["workspace_briefs"]] == ["ws-a"]

    @pytest.mark.parametrize("scope,expected", [
        ("critical", ["ws-a"]),
        ("strong", ["ws-b"]),
        ("drifting", ["ws-a"]),
        (" ALL ", ["ws-a", "ws-b"]),
        ("bogus", ["ws-a", "ws-b"]),
    ])
    def test_scope_filter(self, store, scope, expected):
        model = _report(store, filter=scope)
        assert [b["workspace_id"] for b in model["workspace_briefs"]] == expected

    def test_layout_sections(self, store):
        model = _report(store, filter="critical")
        sections = model["layout"]["sections"]
        assert [s["id"] for s in sections] == [
            "executive-summary", "portfolio-structural-analysis", "workspace-alpha",
        ]
        assert sections[2]["title"] == "Workspace Strategic Brief: Alpha"
        assert sections[2]["page_hint"] == 3

    def test_move_briefs(self, store):
        alpha = _report(store)["workspace_briefs"][0]
        focus = alpha["weekly_moves"][0]
        assert focus["adoption_status"] == "adopted"
        assert focus["expected_impact"] == "Health delta 7"
        assert focus["impact_7d_text"] == "Impact (7d): +4 Health, +2 Alignment, Confidence high"
        assert [m["adoption_status"] for m in alpha["weekly_moves"]] == ["adopted", "in_progress", "ignored"]

    def test_decision_attribution_is_collected(self, store):
        model = _report(store)
        assert [a["decision_id"] for a in model["decision_attribution"]] == ["dec-1"]


class TestPrescription:
    def test_always_five_actions(self, store):
        alpha, beta = _report(store)["workspace_briefs"]
        assert [a["title"] for a in alpha["operational_prescription"]] == [
            "Close strategic drift loops",
            "Redefine top weekly priority",
            "Reduce non-priority WIP",
            "Tighten leverage loop",
            "Validate weekly success metric",
        ]
        assert alpha["operational_prescription"][3]["effort"] == "L"
        assert len(beta["operational_prescription"]) == 5
        assert beta["operational_prescription"][0]["effort"] == "S"

    def test_all_triggers_are_capped(self):
        row = {
            "drift_detected": True,
            "health_band": "critical",
            "health_score": 20,
            "risks": [{"code": "misalignment"}, {"code": "no_weekly_plan"}],
        }
        actions = workspace_next_actions(row)
        assert len(actions) == 5
        assert actions[-1]["title"] == "Tighten leverage loop"


class TestAccountability:
    def test_counters_and_audit(self, store):
        set_adoption_status(store, "ws-a", "m1", "in_progress", "2026-01-06T08:00:00Z", move_title="Focus move", source="intent")
        set_adoption_status(store, "ws-b", "m2", "adopted", "2026-01-06T09:00:00Z", move_title="Beta move", source="outcome")

        accountability = _report(store)["accountability"]
        assert accountability["adopted_last_7_days"] == 1
        assert accountability["in_progress"] == 1
        assert accountability["ignored"] == 1
        assert accountability["total_moves"] == 6
        assert accountability["avg_impact_delta_7"] == 6

        audit = accountability["audit"]
        assert audit["last_adoption_update_at_iso"] == "2026-01-06T09:00:00.000Z"
        assert audit["signals_used"] == [OUTCOME_SIGNAL, INTENT_SIGNAL, BASELINE_SIGNAL]
        assert audit["confidence_note"] == CONFIDENCE_NOTES["high"]
        assert [e["move_title"] for e in audit["recent_adoption_events"]] == ["Beta move", "Focus move"]

    def test_no_events_no_trail(self, store):
        model = build_executive_report(
            store, [WORKSPACES[0]], lambda ws_id, at_iso: SNAPSHOTS[ws_id], now_iso=NOW_ISO
        )
        audit = model["accountability"]["audit"]
        assert "recent_adoption_events" not in audit
        assert audit["last_adoption_update_at_iso"] is None
        assert audit["signals_used"] == [BASELINE_SIGNAL]
        assert audit["confidence_note"] == CONFIDENCE_NOTES["low"]


# ═════════════════════════════════════════════════════════════════════════════
# Attribution normalisation
# ═════════════════════════════════════════════════════════════════════════════

def _attr(decision_id, delta, window=7):
    return compute_decision_attribution(decision_id, "2026-01-01T00:00:00Z", 50, 50 + delta, window)


class TestAttributionNormalisation:
    def test_drops_invalid_and_sorts_by_magnitude(self):
        bad_window = {**_attr("dec-x", 9), "window": 10}
        no_id = {**_attr("dec-y", 9), "decision_id": "  "}
        entries = normalize_decision_attribution({
            "decision_attribution": [_attr("dec-a", 2), _attr("dec-b", -6), bad_window, no_id, "junk"],
        })
        assert [e["decision_id"] for e in entries] == ["dec-b", "dec-a"]

    def test_caps_at_five(self):
        entries = normalize_decision_attribution({
            "decision_attribution": [_attr(f"dec-{i}", i + 1) for i in range(8)],
        })
        assert len(entries) == 5
        assert entries[0]["decision_id"] == "dec-7"

    def test_reads_source_fallback(self):
        entries = normalize_decision_attribution({"source": {"decision_attribution": [_attr("dec-a", 1)]}})
        assert len(entries) == 1

    def test_truncation(self):
        text = "word " * 100
        clipped = truncate_insight(text)
        assert len(clipped) <= 220
        assert clipped.endswith("…")

    def test_audit_timestamp_format(self):
        assert format_audit_timestamp("2026-01-06T09:30:00Z") == ("2026-01-06 09:30", "2026-01-06T09:30:00.000Z")
        assert format_audit_timestamp("garbage") == ("n/a", "n/a")
        assert format_audit_timestamp(None) == ("n/a", "n/a")


# ═════════════════════════════════════════════════════════════════════════════
# Rendering
# ═════════════════════════════════════════════════════════════════════════════

class TestHtmlRender:
    def test_sections_present(self, store):
        html = render_executive_report_html(_report(store))
        for section in ('id="summary"', 'id="decision-attribution"', 'id="portfolio"',
                        'id="patterns"', 'id="plays"', 'id="workspaces"'):
            assert section in html
        assert "Accountability Overview" in html
        assert "Audit Trail" in html
        assert "Ranking Matrix" in html

    def test_names_are_escaped(self, store):
        html = render_executive_report_html(_report(store))
        assert "&lt;Beta &amp; Co&gt;" in html
        assert "<Beta & Co>" not in html

    def test_empty_sections(self, store):
        model = _report(store, filter="no_plan")
        html = render_executive_report_html(model)
        assert "No workspace briefs available." in html
        assert "No systemic patterns detected." in html
        assert 'id="decision-attribution"' not in html


class TestPdfRender:
    def test_structure(self, store):
        pdf = render_executive_report_pdf(_report(store))
        assert pdf.startswith(b"%PDF-1.4\n")
        assert pdf.endswith(b"%%EOF")

    def test_stream_length_matches(self, store):
        pdf = render_executive_report_pdf(_report(store))
        declared = int(re.search(rb"/Length (\d+)", pdf).group(1))
        start = pdf.index(b"stream\n") + len(b"stream\n")
        end = pdf.index(b"endstream")
        assert end - start == declared

    def test_xref_offsets_point_at_objects(self, store):
        pdf = render_executive_report_pdf(_report(store))
        startxref = int(re.search(rb"startxref\n(\d+)", pdf).group(1))
        assert pdf[startxref:startxref + 4] == b"xref"
        offsets = [int(m) for m in re.findall(rb"(\d{10}) 00000 n", pdf)]
        assert len(offsets) == 5
        for number, offset in enumerate(offsets, 1):
            assert pdf[offset:].startswith(f"{number} 0 obj".encode("ascii"))

    def test_fixed_page_clips_at_bottom_margin(self, store):
        model = _report(store)
        lines = report_text_lines(model)
        pdf = render_executive_report_pdf(model)
        assert b"/MediaBox [0 0 612 842]" in pdf
        # 790 down to 70 in 12pt steps
        assert pdf.count(b") Tj") == min(len(lines), 61)
        first = escape_pdf_text(lines[0]).encode("latin-1", errors="replace")
        assert b"40 790 Td\n(" + first + b") Tj" in pdf

    def test_parentheses_are_escaped(self, store):
        pdf = render_executive_report_pdf(_report(store))
        assert b"Last adoption update: n/a \\(n/a\\)" in pdf

    def test_text_lines_include_audit_events(self, store):
        set_adoption_status(store, "ws-a", "m1", "in_progress", "2026-01-06T08:00:00Z", move_title="Focus move", source="intent")
        lines = report_text_lines(_report(store))
        assert "In progress: Focus move - 2026-01-06 08:00 - source: intent" in lines
        assert "Decision Attribution & ROI Impact" in lines
