"""
Executive report rendering.

    render_executive_report_html(model) → str    print-friendly HTML, inline CSS
    render_executive_report_pdf(model)  → bytes  single-page text PDF (Helvetica 10pt)

The PDF is written by hand: one fixed 612x842 page, one content stream,
at most 180 text lines (lines past the bottom margin are clipped),
byte-accurate xref offsets. No external renderer is required.
All interpolated text is HTML/PDF-escaped; malformed attribution entries
are dropped rather than failing the render.
"""

from __future__ import annotations

import html

from control_tower.utils.helpers import clamp, is_finite_number, parse_iso, round_half_up, to_iso

MAX_PDF_LINES = 180
MAX_ATTRIBUTION = 5
INSIGHT_LIMIT = 220
ATTRIBUTION_WINDOWS = (7, 14, 30)

PDF_WIDTH = 612
PDF_HEIGHT = 842
PDF_TOP = 790
PDF_BOTTOM = 60
PDF_LEADING = 12

DEFAULT_CONFIDENCE_NOTE = "Impact is early and may be noisy; confidence is low due to sparse signals."

STATUS_LABELS = {
    "in_progress": "In progress",
    "not_started": "Not started",
    "ignored": "Ignored",
}


# ═════════════════════════════════════════════════════════════════════════════
# Formatting helpers
# ═════════════════════════════════════════════════════════════════════════════

def escape_html(value) -> str:
    return html.escape(str(value), quote=True)


def escape_pdf_text(value) -> str:
    return str(value).replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def status_label(status) -> str:
    return STATUS_LABELS.get(status, "Adopted")


def format_audit_timestamp(iso) -> tuple[str, str]:
    """(``YYYY-MM-DD HH:MM``, normalized ISO), or ("n/a", "n/a")."""
    parsed = parse_iso(iso) if iso else None
    if parsed is None:
        return "n/a", "n/a"
    normalized = to_iso(parsed)
    return normalized[:16].replace("T", " "), normalized


def format_int(value) -> str:
    return f"{round_half_up(value):,}"


def format_confidence_percent(value) -> str:
    return f"{round_half_up(clamp(value, 0, 1) * 100)}%"


def truncate_insight(value: str, limit: int = INSIGHT_LIMIT) -> str:
    if len(value) <= limit:
        return value
    clipped = value[:max(0, limit - 1)]
    cut = clipped.rfind(" ")
    if cut > 80:
        clipped = clipped[:cut]
    return clipped + "…"


def health_chip_class(score) -> str:
    if score >= 80:
        return "chip chip--health-strong"
    if score >= 60:
        return "chip chip--health-ok"
    if score >= 40:
        return "chip chip--health-risk"
    return "chip chip--health-critical"


def confidence_chip_class(confidence) -> str:
    if confidence in ("high", "medium"):
        return f"chip chip--confidence-{confidence}"
    return "chip chip--confidence-low"


# ═════════════════════════════════════════════════════════════════════════════
# Decision attribution
# ═════════════════════════════════════════════════════════════════════════════

def _non_empty(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _attribution_entry(entry):
    if not isinstance(entry, dict):
        return None
    numbers = ("baseline_score", "current_score", "delta_score", "estimated_roi", "confidence")
    if not _non_empty(entry.get("decision_id")) or not _non_empty(entry.get("adopted_at")):
        return None
    window = entry.get("window")
    if isinstance(window, bool) or window not in ATTRIBUTION_WINDOWS:
        return None
    if not all(is_finite_number(entry.get(k)) for k in numbers):
        return None
    if not _non_empty(entry.get("explanation")):
        return None
    return {
        "decision_id": entry["decision_id"].strip(),
        "adopted_at": entry["adopted_at"].strip(),
        "window": int(window),
        **{k: entry[k] for k in numbers},
        "explanation": truncate_insight(entry["explanation"].strip()),
    }


def normalize_decision_attribution(model: dict) -> list[dict]:
    """Valid attribution entries, largest absolute delta first, at most five."""
    raw = model.get("decision_attribution")
    if not isinstance(raw, list):
        raw = (model.get("source") or {}).get("decision_attribution")
    if not isinstance(raw, list):
        return []
    entries = [e for e in (_attribution_entry(item) for item in raw) if e is not None]
    entries.sort(key=lambda e: (-abs(e["delta_score"]), e["decision_id"], e["window"], e["adopted_at"]))
    return entries[:MAX_ATTRIBUTION]


def attribution_summary(entries: list[dict]) -> str:
    if len(entries) < 2:
        return ""
    total_delta = sum(e["delta_score"] for e in entries)
    total_roi = sum(e["estimated_roi"] for e in entries)
    avg_confidence = sum(e["confidence"] for e in entries) / len(entries)
    return (
        f"Across {len(entries)} strategic decisions, the Control Score improved by "
        f"{format_int(total_delta)} points, corresponding to an estimated combined ROI of "
        f"{format_int(total_roi)}. Average confidence level: {format_confidence_percent(avg_confidence)}."
    )


# ═════════════════════════════════════════════════════════════════════════════
# PDF
# ═════════════════════════════════════════════════════════════════════════════

def report_text_lines(model: dict) -> list[str]:
    """Plain-text body of the report, in PDF order."""
    meta = model["meta"]
    summary = model["executive_summary"]
    kpis = summary["kpis"]
    lines = [
        meta["title"],
        meta["subtitle"],
        f"Generated: {meta['generated_at_iso']}",
        f"Scope: {meta['scope']}",
        f"Phase: {meta['phase']}",
        "",
        "Executive Headline",
        summary["strategic_headline"],
        summary["portfolio_narrative"],
        "",
        "Executive Snapshot",
        f"Total Workspaces: {kpis['total_workspaces']}",
        f"Critical: {kpis['critical']}",
        f"Drifting: {kpis['drifting']}",
        f"Strong: {kpis['strong']}",
        f"Average Alignment: {kpis['average_alignment']}",
        f"Average Health: {kpis['average_health']}",
    ]

    accountability = model.get("accountability")
    if accountability:
        lines += [
            f"Moves adopted (7d): {accountability['adopted_last_7_days']}",
            f"Moves in progress: {accountability['in_progress']}",
            f"Moves ignored: {accountability['ignored']}",
            f"Avg impact delta (7d): {accountability.get('avg_impact_delta_7', 0)}",
        ]
        audit = accountability.get("audit")
        if audit:
            compact, raw_iso = format_audit_timestamp(audit.get("last_adoption_update_at_iso"))
            lines.append(f"Last adoption update: {compact} ({raw_iso})")
            lines.append("Signals used:")
            lines += [f"- {signal}" for signal in audit.get("signals_used", [])]
            lines.append(f"Confidence note: {audit.get('confidence_note', DEFAULT_CONFIDENCE_NOTE)}")
            for event in audit.get("recent_adoption_events", []):
                at, _ = format_audit_timestamp(event["at_iso"])
                lines.append(f"{status_label(event['status'])}: {event['move_title']} - {at} - source: {event['source']}")
    lines.append("")

    attribution = normalize_decision_attribution(model)
    if attribution:
        lines += ["Decision Attribution & ROI Impact", "Measured impact of adopted strategic decisions"]
        if len(attribution) > 1:
            lines.append(attribution_summary(attribution))
        for item in attribution:
            lines += [
                f"Decision Reference: {item['decision_id']}",
                f"Impact Window: {item['window']} days",
                f"Control Score Improvement: {format_int(item['delta_score'])} pts",
                f"Estimated ROI: {format_int(item['estimated_roi'])}",
                f"Confidence Level: {format_confidence_percent(item['confidence'])}",
                f"Executive Insight: {item['explanation']}",
            ]
        lines.append("")

    lines.append("Priority Plays")
    for play in summary["priority_plays"]:
        lines += [
            f"{play['priority']}. {play['title']}",
            f"Why: {play['why_this_matters']}",
            f"Change: {play['what_will_change']}",
            f"Outcome: {play['expected_outcome']}",
        ]
        lines += [f"- {action}" for action in play["actions"]]

    lines += ["", "Structural Analysis"]
    for pattern in model["structural_analysis"]["systemic_patterns"]:
        lines += [f"{pattern['title']} [{pattern['severity']}]", pattern["narrative"]]

    lines += ["", "Workspace Briefs"]
    for brief in model["workspace_briefs"]:
        status = brief["strategic_status"]
        lines += [
            f"{brief['workspace_name']} ({brief['workspace_slug']})",
            f"Health {status['health']}, Alignment {status['alignment']}, "
            f"Drift {'Yes' if status['drift'] else 'No'}, Confidence {status['confidence']}",
            brief["executive_diagnosis"],
        ]
        lines += [f"Action: {a['title']} [{a['effort']}]" for a in brief["operational_prescription"]]
        lines += [brief["signal"]["note"], ""]
    return lines


def _pdf_bytes(text: str) -> bytes:
    return text.encode("latin-1", errors="replace")


def render_executive_report_pdf(model: dict) -> bytes:
    lines = report_text_lines(model)[:MAX_PDF_LINES]

    y = PDF_TOP
    chunks = [f"BT\n/F1 10 Tf\n40 {PDF_TOP} Td\n"]
    for line in lines:
        if y < PDF_BOTTOM:
            break
        chunks.append(f"({escape_pdf_text(line)}) Tj\n")
        y -= PDF_LEADING
        if y >= PDF_BOTTOM:
            chunks.append(f"0 -{PDF_LEADING} Td\n")
    chunks.append("ET\n")
    stream = _pdf_bytes("".join(chunks))

    objects = [
        b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n",
        b"2 0 obj\n<< /Type /Pages /Kids [3 0 R] /Count 1 >>\nendobj\n",
        f"3 0 obj\n<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {PDF_WIDTH} {PDF_HEIGHT}] ".encode("ascii") +
        b"/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>\nendobj\n",
        b"4 0 obj\n<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>\nendobj\n",
        b"5 0 obj\n<< /Length " + str(len(stream)).encode("ascii") + b" >>\nstream\n" + stream + b"endstream\nendobj\n",
    ]

    header = b"%PDF-1.4\n"
    offsets = []
    offset = len(header)
    for obj in objects:
        offsets.append(offset)
        offset += len(obj)

    xref = [f"xref\n0 {len(objects) + 1}", "0000000000 65535 f "]
    xref += [f"{item:010d} 00000 n " for item in offsets]
    trailer = f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{offset}\n%%EOF"
    return header + b"".join(objects) + ("\n".join(xref) + "\n" + trailer).encode("ascii")


# ═════════════════════════════════════════════════════════════════════════════
# HTML
# ═════════════════════════════════════════════════════════════════════════════

REPORT_CSS = """
.ctv3-report { font-family: Arial, system-ui, sans-serif; color: #1d2430; line-height: 1.58; font-size: 14px; }
.ctv3-report * { box-sizing: border-box; }
.ctv3-report__paper { max-width: 1040px; margin: 0 auto; padding: 24px 22px; background: #fbfaf7;
                      border: 1px solid #ece8df; border-radius: 18px; }
.ctv3-report h1 { font-size: 30px; margin: 0 0 6px; color: #111827; }
.ctv3-report h2 { font-size: 18px; margin: 0 0 10px; color: #344054; }
.ctv3-report h3 { font-size: 17px; margin: 15px 0 8px; color: #101828; }
.ctv3-report h4 { font-size: 15px; margin: 11px 0 6px; color: #111827; }
.ctv3-report section + section { padding-top: 18px; border-top: 1px solid #ece8df; }
.ctv3-report .meta { font-size: 11px; letter-spacing: .08em; text-transform: uppercase; color: #6b7280; }
.ctv3-report .summary-note { font-size: 15px; color: #344054; margin: 10px 0 14px; }
.ctv3-report .kpi-grid { display: grid; grid-template-columns: repeat(3, minmax(0, 1fr)); gap: 10px; }
.ctv3-report .kpi { border: 1px solid #e6e2d8; background: #f6f4ef; padding: 10px 12px; border-radius: 12px; }
.ctv3-report table { width: 100%; border-collapse: collapse; }
.ctv3-report thead th { background: #354A5F; color: #fff; font-size: 12px; padding: 8px; text-align: left; }
.ctv3-report tbody td { padding: 8px; font-size: 12px; border-bottom: 1px solid #ece7df; vertical-align: top; }
.ctv3-report .slug { font-family: ui-monospace, Menlo, Consolas, monospace; font-size: 11px; color: #667085; }
.ctv3-report .chip { display: inline-block; padding: 3px 8px; border-radius: 999px; border: 1px solid #d9dce2;
                     font-size: 11px; background: #f7f8fa; }
.ctv3-report .chip--health-strong, .ctv3-report .chip--confidence-high { background: #edf8f1; color: #165a35; }
.ctv3-report .chip--health-ok { background: #eef5ff; color: #1f4b86; }
.ctv3-report .chip--health-risk, .ctv3-report .chip--confidence-medium { background: #fff6ea; color: #7a4f1b; }
.ctv3-report .chip--health-critical, .ctv3-report .chip--confidence-low { background: #fff0f1; color: #8c2f3c; }
.ctv3-report .chip--drift { background: #fff1f0; color: #8d3b35; }
.ctv3-report .chip--risk { text-transform: capitalize; }
.ctv3-report .block, .ctv3-report .workspace-panel { border: 1px solid #e8e3da; background: #fcfbf8; padding: 12px;
                                                    border-radius: 12px; margin-bottom: 10px; }
.ctv3-report .ctv3-section-label { text-transform: uppercase; letter-spacing: .04em; font-size: 11px; color: #475467; }
.ctv3-report .ctv3-muted, .ctv3-report .muted { color: #4b5565; font-size: 12px; }
.ctv3-report .ctv3-break-before { break-before: page; page-break-before: always; }
.ctv3-report .ctv3-avoid-break { break-inside: avoid; page-break-inside: avoid; }
@media print { .ctv3-report__paper { background: #fff; padding: 16px; } }
"""


def _ranking_rows(rows: list[dict]) -> str:
    out = ""
    for row in rows:
        drift = '<span class="chip chip--drift">Drift</span>' if row["drift_detected"] else '<span class="muted">No</span>'
        severity = row["risks"][0]["severity"] if row.get("risks") else "low"
        out += (
            f'<tr><td><strong>{escape_html(row["workspace_name"])}</strong>'
            f'<div class="slug">/{escape_html(row["workspace_slug"])}</div></td>'
            f'<td>{row["health_score"]}</td><td>{row["strategic_alignment_score"]}</td><td>{drift}</td>'
            f'<td>{row["momentum_7d"]}</td><td><span class="chip chip--risk">{escape_html(severity)}</span></td></tr>'
        )
    return out


def _pattern_blocks(patterns: list[dict]) -> str:
    return "".join(
        f'<article class="block"><h4>{escape_html(p["title"])} <span class="chip">{escape_html(p["severity"])}</span></h4>'
        f'<p>{escape_html(p["narrative"])}</p>'
        f'<p class="meta">Affected: {escape_html(", ".join(a["name"] for a in p["affected"]))}</p></article>'
        for p in patterns
    )


def _play_blocks(plays: list[dict]) -> str:
    out = ""
    for play in plays:
        actions = "".join(f"<li>{escape_html(a)}</li>" for a in play["actions"])
        out += (
            f'<article class="block"><h4>{play["priority"]}. {escape_html(play["title"])}</h4>'
            f'<p><strong>Why this matters:</strong> {escape_html(play["why_this_matters"])}</p>'
            f'<p><strong>What will change:</strong> {escape_html(play["what_will_change"])}</p>'
            f'<ul>{actions}</ul>'
            f'<p><strong>Expected outcome:</strong> {escape_html(play["expected_outcome"])}</p></article>'
        )
    return out


def _move_items(moves: list[dict]) -> str:
    out = ""
    for move in moves:
        status = str(move.get("adoption_status") or "not_started").replace("_", " ")
        impact = move.get("impact_7d_text")
        impact_html = f'<p class="ctv3-muted">{escape_html(impact)}</p>' if isinstance(impact, str) else ""
        out += (
            f'<li><strong>{escape_html(move["kind"])}: {escape_html(move["title"])}</strong> '
            f'<span class="chip chip--risk">{escape_html(status)}</span>{impact_html}'
            f'<p class="ctv3-muted">metric: {escape_html(move["metric"])} &bull; '
            f'effort: <span class="chip">{escape_html(move["effort"])}</span> &bull; '
            f'risk: <span class="chip chip--risk">{escape_html(move["risk"])}</span> &bull; '
            f'impact: {escape_html(move["expected_impact"])}</p></li>'
        )
    return out


def _workspace_panels(briefs: list[dict]) -> str:
    out = ""
    for brief in briefs:
        status = brief["strategic_status"]
        drift = '<span class="chip chip--drift">Drift</span>' if status["drift"] else ""
        risks = "".join(
            f'<li><strong>{escape_html(r["label"])}</strong> <span class="chip chip--risk">{escape_html(r["severity"])}</span>'
            + (f'<p class="ctv3-muted">{escape_html(r["evidence"])}</p>' if r.get("evidence") else "")
            + "</li>"
            for r in brief["risk_register"]
        )
        actions = "".join(
            f'<li><strong>{escape_html(a["title"])}</strong> <span class="chip">{escape_html(a["effort"])}</span>'
            f'<p class="ctv3-muted">{escape_html(a["why"])}</p><p>Expected: {escape_html(a["expected_outcome"])}</p></li>'
            for a in brief["operational_prescription"]
        )
        out += f"""
<article class="workspace-panel ctv3-avoid-break">
<h4>{escape_html(brief["workspace_name"])} <span class="slug">/{escape_html(brief["workspace_slug"])}</span></h4>
<div>
  <span class="{health_chip_class(status["health"])}">Health {status["health"]}</span>
  <span class="chip">Alignment {status["alignment"]}</span>
  {drift}
  <span class="{confidence_chip_class(status["confidence"])}">Confidence {escape_html(status["confidence"])}</span>
</div>
<p>{escape_html(brief["executive_diagnosis"])}</p>
<h5 class="ctv3-section-label">Weekly Strategic Moves</h5>
<ul>{_move_items(brief["weekly_moves"])}</ul>
<h5 class="ctv3-section-label">Top Risks</h5>
<ul>{risks}</ul>
<h5 class="ctv3-section-label">Next 5 Actions</h5>
<ol>{actions}</ol>
<h5 class="ctv3-section-label">Signals &amp; Confidence</h5>
<p class="meta">{escape_html(brief["signal"]["note"])}</p>
</article>"""
    return out


def _audit_block(accountability: dict) -> str:
    audit = accountability.get("audit") or {}
    compact, raw_iso = format_audit_timestamp(audit.get("last_adoption_update_at_iso"))
    signals = "".join(f"<li>{escape_html(s)}</li>" for s in audit.get("signals_used", []))
    events = ""
    for event in audit.get("recent_adoption_events", []):
        at, _ = format_audit_timestamp(event["at_iso"])
        events += (
            f'<li><strong>{escape_html(status_label(event["status"]))}:</strong> {escape_html(event["move_title"])} '
            f'- {escape_html(at)} - <span class="ctv3-muted">source: {escape_html(event["source"])}</span></li>'
        )
    events_html = f'<p class="ctv3-muted">Recent adoption events:</p><ul>{events}</ul>' if events else ""
    return f"""
<h5 class="ctv3-section-label">Accountability Overview</h5>
<div class="kpi-grid">
  <div class="kpi">Moves adopted (7d): {accountability.get("adopted_last_7_days", 0)}</div>
  <div class="kpi">Moves in progress: {accountability.get("in_progress", 0)}</div>
  <div class="kpi">Moves ignored: {accountability.get("ignored", 0)}</div>
  <div class="kpi">Total moves: {accountability.get("total_moves", 0)}</div>
  <div class="kpi">Avg impact delta (7d): {accountability.get("avg_impact_delta_7", 0)}</div>
</div>
<h5 class="ctv3-section-label">Audit Trail</h5>
<p class="ctv3-muted">Last adoption update: {escape_html(compact)} <span class="chip">{escape_html(raw_iso)}</span></p>
<p class="ctv3-muted">Signals used:</p>
<ul>{signals or "<li>Baseline snapshot (at adoption)</li>"}</ul>
<p class="ctv3-muted">Confidence note: {escape_html(audit.get("confidence_note", DEFAULT_CONFIDENCE_NOTE))}</p>
{events_html}"""


def _attribution_section(entries: list[dict]) -> str:
    if not entries:
        return ""
    summary = attribution_summary(entries)
    summary_html = f'<p class="summary-note">{escape_html(summary)}</p>' if summary else ""
    blocks = "".join(
        f'<article class="block ctv3-avoid-break"><h4>Decision Reference: {escape_html(e["decision_id"])}</h4>'
        f'<div class="kpi-grid">'
        f'<div class="kpi">Impact Window: {e["window"]} days</div>'
        f'<div class="kpi">Control Score Improvement: {escape_html(format_int(e["delta_score"]))} pts</div>'
        f'<div class="kpi">Estimated ROI: {escape_html(format_int(e["estimated_roi"]))}</div>'
        f'<div class="kpi">Confidence Level: {escape_html(format_confidence_percent(e["confidence"]))}</div>'
        f'</div><p><strong>Executive Insight:</strong> {escape_html(e["explanation"])}</p></article>'
        for e in entries
    )
    return (
        '<section id="decision-attribution" class="ctv3-avoid-break">'
        "<h3>Decision Attribution &amp; ROI Impact</h3>"
        '<p class="meta">Measured impact of adopted strategic decisions</p>'
        f"{summary_html}{blocks}</section>"
    )


def render_executive_report_html(model: dict) -> str:
    """
    Render the report model as an HTML fragment with inline CSS.
    Suitable for embedding or printing to PDF from a browser.
    """
    meta = model["meta"]
    summary = model["executive_summary"]
    kpis = summary["kpis"]
    structural = model["structural_analysis"]

    patterns = _pattern_blocks(structural["systemic_patterns"])
    workspaces = _workspace_panels(model["workspace_briefs"])

    return f"""<style>{REPORT_CSS}</style>
<div class="ctv3-report">
<div class="ctv3-report__paper">
<section id="summary" class="ctv3-avoid-break">
<p class="meta">Generated: {escape_html(meta["generated_at_iso"])} &bull; Scope: {escape_html(meta["scope"])} &bull; Phase: {escape_html(meta["phase"])}</p>
<h1>{escape_html(meta["title"])}</h1>
<h2>{escape_html(meta["subtitle"])}</h2>
<p class="summary-note"><strong>{escape_html(summary["strategic_headline"])}</strong></p>
<p>{escape_html(summary["portfolio_narrative"])}</p>
<div class="kpi-grid">
  <div class="kpi">Total Workspaces: {kpis["total_workspaces"]}</div>
  <div class="kpi">Critical: {kpis["critical"]}</div>
  <div class="kpi">Drifting: {kpis["drifting"]}</div>
  <div class="kpi">Strong: {kpis["strong"]}</div>
  <div class="kpi">Average Alignment: {kpis["average_alignment"]}</div>
  <div class="kpi">Average Health: {kpis["average_health"]}</div>
</div>
{_audit_block(model.get("accountability") or {})}
</section>
{_attribution_section(normalize_decision_attribution(model))}
<section id="portfolio">
<h3>Ranking Matrix</h3>
<table>
<thead><tr><th>Workspace</th><th>Health</th><th>Alignment</th><th>Drift</th><th>Momentum</th><th>Risk Level</th></tr></thead>
<tbody>{_ranking_rows(structural["ranking_matrix"])}</tbody>
</table>
</section>
<section id="patterns" class="ctv3-avoid-break">
<h3>Systemic Patterns</h3>
{patterns or '<p class="meta">No systemic patterns detected.</p>'}
</section>
<section id="plays" class="ctv3-avoid-break">
<h3>Priority Plays</h3>
{_play_blocks(summary["priority_plays"])}
</section>
<section id="workspaces" class="ctv3-break-before">
<h3>Workspace Strategic Briefs</h3>
{workspaces or '<p class="meta">No workspace briefs available.</p>'}
</section>
</div>
</div>"""
