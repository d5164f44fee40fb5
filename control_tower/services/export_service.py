import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from control_tower.services import portfolio_copy as copy

logger = logging.getLogger(__name__)

BAND_FILLS = {
    "strong": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "ok": PatternFill(start_color="2E86C1", end_color="2E86C1", fill_type="solid"),
    "risk": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "critical": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
}
SEVERITY_FILLS = {
    "high": PatternFill(start_color="F5B7B1", end_color="F5B7B1", fill_type="solid"),
    "medium": PatternFill(start_color="FAD7A0", end_color="FAD7A0", fill_type="solid"),
    "low": PatternFill(start_color="D5F5E3", end_color="D5F5E3", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)
HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

RANKING_HEADERS = [
    "Rank", "Workspace", "Slug", "Health", "Band", "Alignment",
    "Momentum (7d)", "Drift", "Confidence", "Top Risk", "Updated",
]
INSIGHT_HEADERS = ["Insight", "Severity", "Narrative", "Affected Workspaces", "Recommended Play"]


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def _write_ranking_sheet(ws, snapshot: dict) -> None:
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(RANKING_HEADERS))
    ws["A1"] = f"{copy.TITLE}: {snapshot.get('summary', {}).get('headline', '')}"
    ws["A1"].font = Font(size=14, bold=True)
    ws["A2"] = f"Generated: {snapshot.get('generated_at_iso', '')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    header_row = 4
    for col, header in enumerate(RANKING_HEADERS, 1):
        ws.cell(row=header_row, column=col, value=header)
    _apply_header_style(ws, header_row, len(RANKING_HEADERS))

    rows = snapshot.get("rows") or []
    if not rows:
        ws.cell(row=header_row + 1, column=1, value=copy.EMPTY_ROWS)
        return

    for rank, data in enumerate(rows, 1):
        row = header_row + rank
        risks = data.get("risks") or []
        values = [
            rank,
            data["workspace_name"],
            data["workspace_slug"],
            data["health_score"],
            data["health_band"].upper(),
            data["strategic_alignment_score"],
            data["momentum_7d"],
            "Yes" if data["drift_detected"] else "No",
            data["confidence"],
            risks[0]["label"] if risks else "",
            data.get("updated_at_iso", ""),
        ]
        for col, value in enumerate(values, 1):
            ws.cell(row=row, column=col, value=value).border = THIN_BORDER

        for col in (4, 5):
            band_cell = ws.cell(row=row, column=col)
            band_cell.fill = BAND_FILLS.get(data["health_band"], PatternFill())
            band_cell.font = WHITE_FONT
            band_cell.alignment = Alignment(horizontal="center")

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)


def _write_insights_sheet(ws, snapshot: dict) -> None:
    for col, header in enumerate(INSIGHT_HEADERS, 1):
        ws.cell(row=1, column=col, value=header)
    _apply_header_style(ws, 1, len(INSIGHT_HEADERS))

    insights = snapshot.get("insights") or []
    if not insights:
        ws.cell(row=2, column=1, value=copy.EMPTY_INSIGHTS)
        return

    for i, insight in enumerate(insights, 2):
        play = insight.get("recommended_play") or {}
        values = [
            insight["title"],
            insight["severity"].upper(),
            insight["narrative"],
            ", ".join(w["name"] for w in insight.get("affected_workspaces", [])),
            f"{play.get('title', '')}: " + " / ".join(play.get("steps", [])),
        ]
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=i, column=col, value=value)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(vertical="top", wrap_text=True)
        ws.cell(row=i, column=2).fill = SEVERITY_FILLS.get(insight["severity"], PatternFill())


def export_portfolio_xlsx(snapshot: dict) -> io.BytesIO:
    """
    Generate a styled Excel workbook from a portfolio snapshot.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    wb = Workbook()

    # ── Sheet 1: Ranking Matrix ───────────────────────────────────────
    ws = wb.active
    ws.title = "Ranking Matrix"
    _write_ranking_sheet(ws, snapshot)
    _auto_width(ws)

    # ── Sheet 2: Insights ─────────────────────────────────────────────
    ws2 = wb.create_sheet("Insights")
    _write_insights_sheet(ws2, snapshot)
    _auto_width(ws2)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Portfolio workbook exported: %d rows", len(snapshot.get("rows") or []))
    return buf
