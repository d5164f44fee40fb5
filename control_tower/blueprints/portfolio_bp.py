"""
Portfolio endpoints: ranked snapshot, executive report, workbook export.

Prefix: /api/v1/portfolio

  - POST  /snapshot                              — ranked rows, summary, insights
  - POST  /executive-report?format=json|html|pdf — board report
  - POST  /export/xlsx                           — ranking matrix workbook

Body for every endpoint:
    {
      "workspaces": [{"id", "slug", "name", "recent_actions"?, "outcomes"?}, ...],
      "filter"?: "all|critical|drifting|strong|misalignment|no_plan",
      "now_iso"?: "..."
    }
"""

import logging

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from control_tower import limiter
from control_tower.blueprints import get_json_body, get_store, request_now_iso, require_list
from control_tower.core.exceptions import ValidationError
from control_tower.services.executive_report import build_executive_report
from control_tower.services.export_service import export_portfolio_xlsx
from control_tower.services.portfolio_service import build_portfolio_snapshot
from control_tower.services.report_render import render_executive_report_html, render_executive_report_pdf
from control_tower.services.strategy_snapshot import build_workspace_control_tower_snapshot

logger = logging.getLogger(__name__)

portfolio_bp = Blueprint("portfolio", __name__, url_prefix="/api/v1/portfolio")

REPORT_FORMATS = ("json", "html", "pdf")


def _report_rate_limit():
    return current_app.config.get("REPORT_RATE_LIMIT", "30/minute")


def _workspaces(data: dict) -> list[dict]:
    workspaces = require_list(data, "workspaces")
    if not workspaces:
        raise ValidationError("workspaces is required", details={"workspaces": "expected non-empty list"})
    for index, ws in enumerate(workspaces):
        if not isinstance(ws, dict) or not ws.get("id"):
            raise ValidationError("Every workspace needs an id", details={"index": index})
    return workspaces


class _SnapshotLoader:
    """Builds each workspace snapshot once per request from the body's actions/outcomes."""

    def __init__(self, store, workspaces: list[dict]):
        self.store = store
        self.inputs = {ws["id"]: ws for ws in workspaces}
        self.cache = {}

    def __call__(self, workspace_id, now_iso):
        key = (workspace_id, now_iso)
        if key not in self.cache:
            ws = self.inputs.get(workspace_id, {})
            self.cache[key] = build_workspace_control_tower_snapshot(
                self.store,
                workspace_id,
                now_iso=now_iso,
                recent_actions=ws.get("recent_actions"),
                outcomes=ws.get("outcomes"),
            )
        return self.cache[key]


def _refs(workspaces: list[dict]) -> list[dict]:
    return [{"id": ws["id"], "slug": ws.get("slug") or ws["id"], "name": ws.get("name") or ws["id"]} for ws in workspaces]


def _portfolio_snapshot(data: dict):
    workspaces = _workspaces(data)
    now_iso = request_now_iso(data)
    loader = _SnapshotLoader(get_store(), workspaces)
    snapshot = build_portfolio_snapshot(_refs(workspaces), lambda ws_id: loader(ws_id, now_iso), now_iso)
    return snapshot, now_iso


@portfolio_bp.route("/snapshot", methods=["POST"])
def portfolio_snapshot():
    snapshot, _ = _portfolio_snapshot(get_json_body())
    return jsonify(snapshot), 200


@portfolio_bp.route("/executive-report", methods=["POST"])
@limiter.limit(_report_rate_limit)
def executive_report():
    fmt = (request.args.get("format") or "json").lower()
    if fmt not in REPORT_FORMATS:
        raise ValidationError(f"Unsupported report format: {fmt}", details={"supported": list(REPORT_FORMATS)})

    data = get_json_body()
    workspaces = _workspaces(data)
    now_iso = request_now_iso(data)
    loader = _SnapshotLoader(get_store(), workspaces)

    model = build_executive_report(
        get_store(),
        _refs(workspaces),
        loader,
        now_iso=now_iso,
        filter=data.get("filter"),
        title=current_app.config["REPORT_TITLE"],
        subtitle=current_app.config["REPORT_SUBTITLE"],
        max_workspaces=current_app.config["REPORT_MAX_WORKSPACES"],
    )

    if fmt == "html":
        return Response(render_executive_report_html(model), mimetype="text/html")
    if fmt == "pdf":
        filename = f"executive_report_{now_iso[:10]}.pdf"
        return Response(
            render_executive_report_pdf(model),
            mimetype="application/pdf",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    return jsonify(model), 200


@portfolio_bp.route("/export/xlsx", methods=["POST"])
@limiter.limit(_report_rate_limit)
def export_xlsx():
    snapshot, now_iso = _portfolio_snapshot(get_json_body())
    buf = export_portfolio_xlsx(snapshot)
    return send_file(
        buf,
        download_name=f"portfolio_{now_iso[:10]}.xlsx",
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
