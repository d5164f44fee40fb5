"""
Workspace strategy endpoints: artifacts, snapshot, weekly moves, adoption,
scenario simulation and the prediction ledger.

Prefix: /api/v1/workspaces/<workspace_id>/strategy

  - GET/POST  /artifacts                       — list, create
  - POST      /artifacts/<id>/archive          — archive an active artifact
  - POST      /artifacts/<id>/restore          — restore an archived artifact
  - POST      /snapshot                        — strategy snapshot (actions/outcomes in body)
  - POST      /control-tower                   — workspace control tower snapshot
  - GET       /moves                           — this week's moves with adoption
  - POST      /adoption/events                 — intent/outcome signal for a move
  - PUT       /adoption/<move_id>              — manual status override
  - POST      /scenario                        — simulate + record ledger entry
  - GET       /ledger                          — entries + calibration summary
  - PATCH     /ledger/<entry_id>               — record the observed actual
"""

import logging

from flask import Blueprint, jsonify

from control_tower.blueprints import get_json_body, get_store, request_now_iso, require_list
from control_tower.models.adoption import AdoptionSource
from control_tower.services.adoption_store import record_adoption_event, set_adoption_status
from control_tower.services.artifact_store import (
    archive_strategic_artifact,
    get_strategic_artifacts,
    restore_strategic_artifact,
    save_strategic_artifact,
)
from control_tower.services.calibration import summarize_calibration
from control_tower.services.ledger_store import get_ledger_entries, record_scenario_result, update_ledger_actual
from control_tower.services.scenario_engine import run_scenario_simulation
from control_tower.services.strategy_snapshot import build_strategy_snapshot, build_workspace_control_tower_snapshot
from control_tower.utils.errors import E, api_error

logger = logging.getLogger(__name__)

strategy_bp = Blueprint("strategy", __name__, url_prefix="/api/v1/workspaces/<workspace_id>/strategy")


# ═════════════════════════════════════════════════════════════════════════════
# Artifacts
# ═════════════════════════════════════════════════════════════════════════════


@strategy_bp.route("/artifacts", methods=["GET"])
def list_artifacts(workspace_id):
    """List artifacts, newest first. Seeds defaults for an empty workspace."""
    artifacts = get_strategic_artifacts(get_store(), workspace_id, request_now_iso())
    return jsonify({"items": [a.to_dict() for a in artifacts], "total": len(artifacts)}), 200


@strategy_bp.route("/artifacts", methods=["POST"])
def create_artifact(workspace_id):
    data = get_json_body()
    artifact = save_strategic_artifact(get_store(), workspace_id, data, request_now_iso(data))
    return jsonify(artifact.to_dict()), 201


@strategy_bp.route("/artifacts/<artifact_id>/archive", methods=["POST"])
def archive_artifact(workspace_id, artifact_id):
    data = get_json_body()
    archived = archive_strategic_artifact(
        get_store(), workspace_id, artifact_id,
        archived_by=data.get("archived_by"), now_iso=request_now_iso(data),
    )
    if not archived:
        return api_error(E.CONFLICT_STATE, "Artifact not found or already archived", details={"id": artifact_id})
    return jsonify({"id": artifact_id, "status": "archived"}), 200


@strategy_bp.route("/artifacts/<artifact_id>/restore", methods=["POST"])
def restore_artifact(workspace_id, artifact_id):
    data = get_json_body()
    restored = restore_strategic_artifact(get_store(), workspace_id, artifact_id, request_now_iso(data))
    if not restored:
        return api_error(
            E.CONFLICT_STATE,
            "Artifact not found or already active",
            details={"id": artifact_id},
        )
    return jsonify({"id": artifact_id, "status": "active"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Snapshots & moves
# ═════════════════════════════════════════════════════════════════════════════


@strategy_bp.route("/snapshot", methods=["POST"])
def strategy_snapshot(workspace_id):
    """Body: {recent_actions?, outcomes?, baseline_snapshot?, current_snapshot?, now_iso?}"""
    data = get_json_body()
    snapshot = build_strategy_snapshot(
        get_store(),
        workspace_id,
        recent_actions=require_list(data, "recent_actions"),
        outcomes=require_list(data, "outcomes"),
        now_iso=request_now_iso(data),
        baseline_snapshot=data.get("baseline_snapshot"),
        current_snapshot=data.get("current_snapshot"),
    )
    return jsonify(snapshot), 200


@strategy_bp.route("/control-tower", methods=["POST"])
def control_tower_snapshot(workspace_id):
    data = get_json_body()
    snapshot = build_workspace_control_tower_snapshot(
        get_store(),
        workspace_id,
        now_iso=request_now_iso(data),
        recent_actions=require_list(data, "recent_actions"),
        outcomes=require_list(data, "outcomes"),
    )
    return jsonify(snapshot), 200


@strategy_bp.route("/moves", methods=["GET"])
def weekly_moves(workspace_id):
    snapshot = build_strategy_snapshot(get_store(), workspace_id, now_iso=request_now_iso())
    return jsonify({"week_key": snapshot["week_key"], "moves": snapshot["weekly_moves"]}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Adoption
# ═════════════════════════════════════════════════════════════════════════════


@strategy_bp.route("/adoption/events", methods=["POST"])
def adoption_event(workspace_id):
    """Body: {move_id, type: intent|outcome, occurred_at_iso?, move_title?}"""
    data = get_json_body()
    move_id = data.get("move_id")
    if not move_id:
        return api_error(E.VALIDATION_REQUIRED, "move_id is required")
    if not data.get("type"):
        return api_error(E.VALIDATION_REQUIRED, "type is required")
    record = record_adoption_event(
        get_store(),
        workspace_id,
        move_id,
        data["type"],
        occurred_at_iso=data.get("occurred_at_iso") or request_now_iso(data),
        move_title=data.get("move_title"),
    )
    return jsonify(record.to_dict()), 200


@strategy_bp.route("/adoption/<move_id>", methods=["PUT"])
def set_adoption(workspace_id, move_id):
    """Operator override. Body: {status, move_title?}"""
    data = get_json_body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    record = set_adoption_status(
        get_store(),
        workspace_id,
        move_id,
        data["status"],
        now_iso=request_now_iso(data),
        move_title=data.get("move_title"),
        source=AdoptionSource.MANUAL.value,
    )
    logger.info("Manual adoption override %s/%s → %s", workspace_id, move_id, record.status,
                extra={"workspace_id": workspace_id})
    return jsonify(record.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# Scenario & ledger
# ═════════════════════════════════════════════════════════════════════════════


@strategy_bp.route("/scenario", methods=["POST"])
def simulate_scenario(workspace_id):
    """
    Body: {scenario: {id?, label?, lever, horizon}, snapshot?, now_iso?}
    Without a snapshot the workspace control tower snapshot is used.
    """
    data = get_json_body()
    scenario = data.get("scenario")
    if not isinstance(scenario, dict):
        return api_error(E.VALIDATION_REQUIRED, "scenario is required")

    store = get_store()
    now_iso = request_now_iso(data)
    snapshot = data.get("snapshot")
    if not isinstance(snapshot, dict):
        snapshot = build_workspace_control_tower_snapshot(store, workspace_id, now_iso=now_iso)

    result = run_scenario_simulation(snapshot, scenario)
    if result is None:
        return api_error(E.VALIDATION_RULE, "Snapshot has no health score to simulate from")
    entry = record_scenario_result(store, workspace_id, result, now_iso)
    return jsonify({"result": result, "ledger_entry": entry}), 201


@strategy_bp.route("/ledger", methods=["GET"])
def list_ledger(workspace_id):
    entries = get_ledger_entries(get_store(), workspace_id)
    return jsonify({"items": entries, "calibration": summarize_calibration(entries)}), 200


@strategy_bp.route("/ledger/<entry_id>", methods=["PATCH"])
def record_ledger_actual(workspace_id, entry_id):
    """Body: {actual: {health_score_delta, risk_exposure_delta, roi_delta}}"""
    data = get_json_body()
    if not isinstance(data.get("actual"), dict):
        return api_error(E.VALIDATION_REQUIRED, "actual is required")
    entries = update_ledger_actual(get_store(), workspace_id, entry_id, data["actual"])
    return jsonify({"items": entries, "calibration": summarize_calibration(entries)}), 200
