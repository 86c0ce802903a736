"""
Baaseteen Case Workflow
Case Blueprint - case reads, status transitions and assignment.

Endpoints:
    GET  /api/v1/cases/<id>
    GET  /api/v1/cases/<id>/next-statuses
    POST /api/v1/cases/<id>/transition
    PUT  /api/v1/cases/<id>/assign
    GET  /api/v1/cases/<id>/status-history
    GET  /api/v1/cases/<id>/workflow-history
    GET  /api/v1/cases/<id>/comments
    POST /api/v1/cases/<id>/comments
"""

import logging

from flask import Blueprint, jsonify

from baaseteen.middleware.permission_required import require_permission
from baaseteen.services import case_comment_service, case_service, case_workflow
from baaseteen.utils.errors import E, api_error
from baaseteen.utils.helpers import json_body, require_actor

logger = logging.getLogger(__name__)

case_bp = Blueprint("case_bp", __name__, url_prefix="/api/v1")


@case_bp.route("/cases/<int:case_id>", methods=["GET"])
@require_permission("cases", "read")
def get_case(case_id):
    return jsonify(case_workflow.get_case(case_id).to_dict())


@case_bp.route("/cases/<int:case_id>/next-statuses", methods=["GET"])
def next_statuses(case_id):
    """Statuses the current user may move this case into."""
    actor_id, err = require_actor()
    if err:
        return err
    case = case_workflow.get_case(case_id)
    return jsonify({
        "case_id": case.id,
        "current_status": case.status,
        "next_statuses": case_workflow.get_legal_next_statuses(case_id, actor_id),
    })


@case_bp.route("/cases/<int:case_id>/transition", methods=["POST"])
def transition_case(case_id):
    actor_id, err = require_actor()
    if err:
        return err
    data = json_body()
    to_status = (data.get("status") or "").strip()
    if not to_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    result = case_workflow.transition(case_id, to_status, actor_id, data.get("comment") or "")
    return jsonify({
        "message": "Case status updated",
        "case": case_workflow.get_case(case_id).to_dict(),
        "transition": result,
    })


@case_bp.route("/cases/<int:case_id>/assign", methods=["PUT"])
def assign_case(case_id):
    actor_id, err = require_actor()
    if err:
        return err
    data = json_body()
    result = case_service.assign_case(
        case_id,
        actor_id=actor_id,
        dcm_id=data.get("dcm_id"),
        counselor_id=data.get("counselor_id"),
    )
    return jsonify(result)


@case_bp.route("/cases/<int:case_id>/status-history", methods=["GET"])
@require_permission("cases", "read")
def status_history(case_id):
    items = case_workflow.get_status_history(case_id)
    return jsonify({"items": [h.to_dict() for h in items], "total": len(items)})


@case_bp.route("/cases/<int:case_id>/workflow-history", methods=["GET"])
@require_permission("cases", "read")
def workflow_history(case_id):
    items = case_workflow.get_workflow_history(case_id)
    return jsonify({"items": items, "total": len(items)})


@case_bp.route("/cases/<int:case_id>/comments", methods=["GET"])
@require_permission("cases", "read")
def list_comments(case_id):
    items = case_comment_service.list_comments(case_id)
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)})


@case_bp.route("/cases/<int:case_id>/comments", methods=["POST"])
def add_comment(case_id):
    actor_id, err = require_actor()
    if err:
        return err
    data = json_body()
    row = case_comment_service.add_comment(
        case_id, actor_id, data.get("comment"), data.get("comment_type") or "general",
    )
    return jsonify({"message": "Comment added", "comment": row.to_dict()}), 201
