"""
Baaseteen Case Workflow
Workflow Stage Blueprint - stage master data.

Endpoints:
    GET  /api/v1/workflow-stages?case_type_id=&include_inactive=
    POST /api/v1/workflow-stages
    PUT  /api/v1/workflow-stages/<id>
"""

from flask import Blueprint, jsonify, request

from baaseteen.middleware.permission_required import require_permission
from baaseteen.services import workflow_stage_service
from baaseteen.utils.helpers import json_body

workflow_stage_bp = Blueprint("workflow_stage_bp", __name__, url_prefix="/api/v1")


@workflow_stage_bp.route("/workflow-stages", methods=["GET"])
@require_permission("master", "read")
def list_stages():
    stages = workflow_stage_service.list_stages(
        case_type_id=request.args.get("case_type_id", type=int),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
    )
    return jsonify({"items": [s.to_dict() for s in stages], "total": len(stages)})


@workflow_stage_bp.route("/workflow-stages", methods=["POST"])
@require_permission("master", "create")
def create_stage():
    stage = workflow_stage_service.create_stage(json_body())
    return jsonify(stage.to_dict()), 201


@workflow_stage_bp.route("/workflow-stages/<int:stage_id>", methods=["PUT"])
@require_permission("master", "update")
def update_stage(stage_id):
    stage = workflow_stage_service.update_stage(stage_id, json_body())
    return jsonify(stage.to_dict())
