"""
Baaseteen Case Workflow
Case Identification Blueprint - applicant intake and eligibility review.

Endpoints:
    POST /api/v1/case-identifications
    PUT  /api/v1/case-identifications/<id>/review
"""

from flask import Blueprint, jsonify

from baaseteen.services import case_identification_service
from baaseteen.utils.errors import E, api_error
from baaseteen.utils.helpers import json_body, require_actor

case_identification_bp = Blueprint("case_identification_bp", __name__, url_prefix="/api/v1")


@case_identification_bp.route("/case-identifications", methods=["POST"])
def create_identification():
    actor_id, err = require_actor()
    if err:
        return err
    record = case_identification_service.create_identification(json_body(), actor_id)
    return jsonify(record.to_dict()), 201


@case_identification_bp.route("/case-identifications/<int:identification_id>/review", methods=["PUT"])
def review_identification(identification_id):
    actor_id, err = require_actor()
    if err:
        return err
    data = json_body()
    status = (data.get("status") or "").strip()
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    result = case_identification_service.review_identification(
        identification_id, status, actor_id, remarks=data.get("remarks"),
    )
    return jsonify(result)
