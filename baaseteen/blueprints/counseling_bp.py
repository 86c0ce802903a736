"""
Baaseteen Case Workflow
Counseling Form Blueprint - section entry and form completion.

Endpoints:
    GET /api/v1/cases/<id>/counseling-form              (get or create)
    PUT /api/v1/counseling-forms/<id>/section/<name>
    PUT /api/v1/counseling-forms/<id>/complete
"""

import logging

from flask import Blueprint, jsonify

from baaseteen.middleware.permission_required import require_permission
from baaseteen.services import counseling_progression
from baaseteen.utils.helpers import json_body, require_actor

logger = logging.getLogger(__name__)

counseling_bp = Blueprint("counseling_bp", __name__, url_prefix="/api/v1")


@counseling_bp.route("/cases/<int:case_id>/counseling-form", methods=["GET"])
@require_permission("counseling_forms", "read")
def get_counseling_form(case_id):
    form = counseling_progression.get_or_create_form(case_id)
    return jsonify(form.to_dict(include_sections=True))


@counseling_bp.route("/counseling-forms/<int:form_id>/section/<section>", methods=["PUT"])
def save_section(form_id, section):
    actor_id, err = require_actor()
    if err:
        return err
    result = counseling_progression.save_section(form_id, section, json_body(), actor_id)
    return jsonify(result)


@counseling_bp.route("/counseling-forms/<int:form_id>/complete", methods=["PUT"])
def complete_form(form_id):
    actor_id, err = require_actor()
    if err:
        return err
    result = counseling_progression.complete(form_id, actor_id)
    result["message"] = "Counseling form completed successfully and submitted to welfare department"
    return jsonify(result)
