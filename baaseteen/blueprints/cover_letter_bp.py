"""
Baaseteen Case Workflow
Cover Letter Blueprint.

Endpoints:
    POST /api/v1/cases/<id>/cover-letter
"""

from flask import Blueprint, jsonify

from baaseteen.services import cover_letter_service
from baaseteen.utils.helpers import json_body, require_actor

cover_letter_bp = Blueprint("cover_letter_bp", __name__, url_prefix="/api/v1")


@cover_letter_bp.route("/cases/<int:case_id>/cover-letter", methods=["POST"])
def generate_cover_letter(case_id):
    actor_id, err = require_actor()
    if err:
        return err
    result = cover_letter_service.generate_cover_letter(
        case_id, actor_id, summary=json_body().get("summary"),
    )
    return jsonify(result), 201
