"""
Baaseteen Case Workflow
Notification Blueprint - the current user's in-app notifications.

Endpoints:
    GET /api/v1/notifications?unread_only=&limit=&offset=
    PUT /api/v1/notifications/<id>/read
    PUT /api/v1/notifications/read-all
"""

from flask import Blueprint, jsonify, request

from baaseteen.blueprints import pagination_args
from baaseteen.services.notification import NotificationService
from baaseteen.utils.helpers import require_actor

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    user_id, err = require_actor()
    if err:
        return err
    limit, offset = pagination_args()
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    items, total = NotificationService.list_for_user(
        user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(user_id),
    })


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["PUT"])
def mark_read(notification_id):
    user_id, err = require_actor()
    if err:
        return err
    notif = NotificationService.mark_read(notification_id, user_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["PUT"])
def mark_all_read():
    user_id, err = require_actor()
    if err:
        return err
    count = NotificationService.mark_all_read(user_id)
    return jsonify({"marked_read": count})
