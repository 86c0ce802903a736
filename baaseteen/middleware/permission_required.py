"""
Permission Decorators - JWT-aware RBAC decorators for route protection.

Usage:
    @bp.route("/workflow-stages", methods=["POST"])
    @require_permission("master", "create")
    def create_stage():
        ...

The acting user is loaded from ``g.jwt_user_id``; their current role in
the database (not the role claim in the token) is what gets checked.
"""

import functools
import logging

from flask import g

from baaseteen.models import db
from baaseteen.models.auth import User
from baaseteen.services.permission_service import user_has_permission
from baaseteen.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_permission(resource: str, action: str):
    """
    Decorator: require the JWT user to hold ``resource.action``.

    401 without an authenticated user, 403 when the permission is missing.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = getattr(g, "jwt_user_id", None)
            if user_id is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            user = db.session.get(User, user_id)
            if not user_has_permission(user, resource, action):
                logger.warning(
                    "User %s denied: missing permission '%s.%s' on %s",
                    user_id, resource, action, f.__name__,
                )
                return api_error(
                    E.FORBIDDEN, "Permission denied",
                    details={"required": f"{resource}.{action}"},
                )

            return f(*args, **kwargs)
        return decorated
    return decorator
