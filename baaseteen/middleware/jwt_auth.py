"""
Bearer token middleware.

Sets ``g.jwt_user_id`` / ``g.jwt_role`` for ``/api/v1`` requests that
carry a valid access token.  Anything else (no header, bad signature,
expired token) leaves both as None; routes that need an actor answer 401
through ``require_actor`` or ``require_permission``.
"""

import logging

import jwt
from flask import g, request

from baaseteen.services.jwt_service import decode_access_token, user_id_from_claims

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
PUBLIC_PREFIXES = ("/api/v1/health",)


def _bearer_token():
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def init_jwt_middleware(app):

    @app.before_request
    def _load_identity():
        g.jwt_user_id = None
        g.jwt_role = None

        if not request.path.startswith(API_PREFIX) or request.path.startswith(PUBLIC_PREFIXES):
            return
        token = _bearer_token()
        if token is None:
            return

        try:
            claims = decode_access_token(token)
            g.jwt_user_id = user_id_from_claims(claims)
        except jwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", request.path,
                        extra={"event_type": "jwt_expired"})
            return
        except (jwt.InvalidTokenError, ValueError) as exc:
            logger.warning("Rejected access token on %s: %s", request.path, exc,
                           extra={"event_type": "jwt_invalid"})
            return
        g.jwt_role = claims.get("role")
