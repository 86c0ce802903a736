"""
Access tokens (PyJWT, HS256).

Tokens are issued by the identity provider in front of the workflow
service and signed with the shared ``JWT_SECRET_KEY``.  This module
verifies them and extracts the acting user; ``generate_access_token``
mints compatible tokens for tooling and tests.

Claims:
    sub   user id as a string
    role  role name at issue time (informational; permissions are
          always evaluated against the user's current role)
    type  "access"
    iat / exp / jti
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"
TOKEN_TYPE = "access"
DEFAULT_ACCESS_EXPIRES = 900  # seconds


def _signing_key():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def generate_access_token(user_id: int, role: str | None = None) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)
    claims = {
        # PyJWT rejects a non-string "sub"
        "sub": str(user_id),
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(seconds=lifetime),
        "jti": uuid.uuid4().hex,
    }
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify signature, expiry and token type; return the claims.

    Raises ``jwt.ExpiredSignatureError`` / ``jwt.InvalidTokenError``.
    """
    claims = jwt.decode(
        token, _signing_key(), algorithms=[ALGORITHM], options={"require": ["sub", "exp"]},
    )
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected an access token, got {claims.get('type')!r}")
    return claims


def user_id_from_claims(claims: dict) -> int:
    """Acting user id from verified claims; ValueError on a non-numeric subject."""
    return int(claims["sub"])
