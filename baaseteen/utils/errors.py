"""Standardised API error responses.

Usage
-----
    from baaseteen.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Case not found")
    return api_error(E.VALIDATION_REQUIRED, "status is required")

Domain exceptions raised by services are translated by the handlers
installed in ``register_error_handlers``.
"""

from __future__ import annotations

import logging

from flask import jsonify

from baaseteen.core.exceptions import (
    AlreadyFinalStateError,
    ConflictError,
    FormLockedError,
    IncompleteSectionsError,
    NotFoundError,
    PermissionDenied,
    TransactionFailure,
    TransitionNotAllowed,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    INCOMPLETE_SECTIONS = "ERR_INCOMPLETE_SECTIONS"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    TRANSITION_NOT_ALLOWED = "ERR_TRANSITION_NOT_ALLOWED"
    FINAL_STATE = "ERR_FINAL_STATE"
    FORM_LOCKED = "ERR_FORM_LOCKED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.INCOMPLETE_SECTIONS: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.TRANSITION_NOT_ALLOWED: 403,
    E.FINAL_STATE: 403,
    E.FORM_LOCKED: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (legal next statuses, missing sections, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(app):
    """Install app-wide handlers that translate domain exceptions."""

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ValidationError)
    def _validation(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), status=422, details=exc.details)

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})

    @app.errorhandler(PermissionDenied)
    def _permission_denied(exc):
        return api_error(
            E.FORBIDDEN, str(exc),
            details={"required": f"{exc.resource}.{exc.action}", "role": exc.role},
        )

    @app.errorhandler(TransitionNotAllowed)
    def _transition_not_allowed(exc):
        code = E.FINAL_STATE if isinstance(exc, AlreadyFinalStateError) else E.TRANSITION_NOT_ALLOWED
        return api_error(code, str(exc), details=exc.details)

    @app.errorhandler(IncompleteSectionsError)
    def _incomplete(exc):
        return api_error(
            E.INCOMPLETE_SECTIONS, str(exc),
            details={"missing_sections": exc.missing_sections},
        )

    @app.errorhandler(FormLockedError)
    def _form_locked(exc):
        return api_error(E.FORM_LOCKED, str(exc), details={"form_id": exc.form_id})

    @app.errorhandler(TransactionFailure)
    def _transaction_failure(exc):
        logger.error("Transaction failure: %s", exc)
        return api_error(E.DATABASE, str(exc))
