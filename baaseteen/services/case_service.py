"""
Case creation, numbering and assignment.

Case numbers are issued in two steps: the row is inserted with a unique
temporary token (``{TYPE}-{epoch_ms}-{random}``) and, once the database has
assigned an id, rewritten to ``{PREFIX}-{id:04d}`` (``BS-0001``).
"""

import logging
import secrets
import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from baaseteen.core.exceptions import (
    NotFoundError,
    PermissionDenied,
    TransactionFailure,
    ValidationError,
)
from baaseteen.models import db
from baaseteen.models.auth import User
from baaseteen.models.case import Case, CaseType
from baaseteen.services.case_workflow import (
    apply_system_transition,
    dispatch_status_notification,
    get_case,
    lock_case,
)
from baaseteen.services.notification import NotificationService
from baaseteen.services.permission_service import has_permission, user_has_permission

logger = logging.getLogger(__name__)

DEFAULT_CASE_NUMBER_PREFIX = "BS"
ASSIGN_ACTION = "case_assigned"
ASSIGN_COMMENT = "Case assigned"


def _temporary_case_number(case_type: CaseType | None) -> str:
    type_code = (case_type.name if case_type else "CASE").upper().replace(" ", "_")
    return f"{type_code}-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"


def format_case_number(case_id: int, prefix: str | None = None) -> str:
    if prefix is None:
        prefix = current_app.config.get("CASE_NUMBER_PREFIX", DEFAULT_CASE_NUMBER_PREFIX)
    return f"{prefix}-{case_id:04d}"


def create_case(
    *,
    applicant_name: str,
    case_type_id: int | None = None,
    its_number: str | None = None,
    description: str | None = None,
    created_by: int | None = None,
) -> Case:
    """
    Insert a ``draft`` case and give it its sequential case number.

    Flushes only; the caller owns the transaction.  No workflow history is
    written: a new case has not entered any stage yet.
    """
    case_type = None
    if case_type_id is not None:
        case_type = db.session.get(CaseType, case_type_id)
        if case_type is None:
            raise NotFoundError("CaseType", case_type_id)

    case = Case(
        case_number=_temporary_case_number(case_type),
        case_type_id=case_type_id,
        applicant_name=applicant_name,
        its_number=its_number,
        description=description,
        status="draft",
        workflow_history=[],
        created_by=created_by,
    )
    db.session.add(case)
    db.session.flush()
    case.case_number = format_case_number(case.id)
    db.session.flush()
    logger.info("Case %s created", case.case_number, extra={"case_id": case.id})
    return case


def _active_user(user_id, field):
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise ValidationError(
            f"{field} must reference an active user",
            details={field: f"user {user_id} not found or inactive"},
        )
    return user


def assign_case(
    case_id: int,
    *,
    actor_id: int,
    dcm_id: int | None = None,
    counselor_id: int | None = None,
) -> dict:
    """
    Assign a DCM and/or counselor to a case.

    Requires ``cases.assign_case``; assigning only a counselor is also
    allowed with ``cases.assign_counselor``.  Giving a ``draft`` case its DCM
    moves it to ``assigned`` through the system path with the actor recorded.
    """
    if dcm_id is None and counselor_id is None:
        raise ValidationError(
            "dcm_id or counselor_id is required",
            details={"dcm_id": "required", "counselor_id": "required"},
        )

    case = get_case(case_id)
    actor = db.session.get(User, actor_id)
    if dcm_id is None:
        allowed = user_has_permission(actor, "cases", "assign_case") or (
            actor is not None and actor.is_active
            and has_permission(actor.role, "cases", "assign_counselor")
        )
        if not allowed:
            raise PermissionDenied(actor.role if actor else None, "cases", "assign_counselor")
    elif not user_has_permission(actor, "cases", "assign_case"):
        raise PermissionDenied(actor.role if actor else None, "cases", "assign_case")

    if dcm_id is not None:
        _active_user(dcm_id, "dcm_id")
    if counselor_id is not None:
        _active_user(counselor_id, "counselor_id")

    result = None
    try:
        case = lock_case(case_id)
        if dcm_id is not None:
            case.assigned_dcm_id = dcm_id
        if counselor_id is not None:
            case.assigned_counselor_id = counselor_id
        if dcm_id is not None and case.status == "draft":
            result = apply_system_transition(
                case,
                "assigned",
                action=ASSIGN_ACTION,
                actor_id=actor.id,
                actor_name=actor.display_name,
                comment=ASSIGN_COMMENT,
            )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Case assignment failed", extra={"case_id": case_id, "actor_id": actor_id})
        raise TransactionFailure("case assignment", case_id) from exc

    logger.info(
        "Case %s assigned: dcm=%s counselor=%s", case_id, dcm_id, counselor_id,
        extra={"case_id": case_id, "actor_id": actor.id},
    )
    try:
        NotificationService.notify_case_assignment(case_id, dcm_id, counselor_id)
    except Exception:
        db.session.rollback()
        logger.exception("Assignment notification failed", extra={"case_id": case_id})
    if result is not None:
        dispatch_status_notification(case_id, result["from_status"], "assigned", actor.id, ASSIGN_COMMENT)

    return {"case": get_case(case_id).to_dict(), "transition": result}
