"""
Case Identification intake.

An identification record captures a prospective applicant.  Reviewing it
as ``eligible`` opens a ``draft`` case for the applicant in the same
transaction; ``ineligible`` only records the decision.  A record can be
reviewed once.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from baaseteen.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    TransactionFailure,
    ValidationError,
)
from baaseteen.models import db
from baaseteen.models.auth import User
from baaseteen.models.case import CaseIdentification, CaseType
from baaseteen.services.case_service import create_case
from baaseteen.services.permission_service import user_has_permission

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = ("eligible", "ineligible")


def _require(actor_id, action):
    actor = db.session.get(User, actor_id)
    if not user_has_permission(actor, "case_identifications", action):
        raise PermissionDenied(actor.role if actor else None, "case_identifications", action)
    return actor


def lock_identification(identification_id: int) -> CaseIdentification:
    """``SELECT ... FOR UPDATE`` the intake record and refresh it from the row."""
    stmt = (
        select(CaseIdentification)
        .where(CaseIdentification.id == identification_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    record = db.session.execute(stmt).scalar_one_or_none()
    if record is None:
        raise NotFoundError("CaseIdentification", identification_id)
    return record


def create_identification(data: dict, actor_id: int) -> CaseIdentification:
    actor = _require(actor_id, "create")

    its_number = str(data.get("its_number") or "").strip()
    applicant_name = (data.get("applicant_name") or "").strip()
    eligible_in = data.get("eligible_in")
    missing = [
        name for name, value in (
            ("its_number", its_number),
            ("applicant_name", applicant_name),
            ("eligible_in", eligible_in),
        ) if not value
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
    if db.session.get(CaseType, eligible_in) is None:
        raise NotFoundError("CaseType", eligible_in)

    open_record = (
        CaseIdentification.query
        .filter_by(its_number=its_number, eligible_in=eligible_in, status="pending")
        .first()
    )
    if open_record is not None:
        raise ConflictError("CaseIdentification", "its_number", its_number)

    record = CaseIdentification(
        its_number=its_number,
        applicant_name=applicant_name,
        eligible_in=eligible_in,
        contact_number=data.get("contact_number"),
        remarks=data.get("remarks"),
        status="pending",
        created_by=actor.id,
    )
    db.session.add(record)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Creating case identification failed", extra={"actor_id": actor_id})
        raise TransactionFailure("case identification intake") from exc
    return record


def review_identification(
    identification_id: int,
    status: str,
    actor_id: int,
    remarks: str | None = None,
) -> dict:
    """Record an eligibility decision; ``eligible`` opens a draft case."""
    actor = _require(actor_id, "review")
    if status not in REVIEW_DECISIONS:
        raise ValidationError(
            f"Invalid review status: {status!r}",
            details={"status": f"must be one of {', '.join(REVIEW_DECISIONS)}"},
        )

    case = None
    try:
        # Serializes concurrent reviews of the same record
        record = lock_identification(identification_id)
        if record.status != "pending":
            raise ValidationError(
                f"Case identification already reviewed as '{record.status}'",
                details={"status": record.status},
            )

        record.status = status
        record.reviewed_by = actor.id
        record.reviewed_at = datetime.now(timezone.utc)
        record.review_remarks = remarks
        if status == "eligible":
            case = create_case(
                applicant_name=record.applicant_name,
                case_type_id=record.eligible_in,
                its_number=record.its_number,
                description=record.remarks,
                created_by=actor.id,
            )
            record.case_id = case.id
        db.session.commit()
    except (NotFoundError, ValidationError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Reviewing case identification failed",
                         extra={"actor_id": actor_id})
        raise TransactionFailure("case identification review", identification_id) from exc

    logger.info(
        "Case identification %s reviewed as %s", record.id, status,
        extra={"actor_id": actor.id, "case_id": case.id if case else None},
    )
    return {
        "identification": record.to_dict(),
        "case": case.to_dict() if case else None,
    }
