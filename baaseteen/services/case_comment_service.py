"""
Case comments: reviewer notes, rejection reasons and the completion note
written when a counseling form is submitted.

Listing needs ``cases.read``; adding needs ``cases.update_status``, the
same grant that lets a user act on the case.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from baaseteen.core.exceptions import PermissionDenied, TransactionFailure, ValidationError
from baaseteen.models import db
from baaseteen.models.auth import User
from baaseteen.models.case import COMMENT_TYPES, CaseComment
from baaseteen.services.case_workflow import get_case
from baaseteen.services.permission_service import user_has_permission

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 5000


def list_comments(case_id: int) -> list[CaseComment]:
    """Newest first."""
    get_case(case_id)
    return (
        CaseComment.query.filter_by(case_id=case_id)
        .order_by(CaseComment.created_at.desc(), CaseComment.id.desc())
        .all()
    )


def add_comment(case_id: int, actor_id: int, comment: str, comment_type: str = "general") -> CaseComment:
    text = (comment or "").strip() if isinstance(comment, str) else ""
    if not text:
        raise ValidationError("Comment is required", details={"comment": "required"})
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            "Comment is too long",
            details={"comment": f"at most {MAX_COMMENT_LENGTH} characters"},
        )
    comment_type = comment_type or "general"
    if comment_type not in COMMENT_TYPES:
        raise ValidationError(
            f"Invalid comment type: {comment_type}",
            details={"comment_type": f"must be one of {', '.join(COMMENT_TYPES)}"},
        )

    case = get_case(case_id)
    actor = db.session.get(User, actor_id)
    if not user_has_permission(actor, "cases", "update_status"):
        raise PermissionDenied(actor.role if actor else None, "cases", "update_status")

    row = CaseComment(case_id=case.id, user_id=actor.id, comment=text, comment_type=comment_type)
    db.session.add(row)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Adding comment failed", extra={"case_id": case_id, "actor_id": actor_id})
        raise TransactionFailure("case comment", case_id) from exc

    logger.info("Comment %s added to case %s", row.id, case.id,
                extra={"case_id": case.id, "actor_id": actor.id})
    return row
