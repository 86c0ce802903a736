"""
Cover letter trigger.

Generating the cover letter for a case in ``cover_letter_generated``
records the letter and submits the case to welfare review.  Rendering the
document itself happens elsewhere.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from baaseteen.core.exceptions import (
    PermissionDenied,
    TransactionFailure,
    TransitionNotAllowed,
)
from baaseteen.models import db
from baaseteen.models.auth import User
from baaseteen.models.case import CoverLetter
from baaseteen.services.case_workflow import (
    apply_system_transition,
    dispatch_status_notification,
    get_case,
    lock_case,
)
from baaseteen.services.notification import NotificationService
from baaseteen.services.permission_service import user_has_permission

logger = logging.getLogger(__name__)

REQUIRED_STATUS = "cover_letter_generated"
SUBMIT_STATUS = "submitted_to_welfare"
SUBMIT_ACTION = "cover_letter_submitted"
SUBMIT_COMMENT = "Cover letter generated and case submitted to welfare department"


def generate_cover_letter(case_id: int, actor_id: int, summary: str | None = None) -> dict:
    get_case(case_id)
    actor = db.session.get(User, actor_id)
    if not user_has_permission(actor, "cover_letters", "create"):
        raise PermissionDenied(actor.role if actor else None, "cover_letters", "create")

    try:
        case = lock_case(case_id)
        if case.status != REQUIRED_STATUS:
            raise TransitionNotAllowed(case.status, SUBMIT_STATUS, gate="graph")

        letter = CoverLetter(case_id=case.id, generated_by=actor.id, summary=summary)
        db.session.add(letter)
        result = apply_system_transition(
            case,
            SUBMIT_STATUS,
            action=SUBMIT_ACTION,
            actor_id=actor.id,
            actor_name=actor.display_name,
            comment=SUBMIT_COMMENT,
        )
        NotificationService.notify_welfare_reviewers(
            case,
            title=f"Cover Letter Generated - {case.case_number}",
            message=(
                f"A cover letter has been generated for case {case.case_number} "
                f"and is ready for review."
            ),
        )
        db.session.commit()
    except TransitionNotAllowed:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Cover letter generation failed",
                         extra={"case_id": case_id, "actor_id": actor_id})
        raise TransactionFailure("cover letter generation", case_id) from exc

    logger.info("Cover letter %s generated for case %s", letter.id, case_id,
                extra={"case_id": case_id, "actor_id": actor.id})
    dispatch_status_notification(case_id, REQUIRED_STATUS, SUBMIT_STATUS, actor.id, SUBMIT_COMMENT)
    return {"cover_letter": letter.to_dict(), "transition": result}
