"""
Counseling Form Progression Engine.

Keeps the case status in step with counseling form data entry:
  - saving the first section moves an ``assigned`` case to ``in_counseling``
  - completing the form hands the case to welfare review

Automatic moves only follow forward graph edges from the counseling phase
(``assigned`` / ``in_counseling``); cases further along are never pulled
back by a section save.  Form completion is the only automated path from
counseling into welfare review.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from baaseteen.core.exceptions import (
    FormLockedError,
    IncompleteSectionsError,
    NotFoundError,
    PermissionDenied,
    TransactionFailure,
    TransitionNotAllowed,
    ValidationError,
)
from baaseteen.models import db
from baaseteen.models.auth import User
from baaseteen.models.case import CaseComment, next_statuses, validate_status_transition
from baaseteen.models.counseling import FORM_SECTIONS, CounselingForm
from baaseteen.services.case_workflow import (
    apply_system_transition,
    dispatch_status_notification,
    get_case,
    lock_case,
)
from baaseteen.services.notification import NotificationService
from baaseteen.services.permission_service import user_has_permission
from baaseteen.services.transitions import FORM_OVERRIDE_ROLES
from baaseteen.services.workflow_stage_service import resolve_stage_by_key

logger = logging.getLogger(__name__)

COUNSELING_PHASE = ("assigned", "in_counseling")
REWORK_STATUS = "welfare_rejected"

COUNSELOR_STAGE_KEY = "counselor"
WELFARE_REVIEW_STAGE_KEY = "welfare_review"
FALLBACK_REVIEW_STATUS = "submitted_to_welfare"

PROGRESS_ACTION = "form_progress"
COMPLETION_ACTION = "form_completed"
PROGRESS_COMMENT = "Status automatically updated based on workflow stage progression"
COMPLETION_COMMENT = "Case completed and submitted to welfare department"


def derive_counseling_status(form: CounselingForm) -> str | None:
    """
    Status the form's data entry implies, or None once the form is complete.

    Counseling starts with the personal details: until that section exists
    the case stays ``assigned`` whatever else has been saved.
    """
    if form.is_complete:
        return None
    return "in_counseling" if form.personal_details_id is not None else "assigned"


def get_or_create_form(case_id: int) -> CounselingForm:
    get_case(case_id)
    form = CounselingForm.query.filter_by(case_id=case_id).first()
    if form is not None:
        return form

    form = CounselingForm(case_id=case_id)
    db.session.add(form)
    try:
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.session.rollback()
        form = CounselingForm.query.filter_by(case_id=case_id).first()
    logger.info("Counseling form %s created", form.id, extra={"case_id": case_id, "form_id": form.id})
    return form


def on_section_saved(case_id: int) -> dict | None:
    """
    Re-derive the case status after a section save and apply it.

    Returns the transition result, or None when nothing moved.  Failures are
    logged and swallowed so they never fail the save that triggered them.
    """
    try:
        case = lock_case(case_id)
        form = CounselingForm.query.filter_by(case_id=case_id).first()
        target = derive_counseling_status(form) if form is not None else None
        if (
            target is None
            or case.status not in COUNSELING_PHASE
            or not validate_status_transition(case.status, target)
        ):
            db.session.rollback()
            return None

        stage = None
        if target == "in_counseling":
            stage = resolve_stage_by_key(COUNSELOR_STAGE_KEY, case.case_type_id)
        result = apply_system_transition(
            case, target, action=PROGRESS_ACTION, comment=PROGRESS_COMMENT, stage=stage,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Automatic status progression failed", extra={"case_id": case_id})
        return None

    logger.info(
        "Case %s progressed %s -> %s", case_id, result["from_status"], target,
        extra={"case_id": case_id, "from_status": result["from_status"], "to_status": target},
    )
    dispatch_status_notification(case_id, result["from_status"], target, None, PROGRESS_COMMENT)
    return result


def save_section(form_id: int, section: str, data: dict, actor_id: int) -> dict:
    """
    Insert or update one section of a counseling form.

    A completed form is read-only unless its case is ``welfare_rejected``.
    After the save commits the case status is re-derived.
    """
    if section not in FORM_SECTIONS:
        raise ValidationError(
            f"Invalid section: {section}",
            details={"section": f"must be one of {', '.join(FORM_SECTIONS)}"},
        )
    if not isinstance(data, dict):
        raise ValidationError("Section data must be an object")

    form = db.session.get(CounselingForm, form_id)
    if form is None:
        raise NotFoundError("CounselingForm", form_id)

    actor = db.session.get(User, actor_id)
    if not user_has_permission(actor, "counseling_forms", "update"):
        raise PermissionDenied(actor.role if actor else None, "counseling_forms", "update")

    model = FORM_SECTIONS[section]
    try:
        case = lock_case(form.case_id)
        db.session.refresh(form)
        if form.is_complete and case.status != REWORK_STATUS:
            raise FormLockedError(form.id)

        row = db.session.get(model, form.section_id(section)) if form.section_id(section) else None
        if row is None:
            row = model.query.filter_by(case_id=form.case_id).first() or model(case_id=form.case_id)
            db.session.add(row)
        row.apply(data)
        db.session.flush()
        setattr(form, f"{section}_id", row.id)
        db.session.commit()
    except FormLockedError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Saving section %s failed", section,
                         extra={"form_id": form_id, "actor_id": actor_id})
        raise TransactionFailure(f"save of section '{section}'", form_id) from exc

    logger.info("Section %s saved on form %s", section, form.id,
                extra={"form_id": form.id, "case_id": form.case_id, "actor_id": actor_id})
    progress = on_section_saved(form.case_id)
    return {
        "form": form.to_dict(),
        "section": section,
        "data": row.to_dict(),
        "status_update": progress,
    }


def complete(form_id: int, actor_id: int) -> dict:
    """
    Mark a counseling form complete and submit the case to welfare review.

    Preconditions: all seven sections saved, ``counseling_forms.complete``
    permission, and the actor is the case's assigned DCM (admin roles
    excepted).  The target status is the canonical status of the
    ``welfare_review`` stage, or ``submitted_to_welfare`` without one.
    """
    form = db.session.get(CounselingForm, form_id)
    if form is None:
        raise NotFoundError("CounselingForm", form_id)

    actor = db.session.get(User, actor_id)
    if not user_has_permission(actor, "counseling_forms", "complete"):
        raise PermissionDenied(actor.role if actor else None, "counseling_forms", "complete")

    case = get_case(form.case_id)
    if actor.role not in FORM_OVERRIDE_ROLES and case.assigned_dcm_id != actor.id:
        raise PermissionDenied(
            actor.role, "counseling_forms", "complete",
            message="Only the assigned DCM can complete this counseling form",
        )

    missing = form.missing_sections()
    if missing:
        raise IncompleteSectionsError(missing)
    if form.is_complete:
        raise FormLockedError(form.id)

    try:
        case = lock_case(form.case_id)
        db.session.refresh(form)
        if form.is_complete:
            raise FormLockedError(form.id)

        stage = resolve_stage_by_key(WELFARE_REVIEW_STAGE_KEY, case.case_type_id)
        target = (stage.canonical_status if stage is not None else None) or FALLBACK_REVIEW_STATUS
        if case.status != "in_counseling":
            raise TransitionNotAllowed(
                case.status, target, gate="graph",
                legal_next_statuses=sorted(next_statuses(case.status)),
            )

        form.is_complete = True
        form.completed_at = datetime.now(timezone.utc)
        form.completed_by = actor.id

        result = apply_system_transition(
            case,
            target,
            action=COMPLETION_ACTION,
            actor_id=actor.id,
            actor_name=actor.display_name,
            comment=COMPLETION_COMMENT,
            stage=stage,
            check_graph=False,
        )
        db.session.add(CaseComment(
            case_id=case.id,
            user_id=actor.id,
            comment=f"{COMPLETION_COMMENT} for review. Case: {case.case_number}",
            comment_type="approval",
        ))
        reviewers = NotificationService.notify_welfare_reviewers(case)
        db.session.commit()
    except (FormLockedError, TransitionNotAllowed):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Completing counseling form failed",
                         extra={"form_id": form_id, "actor_id": actor_id})
        raise TransactionFailure("counseling form completion", form_id) from exc

    logger.info(
        "Counseling form %s completed; case %s -> %s", form.id, case.id, target,
        extra={"form_id": form.id, "case_id": case.id, "actor_id": actor.id, "to_status": target},
    )
    try:
        NotificationService.notify_form_completed(case.id)
    except Exception:
        db.session.rollback()
        logger.exception("Form completion notification failed", extra={"case_id": case.id})

    return {
        "form": form.to_dict(),
        "case": case.to_dict(),
        "transition": result,
        "notified_reviewers": len(reviewers),
    }
