"""
Case Workflow Engine.

Owns every case status change:
  - Legality: status graph + role gate (``baaseteen.services.transitions``)
  - Atomicity: the case row is locked, its status re-read and re-validated,
    then status, workflow stage history and status history are written in
    one transaction
  - Notifications: dispatched after commit; failures are logged only

Two entry points change status:
    transition(...)               user-requested, role gated
    apply_system_transition(...)  automated moves inside a caller's
                                  transaction (progression, assignment,
                                  cover letter), graph checked only

Usage:
    from baaseteen.services.case_workflow import transition

    result = transition(case_id=7, to_status="welfare_approved", actor_id=3,
                        comment="Documents verified")
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from baaseteen.core.exceptions import (
    AlreadyFinalStateError,
    NotFoundError,
    PermissionDenied,
    TransactionFailure,
    TransitionNotAllowed,
)
from baaseteen.models import db
from baaseteen.models.audit import StatusHistory, write_status_history
from baaseteen.models.auth import User
from baaseteen.models.case import (
    CASE_STATUSES,
    FINAL_STATUSES,
    Case,
    next_statuses,
    validate_status_transition,
)
from baaseteen.models.counseling import CounselingForm
from baaseteen.services.notification import NotificationService
from baaseteen.services.permission_service import user_has_permission
from baaseteen.services.transitions import explain_rejection, legal_next_statuses
from baaseteen.services.workflow_stage_service import resolve_stage_for_status

logger = logging.getLogger(__name__)

SYSTEM_ACTOR_NAME = "System"
STATUS_PERMISSION = ("cases", "update_status")
MANUAL_ACTION = "status_changed"


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def get_case(case_id: int) -> Case:
    case = db.session.get(Case, case_id)
    if case is None:
        raise NotFoundError("Case", case_id)
    return case


def lock_case(case_id: int) -> Case:
    """``SELECT ... FOR UPDATE`` the case and refresh it from the row."""
    stmt = (
        select(Case)
        .where(Case.id == case_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    case = db.session.execute(stmt).scalar_one_or_none()
    if case is None:
        raise NotFoundError("Case", case_id)
    return case


def _graph_successors(current):
    successors = next_statuses(current)
    return [s for s in CASE_STATUSES if s in successors]


def ensure_transition_allowed(current: str, target: str, role: str | None) -> None:
    """Raise the matching TransitionNotAllowed flavour unless the move is legal."""
    gate = explain_rejection(current, target, role)
    if gate is None:
        return
    if gate == "final_state":
        raise AlreadyFinalStateError(current, target, role=role)
    raise TransitionNotAllowed(
        current, target, gate=gate, role=role,
        legal_next_statuses=legal_next_statuses(current, role),
    )


def _reopen_counseling_form(case_id: int) -> None:
    form = CounselingForm.query.filter_by(case_id=case_id).first()
    if form is not None and form.is_complete:
        form.is_complete = False
        form.reopened_at = datetime.now(timezone.utc)
        logger.info("Counseling form %s reopened for rework", form.id,
                    extra={"case_id": case_id, "form_id": form.id})


def dispatch_status_notification(case_id, from_status, to_status, actor_id=None, comment=""):
    """Post-commit notification fan-out; never raises."""
    try:
        NotificationService.notify_status_change(case_id, from_status, to_status, actor_id, comment)
    except Exception:
        db.session.rollback()
        logger.exception(
            "Status notification failed for case %s", case_id,
            extra={"case_id": case_id, "from_status": from_status, "to_status": to_status},
        )


# ═════════════════════════════════════════════════════════════════════════════
# System path
# ═════════════════════════════════════════════════════════════════════════════


def apply_system_transition(
    case: Case,
    to_status: str,
    *,
    action: str,
    actor_id: int | None = None,
    actor_name: str | None = None,
    comment: str = "",
    stage=None,
    check_graph: bool = True,
) -> dict:
    """
    Move *case* to *to_status* inside the caller's transaction.

    Role gating is skipped.  The graph is enforced unless ``check_graph`` is
    False (form completion hands a case from counseling to welfare review).
    When *stage* is not given the stage whose ``associated_statuses``
    contains *to_status* is used.  A workflow history entry is appended only
    when the stage actually changes; a status history row only when the
    status actually changes.  Nothing is committed.

    Returns:
        {"case_id", "from_status", "to_status", "status_changed",
         "stage_changed", "stage", "history_entry", "action"}
    """
    from_status = case.status
    if check_graph and not validate_status_transition(from_status, to_status):
        if from_status in FINAL_STATUSES:
            raise AlreadyFinalStateError(from_status, to_status)
        raise TransitionNotAllowed(
            from_status, to_status, gate="graph",
            legal_next_statuses=_graph_successors(from_status),
        )

    case.status = to_status
    if stage is None:
        stage = resolve_stage_for_status(to_status, case.case_type_id)

    history_entry = None
    if stage is not None and case.current_workflow_stage_id != stage.id:
        history_entry = case.record_stage_entry(
            stage,
            entered_by=actor_id,
            entered_by_name=actor_name or SYSTEM_ACTOR_NAME,
            action=action,
        )

    if from_status == "welfare_rejected" and to_status == "in_counseling":
        _reopen_counseling_form(case.id)

    status_changed = from_status != to_status
    if status_changed:
        write_status_history(
            case_id=case.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=actor_id,
            comments=comment,
        )
    else:
        db.session.flush()

    return {
        "case_id": case.id,
        "from_status": from_status,
        "to_status": to_status,
        "status_changed": status_changed,
        "stage_changed": history_entry is not None,
        "stage": stage.to_dict() if stage is not None else None,
        "history_entry": history_entry,
        "action": action,
    }


# ═════════════════════════════════════════════════════════════════════════════
# User-requested transitions
# ═════════════════════════════════════════════════════════════════════════════


def transition(case_id: int, to_status: str, actor_id: int, comment: str = "") -> dict:
    """
    Move a case to *to_status* on behalf of *actor_id*.

    Raises:
        NotFoundError: unknown case
        PermissionDenied: actor missing/inactive or lacks ``cases.update_status``
        TransitionNotAllowed / AlreadyFinalStateError: illegal for this role
        TransactionFailure: the write failed and was rolled back
    """
    case = get_case(case_id)
    actor = db.session.get(User, actor_id)
    if not user_has_permission(actor, *STATUS_PERMISSION):
        raise PermissionDenied(actor.role if actor else None, *STATUS_PERMISSION)

    ensure_transition_allowed(case.status, to_status, actor.role)

    try:
        locked = lock_case(case_id)
        # Status may have moved between the first read and the lock
        ensure_transition_allowed(locked.status, to_status, actor.role)
        result = apply_system_transition(
            locked,
            to_status,
            action=MANUAL_ACTION,
            actor_id=actor.id,
            actor_name=actor.display_name,
            comment=comment,
            check_graph=False,
        )
        db.session.commit()
    except TransitionNotAllowed:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Case transition failed", extra={"case_id": case_id, "actor_id": actor_id})
        raise TransactionFailure("case transition", case_id) from exc

    logger.info(
        "Case %s moved %s -> %s by user %s", case_id, result["from_status"], to_status, actor.id,
        extra={"case_id": case_id, "actor_id": actor.id,
               "from_status": result["from_status"], "to_status": to_status},
    )
    dispatch_status_notification(case_id, result["from_status"], to_status, actor.id, comment)
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_legal_next_statuses(case_id: int, actor_id: int) -> list[str]:
    """Statuses the actor may move the case into right now."""
    case = get_case(case_id)
    actor = db.session.get(User, actor_id)
    if not user_has_permission(actor, *STATUS_PERMISSION):
        return []
    return legal_next_statuses(case.status, actor.role)


def get_status_history(case_id: int) -> list[StatusHistory]:
    get_case(case_id)
    return (
        StatusHistory.query.filter_by(case_id=case_id)
        .order_by(StatusHistory.created_at, StatusHistory.id)
        .all()
    )


def get_workflow_history(case_id: int) -> list[dict]:
    return list(get_case(case_id).workflow_history or [])
