"""
Baaseteen Case Workflow
Notification Service.

Central service for creating and querying per-user in-app notifications
about case events.  The ``notify_*`` helpers are called by the workflow
engine after its transaction commits; ``stage_for_users`` adds rows to the
caller's open transaction instead.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_

from baaseteen.core.exceptions import NotFoundError
from baaseteen.models import db
from baaseteen.models.auth import User
from baaseteen.models.case import STATUS_LABELS, Case
from baaseteen.models.notification import Notification

logger = logging.getLogger(__name__)

# Roles that follow every status change
STATUS_WATCHER_ROLES = ("admin", "welfare_reviewer", "Executive Management")
WELFARE_REVIEWER_ROLE = "welfare_reviewer"


def _active_user_ids(user_ids=(), roles=()):
    """Active users among *user_ids* plus active holders of *roles*, deduplicated."""
    ids = [uid for uid in user_ids if uid is not None]
    clauses = []
    if ids:
        clauses.append(User.id.in_(ids))
    if roles:
        clauses.append(User.role.in_(list(roles)))
    if not clauses:
        return []
    rows = (
        db.session.query(User.id)
        .filter(User.is_active.is_(True))
        .filter(or_(*clauses))
        .order_by(User.id)
        .all()
    )
    return [r[0] for r in rows]


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", type="info", case_id=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            user_id=user_id,
            case_id=case_id,
            title=title,
            message=message,
            type=type,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def stage_for_users(user_ids, *, title, message="", type="info", case_id=None):
        """
        Add one notification per user to the current session without committing.

        Returns:
            List of pending Notification instances.
        """
        notifications = []
        for uid in user_ids:
            notif = Notification(
                user_id=uid,
                case_id=case_id,
                title=title,
                message=message,
                type=type,
            )
            db.session.add(notif)
            notifications.append(notif)
        return notifications

    # ── Case event helpers ────────────────────────────────────────────────

    @staticmethod
    def notify_status_change(case_id, from_status, to_status, actor_id=None, comment=""):
        """Notify the case team and watcher roles about a status change."""
        case = db.session.get(Case, case_id)
        if case is None:
            logger.error("Case %s not found for status notification", case_id)
            return []

        recipients = _active_user_ids(
            (case.assigned_dcm_id, case.assigned_counselor_id, actor_id),
            STATUS_WATCHER_ROLES,
        )
        title = f"Case {case.case_number} - Status Update"
        message = (
            f'Case status changed from "{STATUS_LABELS.get(from_status, "N/A")}" '
            f'to "{STATUS_LABELS.get(to_status, to_status)}".'
        )
        if comment:
            message += f" Comments: {comment}"
        notif_type = "error" if "rejected" in to_status else "info"

        notifications = NotificationService.stage_for_users(
            recipients, title=title, message=message, type=notif_type, case_id=case.id,
        )
        db.session.commit()
        logger.info(
            "Sent status notifications for case %s to %d users", case.id, len(notifications),
            extra={"case_id": case.id, "from_status": from_status, "to_status": to_status},
        )
        return notifications

    @staticmethod
    def notify_case_assignment(case_id, dcm_id=None, counselor_id=None):
        """Tell newly assigned users about their case."""
        case = db.session.get(Case, case_id)
        if case is None:
            logger.error("Case %s not found for assignment notification", case_id)
            return []

        recipients = _active_user_ids((dcm_id, counselor_id))
        notifications = NotificationService.stage_for_users(
            recipients,
            title=f"New Case Assignment - {case.case_number}",
            message=(
                f"You have been assigned to case {case.case_number} "
                f"for {case.applicant_name}."
            ),
            case_id=case.id,
        )
        db.session.commit()
        return notifications

    @staticmethod
    def notify_welfare_reviewers(case, *, title="New Case for Review", message=None):
        """Stage one notification per active welfare reviewer (caller commits)."""
        recipients = _active_user_ids(roles=(WELFARE_REVIEWER_ROLE,))
        if message is None:
            message = (
                f"Case {case.case_number} for {case.applicant_name or 'Applicant'} "
                f"(ITS: {case.its_number or ''}) has been submitted for welfare "
                f"department review."
            )
        return NotificationService.stage_for_users(
            recipients, title=title, message=message, type="info", case_id=case.id,
        )

    @staticmethod
    def notify_form_completed(case_id):
        """Let the assigned DCM know the counseling form went to welfare review."""
        case = db.session.get(Case, case_id)
        if case is None:
            logger.error("Case %s not found for form completion notification", case_id)
            return []

        recipients = _active_user_ids((case.assigned_dcm_id,))
        notifications = NotificationService.stage_for_users(
            recipients,
            title=f"Counseling Form Completed - {case.case_number}",
            message=(
                f"The counseling form for case {case.case_number} has been "
                f"completed and is ready for review."
            ),
            type="success",
            case_id=case.id,
        )
        db.session.commit()
        logger.info(
            "Form completion notice for case %s sent to %d users", case.id, len(notifications),
            extra={"case_id": case.id},
        )
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a user, newest first.
        """
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification of *user_id* as read."""
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notif is None:
            raise NotFoundError("Notification", notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications of *user_id* as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
