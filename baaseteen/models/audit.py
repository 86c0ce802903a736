"""
Baaseteen Case Workflow
Status audit model.

Models:
    - StatusHistory: immutable, append-only record of case status changes.
"""

from datetime import datetime, timezone

from baaseteen.models import db


class StatusHistory(db.Model):
    """One row per case status change; ``changed_by`` is NULL for system moves."""

    __tablename__ = "status_history"

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(
        db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    from_status = db.Column(db.String(30), nullable=True)
    to_status = db.Column(db.String(30), nullable=False)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    comments = db.Column(db.Text, default="")
    created_at = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    __table_args__ = (
        db.Index("ix_status_history_case_created", "case_id", "created_at"),
    )

    changed_by_user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "case_id": self.case_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "changed_by_name": (
                self.changed_by_user.display_name if self.changed_by_user else "System"
            ),
            "comments": self.comments,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StatusHistory case={self.case_id} {self.from_status}->{self.to_status}>"


def write_status_history(
    *,
    case_id: int,
    from_status: str | None,
    to_status: str,
    changed_by: int | None = None,
    comments: str = "",
) -> StatusHistory:
    """
    Append a single status history row.  Uses ``flush`` so callers keep
    transaction control.
    """
    entry = StatusHistory(
        case_id=case_id,
        from_status=from_status,
        to_status=to_status,
        changed_by=changed_by,
        comments=comments or "",
    )
    db.session.add(entry)
    db.session.flush()
    return entry
