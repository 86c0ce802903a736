"""
Baaseteen Case Workflow
In-app notifications raised by case workflow events.

One row per recipient.  Rows are never deleted by the workflow; the
recipient marks them read.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from baaseteen.models import db

NOTIFICATION_TYPES = ("info", "success", "warning", "error")


def _utcnow():
    return datetime.now(timezone.utc)


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    # Null for notices not tied to a single case
    case_id = db.Column(
        db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"), nullable=True,
    )
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, default="")
    type = db.Column(db.String(20), nullable=False, default="info")
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    @validates("type")
    def _check_type(self, _key, value):
        if value not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type {value!r}")
        return value

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = _utcnow()

    def to_dict(self):
        read_at, created_at = self.read_at, self.created_at
        return {
            "id": self.id,
            "user_id": self.user_id,
            "case_id": self.case_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "read_at": read_at.isoformat() if read_at else None,
            "created_at": created_at.isoformat() if created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id} user={self.user_id} case={self.case_id}>"
