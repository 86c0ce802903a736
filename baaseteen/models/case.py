"""
Baaseteen Case Workflow
Case domain models.

Models:
    - CaseType: category a case belongs to (drives stage scoping)
    - WorkflowStage: configurable stage master data, case-type scoped or agnostic
    - Case: the welfare / assistance application moving through the workflow
    - CaseComment: free-text and approval comments on a case
    - CaseIdentification: intake record that becomes a Case once eligible
    - CoverLetter: record of a generated cover letter
"""

from datetime import datetime, timezone
from types import MappingProxyType

from sqlalchemy.orm import validates

from baaseteen.models import db

# ── Status lifecycle ─────────────────────────────────────────────────────────

CASE_STATUSES = (
    "draft",
    "assigned",
    "in_counseling",
    "cover_letter_generated",
    "submitted_to_welfare",
    "welfare_approved",
    "welfare_rejected",
    "executive_approved",
    "executive_rejected",
    "finance_disbursement",
)

STATUS_TRANSITIONS = MappingProxyType({
    "draft":                  frozenset({"assigned"}),
    "assigned":               frozenset({"in_counseling"}),
    "in_counseling":          frozenset({"cover_letter_generated"}),
    "cover_letter_generated": frozenset({"submitted_to_welfare"}),
    "submitted_to_welfare":   frozenset({"welfare_approved", "welfare_rejected"}),
    "welfare_rejected":       frozenset({"in_counseling"}),
    "welfare_approved":       frozenset({"executive_approved", "executive_rejected"}),
    "executive_rejected":     frozenset({"submitted_to_welfare"}),
    "executive_approved":     frozenset({"finance_disbursement"}),
    "finance_disbursement":   frozenset(),
})

FINAL_STATUSES = frozenset(s for s, targets in STATUS_TRANSITIONS.items() if not targets)

STATUS_LABELS = MappingProxyType({
    "draft": "Draft",
    "assigned": "Assigned",
    "in_counseling": "In Counseling",
    "cover_letter_generated": "Cover Letter Generated",
    "submitted_to_welfare": "Submitted to Welfare",
    "welfare_approved": "Welfare Approved",
    "welfare_rejected": "Welfare Rejected",
    "executive_approved": "Executive Approved",
    "executive_rejected": "Executive Rejected",
    "finance_disbursement": "Finance Disbursement",
})

IDENTIFICATION_STATUSES = ("pending", "eligible", "ineligible")
COMMENT_TYPES = ("general", "rejection", "approval", "note")


def next_statuses(current):
    """Statuses reachable in one step from *current*; empty for unknown or terminal."""
    return STATUS_TRANSITIONS.get(current, frozenset())


def validate_status_transition(old_status, new_status):
    """Check if a case status transition is a graph edge."""
    return new_status in next_statuses(old_status)


def _status_check_sql():
    quoted = ",".join(f"'{s}'" for s in CASE_STATUSES)
    return f"status IN ({quoted})"


# ═════════════════════════════════════════════════════════════════════════════
# CASE TYPES
# ═════════════════════════════════════════════════════════════════════════════


class CaseType(db.Model):
    __tablename__ = "case_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


# ═════════════════════════════════════════════════════════════════════════════
# WORKFLOW STAGES
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowStage(db.Model):
    """
    Configurable stage master data.

    ``associated_statuses`` is an ordered list; the first entry is the
    canonical status a case takes when a stage is entered automatically.
    A NULL ``case_type_id`` makes the stage apply to every case type.
    """

    __tablename__ = "workflow_stages"

    id = db.Column(db.Integer, primary_key=True)
    stage_key = db.Column(db.String(50), nullable=False, index=True)
    stage_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    case_type_id = db.Column(
        db.Integer, db.ForeignKey("case_types.id", ondelete="CASCADE"), nullable=True
    )
    associated_statuses = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("stage_key", "case_type_id", name="uq_stage_key_case_type"),
    )

    @property
    def canonical_status(self):
        statuses = self.associated_statuses or []
        return statuses[0] if statuses else None

    def to_dict(self):
        return {
            "id": self.id,
            "stage_key": self.stage_key,
            "stage_name": self.stage_name,
            "description": self.description,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "case_type_id": self.case_type_id,
            "associated_statuses": list(self.associated_statuses or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# CASES
# ═════════════════════════════════════════════════════════════════════════════


class Case(db.Model):
    """
    A welfare / assistance application.

    Status changes go through ``baaseteen.services.case_workflow`` only;
    ``workflow_history`` is append-only and gains one entry per actual
    stage change.
    """

    __tablename__ = "cases"

    id = db.Column(db.Integer, primary_key=True)
    case_number = db.Column(db.String(64), unique=True, nullable=False)
    case_type_id = db.Column(db.Integer, db.ForeignKey("case_types.id"), nullable=True)
    applicant_name = db.Column(db.String(200), nullable=False)
    its_number = db.Column(db.String(20), index=True)
    description = db.Column(db.Text)
    status = db.Column(db.String(30), nullable=False, default="draft", index=True)
    current_workflow_stage_id = db.Column(
        db.Integer, db.ForeignKey("workflow_stages.id", ondelete="SET NULL"), nullable=True
    )
    workflow_history = db.Column(db.JSON, default=list)
    assigned_dcm_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_counselor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(_status_check_sql(), name="ck_case_status"),
    )

    case_type = db.relationship("CaseType")
    current_stage = db.relationship("WorkflowStage")
    assigned_dcm = db.relationship("User", foreign_keys=[assigned_dcm_id])
    assigned_counselor = db.relationship("User", foreign_keys=[assigned_counselor_id])
    comments = db.relationship(
        "CaseComment", backref="case", lazy="dynamic",
        cascade="all, delete-orphan", order_by="CaseComment.id",
    )

    @validates("status")
    def _validate_status(self, key, value):
        if value not in CASE_STATUSES:
            raise ValueError(f"Invalid case status: {value!r}")
        return value

    def record_stage_entry(self, stage, *, entered_by=None, entered_by_name="System", action):
        """Append a workflow history entry and move to *stage*.

        The JSON list is rebuilt so SQLAlchemy sees the column as changed.
        """
        entry = {
            "stage_id": stage.id,
            "stage_name": stage.stage_name,
            "entered_at": datetime.now(timezone.utc).isoformat(),
            "entered_by": entered_by,
            "entered_by_name": entered_by_name,
            "action": action,
        }
        self.workflow_history = [*(self.workflow_history or []), entry]
        self.current_workflow_stage_id = stage.id
        return entry

    def to_dict(self):
        return {
            "id": self.id,
            "case_number": self.case_number,
            "case_type_id": self.case_type_id,
            "case_type": self.case_type.name if self.case_type else None,
            "applicant_name": self.applicant_name,
            "its_number": self.its_number,
            "description": self.description,
            "status": self.status,
            "status_label": STATUS_LABELS.get(self.status, self.status),
            "current_workflow_stage_id": self.current_workflow_stage_id,
            "current_stage_name": self.current_stage.stage_name if self.current_stage else None,
            "workflow_history": list(self.workflow_history or []),
            "assigned_dcm_id": self.assigned_dcm_id,
            "assigned_counselor_id": self.assigned_counselor_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Case {self.id}: {self.case_number} [{self.status}]>"


class CaseComment(db.Model):
    __tablename__ = "case_comments"

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(
        db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    comment = db.Column(db.Text, nullable=False)
    comment_type = db.Column(db.String(20), default="general", nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    author = db.relationship("User")

    @validates("comment_type")
    def _validate_comment_type(self, key, value):
        if value not in COMMENT_TYPES:
            raise ValueError(f"Invalid comment type: {value}")
        return value

    def to_dict(self):
        return {
            "id": self.id,
            "case_id": self.case_id,
            "user_id": self.user_id,
            "author_name": self.author.display_name if self.author else "System",
            "author_role": self.author.role if self.author else None,
            "comment": self.comment,
            "comment_type": self.comment_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# INTAKE
# ═════════════════════════════════════════════════════════════════════════════


class CaseIdentification(db.Model):
    __tablename__ = "case_identifications"

    id = db.Column(db.Integer, primary_key=True)
    its_number = db.Column(db.String(20), nullable=False, index=True)
    applicant_name = db.Column(db.String(200), nullable=False)
    eligible_in = db.Column(db.Integer, db.ForeignKey("case_types.id"), nullable=False)
    contact_number = db.Column(db.String(30))
    remarks = db.Column(db.Text)
    status = db.Column(db.String(20), default="pending", nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    review_remarks = db.Column(db.Text)
    case_id = db.Column(db.Integer, db.ForeignKey("cases.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','eligible','ineligible')",
            name="ck_case_identification_status",
        ),
    )

    case_type = db.relationship("CaseType")

    def to_dict(self):
        return {
            "id": self.id,
            "its_number": self.its_number,
            "applicant_name": self.applicant_name,
            "eligible_in": self.eligible_in,
            "case_type": self.case_type.name if self.case_type else None,
            "contact_number": self.contact_number,
            "remarks": self.remarks,
            "status": self.status,
            "created_by": self.created_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_remarks": self.review_remarks,
            "case_id": self.case_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# COVER LETTERS
# ═════════════════════════════════════════════════════════════════════════════


class CoverLetter(db.Model):
    __tablename__ = "cover_letters"

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(
        db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    generated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    generated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    summary = db.Column(db.Text)

    def to_dict(self):
        return {
            "id": self.id,
            "case_id": self.case_id,
            "generated_by": self.generated_by,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "summary": self.summary,
        }
