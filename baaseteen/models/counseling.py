"""
Baaseteen Case Workflow
Counseling form models.

Models:
    - CounselingForm: one per case; points at its seven section rows
    - PersonalDetails, FamilyDetails, Assessment, FinancialAssistance,
      EconomicGrowth, Declaration, Attachments: one row per case each

Each section keeps a few typed columns; everything else the counselor
enters lands in the section's JSON ``details`` payload.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import declared_attr

from baaseteen.models import db
from baaseteen.utils.helpers import parse_date


# ── Section mixin ────────────────────────────────────────────────────────────


class SectionMixin:
    """Shared columns and payload handling for counseling form sections."""

    # Typed column names; subclasses override
    FIELDS = ()

    id = db.Column(db.Integer, primary_key=True)
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @declared_attr
    def case_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"),
            unique=True, nullable=False,
        )

    def coerce(self, field, value):
        return value

    def apply(self, data: dict):
        """Copy typed fields onto columns and keep the rest in ``details``."""
        extra = dict(self.details or {})
        for key, value in (data or {}).items():
            if key in self.FIELDS:
                setattr(self, key, self.coerce(key, value))
            elif key not in ("id", "case_id", "created_at", "updated_at"):
                extra[key] = value
        self.details = extra

    def to_dict(self):
        d = {"id": self.id, "case_id": self.case_id}
        for field in self.FIELDS:
            value = getattr(self, field)
            if isinstance(value, Decimal):
                value = float(value)
            elif hasattr(value, "isoformat"):
                value = value.isoformat()
            d[field] = value
        d["details"] = dict(self.details or {})
        d["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return d


def _to_int(value):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}


def _to_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _to_decimal(value):
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


# ═════════════════════════════════════════════════════════════════════════════
# SECTIONS
# ═════════════════════════════════════════════════════════════════════════════


class PersonalDetails(SectionMixin, db.Model):
    __tablename__ = "personal_details"

    FIELDS = ("its_number", "name", "age", "contact_number", "email",
              "residential_address", "present_occupation")

    its_number = db.Column(db.String(20))
    name = db.Column(db.String(200))
    age = db.Column(db.Integer)
    contact_number = db.Column(db.String(30))
    email = db.Column(db.String(255))
    residential_address = db.Column(db.Text)
    present_occupation = db.Column(db.String(200))

    def coerce(self, field, value):
        return _to_int(value) if field == "age" else value


class FamilyDetails(SectionMixin, db.Model):
    __tablename__ = "family_details"

    FIELDS = ("family_structure", "total_members", "earning_members")

    family_structure = db.Column(db.Text)
    total_members = db.Column(db.Integer)
    earning_members = db.Column(db.Integer)

    def coerce(self, field, value):
        return value if field == "family_structure" else _to_int(value)


class Assessment(SectionMixin, db.Model):
    __tablename__ = "assessments"

    FIELDS = ("background", "current_business")

    background = db.Column(db.Text)
    current_business = db.Column(db.Text)


class FinancialAssistance(SectionMixin, db.Model):
    __tablename__ = "financial_assistance"

    FIELDS = ("assistance_required", "total_amount_required")

    assistance_required = db.Column(db.Text)
    total_amount_required = db.Column(db.Numeric(12, 2))

    def coerce(self, field, value):
        return _to_decimal(value) if field == "total_amount_required" else value


class EconomicGrowth(SectionMixin, db.Model):
    __tablename__ = "economic_growth"

    FIELDS = ("projected_income", "growth_plan")

    projected_income = db.Column(db.Numeric(12, 2))
    growth_plan = db.Column(db.Text)

    def coerce(self, field, value):
        return _to_decimal(value) if field == "projected_income" else value


class Declaration(SectionMixin, db.Model):
    __tablename__ = "declarations"

    FIELDS = ("declared_by", "declaration_date", "signature_provided")

    declared_by = db.Column(db.String(200))
    declaration_date = db.Column(db.Date)
    signature_provided = db.Column(db.Boolean, default=False)

    def coerce(self, field, value):
        if field == "declaration_date":
            return parse_date(value)
        if field == "signature_provided":
            return _to_bool(value)
        return value


class Attachments(SectionMixin, db.Model):
    __tablename__ = "attachments"

    FIELDS = ("work_place_photo", "quotation", "product_brochure",
              "income_tax_return", "financial_statements", "cancelled_cheque",
              "pan_card", "aadhar_card", "other_documents")

    work_place_photo = db.Column(db.Boolean, default=False)
    quotation = db.Column(db.Boolean, default=False)
    product_brochure = db.Column(db.Boolean, default=False)
    income_tax_return = db.Column(db.Boolean, default=False)
    financial_statements = db.Column(db.Boolean, default=False)
    cancelled_cheque = db.Column(db.Boolean, default=False)
    pan_card = db.Column(db.Boolean, default=False)
    aadhar_card = db.Column(db.Boolean, default=False)
    other_documents = db.Column(db.Boolean, default=False)

    def coerce(self, field, value):
        return _to_bool(value)


# Section name -> model, in form order
FORM_SECTIONS = {
    "personal_details": PersonalDetails,
    "family_details": FamilyDetails,
    "assessment": Assessment,
    "financial_assistance": FinancialAssistance,
    "economic_growth": EconomicGrowth,
    "declaration": Declaration,
    "attachments": Attachments,
}


# ═════════════════════════════════════════════════════════════════════════════
# COUNSELING FORM
# ═════════════════════════════════════════════════════════════════════════════


class CounselingForm(db.Model):
    __tablename__ = "counseling_forms"

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(
        db.Integer, db.ForeignKey("cases.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    personal_details_id = db.Column(db.Integer, db.ForeignKey("personal_details.id"))
    family_details_id = db.Column(db.Integer, db.ForeignKey("family_details.id"))
    assessment_id = db.Column(db.Integer, db.ForeignKey("assessments.id"))
    financial_assistance_id = db.Column(db.Integer, db.ForeignKey("financial_assistance.id"))
    economic_growth_id = db.Column(db.Integer, db.ForeignKey("economic_growth.id"))
    declaration_id = db.Column(db.Integer, db.ForeignKey("declarations.id"))
    attachments_id = db.Column(db.Integer, db.ForeignKey("attachments.id"))
    is_complete = db.Column(db.Boolean, default=False, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reopened_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    case = db.relationship("Case", backref=db.backref("counseling_form", uselist=False))

    def section_id(self, section):
        return getattr(self, f"{section}_id")

    def completed_sections(self):
        return [name for name in FORM_SECTIONS if self.section_id(name) is not None]

    def missing_sections(self):
        return [name for name in FORM_SECTIONS if self.section_id(name) is None]

    def to_dict(self, include_sections=False):
        d = {
            "id": self.id,
            "case_id": self.case_id,
            "is_complete": self.is_complete,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completed_by": self.completed_by,
            "reopened_at": self.reopened_at.isoformat() if self.reopened_at else None,
            "completed_sections": self.completed_sections(),
            "missing_sections": self.missing_sections(),
        }
        for name in FORM_SECTIONS:
            d[f"{name}_id"] = self.section_id(name)
        if include_sections:
            sections = {}
            for name, model in FORM_SECTIONS.items():
                row = db.session.get(model, self.section_id(name)) if self.section_id(name) else None
                sections[name] = row.to_dict() if row else None
            d["sections"] = sections
        return d
