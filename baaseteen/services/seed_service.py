"""
Default master data: roles, role permissions, case types, workflow stages.

``seed_workflow_defaults()`` is idempotent; it only inserts what is missing.
Exposed as ``flask seed-workflow-defaults``.
"""

import logging

from baaseteen.models import db
from baaseteen.models.auth import Role, RolePermission
from baaseteen.models.case import CaseType, WorkflowStage
from baaseteen.services.permission_service import invalidate_all_cache

logger = logging.getLogger(__name__)

ALL_PERMISSIONS = (
    ("cases", "read"),
    ("cases", "update_status"),
    ("cases", "assign_case"),
    ("cases", "assign_counselor"),
    ("counseling_forms", "read"),
    ("counseling_forms", "update"),
    ("counseling_forms", "complete"),
    ("case_identifications", "create"),
    ("case_identifications", "review"),
    ("cover_letters", "create"),
    ("master", "read"),
    ("master", "create"),
    ("master", "update"),
)

_COUNSELING_MANAGER = (
    ("cases", "read"),
    ("cases", "update_status"),
    ("cases", "assign_counselor"),
    ("counseling_forms", "read"),
    ("counseling_forms", "update"),
    ("counseling_forms", "complete"),
    ("case_identifications", "create"),
    ("cover_letters", "create"),
    ("master", "read"),
)

# super_admin needs no rows: it holds every permission implicitly
DEFAULT_ROLES = {
    "super_admin": ("Super Administrator", ()),
    "admin": ("Administrator", ALL_PERMISSIONS),
    "dcm": ("Deputy Counseling Manager", _COUNSELING_MANAGER),
    "Deputy Counseling Manager": ("Deputy Counseling Manager", _COUNSELING_MANAGER),
    "ZI": ("Zonal Incharge", _COUNSELING_MANAGER),
    "counselor": ("Counselor", (
        ("cases", "read"),
        ("cases", "update_status"),
        ("counseling_forms", "read"),
        ("counseling_forms", "update"),
        ("master", "read"),
    )),
    "welfare_reviewer": ("Welfare Reviewer", (
        ("cases", "read"),
        ("cases", "update_status"),
        ("counseling_forms", "read"),
        ("case_identifications", "review"),
        ("master", "read"),
    )),
    "Executive Management": ("Executive Management", (
        ("cases", "read"),
        ("cases", "update_status"),
        ("counseling_forms", "read"),
        ("master", "read"),
    )),
    "finance": ("Finance", (
        ("cases", "read"),
        ("cases", "update_status"),
        ("master", "read"),
    )),
}

DEFAULT_CASE_TYPES = (
    ("baaseteen", "Baaseteen case type"),
    ("medical", "Medical assistance cases"),
    ("education", "Educational support cases"),
    ("financial", "Financial assistance cases"),
    ("housing", "Housing support cases"),
)

# (stage_key, stage_name, sort_order, associated_statuses) - case-type agnostic
DEFAULT_STAGES = (
    ("draft", "Draft", 1, ["draft"]),
    ("case_assignment", "Case Assignment", 2, ["assigned"]),
    ("counselor", "Counseling", 3, ["in_counseling"]),
    ("cover_letter", "Cover Letter", 4, ["cover_letter_generated"]),
    ("welfare_review", "Welfare Review", 5, ["submitted_to_welfare", "welfare_rejected"]),
    ("executive", "Executive Approval", 6,
     ["welfare_approved", "executive_approved", "executive_rejected"]),
    ("finance", "Finance Disbursement", 7, ["finance_disbursement"]),
)


def seed_workflow_defaults() -> dict:
    """Insert missing default roles, grants, case types and stages; commit."""
    created = {"roles": 0, "permissions": 0, "case_types": 0, "stages": 0}

    for name, (display_name, grants) in DEFAULT_ROLES.items():
        role = Role.query.filter_by(name=name).first()
        if role is None:
            role = Role(name=name, display_name=display_name)
            db.session.add(role)
            db.session.flush()
            created["roles"] += 1
        existing = {(rp.resource, rp.action) for rp in role.role_permissions}
        for resource, action in grants:
            if (resource, action) not in existing:
                db.session.add(RolePermission(role_id=role.id, resource=resource, action=action))
                created["permissions"] += 1

    for name, description in DEFAULT_CASE_TYPES:
        if CaseType.query.filter_by(name=name).first() is None:
            db.session.add(CaseType(name=name, description=description))
            created["case_types"] += 1

    for stage_key, stage_name, sort_order, statuses in DEFAULT_STAGES:
        exists = WorkflowStage.query.filter_by(stage_key=stage_key, case_type_id=None).first()
        if exists is None:
            db.session.add(WorkflowStage(
                stage_key=stage_key,
                stage_name=stage_name,
                sort_order=sort_order,
                associated_statuses=list(statuses),
            ))
            created["stages"] += 1

    db.session.commit()
    invalidate_all_cache()
    logger.info("Workflow defaults seeded: %s", created)
    return created
