"""
Case status transition rules.

Two static tables decide whether a status change is legal:
  - the status graph (``STATUS_TRANSITIONS`` in ``baaseteen.models.case``)
  - the role gate: which target statuses each capability may move a case into

Role names vary between deployments ("dcm", "Deputy Counseling Manager",
"ZI" all name the same job), so roles are first folded onto a capability
through ``ROLE_ALIASES``.  Everything here is pure and never raises.

Usage:
    from baaseteen.services.transitions import legal_next_statuses

    legal_next_statuses("submitted_to_welfare", "welfare_reviewer")
    # ['welfare_approved', 'welfare_rejected']
"""

from types import MappingProxyType

from baaseteen.models.case import (
    CASE_STATUSES,
    FINAL_STATUSES,
    STATUS_TRANSITIONS,
    next_statuses,
)

ROLE_ALIASES = MappingProxyType({
    "super_admin": "administrator",
    "admin": "administrator",
    "dcm": "counseling_manager",
    "Deputy Counseling Manager": "counseling_manager",
    "ZI": "counseling_manager",
    "counselor": "counselor",
    "welfare_reviewer": "welfare_reviewer",
    "Executive Management": "executive",
    "executive": "executive",
    "finance": "finance",
})

CAPABILITY_TARGETS = MappingProxyType({
    "administrator": frozenset(CASE_STATUSES),
    "counseling_manager": frozenset({
        "in_counseling", "cover_letter_generated", "submitted_to_welfare",
    }),
    "counselor": frozenset({"in_counseling"}),
    "welfare_reviewer": frozenset({"welfare_approved", "welfare_rejected"}),
    "executive": frozenset({"executive_approved", "executive_rejected"}),
    "finance": frozenset({"finance_disbursement"}),
})

# Roles allowed to complete a counseling form they are not assigned to
FORM_OVERRIDE_ROLES = frozenset({"admin", "super_admin"})


def capability_for(role):
    """Capability a role name folds onto, or None for unknown roles."""
    return ROLE_ALIASES.get(role)


def allowed_targets(role):
    """Statuses *role* may move a case into; empty for unknown roles."""
    return CAPABILITY_TARGETS.get(capability_for(role), frozenset())


def legal_next_statuses(current, role):
    """Graph edges out of *current* that *role* may take, in workflow order."""
    legal = next_statuses(current) & allowed_targets(role)
    return [s for s in CASE_STATUSES if s in legal]


def is_transition_allowed(current, target, role):
    return target in next_statuses(current) and target in allowed_targets(role)


def explain_rejection(current, target, role):
    """
    Name the gate a transition fails, or None when it is allowed.

    Returns one of ``"final_state"``, ``"graph"``, ``"role"``.
    """
    if is_transition_allowed(current, target, role):
        return None
    if current in FINAL_STATUSES:
        return "final_state"
    if target not in next_statuses(current):
        return "graph"
    return "role"


def transition_table():
    """Serializable view of the status graph for clients."""
    return {status: sorted(targets) for status, targets in STATUS_TRANSITIONS.items()}
