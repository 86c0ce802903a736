"""
Case workflow exception hierarchy.

Services raise these types; ``baaseteen.utils.errors.register_error_handlers``
maps each one to an HTTP status and machine-readable code once, so every
blueprint answers with the same error envelope.

Usage:
    from baaseteen.core.exceptions import NotFoundError, TransitionNotAllowed

    raise NotFoundError(resource="Case", resource_id=42)
    raise TransitionNotAllowed("draft", "finance_disbursement", gate="graph")
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Case", "CounselingForm").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate an existing record.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDenied(Exception):
    """Raised when the acting role lacks a ``resource.action`` permission."""

    def __init__(
        self, role: str | None, resource: str, action: str, message: str | None = None,
    ) -> None:
        self.role = role
        self.resource = resource
        self.action = action
        super().__init__(message or f"Role '{role}' lacks permission '{resource}.{action}'")


class TransitionNotAllowed(Exception):
    """Raised when a case status change is rejected.

    ``gate`` names the check that failed:
        graph        the target is not an edge out of the current status
        role         the edge exists but the actor's role may not take it
        final_state  the current status is terminal
    """

    def __init__(
        self,
        current_status: str,
        requested_status: str,
        *,
        gate: str = "graph",
        role: str | None = None,
        legal_next_statuses: list[str] | None = None,
    ) -> None:
        self.current_status = current_status
        self.requested_status = requested_status
        self.gate = gate
        self.role = role
        self.legal_next_statuses = legal_next_statuses or []
        super().__init__(
            f"Cannot move case from '{current_status}' to '{requested_status}': "
            f"{self._reason()}"
        )

    def _reason(self) -> str:
        if self.gate == "final_state":
            return f"'{self.current_status}' is a final status"
        if self.gate == "role":
            return f"role '{self.role}' may not move a case into '{self.requested_status}'"
        return "no such transition in the case workflow"

    @property
    def details(self) -> dict:
        return {
            "current_status": self.current_status,
            "requested_status": self.requested_status,
            "gate": self.gate,
            "legal_next_statuses": self.legal_next_statuses,
        }


class AlreadyFinalStateError(TransitionNotAllowed):
    """Raised when a transition is attempted out of a terminal status."""

    def __init__(self, current_status: str, requested_status: str, role: str | None = None) -> None:
        super().__init__(current_status, requested_status, gate="final_state", role=role)


class IncompleteSectionsError(Exception):
    """Raised when a counseling form is completed with sections still missing."""

    def __init__(self, missing_sections: list[str]) -> None:
        self.missing_sections = list(missing_sections)
        super().__init__(
            "All form sections must be completed before submission. "
            f"Missing: {', '.join(self.missing_sections)}"
        )


class FormLockedError(Exception):
    """Raised when a submitted counseling form is edited outside rework."""

    def __init__(self, form_id: int) -> None:
        self.form_id = form_id
        super().__init__(
            "This form has been submitted and cannot be edited. "
            "It can only be edited if it is rejected for rework."
        )


class TransactionFailure(Exception):
    """Raised when a workflow transaction fails and was rolled back."""

    def __init__(self, operation: str, entity_id: int | None = None) -> None:
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(f"Database error during {operation}; no changes were saved")
