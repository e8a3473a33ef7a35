"""
Domain errors for the registration and attendance core.

Services raise these; the API layer renders them through a single exception
handler (see agsuite.main) as {"detail", "code", "context"}.
"""
from typing import Any, Optional


class AGSuiteError(Exception):
    """Base class for every error the core returns to its caller."""
    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "context": self.context}


class ValidationError(AGSuiteError):
    """Malformed or missing required input."""
    status_code = 422
    code = "validation_error"


class NotFoundError(AGSuiteError):
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        super().__init__(f"{resource} not found", resource=resource, id=resource_id)


class CapacityExceeded(AGSuiteError):
    status_code = 409
    code = "capacity_exceeded"


class ModalityFull(CapacityExceeded):
    code = "modality_full"


class DuplicateRegistration(AGSuiteError):
    status_code = 409
    code = "duplicate_registration"


class InvalidStateTransition(AGSuiteError):
    status_code = 409
    code = "invalid_state_transition"


class ReviewNotesRequired(AGSuiteError):
    status_code = 422
    code = "review_notes_required"


class RegistrationClosed(AGSuiteError):
    status_code = 409
    code = "registration_closed"


class SessionArchived(AGSuiteError):
    status_code = 409
    code = "session_archived"


class NotEligible(AGSuiteError):
    status_code = 403
    code = "not_eligible"


class DataIntegrityWarning(AGSuiteError):
    """
    Non-fatal roster/registration desync.

    Never raised to callers: analytics reports it in its `warnings` list.
    """
    status_code = 200
    code = "data_integrity_warning"
