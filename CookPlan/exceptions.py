"""
Error taxonomy for CookPlan.

Each class also derives from the builtin the routers already catch, so a
ValueError handler still sees a ValidationError and so on.
"""


class PlannerError(Exception):
    """Base class for every CookPlan error."""
    code = "planner_error"


class ValidationError(PlannerError, ValueError):
    """Malformed or user-correctable input. Never reaches a collaborator."""
    code = "validation_error"


class NotFoundError(PlannerError, LookupError):
    code = "not_found"


class InvalidTransition(ValidationError):
    """A status change the live state machine does not allow."""
    code = "invalid_transition"


class UndoExpired(PlannerError):
    """Undo attempted after the undo window closed. State is left unchanged."""
    code = "undo_expired"


class CollaboratorFailure(PlannerError, RuntimeError):
    """Generation or recalculation service unreachable or returned garbage."""
    code = "collaborator_failure"


class StorageFailure(PlannerError, RuntimeError):
    """Persistence unreachable or a write failed. Retried only by the user."""
    code = "storage_failure"


class ConnectivityError(StorageFailure):
    """The caller could not reach the service at all (offline)."""
    code = "offline"


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        NotFoundError,
        InvalidTransition,
        UndoExpired,
        CollaboratorFailure,
        StorageFailure,
        ConnectivityError,
    )
}
