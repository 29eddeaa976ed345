"""Typed errors raised by the lending services.

Each error carries a machine-readable ``code`` and the HTTP status an
outer API layer should answer with, so callers never have to parse
messages.
"""


class LendingError(Exception):
    """Base class for every error the lending core raises."""

    code = "lending_error"
    http_status = 500
    default_message = "Lending operation failed."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"code": self.code, "error": self.message}


class ValidationError(LendingError):
    code = "validation_error"
    http_status = 400
    default_message = "Invalid input."


class NotFoundError(LendingError):
    code = "not_found"
    http_status = 404
    default_message = "Not found."


class ConflictError(LendingError):
    code = "conflict"
    http_status = 409
    default_message = "The request conflicts with the current state."


class InvalidTransitionError(LendingError):
    code = "invalid_transition"
    http_status = 409
    default_message = "Status transition is not allowed."


class PermissionDenied(LendingError):
    code = "permission_denied"
    http_status = 403
    default_message = "You do not have permission to perform this action."


class TransientStorageError(LendingError):
    """Storage stayed unavailable after every retry."""

    code = "transient_storage_error"
    http_status = 503
    default_message = "The service is temporarily unavailable, please retry."
