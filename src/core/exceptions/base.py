from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class AuthenticationError(AppException):
    """Authentication failed."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    """Not authorized to perform action."""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message=message, status_code=403)


class DuplicateError(AppException):
    """Duplicate resource."""

    def __init__(self, resource: str, field: str, value: Any):
        message = f"{resource} with {field}={value} already exists"
        super().__init__(message=message, status_code=409, details={"field": field, "value": value})


class SequenceInactiveError(AppException):
    """Document sequence is disabled; no numbers can be issued."""

    def __init__(self, document_type: str):
        super().__init__(
            message=f"Document sequence '{document_type}' is inactive",
            status_code=409,
            details={"field": "document_type", "document_type": document_type},
        )


class SequenceContentionError(AppException):
    """Conditional update kept losing to concurrent writers."""

    def __init__(self, document_type: str, attempts: int):
        super().__init__(
            message=(
                f"Could not allocate a number for '{document_type}' "
                f"after {attempts} attempts, try again"
            ),
            status_code=409,
            details={"document_type": document_type, "attempts": attempts},
        )


class StoreUnavailableError(AppException):
    """Sequence storage could not be reached; nothing was changed."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message=message or "Document numbering store is unavailable, try again later",
            status_code=503,
        )


class DuplicateRiskNotConfirmedError(AppException):
    """Manual reset could re-issue numbers already used in this period."""

    def __init__(self, document_type: str, new_start_number: int, highest_issued: int):
        super().__init__(
            message=(
                f"Resetting '{document_type}' to {new_start_number} may re-issue numbers "
                f"already used in this period (highest issued: {highest_issued}). "
                "Confirm the reset to proceed."
            ),
            status_code=409,
            details={
                "field": "newStartNumber",
                "document_type": document_type,
                "new_start_number": new_start_number,
                "highest_issued": highest_issued,
            },
        )
