from src.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    DuplicateError,
    SequenceInactiveError,
    SequenceContentionError,
    StoreUnavailableError,
    DuplicateRiskNotConfirmedError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "DuplicateError",
    "SequenceInactiveError",
    "SequenceContentionError",
    "StoreUnavailableError",
    "DuplicateRiskNotConfirmedError",
]
