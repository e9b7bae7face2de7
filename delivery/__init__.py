"""Session delivery core: state, scoring, task selection and the controller."""
from .errors import (
    ConflictError,
    DeliveryError,
    ForbiddenError,
    InvalidLevelError,
    InvalidStateError,
    NotFoundError,
    PolicyUnavailableError,
    ValidationError,
)
from .state import Session, SessionResponse

__all__ = [
    "ConflictError",
    "DeliveryError",
    "ForbiddenError",
    "InvalidLevelError",
    "InvalidStateError",
    "NotFoundError",
    "PolicyUnavailableError",
    "ValidationError",
    "Session",
    "SessionResponse",
]
