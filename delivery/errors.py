"""Error taxonomy for session delivery and scoring."""
from __future__ import annotations

from typing import Optional


class DeliveryError(RuntimeError):  # Base delivery error
    status_code = 400

    def __init__(self, message: str, *, session_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.session_id = session_id


class ValidationError(DeliveryError):
    """Required fields missing or inconsistent reference data."""


class InvalidStateError(DeliveryError):
    """Operation not valid for the session's status or auto-finished flag."""

    status_code = 409


class NotFoundError(DeliveryError):
    """Referenced entity is missing from the store."""

    status_code = 404

    def __init__(self, kind: str, entity_id: str, *, session_id: Optional[str] = None) -> None:
        super().__init__(f"{kind} not found: {entity_id}", session_id=session_id)
        self.kind = kind
        self.entity_id = entity_id


class PolicyUnavailableError(DeliveryError):
    """Adaptive policy provider failed or returned an unusable result."""

    status_code = 502


class InvalidLevelError(DeliveryError):
    """Rubric level does not belong to the rubric linked to the observation."""


class ConflictError(DeliveryError):
    """Stale version on update; the caller must re-read and retry."""

    status_code = 409


class ForbiddenError(DeliveryError):
    status_code = 403


__all__ = [
    "DeliveryError",
    "ValidationError",
    "InvalidStateError",
    "NotFoundError",
    "PolicyUnavailableError",
    "InvalidLevelError",
    "ConflictError",
    "ForbiddenError",
]
