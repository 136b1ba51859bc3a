# Overview: Domain error taxonomy shared by services and routes.

"""
Eastgate error taxonomy.

Business-rule errors (ValidationError, InvalidTransitionError,
InsufficientStockError, ItemUnavailableError, NotFoundError) are surfaced
verbatim to the acting staff member and are never retried.

PersistenceError is raised only after the concurrency helpers have exhausted
their retry budget; the unit of work has been rolled back when it surfaces.
"""

from __future__ import annotations


class EastgateError(Exception):
    """Base class for all domain errors."""

    code = "ERROR"
    http_status = 400

    def __init__(self, message: str, *, reason: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.reason:
            payload["reason"] = self.reason
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(EastgateError):
    """400-level input problem; rejected before any mutation."""
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(EastgateError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidTransitionError(EastgateError):
    """
    State-machine violation.

    reason:
    - CANNOT_SKIP: requested status is not the immediate successor
    - TERMINAL: entity is already served/completed/cancelled
    - STALE: someone else already moved the entity on
    """
    code = "INVALID_TRANSITION"
    http_status = 409

    CANNOT_SKIP = "CANNOT_SKIP"
    TERMINAL = "TERMINAL"
    STALE = "STALE"


class InsufficientStockError(EastgateError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409


class ItemUnavailableError(EastgateError):
    code = "ITEM_UNAVAILABLE"
    http_status = 409


class PersistenceError(EastgateError):
    """Storage failure after bounded retries. Safe to try again."""
    code = "PERSISTENCE_ERROR"
    http_status = 503


class BranchAccessError(EastgateError):
    """Acting staff member is bound to a different branch."""
    code = "FORBIDDEN"
    http_status = 403
