# Overview: Domain error taxonomy shared by services and routes.

"""
CondoStock error kinds.

Services raise these; routes turn them into JSON via to_dict() and
status_code. Anything that is not a CondoStockError is an infrastructure
failure and is reported as a generic 500.
"""

from __future__ import annotations


class CondoStockError(Exception):
    """Base class for business-rule and request errors."""

    kind = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "details": self.details,
        }


class InvalidRequestError(CondoStockError):
    """Caller supplied contradictory or missing fields."""

    kind = "INVALID_REQUEST"
    status_code = 400


class NotFoundError(CondoStockError):
    kind = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: str | None = None, message: str | None = None):
        details = {"entity": entity}
        if entity_id is not None:
            details["id"] = entity_id
        super().__init__(message or f"{entity.capitalize()} not found", details)
        self.entity = entity


class InsufficientStockError(CondoStockError):
    kind = "INSUFFICIENT_STOCK"
    status_code = 400


class AccountBlockedError(CondoStockError):
    kind = "ACCOUNT_BLOCKED"
    status_code = 409


class CreditLimitExceededError(CondoStockError):
    kind = "CREDIT_LIMIT_EXCEEDED"
    status_code = 400


class ConflictError(CondoStockError):
    """Uniqueness violation (duplicate barcode, duplicate CPF)."""

    kind = "CONFLICT"
    status_code = 409


class PermissionDeniedError(CondoStockError):
    kind = "FORBIDDEN"
    status_code = 403
