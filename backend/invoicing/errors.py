# Overview: Ledger error taxonomy shared by services, routes and the CLI.

"""
Ledger Errors

Every ledger operation either returns a typed value or raises one of these.
Routes translate them into JSON responses; anything else is a 500.

- ValidationError: malformed input (400). Never retried.
- InvalidAmountError: non-positive payment amount (400).
- NotFoundError: unknown id for the tenant (404). The message is identical
  whether the row is missing or owned by another tenant.
- ConcurrencyConflictError: a payment race that survived the retry (409).
- PartialSweepFailure: not raised; attached to a recurring sweep result when
  one or more templates failed to regenerate.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for typed ledger failures."""

    status_code = 400
    code = "LEDGER_ERROR"

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(LedgerError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Payment amount must be strictly positive."""

    code = "INVALID_AMOUNT"

    def __init__(self, message: str = "Payment amount must be positive"):
        super().__init__(message, field="amount")


class NotFoundError(LedgerError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConcurrencyConflictError(LedgerError):
    status_code = 409
    code = "CONCURRENCY_CONFLICT"


class PartialSweepFailure(LedgerError):
    """One or more recurring invoices failed to regenerate."""

    status_code = 200
    code = "PARTIAL_SWEEP_FAILURE"

    def __init__(self, errors: list):
        super().__init__(f"{len(errors)} recurring invoice(s) failed to regenerate")
        self.errors = list(errors)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["items"] = [e.to_dict() for e in self.errors]
        return payload
