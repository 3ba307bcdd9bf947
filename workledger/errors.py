# workledger/errors.py
from __future__ import annotations

"""
Business-rule failures raised by the service layer.

Every error carries a human-readable message. The app factory registers a
handler that renders them as JSON with the class' status_code.
"""


class WorkLedgerError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class ValidationError(WorkLedgerError):
    """Bad input shape or range."""

    code = "validation_error"


class NotFoundError(WorkLedgerError):
    code = "not_found"
    status_code = 404


class InvalidTransitionError(WorkLedgerError):
    """Illegal state change."""

    code = "invalid_transition"
    status_code = 409


class MissingReasonError(WorkLedgerError):
    """A required justification (delay or cancellation reason) is absent."""

    code = "missing_reason"


class PaymentRequiredError(WorkLedgerError):
    """Closing an order that is not fully paid."""

    code = "payment_required"
    status_code = 409


class InvalidAmountError(WorkLedgerError):
    code = "invalid_amount"


class OverpaymentError(WorkLedgerError):
    code = "overpayment"


class ConcurrencyConflictError(WorkLedgerError):
    """The outstanding balance changed between read and write."""

    code = "concurrency_conflict"
    status_code = 409


class ReconciliationError(WorkLedgerError):
    """
    A step of a multi-entity operation failed. Nothing was committed.

    `step` names the failing step, `cause` is the original exception.
    """

    code = "reconciliation_failed"
    status_code = 500

    def __init__(self, step: str, cause: BaseException):
        detail = getattr(cause, "message", None) or str(cause) or cause.__class__.__name__
        super().__init__(f"{step} failed: {detail}")
        self.step = step
        self.cause = cause
        if isinstance(cause, WorkLedgerError):
            self.status_code = cause.status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["step"] = self.step
        return data
