"""Typed errors raised by the sale and credit services.

Every failure a caller can act on is a ``CoreError`` subclass with a stable
``ErrorCode``, an HTTP status and structured details. Routes never inspect
error messages; the app-level handler renders ``to_dict()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable


class ErrorCode(Enum):
    """Error codes surfaced as the ``type`` field of error responses."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    TICKET_UNAVAILABLE = "TICKET_UNAVAILABLE"
    MIXED_PAYMENT_ERROR = "MIXED_PAYMENT_ERROR"
    PAYMENT_MISMATCH = "PAYMENT_MISMATCH"
    INSUFFICIENT_CREDIT = "INSUFFICIENT_CREDIT"
    SALE_ERROR = "SALE_ERROR"


class CoreError(Exception):
    """Base error with code, user-safe message and structured details."""

    code: ErrorCode = ErrorCode.SALE_ERROR
    status: int = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"error": self.message, "type": self.code.value, **self.details}


class ValidationError(CoreError):
    """Malformed or missing ids, quantities, methods or amounts."""

    code = ErrorCode.VALIDATION_ERROR
    status = 400


class NotFound(CoreError):
    code = ErrorCode.NOT_FOUND
    status = 404


class Conflict(CoreError):
    code = ErrorCode.CONFLICT
    status = 409


class TicketUnavailable(CoreError):
    """Raised when requested tickets are missing, unassigned or already sold."""

    code = ErrorCode.TICKET_UNAVAILABLE
    status = 409

    def __init__(
        self,
        *,
        missing: Iterable[int] = (),
        sold: Iterable[int] = (),
        unassigned: Iterable[int] = (),
    ) -> None:
        missing, sold, unassigned = sorted(missing), sorted(sold), sorted(unassigned)
        offending = sorted({*missing, *sold, *unassigned})
        super().__init__(
            "Tickets not available: " + ", ".join(str(i) for i in offending),
            ticket_ids=offending,
            missing=missing,
            sold=sold,
            unassigned=unassigned,
        )


class MixedPaymentError(CoreError):
    """Raised when one order mixes credit-linked and cash-only categories."""

    code = ErrorCode.MIXED_PAYMENT_ERROR
    status = 400

    def __init__(self, credit_categories: Iterable[str], non_credit_categories: Iterable[str]) -> None:
        super().__init__(
            "Cannot mix credit-enabled and cash-only tickets in the same order",
            creditCategories=sorted(credit_categories),
            nonCreditCategories=sorted(non_credit_categories),
        )


class PaymentMismatch(CoreError):
    code = ErrorCode.PAYMENT_MISMATCH
    status = 400

    def __init__(self, expected, received) -> None:
        super().__init__(
            f"Payment mismatch. Expected: {expected:.2f}, Received: {received:.2f}",
            expected=str(expected),
            received=str(received),
        )


class InsufficientCredit(CoreError):
    """Raised only when negative credit balances are disabled by config."""

    code = ErrorCode.INSUFFICIENT_CREDIT
    status = 400

    def __init__(self, account_id: int, account_name: str, balance, required) -> None:
        super().__init__(
            f"Insufficient credit on account {account_name!r}",
            credit_account_id=account_id,
            balance=str(balance),
            required=str(required),
        )


class SaleError(CoreError):
    """Unclassified failure while committing a sale; the sale was rolled back."""

    code = ErrorCode.SALE_ERROR
    status = 500
