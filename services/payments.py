# services/payments.py
"""
Payment instruments applied to an order.

Nothing here commits; rows are added to the caller's transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from flask import current_app

from db import db
from models.order import (
    CLIENT_PAYMENT_METHODS,
    PAYMENT_METHODS,
    PM_BANK_AHLY_MISR,
    PM_CREDIT,
    PM_DISCOUNT,
    PM_OTHER,
    PM_POSTPONED,
    PM_VODAFONE_CASH,
    Payment,
)
from services.errors import PaymentMismatch, ValidationError
from utils.money import ZERO, money_str, to_money, within_tolerance

_LABELS = {
    PM_VODAFONE_CASH: "Vodafone Cash",
    PM_BANK_AHLY_MISR: "الأهلي و مصر",
    PM_OTHER: "Other",
    PM_POSTPONED: "Postponed",
}


@dataclass(frozen=True)
class PaymentSpec:
    method: str
    amount: Decimal
    reference: Optional[str] = None


def parse_payments(raw) -> List[PaymentSpec]:
    """Validate client-supplied payments. CREDIT is internal and rejected."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("payments must be an array")

    out = []
    for p in raw:
        if not isinstance(p, dict):
            raise ValidationError("Invalid payment entry", payment=p)
        method = p.get("method")
        if method == PM_CREDIT:
            raise ValidationError("CREDIT payments cannot be supplied by clients")
        if method not in CLIENT_PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method: {method!r}", allowed=list(CLIENT_PAYMENT_METHODS))
        try:
            amount = to_money(p.get("amount"))
        except ValueError:
            raise ValidationError("Payment amount must be a number", payment=p) from None
        if amount < ZERO:
            raise ValidationError("Payment amount cannot be negative", payment=p)
        ref = p.get("reference")
        out.append(PaymentSpec(method, amount, str(ref).strip() if ref not in (None, "") else None))
    return out


def has_postponed(payments: List[PaymentSpec]) -> bool:
    return any(p.method == PM_POSTPONED for p in payments)


def payment_summary(payments: List[PaymentSpec]) -> dict:
    discount = sum((p.amount for p in payments if p.method == PM_DISCOUNT), ZERO)
    collected = sum((p.amount for p in payments if p.method != PM_DISCOUNT), ZERO)
    return {
        "received": collected + discount,
        "collected": collected,
        "discount": discount,
    }


def validate_cash_payments(payments: List[PaymentSpec], gross_total: Decimal) -> dict:
    """
    A cash order must be fully tendered: collected instruments plus the
    discount line cover the gross total within PAYMENT_TOLERANCE.
    """
    summary = payment_summary(payments)
    tolerance = to_money(current_app.config.get("PAYMENT_TOLERANCE", "0.01"))
    if not within_tolerance(summary["received"], gross_total, tolerance):
        raise PaymentMismatch(expected=to_money(gross_total), received=summary["received"])
    return summary


def record_payment(order_id: int, method: str, amount, reference: Optional[str] = None) -> Payment:
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method: {method!r}")
    row = Payment(order_id=order_id, method=method, amount=to_money(amount), reference=reference)
    db.session.add(row)
    return row


def record_payments(order_id: int, payments: List[PaymentSpec]) -> List[Payment]:
    rows = [record_payment(order_id, p.method, p.amount, p.reference) for p in payments]
    db.session.flush()
    return rows


def payment_methods() -> List[dict]:
    """Methods offered at the till, with display labels (CREDIT excluded)."""
    return [
        {"value": m, "label": _LABELS.get(m, m[:1].upper() + m[1:])}
        for m in CLIENT_PAYMENT_METHODS
    ]


def summary_for_response(summary: dict) -> dict:
    return {k: money_str(v) for k, v in summary.items()}
