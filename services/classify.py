"""Credit/cash classification shared by the checkout precheck and the sale
orchestrator. Pure functions only; no database access."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Tuple


class PaymentType(Enum):
    CREDIT_ONLY = "CREDIT_ONLY"
    CASH_ONLY = "CASH_ONLY"
    MIXED_ERROR = "MIXED_ERROR"


@dataclass(frozen=True)
class Classification:
    payment_type: PaymentType
    credit_categories: frozenset = field(default_factory=frozenset)
    non_credit_categories: frozenset = field(default_factory=frozenset)

    @property
    def is_mixed(self) -> bool:
        return self.payment_type is PaymentType.MIXED_ERROR


def classify(categories: Iterable[Tuple[str, bool]]) -> Classification:
    """
    Classify ``(category_name, is_credit_linked)`` pairs.

    MIXED_ERROR when both credit-linked and cash-only categories are present,
    CREDIT_ONLY when every category is credit linked, otherwise CASH_ONLY
    (including the empty input, which is how meals-only orders classify).
    """
    credit, non_credit = set(), set()
    for name, linked in categories:
        (credit if linked else non_credit).add(name)

    if credit and non_credit:
        kind = PaymentType.MIXED_ERROR
    elif credit:
        kind = PaymentType.CREDIT_ONLY
    else:
        kind = PaymentType.CASH_ONLY
    return Classification(kind, frozenset(credit), frozenset(non_credit))
