# services/sales.py
"""
Sale orchestrator.

A checkout runs as one database transaction:

    Validating -> Classifying -> Committing -> Committed | RolledBack

Two entry points share the protocol and differ only in how tickets are
sourced:

  - sell_tickets(tickets=[{ticket_type_id, quantity}], ...)
      new ticket rows are inserted already sold
  - checkout_existing_tickets(ticket_ids=[...], ...)
      previously generated rows are locked, verified available and flipped
      to sold with a conditional update

Any failure rolls back everything: no Order without all of its tickets sold,
no ledger deduction without its sold tickets. Nothing is retried.

check_credit_status() is the read-only precheck the till runs before choosing a
checkout path; it classifies with the same classify() as the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from flask import current_app

from db import db
from models.credit import CreditTransaction
from models.meal import Meal
from models.order import Order, OrderMeal, PM_POSTPONED
from models.ticket import Ticket, TicketType
from services import inventory, ledger, payments
from services.classify import PaymentType, classify
from services.errors import CoreError, MixedPaymentError, NotFound, SaleError, ValidationError
from services.inventory import SaleLine
from utils.ids import parse_id_list, positive_int
from utils.money import ZERO, money_str, to_money


@dataclass(frozen=True)
class MealLine:
    meal_id: int
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.price * self.quantity)


# ---------- request parsing ----------

def _parse_type_requests(raw) -> List[tuple]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("tickets must be an array")
    out = []
    for t in raw:
        if not isinstance(t, dict):
            raise ValidationError("Invalid ticket entry", ticket=t)
        out.append((
            positive_int(t.get("ticket_type_id"), "ticket_type_id"),
            positive_int(t.get("quantity"), "quantity"),
        ))
    inventory.check_ticket_count(sum(qty for _, qty in out))
    return out


def _resolve_meals(raw) -> List[MealLine]:
    """
    Meals come from the meal catalog. A client-supplied price is kept as the
    price at order time; otherwise the catalog price is used.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("meals must be an array")

    wanted = []
    for m in raw:
        if not isinstance(m, dict):
            raise ValidationError("Invalid meal entry", meal=m)
        meal_id = positive_int(m.get("id"), "meal id")
        qty = positive_int(m.get("quantity"), "meal quantity")
        price = None
        if m.get("price") is not None:
            try:
                price = to_money(m["price"])
            except ValueError:
                raise ValidationError("Meal price must be a number", meal=m) from None
            if price < ZERO:
                raise ValidationError("Meal price cannot be negative", meal=m)
        wanted.append((meal_id, qty, price))

    if not wanted:
        return []

    catalog = {
        meal.id: meal
        for meal in db.session.query(Meal).filter(Meal.id.in_(sorted({w[0] for w in wanted}))).all()
    }
    unknown = sorted({w[0] for w in wanted} - set(catalog))
    if unknown:
        raise ValidationError("Unknown meal ids", meal_ids=unknown)

    return [
        MealLine(meal_id, qty, price if price is not None else to_money(catalog[meal_id].price))
        for meal_id, qty, price in wanted
    ]


# ---------- protocol steps ----------

def _attach_credit(lines: List[SaleLine]) -> None:
    links = ledger.accounts_for_categories(line.category for line in lines)
    for line in lines:
        acct = links.get(line.category)
        if acct:
            line.credit_account_id = acct["id"]
            line.credit_account_name = acct["name"]


def _insert_meals(order_id: int, meals: List[MealLine]) -> None:
    for m in meals:
        db.session.add(OrderMeal(order_id=order_id, meal_id=m.meal_id, quantity=m.quantity, price_at_order=m.price))
    db.session.flush()


def _checkout(
    *,
    source: str,
    resolve,
    write_tickets,
    raw_meals,
    pays: List[payments.PaymentSpec],
    user_id: Optional[int],
    description: Optional[str],
) -> dict:
    log = current_app.logger
    try:
        # Validating
        lines: List[SaleLine] = resolve()
        meal_lines = _resolve_meals(raw_meals)
        if not lines and not meal_lines:
            raise ValidationError("Order must contain at least one ticket or meal")
        _attach_credit(lines)

        try:
            ticket_total = sum((line.subtotal for line in lines), ZERO)
            meal_total = sum((m.subtotal for m in meal_lines), ZERO)
            gross_total = to_money(ticket_total + meal_total)
        except ValueError:
            raise ValidationError("Order total is out of range") from None

        # Classifying (meals-only orders skip this and are always cash)
        cls = classify((line.category, line.is_credit_enabled) for line in lines)
        if lines and cls.is_mixed:
            raise MixedPaymentError(cls.credit_categories, cls.non_credit_categories)

        is_credit = bool(lines) and cls.payment_type is PaymentType.CREDIT_ONLY and payments.has_postponed(pays)
        mode = PaymentType.CREDIT_ONLY if is_credit else PaymentType.CASH_ONLY

        summary = None
        if mode is PaymentType.CASH_ONLY:
            summary = payments.validate_cash_payments(pays, gross_total)

        # Committing
        suffix = "" if source == "new" else " - existing tickets"
        order = Order(
            user_id=user_id,
            description=description or (("Credit sale" if is_credit else "Cash sale") + suffix),
            gross_total=gross_total,
            total_amount=gross_total,
        )
        db.session.add(order)
        db.session.flush()

        credit = None
        if is_credit:
            log.info(
                "[sales] order=%s credit sale tickets=%s meals=%s gross=%s",
                order.id, ticket_total, meal_total, gross_total,
            )
            credit = ledger.process_ticket_sale_credit(order.id, lines, meal_total, user_id)
            ticket_ids = write_tickets(order.id, lines)
            _insert_meals(order.id, meal_lines)
            payments.record_payment(order.id, PM_POSTPONED, gross_total, "Credit account deduction")
        else:
            log.info("[sales] order=%s cash sale gross=%s", order.id, gross_total)
            payments.record_payments(order.id, pays)
            ticket_ids = write_tickets(order.id, lines)
            _insert_meals(order.id, meal_lines)

        order_id = order.id
        db.session.commit()
    except CoreError as e:
        db.session.rollback()
        log.info("[sales] checkout rejected (%s): %s", source, e)
        raise
    except Exception as e:
        db.session.rollback()
        log.exception("[sales] checkout failed (%s)", source)
        raise SaleError("Failed to process sale", details=str(e)) from e

    out = {
        "success": True,
        "message": (
            "Credit sale completed successfully with postponed payment"
            if is_credit else "Cash sale completed successfully"
        ),
        "order_id": order_id,
        "payment_type": mode.value,
        "ticket_total": money_str(ticket_total),
        "meal_total": money_str(meal_total),
        "gross_total": money_str(gross_total),
        "total_amount": money_str(gross_total),
        "ticket_ids": ticket_ids,
        "tickets_processed": len(ticket_ids),
        "meals_processed": len(meal_lines),
        "lines": inventory.describe_lines(lines),
    }
    if credit:
        out["credit_used"] = money_str(credit["total_credit_used"])
        out["credit_breakdown"] = [
            {
                "account_id": c["account_id"],
                "account": c["account_name"],
                "amount": money_str(c["credit_used"]),
                "new_balance": money_str(c["new_balance"]),
                "went_into_debt": c["went_into_debt"],
                "transaction_id": c["transaction"]["id"],
            }
            for c in credit["credit_transactions"]
        ]
    if summary:
        out["payments"] = payments.summary_for_response(summary)
    return out


# ---------- entry points ----------

def sell_tickets(
    *,
    tickets=None,
    payments_in=None,
    meals=None,
    user_id: Optional[int] = None,
    description: Optional[str] = None,
) -> dict:
    """Sell newly chosen ticket types and quantities (plus meals)."""
    requests = _parse_type_requests(tickets)
    pays = payments.parse_payments(payments_in)
    return _checkout(
        source="new",
        resolve=lambda: inventory.resolve_ticket_types(requests),
        write_tickets=inventory.insert_sold_tickets,
        raw_meals=meals,
        pays=pays,
        user_id=user_id,
        description=description,
    )


def checkout_existing_tickets(
    *,
    ticket_ids=None,
    payments_in=None,
    meals=None,
    user_id: Optional[int] = None,
    description: Optional[str] = None,
) -> dict:
    """Sell previously generated tickets identified by id (plus meals)."""
    ids = parse_id_list(ticket_ids)
    pays = payments.parse_payments(payments_in)
    if not pays:
        raise ValidationError("Payment information required")
    return _checkout(
        source="existing",
        resolve=lambda: inventory.lock_tickets(ids),
        write_tickets=inventory.mark_tickets_sold,
        raw_meals=meals,
        pays=pays,
        user_id=user_id,
        description=description,
    )


def check_credit_status(ticket_type_ids) -> dict:
    """Per-type credit linkage plus the CREDIT_ONLY/CASH_ONLY/MIXED_ERROR verdict."""
    # one id per scanned ticket, so repeats are expected
    ids = parse_id_list(ticket_type_ids, "ticket type id", allow_duplicates=True)
    types = db.session.query(TicketType).filter(TicketType.id.in_(ids)).order_by(TicketType.id.asc()).all()
    links = ledger.accounts_for_categories(t.category for t in types)

    rows = []
    for t in types:
        acct = links.get(t.category)
        rows.append({
            "id": t.id,
            "category": t.category,
            "subcategory": t.subcategory,
            "price": money_str(t.price),
            "is_credit_enabled": acct is not None,
            "credit_account_id": acct["id"] if acct else None,
            "credit_account_name": acct["name"] if acct else None,
            "credit_balance": money_str(acct["balance"]) if acct else None,
        })

    cls = classify((r["category"], r["is_credit_enabled"]) for r in rows)
    credit_enabled = sum(1 for r in rows if r["is_credit_enabled"])
    return {
        "tickets": rows,
        "missing_ids": sorted(set(ids) - {t.id for t in types}),
        "summary": {
            "total_tickets": len(rows),
            "credit_enabled": credit_enabled,
            "cash_only": len(rows) - credit_enabled,
            "can_mix": False,
            "payment_type": cls.payment_type.value,
            "credit_categories": sorted(cls.credit_categories),
            "non_credit_categories": sorted(cls.non_credit_categories),
        },
    }


def get_order(order_id: int) -> dict:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("Order not found", order_id=order_id)
    return {
        "id": order.id,
        "user_id": order.user_id,
        "cashier": order.user.display_name if order.user else None,
        "description": order.description,
        "gross_total": money_str(order.gross_total),
        "total_amount": money_str(order.total_amount),
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "tickets": [
            {
                "id": t.id,
                "ticket_type_id": t.ticket_type_id,
                "sold_price": money_str(t.sold_price) if t.sold_price is not None else None,
            }
            for t in order.tickets.order_by(Ticket.id.asc()).all()
        ],
        "meals": [m.to_dict() for m in order.meals],
        "payments": [p.to_dict() for p in order.payments],
        "credit_transactions": [
            tx.to_dict()
            for tx in db.session.query(CreditTransaction)
            .filter(CreditTransaction.order_id == order.id)
            .order_by(CreditTransaction.id.asc())
            .all()
        ],
    }
