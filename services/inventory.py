# services/inventory.py
"""
Ticket inventory and ticket-type catalog.

Public API (committing, used by the admin/accountant screens):
  - list_ticket_types(archived: bool | None = None)
  - get_ticket(ticket_id: int)
  - assign_ticket_types(assignments: list[dict])
  - generate_tickets(requests: list[dict])
  - refund_tickets(ticket_ids: list[int])
  - set_ticket_validity(ticket_ids: list[int], valid: bool)

Checkout helpers (DO NOT commit; the sale orchestrator owns the transaction):
  - resolve_ticket_types(requests)   -> list[SaleLine]
  - lock_tickets(ticket_ids)         -> list[SaleLine]
  - insert_sold_tickets(order_id, lines)
  - mark_tickets_sold(order_id, lines)
  - check_ticket_count(total)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy import Integer, case, cast, func, literal, null, update

from db import db
from models.order import Order
from models.ticket import Ticket, TicketType, TICKET_AVAILABLE, TICKET_SOLD
from models.user import User
from services.errors import NotFound, TicketUnavailable, ValidationError
from utils.ids import parse_id_list, positive_int
from utils.money import money_str, to_money


@dataclass
class SaleLine:
    """One resolved line of a checkout: a ticket type and how many of it."""

    ticket_type_id: int
    category: str
    subcategory: str
    price: Decimal
    quantity: int = 1
    ticket_id: Optional[int] = None
    credit_account_id: Optional[int] = None
    credit_account_name: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.price * self.quantity)

    @property
    def is_credit_enabled(self) -> bool:
        return self.credit_account_id is not None


# ---------- small utils ----------

def _types_by_id(type_ids: Iterable[int]) -> Dict[int, TicketType]:
    ids = set(type_ids)
    if not ids:
        return {}
    rows = db.session.query(TicketType).filter(TicketType.id.in_(sorted(ids))).all()
    return {t.id: t for t in rows}


def check_ticket_count(total: int) -> None:
    limit = int(current_app.config.get("MAX_TICKETS_PER_REQUEST", 1000))
    if total > limit:
        raise ValidationError(
            f"Too many tickets in one request (max {limit})", requested=total, max_tickets=limit
        )


# ---------- catalog ----------

def list_ticket_types(archived: Optional[bool] = None) -> List[dict]:
    q = db.session.query(TicketType)
    if archived is not None:
        q = q.filter(TicketType.archived.is_(archived))
    return [t.to_dict() for t in q.order_by(TicketType.id.asc()).all()]


def category_exists(category_name: str) -> bool:
    return db.session.query(
        db.session.query(TicketType.id).filter(TicketType.category == category_name).exists()
    ).scalar()


# ---------- lookups ----------

def get_ticket(ticket_id: int) -> dict:
    """Ticket joined with its type and, when sold, the selling user."""
    row = (
        db.session.query(Ticket, TicketType, Order, User)
        .outerjoin(TicketType, TicketType.id == Ticket.ticket_type_id)
        .outerjoin(Order, Order.id == Ticket.order_id)
        .outerjoin(User, User.id == Order.user_id)
        .filter(Ticket.id == ticket_id)
        .first()
    )
    if not row:
        raise NotFound("Ticket not found", ticket_id=ticket_id)

    t, tt, order, seller = row
    return {
        "id": t.id,
        "status": t.status,
        "valid": bool(t.valid),
        "order_id": t.order_id,
        "sold_at": t.sold_at.isoformat() if t.sold_at else None,
        "sold_price": str(t.sold_price) if t.sold_price is not None else None,
        "created_at": t.created_at.isoformat() if t.created_at else None,
        "ticket_type_id": t.ticket_type_id,
        "category": tt.category if tt else None,
        "subcategory": tt.subcategory if tt else None,
        "description": tt.description if tt else None,
        "price": str(tt.price) if tt else None,
        "sold_by": order.user_id if order else None,
        "sold_by_name": seller.display_name if seller else None,
    }


# ---------- bulk mutations (committing) ----------

def assign_ticket_types(assignments) -> dict:
    """
    Assign (or, with ticket_type_id=None, unassign) ticket types in one
    multi-row UPDATE. Returns assigned/unassigned counts and per-row details.
    """
    if not isinstance(assignments, list) or not assignments:
        raise ValidationError("Provide a list of ticket assignments")

    targets: Dict[int, Optional[int]] = {}
    for entry in assignments:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ValidationError("Invalid assignment entry - missing or invalid ID", entry=entry)
        tid = positive_int(entry.get("id"), "ticket id")
        type_id = entry.get("ticket_type_id")
        targets[tid] = None if type_id is None else positive_int(type_id, "ticket_type_id")

    wanted_types = {v for v in targets.values() if v is not None}
    unknown = wanted_types - set(_types_by_id(wanted_types))
    if unknown:
        raise ValidationError("Unknown ticket type ids", ticket_type_ids=sorted(unknown))

    new_type = case(
        *[
            (Ticket.id == tid, cast(null(), Integer) if type_id is None else literal(type_id, Integer))
            for tid, type_id in targets.items()
        ],
        else_=Ticket.ticket_type_id,
    )

    try:
        res = db.session.execute(
            update(Ticket)
            .where(Ticket.id.in_(list(targets)))
            .values(ticket_type_id=new_type)
            .execution_options(synchronize_session=False)
        )
        if not res.rowcount:
            db.session.rollback()
            raise NotFound("No tickets found with the provided IDs")

        rows = (
            db.session.query(Ticket.id, Ticket.ticket_type_id)
            .filter(Ticket.id.in_(list(targets)))
            .order_by(Ticket.id.asc())
            .all()
        )
        db.session.commit()
    except NotFound:
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[inventory] assign_ticket_types failed")
        raise

    details = [
        {
            "id": r.id,
            "ticket_type_id": r.ticket_type_id,
            "assignment_status": "unassigned" if r.ticket_type_id is None else "assigned",
        }
        for r in rows
    ]
    assigned = sum(1 for d in details if d["ticket_type_id"] is not None)
    current_app.logger.info(
        "[inventory] assignment processed rows=%s assigned=%s unassigned=%s",
        len(details), assigned, len(details) - assigned,
    )
    return {
        "message": f"Successfully processed {len(details)} tickets",
        "results": {
            "assigned": assigned,
            "unassigned": len(details) - assigned,
            "details": details,
        },
    }


def generate_tickets(requests) -> List[int]:
    """Create `quantity` available tickets for each {ticket_type_id, quantity}."""
    if not isinstance(requests, list) or not requests:
        raise ValidationError("Invalid request format")

    wanted: List[tuple] = []
    for r in requests:
        if not isinstance(r, dict):
            continue
        try:
            qty = int(r.get("quantity") or 0)
        except (TypeError, ValueError):
            qty = 0
        if r.get("ticket_type_id") and qty > 0:
            wanted.append((positive_int(r["ticket_type_id"], "ticket_type_id"), qty))

    if not wanted:
        raise ValidationError("No valid tickets to generate")
    check_ticket_count(sum(qty for _, qty in wanted))

    unknown = {tid for tid, _ in wanted} - set(_types_by_id(tid for tid, _ in wanted))
    if unknown:
        raise ValidationError("Unknown ticket type ids", ticket_type_ids=sorted(unknown))

    try:
        rows = [
            Ticket(ticket_type_id=type_id, status=TICKET_AVAILABLE, valid=True)
            for type_id, qty in wanted
            for _ in range(qty)
        ]
        db.session.add_all(rows)
        db.session.flush()
        ids = [t.id for t in rows]
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[inventory] generate_tickets failed")
        raise

    current_app.logger.info("[inventory] generated %s tickets", len(ids))
    return ids


def refund_tickets(ticket_ids) -> List[int]:
    """
    Put sold tickets back on the shelf. Payments and credit transactions of the
    original order are left untouched.
    """
    ids = parse_id_list(ticket_ids)
    try:
        refunded = [
            r.id
            for r in db.session.query(Ticket.id)
            .filter(Ticket.id.in_(ids), Ticket.status == TICKET_SOLD)
            .with_for_update()
            .all()
        ]
        if not refunded:
            db.session.rollback()
            raise NotFound("No valid tickets were refunded. Ensure tickets are sold.")

        db.session.execute(
            update(Ticket)
            .where(Ticket.id.in_(refunded), Ticket.status == TICKET_SOLD)
            .values(status=TICKET_AVAILABLE, order_id=None, sold_at=None, sold_price=None)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except NotFound:
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[inventory] refund_tickets failed ids=%s", ids)
        raise

    current_app.logger.info("[inventory] refunded tickets=%s", refunded)
    return sorted(refunded)


def set_ticket_validity(ticket_ids, valid) -> dict:
    ids = parse_id_list(ticket_ids)
    if not isinstance(valid, bool):
        raise ValidationError("'valid' must be a boolean")

    rows = db.session.query(Ticket.id, Ticket.valid).filter(Ticket.id.in_(ids)).all()
    if not rows:
        raise NotFound("No matching tickets found")

    already = sorted(r.id for r in rows if bool(r.valid) == valid)
    to_update = sorted(r.id for r in rows if bool(r.valid) != valid)

    if to_update:
        try:
            db.session.execute(
                update(Ticket)
                .where(Ticket.id.in_(to_update))
                .values(valid=valid)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("[inventory] set_ticket_validity failed")
            raise

    return {"updated": to_update, "already_in_state": already}


# ---------- checkout helpers (no commit) ----------

def resolve_ticket_types(requests: List[tuple]) -> List[SaleLine]:
    """Resolve (ticket_type_id, quantity) pairs against the catalog."""
    types = _types_by_id(type_id for type_id, _ in requests)
    unknown = sorted({type_id for type_id, _ in requests} - set(types))
    if unknown:
        raise ValidationError(f"Invalid ticket type ID: {unknown[0]}", ticket_type_ids=unknown)

    return [
        SaleLine(
            ticket_type_id=type_id,
            category=types[type_id].category,
            subcategory=types[type_id].subcategory,
            price=to_money(types[type_id].price),
            quantity=qty,
        )
        for type_id, qty in requests
    ]


def lock_tickets(ticket_ids: List[int]) -> List[SaleLine]:
    """
    SELECT ... FOR UPDATE the requested tickets and verify each exists, has a
    ticket type and is still available. Returns one line per ticket, in
    request order.
    """
    rows = (
        db.session.query(Ticket, TicketType)
        .outerjoin(TicketType, TicketType.id == Ticket.ticket_type_id)
        .filter(Ticket.id.in_(ticket_ids))
        .with_for_update(of=Ticket)
        .all()
    )
    found = {t.id: (t, tt) for t, tt in rows}

    missing = [i for i in ticket_ids if i not in found]
    unassigned = [i for i, (t, tt) in found.items() if tt is None]
    sold = [i for i, (t, tt) in found.items() if t.status != TICKET_AVAILABLE]
    if missing or unassigned or sold:
        raise TicketUnavailable(missing=missing, sold=sold, unassigned=unassigned)

    lines = []
    for i in ticket_ids:
        t, tt = found[i]
        lines.append(
            SaleLine(
                ticket_type_id=tt.id,
                category=tt.category,
                subcategory=tt.subcategory,
                price=to_money(tt.price),
                quantity=1,
                ticket_id=t.id,
            )
        )
    return lines


def insert_sold_tickets(order_id: int, lines: List[SaleLine]) -> List[int]:
    """Insert freshly sold tickets for (type, quantity) lines."""
    rows = [
        Ticket(
            ticket_type_id=line.ticket_type_id,
            status=TICKET_SOLD,
            valid=True,
            order_id=order_id,
            sold_at=func.now(),
            sold_price=line.price,
        )
        for line in lines
        for _ in range(line.quantity)
    ]
    db.session.add_all(rows)
    db.session.flush()
    return [t.id for t in rows]


def mark_tickets_sold(order_id: int, lines: List[SaleLine]) -> List[int]:
    """
    Conditionally flip existing tickets to sold. The WHERE clause re-checks
    status='available', so a ticket claimed by a concurrent checkout after
    lock_tickets() ran is reported instead of silently overwritten.
    """
    claimed_elsewhere = []
    for line in lines:
        res = db.session.execute(
            update(Ticket)
            .where(Ticket.id == line.ticket_id, Ticket.status == TICKET_AVAILABLE)
            .values(
                status=TICKET_SOLD,
                order_id=order_id,
                sold_at=func.now(),
                sold_price=line.price,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            claimed_elsewhere.append(line.ticket_id)

    if claimed_elsewhere:
        current_app.logger.warning(
            "[inventory] tickets claimed concurrently order=%s ids=%s", order_id, claimed_elsewhere
        )
        raise TicketUnavailable(sold=claimed_elsewhere)
    return [line.ticket_id for line in lines]


def describe_lines(lines: List[SaleLine]) -> List[dict]:
    return [
        {
            "ticket_type_id": line.ticket_type_id,
            "ticket_id": line.ticket_id,
            "category": line.category,
            "subcategory": line.subcategory,
            "price": money_str(line.price),
            "quantity": line.quantity,
            "subtotal": money_str(line.subtotal),
            "credit_account_id": line.credit_account_id,
        }
        for line in lines
    ]
