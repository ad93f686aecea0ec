# services/ledger.py
"""
Credit ledger: one append-only transaction log per credit account plus a
cached running balance.

The cached balance is only ever moved by an in-database increment issued in
the same transaction as the ledger insert (never read-modify-write), so two
concurrent postings on one account cannot lose an update.

Public API (committing):
  - create_account(name, description=None, initial_balance=0, user_id=None)
  - adjust_credit(account_id, amount, description=None,
                  transaction_type='manual_adjustment', user_id=None)
  - link_category(category_name, account_id)
  - unlink_category(category_name, account_id)

Read-only:
  - list_accounts(), get_account(account_id), ledger_sum(account_id)
  - list_transactions(account_id, page=1, limit=20, date=None,
                      start_date=None, end_date=None)
  - available_categories(), linked_categories()
  - accounts_for_categories(categories)

Sale helper (DOES NOT commit):
  - process_ticket_sale_credit(order_id, lines, meal_total, user_id=None)
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from dateutil import parser as dtparse
from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from db import db
from models.credit import (
    CategoryCreditLink,
    CreditAccount,
    CreditTransaction,
    TX_INITIAL_BALANCE,
    TX_MANUAL_ADJUSTMENT,
    TX_PAYMENT,
    TX_REFUND,
    TX_TICKET_SALE,
)
from models.order import PM_CREDIT
from models.ticket import TicketType
from services import payments
from services.errors import Conflict, CoreError, InsufficientCredit, NotFound, ValidationError
from services.inventory import category_exists
from utils.ids import positive_int
from utils.money import MAX_AMOUNT, ZERO, money_str, to_money

# transaction types an operator may post by hand
ADJUSTABLE_TYPES = (TX_MANUAL_ADJUSTMENT, TX_REFUND, TX_PAYMENT)


# ---------- low-level helpers ----------

def _lock_account(account_id: int) -> CreditAccount:
    """SELECT ... FOR UPDATE the account row; NotFound if missing."""
    acct = (
        db.session.query(CreditAccount)
        .filter(CreditAccount.id == account_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not acct:
        raise NotFound("Credit account not found", credit_account_id=account_id)
    return acct


def _current_balance(account_id: int) -> Decimal:
    bal = db.session.query(CreditAccount.balance).filter(CreditAccount.id == account_id).scalar()
    return to_money(bal or 0)


def _post_no_commit(
    *,
    account_id: int,
    amount: Decimal,
    transaction_type: str,
    description: Optional[str] = None,
    order_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> Tuple[CreditTransaction, Decimal]:
    """
    Append one ledger row and move the cached balance by the same amount.
    DOES NOT commit. Returns (transaction, new_balance).
    """
    if abs(_current_balance(account_id) + amount) > MAX_AMOUNT:
        raise ValidationError(
            "Resulting credit balance is out of range",
            credit_account_id=account_id,
            amount=money_str(amount),
        )

    tx = CreditTransaction(
        credit_account_id=account_id,
        amount=amount,
        transaction_type=transaction_type,
        description=description,
        order_id=order_id,
        user_id=user_id,
    )
    db.session.add(tx)
    db.session.flush()

    db.session.execute(
        update(CreditAccount)
        .where(CreditAccount.id == account_id)
        .values(balance=CreditAccount.balance + amount, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return tx, _current_balance(account_id)


def _account_dict(acct: CreditAccount, balance: Optional[Decimal] = None) -> dict:
    return {
        "id": acct.id,
        "name": acct.name,
        "balance": money_str(acct.balance if balance is None else balance),
        "description": acct.description,
        "linked_categories": [link.category_name for link in acct.category_links],
        "created_at": acct.created_at.isoformat() if acct.created_at else None,
    }


def _parse_day(s: Optional[str], what: str):
    if not s:
        return None
    try:
        return dtparse.parse(str(s)).date()
    except (ValueError, OverflowError):
        raise ValidationError(f"Invalid {what}; use YYYY-MM-DD") from None


# ---------- accounts ----------

def create_account(
    *,
    name: str,
    description: Optional[str] = None,
    initial_balance=0,
    user_id: Optional[int] = None,
) -> dict:
    """
    Create an account at zero and post its opening balance through the ledger,
    so balance == SUM(transactions) holds from the first commit.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Account name is required")
    try:
        opening = to_money(initial_balance if initial_balance is not None else 0)
    except ValueError:
        raise ValidationError("initialBalance must be a number") from None

    if db.session.query(CreditAccount.id).filter(CreditAccount.name == name).first():
        raise Conflict("Credit account name already exists", name=name)

    try:
        acct = CreditAccount(name=name, description=(description or "").strip() or None, balance=ZERO)
        db.session.add(acct)
        db.session.flush()

        balance = ZERO
        if opening != ZERO:
            _, balance = _post_no_commit(
                account_id=acct.id,
                amount=opening,
                transaction_type=TX_INITIAL_BALANCE,
                description="Initial account balance",
                user_id=user_id,
            )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Credit account name already exists", name=name) from None
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[ledger] create_account failed name=%s", name)
        raise

    current_app.logger.info("[ledger] account created id=%s name=%s opening=%s", acct.id, name, opening)
    return _account_dict(acct, balance)


def adjust_credit(
    *,
    account_id: int,
    amount,
    description: Optional[str] = None,
    transaction_type: str = TX_MANUAL_ADJUSTMENT,
    user_id: Optional[int] = None,
) -> dict:
    """
    Post one signed ledger row against an account.
    Returns the transaction with previous/new balance.
    """
    try:
        amt = to_money(amount)
    except ValueError:
        raise ValidationError("Valid amount is required") from None
    if amt == ZERO:
        raise ValidationError("Valid amount is required")
    if transaction_type not in ADJUSTABLE_TYPES:
        raise ValidationError(
            f"transactionType must be one of {', '.join(ADJUSTABLE_TYPES)}",
            transaction_type=transaction_type,
        )

    try:
        _lock_account(account_id)
        tx, new_balance = _post_no_commit(
            account_id=account_id,
            amount=amt,
            transaction_type=transaction_type,
            description=(description or "").strip() or None,
            user_id=user_id,
        )
        tx_out = tx.to_dict()
        db.session.commit()
    except CoreError:
        db.session.rollback()
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[ledger] adjust_credit failed account=%s", account_id)
        raise

    current_app.logger.info(
        "[ledger] adjusted account=%s amount=%s type=%s new_balance=%s",
        account_id, amt, transaction_type, new_balance,
    )
    return {
        "message": "Credit adjusted successfully",
        "transaction": tx_out,
        "previousBalance": money_str(new_balance - amt),
        "newBalance": money_str(new_balance),
    }


def get_account(account_id: int) -> dict:
    acct = db.session.get(CreditAccount, account_id)
    if not acct:
        raise NotFound("Credit account not found", credit_account_id=account_id)
    out = _account_dict(acct)
    total = ledger_sum(account_id)
    out["ledger_sum"] = money_str(total)
    out["in_sync"] = to_money(acct.balance) == total
    return out


def list_accounts() -> List[dict]:
    rows = db.session.query(CreditAccount).order_by(CreditAccount.name.asc()).all()
    return [_account_dict(a) for a in rows]


def ledger_sum(account_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(CreditTransaction.amount), 0))
        .filter(CreditTransaction.credit_account_id == account_id)
        .scalar()
    )
    return to_money(total)


# ---------- category links ----------

def link_category(*, category_name: str, account_id) -> Tuple[dict, bool]:
    """
    Link a catalog category to a credit account.
    Returns (link, created). Re-linking the same pair is a no-op.
    """
    category_name = (category_name or "").strip()
    if not category_name or not account_id:
        raise ValidationError("Category name and credit account ID are required")
    account_id = positive_int(account_id, "creditAccountId")

    if not category_exists(category_name):
        raise NotFound("Category not found in ticket types", category=category_name)
    acct = db.session.get(CreditAccount, account_id)
    if not acct:
        raise NotFound("Credit account not found", credit_account_id=account_id)

    links = db.session.query(CategoryCreditLink).filter(CategoryCreditLink.category_name == category_name).all()
    for link in links:
        if link.credit_account_id == acct.id:
            return link.to_dict(), False
    if links:
        raise Conflict(
            "Category is already linked to another credit account",
            category=category_name,
            credit_account_id=links[0].credit_account_id,
        )

    try:
        link = CategoryCreditLink(category_name=category_name, credit_account_id=acct.id)
        db.session.add(link)
        db.session.flush()
        out = link.to_dict()
        db.session.commit()
    except IntegrityError:
        # lost a race against an identical link
        db.session.rollback()
        existing = (
            db.session.query(CategoryCreditLink)
            .filter_by(category_name=category_name, credit_account_id=acct.id)
            .first()
        )
        if existing:
            return existing.to_dict(), False
        raise

    current_app.logger.info("[ledger] linked category=%s account=%s", category_name, acct.id)
    out["credit_account_name"] = acct.name
    return out, True


def unlink_category(*, category_name: str, account_id) -> dict:
    category_name = (category_name or "").strip()
    if not category_name or not account_id:
        raise ValidationError("Category name and credit account ID are required")
    account_id = positive_int(account_id, "creditAccountId")

    link = (
        db.session.query(CategoryCreditLink)
        .filter_by(category_name=category_name, credit_account_id=account_id)
        .first()
    )
    if not link:
        raise NotFound("Category link not found", category=category_name)

    out = link.to_dict()
    try:
        db.session.delete(link)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[ledger] unlink failed category=%s", category_name)
        raise
    current_app.logger.info("[ledger] unlinked category=%s account=%s", category_name, account_id)
    return out


def accounts_for_categories(categories: Iterable[str]) -> Dict[str, dict]:
    """
    Map each credit-linked category to its account {id, name, balance}.
    Categories without a link are absent from the result. A category linked to
    more than one account is refused rather than guessed.
    """
    names = set(categories)
    if not names:
        return {}
    rows = (
        db.session.query(CategoryCreditLink.category_name, CreditAccount.id, CreditAccount.name, CreditAccount.balance)
        .join(CreditAccount, CreditAccount.id == CategoryCreditLink.credit_account_id)
        .filter(CategoryCreditLink.category_name.in_(sorted(names)))
        .order_by(CreditAccount.id.asc())
        .all()
    )
    out: Dict[str, dict] = {}
    for cat, acct_id, acct_name, balance in rows:
        if cat in out:
            raise Conflict(
                "Category is linked to more than one credit account",
                category=cat,
                credit_account_ids=[out[cat]["id"], acct_id],
            )
        out[cat] = {"id": acct_id, "name": acct_name, "balance": to_money(balance)}
    return out


def available_categories() -> List[str]:
    rows = db.session.query(TicketType.category).distinct().order_by(TicketType.category.asc()).all()
    return [r[0] for r in rows]


def linked_categories() -> List[dict]:
    rows = (
        db.session.query(CategoryCreditLink, CreditAccount)
        .join(CreditAccount, CreditAccount.id == CategoryCreditLink.credit_account_id)
        .order_by(CategoryCreditLink.category_name.asc())
        .all()
    )
    return [
        {
            "category_name": link.category_name,
            "credit_account_id": acct.id,
            "credit_account_name": acct.name,
            "balance": money_str(acct.balance),
        }
        for link, acct in rows
    ]


# ---------- transactions ----------

def list_transactions(
    *,
    account_id: int,
    page: int = 1,
    limit: Optional[int] = None,
    date: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> dict:
    if not db.session.get(CreditAccount, account_id):
        raise NotFound("Credit account not found", credit_account_id=account_id)

    page = max(1, int(page or 1))
    limit = limit or current_app.config.get("CREDIT_TRANSACTIONS_PAGE_SIZE", 20)
    limit = min(max(int(limit), 1), 200)

    q = db.session.query(CreditTransaction).filter(CreditTransaction.credit_account_id == account_id)

    start, end = _parse_day(start_date, "startDate"), _parse_day(end_date, "endDate")
    day = _parse_day(date, "date")
    if start and end:
        lo, hi = start, end
    elif day:
        lo = hi = day
    else:
        lo = hi = None
    if lo and hi:
        q = q.filter(
            CreditTransaction.created_at >= datetime.combine(lo, datetime.min.time()),
            CreditTransaction.created_at < datetime.combine(hi + timedelta(days=1), datetime.min.time()),
        )

    total = q.count()
    rows = (
        q.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "transactions": [tx.to_dict() for tx in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }


# ---------- sale helper ----------

def process_ticket_sale_credit(
    order_id: int,
    lines,
    meal_total=ZERO,
    user_id: Optional[int] = None,
) -> dict:
    """
    Deduct a postponed sale from the linked credit accounts. DOES NOT commit.

    Lines are grouped by credit account; each account is charged the sum of
    its lines' subtotals. The whole meal total is charged to the first account
    in line order. Each charge writes one `ticket_sale` ledger row and a
    mirroring internal CREDIT payment row.

    Returns {"credit_transactions": [...], "total_credit_used": Decimal}.
    """
    meal_total = to_money(meal_total or 0)
    groups: "OrderedDict[int, dict]" = OrderedDict()
    for line in lines:
        if line.credit_account_id is None:
            continue
        g = groups.setdefault(
            line.credit_account_id,
            {"name": line.credit_account_name, "amount": ZERO, "tickets": 0, "categories": []},
        )
        g["amount"] += line.subtotal
        g["tickets"] += line.quantity
        if line.category not in g["categories"]:
            g["categories"].append(line.category)

    if groups and meal_total > ZERO:
        first = next(iter(groups.values()))
        first["amount"] += meal_total
        first["meals"] = meal_total

    allow_debt = current_app.config.get("CREDIT_ALLOW_NEGATIVE_BALANCE", True)
    results = []
    total_used = ZERO
    # lock in id order so two sales touching the same accounts cannot deadlock
    for account_id in sorted(groups):
        g = groups[account_id]
        acct = _lock_account(account_id)
        charge = to_money(g["amount"])
        if not allow_debt and to_money(acct.balance) - charge < ZERO:
            raise InsufficientCredit(account_id, acct.name, to_money(acct.balance), charge)

        desc = f"{g['tickets']} tickets sold for categories: {', '.join(g['categories'])}"
        if g.get("meals"):
            desc += f" (+ meals {money_str(g['meals'])})"
        tx, new_balance = _post_no_commit(
            account_id=account_id,
            amount=-charge,
            transaction_type=TX_TICKET_SALE,
            description=desc,
            order_id=order_id,
            user_id=user_id,
        )
        payments.record_payment(order_id, PM_CREDIT, charge, f"Credit account: {acct.name}")

        total_used += charge
        results.append({
            "transaction": tx.to_dict(),
            "account_id": account_id,
            "account_name": acct.name,
            "credit_used": charge,
            "new_balance": new_balance,
            "went_into_debt": new_balance < ZERO,
        })
        current_app.logger.info(
            "[ledger] order=%s charged account=%s amount=%s new_balance=%s",
            order_id, account_id, charge, new_balance,
        )

    db.session.flush()
    return {"credit_transactions": results, "total_credit_used": total_used}
