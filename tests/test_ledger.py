from datetime import datetime, timezone
from decimal import Decimal

import pytest

from db import db
from models.credit import CreditAccount, CreditTransaction, TX_INITIAL_BALANCE
from services import ledger
from services.errors import Conflict, NotFound, ValidationError


def _balance(account_id):
    db.session.expire_all()
    return db.session.get(CreditAccount, account_id).balance


def test_create_account_posts_opening_balance(app):
    acct = ledger.create_account(name="Acme Corp", initial_balance="1000")
    assert acct["balance"] == "1000.00"

    rows = db.session.query(CreditTransaction).filter_by(credit_account_id=acct["id"]).all()
    assert len(rows) == 1
    assert rows[0].transaction_type == TX_INITIAL_BALANCE
    assert rows[0].amount == Decimal("1000.00")


def test_create_account_zero_balance_writes_no_ledger_row(app):
    acct = ledger.create_account(name="Empty Co")
    assert acct["balance"] == "0.00"
    assert db.session.query(CreditTransaction).count() == 0


def test_create_account_rejects_duplicate_and_blank_names(app):
    ledger.create_account(name="Acme Corp")
    with pytest.raises(Conflict):
        ledger.create_account(name="Acme Corp")
    with pytest.raises(ValidationError):
        ledger.create_account(name="   ")
    with pytest.raises(ValidationError):
        ledger.create_account(name="Bad Balance", initial_balance="lots")


def test_adjust_credit_moves_balance_and_reports_previous(app):
    acct = ledger.create_account(name="Acme Corp", initial_balance="100")
    out = ledger.adjust_credit(account_id=acct["id"], amount="-30.50", description="correction")

    assert out["previousBalance"] == "100.00"
    assert out["newBalance"] == "69.50"
    assert out["transaction"]["amount"] == "-30.50"
    assert _balance(acct["id"]) == Decimal("69.50")


def test_adjust_credit_validation(app):
    acct = ledger.create_account(name="Acme Corp")
    with pytest.raises(ValidationError):
        ledger.adjust_credit(account_id=acct["id"], amount=0)
    with pytest.raises(ValidationError):
        ledger.adjust_credit(account_id=acct["id"], amount="abc")
    with pytest.raises(ValidationError):
        ledger.adjust_credit(account_id=acct["id"], amount=10, transaction_type="ticket_sale")
    with pytest.raises(NotFound):
        ledger.adjust_credit(account_id=999, amount=10)


def test_out_of_range_amounts_are_rejected(app):
    with pytest.raises(ValidationError):
        ledger.create_account(name="Huge Co", initial_balance="1e30")
    assert db.session.query(CreditAccount).count() == 0

    acct = ledger.create_account(name="Acme Corp", initial_balance="9999999999.00")
    with pytest.raises(ValidationError):
        ledger.adjust_credit(account_id=acct["id"], amount="1e40")
    with pytest.raises(ValidationError):
        ledger.adjust_credit(account_id=acct["id"], amount="1.00")

    assert _balance(acct["id"]) == Decimal("9999999999.00")
    assert db.session.query(CreditTransaction).count() == 1


def test_balance_equals_ledger_sum_after_many_postings(app):
    acct = ledger.create_account(name="Acme Corp", initial_balance="500")
    for amount in ("-120.25", "40", "-0.75", "300", "-1000"):
        ledger.adjust_credit(account_id=acct["id"], amount=amount)

    info = ledger.get_account(acct["id"])
    assert info["balance"] == info["ledger_sum"] == "-281.00"
    assert info["in_sync"] is True


def test_link_category_rules(app, make_type):
    make_type("VIP")
    a = ledger.create_account(name="A")
    b = ledger.create_account(name="B")

    link, created = ledger.link_category(category_name="VIP", account_id=a["id"])
    assert created is True
    assert link["credit_account_id"] == a["id"]

    # same pair again is a no-op
    _, created = ledger.link_category(category_name="VIP", account_id=a["id"])
    assert created is False

    with pytest.raises(Conflict):
        ledger.link_category(category_name="VIP", account_id=b["id"])
    with pytest.raises(NotFound):
        ledger.link_category(category_name="Unknown", account_id=a["id"])
    with pytest.raises(NotFound):
        ledger.link_category(category_name="VIP", account_id=999)
    with pytest.raises(ValidationError):
        ledger.link_category(category_name="", account_id=a["id"])


def test_unlink_category(app, make_type):
    make_type("VIP")
    acct = ledger.create_account(name="A")
    ledger.link_category(category_name="VIP", account_id=acct["id"])

    ledger.unlink_category(category_name="VIP", account_id=acct["id"])
    assert ledger.accounts_for_categories(["VIP"]) == {}
    with pytest.raises(NotFound):
        ledger.unlink_category(category_name="VIP", account_id=acct["id"])


def test_accounts_for_categories_omits_unlinked(app, make_type, make_account):
    make_type("VIP")
    make_type("Adult")
    acct = make_account(name="Acme Corp", balance="75", categories=["VIP"])

    found = ledger.accounts_for_categories(["VIP", "Adult"])
    assert list(found) == ["VIP"]
    assert found["VIP"]["id"] == acct["id"]
    assert found["VIP"]["balance"] == Decimal("75.00")


def test_category_lists(app, make_type, make_account):
    make_type("VIP")
    make_type("Adult", "Weekday")
    make_type("Adult", "Weekend")
    make_account(name="Acme Corp", categories=["VIP"])

    assert ledger.available_categories() == ["Adult", "VIP"]
    linked = ledger.linked_categories()
    assert [row["category_name"] for row in linked] == ["VIP"]
    assert linked[0]["credit_account_name"] == "Acme Corp"


def test_list_transactions_paginates_newest_first(app):
    acct = ledger.create_account(name="Acme Corp", initial_balance="10")
    for i in range(4):
        ledger.adjust_credit(account_id=acct["id"], amount=i + 1)

    page1 = ledger.list_transactions(account_id=acct["id"], page=1, limit=2)
    assert page1["pagination"] == {"page": 1, "limit": 2, "total": 5, "totalPages": 3}
    ids = [tx["id"] for tx in page1["transactions"]]
    assert ids == sorted(ids, reverse=True)

    page3 = ledger.list_transactions(account_id=acct["id"], page=3, limit=2)
    assert len(page3["transactions"]) == 1


def test_list_transactions_date_filters(app):
    acct = ledger.create_account(name="Acme Corp", initial_balance="10")
    today = datetime.now(timezone.utc).date().isoformat()

    assert ledger.list_transactions(account_id=acct["id"], date=today)["pagination"]["total"] == 1
    assert ledger.list_transactions(account_id=acct["id"], date="2001-01-01")["pagination"]["total"] == 0
    ranged = ledger.list_transactions(account_id=acct["id"], start_date="2001-01-01", end_date=today)
    assert ranged["pagination"]["total"] == 1

    with pytest.raises(ValidationError):
        ledger.list_transactions(account_id=acct["id"], date="not-a-date")
    with pytest.raises(NotFound):
        ledger.list_transactions(account_id=999)
