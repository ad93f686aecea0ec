"""
Pytest fixtures for the POS backend.

Every test gets a fresh app built from TestingConfig (SQLite in memory) with
all tables created, an application context pushed for direct service calls,
and factory fixtures for the catalog, staff users and credit accounts.
"""

from decimal import Decimal

import pytest

from app import create_app
from auth_guard import issue_token
from config import TestingConfig
from db import db
from models.meal import Meal
from models.ticket import Ticket, TicketType, TICKET_AVAILABLE
from models.user import User
from services import ledger


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(username="cashier", role="cashier", name=None):
        user = User(username=username, role=role, name=name)
        user.set_password("password")
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def cashier(make_user):
    return make_user("cashier", "cashier", "Gate Cashier")


@pytest.fixture
def accountant(make_user):
    return make_user("accountant", "accountant", "Accounts Desk")


@pytest.fixture
def auth_header():
    def _header(user):
        return {"Authorization": f"Bearer {issue_token(user)}"}
    return _header


@pytest.fixture
def make_type(app):
    def _make(category, subcategory="Standard", price="50.00"):
        tt = TicketType(category=category, subcategory=subcategory, price=Decimal(price))
        db.session.add(tt)
        db.session.commit()
        return tt
    return _make


@pytest.fixture
def make_meal(app):
    def _make(name="Burger Combo", price="20.00"):
        meal = Meal(name=name, price=Decimal(price))
        db.session.add(meal)
        db.session.commit()
        return meal
    return _make


@pytest.fixture
def make_stock(app):
    """Insert `count` available tickets of a type and return their ids."""
    def _make(ticket_type, count=1):
        rows = [Ticket(ticket_type_id=ticket_type.id, status=TICKET_AVAILABLE, valid=True) for _ in range(count)]
        db.session.add_all(rows)
        db.session.commit()
        return [t.id for t in rows]
    return _make


@pytest.fixture
def make_account(app):
    """Create a credit account and optionally link categories to it."""
    def _make(name="Acme Corp", balance="0", categories=()):
        acct = ledger.create_account(name=name, initial_balance=balance)
        for category in categories:
            ledger.link_category(category_name=category, account_id=acct["id"])
        return acct
    return _make
