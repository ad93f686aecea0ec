#!/usr/bin/env python3
# seed.py

from app import create_app
from auth_guard import issue_token
from db import db
from models.credit import CategoryCreditLink, CreditAccount
from models.meal import Meal
from models.ticket import Ticket, TicketType
from models.user import User
from services import inventory, ledger

# Staff accounts: (username, password, role, display name)
STAFF = [
    ("admin", "password", "admin", "Park Admin"),
    ("accountant", "password", "accountant", "Accounts Desk"),
    ("cashier", "password", "cashier", "Gate Cashier"),
]

# (category, subcategory, price)
TICKET_TYPES = [
    ("Adult", "Weekday", "120.00"),
    ("Adult", "Weekend", "150.00"),
    ("Child", "Weekday", "80.00"),
    ("Child", "Weekend", "100.00"),
    ("Corporate", "Standard", "100.00"),
]

MEALS = [
    ("Burger Combo", "60.00"),
    ("Pizza Slice", "35.00"),
    ("Soft Drink", "15.00"),
]

CORPORATE_ACCOUNT = "Acme Corp"


def seed():
    """
    Idempotent demo data: staff users, a small ticket catalog with some
    available stock, a meal menu, and one credit account linked to the
    Corporate category. Prints a cashier token for trying the API.
    """
    app = create_app()
    with app.app_context():
        db.create_all()

        for username, password, role, name in STAFF:
            user = User.query.filter_by(username=username).first()
            if not user:
                user = User(username=username, role=role, name=name)
                db.session.add(user)
                print(f"➕ Created {role} account `{username}`.")
            user.role = role
            user.set_password(password)
        db.session.commit()

        for category, subcategory, price in TICKET_TYPES:
            if not TicketType.query.filter_by(category=category, subcategory=subcategory).first():
                db.session.add(TicketType(category=category, subcategory=subcategory, price=price))
        for name, price in MEALS:
            if not Meal.query.filter_by(name=name).first():
                db.session.add(Meal(name=name, price=price))
        db.session.commit()

        if not db.session.query(Ticket.id).first():
            ids = inventory.generate_tickets(
                [{"ticket_type_id": t.id, "quantity": 10} for t in TicketType.query.all()]
            )
            print(f"🎟  Generated {len(ids)} available tickets.")

        admin = User.query.filter_by(username="admin").first()
        acct = CreditAccount.query.filter_by(name=CORPORATE_ACCOUNT).first()
        if not acct:
            created = ledger.create_account(
                name=CORPORATE_ACCOUNT,
                description="Prepaid corporate outing",
                initial_balance="5000.00",
                user_id=admin.id,
            )
            acct_id = created["id"]
            print(f"➕ Created credit account `{CORPORATE_ACCOUNT}`.")
        else:
            acct_id = acct.id
        if not CategoryCreditLink.query.filter_by(category_name="Corporate").first():
            ledger.link_category(category_name="Corporate", account_id=acct_id)

        cashier = User.query.filter_by(username="cashier").first()
        print("✅ Seed complete.")
        print(f"Cashier token: {issue_token(cashier)}")


if __name__ == "__main__":
    seed()
