# models/credit.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func

TX_INITIAL_BALANCE = "initial_balance"
TX_MANUAL_ADJUSTMENT = "manual_adjustment"
TX_TICKET_SALE = "ticket_sale"
TX_REFUND = "refund"
TX_PAYMENT = "payment"

TRANSACTION_TYPES = (
    TX_INITIAL_BALANCE,
    TX_MANUAL_ADJUSTMENT,
    TX_TICKET_SALE,
    TX_REFUND,
    TX_PAYMENT,
)


class CreditAccount(db.Model):
    __tablename__ = "credit_accounts"

    id          = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name        = db.Column(db.String(160), nullable=False, unique=True)
    # cached aggregate of credit_transactions.amount; only moved by ledger inserts
    balance     = db.Column(db.Numeric(12, 2), nullable=False, default=0, server_default="0")
    description = db.Column(db.Text, nullable=True)

    created_at  = db.Column(db.DateTime, server_default=func.now(), nullable=False)
    updated_at  = db.Column(db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    category_links = db.relationship(
        "CategoryCreditLink",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="CategoryCreditLink.category_name",
    )

    transactions = db.relationship(
        "CreditTransaction",
        back_populates="account",
        lazy="dynamic",
    )


class CategoryCreditLink(db.Model):
    __tablename__ = "category_credit_accounts"
    __table_args__ = (
        db.UniqueConstraint("category_name", "credit_account_id", name="uq_category_credit_account"),
    )

    id                = db.Column(db.Integer, primary_key=True, autoincrement=True)
    category_name     = db.Column(db.String(120), nullable=False, index=True)
    credit_account_id = db.Column(db.Integer, db.ForeignKey("credit_accounts.id"), nullable=False, index=True)
    created_at        = db.Column(db.DateTime, server_default=func.now(), nullable=False)

    account = db.relationship("CreditAccount", back_populates="category_links")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_name": self.category_name,
            "credit_account_id": self.credit_account_id,
        }


class CreditTransaction(db.Model):
    __tablename__ = "credit_transactions"

    id                = db.Column(db.Integer, primary_key=True, autoincrement=True)
    credit_account_id = db.Column(db.Integer, db.ForeignKey("credit_accounts.id"), nullable=False, index=True)
    amount            = db.Column(db.Numeric(12, 2), nullable=False)  # signed; negative = deduction
    transaction_type  = db.Column(db.Enum(*TRANSACTION_TYPES, name="credit_transaction_type"), nullable=False)
    description       = db.Column(db.Text, nullable=True)

    order_id          = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    user_id           = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at        = db.Column(db.DateTime, server_default=func.now(), nullable=False, index=True)

    account = db.relationship("CreditAccount", back_populates="transactions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_account_id": self.credit_account_id,
            "amount": str(self.amount),
            "transaction_type": self.transaction_type,
            "description": self.description,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
