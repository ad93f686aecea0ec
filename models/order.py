# models/order.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func

# Payment instruments accepted at the till. CREDIT is written by the ledger
# only and is never accepted from a client.
PM_CASH = "cash"
PM_VISA = "visa"
PM_VODAFONE_CASH = "vodafone_cash"
PM_POSTPONED = "postponed"
PM_DISCOUNT = "discount"
PM_BANK_AHLY_MISR = "الاهلي و مصر"
PM_OTHER = "OTHER"
PM_CREDIT = "CREDIT"

PAYMENT_METHODS = (
    PM_CASH,
    PM_VISA,
    PM_VODAFONE_CASH,
    PM_POSTPONED,
    PM_DISCOUNT,
    PM_BANK_AHLY_MISR,
    PM_OTHER,
    PM_CREDIT,
)
CLIENT_PAYMENT_METHODS = tuple(m for m in PAYMENT_METHODS if m != PM_CREDIT)


class Order(db.Model):
    __tablename__ = "orders"

    id           = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id      = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    description  = db.Column(db.Text, nullable=True)
    gross_total  = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    created_at   = db.Column(db.DateTime, server_default=func.now(), nullable=False, index=True)

    user     = db.relationship("User", back_populates="orders")
    tickets  = db.relationship("Ticket", back_populates="order", lazy="dynamic")
    payments = db.relationship("Payment", back_populates="order", order_by="Payment.id")
    meals    = db.relationship("OrderMeal", back_populates="order", order_by="OrderMeal.id")


class Payment(db.Model):
    __tablename__ = "payments"

    id        = db.Column(db.Integer, primary_key=True, autoincrement=True)
    order_id  = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    method    = db.Column(db.Enum(*PAYMENT_METHODS, name="payment_method"), nullable=False)
    amount    = db.Column(db.Numeric(12, 2), nullable=False)
    reference = db.Column(db.String(255), nullable=True)

    order = db.relationship("Order", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount": str(self.amount),
            "reference": self.reference,
        }


class OrderMeal(db.Model):
    __tablename__ = "order_meals"

    id             = db.Column(db.Integer, primary_key=True, autoincrement=True)
    order_id       = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    meal_id        = db.Column(db.Integer, db.ForeignKey("meals.id"), nullable=False)
    quantity       = db.Column(db.Integer, nullable=False)
    price_at_order = db.Column(db.Numeric(10, 2), nullable=False)

    order = db.relationship("Order", back_populates="meals")
    meal  = db.relationship("Meal")

    def to_dict(self) -> dict:
        return {
            "meal_id": self.meal_id,
            "name": self.meal.name if self.meal else None,
            "quantity": int(self.quantity),
            "price_at_order": str(self.price_at_order),
        }
