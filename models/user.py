# models/user.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash

ROLES = ("admin", "accountant", "cashier")


class User(db.Model):
    __tablename__ = "users"

    id            = db.Column(db.Integer, primary_key=True, autoincrement=True)
    username      = db.Column(db.String(80), nullable=False, unique=True, index=True)
    name          = db.Column(db.String(160), nullable=True)
    role          = db.Column(db.String(32), nullable=False, default="cashier", index=True)
    password_hash = db.Column(db.String(255), nullable=False, default="")

    created_at    = db.Column(db.DateTime, server_default=func.now(), nullable=False)

    orders = db.relationship("Order", back_populates="user", lazy="dynamic")

    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or (self.username or f"User #{self.id}")
