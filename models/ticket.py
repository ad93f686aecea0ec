# models/ticket.py
from __future__ import annotations
from db import db
from sqlalchemy.sql import func

TICKET_AVAILABLE = "available"
TICKET_SOLD = "sold"


class TicketType(db.Model):
    __tablename__ = "ticket_types"
    __table_args__ = (
        db.UniqueConstraint("category", "subcategory", name="uq_ticket_types_category_subcategory"),
    )

    id          = db.Column(db.Integer, primary_key=True, autoincrement=True)
    category    = db.Column(db.String(120), nullable=False, index=True)
    subcategory = db.Column(db.String(120), nullable=False)
    price       = db.Column(db.Numeric(10, 2), nullable=False)
    description = db.Column(db.Text, nullable=True)
    archived    = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())

    tickets = db.relationship("Ticket", back_populates="ticket_type", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "subcategory": self.subcategory,
            "price": str(self.price),
            "description": self.description,
            "archived": bool(self.archived),
        }


class Ticket(db.Model):
    __tablename__ = "tickets"

    id             = db.Column(db.Integer, primary_key=True, autoincrement=True)
    ticket_type_id = db.Column(db.Integer, db.ForeignKey("ticket_types.id"), nullable=True, index=True)
    status         = db.Column(
        db.Enum(TICKET_AVAILABLE, TICKET_SOLD, name="ticket_status"),
        nullable=False,
        default=TICKET_AVAILABLE,
        index=True,
    )
    valid          = db.Column(db.Boolean, nullable=False, default=True, server_default=db.true())

    order_id       = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    sold_at        = db.Column(db.DateTime, nullable=True)
    sold_price     = db.Column(db.Numeric(10, 2), nullable=True)

    created_at     = db.Column(db.DateTime, server_default=func.now(), nullable=False)

    ticket_type = db.relationship("TicketType", back_populates="tickets")
    order       = db.relationship("Order", back_populates="tickets")
