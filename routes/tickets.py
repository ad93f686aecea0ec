# routes/tickets.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, g

from auth_guard import require_role
from db import db
from models.user import User
from services import inventory, sales
from services.errors import ValidationError
from utils.ids import positive_int

tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")


def _json() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _acting_user_id(data: dict) -> int:
    """Seller recorded on the order: body `user_id` if given, else the caller."""
    raw = data.get("user_id")
    if raw in (None, ""):
        return g.user.id
    uid = positive_int(raw, "user_id")
    if not db.session.get(User, uid):
        raise ValidationError("Unknown user_id", user_id=uid)
    return uid


# ──────────────────────────────────────────────────────────────────────────────
# Checkout

@tickets_bp.route("/sell", methods=["POST"])
@require_role("cashier")
def sell():
    """
    Sell new tickets by type and quantity.
    Body: { tickets:[{ticket_type_id, quantity}], payments:[...], meals:[...],
            user_id?, description? }
    """
    data = _json()
    result = sales.sell_tickets(
        tickets=data.get("tickets"),
        payments_in=data.get("payments"),
        meals=data.get("meals"),
        user_id=_acting_user_id(data),
        description=data.get("description"),
    )
    return jsonify(result), 201


@tickets_bp.route("/checkout-existing", methods=["PUT"])
@require_role("cashier")
def checkout_existing():
    data = _json()
    result = sales.checkout_existing_tickets(
        ticket_ids=data.get("ticket_ids"),
        payments_in=data.get("payments"),
        meals=data.get("meals"),
        user_id=_acting_user_id(data),
        description=data.get("description"),
    )
    return jsonify(result), 200


@tickets_bp.route("/check-credit-status", methods=["POST"])
@require_role("cashier")
def check_credit_status():
    data = _json()
    return jsonify(sales.check_credit_status(data.get("ticketTypeIds"))), 200


# ──────────────────────────────────────────────────────────────────────────────
# Inventory / catalog

@tickets_bp.route("/types", methods=["GET"])
@require_role()
def list_types():
    raw = (request.args.get("archived") or "").strip().lower()
    archived = {"true": True, "1": True, "false": False, "0": False}.get(raw)
    return jsonify(inventory.list_ticket_types(archived)), 200


@tickets_bp.route("/<int:ticket_id>", methods=["GET"])
@require_role()
def get_ticket(ticket_id: int):
    return jsonify(inventory.get_ticket(ticket_id)), 200


@tickets_bp.route("/assign", methods=["PUT"])
@require_role("admin")
def assign():
    """Body: { assignments:[{id, ticket_type_id|null}] }"""
    data = _json()
    return jsonify(inventory.assign_ticket_types(data.get("assignments"))), 200


@tickets_bp.route("/generate", methods=["POST"])
@require_role("admin")
def generate():
    data = _json()
    ids = inventory.generate_tickets(data.get("tickets"))
    return jsonify(message=f"Generated {len(ids)} tickets", ticket_ids=ids), 201


@tickets_bp.route("/refund", methods=["PUT"])
@require_role("cashier")
def refund():
    data = _json()
    refunded = inventory.refund_tickets(data.get("ticket_ids"))
    return jsonify(message="Tickets refunded successfully", refunded=refunded), 200


@tickets_bp.route("/validate", methods=["PATCH"])
@require_role("cashier")
def validate():
    data = _json()
    result = inventory.set_ticket_validity(data.get("ticket_ids"), data.get("valid"))
    return jsonify(
        message=f"Updated {len(result['updated'])} tickets",
        updated=result["updated"],
        already_in_state=result["already_in_state"],
    ), 200
