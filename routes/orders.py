# routes/orders.py
from flask import Blueprint, jsonify

from auth_guard import require_role
from services import payments, sales

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("/payment-methods", methods=["GET"])
@require_role()
def payment_methods():
    return jsonify(payments.payment_methods()), 200


@orders_bp.route("/<int:order_id>", methods=["GET"])
@require_role("cashier", "accountant")
def get_order(order_id: int):
    return jsonify(sales.get_order(order_id)), 200
