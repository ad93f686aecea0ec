# routes/credit.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, g

from auth_guard import require_role
from services import ledger
from services.errors import ValidationError

credit_bp = Blueprint("credit", __name__, url_prefix="/api/credit")


def _json() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int_arg(name: str, default=None):
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None


@credit_bp.route("", methods=["GET"])
@credit_bp.route("/", methods=["GET"])
@require_role("accountant", "cashier")
def list_accounts():
    return jsonify(ledger.list_accounts()), 200


@credit_bp.route("", methods=["POST"])
@credit_bp.route("/", methods=["POST"])
@require_role("accountant")
def create_account():
    """Body: { name, description?, initialBalance? }"""
    data = _json()
    acct = ledger.create_account(
        name=data.get("name"),
        description=data.get("description"),
        initial_balance=data.get("initialBalance", 0),
        user_id=g.user.id,
    )
    return jsonify(message="Credit account created successfully", account=acct), 201


@credit_bp.route("/<int:account_id>", methods=["GET"])
@require_role("accountant", "cashier")
def get_account(account_id: int):
    return jsonify(ledger.get_account(account_id)), 200


@credit_bp.route("/<int:account_id>/adjust", methods=["POST"])
@require_role("accountant")
def adjust(account_id: int):
    """Body: { amount, description?, transactionType? }"""
    data = _json()
    result = ledger.adjust_credit(
        account_id=account_id,
        amount=data.get("amount"),
        description=data.get("description"),
        transaction_type=data.get("transactionType") or "manual_adjustment",
        user_id=g.user.id,
    )
    return jsonify(result), 200


@credit_bp.route("/link-category", methods=["POST"])
@require_role("accountant")
def link_category():
    data = _json()
    link, created = ledger.link_category(
        category_name=data.get("categoryName"),
        account_id=data.get("creditAccountId"),
    )
    if not created:
        return jsonify(message="Category already linked to this credit account", link=link), 200
    return jsonify(message="Category linked to credit account successfully", link=link), 201


@credit_bp.route("/unlink-category", methods=["DELETE"])
@require_role("accountant")
def unlink_category():
    data = _json()
    link = ledger.unlink_category(
        category_name=data.get("categoryName"),
        account_id=data.get("creditAccountId"),
    )
    return jsonify(message="Category unlinked from credit account successfully", link=link), 200


@credit_bp.route("/<int:account_id>/transactions", methods=["GET"])
@require_role("accountant")
def transactions(account_id: int):
    """?page=&limit=&date=YYYY-MM-DD  or  ?startDate=&endDate="""
    result = ledger.list_transactions(
        account_id=account_id,
        page=_int_arg("page", 1),
        limit=_int_arg("limit"),
        date=request.args.get("date"),
        start_date=request.args.get("startDate"),
        end_date=request.args.get("endDate"),
    )
    return jsonify(result), 200


@credit_bp.route("/categories/available", methods=["GET"])
@require_role("accountant")
def available_categories():
    return jsonify(ledger.available_categories()), 200


@credit_bp.route("/categories/linked", methods=["GET"])
@require_role("accountant", "cashier")
def linked_categories():
    return jsonify(ledger.linked_categories()), 200
