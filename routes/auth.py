# routes/auth.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app
from werkzeug.security import check_password_hash

from auth_guard import issue_token, require_role
from models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "name": user.display_name,
        "role": user.role,
    }


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not password:
        return jsonify(error="username and password are required"), 400

    user = User.query.filter_by(username=username).first()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        current_app.logger.info("[auth] failed login username=%s ip=%s", username, request.remote_addr)
        return jsonify(error="Invalid username or password"), 401

    current_app.logger.info("[auth] login uid=%s role=%s", user.id, user.role)
    return jsonify(token=issue_token(user), user=_user_dict(user)), 200


@auth_bp.route("/me", methods=["GET"])
@require_role()
def me():
    return jsonify(user=_user_dict(g.user)), 200
