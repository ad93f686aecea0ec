# app.py
from __future__ import annotations

import logging
import os

import click
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_cors import CORS

from config import Config
from db import db, migrate
from services.errors import CoreError

# Ensure models are imported so Flask-Migrate sees them
from models.user import User
from models.ticket import Ticket, TicketType
from models.meal import Meal
from models.order import Order, Payment, OrderMeal
from models.credit import CreditAccount, CategoryCreditLink, CreditTransaction

# Blueprints
from routes.auth import auth_bp
from routes.tickets import tickets_bp
from routes.credit import credit_bp
from routes.orders import orders_bp


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)

    # Respect reverse proxy headers (scheme / host) for correct URL generation
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[arg-type]

    # Load config + init extensions
    app.config.from_object(config_object)
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")), logging.INFO))

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    CORS(app, resources={r"/api/*": {"origins": origins}})

    db.init_app(app)
    migrate.init_app(app, db)

    # Touch models so Alembic/Flask-Migrate registers them
    _ = (User, Ticket, TicketType, Meal, Order, Payment, OrderMeal,
         CreditAccount, CategoryCreditLink, CreditTransaction)

    # Health check
    @app.route("/")
    def health_check():
        return jsonify(status="ok"), 200

    @app.errorhandler(CoreError)
    def handle_core_error(e: CoreError):
        if e.status >= 500:
            app.logger.error("[app] %s %s -> %s", request.method, request.path, e)
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify(error="Not Found", path=request.path), 404

    # Global error handler
    @app.errorhandler(Exception)
    def handle_any_error(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify(error=e.description), e.code
        app.logger.exception("[app] unhandled error on %s %s", request.method, request.path)
        return jsonify(error="Internal server error"), 500

    # --- Debug: list routes ---
    @app.route("/__routes")
    def __routes():
        from flask import Response
        lines = []
        for rule in app.url_map.iter_rules():
            methods = ",".join(sorted(m for m in rule.methods if m not in {"HEAD", "OPTIONS"}))
            lines.append(f"{methods:10s} {rule.rule}")
        lines.sort()
        return Response("\n".join(lines), mimetype="text/plain")

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(tickets_bp)
    app.register_blueprint(credit_bp)
    app.register_blueprint(orders_bp)

    # CLI: create tables without running migrations (dev / first boot)
    @app.cli.command("init-db")
    @click.option("--drop", is_flag=True, help="Drop all tables first.")
    def init_db_cmd(drop: bool):
        if drop:
            db.drop_all()
        db.create_all()
        click.echo("Database tables created.")

    return app


# Optional local entrypoint (useful for quick dev runs)
if __name__ == "__main__":
    app = create_app()
    app.run(
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        debug=bool(os.environ.get("FLASK_DEBUG", "")),
    )
