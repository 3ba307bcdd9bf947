# workledger/__init__.py
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask, jsonify

from .settings import Config
from .extensions import db, migrate, login_manager, limiter
from .errors import WorkLedgerError


def _error(code: str, message: str, status: int):
    return jsonify({"success": False, "error": code, "message": message}), status


def create_app(overrides: Optional[Mapping[str, Any]] = None, config_class: type = Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Register Blueprints
    # ======================
    from .api import api
    from .auth import auth

    app.register_blueprint(api)
    app.register_blueprint(auth)

    # ======================
    # CLI
    # ======================
    from .cli import register_cli

    register_cli(app)

    # ======================
    # Business-rule errors
    # ======================
    @app.errorhandler(WorkLedgerError)
    def ledger_error(e: WorkLedgerError):
        return jsonify(e.to_dict()), e.status_code

    # ======================
    # Rate limit error handler
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        return _error("rate_limited", "Too many requests. Please try again later.", 429)

    # ======================
    # Forbidden handler
    # ======================
    @app.errorhandler(403)
    def forbidden(e):
        return _error("forbidden", "You do not have permission to do that.", 403)

    # ======================
    # Not found handler
    # ======================
    @app.errorhandler(404)
    def not_found(e):
        return _error("not_found", "Not found.", 404)

    return app
