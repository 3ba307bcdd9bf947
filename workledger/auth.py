# workledger/auth.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db, limiter, login_manager
from .models import User, utcnow_naive
from .serializers import user_to_dict
from .utils.passwords import hash_password, validate_password, verify_password

auth = Blueprint("auth", __name__, url_prefix="/auth")


# =========================================================
# Flask-Login hooks
# =========================================================
@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "unauthorized", "message": "Please log in."}), 401


def _login_limit() -> str:
    return current_app.config["LOGIN_RATE_LIMIT"]


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict() or {}


# =========================================================
# Login / Logout
# =========================================================
@auth.route("/login", methods=["POST"])
@limiter.limit(_login_limit)
def login():
    data = _payload()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"success": False, "error": "validation_error", "message": "Email and password are required."}), 400

    user = User.query.filter(db.func.lower(User.email) == email).first()

    if not user or not verify_password(user.password_hash, password):
        return jsonify({"success": False, "error": "invalid_credentials", "message": "Invalid email or password."}), 401

    if user.is_active is False:
        return jsonify({"success": False, "error": "inactive", "message": "This account is inactive. Contact an admin."}), 403

    login_user(user)

    try:
        user.last_login_at = utcnow_naive()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Stamping last_login_at failed for user %s", user.id)

    return jsonify({"success": True, "user": user_to_dict(user)})


@auth.route("/logout", methods=["POST"])
def logout():
    """Not login_required: logging out twice is harmless."""
    logout_user()
    return jsonify({"success": True})


@auth.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "user": user_to_dict(current_user)})


# =========================================================
# Change Password (any logged-in user)
# =========================================================
@auth.route("/password", methods=["POST"])
@login_required
def change_password():
    data = _payload()
    current_pw = data.get("current_password") or ""
    new_pw = data.get("new_password") or ""

    if not current_pw or not new_pw:
        return jsonify({"success": False, "error": "validation_error", "message": "All fields are required."}), 400

    if not verify_password(current_user.password_hash, current_pw):
        return jsonify({"success": False, "error": "invalid_credentials", "message": "Current password is incorrect."}), 400

    ok, msg = validate_password(new_pw)
    if not ok:
        return jsonify({"success": False, "error": "validation_error", "message": msg}), 400

    if verify_password(current_user.password_hash, new_pw):
        return jsonify(
            {"success": False, "error": "validation_error", "message": "New password must be different from the current password."}
        ), 400

    current_user.password_hash = hash_password(new_pw)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Password change failed for user %s", current_user.id)
        raise

    return jsonify({"success": True})
