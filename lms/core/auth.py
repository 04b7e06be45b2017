from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from lms.core.models import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def serialize_user(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role.value,
        "is_active": user.is_active,
    }


@auth_bp.post("/login")
def login_post():
    payload = request.get_json(silent=True) or request.form
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        logger.info("Rejected login for %s", email or "<empty>")
        return jsonify({"error": "invalid_credentials", "message": "Invalid email or password", "category": "error"}), 401
    if not login_user(user):
        return jsonify({"error": "inactive_user", "message": "This account is disabled", "category": "permission"}), 403
    return jsonify({"user": serialize_user(user)})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"status": "logged_out"})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify({"user": serialize_user(current_user)})
