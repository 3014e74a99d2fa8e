"""Auth blueprint — /auth/*

Open registration, login, logout and session introspection for JSON
clients. A pending invitation link opened before signing in is kept in
the session and reported back by login and /auth/me.
"""

import logging

from flask import Blueprint, jsonify, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash, generate_password_hash

from accountdesk.blueprints.common import request_data
from accountdesk.errors import ValidationError
from accountdesk.extensions import db, limiter
from accountdesk.models.user import User
from accountdesk.services import invitation_service
from accountdesk.services.storage import transaction

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _session_payload(user):
    pending = invitation_service.list_pending_invitations(user.email)
    return {
        "user": user.to_dict(),
        "pending_invitation": session.get("pending_invitation"),
        "invitations": [inv.to_dict() for inv in pending],
    }


# ──────────────────────────────────────────────
# POST /auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    data = request_data()
    email = invitation_service.normalize_email(data.get("email"))
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()

    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters.")
    if User.query.filter_by(email=email).first():
        raise ValidationError("An account with this email already exists.")

    with transaction():
        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name=full_name or None,
        )
        db.session.add(user)

    login_user(user)
    logger.info("User %s registered", user.id)
    return jsonify(_session_payload(user)), 201


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    data = request_data()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    if not email or not password:
        raise ValidationError("Email and password are required.")

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "Invalid email or password.", "code": "invalid_credentials"}), 401
    if not user.is_active:
        return jsonify({"error": "Your account has been deactivated.", "code": "inactive"}), 403

    login_user(user, remember=bool(data.get("remember")))
    return jsonify(_session_payload(user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    session.pop("pending_invitation", None)
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(_session_payload(current_user))


@auth_bp.route("/csrf")
def csrf_token():
    """Token for the X-CSRFToken header on state-changing requests."""
    return jsonify({"csrf_token": generate_csrf()})
