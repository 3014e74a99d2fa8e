"""Invitations blueprint — pending invitations and the acceptance link.

Route Map:
  GET  /api/invitations                 — Pending, unexpired invitations for my email
  GET  /invitations/<invitation_id>     — Acceptance link (embedded in emails)
  POST /invitations/<invitation_id>/accept

The acceptance link is public: an anonymous visitor gets a 401 and the
invitation id is parked in the session, so the client can sign in and
come back to it (login reports it as `pending_invitation`).
"""

from flask import Blueprint, jsonify, session
from flask_login import current_user, login_required

from accountdesk.extensions import limiter
from accountdesk.services import invitation_service

invitations_bp = Blueprint("invitations", __name__)


@invitations_bp.route("/api/invitations", methods=["GET"])
@login_required
def list_invitations():
    invitations = invitation_service.list_pending_invitations(current_user.email)
    return jsonify([inv.to_dict() for inv in invitations])


@invitations_bp.route("/invitations/<invitation_id>", methods=["GET"])
def show_invitation(invitation_id):
    if not current_user.is_authenticated:
        session["pending_invitation"] = invitation_id
        return jsonify({
            "error": "Sign in or register to accept this invitation.",
            "code": "not_authenticated",
            "pending_invitation": invitation_id,
        }), 401

    invitation = invitation_service.get_invitation(invitation_id)
    data = invitation.to_dict()
    data["email_matches"] = invitation.email == current_user.email.lower()
    return jsonify(data)


@invitations_bp.route("/invitations/<invitation_id>/accept", methods=["POST"])
@login_required
@limiter.limit("20 per minute")
def accept_invitation(invitation_id):
    membership = invitation_service.accept_invitation(invitation_id, current_user)
    if session.get("pending_invitation") == invitation_id:
        session.pop("pending_invitation")
    return jsonify({"membership": membership.to_dict()})
