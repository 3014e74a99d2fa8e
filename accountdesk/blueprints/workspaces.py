"""Workspaces blueprint — /api/workspaces/*

Route Map:
  GET    /api/workspaces                                  — Workspaces I own or belong to
  POST   /api/workspaces                                  — Create (caller becomes owner)
  GET    /api/workspaces/<workspace_id>                   — Detail + members
  PATCH  /api/workspaces/<workspace_id>                   — Rename / change timezone (owner)
  DELETE /api/workspaces/<workspace_id>                   — Delete with everything in it (owner)
  GET    /api/workspaces/<workspace_id>/members           — Member list
  DELETE /api/workspaces/<workspace_id>/members/<user_id> — Remove member (owner)
  POST   /api/workspaces/<workspace_id>/invitations       — Invite by email (owner)
  GET    /api/workspaces/<workspace_id>/activity          — Recent audit events

g.workspace and g.membership come from the tenant middleware.
"""

from flask import Blueprint, g, jsonify, request
from flask_login import current_user, login_required

from accountdesk.blueprints.common import request_data
from accountdesk.decorators import workspace_role_required
from accountdesk.models.audit import AuditEvent
from accountdesk.roles import can_manage_members, can_manage_workspace
from accountdesk.services import invitation_service, workspace_service

workspaces_bp = Blueprint("workspaces", __name__, url_prefix="/api/workspaces")


@workspaces_bp.route("", methods=["GET"])
@login_required
def list_workspaces():
    workspaces = workspace_service.list_workspaces_for_user(current_user)
    return jsonify([w.to_dict() for w in workspaces])


@workspaces_bp.route("", methods=["POST"])
@login_required
def create_workspace():
    data = request_data()
    workspace = workspace_service.create_workspace(
        data.get("name"), current_user, timezone=data.get("timezone")
    )
    return jsonify(workspace.to_dict(include_members=True)), 201


@workspaces_bp.route("/<workspace_id>", methods=["GET"])
@workspace_role_required()
def get_workspace(workspace_id):
    data = g.workspace.to_dict(include_members=True)
    data["role"] = g.membership.role
    return jsonify(data)


@workspaces_bp.route("/<workspace_id>", methods=["PATCH"])
@workspace_role_required(can_manage_workspace)
def update_workspace(workspace_id):
    data = request_data()
    workspace = workspace_service.update_workspace(
        workspace_id, current_user,
        name=data.get("name"), timezone=data.get("timezone"),
    )
    return jsonify(workspace.to_dict())


@workspaces_bp.route("/<workspace_id>", methods=["DELETE"])
@workspace_role_required(can_manage_workspace)
def delete_workspace(workspace_id):
    workspace_service.delete_workspace(workspace_id, current_user)
    return jsonify({"success": True})


# ─── Members ─────────────────────────────────────────────────────

@workspaces_bp.route("/<workspace_id>/members", methods=["GET"])
@workspace_role_required()
def list_members(workspace_id):
    members = workspace_service.list_members(workspace_id, current_user)
    return jsonify([m.to_dict() for m in members])


@workspaces_bp.route("/<workspace_id>/members/<user_id>", methods=["DELETE"])
@workspace_role_required(can_manage_members)
def remove_member(workspace_id, user_id):
    workspace_service.remove_member(workspace_id, user_id, current_user)
    return jsonify({"success": True})


# ─── Invitations ─────────────────────────────────────────────────

@workspaces_bp.route("/<workspace_id>/invitations", methods=["POST"])
@workspace_role_required(can_manage_members)
def create_invitation(workspace_id):
    data = request_data()
    invitation = invitation_service.create_invitation(
        workspace_id, data.get("email"), data.get("role") or "assistant", current_user
    )
    invitation_service.send_invitation_email(invitation, current_user)

    result = invitation.to_dict()
    result["link"] = invitation_service.invitation_link(invitation)
    return jsonify(result), 201


# ─── Activity ────────────────────────────────────────────────────

@workspaces_bp.route("/<workspace_id>/activity", methods=["GET"])
@workspace_role_required(can_manage_workspace)
def activity(workspace_id):
    limit = min(request.args.get("limit", 50, type=int), 200)
    events = (
        AuditEvent.query
        .filter_by(workspace_id=workspace_id)
        .order_by(AuditEvent.created_at.desc())
        .limit(limit)
        .all()
    )
    return jsonify([e.to_dict() for e in events])
