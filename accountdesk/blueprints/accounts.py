"""Accounts blueprint — accounts, notes, reminders and vault entries.

Route Map:
  GET    /api/workspaces/<workspace_id>/accounts  — Accounts visible to me
  POST   /api/workspaces/<workspace_id>/accounts  — Create account (owner)
  GET    /api/accounts/assigned                   — Accounts assigned to me
  GET    /api/accounts/<id>                       — Detail with notes + reminders
  PATCH  /api/accounts/<id>                       — Edit details
  DELETE /api/accounts/<id>                       — Delete (owner)
  PUT    /api/accounts/<id>/assignees             — Replace assignees (owner)
  GET    /api/accounts/<id>/notes?type=report     — Notes / reports
  POST   /api/accounts/<id>/notes
  PATCH  /api/notes/<id>
  DELETE /api/notes/<id>
  GET    /api/accounts/<id>/reminders
  POST   /api/accounts/<id>/reminders
  PATCH  /api/reminders/<id>
  DELETE /api/reminders/<id>
  POST   /api/reminders/<id>/toggle               — Complete / reopen
  GET    /api/reminders/upcoming                  — My next open reminders
  GET    /api/accounts/<id>/vault                 — Masked vault entries
  POST   /api/accounts/<id>/vault
  GET    /api/vault/<id>/reveal                   — Value in clear (audited)
  DELETE /api/vault/<id>

Authorization is enforced in account_service; routes only parse input.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from accountdesk.blueprints.common import request_data
from accountdesk.decorators import workspace_role_required
from accountdesk.errors import ValidationError
from accountdesk.services import account_service

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api")


# ─── Accounts ────────────────────────────────────────────────────

@accounts_bp.route("/workspaces/<workspace_id>/accounts", methods=["GET"])
@workspace_role_required()
def list_accounts(workspace_id):
    accounts = account_service.list_accounts(workspace_id, current_user)
    return jsonify([a.to_dict() for a in accounts])


@accounts_bp.route("/workspaces/<workspace_id>/accounts", methods=["POST"])
@workspace_role_required()
def create_account(workspace_id):
    data = request_data()
    account = account_service.create_account(
        workspace_id, current_user,
        name=data.get("name"),
        username=data.get("username"),
        website=data.get("website"),
        assigned_to=data.get("assigned_to"),
    )
    return jsonify(account.to_dict()), 201


@accounts_bp.route("/accounts/assigned", methods=["GET"])
@login_required
def assigned_accounts():
    accounts = account_service.list_assigned_accounts(current_user)
    return jsonify([a.to_dict() for a in accounts])


@accounts_bp.route("/accounts/<account_id>", methods=["GET"])
@login_required
def get_account(account_id):
    account = account_service.get_account(account_id, current_user)
    return jsonify(account.to_dict(include_children=True))


@accounts_bp.route("/accounts/<account_id>", methods=["PATCH"])
@login_required
def update_account(account_id):
    data = request_data()
    account = account_service.update_account(
        account_id, current_user,
        name=data.get("name"),
        username=data.get("username"),
        website=data.get("website"),
    )
    return jsonify(account.to_dict())


@accounts_bp.route("/accounts/<account_id>", methods=["DELETE"])
@login_required
def delete_account(account_id):
    account_service.delete_account(account_id, current_user)
    return jsonify({"success": True})


@accounts_bp.route("/accounts/<account_id>/assignees", methods=["PUT"])
@login_required
def set_assignees(account_id):
    user_ids = request_data().get("user_ids")
    if not isinstance(user_ids, list):
        raise ValidationError("user_ids must be a list.")
    account = account_service.set_assignees(account_id, current_user, user_ids)
    return jsonify(account.to_dict())


# ─── Notes ───────────────────────────────────────────────────────

@accounts_bp.route("/accounts/<account_id>/notes", methods=["GET"])
@login_required
def list_notes(account_id):
    notes = account_service.list_notes(
        account_id, current_user, note_type=request.args.get("type")
    )
    return jsonify([n.to_dict() for n in notes])


@accounts_bp.route("/accounts/<account_id>/notes", methods=["POST"])
@login_required
def create_note(account_id):
    data = request_data()
    note = account_service.create_note(
        account_id, current_user,
        title=data.get("title"),
        content=data.get("content"),
        note_type=data.get("type"),
    )
    return jsonify(note.to_dict()), 201


@accounts_bp.route("/notes/<note_id>", methods=["PATCH"])
@login_required
def update_note(note_id):
    data = request_data()
    note = account_service.update_note(
        note_id, current_user, title=data.get("title"), content=data.get("content")
    )
    return jsonify(note.to_dict())


@accounts_bp.route("/notes/<note_id>", methods=["DELETE"])
@login_required
def delete_note(note_id):
    account_service.delete_note(note_id, current_user)
    return jsonify({"success": True})


# ─── Reminders ───────────────────────────────────────────────────

@accounts_bp.route("/accounts/<account_id>/reminders", methods=["GET"])
@login_required
def list_reminders(account_id):
    include_completed = request.args.get("completed", "1") != "0"
    reminders = account_service.list_reminders(
        account_id, current_user, include_completed=include_completed
    )
    return jsonify([r.to_dict() for r in reminders])


@accounts_bp.route("/accounts/<account_id>/reminders", methods=["POST"])
@login_required
def create_reminder(account_id):
    data = request_data()
    reminder = account_service.create_reminder(
        account_id, current_user,
        title=data.get("title"),
        date=data.get("date"),
        content=data.get("content"),
    )
    return jsonify(reminder.to_dict()), 201


@accounts_bp.route("/reminders/upcoming", methods=["GET"])
@login_required
def upcoming_reminders():
    limit = min(request.args.get("limit", 10, type=int), 100)
    reminders = account_service.upcoming_reminders(current_user, limit=limit)
    return jsonify([r.to_dict() for r in reminders])


@accounts_bp.route("/reminders/<reminder_id>", methods=["PATCH"])
@login_required
def update_reminder(reminder_id):
    data = request_data()
    reminder = account_service.update_reminder(
        reminder_id, current_user,
        title=data.get("title"),
        content=data.get("content"),
        date=data.get("date"),
    )
    return jsonify(reminder.to_dict())


@accounts_bp.route("/reminders/<reminder_id>/toggle", methods=["POST"])
@login_required
def toggle_reminder(reminder_id):
    reminder = account_service.toggle_reminder(reminder_id, current_user)
    return jsonify(reminder.to_dict())


@accounts_bp.route("/reminders/<reminder_id>", methods=["DELETE"])
@login_required
def delete_reminder(reminder_id):
    account_service.delete_reminder(reminder_id, current_user)
    return jsonify({"success": True})


# ─── Vault ───────────────────────────────────────────────────────

@accounts_bp.route("/accounts/<account_id>/vault", methods=["GET"])
@login_required
def list_vault(account_id):
    entries = account_service.list_vault_entries(account_id, current_user)
    return jsonify([e.to_dict() for e in entries])


@accounts_bp.route("/accounts/<account_id>/vault", methods=["POST"])
@login_required
def add_vault_entry(account_id):
    data = request_data()
    entry = account_service.add_vault_entry(
        account_id, current_user, key=data.get("key"), value=data.get("value")
    )
    return jsonify(entry.to_dict()), 201


@accounts_bp.route("/vault/<entry_id>/reveal", methods=["GET"])
@login_required
def reveal_vault_entry(entry_id):
    entry = account_service.reveal_vault_entry(entry_id, current_user)
    return jsonify(entry.to_dict(reveal=True))


@accounts_bp.route("/vault/<entry_id>", methods=["DELETE"])
@login_required
def delete_vault_entry(entry_id):
    account_service.delete_vault_entry(entry_id, current_user)
    return jsonify({"success": True})
