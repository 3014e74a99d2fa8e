"""Tests for workspaces and membership.

Covers:
- Create / list / update / delete (with cascade) through the service
- remove_member: assistant removal, last-owner guard, ownership transfer
- Assignments are dropped with the membership
- Tenant middleware: unknown workspace 404, non-member 403, anonymous 401
"""

import pytest

from accountdesk.errors import CannotRemoveLastOwner, NotAuthorized, NotFound, ValidationError
from accountdesk.extensions import db
from accountdesk.models.account import Account, AccountAssignment
from accountdesk.models.audit import AuditEvent
from accountdesk.models.invitation import WorkspaceInvitation
from accountdesk.models.note import Note
from accountdesk.models.reminder import Reminder
from accountdesk.models.reminder_notification import ReminderNotification
from accountdesk.models.workspace import Workspace, WorkspaceMember
from accountdesk.services import account_service, workspace_service


class TestWorkspaceService:
    """workspace_service CRUD"""

    def test_create_makes_creator_owner(self, seed_data):
        workspace = workspace_service.create_workspace("Side Project", seed_data["outsider"], timezone="Europe/Paris")

        membership = workspace_service.get_membership(workspace.id, seed_data["outsider_id"])
        assert membership.role == "owner"
        assert workspace.owner_id == seed_data["outsider_id"]
        assert workspace.timezone == "Europe/Paris"

    def test_create_defaults_timezone(self, seed_data):
        workspace = workspace_service.create_workspace("Plain", seed_data["outsider"])
        assert workspace.timezone == "UTC"

    def test_create_rejects_unknown_timezone(self, seed_data):
        with pytest.raises(ValidationError):
            workspace_service.create_workspace("Bad", seed_data["outsider"], timezone="Mars/Olympus")

    def test_create_requires_name(self, seed_data):
        with pytest.raises(ValidationError):
            workspace_service.create_workspace("   ", seed_data["outsider"])

    def test_list_includes_owned_and_member_workspaces(self, seed_data):
        own = workspace_service.create_workspace("Assistant's Own", seed_data["assistant"])
        ids = [w.id for w in workspace_service.list_workspaces_for_user(seed_data["assistant"])]

        assert sorted(ids) == sorted([own.id, seed_data["workspace_id"]])
        assert len(ids) == len(set(ids))

    def test_outsider_sees_nothing(self, seed_data):
        assert workspace_service.list_workspaces_for_user(seed_data["outsider"]) == []

    def test_update_is_owner_only(self, seed_data):
        with pytest.raises(NotAuthorized):
            workspace_service.update_workspace(seed_data["workspace_id"], seed_data["assistant"], name="Mine")

        workspace = workspace_service.update_workspace(
            seed_data["workspace_id"], seed_data["owner"], name="Renamed", timezone="Asia/Tokyo"
        )
        assert workspace.name == "Renamed"
        assert workspace.timezone == "Asia/Tokyo"

    def test_delete_cascades(self, seed_data):
        account_service.create_note(seed_data["bank_id"], seed_data["owner"], "Statement", "<p>ok</p>")
        reminder = account_service.create_reminder(seed_data["bank_id"], seed_data["owner"], "Pay", "2030-01-01T09:00:00")
        db.session.add(ReminderNotification(
            reminder_id=reminder.id, user_id=seed_data["owner_id"], due_at=reminder.date,
        ))
        db.session.commit()
        workspace_id = seed_data["workspace_id"]

        workspace_service.delete_workspace(workspace_id, seed_data["owner"])

        assert db.session.get(Workspace, workspace_id) is None
        assert Account.query.filter_by(workspace_id=workspace_id).count() == 0
        assert Reminder.query.filter_by(workspace_id=workspace_id).count() == 0
        assert ReminderNotification.query.count() == 0
        assert Note.query.count() == 0
        assert AccountAssignment.query.count() == 0
        assert WorkspaceMember.query.filter_by(workspace_id=workspace_id).count() == 0
        assert WorkspaceInvitation.query.filter_by(workspace_id=workspace_id).count() == 0

        event = AuditEvent.query.filter_by(action="workspace.deleted").one()
        assert event.workspace_id is None
        assert event.metadata_["workspace_id"] == workspace_id

    def test_assistant_cannot_delete(self, seed_data):
        with pytest.raises(NotAuthorized):
            workspace_service.delete_workspace(seed_data["workspace_id"], seed_data["assistant"])


class TestRemoveMember:
    """workspace_service.remove_member"""

    def test_owner_removes_assistant(self, seed_data):
        workspace_service.remove_member(seed_data["workspace_id"], seed_data["assistant_id"], seed_data["owner"])

        assert workspace_service.get_membership(seed_data["workspace_id"], seed_data["assistant_id"]) is None
        assert AccountAssignment.query.filter_by(user_id=seed_data["assistant_id"]).count() == 0
        assert AuditEvent.query.filter_by(action="member.removed").count() == 1

    def test_last_owner_cannot_be_removed(self, seed_data):
        with pytest.raises(CannotRemoveLastOwner):
            workspace_service.remove_member(seed_data["workspace_id"], seed_data["owner_id"], seed_data["owner"])

        membership = workspace_service.get_membership(seed_data["workspace_id"], seed_data["owner_id"])
        assert membership is not None
        assert membership.role == "owner"

    def test_owner_can_leave_when_another_owner_exists(self, seed_data):
        membership = workspace_service.get_membership(seed_data["workspace_id"], seed_data["assistant_id"])
        membership.role = "owner"
        db.session.commit()

        workspace_service.remove_member(seed_data["workspace_id"], seed_data["owner_id"], seed_data["owner"])

        workspace = db.session.get(Workspace, seed_data["workspace_id"])
        assert workspace.owner_id == seed_data["assistant_id"]
        owners = WorkspaceMember.query.filter_by(workspace_id=workspace.id, role="owner").all()
        assert [m.user_id for m in owners] == [seed_data["assistant_id"]]

    def test_assistant_cannot_remove(self, seed_data):
        with pytest.raises(NotAuthorized):
            workspace_service.remove_member(seed_data["workspace_id"], seed_data["owner_id"], seed_data["assistant"])

    def test_non_member_target(self, seed_data):
        with pytest.raises(NotFound):
            workspace_service.remove_member(seed_data["workspace_id"], seed_data["outsider_id"], seed_data["owner"])


class TestWorkspaceRoutes:
    """HTTP surface + tenant middleware."""

    def test_list_and_create(self, client, login, seed_data):
        login("owner@example.com")
        resp = client.get("/api/workspaces")
        assert resp.status_code == 200
        assert [w["id"] for w in resp.get_json()] == [seed_data["workspace_id"]]

        resp = client.post("/api/workspaces", json={"name": "Second", "timezone": "Europe/London"})
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["timezone"] == "Europe/London"
        assert body["members"][0]["role"] == "owner"

    def test_detail_includes_my_role(self, client, login, seed_data):
        login("assistant@example.com")
        resp = client.get(f"/api/workspaces/{seed_data['workspace_id']}")
        assert resp.status_code == 200
        assert resp.get_json()["role"] == "assistant"

    def test_unknown_workspace_is_404(self, client, login, seed_data):
        login("owner@example.com")
        resp = client.get("/api/workspaces/does-not-exist")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"

    def test_non_member_is_403(self, client, login, seed_data):
        login("outsider@example.com")
        resp = client.get(f"/api/workspaces/{seed_data['workspace_id']}")
        assert resp.status_code == 403

    def test_anonymous_is_401(self, client, seed_data):
        resp = client.get(f"/api/workspaces/{seed_data['workspace_id']}")
        assert resp.status_code == 401

    def test_patch_bad_timezone_is_400(self, client, login, seed_data):
        login("owner@example.com")
        resp = client.patch(f"/api/workspaces/{seed_data['workspace_id']}", json={"timezone": "Nowhere/Land"})
        assert resp.status_code == 400

    def test_assistant_cannot_delete(self, client, login, seed_data):
        login("assistant@example.com")
        resp = client.delete(f"/api/workspaces/{seed_data['workspace_id']}")
        assert resp.status_code == 403

    def test_members_list(self, client, login, seed_data):
        login("assistant@example.com")
        resp = client.get(f"/api/workspaces/{seed_data['workspace_id']}/members")
        assert resp.status_code == 200
        emails = sorted(m["email"] for m in resp.get_json())
        assert emails == ["assistant@example.com", "owner@example.com"]

    def test_remove_last_owner_is_409(self, client, login, seed_data):
        login("owner@example.com")
        resp = client.delete(f"/api/workspaces/{seed_data['workspace_id']}/members/{seed_data['owner_id']}")
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "cannot_remove_last_owner"

    def test_remove_assistant(self, client, login, seed_data):
        login("owner@example.com")
        resp = client.delete(f"/api/workspaces/{seed_data['workspace_id']}/members/{seed_data['assistant_id']}")
        assert resp.status_code == 200
        assert resp.get_json() == {"success": True}

    def test_activity_feed(self, client, login, seed_data):
        workspace_service.update_workspace(seed_data["workspace_id"], seed_data["owner"], name="Renamed")
        login("owner@example.com")
        resp = client.get(f"/api/workspaces/{seed_data['workspace_id']}/activity")
        assert resp.status_code == 200
        assert resp.get_json()[0]["action"] == "workspace.updated"
