"""Tests for workspace invitations — create, list, accept, expire.

Covers:
- Owner invites; re-inviting refreshes the same pending row
- Assistants and outsiders cannot invite
- Malformed email, unknown role, existing member
- Pending list is case-insensitive and hides expired/accepted rows
- Accept creates exactly one membership with the invited role
- Double accept, stale concurrent accept, logical expiry, email mismatch
- Accepting into a workspace you already belong to keeps your role
- Expiry sweep
- HTTP routes: invite, acceptance link for anonymous users, accept
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import update

from accountdesk.errors import (
    InvalidEmail,
    InvitationAlreadyResolved,
    InvitationExpired,
    InvitationNotFound,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from accountdesk.extensions import db
from accountdesk.models.audit import AuditEvent
from accountdesk.models.invitation import WorkspaceInvitation
from accountdesk.models.user import User
from accountdesk.models.workspace import WorkspaceMember
from accountdesk.services import invitation_service
from accountdesk.utils import as_utc, utcnow


def _membership(workspace_id, user_id):
    return WorkspaceMember.query.filter_by(workspace_id=workspace_id, user_id=user_id).first()


class TestCreateInvitation:
    """invitation_service.create_invitation"""

    def test_owner_creates_pending_invitation(self, seed_data):
        now = utcnow()
        invitation = invitation_service.create_invitation(
            seed_data["workspace_id"], "Fresh@Example.com ", "assistant", seed_data["owner"], now=now
        )

        assert invitation.email == "fresh@example.com"
        assert invitation.status == "pending"
        assert invitation.role == "assistant"
        assert invitation.invited_by == seed_data["owner_id"]
        assert as_utc(invitation.expires_at) == now + timedelta(days=7)

        event = AuditEvent.query.filter_by(action="invitation.created").first()
        assert event is not None
        assert event.metadata_["email"] == "fresh@example.com"

    def test_reinvite_refreshes_existing_pending_row(self, seed_data):
        later = utcnow() + timedelta(days=3)
        invitation = invitation_service.create_invitation(
            seed_data["workspace_id"], "new@example.com", "owner", seed_data["owner"], now=later
        )

        assert invitation.id == seed_data["pending_invite_id"]
        assert invitation.role == "owner"
        assert as_utc(invitation.expires_at) == later + timedelta(days=7)
        assert WorkspaceInvitation.query.filter_by(email="new@example.com").count() == 1

    def test_invitation_link_format(self, seed_data):
        invitation = db.session.get(WorkspaceInvitation, seed_data["pending_invite_id"])
        link = invitation_service.invitation_link(invitation)
        assert link == f"http://localhost:5000/invitations/{invitation.id}"

    def test_assistant_cannot_invite(self, seed_data):
        with pytest.raises(NotAuthorized):
            invitation_service.create_invitation(
                seed_data["workspace_id"], "x@example.com", "assistant", seed_data["assistant"]
            )

    def test_outsider_cannot_invite(self, seed_data):
        with pytest.raises(NotAuthorized):
            invitation_service.create_invitation(
                seed_data["workspace_id"], "x@example.com", "assistant", seed_data["outsider"]
            )

    def test_unknown_workspace(self, seed_data):
        with pytest.raises(NotFound):
            invitation_service.create_invitation(
                "no-such-workspace", "x@example.com", "assistant", seed_data["owner"]
            )

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b", "two words@example.com"])
    def test_malformed_email(self, seed_data, email):
        with pytest.raises(InvalidEmail):
            invitation_service.create_invitation(
                seed_data["workspace_id"], email, "assistant", seed_data["owner"]
            )

    def test_unknown_role(self, seed_data):
        with pytest.raises(ValidationError):
            invitation_service.create_invitation(
                seed_data["workspace_id"], "x@example.com", "admin", seed_data["owner"]
            )

    def test_existing_member_cannot_be_invited(self, seed_data):
        with pytest.raises(ValidationError):
            invitation_service.create_invitation(
                seed_data["workspace_id"], "ASSISTANT@example.com", "owner", seed_data["owner"]
            )


class TestListPendingInvitations:
    """invitation_service.list_pending_invitations"""

    def test_case_insensitive_match(self, seed_data):
        result = invitation_service.list_pending_invitations("NEW@Example.COM")
        assert [inv.id for inv in result] == [seed_data["pending_invite_id"]]
        assert result[0].to_dict()["workspace_name"] == "Acme Household"

    def test_expired_invitations_are_hidden(self, seed_data):
        assert invitation_service.list_pending_invitations("late@example.com") == []

    def test_accepted_invitations_are_hidden(self, seed_data):
        assert invitation_service.list_pending_invitations("assistant@example.com") == []

    def test_invalid_email_lists_nothing(self, seed_data):
        assert invitation_service.list_pending_invitations("nope") == []

    def test_create_then_list_round_trip(self, seed_data):
        created = invitation_service.create_invitation(
            seed_data["workspace_id"], "roundtrip@example.com", "owner", seed_data["owner"]
        )
        listed = invitation_service.list_pending_invitations("roundtrip@example.com")
        assert len(listed) == 1
        assert listed[0].id == created.id
        assert listed[0].role == "owner"
        assert listed[0].workspace_id == seed_data["workspace_id"]


class TestAcceptInvitation:
    """invitation_service.accept_invitation"""

    def test_accept_creates_membership(self, seed_data):
        membership = invitation_service.accept_invitation(
            seed_data["outsider_invite_id"], seed_data["outsider"]
        )

        assert membership.role == "assistant"
        assert membership.workspace_id == seed_data["workspace_id"]
        invitation = db.session.get(WorkspaceInvitation, seed_data["outsider_invite_id"])
        assert invitation.status == "accepted"
        assert invitation.accepted_by == seed_data["outsider_id"]
        assert invitation.accepted_at is not None

    def test_double_accept_creates_one_membership(self, seed_data):
        invitation_service.accept_invitation(seed_data["outsider_invite_id"], seed_data["outsider"])

        with pytest.raises(InvitationAlreadyResolved):
            invitation_service.accept_invitation(
                seed_data["outsider_invite_id"], seed_data["outsider"]
            )

        assert WorkspaceMember.query.filter_by(
            workspace_id=seed_data["workspace_id"], user_id=seed_data["outsider_id"]
        ).count() == 1

    def test_stale_concurrent_accept_is_refused(self, seed_data):
        """The caller read "pending", but another accept landed first."""
        invitation = db.session.get(WorkspaceInvitation, seed_data["outsider_invite_id"])
        assert invitation.status == "pending"

        # A concurrent writer flips the row behind the ORM's back.
        db.session.execute(
            update(WorkspaceInvitation)
            .where(WorkspaceInvitation.id == invitation.id)
            .values(status="accepted", accepted_by=seed_data["owner_id"])
            .execution_options(synchronize_session=False)
        )
        assert invitation.status == "pending"

        with pytest.raises(InvitationAlreadyResolved):
            invitation_service.accept_invitation(invitation.id, seed_data["outsider"])

        assert _membership(seed_data["workspace_id"], seed_data["outsider_id"]) is None

    def test_logical_expiry_boundary(self, seed_data):
        invitation = db.session.get(WorkspaceInvitation, seed_data["outsider_invite_id"])
        expires_at = as_utc(invitation.expires_at)

        with pytest.raises(InvitationExpired):
            invitation_service.accept_invitation(
                invitation.id, seed_data["outsider"], now=expires_at + timedelta(seconds=1)
            )
        assert _membership(seed_data["workspace_id"], seed_data["outsider_id"]) is None

        membership = invitation_service.accept_invitation(
            invitation.id, seed_data["outsider"], now=expires_at - timedelta(seconds=1)
        )
        assert membership is not None

    def test_stored_pending_but_past_expiry(self, seed_data, app):
        invitation = db.session.get(WorkspaceInvitation, seed_data["stale_invite_id"])
        assert invitation.status == "pending"
        assert invitation.effective_status() == "expired"

    def test_email_mismatch(self, seed_data):
        with pytest.raises(NotAuthorized):
            invitation_service.accept_invitation(
                seed_data["pending_invite_id"], seed_data["outsider"]
            )

    def test_unknown_invitation(self, seed_data):
        with pytest.raises(InvitationNotFound):
            invitation_service.accept_invitation("does-not-exist", seed_data["outsider"])

    def test_accepting_when_already_member_keeps_role(self, seed_data):
        now = utcnow()
        invitation = WorkspaceInvitation(
            workspace_id=seed_data["workspace_id"],
            email="owner@example.com",
            role="assistant",
            status="pending",
            invited_by=seed_data["owner_id"],
            created_at=now,
            expires_at=now + timedelta(days=7),
        )
        db.session.add(invitation)
        db.session.commit()

        membership = invitation_service.accept_invitation(invitation.id, seed_data["owner"])

        assert membership.role == "owner"
        assert WorkspaceMember.query.filter_by(
            workspace_id=seed_data["workspace_id"], user_id=seed_data["owner_id"]
        ).count() == 1

    def test_accept_is_audited(self, seed_data):
        invitation_service.accept_invitation(seed_data["outsider_invite_id"], seed_data["outsider"])
        event = AuditEvent.query.filter_by(action="invitation.accepted").first()
        assert event.actor_user_id == seed_data["outsider_id"]
        assert event.metadata_["membership_created"] is True


class TestExpireStaleInvitations:
    """invitation_service.expire_stale_invitations"""

    def test_sweep_marks_only_past_due_pending_rows(self, seed_data):
        assert invitation_service.expire_stale_invitations() == 1

        stale = db.session.get(WorkspaceInvitation, seed_data["stale_invite_id"])
        assert stale.status == "expired"
        assert db.session.get(WorkspaceInvitation, seed_data["pending_invite_id"]).status == "pending"
        assert db.session.get(WorkspaceInvitation, seed_data["accepted_invite_id"]).status == "accepted"

    def test_expired_row_frees_the_pending_slot(self, seed_data):
        invitation_service.expire_stale_invitations()
        fresh = invitation_service.create_invitation(
            seed_data["workspace_id"], "late@example.com", "assistant", seed_data["owner"]
        )
        assert fresh.id != seed_data["stale_invite_id"]

    def test_accepting_swept_invitation_is_expired(self, seed_data):
        late = User(email="late@example.com", password_hash="x")
        db.session.add(late)
        db.session.commit()

        invitation_service.expire_stale_invitations()
        with pytest.raises(InvitationExpired):
            invitation_service.accept_invitation(seed_data["stale_invite_id"], late)


class TestInvitationRoutes:
    """HTTP surface for invitations."""

    @patch("accountdesk.services.invitation_service.send_email")
    def test_owner_invites_and_email_is_sent(self, mock_send, client, login, seed_data):
        login("owner@example.com")
        resp = client.post(
            f"/api/workspaces/{seed_data['workspace_id']}/invitations",
            json={"email": "friend@example.com", "role": "assistant"},
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["email"] == "friend@example.com"
        assert body["link"].endswith(f"/invitations/{body['id']}")

        mock_send.assert_called_once()
        kwargs = mock_send.call_args.kwargs
        assert kwargs["to"] == "friend@example.com"
        assert kwargs["template"] == "emails/workspace_invitation.html"
        assert kwargs["context"]["invitation_link"] == body["link"]
        assert kwargs["context"]["expires_days"] == 7

    @patch("accountdesk.services.invitation_service.send_email")
    def test_assistant_cannot_invite(self, mock_send, client, login, seed_data):
        login("assistant@example.com")
        resp = client.post(
            f"/api/workspaces/{seed_data['workspace_id']}/invitations",
            json={"email": "friend@example.com"},
        )
        assert resp.status_code == 403
        mock_send.assert_not_called()

    @patch("accountdesk.services.invitation_service.send_email")
    def test_invalid_email_is_400(self, mock_send, client, login, seed_data):
        login("owner@example.com")
        resp = client.post(
            f"/api/workspaces/{seed_data['workspace_id']}/invitations",
            json={"email": "nope"},
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "invalid_email"

    def test_anonymous_link_parks_invitation_in_session(self, client, seed_data):
        invitation_id = seed_data["outsider_invite_id"]
        resp = client.get(f"/invitations/{invitation_id}")

        assert resp.status_code == 401
        assert resp.get_json()["pending_invitation"] == invitation_id
        with client.session_transaction() as sess:
            assert sess["pending_invitation"] == invitation_id

        resp = client.post(
            "/auth/login", json={"email": "outsider@example.com", "password": "password123"}
        )
        assert resp.status_code == 200
        assert resp.get_json()["pending_invitation"] == invitation_id

    def test_signed_in_user_sees_invitation(self, client, login, seed_data):
        login("outsider@example.com")
        resp = client.get(f"/invitations/{seed_data['outsider_invite_id']}")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["email_matches"] is True
        assert body["status"] == "pending"

    def test_list_my_invitations(self, client, login, seed_data):
        login("outsider@example.com")
        resp = client.get("/api/invitations")
        assert resp.status_code == 200
        assert [inv["id"] for inv in resp.get_json()] == [seed_data["outsider_invite_id"]]

    def test_accept_route_then_repeat(self, client, login, seed_data):
        login("outsider@example.com")
        url = f"/invitations/{seed_data['outsider_invite_id']}/accept"

        resp = client.post(url)
        assert resp.status_code == 200
        assert resp.get_json()["membership"]["role"] == "assistant"

        resp = client.post(url)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "invitation_already_resolved"

    def test_accept_expired_is_410(self, client, login, seed_data, db_session):
        invitation = db.session.get(WorkspaceInvitation, seed_data["outsider_invite_id"])
        invitation.expires_at = utcnow() - timedelta(minutes=1)
        db.session.commit()

        login("outsider@example.com")
        resp = client.post(f"/invitations/{seed_data['outsider_invite_id']}/accept")
        assert resp.status_code == 410

    def test_accept_someone_elses_invitation_is_403(self, client, login, seed_data):
        login("outsider@example.com")
        resp = client.post(f"/invitations/{seed_data['pending_invite_id']}/accept")
        assert resp.status_code == 403

    def test_accept_requires_login(self, client, seed_data):
        resp = client.post(f"/invitations/{seed_data['outsider_invite_id']}/accept")
        assert resp.status_code == 401
