"""Invitation service — create, list, accept and expire workspace invitations.

Handles the full lifecycle of a workspace invitation:
- create: owner invites an email with a role (one live invitation per
  workspace + email; re-inviting refreshes the existing one)
- list: pending, unexpired invitations for an email address
- accept: compare-and-swap pending -> accepted and add the membership in
  the same transaction
- expire: persist the "expired" status for invitations past expires_at

The acceptance link is {APP_BASE_URL}/invitations/<invitation_id> and is
embedded in sent emails, so its shape must not change.
"""

import logging
import re
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.orm import joinedload

from accountdesk.errors import (
    InvalidEmail,
    InvitationAlreadyResolved,
    InvitationExpired,
    InvitationNotFound,
    NotAuthorized,
    ValidationError,
)
from accountdesk.extensions import db
from accountdesk.models.invitation import WorkspaceInvitation
from accountdesk.models.user import User
from accountdesk.models.workspace import WorkspaceMember
from accountdesk.roles import Role, can_manage_members
from accountdesk.services import workspace_service
from accountdesk.services.email_service import send_email
from accountdesk.services.storage import record_event, transaction
from accountdesk.utils import utcnow

logger = logging.getLogger(__name__)

# Simple email regex — not exhaustive, just sanity-check
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email):
    """Lower-case and strip an address, raising InvalidEmail if malformed."""
    email = (email or "").strip().lower()
    if not email or not EMAIL_RE.match(email):
        raise InvalidEmail()
    return email


def invitation_link(invitation):
    base_url = current_app.config["APP_BASE_URL"].rstrip("/")
    return f"{base_url}/invitations/{invitation.id}"


def create_invitation(workspace_id, email, role, actor, now=None):
    """Invite `email` into a workspace.

    Args:
        workspace_id: Workspace UUID string.
        email: Address to invite (normalized to lower-case).
        role: "owner" or "assistant" (or a Role).
        actor: The inviting User; must be an owner of the workspace.
        now: Override the clock (tests).

    Returns:
        WorkspaceInvitation: the pending invitation. If one was already
        pending for this email, it is refreshed in place (same id, new
        role and expiry) instead of a second one being created.

    Raises:
        NotFound, NotAuthorized, InvalidEmail, ValidationError
    """
    now = now or utcnow()
    expires_days = current_app.config.get("INVITATION_EXPIRY_DAYS", 7)

    with transaction():
        workspace_service.require_membership(workspace_id, actor, can_manage_members)
        email = normalize_email(email)
        role = Role.parse(role)

        already_member = (
            WorkspaceMember.query
            .join(User, User.id == WorkspaceMember.user_id)
            .filter(WorkspaceMember.workspace_id == workspace_id, User.email == email)
            .first()
        )
        if already_member is not None:
            raise ValidationError(f"{email} is already a member of this workspace.")

        invitation = (
            WorkspaceInvitation.query
            .filter_by(workspace_id=workspace_id, email=email, status="pending")
            .with_for_update()
            .first()
        )
        if invitation is None:
            invitation = WorkspaceInvitation(
                workspace_id=workspace_id,
                email=email,
                status="pending",
            )
            db.session.add(invitation)
            action = "invitation.created"
        else:
            action = "invitation.renewed"

        invitation.role = role.value
        invitation.invited_by = actor.id
        invitation.created_at = now
        invitation.expires_at = now + timedelta(days=expires_days)
        db.session.flush()

        record_event(
            workspace_id, actor.id, action,
            invitation_id=invitation.id, email=email, role=role.value,
        )

    logger.info("%s: %s invited to workspace %s as %s", action, email, workspace_id, role.value)
    return invitation


def send_invitation_email(invitation, inviter):
    """Email the acceptance link (best effort, delivery runs in the background)."""
    workspace = invitation.workspace
    send_email(
        to=invitation.email,
        subject=f"You're invited to join {workspace.name}",
        template="emails/workspace_invitation.html",
        context={
            "workspace_name": workspace.name,
            "inviter_email": inviter.email,
            "role": invitation.role,
            "invitation_link": invitation_link(invitation),
            "expires_days": current_app.config.get("INVITATION_EXPIRY_DAYS", 7),
        },
    )


def list_pending_invitations(email, now=None):
    """Pending, unexpired invitations addressed to `email` (case-insensitive)."""
    now = now or utcnow()
    try:
        email = normalize_email(email)
    except InvalidEmail:
        return []
    return (
        WorkspaceInvitation.query
        .options(joinedload(WorkspaceInvitation.workspace))
        .filter(func.lower(WorkspaceInvitation.email) == email)
        .filter(WorkspaceInvitation.status == "pending")
        .filter(WorkspaceInvitation.expires_at > now)
        .order_by(WorkspaceInvitation.created_at)
        .all()
    )


def get_invitation(invitation_id):
    invitation = db.session.get(WorkspaceInvitation, invitation_id)
    if invitation is None:
        raise InvitationNotFound()
    return invitation


def accept_invitation(invitation_id, actor, now=None):
    """Accept an invitation on behalf of the signed-in `actor`.

    The status flip is a conditional UPDATE (... WHERE status = 'pending'
    AND expires_at > now); only the caller whose UPDATE hits the row goes
    on to create the membership, in the same transaction. A concurrent or
    repeated accept therefore fails with InvitationAlreadyResolved instead
    of creating a second membership.

    Returns:
        WorkspaceMember: the new membership, or the existing one if the
        user already belonged to the workspace (kept as-is).

    Raises:
        InvitationNotFound, NotAuthorized (email mismatch),
        InvitationAlreadyResolved, InvitationExpired, StorageError
    """
    now = now or utcnow()

    with transaction():
        invitation = get_invitation(invitation_id)

        if invitation.email.lower() != (actor.email or "").lower():
            raise NotAuthorized("This invitation was sent to a different email address.")
        if invitation.status == "accepted":
            raise InvitationAlreadyResolved()
        if invitation.is_expired(now):
            raise InvitationExpired()

        result = db.session.execute(
            update(WorkspaceInvitation)
            .where(
                WorkspaceInvitation.id == invitation.id,
                WorkspaceInvitation.status == "pending",
                WorkspaceInvitation.expires_at > now,
            )
            .values(status="accepted", accepted_at=now, accepted_by=actor.id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvitationAlreadyResolved()

        membership = workspace_service.get_membership(invitation.workspace_id, actor.id)
        created = membership is None
        if created:
            membership = WorkspaceMember(
                workspace_id=invitation.workspace_id,
                user_id=actor.id,
                role=invitation.role,
            )
            db.session.add(membership)

        record_event(
            invitation.workspace_id, actor.id, "invitation.accepted",
            invitation_id=invitation.id, role=invitation.role,
            membership_created=created,
        )

    logger.info("Invitation %s accepted by %s", invitation_id, actor.id)
    return membership


def expire_stale_invitations(now=None):
    """Persist status="expired" on pending invitations past expires_at.

    Expiry is already enforced at read time; this keeps the stored status
    honest for reporting and frees the (workspace, email) pending slot.

    Returns:
        int: number of invitations marked expired.
    """
    now = now or utcnow()
    with transaction():
        result = db.session.execute(
            update(WorkspaceInvitation)
            .where(
                WorkspaceInvitation.status == "pending",
                WorkspaceInvitation.expires_at <= now,
            )
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
    return result.rowcount
