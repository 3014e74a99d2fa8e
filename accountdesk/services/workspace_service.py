"""Workspace service — workspace CRUD, membership lookup, member removal.

require_membership() is the one place that turns (workspace, user, role
predicate) into NotFound / NotAuthorized; every other service calls it
before touching workspace-scoped rows.
"""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import aliased

from accountdesk.errors import CannotRemoveLastOwner, NotAuthorized, NotFound, ValidationError
from accountdesk.extensions import db
from accountdesk.models.account import Account, AccountAssignment
from accountdesk.models.audit import AuditEvent
from accountdesk.models.invitation import WorkspaceInvitation
from accountdesk.models.note import Note
from accountdesk.models.reminder import Reminder
from accountdesk.models.reminder_notification import ReminderNotification
from accountdesk.models.vault import VaultEntry
from accountdesk.models.workspace import Workspace, WorkspaceMember
from accountdesk.roles import Role, can_manage_members, can_manage_workspace
from accountdesk.services.storage import record_event, transaction

logger = logging.getLogger(__name__)


def validate_timezone(name):
    """Return a valid IANA zone name; blank means the configured default."""
    name = (name or "").strip() or current_app.config.get("DEFAULT_TIMEZONE", "UTC")
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone '{name}'.")
    return name


def get_workspace(workspace_id):
    workspace = db.session.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFound("Workspace not found.")
    return workspace


def get_membership(workspace_id, user_id):
    return WorkspaceMember.query.filter_by(
        workspace_id=workspace_id, user_id=user_id
    ).first()


def require_membership(workspace_id, user, predicate=None):
    """Load the workspace and the user's membership, enforcing `predicate(role)`.

    Returns:
        tuple: (Workspace, WorkspaceMember)

    Raises:
        NotFound: workspace does not exist.
        NotAuthorized: user is not a member, or their role fails the predicate.
    """
    workspace = get_workspace(workspace_id)
    membership = get_membership(workspace_id, user.id)
    if membership is None:
        raise NotAuthorized("You are not a member of this workspace.")
    if predicate is not None and not predicate(membership.role):
        raise NotAuthorized()
    return workspace, membership


def create_workspace(name, actor, timezone=None):
    """Create a workspace owned by `actor`, who becomes its first owner member."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Workspace name is required.")
    timezone = validate_timezone(timezone)

    with transaction():
        workspace = Workspace(name=name, owner_id=actor.id, timezone=timezone)
        db.session.add(workspace)
        db.session.flush()
        db.session.add(
            WorkspaceMember(
                workspace_id=workspace.id, user_id=actor.id, role=Role.OWNER.value
            )
        )
        record_event(workspace.id, actor.id, "workspace.created", name=name)

    logger.info("Workspace %s created by %s", workspace.id, actor.id)
    return workspace


def list_workspaces_for_user(user):
    """Workspaces the user owns or belongs to, newest first, no duplicates."""
    member_of = select(WorkspaceMember.workspace_id).where(
        WorkspaceMember.user_id == user.id
    )
    return (
        Workspace.query
        .filter(or_(Workspace.owner_id == user.id, Workspace.id.in_(member_of)))
        .order_by(Workspace.created_at.desc(), Workspace.name)
        .all()
    )


def update_workspace(workspace_id, actor, name=None, timezone=None):
    with transaction():
        workspace, _ = require_membership(workspace_id, actor, can_manage_workspace)
        changes = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Workspace name is required.")
            workspace.name = name
            changes["name"] = name
        if timezone is not None:
            workspace.timezone = validate_timezone(timezone)
            changes["timezone"] = workspace.timezone
        if changes:
            record_event(workspace.id, actor.id, "workspace.updated", **changes)
    return workspace


def delete_workspace(workspace_id, actor):
    """Delete a workspace and everything under it.

    Children are removed with explicit bulk deletes so the cascade does not
    depend on the database enforcing ON DELETE CASCADE (SQLite does not by
    default). Audit history is kept, detached from the workspace.
    """
    with transaction():
        workspace, _ = require_membership(workspace_id, actor, can_manage_workspace)
        account_ids = select(Account.id).where(Account.workspace_id == workspace_id)
        reminder_ids = select(Reminder.id).where(Reminder.workspace_id == workspace_id)

        db.session.execute(
            delete(ReminderNotification)
            .where(ReminderNotification.reminder_id.in_(reminder_ids))
            .execution_options(synchronize_session=False)
        )
        for model in (Note, VaultEntry, AccountAssignment):
            db.session.execute(
                delete(model)
                .where(model.account_id.in_(account_ids))
                .execution_options(synchronize_session=False)
            )
        for model in (Reminder, Account, WorkspaceInvitation, WorkspaceMember):
            db.session.execute(
                delete(model)
                .where(model.workspace_id == workspace_id)
                .execution_options(synchronize_session=False)
            )
        db.session.execute(
            update(AuditEvent)
            .where(AuditEvent.workspace_id == workspace_id)
            .values(workspace_id=None)
            .execution_options(synchronize_session=False)
        )
        record_event(
            None, actor.id, "workspace.deleted",
            workspace_id=workspace_id, name=workspace.name,
        )
        db.session.delete(workspace)

    logger.info("Workspace %s deleted by %s", workspace_id, actor.id)


def list_members(workspace_id, actor):
    require_membership(workspace_id, actor)
    return (
        WorkspaceMember.query
        .filter_by(workspace_id=workspace_id)
        .order_by(WorkspaceMember.created_at, WorkspaceMember.id)
        .all()
    )


def remove_member(workspace_id, user_id, actor):
    """Remove a member from a workspace.

    The delete is one conditional statement: an owner row is only deleted
    while another owner row exists. The workspace row is locked first
    (SELECT ... FOR UPDATE, a no-op on SQLite) so two owners removing each
    other concurrently cannot both succeed.

    Raises:
        NotAuthorized: actor is not an owner.
        NotFound: user_id is not a member.
        CannotRemoveLastOwner: user_id is the only owner.
    """
    with transaction():
        require_membership(workspace_id, actor, can_manage_members)
        workspace = db.session.execute(
            select(Workspace).where(Workspace.id == workspace_id).with_for_update()
        ).scalar_one()

        target = get_membership(workspace_id, user_id)
        if target is None:
            raise NotFound("That user is not a member of this workspace.")
        removed_role = target.role

        other = aliased(WorkspaceMember)
        owner_count = (
            select(func.count(other.id))
            .where(other.workspace_id == workspace_id, other.role == Role.OWNER.value)
            .scalar_subquery()
        )
        result = db.session.execute(
            delete(WorkspaceMember)
            .where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
                or_(WorkspaceMember.role != Role.OWNER.value, owner_count > 1),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CannotRemoveLastOwner()
        db.session.expunge(target)

        # The removed user no longer sees this workspace's accounts.
        db.session.execute(
            delete(AccountAssignment)
            .where(
                AccountAssignment.user_id == user_id,
                AccountAssignment.account_id.in_(
                    select(Account.id).where(Account.workspace_id == workspace_id)
                ),
            )
            .execution_options(synchronize_session=False)
        )

        if workspace.owner_id == user_id:
            successor = (
                WorkspaceMember.query
                .filter_by(workspace_id=workspace_id, role=Role.OWNER.value)
                .order_by(WorkspaceMember.created_at, WorkspaceMember.id)
                .first()
            )
            if successor is not None:
                workspace.owner_id = successor.user_id

        record_event(
            workspace_id, actor.id, "member.removed",
            user_id=user_id, role=removed_role,
        )

    logger.info("User %s removed from workspace %s by %s", user_id, workspace_id, actor.id)
