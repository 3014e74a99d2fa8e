"""Account service — accounts, assignments, notes, reminders and vault entries.

Visibility rules (see accountdesk.roles):
- owners see every account in the workspace
- assistants only see accounts assigned to them; any other account is
  reported as NotFound so its existence is not leaked

Creating, deleting and assigning accounts is owner-only. Editing account
details, notes, reminders and vault entries is open to both roles on
visible accounts.

Note content is sanitized with bleach against a rich-text allow-list;
titles are reduced to plain text. Reminder dates without an offset are
read in the workspace timezone and stored in UTC.
"""

import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import bleach
from sqlalchemy import select

from accountdesk.errors import NotFound, ValidationError
from accountdesk.extensions import db
from accountdesk.models.account import Account, AccountAssignment
from accountdesk.models.note import Note
from accountdesk.models.reminder import Reminder
from accountdesk.models.vault import VaultEntry
from accountdesk.models.workspace import WorkspaceMember
from accountdesk.roles import can_edit_accounts, can_manage_workspace, can_view_all_accounts
from accountdesk.services import workspace_service
from accountdesk.services.storage import record_event, transaction
from accountdesk.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

NOTE_TAGS = [
    "p", "br", "strong", "b", "em", "i", "u", "s", "ul", "ol", "li",
    "a", "h1", "h2", "h3", "blockquote", "code", "pre",
]
NOTE_ATTRIBUTES = {"a": ["href", "title", "rel"]}
NOTE_PROTOCOLS = ["http", "https", "mailto"]


def _plain(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(text, tags=[], strip=True).strip()


def _rich(text):
    return bleach.clean(
        text or "",
        tags=NOTE_TAGS,
        attributes=NOTE_ATTRIBUTES,
        protocols=NOTE_PROTOCOLS,
        strip=True,
    ).strip()


def _required(value, label):
    value = _plain(value)
    if not value:
        raise ValidationError(f"{label} is required.")
    return value


# ── Accounts ─────────────────────────────────────────────


def _visible(query, membership):
    """Restrict an Account query to what `membership` may see."""
    if can_view_all_accounts(membership.role):
        return query
    assigned = select(AccountAssignment.account_id).where(
        AccountAssignment.user_id == membership.user_id
    )
    return query.filter(Account.id.in_(assigned))


def _load_account(account_id, actor, predicate=can_edit_accounts):
    """Account plus the actor's membership, enforcing visibility and `predicate`."""
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFound("Account not found.")
    _, membership = workspace_service.require_membership(
        account.workspace_id, actor, predicate
    )
    if not can_view_all_accounts(membership.role) and actor.id not in account.assigned_to:
        raise NotFound("Account not found.")
    return account, membership


def _check_assignees(workspace_id, user_ids):
    user_ids = sorted(set(user_ids or []))
    if not user_ids:
        return user_ids
    members = {
        m.user_id for m in WorkspaceMember.query.filter(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id.in_(user_ids),
        )
    }
    missing = [u for u in user_ids if u not in members]
    if missing:
        raise ValidationError(
            f"Not members of this workspace: {', '.join(missing)}"
        )
    return user_ids


def list_accounts(workspace_id, actor):
    _, membership = workspace_service.require_membership(workspace_id, actor)
    query = Account.query.filter(Account.workspace_id == workspace_id)
    return _visible(query, membership).order_by(Account.name).all()


def list_accounts_for_user(user):
    """Every account the user can see, across all their workspaces."""
    accounts = []
    for workspace in workspace_service.list_workspaces_for_user(user):
        membership = workspace_service.get_membership(workspace.id, user.id)
        if membership is None:
            continue
        query = Account.query.filter(Account.workspace_id == workspace.id)
        accounts.extend(_visible(query, membership).order_by(Account.name).all())
    return accounts


def list_assigned_accounts(user):
    """Accounts explicitly assigned to the user, in any workspace they still belong to."""
    return (
        Account.query
        .join(AccountAssignment, AccountAssignment.account_id == Account.id)
        .join(
            WorkspaceMember,
            (WorkspaceMember.workspace_id == Account.workspace_id)
            & (WorkspaceMember.user_id == user.id),
        )
        .filter(AccountAssignment.user_id == user.id)
        .order_by(Account.name)
        .all()
    )


def get_account(account_id, actor):
    account, _ = _load_account(account_id, actor, predicate=None)
    return account


def create_account(workspace_id, actor, name, username, website=None, assigned_to=None):
    with transaction():
        workspace_service.require_membership(workspace_id, actor, can_manage_workspace)
        account = Account(
            workspace_id=workspace_id,
            name=_required(name, "Account name"),
            username=_required(username, "Username"),
            website=_plain(website) or None,
        )
        db.session.add(account)
        db.session.flush()
        for user_id in _check_assignees(workspace_id, assigned_to):
            db.session.add(AccountAssignment(account_id=account.id, user_id=user_id))
        record_event(workspace_id, actor.id, "account.created", account_id=account.id, name=account.name)

    logger.info("Account %s created in workspace %s", account.id, workspace_id)
    return account


def update_account(account_id, actor, name=None, username=None, website=None):
    with transaction():
        account, _ = _load_account(account_id, actor)
        changes = {}
        if name is not None:
            account.name = changes["name"] = _required(name, "Account name")
        if username is not None:
            account.username = changes["username"] = _required(username, "Username")
        if website is not None:
            account.website = changes["website"] = _plain(website) or None
        if changes:
            record_event(account.workspace_id, actor.id, "account.updated", account_id=account.id, **changes)
    return account


def delete_account(account_id, actor):
    with transaction():
        account, _ = _load_account(account_id, actor, can_manage_workspace)
        record_event(account.workspace_id, actor.id, "account.deleted", account_id=account.id, name=account.name)
        db.session.delete(account)


def set_assignees(account_id, actor, user_ids):
    """Replace the account's assignee list. Every id must be a workspace member."""
    with transaction():
        account, _ = _load_account(account_id, actor, can_manage_workspace)
        user_ids = _check_assignees(account.workspace_id, user_ids)
        keep = set(user_ids)
        current = {a.user_id: a for a in account.assignments}
        for user_id, assignment in current.items():
            if user_id not in keep:
                account.assignments.remove(assignment)
        for user_id in user_ids:
            if user_id not in current:
                account.assignments.append(AccountAssignment(user_id=user_id))
        record_event(account.workspace_id, actor.id, "account.assigned", account_id=account.id, user_ids=user_ids)
    return account


# ── Notes ────────────────────────────────────────────────


def _load_note(note_id, actor):
    note = db.session.get(Note, note_id)
    if note is None:
        raise NotFound("Note not found.")
    account, _ = _load_account(note.account_id, actor)
    return note, account


def list_notes(account_id, actor, note_type=None):
    account, _ = _load_account(account_id, actor, predicate=None)
    query = Note.query.filter_by(account_id=account.id)
    if note_type:
        query = query.filter_by(type=note_type)
    return query.order_by(Note.created_at.desc()).all()


def create_note(account_id, actor, title, content="", note_type="regular"):
    note_type = note_type or "regular"
    if note_type not in Note.TYPES:
        raise ValidationError(
            f"Invalid note type '{note_type}'. Must be one of: {', '.join(Note.TYPES)}"
        )
    with transaction():
        account, _ = _load_account(account_id, actor)
        note = Note(
            account_id=account.id,
            author_id=actor.id,
            title=_required(title, "Title"),
            content=_rich(content),
            type=note_type,
        )
        db.session.add(note)
        db.session.flush()
        record_event(account.workspace_id, actor.id, f"{note_type}.created", account_id=account.id, note_id=note.id)
    return note


def update_note(note_id, actor, title=None, content=None):
    with transaction():
        note, _ = _load_note(note_id, actor)
        if title is not None:
            note.title = _required(title, "Title")
        if content is not None:
            note.content = _rich(content)
    return note


def delete_note(note_id, actor):
    with transaction():
        note, account = _load_note(note_id, actor)
        record_event(account.workspace_id, actor.id, f"{note.type}.deleted", account_id=account.id, note_id=note.id)
        db.session.delete(note)


# ── Reminders ────────────────────────────────────────────


def parse_reminder_date(value, tz_name):
    """Turn an ISO-8601 string or datetime into an aware UTC datetime.

    Values without an offset are wall-clock times in `tz_name`.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Invalid reminder date '{value}'. Use ISO-8601.")
    if not isinstance(value, datetime):
        raise ValidationError("Reminder date is required.")
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz_name or "UTC"))
    return value.astimezone(timezone.utc)


def _load_reminder(reminder_id, actor):
    reminder = db.session.get(Reminder, reminder_id)
    if reminder is None:
        raise NotFound("Reminder not found.")
    account, _ = _load_account(reminder.account_id, actor)
    return reminder, account


def list_reminders(account_id, actor, include_completed=True):
    account, _ = _load_account(account_id, actor, predicate=None)
    query = Reminder.query.filter_by(account_id=account.id)
    if not include_completed:
        query = query.filter(Reminder.completed.is_(False))
    return query.order_by(Reminder.date).all()


def create_reminder(account_id, actor, title, date, content=""):
    with transaction():
        account, _ = _load_account(account_id, actor)
        reminder = Reminder(
            account_id=account.id,
            workspace_id=account.workspace_id,
            author_id=actor.id,
            title=_required(title, "Title"),
            content=_plain(content) or "",
            date=parse_reminder_date(date, account.workspace.timezone),
            completed=False,
        )
        db.session.add(reminder)
        db.session.flush()
        record_event(account.workspace_id, actor.id, "reminder.created", account_id=account.id, reminder_id=reminder.id)
    return reminder


def update_reminder(reminder_id, actor, title=None, content=None, date=None):
    """Edit a reminder. A new date re-arms it for notification."""
    with transaction():
        reminder, account = _load_reminder(reminder_id, actor)
        if title is not None:
            reminder.title = _required(title, "Title")
        if content is not None:
            reminder.content = _plain(content) or ""
        if date is not None:
            reminder.date = parse_reminder_date(date, account.workspace.timezone)
            reminder.last_notified_at = None
    return reminder


def toggle_reminder(reminder_id, actor):
    with transaction():
        reminder, account = _load_reminder(reminder_id, actor)
        reminder.completed = not reminder.completed
        record_event(
            account.workspace_id, actor.id, "reminder.toggled",
            reminder_id=reminder.id, completed=reminder.completed,
        )
    return reminder


def delete_reminder(reminder_id, actor):
    with transaction():
        reminder, _ = _load_reminder(reminder_id, actor)
        db.session.delete(reminder)


def active_reminders_for(workspace_id, user):
    """Non-completed reminders in one workspace that `user` can see."""
    membership = workspace_service.get_membership(workspace_id, user.id)
    if membership is None:
        return []
    visible = _visible(
        db.session.query(Account.id).filter(Account.workspace_id == workspace_id),
        membership,
    )
    return (
        Reminder.query
        .filter(
            Reminder.workspace_id == workspace_id,
            Reminder.completed.is_(False),
            Reminder.account_id.in_(visible),
        )
        .order_by(Reminder.date)
        .all()
    )


def upcoming_reminders(user, limit=10, now=None):
    """The user's next open reminders across all workspaces, soonest first."""
    now = now or utcnow()
    reminders = []
    for workspace in workspace_service.list_workspaces_for_user(user):
        reminders.extend(
            r for r in active_reminders_for(workspace.id, user)
            if as_utc(r.date) >= now
        )
    reminders.sort(key=lambda r: as_utc(r.date))
    return reminders[:limit]


# ── Vault ────────────────────────────────────────────────


def _load_vault_entry(entry_id, actor):
    entry = db.session.get(VaultEntry, entry_id)
    if entry is None:
        raise NotFound("Vault entry not found.")
    account, _ = _load_account(entry.account_id, actor)
    return entry, account


def list_vault_entries(account_id, actor):
    account, _ = _load_account(account_id, actor)
    return VaultEntry.query.filter_by(account_id=account.id).order_by(VaultEntry.key).all()


def add_vault_entry(account_id, actor, key, value):
    if not value:
        raise ValidationError("Value is required.")
    with transaction():
        account, _ = _load_account(account_id, actor)
        entry = VaultEntry(account_id=account.id, key=_required(key, "Key"), value=value)
        db.session.add(entry)
        db.session.flush()
        record_event(account.workspace_id, actor.id, "vault.added", account_id=account.id, key=entry.key)
    return entry


def reveal_vault_entry(entry_id, actor):
    """Return the entry for display in clear. Every reveal is audited."""
    with transaction():
        entry, account = _load_vault_entry(entry_id, actor)
        record_event(account.workspace_id, actor.id, "vault.revealed", account_id=account.id, key=entry.key)
    return entry


def delete_vault_entry(entry_id, actor):
    with transaction():
        entry, account = _load_vault_entry(entry_id, actor)
        record_event(account.workspace_id, actor.id, "vault.deleted", account_id=account.id, key=entry.key)
        db.session.delete(entry)
