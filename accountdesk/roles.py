"""Workspace roles and the authorization predicates built on them.

Every permission check in services, middleware and routes goes through
one of the can_* functions below, never a raw string comparison.
"""

from enum import Enum

from accountdesk.errors import ValidationError


class Role(str, Enum):
    OWNER = "owner"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value):
        """Coerce a request value ("Owner", " assistant ", Role.OWNER) to a Role."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            allowed = ", ".join(r.value for r in cls)
            raise ValidationError(f"Invalid role '{value}'. Must be one of: {allowed}")


def _role(role):
    return role if isinstance(role, Role) else Role(role)


def can_manage_members(role):
    """Invite members, remove members."""
    return _role(role) is Role.OWNER


def can_manage_workspace(role):
    """Rename, change timezone, delete, create/delete accounts, assign accounts."""
    return _role(role) is Role.OWNER


def can_edit_accounts(role):
    """Edit account details, notes, reminders and vault entries."""
    return _role(role) in (Role.OWNER, Role.ASSISTANT)


def can_view_all_accounts(role):
    """Owners see every account; assistants only those assigned to them."""
    return _role(role) is Role.OWNER
