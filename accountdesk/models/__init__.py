# Models package — import all models here so Alembic can discover them.

from accountdesk.models.user import User  # noqa: F401
from accountdesk.models.workspace import Workspace, WorkspaceMember  # noqa: F401
from accountdesk.models.invitation import WorkspaceInvitation  # noqa: F401
from accountdesk.models.account import Account, AccountAssignment  # noqa: F401
from accountdesk.models.note import Note  # noqa: F401
from accountdesk.models.reminder import Reminder  # noqa: F401
from accountdesk.models.reminder_notification import ReminderNotification  # noqa: F401
from accountdesk.models.vault import VaultEntry  # noqa: F401
from accountdesk.models.audit import AuditEvent  # noqa: F401
