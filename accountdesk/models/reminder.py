"""Reminder model.

A reminder is due at an absolute instant (`date`) and is evaluated in its
workspace's timezone by the due-detector. Who has been alerted for which
due date lives in ReminderNotification; `last_notified_at` only records
the most recent announcement to anyone and is cleared when the date moves.
"""

import uuid

from accountdesk.extensions import db
from accountdesk.utils import as_utc


class Reminder(db.Model):
    __tablename__ = "reminders"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    account_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workspace_id = db.Column(
        db.String(36),
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    last_notified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.Index("ix_reminders_workspace_completed_date", "workspace_id", "completed", "date"),
    )

    # --- Relationships ---
    account = db.relationship("Account", back_populates="reminders")
    workspace = db.relationship("Workspace")
    author = db.relationship("User")
    notifications = db.relationship(
        "ReminderNotification",
        back_populates="reminder",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "account_id": self.account_id,
            "workspace_id": self.workspace_id,
            "author_id": self.author_id,
            "title": self.title,
            "content": self.content,
            "date": as_utc(self.date).isoformat(),
            "completed": self.completed,
            "last_notified_at": (
                as_utc(self.last_notified_at).isoformat() if self.last_notified_at else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Reminder {self.title} at {self.date}>"
