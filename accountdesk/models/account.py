"""Account models.

- Account: a tracked third-party login (name, username, website) inside a
  workspace.
- AccountAssignment: which workspace members an account is assigned to.
  Assistants only see accounts they are assigned to.
"""

import uuid

from accountdesk.extensions import db


class Account(db.Model):
    __tablename__ = "accounts"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    workspace_id = db.Column(
        db.String(36),
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(255), nullable=False)
    website = db.Column(db.String(500), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    workspace = db.relationship("Workspace", back_populates="accounts")
    assignments = db.relationship(
        "AccountAssignment",
        back_populates="account",
        cascade="all, delete-orphan",
    )
    notes = db.relationship(
        "Note",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="Note.created_at.desc()",
    )
    reminders = db.relationship(
        "Reminder",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="Reminder.date",
    )
    vault_entries = db.relationship(
        "VaultEntry",
        back_populates="account",
        cascade="all, delete-orphan",
    )

    @property
    def assigned_to(self):
        return sorted(a.user_id for a in self.assignments)

    def to_dict(self, include_children=False):
        data = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "username": self.username,
            "website": self.website,
            "assigned_to": self.assigned_to,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_children:
            data["notes"] = [n.to_dict() for n in self.notes]
            data["reminders"] = [r.to_dict() for r in self.reminders]
        return data

    def __repr__(self):
        return f"<Account {self.name}>"


class AccountAssignment(db.Model):
    __tablename__ = "account_assignments"

    account_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    account = db.relationship("Account", back_populates="assignments")
    user = db.relationship("User")

    def __repr__(self):
        return f"<AccountAssignment account={self.account_id} user={self.user_id}>"
