"""Workspace models.

- Workspace: the tenant container. Owns accounts, members and invitations.
- WorkspaceMember: join table linking users to workspaces with a role.
"""

import uuid

from accountdesk.extensions import db
from accountdesk.roles import Role


class Workspace(db.Model):
    __tablename__ = "workspaces"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    name = db.Column(db.String(255), nullable=False)
    timezone = db.Column(
        db.String(64), nullable=False, default="UTC"
    )  # IANA zone name, e.g. "America/New_York"
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    owner = db.relationship("User", foreign_keys=[owner_id])
    members = db.relationship(
        "WorkspaceMember",
        back_populates="workspace",
        lazy="dynamic",
        passive_deletes=True,
    )
    invitations = db.relationship(
        "WorkspaceInvitation",
        back_populates="workspace",
        lazy="dynamic",
        passive_deletes=True,
    )
    accounts = db.relationship(
        "Account",
        back_populates="workspace",
        lazy="dynamic",
        passive_deletes=True,
    )
    audit_events = db.relationship(
        "AuditEvent", back_populates="workspace", lazy="dynamic"
    )

    def to_dict(self, include_members=False):
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "timezone": self.timezone,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_members:
            data["members"] = [m.to_dict() for m in self.members]
        return data

    def __repr__(self):
        return f"<Workspace {self.name}>"


class WorkspaceMember(db.Model):
    __tablename__ = "workspace_members"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    workspace_id = db.Column(
        db.String(36),
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    role = db.Column(
        db.String(50), nullable=False, default=Role.ASSISTANT.value
    )  # owner | assistant
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.UniqueConstraint(
            "workspace_id", "user_id", name="uq_workspace_member"
        ),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="workspace_memberships")
    workspace = db.relationship("Workspace", back_populates="members")

    @property
    def role_enum(self):
        return Role(self.role)

    def to_dict(self):
        return {
            "workspace_id": self.workspace_id,
            "user_id": self.user_id,
            "email": self.user.email if self.user else None,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WorkspaceMember user={self.user_id} workspace={self.workspace_id} role={self.role}>"
