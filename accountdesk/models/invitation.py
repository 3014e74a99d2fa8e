"""Workspace invitation model.

An owner invites an email address into a workspace with a role. The
invitation is single-use and time-boxed (INVITATION_EXPIRY_DAYS, 7 by
default):

    pending --accept--> accepted
    pending --expires_at passes--> expired   (derived; persisted by the sweep)

At most one *pending* row exists per (workspace, email), enforced by a
partial unique index.
"""

import uuid

from accountdesk.extensions import db
from accountdesk.utils import as_utc, utcnow


class WorkspaceInvitation(db.Model):
    __tablename__ = "workspace_invitations"

    STATUSES = ["pending", "accepted", "expired"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    workspace_id = db.Column(
        db.String(36),
        db.ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    email = db.Column(db.String(255), nullable=False)  # normalized lower-case
    role = db.Column(db.String(50), nullable=False)  # owner | assistant
    status = db.Column(
        db.String(50), nullable=False, default="pending"
    )  # pending | accepted | expired
    invited_by = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_by = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )

    __table_args__ = (
        db.Index(
            "uq_pending_invitation_per_email",
            "workspace_id",
            "email",
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    # --- Relationships ---
    workspace = db.relationship("Workspace", back_populates="invitations")
    inviter = db.relationship("User", foreign_keys=[invited_by])

    def is_expired(self, now=None):
        """True once expires_at has passed, whatever the stored status says."""
        now = now or utcnow()
        return self.status == "expired" or now >= as_utc(self.expires_at)

    def effective_status(self, now=None):
        if self.status == "pending" and self.is_expired(now):
            return "expired"
        return self.status

    def to_dict(self, now=None):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "workspace_name": self.workspace.name if self.workspace else None,
            "email": self.email,
            "role": self.role,
            "status": self.effective_status(now),
            "invited_by": self.invited_by,
            "created_at": as_utc(self.created_at).isoformat(),
            "expires_at": as_utc(self.expires_at).isoformat(),
        }

    def __repr__(self):
        return f"<WorkspaceInvitation {self.email} workspace={self.workspace_id} {self.status}>"
