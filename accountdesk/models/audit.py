"""Audit event model.

Logs significant actions (workspace created, invitation accepted, member
removed, account changes) for the activity feed and debugging.
"""

import uuid

from accountdesk.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    workspace_id = db.Column(
        db.String(36),
        db.ForeignKey("workspaces.id", ondelete="SET NULL"),
        nullable=True,
    )
    actor_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    action = db.Column(db.String(255), nullable=False)  # e.g. "invitation.accepted"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid the declarative attribute clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    workspace = db.relationship("Workspace", back_populates="audit_events")
    actor = db.relationship("User", back_populates="audit_events")

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "actor_user_id": self.actor_user_id,
            "action": self.action,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
