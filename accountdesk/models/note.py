"""Note model — free-form notes and reports attached to an account.

Content is rich text (HTML) sanitized by account_service before it is
stored.
"""

import uuid

from accountdesk.extensions import db


class Note(db.Model):
    __tablename__ = "notes"

    TYPES = ["regular", "report"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    account_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    type = db.Column(db.String(20), nullable=False, default="regular")  # regular | report
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    account = db.relationship("Account", back_populates="notes")
    author = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "account_id": self.account_id,
            "author_id": self.author_id,
            "author_email": self.author.email if self.author else None,
            "title": self.title,
            "content": self.content,
            "type": self.type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Note {self.type} {self.title}>"
