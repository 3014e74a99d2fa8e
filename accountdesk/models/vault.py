"""Vault entry model — key/value secrets attached to an account.

Values are stored as given and masked when listed; there is no
encryption at rest.
"""

import uuid

from accountdesk.extensions import db

MASK = "••••••••"


class VaultEntry(db.Model):
    __tablename__ = "vault"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    account_id = db.Column(
        db.String(36),
        db.ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key = db.Column(db.String(255), nullable=False)
    value = db.Column(db.Text, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    account = db.relationship("Account", back_populates="vault_entries")

    @property
    def masked_value(self):
        if len(self.value) <= 4:
            return MASK
        return MASK + self.value[-2:]

    def to_dict(self, reveal=False):
        return {
            "id": self.id,
            "account_id": self.account_id,
            "key": self.key,
            "value": self.value if reveal else self.masked_value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<VaultEntry {self.key} account={self.account_id}>"
