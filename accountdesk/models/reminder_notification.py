"""Per-user reminder notification record.

One row per (reminder, user, due instant) that has been announced. The
unique key is the due-detector's claim: a detector inserts the row before
firing, and losing the insert means that user was already alerted for
that due date. Moving the reminder to a new date gives a new key, so it
fires again.
"""

import uuid

from accountdesk.extensions import db
from accountdesk.utils import as_utc, utcnow


class ReminderNotification(db.Model):
    __tablename__ = "reminder_notifications"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    reminder_id = db.Column(
        db.String(36),
        db.ForeignKey("reminders.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    due_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notified_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        db.UniqueConstraint(
            "reminder_id", "user_id", "due_at", name="uq_reminder_notification_per_due"
        ),
    )

    # --- Relationships ---
    reminder = db.relationship("Reminder", back_populates="notifications")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "reminder_id": self.reminder_id,
            "user_id": self.user_id,
            "due_at": as_utc(self.due_at).isoformat(),
            "notified_at": as_utc(self.notified_at).isoformat(),
        }

    def __repr__(self):
        return f"<ReminderNotification {self.reminder_id} user={self.user_id} due={self.due_at}>"
