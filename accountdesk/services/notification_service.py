"""Notification sinks for the reminder due-detector.

A sink has two outputs, a short alert sound and a "system notification"
(title + body), plus a permission state that mirrors a desktop
notification permission: default (never asked), granted, denied. The
detector asks once when it starts and only raises system notifications
while the permission is granted. Both outputs are best effort; the
detector logs and ignores any exception a sink raises.

Sinks:
- LoggingNotificationSink: writes alerts to the "accountdesk.notifications" logger
- EmailNotificationSink: emails the alert to a fixed recipient
"""

import logging
import threading
from enum import Enum

from accountdesk.services.email_service import send_email_sync

logger = logging.getLogger("accountdesk.notifications")


class NotificationPermission(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class NotificationSink:
    """Base sink: no sound, notifications dropped. Subclasses override."""

    def __init__(self, permission=NotificationPermission.DEFAULT):
        self.permission = NotificationPermission(permission)

    def request_permission(self):
        if self.permission is NotificationPermission.DEFAULT:
            self.permission = NotificationPermission.GRANTED
        return self.permission

    def play_sound(self, duration):
        pass

    def show_system_notification(self, title, body):
        pass

    def close(self):
        """Stop anything still playing. Called when the detector stops."""
        pass


class LoggingNotificationSink(NotificationSink):
    """Alerts go to the log. The "sound" is a timed start/stop pair of log lines."""

    def __init__(self, permission=NotificationPermission.DEFAULT):
        super().__init__(permission)
        self._lock = threading.Lock()
        self._sound_timer = None

    @property
    def playing(self):
        return self._sound_timer is not None

    def play_sound(self, duration):
        with self._lock:
            self._cancel_sound()
            logger.info("Alert sound started (%.1fs)", duration)
            timer = threading.Timer(duration, self._stop_sound)
            timer.daemon = True
            self._sound_timer = timer
            timer.start()

    def _stop_sound(self):
        with self._lock:
            self._sound_timer = None
        logger.info("Alert sound stopped")

    def _cancel_sound(self):
        if self._sound_timer is not None:
            self._sound_timer.cancel()
            self._sound_timer = None

    def show_system_notification(self, title, body):
        logger.info("%s: %s", title, body)

    def close(self):
        with self._lock:
            self._cancel_sound()


class EmailNotificationSink(NotificationSink):
    """Sends each system notification as an email. Has no sound.

    Must be used inside an app context (the detector's tick provides one).
    """

    def __init__(self, recipient, permission=NotificationPermission.DEFAULT):
        super().__init__(permission)
        self.recipient = recipient

    def request_permission(self):
        if self.permission is NotificationPermission.DEFAULT:
            self.permission = (
                NotificationPermission.GRANTED if self.recipient
                else NotificationPermission.DENIED
            )
        return self.permission

    def show_system_notification(self, title, body):
        delivered = send_email_sync(
            to=self.recipient,
            subject=f"{title}: {body}",
            template="emails/reminder_due.html",
            context={"title": title, "body": body},
        )
        if not delivered:
            logger.warning("Reminder email to %s was not delivered", self.recipient)


def build_sink(kind="log", recipient=None):
    """Sink factory for the CLI: "log" or "email"."""
    if kind == "log":
        return LoggingNotificationSink()
    if kind == "email":
        if not recipient:
            raise ValueError("The email sink needs a recipient address.")
        return EmailNotificationSink(recipient)
    raise ValueError(f"Unknown notification sink '{kind}'. Use 'log' or 'email'.")
