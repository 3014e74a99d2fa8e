"""Reminder due-detector.

Watches the active (not completed) reminders visible to one user and
fires a notification when a reminder comes due, in its workspace's
timezone. One ReminderDueDetector is owned by whoever runs it (the
`flask watch-reminders` command); start() schedules a single APScheduler
interval job and stop() tears it down along with any alert still playing.

Due detection is window based: a reminder is due from the local minute
of its `date` until `tolerance_minutes` later, so a late or skipped tick
still catches it. Before firing, the detector claims the reminder for its
user by inserting a ReminderNotification keyed on (reminder, user, due
instant); only the claimant fires, so each user who can see a reminder is
alerted at most once per due date no matter how many ticks (or detector
processes for that user) see it inside the window.

Reminders whose whole window passes while no detector is running are not
fired late.

Errors inside a tick (a workspace that fails to load, a failing sink,
a database hiccup) are logged and swallowed so the polling loop keeps
running unattended.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers import SchedulerNotRunningError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from accountdesk.extensions import db
from accountdesk.models.reminder import Reminder
from accountdesk.models.reminder_notification import ReminderNotification
from accountdesk.models.user import User
from accountdesk.services import account_service, workspace_service
from accountdesk.services.notification_service import (
    LoggingNotificationSink,
    NotificationPermission,
)
from accountdesk.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

ALERT_TITLE = "Reminder Due"


@dataclass(frozen=True)
class DueReminder:
    """Detached copy of a Reminder row, safe to keep between app contexts."""

    id: str
    workspace_id: str
    account_id: str
    title: str
    date: datetime
    completed: bool
    last_notified_at: datetime = None  # when the watching user was alerted for `date`

    @classmethod
    def from_model(cls, reminder):
        return cls(
            id=reminder.id,
            workspace_id=reminder.workspace_id,
            account_id=reminder.account_id,
            title=reminder.title,
            date=as_utc(reminder.date),
            completed=bool(reminder.completed),
        )


def resolve_timezone(name):
    """ZoneInfo for a workspace timezone; unset or unknown names fall back to UTC."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def local_minute(instant, tz):
    """(year, month, day, hour, minute) of `instant` on the wall clock of `tz`."""
    local = as_utc(instant).astimezone(tz)
    return (local.year, local.month, local.day, local.hour, local.minute)


def matches_local_minute(due, now, tz):
    """True when `due` and `now` fall on the same local calendar minute."""
    return local_minute(due, tz) == local_minute(now, tz)


def _floor_minute(instant, tz):
    # Floor on the local clock, then compare as absolute instants: a wall
    # minute that repeats when DST ends must not make a reminder due early.
    local = as_utc(instant).astimezone(tz).replace(second=0, microsecond=0)
    return local.astimezone(timezone.utc)


def is_due(due, now, tz, tolerance_minutes=1, last_notified_at=None):
    """Is a reminder for `due` inside its firing window at `now`?

    The window runs from the local minute of `due` for `tolerance_minutes`
    minutes; tolerance 1 is "same local minute only". A reminder already
    notified at or after the start of its window is never due again.
    """
    start = _floor_minute(due, tz)
    if last_notified_at is not None and as_utc(last_notified_at) >= start:
        return False
    current = _floor_minute(now, tz)
    return start <= current < start + timedelta(minutes=max(tolerance_minutes, 1))


class ReminderDueDetector:
    """Polls one user's reminders and fires each at most once when due.

    Args:
        app: Flask app; ticks run inside a fresh app context.
        user_id: Whose reminders to watch (owner: all in the workspace;
            assistant: reminders on accounts assigned to them).
        sink: NotificationSink; defaults to LoggingNotificationSink.
        interval_seconds, tolerance_minutes, alert_seconds: default to
            REMINDER_CHECK_INTERVAL_SECONDS, REMINDER_TOLERANCE_MINUTES and
            REMINDER_ALERT_SECONDS from the app config.
    """

    def __init__(self, app, user_id, sink=None, interval_seconds=None,
                 tolerance_minutes=None, alert_seconds=None):
        config = app.config
        self.app = app
        self.user_id = user_id
        self.sink = sink or LoggingNotificationSink()
        self.interval_seconds = interval_seconds or config.get(
            "REMINDER_CHECK_INTERVAL_SECONDS", 60
        )
        self.tolerance_minutes = tolerance_minutes or config.get(
            "REMINDER_TOLERANCE_MINUTES", 5
        )
        self.alert_seconds = alert_seconds or config.get("REMINDER_ALERT_SECONDS", 3)
        self._scheduler = None
        self._reminders = []
        self._timezones = {}

    # ── State ──────────────────────────────────────────────

    @property
    def running(self):
        return self._scheduler is not None and self._scheduler.running

    @property
    def reminders(self):
        return list(self._reminders)

    def timezone_for(self, workspace_id):
        return resolve_timezone(self._timezones.get(workspace_id))

    # ── Loading ────────────────────────────────────────────

    def refresh(self):
        """Reload the user's workspaces and their active reminders.

        A workspace whose reminders fail to load is logged and skipped;
        the others are still watched. Needs an app context.
        """
        user = db.session.get(User, self.user_id)
        if user is None:
            logger.warning("Reminder detector user %s no longer exists", self.user_id)
            self._reminders, self._timezones = [], {}
            return

        reminders, timezones = [], {}
        for workspace in workspace_service.list_workspaces_for_user(user):
            try:
                rows = account_service.active_reminders_for(workspace.id, user)
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception(
                    "Failed to load reminders for workspace %s; skipping", workspace.id
                )
                continue
            timezones[workspace.id] = workspace.timezone
            reminders.extend(DueReminder.from_model(r) for r in rows)

        notified = self._notified_for(reminders)
        self._reminders = [
            replace(r, last_notified_at=as_utc(notified.get((r.id, r.date))))
            for r in reminders
        ]
        self._timezones = timezones
        logger.debug(
            "Watching %d reminder(s) across %d workspace(s) for user %s",
            len(reminders), len(timezones), self.user_id,
        )

    def _notified_for(self, reminders):
        """{(reminder_id, due_at): notified_at} for this user's past alerts."""
        if not reminders:
            return {}
        rows = ReminderNotification.query.filter(
            ReminderNotification.user_id == self.user_id,
            ReminderNotification.reminder_id.in_([r.id for r in reminders]),
        ).all()
        return {(n.reminder_id, as_utc(n.due_at)): n.notified_at for n in rows}

    # ── Detection ──────────────────────────────────────────

    def due_reminders(self, now=None):
        """In-memory reminders inside their firing window at `now` (no side effects)."""
        now = now or utcnow()
        return [
            r for r in self._reminders
            if not r.completed and is_due(
                r.date, now, self.timezone_for(r.workspace_id),
                self.tolerance_minutes, r.last_notified_at,
            )
        ]

    def scan(self, now=None):
        """Claim and fire every due reminder. Returns the reminders fired."""
        now = now or utcnow()
        fired = []
        for reminder in self.due_reminders(now):
            if not self._claim(reminder, now):
                continue
            self._remember_notified(reminder, now)
            self._fire(reminder)
            fired.append(reminder)
        return fired

    def _claim(self, reminder, now):
        """Record this user's alert for the reminder's current due date.

        The insert fails on the unique key when this user was already
        alerted for that date. The reminder must still be open and still
        due at the same instant, otherwise the claim is dropped.
        """
        try:
            db.session.add(
                ReminderNotification(
                    reminder_id=reminder.id,
                    user_id=self.user_id,
                    due_at=reminder.date,
                    notified_at=now,
                )
            )
            db.session.flush()
            result = db.session.execute(
                update(Reminder)
                .where(
                    Reminder.id == reminder.id,
                    Reminder.completed.is_(False),
                    Reminder.date == reminder.date,
                )
                .values(last_notified_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                logger.info("Reminder %s changed before it could be claimed", reminder.id)
                return False
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.debug("Reminder %s already notified for user %s", reminder.id, self.user_id)
            return False
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not claim reminder %s", reminder.id)
            return False
        return True

    def _remember_notified(self, reminder, now):
        self._reminders = [
            replace(r, last_notified_at=now) if r.id == reminder.id else r
            for r in self._reminders
        ]

    def _fire(self, reminder):
        logger.info("Reminder %s due: %s", reminder.id, reminder.title)
        try:
            self.sink.play_sound(self.alert_seconds)
        except Exception:
            logger.exception("Alert sound failed for reminder %s", reminder.id)

        if self.sink.permission is not NotificationPermission.GRANTED:
            logger.info(
                "Notification permission is %s; no system notification for reminder %s",
                self.sink.permission.value, reminder.id,
            )
            return
        try:
            self.sink.show_system_notification(ALERT_TITLE, reminder.title)
        except Exception:
            logger.exception("System notification failed for reminder %s", reminder.id)

    # ── Lifecycle ──────────────────────────────────────────

    def tick(self):
        """One polling cycle: reload, then fire what is due. Never raises."""
        try:
            with self.app.app_context():
                self.refresh()
                self.scan()
        except Exception:
            logger.exception("Reminder tick failed for user %s", self.user_id)

    def start(self):
        """Ask for notification permission (once), check now, then every interval."""
        if self.running:
            return
        if self.sink.permission is NotificationPermission.DEFAULT:
            try:
                self.sink.request_permission()
            except Exception:
                logger.exception("Notification permission request failed")

        self.tick()

        scheduler = BackgroundScheduler(timezone="UTC")
        # max_instances=1 + coalesce: a slow tick is never overlapped, and
        # ticks missed while it ran collapse into one.
        scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id=f"reminder-due-{self.user_id}",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "Reminder detector started for user %s (every %ss, window %s min)",
            self.user_id, self.interval_seconds, self.tolerance_minutes,
        )

    def stop(self):
        """Stop polling and silence the sink. Safe to call more than once."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            try:
                scheduler.shutdown(wait=False)
            except SchedulerNotRunningError:
                pass
            logger.info("Reminder detector stopped for user %s", self.user_id)
        try:
            self.sink.close()
        except Exception:
            logger.exception("Failed to close notification sink")
