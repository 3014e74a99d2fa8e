import os
import logging

import click
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.security import generate_password_hash

from accountdesk.config import config_by_name
from accountdesk.errors import AccountDeskError
from accountdesk.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from accountdesk import models  # noqa: F401

    # --- Tenant middleware ---
    from accountdesk.middleware.tenant import init_tenant_middleware
    init_tenant_middleware(app)

    # --- Register blueprints ---
    from accountdesk.blueprints.auth import auth_bp
    from accountdesk.blueprints.workspaces import workspaces_bp
    from accountdesk.blueprints.invitations import invitations_bp
    from accountdesk.blueprints.accounts import accounts_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(workspaces_bp)
    app.register_blueprint(invitations_bp)
    app.register_blueprint(accounts_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        return jsonify({"service": "accountdesk", "status": "ok"})

    # --- Error handlers ---
    @app.errorhandler(AccountDeskError)
    def domain_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(CSRFError)
    def csrf_error(e):
        return jsonify({"error": e.description, "code": "csrf_failed"}), 400

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"error": "Forbidden.", "code": "not_authorized"}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found.", "code": "not_found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed.", "code": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests. Slow down.", "code": "rate_limited"}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error.", "code": "server_error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Permissions Policy (restrict browser features)
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=()"
        )
        # JSON only; nothing here should ever be framed or run scripts
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none';"
        )
        # Strict Transport Security (only in production)
        if not app.debug and not app.testing:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def _user_by_email(email):
    from accountdesk.models.user import User

    user = User.query.filter_by(email=email.lower().strip()).first()
    if user is None:
        raise click.ClickException(f"No user with email {email}")
    return user


def _install_reminder_log(app):
    """Send detector + notification logs to REMINDER_LOG_FILE as well, if set."""
    from logging.handlers import RotatingFileHandler

    path = app.config.get("REMINDER_LOG_FILE")
    if not path:
        return None
    handler = RotatingFileHandler(path, maxBytes=1_000_000, backupCount=3)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    for name in ("accountdesk.services.reminder_service", "accountdesk.notifications"):
        logging.getLogger(name).addHandler(handler)
    return handler


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--email", default="owner@accountdesk.local", help="Owner email")
    @click.option("--password", default="owner1234", help="Owner password")
    @click.option("--timezone", "tz", default="America/New_York", help="Workspace timezone")
    def seed_demo(email, password, tz):
        """Create a demo owner, assistant, workspace, account, reminder and invitation.

        Usage:
            flask seed-demo
            flask seed-demo --email me@example.com --password s3cret123
        """
        from datetime import timedelta

        from accountdesk.models.user import User
        from accountdesk.services import account_service, invitation_service, workspace_service
        from accountdesk.utils import utcnow

        def get_or_create_user(address, full_name):
            user = User.query.filter_by(email=address).first()
            if user is not None:
                click.echo(f"User already exists: {address}")
                return user
            user = User(
                email=address,
                password_hash=generate_password_hash(password),
                full_name=full_name,
            )
            db.session.add(user)
            db.session.commit()
            click.echo(f"Created user: {address}")
            return user

        owner = get_or_create_user(email.lower().strip(), "Demo Owner")
        assistant = get_or_create_user("assistant@accountdesk.local", "Demo Assistant")

        workspace = workspace_service.create_workspace("Demo Workspace", owner, timezone=tz)
        invitation = invitation_service.create_invitation(
            workspace.id, assistant.email, "assistant", owner
        )
        membership = invitation_service.accept_invitation(invitation.id, assistant)

        account = account_service.create_account(
            workspace.id, owner,
            name="Demo Bank",
            username="demo.owner",
            website="https://bank.example.com",
            assigned_to=[membership.user_id],
        )
        reminder = account_service.create_reminder(
            account.id, owner,
            title="Review monthly statement",
            date=utcnow() + timedelta(minutes=2),
        )
        pending = invitation_service.create_invitation(
            workspace.id, "newhire@accountdesk.local", "assistant", owner
        )

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Owner:      {owner.email} / {password}")
        click.echo(f"  Assistant:  {assistant.email} / {password}")
        click.echo(f"  Workspace:  {workspace.name} (id: {workspace.id}, tz: {tz})")
        click.echo(f"  Account:    {account.name} (id: {account.id})")
        click.echo(f"  Reminder:   {reminder.title} at {reminder.date.isoformat()}")
        click.echo(f"  Invitation: {invitation_service.invitation_link(pending)}")
        click.echo("=" * 60)

    @app.cli.command("expire-invitations")
    def expire_invitations():
        """Mark pending invitations past their expiry as expired."""
        from accountdesk.services.invitation_service import expire_stale_invitations

        count = expire_stale_invitations()
        click.echo(f"Expired {count} invitation(s).")

    @app.cli.command("check-reminders")
    @click.option("--email", required=True, help="Whose reminders to check.")
    @click.option("--dry-run", is_flag=True, help="List due reminders without notifying.")
    def check_reminders(email, dry_run):
        """Run one due-reminder scan for a user.

        Usage:
            flask check-reminders --email owner@example.com
            flask check-reminders --email owner@example.com --dry-run
        """
        from accountdesk.services.notification_service import build_sink
        from accountdesk.services.reminder_service import ReminderDueDetector

        user = _user_by_email(email)
        sink = build_sink("log")
        sink.request_permission()
        detector = ReminderDueDetector(app, user.id, sink=sink)
        detector.refresh()

        if dry_run:
            due = detector.due_reminders()
            click.echo(f"{len(due)} reminder(s) due (dry run, nothing sent).")
            for reminder in due:
                click.echo(f"  - {reminder.title} ({reminder.date.isoformat()})")
        else:
            fired = detector.scan()
            click.echo(f"Notified {len(fired)} reminder(s).")
            for reminder in fired:
                click.echo(f"  - {reminder.title}")
        detector.stop()

    @app.cli.command("watch-reminders")
    @click.option("--email", required=True, help="Whose reminders to watch.")
    @click.option(
        "--sink", "sink_kind",
        type=click.Choice(["log", "email"]), default="log",
        help="Where alerts go.",
    )
    def watch_reminders(email, sink_kind):
        """Run the reminder due-detector until interrupted (Ctrl+C).

        Usage:
            flask watch-reminders --email owner@example.com
            flask watch-reminders --email owner@example.com --sink email
        """
        import time

        from accountdesk.services.notification_service import build_sink
        from accountdesk.services.reminder_service import ReminderDueDetector

        user = _user_by_email(email)
        sink = build_sink(sink_kind, recipient=user.email)
        handler = _install_reminder_log(app)

        detector = ReminderDueDetector(app, user.id, sink=sink)
        detector.start()
        click.echo(
            f"Watching reminders for {user.email} every "
            f"{detector.interval_seconds}s (Ctrl+C to stop)."
        )
        try:
            while detector.running:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("Stopping...")
        finally:
            detector.stop()
            if handler is not None:
                handler.close()
