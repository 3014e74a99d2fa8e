"""Outbound mail for AccountDesk.

Invitations and reminder alerts are rendered from templates/emails/ and
sent as HTML with a plain-text part derived from it. A delivery problem
never reaches the caller: send_email() hands the message to a daemon
thread and only logs the outcome, send_email_sync() reports it as a bool.

With MAIL_USERNAME / MAIL_PASSWORD unset (the test config) messages are
composed but dropped with a warning.
"""

import logging
import re
import smtplib
import threading
from email.message import EmailMessage
from email.utils import formataddr

import bleach
from flask import current_app, render_template

logger = logging.getLogger(__name__)

_DOCTYPE = re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE)
_BLANK_RUN = re.compile(r"\n\s*\n+")


def mail_configured(config):
    return bool(config.get("MAIL_USERNAME") and config.get("MAIL_PASSWORD"))


def _sender(config):
    address = (
        config.get("MAIL_FROM_ADDRESS")
        or config.get("MAIL_USERNAME")
        or "no-reply@accountdesk.local"
    )
    return formataddr((config.get("MAIL_FROM_NAME", "AccountDesk"), address))


def text_fallback(html):
    """Plain-text version of a rendered template: tags stripped, blank runs collapsed."""
    text = bleach.clean(_DOCTYPE.sub("", html), tags=set(), strip=True)
    lines = (line.strip() for line in text.splitlines())
    return _BLANK_RUN.sub("\n\n", "\n".join(lines)).strip()


def compose(to, subject, template, context=None, reply_to=None):
    """Render `template` into an EmailMessage. Needs an app context.

    `to` may be one address or a list of them.
    """
    html = render_template(template, **(context or {}))

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = _sender(current_app.config)
    msg["To"] = to if isinstance(to, str) else ", ".join(to)
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(text_fallback(html))
    msg.add_alternative(html, subtype="html")
    return msg


def deliver(config, msg):
    """Hand `msg` to the SMTP relay named in `config`. True once accepted."""
    if not mail_configured(config):
        logger.warning("Mail not configured; dropped %r to %s", msg["Subject"], msg["To"])
        return False

    host = config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = config.get("MAIL_SMTP_PORT", 587)
    try:
        with smtplib.SMTP(host, port, timeout=30) as relay:
            relay.starttls()
            relay.login(config["MAIL_USERNAME"], config["MAIL_PASSWORD"])
            relay.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("Mail to %s via %s:%s failed", msg["To"], host, port)
        return False

    logger.info("Mailed %r to %s", msg["Subject"], msg["To"])
    return True


def send_email(to, subject, template, context=None, reply_to=None):
    """Compose now, deliver on a daemon thread. Returns the started thread."""
    msg = compose(to, subject, template, context, reply_to)
    worker = threading.Thread(
        target=deliver, args=(current_app.config, msg), name="mail-delivery", daemon=True
    )
    worker.start()
    return worker


def send_email_sync(to, subject, template, context=None, reply_to=None):
    """Compose and deliver in the caller's thread. Returns deliver()'s result."""
    return deliver(current_app.config, compose(to, subject, template, context, reply_to))
