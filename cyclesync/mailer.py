"""Outbound email for reminders and partner invitations over SMTP."""

import logging
import smtplib
from datetime import date
from email.message import EmailMessage

from config.settings import EMAIL_FROM, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USERNAME

logger = logging.getLogger(__name__)


class MailerError(Exception):
    """Raised when an email could not be handed to the SMTP server."""


def is_configured() -> bool:
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)


def build_message(to_email: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = EMAIL_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    return msg


def send_email(to_email: str, subject: str, body: str):
    if not is_configured():
        raise MailerError("SMTP credentials are not configured")

    msg = build_message(to_email, subject, body)
    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30) as server:
            server.starttls()
            server.login(SMTP_USERNAME, SMTP_PASSWORD)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise MailerError(f"Failed to send email to {to_email}: {e}") from e
    logger.info(f"Email '{subject}' sent to {to_email}")


def period_reminder(days_ahead: int, period_date: date, blurb: str = "") -> tuple[str, str]:
    subject = "Your period is coming soon!"
    body = (
        "Hi,\n\n"
        f"Your period is expected to start in {days_ahead} days, on {period_date:%d %B %Y}.\n\n"
        "A few things that help:\n"
        "- Keep track of your symptoms\n"
        "- Stay hydrated\n"
        "- Get plenty of rest\n\n"
    )
    if blurb:
        body += f"{blurb}\n\n"
    body += "You can log your mood and symptoms any time with /mood.\n\nCycleSync"
    return subject, body


def fertile_window_reminder(window_start: date, window_end: date, blurb: str = "") -> tuple[str, str]:
    subject = "Your fertile window is approaching!"
    body = (
        "Hi,\n\n"
        f"Your fertile window is expected from {window_start:%d %B} to {window_end:%d %B %Y}.\n\n"
        "Key points to remember:\n"
        "- Track your basal body temperature\n"
        "- Monitor cervical mucus changes\n"
        "- Use ovulation predictor kits if desired\n\n"
    )
    if blurb:
        body += f"{blurb}\n\n"
    body += "CycleSync"
    return subject, body


def welcome_email() -> tuple[str, str]:
    subject = "Welcome to CycleSync!"
    body = (
        "Hi,\n\n"
        "Email reminders are now on. Here's what CycleSync does for you:\n"
        "- Tracks your period and cycle phases\n"
        "- Logs your mood and symptoms\n"
        "- Sends reminders before your period and fertile window\n"
        "- Keeps your partner in the loop if you want\n\n"
        "Turn reminders off any time with /email off.\n\nCycleSync"
    )
    return subject, body


def partner_invite(code: str) -> tuple[str, str]:
    subject = "You've been invited to sync cycles on CycleSync"
    body = (
        "Hi there,\n\n"
        "Your partner invited you to follow their cycle on CycleSync so you can "
        "support each other.\n\n"
        f"Open the CycleSync bot and send:\n\n    /partner join {code}\n\n"
        "CycleSync"
    )
    return subject, body
