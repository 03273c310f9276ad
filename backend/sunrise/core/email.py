# backend/sunrise/core/email.py
from __future__ import annotations

import json
import logging
import smtplib
import urllib.error
import urllib.request
from email.message import EmailMessage
from enum import Enum
from typing import Optional

from sunrise.core.config import settings

logger = logging.getLogger("sunrise.email")


class EmailStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    DISABLED = "disabled"


def _send_resend(
    *,
    to_email: str,
    subject: str,
    text_body: str,
    html_body: Optional[str],
) -> EmailStatus:
    """
    Send email via Resend REST API (no extra deps; uses urllib).
    Settings: email_from, resend_api_key
    """
    api_key = settings.resend_api_key
    if not api_key:
        logger.warning("EMAIL_PROVIDER=resend but RESEND_API_KEY is not set; falling back to log mode.")
        return _log_email(to_email=to_email, subject=subject)

    payload = {
        "from": settings.email_from,
        "to": [to_email],
        "subject": subject,
        "text": text_body,
    }
    if html_body:
        payload["html"] = html_body

    req = urllib.request.Request(
        url="https://api.resend.com/emails",
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
    )

    try:
        with urllib.request.urlopen(req, timeout=10) as resp:
            _ = resp.read()
        logger.info("Email sent via Resend to=%s subject=%s", to_email, subject)
        return EmailStatus.SENT
    except urllib.error.HTTPError as e:
        body = ""
        try:
            body = e.read().decode("utf-8", errors="replace")
        except OSError:
            pass
        logger.error("Resend HTTPError status=%s body=%s", getattr(e, "code", None), body)
    except (urllib.error.URLError, OSError):
        logger.exception("Resend send failed")
    return EmailStatus.FAILED


def _send_smtp(
    *,
    to_email: str,
    subject: str,
    text_body: str,
    html_body: Optional[str],
) -> EmailStatus:
    """
    SMTP mode.
    Settings: smtp_host, smtp_port, smtp_username, smtp_password, smtp_use_tls, email_from
    """
    if not settings.smtp_host or not settings.smtp_username or not settings.smtp_password:
        logger.warning("SMTP email requested but SMTP_* settings are not fully configured; falling back to log mode.")
        return _log_email(to_email=to_email, subject=subject)

    msg = EmailMessage()
    msg["From"] = settings.email_from
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(text_body)

    if html_body:
        msg.add_alternative(html_body, subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_use_tls:
                server.starttls()
            server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)
        logger.info("Email sent via SMTP to=%s subject=%s", to_email, subject)
        return EmailStatus.SENT
    except (smtplib.SMTPException, OSError):
        logger.exception("SMTP send failed")
        return EmailStatus.FAILED


def _log_email(*, to_email: str, subject: str) -> EmailStatus:
    # Bodies can carry one-time links, so only the envelope is logged.
    logger.info("Email (log mode) to=%s subject=%s", to_email, subject)
    return EmailStatus.DISABLED


def send_email(
    *,
    to_email: str,
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
) -> EmailStatus:
    """
    Unified email send.

    Provider selection (settings.email_provider):
      - resend -> Resend API
      - smtp   -> SMTP using smtp_* settings
      - log    -> envelope written to the application log

    Never raises (best-effort): an invitation must not 500 because email hiccuped.
    """
    to_email = (to_email or "").strip()
    if not to_email:
        return EmailStatus.FAILED

    provider = (settings.email_provider or "log").strip().lower()

    if provider == "resend":
        return _send_resend(to_email=to_email, subject=subject, text_body=text_body, html_body=html_body)

    if provider == "smtp":
        return _send_smtp(to_email=to_email, subject=subject, text_body=text_body, html_body=html_body)

    return _log_email(to_email=to_email, subject=subject)
