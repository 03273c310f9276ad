# backend/sunrise/services/invitation_email.py
from __future__ import annotations

from datetime import datetime
from html import escape
from urllib.parse import urlencode

from sunrise.core.config import settings
from sunrise.core.email import EmailStatus, send_email


def build_invitation_url(email: str, token: str) -> str:
    base = (settings.app_url or "http://localhost:3000").rstrip("/")
    return f"{base}/accept-invite?{urlencode({'token': token, 'email': email})}"


def send_invitation_email(
    *,
    to_email: str,
    invitee_name: str,
    inviter_name: str,
    invitation_url: str,
    expires_at: datetime,
) -> EmailStatus:
    app_name = settings.app_name
    expires_str = expires_at.strftime("%B %d, %Y")

    subject = f"You've been invited to join {app_name}"
    text = (
        f"Hi {invitee_name},\n\n"
        f"{inviter_name} has invited you to join {app_name}.\n\n"
        f"Accept your invitation and set your password here:\n{invitation_url}\n\n"
        f"This invitation expires on {expires_str}.\n\n"
        "If you weren't expecting this invitation, you can ignore this email."
    )
    html = (
        f"<p>Hi {escape(invitee_name)},</p>"
        f"<p>{escape(inviter_name)} has invited you to join {escape(app_name)}.</p>"
        f'<p><a href="{escape(invitation_url)}">Accept invitation</a></p>'
        f"<p>This invitation expires on {escape(expires_str)}.</p>"
    )

    return send_email(to_email=to_email, subject=subject, text_body=text, html_body=html)
