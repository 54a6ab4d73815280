"""
mail/sender.py -- Outbound email for the registration flow.

InvitationMailer delivers the registration link created by
POST /api/v1/auth/invite. Delivery uses smtplib against the configured SMTP
relay; SMTP errors (smtplib.SMTPException, OSError) propagate to the caller.

When SMTP_HOST is empty (local development) no connection is opened and the
link is written to the log instead, so an invitation can still be completed
by hand.

Layer rule: imports only stdlib and core/.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from core.config import Settings, get_settings

logger = logging.getLogger("userhub.mail")

_INVITATION_SUBJECT = "You have been invited to UserHub"


class InvitationMailer:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def registration_link(self, hash: str) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}/register/{hash}"

    def build_invitation(self, email: str, hash: str) -> EmailMessage:
        link = self.registration_link(hash)
        msg = EmailMessage()
        msg["Subject"] = _INVITATION_SUBJECT
        msg["From"] = self.settings.mail_from
        msg["To"] = email
        msg.set_content(
            "Hello,\n\n"
            "you have been invited to create a UserHub account.\n"
            f"Complete your registration here:\n\n  {link}\n\n"
            "If you did not expect this invitation you can ignore this email.\n"
        )
        return msg

    def send_user_invitation(self, email: str, hash: str) -> None:
        """Send the registration link for hash to email."""
        cfg = self.settings
        if not cfg.smtp_host:
            logger.info("SMTP not configured; invitation link for %s: %s", email, self.registration_link(hash))
            return

        msg = self.build_invitation(email, hash)
        with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=10) as smtp:
            if cfg.smtp_starttls:
                smtp.starttls()
            if cfg.smtp_username:
                smtp.login(cfg.smtp_username, cfg.smtp_password)
            smtp.send_message(msg)
        logger.info("Invitation sent to %s", email)
