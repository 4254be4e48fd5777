"""Email service — delivers sign-in codes via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from jbfitness_auth.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Sends transactional emails using the configured SMTP server.

    Delivery never raises into the caller: every failure is logged and
    reported as ``False`` so the login flow can decide how to respond.
    """

    @property
    def is_configured(self) -> bool:
        return bool(settings.smtp_host and settings.smtp_from)

    async def send(
        self, to_email: str, subject: str, body: str, html: str | None = None
    ) -> bool:
        """Send one message and return whether the SMTP server accepted it."""
        if not self.is_configured:
            logger.error("Email service is not configured; cannot send to %s", to_email)
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.smtp_from
        msg["To"] = to_email
        msg.set_content(body)
        if html is not None:
            msg.add_alternative(html, subtype="html")

        try:
            await aiosmtplib.send(
                msg,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                start_tls=settings.smtp_start_tls,
            )
        except (aiosmtplib.SMTPException, OSError):
            logger.exception("Failed to send email to %s", to_email)
            return False

        logger.info("Email %r sent to %s", subject, to_email)
        return True

    async def send_login_otp(self, to_email: str, code: str, user_name: str) -> bool:
        """Send the sign-in verification code.

        Parameters
        ----------
        to_email:
            Recipient email address.
        code:
            The 6-digit one-time code.
        user_name:
            Name of the user (used in the greeting).
        """
        minutes = settings.otp_ttl_seconds // 60
        greeting = user_name or "there"
        subject = f"{settings.app_name} Sign-in Verification Code"
        body = (
            f"Hi {greeting},\n\n"
            f"Your {settings.app_name} verification code is {code}. "
            f"It expires in {minutes} minutes.\n\n"
            "If you did not try to sign in, you can ignore this email."
        )
        html = (
            f"<p>Hi {greeting},</p>"
            f"<p>Your {settings.app_name} verification code is:</p>"
            f'<h2 style="letter-spacing:4px;">{code}</h2>'
            f"<p>This code expires in {minutes} minutes.</p>"
        )
        return await self.send(to_email, subject, body, html=html)
