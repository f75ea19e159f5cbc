"""Outbound email - password reset messages over SMTP."""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from keepintouch.config import settings
from keepintouch.core.exceptions import EmailDeliveryError
from keepintouch.models.user import User

logger = logging.getLogger(__name__)

_RESET_HTML = """\
<html>
  <body>
    <h1>Reset your password</h1>
    <p>Hi {first_name},</p>
    <p>We received a request to reset your {app_name} password.
       This link expires in {expires_minutes} minutes.</p>
    <p><a class="button" href="{url}">Reset password</a></p>
    <p class="url-fallback">If the button does not work, open this address: {url}</p>
    <p class="warning">If you did not ask for a reset you can ignore this email.</p>
    {support}
  </body>
</html>
"""

_RESET_TEXT = """\
Reset your password

Hi {first_name},

We received a request to reset your {app_name} password.
This link expires in {expires_minutes} minutes.

{url}

If you did not ask for a reset you can ignore this email.
{support}"""


class EmailService:
    """SMTP sender; logs instead of sending when SMTP is not configured."""

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "Keep in Touch",
        support_email: Optional[str] = None,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.support_email = support_email

    @classmethod
    def from_settings(cls) -> "EmailService":
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            smtp_use_tls=settings.SMTP_USE_TLS,
            from_email=settings.EMAIL_FROM,
            from_name=settings.APP_NAME,
            support_email=settings.SUPPORT_EMAIL,
        )

    @property
    def is_configured(self) -> bool:
        """Check if email sending is properly configured."""
        return bool(self.smtp_host and self.from_email)

    @staticmethod
    def _redact_email(email: str) -> str:
        if "@" not in email:
            return "redacted"
        local, domain = email.split("@", 1)
        return f"{local[:2]}***@{domain}"

    def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        """
        Send one message

        Raises:
            EmailDeliveryError: SMTP connection, auth or delivery failed
        """
        if not self.is_configured:
            logger.info(
                "Email not sent (SMTP not configured): to=%s subject=%s body=%s",
                self._redact_email(to_email),
                subject,
                text_body[:200],
            )
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"Could not send email to {self._redact_email(to_email)}: {exc}") from exc

        logger.info("Email sent: to=%s subject=%s", self._redact_email(to_email), subject)

    def render_password_reset(self, user: User, reset_url: str) -> tuple:
        """Return (subject, html_body, text_body) for a reset email"""
        first_name = (user.name or user.username).split(" ")[0]
        support = f"Questions? Contact {self.support_email}." if self.support_email else ""
        values = {
            "first_name": first_name,
            "app_name": self.from_name,
            "expires_minutes": settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES,
            "url": reset_url,
            "support": support,
        }
        html_values = {key: html.escape(str(value)) for key, value in values.items()}
        if support:
            html_values["support"] = f"<p>{html.escape(support)}</p>"
        subject = f"Reset Your Password - {self.from_name}"
        return subject, _RESET_HTML.format(**html_values), _RESET_TEXT.format(**values)

    def send_password_reset_email(self, user: User, reset_url: str) -> None:
        """
        Email a password reset link to user

        Raises:
            EmailDeliveryError: Delivery failed
        """
        subject, html_body, text_body = self.render_password_reset(user, reset_url)
        self.send(user.email, subject, html_body, text_body)


def get_email_service() -> EmailService:
    """Dependency returning an EmailService built from settings"""
    return EmailService.from_settings()
