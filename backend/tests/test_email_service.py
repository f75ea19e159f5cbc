import logging
import smtplib

import pytest

from keepintouch.core.exceptions import EmailDeliveryError
from keepintouch.models.user import User
from keepintouch.services import email_service as email_module
from keepintouch.services.email_service import EmailService


def _user():
    return User(username="alice", name="Alice <Liddell>", email="alice@example.com")


def test_render_password_reset_escapes_html():
    service = EmailService(from_name="Keep in Touch", support_email="help@example.com")
    subject, html_body, text_body = service.render_password_reset(_user(), "https://app/reset-password?token=abc&x=1")

    assert subject == "Reset Your Password - Keep in Touch"
    assert "Hi Alice," in text_body
    assert "https://app/reset-password?token=abc&x=1" in text_body
    assert "token=abc&amp;x=1" in html_body
    assert "Contact help@example.com" in html_body
    assert "15 minutes" in text_body


def test_unconfigured_service_logs_instead_of_sending(caplog):
    service = EmailService()
    assert service.is_configured is False

    with caplog.at_level(logging.INFO):
        service.send_password_reset_email(_user(), "https://app/reset-password?token=abc")
    assert "SMTP not configured" in caplog.text
    assert "al***@example.com" in caplog.text


def test_smtp_failure_raises_delivery_error(monkeypatch):
    class BrokenSMTP:
        def __init__(self, *args, **kwargs):
            raise smtplib.SMTPConnectError(421, "down")

    monkeypatch.setattr(email_module.smtplib, "SMTP", BrokenSMTP)
    service = EmailService(smtp_host="smtp.example.com", from_email="noreply@example.com")

    with pytest.raises(EmailDeliveryError):
        service.send("alice@example.com", "subject", "<p>hi</p>", "hi")
