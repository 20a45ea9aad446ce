"""
Tests for notification rendering and delivery.
"""

from __future__ import annotations

import smtplib
from dataclasses import replace

import pytest

from core.listing import AutoRejection, RejectionReason, VerificationStatus
from core.notifications import LogNotifier, MessageRenderer, SmtpNotifier, build_notifier
from core.otp import CodePurpose


class FakeSMTP:
    """Captures messages instead of talking to a relay."""

    sent: list = []
    fail = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, message):
        if FakeSMTP.fail:
            raise smtplib.SMTPException("relay refused")
        FakeSMTP.sent.append(message)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail = False
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


@pytest.fixture
def renderer(config):
    return MessageRenderer(config=config)


class TestMessageRenderer:
    """Tests for template rendering."""

    def test_contact_code(self, renderer):
        message = renderer.render_code("+919812345678", "Arun", "042917", CodePurpose.PROPERTY_CONTACT)

        assert message.to == "+919812345678"
        assert "Hello Arun" in message.body
        assert "042917" in message.body
        assert "expires in 5 minutes and can be tried 3 times" in message.body

    def test_password_reset_code_uses_longer_expiry(self, renderer):
        message = renderer.render_code("a@example.com", "", "123456", CodePurpose.PASSWORD_RESET)

        assert "Hello there" in message.body
        assert "reset your password" in message.body
        assert "expires in 10 minutes" in message.body

    def test_verified_outcome(self, renderer, make_listing, agent):
        prop = make_listing()
        message = renderer.render_verification_outcome(agent, prop, VerificationStatus.VERIFIED)

        assert message.to == "priya@agency.example"
        assert "is verified" in message.subject
        assert "TN/CBE/2023/003" in message.body

    def test_rejected_outcome_includes_reason(self, renderer, make_listing, agent, clock):
        prop = replace(
            make_listing(),
            verification_status=VerificationStatus.REJECTED,
            verification_details=AutoRejection(
                rejected_at=clock(),
                rejection_reason=RejectionReason.IDENTIFIER_NOT_FOUND,
                rejection_notes="Parcel TN/CBE/2023/003 not found in the land registry",
            ),
        )
        message = renderer.render_verification_outcome(agent, prop, VerificationStatus.REJECTED)

        assert "could not be verified" in message.subject
        assert "Reason: identifier_not_found" in message.body
        assert "not found in the land registry" in message.body

    def test_contact_alert(self, renderer, make_listing):
        message = renderer.render_contact_alert(
            "admin@example.com", "Admin", make_listing(), "visitor@example.com"
        )
        assert "visitor@example.com" in message.body
        assert message.subject.startswith("New contact request")


class TestNotifiers:
    """Tests for the log and SMTP transports."""

    def test_build_notifier_defaults_to_log(self, config):
        assert isinstance(build_notifier(config), LogNotifier)
        assert isinstance(build_notifier(replace(config, notifier="smtp")), SmtpNotifier)

    def test_log_notifier_always_succeeds(self, renderer):
        notifier = LogNotifier(renderer)
        assert notifier.send_code("+919812345678", "Arun", "111111", CodePurpose.PROPERTY_CONTACT).success

    def test_unsupported_destination(self, renderer):
        result = LogNotifier(renderer).send_code("nowhere", "", "111111", CodePurpose.PROPERTY_CONTACT)
        assert not result.success

    def test_smtp_sends_email(self, config, fake_smtp):
        notifier = SmtpNotifier(replace(config, mail_from="noreply@example.com"))
        result = notifier.send_code("buyer@example.com", "Arun", "222222", CodePurpose.PROPERTY_CONTACT)

        assert result.success
        sent = fake_smtp.sent[0]
        assert sent["To"] == "buyer@example.com"
        assert sent["From"] == "noreply@example.com"
        assert "222222" in sent.get_content()

    def test_smtp_refuses_phone(self, config, fake_smtp):
        result = SmtpNotifier(config).send_code("+919812345678", "", "333333", CodePurpose.PROPERTY_CONTACT)

        assert not result.success
        assert fake_smtp.sent == []

    def test_smtp_failure_is_reported(self, config, fake_smtp):
        fake_smtp.fail = True
        result = SmtpNotifier(config).send_code("buyer@example.com", "", "444444", CodePurpose.PROPERTY_CONTACT)

        assert not result.success
        assert "relay refused" in result.error
