"""
tests/test_mailer.py -- Template rendering and the never-raise send contract.

SMTP is replaced with a MagicMock; nothing leaves the process.
"""

from __future__ import annotations

from email import message_from_string
from unittest.mock import MagicMock, patch

from core.config import get_settings
from notify.mailer import Mailer


def _mailer(**overrides) -> Mailer:
    return Mailer(get_settings().model_copy(update=overrides))


def test_invite_template_escapes_html():
    mail = _mailer(app_name="Desk").render("admin_invite", ["abc123", "a<b>@example.com", "admin"])
    assert mail.subject == "Desk admin invitation"
    assert "abc123" in mail.text
    assert "a&lt;b&gt;@example.com" in mail.html
    assert "<b>" not in mail.html


def test_confirmation_template():
    mail = _mailer().render("submission_confirmation", ["K7QX2M", "Lighthouse"])
    assert "K7QX2M" in mail.text
    assert "Hello Lighthouse" in mail.text


def test_unknown_template_or_wrong_args_return_false():
    mailer = _mailer(smtp_host="smtp.example.com")
    assert mailer.send("no_such_template", [], "a@example.com") is False
    assert mailer.send("admin_invite", ["only-one-arg"], "a@example.com") is False


def test_no_smtp_counts_as_sent_only_in_debug():
    assert _mailer(smtp_host="", debug=True).send("submission_confirmation", ["C", "P"], "a@example.com") is True
    assert _mailer(smtp_host="", debug=False).send("submission_confirmation", ["C", "P"], "a@example.com") is False


@patch("notify.mailer.smtplib.SMTP")
def test_delivers_multipart_over_starttls(mock_smtp):
    server = MagicMock()
    mock_smtp.return_value.__enter__.return_value = server
    mailer = _mailer(
        smtp_host="smtp.example.com",
        smtp_port=2525,
        smtp_username="mailer@example.com",
        smtp_password="hunter22",
        mail_from="noreply@example.com",
    )

    assert mailer.send("admin_invite", ["abc123", "new@example.com", "moderator"], "new@example.com") is True

    mock_smtp.assert_called_once_with("smtp.example.com", 2525, timeout=10)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer@example.com", "hunter22")
    sender, recipients, raw = server.sendmail.call_args[0]
    assert sender == "noreply@example.com"
    assert recipients == ["new@example.com"]
    parsed = message_from_string(raw)
    assert parsed.get_content_type() == "multipart/alternative"
    assert [p.get_content_type() for p in parsed.get_payload()] == ["text/plain", "text/html"]


@patch("notify.mailer.smtplib.SMTP")
def test_smtp_failure_returns_false(mock_smtp):
    mock_smtp.side_effect = OSError("connection refused")
    mailer = _mailer(smtp_host="smtp.example.com")
    assert mailer.send("submission_confirmation", ["C", "P"], "a@example.com") is False
