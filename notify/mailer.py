"""
notify/mailer.py -- Template-based mail dispatch over SMTP.

send(template_name, args, recipient) renders one of the named templates with
positional args and delivers it as multipart/alternative (plain text + HTML).

When SMTP_HOST is not configured the message is previewed in the log
instead. That counts as delivered in DEBUG (local development) and as a
failure otherwise, with a warning, so a misconfigured production deploy is
visible in the logs.

send() never raises. Callers treat a False return as "log and carry on".
"""

from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Optional, Sequence

from core.config import Settings, get_settings

logger = logging.getLogger("reviewdesk.notify")


@dataclass
class RenderedMail:
    subject: str
    text: str
    html: str


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_WRAPPER = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
{body}
</div>
"""


def _code_box(label: str, value: str) -> str:
    return (
        '<div style="background: #f5f5f5; padding: 20px; border-radius: 5px; margin: 20px 0;">'
        f"<strong>{html.escape(label)}:</strong>"
        f'<div style="font-size: 24px; letter-spacing: 2px; margin: 10px 0;">{html.escape(value)}</div>'
        "</div>"
    )


def admin_invite(app_name: str, code: str, email: str, role: str) -> RenderedMail:
    subject = f"{app_name} {role} invitation"
    body = (
        '<h2 style="color: #1a237e;">Organization Invitation</h2>'
        f"<p>You've been invited to join {html.escape(app_name)} as a <strong>{html.escape(role)}</strong>.</p>"
        + _code_box("Invite Code", code)
        + f"<p><strong>Registered Email:</strong> {html.escape(email)}</p>"
        "<p>This code expires in 24 hours.</p>"
    )
    text = (
        f"You've been invited to join {app_name} as a {role}.\n\n"
        f"Invite code: {code}\n"
        f"Registered email: {email}\n\n"
        "This code expires in 24 hours."
    )
    return RenderedMail(subject=subject, text=text, html=_WRAPPER.format(body=body))


def submission_confirmation(app_name: str, code: str, project_name: str) -> RenderedMail:
    subject = f"Your {app_name} submission code"
    body = (
        f'<h2 style="color: #1a237e;">Hello {html.escape(project_name)},</h2>'
        "<p>Your submission has been received successfully!</p>"
        + _code_box("Submission Code", code)
        + "<p>Keep this code safe for future reference.</p>"
    )
    text = (
        f"Hello {project_name},\n\n"
        "Your submission has been received successfully!\n\n"
        f"Submission code: {code}\n\n"
        "Keep this code safe for future reference."
    )
    return RenderedMail(subject=subject, text=text, html=_WRAPPER.format(body=body))


TEMPLATES: dict[str, Callable[..., RenderedMail]] = {
    "admin_invite": admin_invite,
    "submission_confirmation": submission_confirmation,
}


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class Mailer:
    """Renders a named template and hands it to SMTP.

    Usage:
        mailer = Mailer()
        mailer.send("admin_invite", [invite.code, invite.email, invite.role], invite.email)
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def render(self, template_name: str, args: Sequence[str]) -> RenderedMail:
        """Raises KeyError for an unknown template, TypeError for the wrong arg count."""
        return TEMPLATES[template_name](self.settings.app_name, *args)

    def send(self, template_name: str, args: Sequence[str], recipient: str) -> bool:
        """Render and deliver. Returns True on success, False on any failure."""
        try:
            mail = self.render(template_name, args)
        except (KeyError, TypeError):
            logger.error("Mail template %r could not be rendered", template_name)
            return False

        if not self.settings.smtp_host:
            logger.info("Mail preview to=%s subject=%r\n%s", recipient, mail.subject, mail.text)
            if self.settings.debug:
                return True
            logger.warning("SMTP not configured -- %s mail to %s was not delivered", template_name, recipient)
            return False

        try:
            self._deliver(mail, recipient)
        except Exception:
            logger.exception("Failed to send %s mail to %s", template_name, recipient)
            return False
        logger.info("%s mail sent to %s", template_name, recipient)
        return True

    def _deliver(self, mail: RenderedMail, recipient: str) -> None:
        sender = self.settings.mail_from or self.settings.smtp_username
        msg = MIMEMultipart("alternative")
        msg["Subject"] = mail.subject
        msg["From"] = f"{self.settings.app_name} <{sender}>"
        msg["To"] = recipient
        msg.attach(MIMEText(mail.text, "plain"))
        msg.attach(MIMEText(mail.html, "html"))

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            if self.settings.smtp_username:
                server.login(self.settings.smtp_username, self.settings.smtp_password)
            server.sendmail(sender, [recipient], msg.as_string())
