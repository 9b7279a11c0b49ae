"""Email delivery and notification email templates."""

import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from functools import partial
from typing import Any, Protocol

import structlog
from jinja2 import BaseLoader, Environment

from projecthub.config import Settings, get_settings
from projecthub.models.enums import NotificationType

logger = structlog.get_logger()

# Autoescaped: comment bodies and titles are user-provided
_jinja_env = Environment(loader=BaseLoader(), autoescape=True)


class EmailSender(Protocol):
    """Email sink. Failures are raised to the caller."""

    async def send_email(self, to: str, subject: str, html: str) -> None:
        ...


class SMTPEmailSender:
    """Send email through an SMTP relay configured in settings."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.smtp_host)

    async def send_email(self, to: str, subject: str, html: str) -> None:
        """Send an HTML email. Raises on SMTP failure."""
        if not self.enabled:
            logger.info("email_delivery_disabled", to=to, subject=subject)
            return

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self._send, to, subject, html))
        logger.info("email_sent", to=to, subject=subject)

    def _send(self, to: str, subject: str, html: str) -> None:
        settings = self.settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{settings.sender_name} <{settings.sender_email}>"
        msg["To"] = to

        # Plain text fallback
        msg.attach(MIMEText(subject, "plain"))
        msg.attach(MIMEText(html, "html"))

        password = settings.smtp_password.get_secret_value()
        with smtplib.SMTP(
            settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout
        ) as server:
            if settings.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if settings.smtp_username and password:
                server.login(settings.smtp_username, password)
            server.sendmail(settings.sender_email, to, msg.as_string())


# =============================================================================
# Templates
# =============================================================================

TASK_ASSIGNED_TEMPLATE = """\
<!DOCTYPE html>
<html>
<body style="font-family: 'Segoe UI', Tahoma, sans-serif; color: #333; background-color: #f4f4f5; margin: 0; padding: 0;">
  <div style="max-width: 600px; margin: 40px auto; background-color: #ffffff; border-radius: 8px; overflow: hidden;">
    <div style="background-color: #4F46E5; color: #ffffff; padding: 30px; text-align: center;">
      <h1 style="margin: 0; font-size: 24px;">New task assigned</h1>
    </div>
    <div style="padding: 40px 30px;">
      <p><strong>{{ actor_name }}</strong> assigned you a task in <strong>{{ project_name }}</strong>:</p>
      <p style="font-size: 18px;">{{ task_title }}</p>
      {% if link %}
      <div style="text-align: center;">
        <a href="{{ link }}" style="display: inline-block; background-color: #4F46E5; color: #ffffff; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 600;">View Task</a>
      </div>
      {% endif %}
    </div>
  </div>
</body>
</html>
"""

MENTIONED_TEMPLATE = """\
<div style="font-family: sans-serif; padding: 20px; color: #1e293b;">
  <h2 style="color: #4F46E5;">You were mentioned</h2>
  <p>{{ message }}</p>
  <div style="background: #f8fafc; padding: 15px; border-left: 4px solid #4F46E5; margin: 20px 0; font-style: italic; color: #475569;">
    "{{ comment_content }}"
  </div>
  {% if link %}
  <a href="{{ link }}" style="display: inline-block; padding: 12px 24px; background: #4F46E5; color: #fff; text-decoration: none; border-radius: 6px; font-weight: bold;">View Context</a>
  {% endif %}
</div>
"""

GENERIC_TEMPLATE = """\
<div style="font-family: sans-serif; padding: 20px;">
  <h2>{{ title }}</h2>
  <p>{{ message }}</p>
  {% if link %}
  <a href="{{ link }}" style="display: inline-block; padding: 10px 20px; background: #4F46E5; color: #fff; text-decoration: none; border-radius: 5px;">View Details</a>
  {% endif %}
</div>
"""


def render_template(template_str: str, variables: dict[str, Any]) -> str:
    """Render a Jinja2 template string with variables."""
    template = _jinja_env.from_string(template_str)
    return template.render(**variables)


def render_notification_email(
    notification_type: str,
    title: str,
    message: str,
    link: str | None,
    metadata: dict[str, Any] | None,
) -> str:
    """Render the HTML body for a notification email.

    Task assignments and mentions have dedicated templates; every other
    type shares the generic one.
    """
    metadata = metadata or {}

    if notification_type == NotificationType.TASK_ASSIGNED.value and metadata.get("task_title"):
        return render_template(
            TASK_ASSIGNED_TEMPLATE,
            {
                "task_title": metadata["task_title"],
                "project_name": metadata.get("project_name") or "Project",
                "actor_name": metadata.get("actor_name") or "A team member",
                "link": link,
            },
        )

    if notification_type == NotificationType.MENTIONED.value:
        return render_template(
            MENTIONED_TEMPLATE,
            {
                "message": message,
                "comment_content": metadata.get("comment_content", ""),
                "link": link,
            },
        )

    return render_template(
        GENERIC_TEMPLATE,
        {"title": title, "message": message, "link": link},
    )
