"""
Company Portal
Workflow e-mail.

Every workflow notification that reaches a mailbox goes through
``EmailService``: a named template is rendered with the request context
(HTML-escaped for the HTML part), an ``EmailLog`` row is written, and the
message is handed to SMTP. Without ``MAIL_SERVER`` nothing leaves the
process; the log row is marked sent so the audit trail still shows who
would have been mailed.

Settings: MAIL_SERVER, MAIL_PORT, MAIL_USE_TLS, MAIL_USERNAME,
MAIL_PASSWORD, MAIL_DEFAULT_SENDER.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any

from flask import current_app

from portal.models import db
from portal.models.notification import EmailLog

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30


class _SafeDict(dict):
    """Leaves unknown ``{placeholders}`` in place instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"


@dataclass(frozen=True)
class MailTemplate:
    subject: str
    banner: str | None = None

    def render(self, context: dict[str, Any]) -> tuple[str, str, str]:
        """Return ``(subject, html, text)`` for *context*."""
        raw = _SafeDict({k: str(v) for k, v in context.items()})
        escaped = _SafeDict({k: escape(v) for k, v in raw.items()})

        subject = self.subject.format_map(raw)
        banner = f'<p style="{_BANNER_STYLE}">{self.banner}</p>' if self.banner else ""
        html = _HTML_LAYOUT.format_map(_SafeDict(banner=banner, **escaped))
        text = _TEXT_LAYOUT.format_map(raw)
        if self.banner:
            text = f"{self.banner}\n\n{text}"
        return subject, html, text


# ── Layouts ─────────────────────────────────────────────────────────────────

_BANNER_STYLE = (
    "background:#f59e0b;color:#fff;display:inline-block;padding:4px 12px;"
    "border-radius:4px;font-size:12px;font-weight:600"
)

_HTML_LAYOUT = """\
<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">
  <h2 style="background:#1e293b;color:#fff;margin:0;padding:16px 24px;font-size:18px">Portal Corporativo</h2>
  <div style="background:#f8fafc;padding:24px;border:1px solid #e2e8f0">
    {banner}
    <h3 style="margin:0 0 8px;color:#1e293b">{title}</h3>
    <p style="color:#475569;line-height:1.6">{message}</p>
    <p style="color:#94a3b8;font-size:13px">Solicitação #{request_id} ({workflow_type})</p>
  </div>
  <p style="color:#94a3b8;font-size:12px;text-align:center">Mensagem automática do portal. Não responda este e-mail.</p>
</div>
"""

_TEXT_LAYOUT = """\
{title}

{message}

Solicitação #{request_id} ({workflow_type})
--
Mensagem automática do portal. Não responda este e-mail.
"""

_TEMPLATES: dict[str, MailTemplate] = {
    "workflow_event": MailTemplate(subject="[Portal] {title}"),
    "workflow_task": MailTemplate(
        subject="[Portal] Ação necessária: {title}",
        banner="AÇÃO NECESSÁRIA",
    ),
}


# ═══════════════════════════════════════════════════════════════════════════
#  Service
# ═══════════════════════════════════════════════════════════════════════════

class EmailService:
    """Renders workflow templates and records every outbound message."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> MailTemplate | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        template_name: str | None = None,
        category: str = "workflow",
        entity_id: str | None = None,
    ) -> EmailLog:
        """
        Write an ``EmailLog`` row and deliver the message.

        SMTP errors are recorded on the row (status ``failed``) rather
        than raised. The row is flushed, not committed; the caller owns
        the transaction.
        """
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject[:500],
            template_name=template_name,
            category=category,
            status="queued",
            entity_id=entity_id,
        )
        db.session.add(log)
        db.session.flush()

        if not cls.is_configured():
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email not sent (no MAIL_SERVER): to=%s subject=%r", to_email, subject)
            return log

        message = cls._build_message(to_email, to_name, subject, html_body, text_body)
        try:
            cls._smtp_deliver(message)
        except (smtplib.SMTPException, OSError) as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email to %s failed: %s", to_email, exc, extra={"request_key": entity_id})
        else:
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email sent: to=%s subject=%r", to_email, subject)
        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
        category: str = "workflow",
        entity_id: str | None = None,
    ) -> EmailLog | None:
        """Render *template_name* with *context* and send it; ``None`` if unknown."""
        template = cls.get_template(template_name)
        if template is None:
            logger.warning("Unknown email template %r; nothing sent to %s", template_name, to_email)
            return None

        subject, html_body, text_body = template.render(context)
        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            text_body=text_body,
            template_name=template_name,
            category=category,
            entity_id=entity_id,
        )

    # ── SMTP ────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_message(to_email, to_name, subject, html_body, text_body) -> MIMEMultipart:
        cfg = current_app.config
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{cfg['MAIL_SERVER']}"
        message["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        # Clients render the last alternative they support
        if text_body:
            message.attach(MIMEText(text_body, "plain", "utf-8"))
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    @staticmethod
    def _smtp_deliver(message: MIMEMultipart) -> None:
        cfg = current_app.config
        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(message)
