"""
Company Portal
Messaging models.

    Notification  one in-app message per recipient per workflow event
    EmailLog      audit row for every outbound e-mail (sent, failed or log-only)

Both point back at the workflow request through ``entity_id`` (its storage
key) without a foreign key.
"""

from datetime import datetime, timezone

from portal.models import db

NOTIFICATION_CATEGORIES = {"workflow", "task", "action", "system"}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Notification(db.Model):
    """In-app message addressed to a collaborator ``user_id``."""

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_recipient_unread", "recipient", "is_read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="workflow")
    severity = db.Column(db.String(20), default="info")

    entity_type = db.Column(db.String(30), default="")
    entity_id = db.Column(db.String(36), nullable=True)

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def mark_read(self):
        self.is_read = True
        self.read_at = _utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "severity": self.severity,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": bool(self.is_read),
            "read_at": _iso(self.read_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id} to {self.recipient}: {self.title[:40]}>"


class EmailLog(db.Model):
    """One row per outbound e-mail; ``status`` is queued, sent or failed."""

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True)
    category = db.Column(db.String(30), default="workflow")
    status = db.Column(db.String(20), default="queued")
    error_message = db.Column(db.Text, nullable=True)
    entity_id = db.Column(db.String(36), nullable=True, index=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "template_name": self.template_name,
            "category": self.category,
            "status": self.status,
            "error_message": self.error_message,
            "entity_id": self.entity_id,
            "sent_at": _iso(self.sent_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<EmailLog {self.id} {self.status} to {self.recipient_email}>"
