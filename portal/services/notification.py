"""
Company Portal
In-app notifications.

Recipients are collaborator ``user_id`` values. Workflow events arrive
through ``workflow_notifications``, which broadcasts and then commits once
per event so the in-app rows and the e-mail log of that event land
together.
"""

from datetime import datetime, timezone

from sqlalchemy import func, select, update

from portal.core.exceptions import ValidationError
from portal.models import db
from portal.models.notification import (
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_SEVERITIES,
    Notification,
)


def _new(recipient, title, message, category, severity, entity_type, entity_id):
    if category not in NOTIFICATION_CATEGORIES:
        raise ValidationError(f"Unknown notification category: {category}", details={"category": category})
    if severity not in NOTIFICATION_SEVERITIES:
        raise ValidationError(f"Unknown notification severity: {severity}", details={"severity": severity})
    return Notification(
        recipient=recipient,
        title=title[:300],
        message=message or "",
        category=category,
        severity=severity,
        entity_type=entity_type,
        entity_id=entity_id,
    )


def _for(recipient, unread_only=False):
    stmt = select(Notification).where(Notification.recipient == recipient)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    return stmt


class NotificationService:
    """Stateless helpers over ``Notification`` rows."""

    # ── Write ─────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient, title, message="", category="workflow", severity="info",
               entity_type="", entity_id=None):
        """Store and commit one notification."""
        notif = _new(recipient, title, message, category, severity, entity_type, entity_id)
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def broadcast(*, recipients, title, message="", category="workflow", severity="info",
                  entity_type="", entity_id=None):
        """
        Queue the same notification for each distinct recipient.

        Rows are flushed, not committed: the caller decides when the event
        is complete.
        """
        created = [
            _new(r, title, message, category, severity, entity_type, entity_id)
            for r in dict.fromkeys(r for r in recipients or () if r)
        ]
        db.session.add_all(created)
        db.session.flush()
        return created

    # ── Read ──────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50, offset=0):
        """Return ``(page, total)``, newest first."""
        stmt = _for(recipient, unread_only)
        total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        page = db.session.execute(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit)
        ).scalars().all()
        return page, total

    @staticmethod
    def unread_count(recipient):
        stmt = _for(recipient, unread_only=True)
        return db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

    # ── Read tracking ─────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient=None):
        """Mark one notification read; ``None`` if missing or owned by someone else."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or (recipient is not None and notif.recipient != recipient):
            return None
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient):
        """Mark every unread notification of *recipient* read; returns how many changed."""
        result = db.session.execute(
            update(Notification)
            .where(Notification.recipient == recipient, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        )
        db.session.commit()
        return result.rowcount
