"""
Company Portal
Workflow domain model.

Models:
    - WorkflowDefinition: administrator-authored template (ordered stages,
      form fields, routing/SLA rules, submit ACL). Read-only to the engine.
    - WorkflowRequest: one running instance of a definition.
    - WorkflowHistoryEntry: append-only audit trail of a request.
    - ActionRequest: per-user approval/acknowledgement/execution record
      scoped to (request, stage).
    - RequestViewer: the ``viewed_by`` set of a request.
    - SequenceCounter: named counter backing human-facing request numbers.

Requests reference their definition by *name* (``type``), not by FK:
definitions are mutable configuration and are resolved at use-time.
"""

import json
import uuid
from datetime import datetime, timedelta, timezone

from portal.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ACTION_TYPES = ("approval", "acknowledgement", "execution")

# Responses accepted for each declared action type
ACTION_RESPONSES = {
    "approval": frozenset({"approved", "rejected"}),
    "acknowledgement": frozenset({"acknowledged"}),
    "execution": frozenset({"executed"}),
}

ACTION_STATUSES = frozenset({"pending", "approved", "rejected", "acknowledged", "executed"})

HISTORY_KINDS = frozenset({
    "created",
    "transition",
    "assignment",
    "comment",
    "action_requested",
    "action_response",
})

FIELD_TYPES = frozenset({
    "text", "textarea", "number", "date", "date-range", "select", "checkbox", "file", "email",
})


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _loads(raw, fallback):
    try:
        value = json.loads(raw) if raw else fallback
    except (json.JSONDecodeError, TypeError):
        return fallback
    return value if value is not None else fallback


# ═════════════════════════════════════════════════════════════════════════════
# Definition
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowDefinition(db.Model):
    """
    Workflow template.

    ``statuses`` is an ordered list of ``{id, label, action?}``; the first
    entry is the initial stage and order is significant. JSON columns are
    stored as text for SQLite/PostgreSQL portability.
    """

    __tablename__ = "workflow_definitions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    description = db.Column(db.Text, default="")
    area_id = db.Column(db.String(64), nullable=True, index=True)
    owner_email = db.Column(db.String(200), nullable=False, comment="Receives ownership notifications")
    statuses_json = db.Column(db.Text, nullable=False, default="[]")
    fields_json = db.Column(db.Text, nullable=False, default="[]")
    routing_rules_json = db.Column(db.Text, nullable=False, default="[]")
    sla_rules_json = db.Column(db.Text, nullable=False, default="[]")
    allowed_user_ids_json = db.Column(db.Text, nullable=False, default='["all"]')
    default_sla_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── JSON accessors ───────────────────────────────────────────────────

    @property
    def statuses(self) -> list:
        return _loads(self.statuses_json, [])

    @statuses.setter
    def statuses(self, value):
        self.statuses_json = json.dumps(value or [], ensure_ascii=False)

    @property
    def fields(self) -> list:
        return _loads(self.fields_json, [])

    @fields.setter
    def fields(self, value):
        self.fields_json = json.dumps(value or [], ensure_ascii=False)

    @property
    def routing_rules(self) -> list:
        return _loads(self.routing_rules_json, [])

    @routing_rules.setter
    def routing_rules(self, value):
        self.routing_rules_json = json.dumps(value or [], ensure_ascii=False)

    @property
    def sla_rules(self) -> list:
        return _loads(self.sla_rules_json, [])

    @sla_rules.setter
    def sla_rules(self, value):
        self.sla_rules_json = json.dumps(value or [], ensure_ascii=False)

    @property
    def allowed_user_ids(self) -> list:
        return _loads(self.allowed_user_ids_json, ["all"])

    @allowed_user_ids.setter
    def allowed_user_ids(self, value):
        self.allowed_user_ids_json = json.dumps(value or ["all"], ensure_ascii=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "area_id": self.area_id,
            "owner_email": self.owner_email,
            "statuses": self.statuses,
            "fields": self.fields,
            "routing_rules": self.routing_rules,
            "sla_rules": self.sla_rules,
            "allowed_user_ids": self.allowed_user_ids,
            "default_sla_days": self.default_sla_days,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<WorkflowDefinition {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# Request instance
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowRequest(db.Model):
    """
    Running workflow instance.

    ``id`` is the storage key; ``request_id`` is the zero-padded,
    display-facing sequential number. ``owner_email`` is copied from the
    definition at creation and never re-resolved.
    """

    __tablename__ = "workflow_requests"
    __table_args__ = (
        db.Index("idx_wfreq_owner_archived", "owner_email", "is_archived"),
        db.Index("idx_wfreq_assignee", "assignee_id"),
        db.Index("idx_wfreq_submitted_at", "submitted_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = db.Column(db.String(20), nullable=False, unique=True)
    type = db.Column(db.String(200), nullable=False, index=True, comment="Definition name")
    status = db.Column(db.String(100), nullable=False)
    owner_email = db.Column(db.String(200), nullable=False)

    submitted_by_id = db.Column(db.String(64), nullable=False, index=True)
    submitted_by_name = db.Column(db.String(200), nullable=False)
    submitted_by_email = db.Column(db.String(200), nullable=False)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    last_updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    form_data_json = db.Column(db.Text, nullable=False, default="{}")

    assignee_id = db.Column(db.String(64), nullable=True)
    assignee_name = db.Column(db.String(200), nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    sla_days = db.Column(db.Integer, nullable=True, comment="Resolved at submission; informational")

    history = db.relationship(
        "WorkflowHistoryEntry",
        back_populates="request",
        order_by=lambda: [WorkflowHistoryEntry.timestamp, WorkflowHistoryEntry.id],
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    action_requests = db.relationship(
        "ActionRequest",
        back_populates="request",
        order_by="ActionRequest.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    viewers = db.relationship(
        "RequestViewer",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def form_data(self) -> dict:
        return _loads(self.form_data_json, {})

    @form_data.setter
    def form_data(self, value):
        self.form_data_json = json.dumps(value or {}, ensure_ascii=False, default=str)

    @property
    def assignee(self):
        if not self.assignee_id:
            return None
        return {"id": self.assignee_id, "name": self.assignee_name}

    @property
    def viewed_by(self) -> set:
        return {v.user_id for v in self.viewers}

    @property
    def due_at(self):
        if self.sla_days is None or self.submitted_at is None:
            return None
        return self.submitted_at + timedelta(days=self.sla_days)

    def actions_for_stage(self, stage_id):
        return [a for a in self.action_requests if a.stage_id == stage_id]

    def to_dict(self, include_history=True):
        grouped: dict[str, list] = {}
        for action in self.action_requests:
            grouped.setdefault(action.stage_id, []).append(action.to_dict())
        data = {
            "id": self.id,
            "request_id": self.request_id,
            "type": self.type,
            "status": self.status,
            "owner_email": self.owner_email,
            "submitted_by": {
                "user_id": self.submitted_by_id,
                "user_name": self.submitted_by_name,
                "user_email": self.submitted_by_email,
            },
            "submitted_at": _iso(self.submitted_at),
            "last_updated_at": _iso(self.last_updated_at),
            "form_data": self.form_data,
            "assignee": self.assignee,
            "viewed_by": sorted(self.viewed_by),
            "is_archived": bool(self.is_archived),
            "action_requests": grouped,
            "sla_days": self.sla_days,
            "due_at": _iso(self.due_at),
        }
        if include_history:
            data["history"] = [h.to_dict() for h in self.history]
        return data

    def __repr__(self):
        return f"<WorkflowRequest {self.request_id}: {self.type} [{self.status}]>"


class WorkflowHistoryEntry(db.Model):
    """
    Immutable history entry.

    One row per appended entry: concurrent writers each insert their own
    row, so no append is ever lost to a read-modify-write of the whole list.
    """

    __tablename__ = "workflow_history"
    __table_args__ = (
        db.Index("idx_wfhist_request_ts", "request_pk", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_pk = db.Column(
        db.String(36), db.ForeignKey("workflow_requests.id", ondelete="CASCADE"), nullable=False,
    )
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    status = db.Column(db.String(100), nullable=False, comment="Request status after this entry")
    user_id = db.Column(db.String(64), nullable=False)
    user_name = db.Column(db.String(200), nullable=False, default="")
    notes = db.Column(db.Text, default="")
    kind = db.Column(db.String(30), nullable=False, default="comment")

    request = db.relationship("WorkflowRequest", back_populates="history")

    def to_dict(self):
        return {
            "timestamp": _iso(self.timestamp),
            "status": self.status,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "notes": self.notes or "",
            "kind": self.kind,
        }


class ActionRequest(db.Model):
    """
    Per-user action record inside a stage.

    Business rules:
    - One record per (request, stage, user), enforced by a unique constraint.
    - Once status leaves 'pending' the record is only touched by that same
      response write.
    """

    __tablename__ = "workflow_action_requests"
    __table_args__ = (
        db.UniqueConstraint("request_pk", "stage_id", "user_id", name="uq_action_request_stage_user"),
        db.Index("idx_action_user_status", "user_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_pk = db.Column(
        db.String(36), db.ForeignKey("workflow_requests.id", ondelete="CASCADE"), nullable=False,
    )
    stage_id = db.Column(db.String(100), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    user_name = db.Column(db.String(200), nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | approved | rejected | acknowledged | executed")
    requested_by = db.Column(db.String(64), nullable=True)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    attachment_url = db.Column(db.String(500), nullable=True)
    attachment_name = db.Column(db.String(255), nullable=True)

    request = db.relationship("WorkflowRequest", back_populates="action_requests")

    @property
    def is_pending(self):
        return self.status == "pending"

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "status": self.status,
            "requested_at": _iso(self.requested_at),
            "responded_at": _iso(self.responded_at),
            "comment": self.comment,
            "attachment_url": self.attachment_url,
        }


class RequestViewer(db.Model):
    __tablename__ = "workflow_request_viewers"
    __table_args__ = (
        db.UniqueConstraint("request_pk", "user_id", name="uq_request_viewer"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_pk = db.Column(
        db.String(36), db.ForeignKey("workflow_requests.id", ondelete="CASCADE"), nullable=False,
    )
    user_id = db.Column(db.String(64), nullable=False)
    viewed_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    request = db.relationship("WorkflowRequest", back_populates="viewers")


class SequenceCounter(db.Model):
    """Named monotonically increasing counter (one row per key)."""

    __tablename__ = "sequence_counters"

    key = db.Column(db.String(100), primary_key=True)
    current_number = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<SequenceCounter {self.key}={self.current_number}>"
