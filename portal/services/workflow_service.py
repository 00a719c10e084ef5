"""
Company Portal
Workflow request lifecycle engine.

Owns a request's status, assignee, archived flag and audit history:

    submit      → allocate number, seed history, notify submitter/owner/routes
    transition  → move forward through the definition's ordered stages
    assign      → hand the request to a collaborator
    add_comment → history-only entry
    archive     → one-way soft delete

Design decisions:
    - Stage legality is positional and resolved from the live definition on
      every call (``StageTable``); definitions are looked up by name.
    - History rows are only ever inserted, never rewritten, so concurrent
      writers on the same request all keep their entries.
    - Status changes are guarded by ``WHERE status = <status read>``; a
      concurrent transition that got there first turns ours into a
      ``ConflictError`` instead of a silent overwrite.
    - Notifications run after commit and can never undo a mutation.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from portal.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    UploadFailure,
    ValidationError,
)
from portal.models import db
from portal.models.workflow import RequestViewer, WorkflowHistoryEntry, WorkflowRequest
from portal.services import (
    cache_service,
    collaborator_service,
    definition_service,
    sequence_service,
    storage_service,
    workflow_notifications,
)
from portal.services.definition_service import StageTable

logger = logging.getLogger(__name__)

CREATED_NOTE = "Solicitação criada."
UPLOAD_ERROR_PREFIX = "Erro no upload"


def _utcnow():
    return datetime.now(timezone.utc)


def log_extra(wf_request, actor=None, **extra):
    data = {
        "request_key": wf_request.id,
        "workflow_request_id": wf_request.request_id,
        "workflow_type": wf_request.type,
    }
    if actor is not None:
        data["actor_id"] = actor.user_id
    data.update(extra)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Lookups & guards
# ═════════════════════════════════════════════════════════════════════════════


def get_request(key: str) -> WorkflowRequest:
    """Load a request by storage key, falling back to its display number."""
    wf_request = db.session.get(WorkflowRequest, key)
    if wf_request is None:
        wf_request = db.session.execute(
            select(WorkflowRequest).where(WorkflowRequest.request_id == key)
        ).scalar_one_or_none()
    if wf_request is None:
        raise NotFoundError("WorkflowRequest", key)
    return wf_request


def definition_for(wf_request: WorkflowRequest):
    """Resolve the live definition behind *wf_request* by name."""
    return definition_service.require_by_name(wf_request.type)


def stages_for(wf_request: WorkflowRequest) -> StageTable:
    definition = definition_for(wf_request)
    stages = StageTable.for_definition(definition)
    if wf_request.status not in stages:
        raise ConfigurationError(
            f"Stage '{wf_request.status}' no longer exists in definition '{definition.name}'",
            definition=definition.name,
        )
    return stages


def can_take_action(wf_request: WorkflowRequest, actor) -> bool:
    """Owner (by normalised email) or current assignee."""
    if actor is None:
        return False
    if collaborator_service.emails_match(actor.email, wf_request.owner_email):
        return True
    return bool(wf_request.assignee_id) and wf_request.assignee_id == actor.user_id


def require_action_rights(wf_request, actor):
    if not can_take_action(wf_request, actor):
        raise AuthorizationError(
            f"{actor.name} is neither the owner nor the assignee of request {wf_request.request_id}",
            actor_id=actor.user_id,
        )


def append_history(wf_request, *, actor, notes, kind, status=None, timestamp=None):
    """Insert one history row for *wf_request* (no commit)."""
    entry = WorkflowHistoryEntry(
        request_pk=wf_request.id,
        timestamp=timestamp or _utcnow(),
        status=status or wf_request.status,
        user_id=actor.user_id,
        user_name=actor.name,
        notes=notes or "",
        kind=kind,
    )
    db.session.add(entry)
    return entry


def commit_or_rollback(wf_request, operation):
    request_key = wf_request.id
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("%s failed to persist", operation, extra={"request_key": request_key})
        raise


# ═════════════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════════════


def _collect_form_data(definition, form_data, files, request_key, upload_timeout, uploaded):
    """Build the persisted form map from the definition's declared fields.

    Fields are processed in declaration order. A repeated field id is
    processed again and its later value replaces the earlier one; the
    repetition is logged because it almost always means an authoring slip.
    ``file`` fields upload with *upload_timeout*; a failed upload leaves
    an inline error string in place of the URL, and every stored file is
    appended to *uploaded*.
    """
    fields = [f for f in definition.fields if isinstance(f, dict) and f.get("id")]
    if not fields:
        return dict(form_data)

    values = {}
    seen = set()
    missing = []
    for field in fields:
        field_id = field["id"]
        if field_id in seen:
            logger.warning(
                "Duplicate field id '%s' in definition '%s'; the later field overwrites the earlier value",
                field_id, definition.name,
            )
        seen.add(field_id)

        if field.get("type") == "file":
            attachment = files.get(field_id)
            if attachment is None:
                if field_id in form_data:
                    values[field_id] = form_data[field_id]
                continue
            try:
                stored = storage_service.upload_with_timeout(attachment, request_key, upload_timeout)
                uploaded.append(stored)
                values[field_id] = stored.url
            except UploadFailure as exc:
                logger.warning("Keeping submission without attachment '%s': %s", field_id, exc.reason)
                values[field_id] = f"{UPLOAD_ERROR_PREFIX}: {exc.reason}"
            continue

        value = form_data.get(field_id)
        if field_id in form_data:
            values[field_id] = value
        if field.get("required") and (value is None or (isinstance(value, str) and not value.strip())):
            missing.append(field_id)

    missing = [m for m in dict.fromkeys(missing) if values.get(m) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={m: "required" for m in missing},
        )
    return values


def submit(definition, submitter_email, form_data=None, files=None, upload_timeout=None):
    """Create a request from *definition* (a name or a ``WorkflowDefinition``).

    Raises:
        ConfigurationError: definition unknown, inactive or without stages.
        AuthResolutionError: *submitter_email* matches no collaborator.
        AuthorizationError: the submitter is outside ``allowed_user_ids``.
        ValidationError: a required field is empty.
    """
    if definition is None or isinstance(definition, str):
        definition = definition_service.require_by_name(definition)
    if not definition.is_active:
        raise ConfigurationError(f"Workflow definition '{definition.name}' is inactive",
                                 definition=definition.name)
    stages = StageTable.for_definition(definition)
    submitter = collaborator_service.resolve_submitter(submitter_email)
    if not definition_service.can_submit(definition, submitter):
        raise AuthorizationError(
            f"{submitter.name} may not submit '{definition.name}' requests",
            actor_id=submitter.user_id,
        )

    request_key = str(uuid.uuid4())
    uploaded = []
    try:
        values = _collect_form_data(definition, form_data or {}, files or {}, request_key,
                                    upload_timeout, uploaded)
    except ValidationError:
        storage_service.discard(uploaded)
        raise

    cfg = current_app.config
    now = _utcnow()
    try:
        number = sequence_service.next_id(cfg["WORKFLOW_COUNTER_KEY"])
        wf_request = WorkflowRequest(
            id=request_key,
            request_id=sequence_service.format_request_id(number, cfg["REQUEST_ID_WIDTH"]),
            type=definition.name,
            status=stages.initial,
            owner_email=definition.owner_email,
            submitted_by_id=submitter.user_id,
            submitted_by_name=submitter.name,
            submitted_by_email=submitter.email,
            submitted_at=now,
            last_updated_at=now,
            sla_days=definition_service.resolve_sla_days(definition, values),
        )
        wf_request.form_data = values
        db.session.add(wf_request)
        append_history(wf_request, actor=submitter, notes=CREATED_NOTE, kind="created",
                       status=stages.initial, timestamp=now)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Request creation failed for '%s'", definition.name,
                         extra={"actor_id": submitter.user_id})
        storage_service.discard(uploaded)
        raise

    logger.info(
        "Request %s submitted (%s)", wf_request.request_id, definition.name,
        extra=log_extra(wf_request, submitter),
    )
    workflow_notifications.notify_request_created(
        wf_request,
        stages.label_for(stages.initial),
        definition_service.matching_routing_rules(definition, values),
    )
    return wf_request


# ═════════════════════════════════════════════════════════════════════════════
# Mutations
# ═════════════════════════════════════════════════════════════════════════════


def transition(key, target_status, actor_id, note=None):
    """Move *key* forward to *target_status*.

    Any later stage is accepted unless ``WORKFLOW_STRICT_NEXT_STAGE`` is
    set, in which case only the immediate successor is.
    """
    wf_request = get_request(key)
    actor = collaborator_service.resolve_actor(actor_id)
    stages = stages_for(wf_request)
    require_action_rights(wf_request, actor)

    current = stages.index_of(wf_request.status)
    target = stages.index_of(target_status)
    if target is None:
        raise ValidationError(
            f"Unknown stage '{target_status}'",
            details={"target_status": f"must be one of: {', '.join(stages.ids)}"},
        )
    if target <= current:
        raise ValidationError(
            f"Cannot move request {wf_request.request_id} from '{wf_request.status}' back to '{target_status}'",
            details={"target_status": "must be a later stage"},
        )
    if current_app.config.get("WORKFLOW_STRICT_NEXT_STAGE") and target != current + 1:
        raise ValidationError(
            f"Only the next stage '{stages.next_after(wf_request.status)}' is allowed",
            details={"target_status": "must be the next stage"},
        )

    previous = wf_request.status
    now = _utcnow()
    rows = db.session.execute(
        update(WorkflowRequest)
        .where(WorkflowRequest.id == wf_request.id, WorkflowRequest.status == previous)
        .values(status=target_status, last_updated_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    if rows == 0:
        message = f"Request {wf_request.request_id} is no longer at '{previous}'; reload and retry"
        db.session.rollback()
        raise ConflictError("WorkflowRequest", "status", previous, message=message)

    # viewed_by only tracks the initial stage
    db.session.execute(
        delete(RequestViewer)
        .where(RequestViewer.request_pk == wf_request.id)
        .execution_options(synchronize_session=False)
    )
    label = stages.label_for(target_status)
    append_history(
        wf_request, actor=actor, kind="transition", status=target_status, timestamp=now,
        notes=note or f"Status alterado para '{label}'.",
    )
    commit_or_rollback(wf_request, "transition")

    logger.info(
        "Request %s moved %s → %s", wf_request.request_id, previous, target_status,
        extra=log_extra(wf_request, actor, target_status=target_status),
    )
    workflow_notifications.notify_status_changed(wf_request, label, note)
    return wf_request


def assign(key, assignee_id, actor_id, note=None):
    """Assign *key* to *assignee_id*.

    Returns ``(request, warning)``; *warning* is set (and nothing changes)
    when the request is already with that collaborator.
    """
    wf_request = get_request(key)
    actor = collaborator_service.resolve_actor(actor_id)
    stages_for(wf_request)
    require_action_rights(wf_request, actor)

    assignee = collaborator_service.get_by_user_id(assignee_id)
    if assignee is None:
        raise ValidationError(f"Unknown collaborator '{assignee_id}'",
                              details={"assignee_id": "not found"})
    if wf_request.assignee_id == assignee.user_id:
        warning = f"A solicitação já está atribuída a {assignee.name}."
        logger.info("Assign no-op for %s", wf_request.request_id, extra=log_extra(wf_request, actor))
        return wf_request, warning

    now = _utcnow()
    wf_request.assignee_id = assignee.user_id
    wf_request.assignee_name = assignee.name
    wf_request.last_updated_at = now
    append_history(
        wf_request, actor=actor, kind="assignment", timestamp=now,
        notes=note or f"Solicitação atribuída a {assignee.name}.",
    )
    commit_or_rollback(wf_request, "assign")

    logger.info("Request %s assigned to %s", wf_request.request_id, assignee.user_id,
                extra=log_extra(wf_request, actor))
    workflow_notifications.notify_assigned(wf_request, assignee.name, note)
    return wf_request, None


def add_comment(key, actor_id, text):
    wf_request = get_request(key)
    actor = collaborator_service.resolve_actor(actor_id)
    text = (text or "").strip()
    if not text:
        raise ValidationError("Comment text is required", details={"text": "required"})
    require_action_rights(wf_request, actor)

    now = _utcnow()
    wf_request.last_updated_at = now
    append_history(wf_request, actor=actor, kind="comment", notes=text, timestamp=now)
    commit_or_rollback(wf_request, "add_comment")

    logger.info("Comment added to %s", wf_request.request_id, extra=log_extra(wf_request, actor))
    workflow_notifications.notify_comment_added(wf_request, actor.name, text)
    return wf_request


def archive(key, actor_id=None):
    """Soft-delete *key*. Archiving twice is a no-op; there is no un-archive."""
    wf_request = get_request(key)
    if wf_request.is_archived:
        return wf_request
    wf_request.is_archived = True
    commit_or_rollback(wf_request, "archive")
    logger.info("Request %s archived", wf_request.request_id,
                extra=log_extra(wf_request, actor_id=actor_id))
    return wf_request


def mark_viewed(user_id, request_keys) -> int:
    """Record *user_id* as having seen each request still at its initial stage.

    Returns the number of requests newly marked.
    """
    # Every key resolves before any viewer row is staged
    wf_requests = [get_request(key) for key in dict.fromkeys(request_keys or [])]
    marked = 0
    for wf_request in wf_requests:
        definition = definition_service.get_by_name(wf_request.type)
        if definition is None or not definition.statuses:
            logger.warning("Skipping view mark on %s: definition '%s' unavailable",
                           wf_request.request_id, wf_request.type)
            continue
        if wf_request.status != StageTable(definition.statuses).initial:
            continue
        if user_id in wf_request.viewed_by:
            continue
        db.session.add(RequestViewer(request_pk=wf_request.id, user_id=user_id))
        marked += 1
    if not marked:
        return 0
    try:
        db.session.commit()
    except IntegrityError:
        # Another session marked the same request first
        db.session.rollback()
        logger.info("Concurrent view mark for user %s; keeping the existing rows", user_id)
        return 0
    return marked


# ═════════════════════════════════════════════════════════════════════════════
# Read model
# ═════════════════════════════════════════════════════════════════════════════


def _sorted_desc(rows):
    return sorted(rows, key=lambda r: (r.submitted_at, r.request_id), reverse=True)


def _load_request_list(owner_email, assignee_id, submitted_by, include_archived, archived_only):
    stmt = select(WorkflowRequest)
    if archived_only:
        stmt = stmt.where(WorkflowRequest.is_archived.is_(True))
    elif not include_archived:
        stmt = stmt.where(WorkflowRequest.is_archived.is_(False))
    if assignee_id:
        stmt = stmt.where(WorkflowRequest.assignee_id == assignee_id)
    if submitted_by:
        stmt = stmt.where(WorkflowRequest.submitted_by_id == submitted_by)
    rows = db.session.execute(stmt).scalars().all()
    if owner_email:
        rows = [r for r in rows if collaborator_service.emails_match(r.owner_email, owner_email)]
    return [r.to_dict() for r in _sorted_desc(rows)]


def list_requests(owner_email=None, assignee_id=None, submitted_by=None,
                  include_archived=True, archived_only=False) -> list[dict]:
    """Requests as dicts, newest submission first, served through the cache."""
    owner_email = collaborator_service.normalize_email(owner_email)
    key = cache_service.request_list_key(
        owner=owner_email, assignee=assignee_id, submitted_by=submitted_by,
        archived="only" if archived_only else ("yes" if include_archived else "no"),
    )
    return cache_service.get_cached(
        key,
        ttl=cache_service.REQUEST_LIST_TTL,
        loader=lambda: _load_request_list(
            owner_email, assignee_id, submitted_by, include_archived, archived_only,
        ),
    )


def list_assigned_tasks(user_id) -> list[WorkflowRequest]:
    """Non-archived requests currently assigned to *user_id* ("my tasks")."""
    rows = db.session.execute(
        select(WorkflowRequest).where(
            WorkflowRequest.assignee_id == user_id,
            WorkflowRequest.is_archived.is_(False),
        )
    ).scalars().all()
    return _sorted_desc(rows)


def has_new_assigned_tasks(user_id) -> bool:
    """True when an assigned, unarchived request sits unseen at its initial stage."""
    initial_by_type = {}
    for wf_request in list_assigned_tasks(user_id):
        if wf_request.type not in initial_by_type:
            definition = definition_service.get_by_name(wf_request.type)
            statuses = definition.statuses if definition else []
            initial_by_type[wf_request.type] = StageTable(statuses).initial if statuses else None
        if wf_request.status == initial_by_type[wf_request.type] and user_id not in wf_request.viewed_by:
            return True
    return False


def next_stage(wf_request) -> str | None:
    """The stage the UI offers next, or ``None`` at a terminal stage."""
    return stages_for(wf_request).next_after(wf_request.status)


def describe(wf_request) -> dict:
    """Full request payload plus stage labels resolved from the live definition."""
    data = wf_request.to_dict()
    definition = definition_service.get_by_name(wf_request.type)
    stages = StageTable(definition.statuses if definition else [])
    data["status_label"] = stages.label_for(wf_request.status)
    data["next_stage"] = stages.next_after(wf_request.status)
    data["is_terminal"] = stages.is_terminal(wf_request.status)
    data["current_action"] = stages.action_for(wf_request.status)
    return data
