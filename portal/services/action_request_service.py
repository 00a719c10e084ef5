"""
Company Portal
Action-request sub-protocol.

A stage whose definition carries an ``action`` (approval, acknowledgement
or execution) can ask specific collaborators to respond individually,
independently of who later advances the request. Records are scoped to
``(request, stage, user)``; once the request leaves the stage they stay as
history but are no longer actionable.

Business rules:
    - Fan-out is idempotent: recipients that already hold a record for the
      current stage (pending or resolved) are skipped, and an all-skipped
      call is a no-op rather than an error.
    - The response must match the action type
      (approval → approved|rejected, acknowledgement → acknowledged,
      execution → executed).
    - The attachment is stored *before* the record is finalised; if the
      upload fails the record stays pending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from portal.core.exceptions import ConflictError, ValidationError
from portal.models import db
from portal.models.workflow import ACTION_RESPONSES, ActionRequest, WorkflowRequest
from portal.services import collaborator_service, storage_service, workflow_notifications
from portal.services.workflow_service import (
    append_history,
    commit_or_rollback,
    get_request,
    log_extra,
    require_action_rights,
    stages_for,
)

logger = logging.getLogger(__name__)

RESPONSE_VERBS = {
    "approved": "aprovou",
    "rejected": "reprovou",
    "acknowledged": "confirmou ciência de",
    "executed": "executou",
}


@dataclass
class FanoutResult:
    """Outcome of ``open_action_request``."""

    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.created

    def to_dict(self):
        return {"created": self.created, "skipped": self.skipped, "is_noop": self.is_noop}


def _utcnow():
    return datetime.now(timezone.utc)


def _current_action(wf_request, stages):
    action = stages.action_for(wf_request.status)
    if action is None:
        raise ValidationError(
            f"Stage '{wf_request.status}' does not require any action",
            details={"status": "no action configured"},
        )
    return action


def list_current_actions(wf_request) -> list[ActionRequest]:
    """Action records of the request's current stage only."""
    return wf_request.actions_for_stage(wf_request.status)


def _pending_fanout(wf_request, wanted) -> FanoutResult:
    existing = {a.user_id for a in wf_request.actions_for_stage(wf_request.status)}
    return FanoutResult(
        created=[uid for uid in wanted if uid not in existing],
        skipped=[uid for uid in wanted if uid in existing],
    )


def open_action_request(key, recipient_ids, actor_id) -> FanoutResult:
    """Ask each of *recipient_ids* to respond to the current stage's action.

    A concurrent fan-out that lands first only shrinks ``created``: the
    recipients are recomputed once against the committed records.
    """
    wanted = list(dict.fromkeys(str(r).strip() for r in recipient_ids or [] if str(r).strip()))
    if not wanted:
        raise ValidationError("At least one recipient is required",
                              details={"recipient_ids": "required"})

    wf_request = get_request(key)
    actor = collaborator_service.resolve_actor(actor_id)
    require_action_rights(wf_request, actor)

    people = collaborator_service.get_many_by_user_ids(wanted)
    unknown = [uid for uid in wanted if uid not in people]
    if unknown:
        raise ValidationError(
            f"Unknown recipients: {', '.join(unknown)}",
            details={"recipient_ids": {uid: "not found" for uid in unknown}},
        )

    for attempt in range(2):
        action = _current_action(wf_request, stages_for(wf_request))
        stage_id = wf_request.status
        result = _pending_fanout(wf_request, wanted)
        if result.is_noop:
            logger.info("Action fan-out on %s skipped every recipient", wf_request.request_id,
                        extra=log_extra(wf_request, actor))
            return result

        now = _utcnow()
        for uid in result.created:
            db.session.add(ActionRequest(
                request_pk=wf_request.id,
                stage_id=stage_id,
                user_id=uid,
                user_name=people[uid].name,
                status="pending",
                requested_by=actor.user_id,
                requested_at=now,
            ))
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            if attempt:
                raise ConflictError("ActionRequest", "user_id", ", ".join(result.created)) from None
            logger.info("Concurrent action fan-out on %s; recomputing recipients", key,
                        extra={"request_key": key, "actor_id": actor.user_id})
            wf_request = get_request(key)
            continue
        break

    names = ", ".join(people[uid].name for uid in result.created)
    wf_request.last_updated_at = now
    append_history(
        wf_request, actor=actor, kind="action_requested", timestamp=now,
        notes=f"Ação '{action.get('label') or action['type']}' solicitada para: {names}.",
    )
    commit_or_rollback(wf_request, "open_action_request")

    logger.info("Action requested on %s for %s", wf_request.request_id, result.created,
                extra=log_extra(wf_request, actor))
    workflow_notifications.notify_action_requested(wf_request, result.created, action)
    return result


def respond(key, user_id, response, comment=None, attachment=None, upload_timeout=None):
    """Resolve *user_id*'s pending record on the current stage with *response*.

    Raises:
        ValidationError: no action on the stage, response does not match the
            action type, no pending record, or a required comment/attachment
            is missing.
        UploadFailure / UploadTimeoutError: attachment could not be stored;
            the record stays pending.
    """
    wf_request = get_request(key)
    responder = collaborator_service.resolve_actor(user_id)
    stages = stages_for(wf_request)
    action = _current_action(wf_request, stages)

    allowed = ACTION_RESPONSES.get(action["type"], frozenset())
    if response not in allowed:
        raise ValidationError(
            f"Response '{response}' does not match a '{action['type']}' action",
            details={"response": f"must be one of: {', '.join(sorted(allowed))}"},
        )

    record = next(
        (a for a in list_current_actions(wf_request) if a.user_id == responder.user_id and a.is_pending),
        None,
    )
    if record is None:
        raise ValidationError(
            f"No pending action for {responder.user_id} on stage '{wf_request.status}'",
            details={"user_id": "no pending action"},
        )

    comment = (comment or "").strip() or None
    if action.get("comment_required") and response == "executed" and not comment:
        raise ValidationError("A comment is required to complete this action",
                              details={"comment": "required"})
    if action.get("attachment_required") and response == "executed" and attachment is None:
        raise ValidationError("An attachment is required to complete this action",
                              details={"attachment": "required"})

    stored = None
    if attachment is not None:
        stored = storage_service.upload_with_timeout(attachment, wf_request.id, upload_timeout)

    now = _utcnow()
    rows = db.session.execute(
        update(ActionRequest)
        .where(ActionRequest.id == record.id, ActionRequest.status == "pending")
        .values(
            status=response,
            responded_at=now,
            comment=comment,
            attachment_url=stored.url if stored else None,
            attachment_name=stored.filename if stored else None,
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    if rows == 0:
        message = f"Action for {responder.user_id} on request {wf_request.request_id} was already answered"
        db.session.rollback()
        if stored:
            storage_service.discard([stored])
        raise ConflictError("ActionRequest", "status", "pending", message=message)

    label = action.get("label") or action["type"]
    notes = f"{responder.name} {RESPONSE_VERBS[response]} a ação '{label}'."
    if comment:
        notes += f" Comentário: {comment}"
    if stored:
        notes += f" Anexo: {stored.filename}"
    wf_request.last_updated_at = now
    append_history(wf_request, actor=responder, kind="action_response", notes=notes, timestamp=now)
    try:
        commit_or_rollback(wf_request, "respond")
    except SQLAlchemyError:
        if stored:
            storage_service.discard([stored])
        raise

    logger.info("Action on %s resolved as %s", wf_request.request_id, response,
                extra=log_extra(wf_request, responder))
    workflow_notifications.notify_action_resolved(wf_request, responder.name, response)
    return db.session.get(ActionRequest, record.id)


def pending_actions_for(user_id) -> list[dict]:
    """Open action records for *user_id* on the current stage of live requests."""
    rows = db.session.execute(
        select(ActionRequest, WorkflowRequest)
        .join(WorkflowRequest, ActionRequest.request_pk == WorkflowRequest.id)
        .where(
            ActionRequest.user_id == user_id,
            ActionRequest.status == "pending",
            ActionRequest.stage_id == WorkflowRequest.status,
            WorkflowRequest.is_archived.is_(False),
        )
        .order_by(ActionRequest.requested_at.desc(), ActionRequest.id.desc())
    ).all()
    return [
        {
            **action.to_dict(),
            "stage_id": action.stage_id,
            "request_key": wf_request.id,
            "request_id": wf_request.request_id,
            "type": wf_request.type,
        }
        for action, wf_request in rows
    ]
