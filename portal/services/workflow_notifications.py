"""
Company Portal
Workflow notification dispatcher.

Each ``notify_*`` rule turns a workflow event into zero or more
``Message`` objects and hands them to the messaging collaborators
(in-app ``NotificationService`` rows plus ``EmailService`` mail).

Rules run after the triggering commit. A failing rule is rolled back,
logged as ``NotificationFailure`` and swallowed: delivery never undoes or
blocks the state change that caused it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from portal.core.exceptions import NotificationFailure
from portal.models import db
from portal.services import collaborator_service
from portal.services.email_service import EmailService
from portal.services.notification import NotificationService

logger = logging.getLogger(__name__)

RESPONSE_LABELS = {
    "approved": "aprovada",
    "rejected": "reprovada",
    "acknowledged": "marcada como ciente",
    "executed": "executada",
}


@dataclass
class Message:
    recipient_ids: list[str]
    title: str
    body: str
    template: str = "workflow_event"
    category: str = "workflow"
    severity: str = "info"
    # Addresses with no matching collaborator still get the email
    extra_emails: list[str] = field(default_factory=list)


# ── Delivery ────────────────────────────────────────────────────────────────


def _deliver(messages: list[Message], wf_request) -> None:
    for msg in messages:
        recipient_ids = list(dict.fromkeys(r for r in msg.recipient_ids if r))
        if recipient_ids:
            NotificationService.broadcast(
                recipients=recipient_ids,
                title=msg.title,
                message=msg.body,
                category=msg.category,
                severity=msg.severity,
                entity_type="workflow_request",
                entity_id=wf_request.id,
            )
        context = {
            "title": msg.title,
            "message": msg.body,
            "request_id": wf_request.request_id,
            "workflow_type": wf_request.type,
        }
        people = collaborator_service.get_many_by_user_ids(recipient_ids)
        targets = [(c.email, c.name) for c in people.values()]
        targets += [(e, None) for e in msg.extra_emails if e]
        for email, name in dict.fromkeys(targets):
            EmailService.send_from_template(
                to_email=email,
                to_name=name,
                template_name=msg.template,
                context=context,
                category=msg.category,
                entity_id=wf_request.id,
            )
    db.session.commit()


def _dispatch(rule: str, wf_request, build, *args) -> list[Message]:
    """Build and deliver the messages for *rule*; never raises."""
    request_key = wf_request.id
    try:
        messages = build(wf_request, *args)
        _deliver(messages, wf_request)
    except Exception as exc:
        db.session.rollback()
        failure = NotificationFailure(rule, exc)
        logger.error(
            "%s", failure, exc_info=exc,
            extra={"rule": rule, "request_key": request_key},
        )
        return []
    logger.debug("Notification rule %s produced %d message(s)", rule, len(messages))
    return messages


def _owner(wf_request):
    """``(user_ids, unresolved_emails)`` for the request owner."""
    collab = collaborator_service.find_by_email(wf_request.owner_email)
    if collab is not None:
        return [collab.user_id], []
    return [], [wf_request.owner_email]


def _label(wf_request) -> str:
    return f"#{wf_request.request_id} ({wf_request.type})"


# ── Rules ───────────────────────────────────────────────────────────────────


def _build_created(wf_request, stage_label, routing_rules):
    messages = [Message(
        recipient_ids=[wf_request.submitted_by_id],
        title=f"Solicitação {_label(wf_request)} enviada",
        body=f"Sua solicitação foi registrada e está na etapa '{stage_label}'.",
        severity="success",
    )]
    owner_ids, owner_emails = _owner(wf_request)
    routed = []
    for rule in routing_rules:
        routed.extend(c.user_id for c in collaborator_service.resolve_recipients(rule.get("notify")))
    messages.append(Message(
        recipient_ids=owner_ids + routed,
        title=f"Nova solicitação {_label(wf_request)}",
        body=f"{wf_request.submitted_by_name} abriu uma nova solicitação de {wf_request.type}.",
        extra_emails=owner_emails,
    ))
    return messages


def _build_status_changed(wf_request, stage_label, note):
    return [Message(
        recipient_ids=[wf_request.submitted_by_id],
        title=f"Solicitação {_label(wf_request)} avançou",
        body=f"Nova etapa: '{stage_label}'. Observação: {note or 'Nenhuma observação adicional.'}",
    )]


def _build_assigned(wf_request, assignee_name, note):
    suffix = f" Observação: {note}" if note else ""
    return [
        Message(
            recipient_ids=[wf_request.submitted_by_id],
            title=f"Solicitação {_label(wf_request)} atribuída",
            body=f"Sua solicitação agora está com {assignee_name}.{suffix}",
        ),
        Message(
            recipient_ids=[wf_request.assignee_id],
            title=f"Nova tarefa: {_label(wf_request)}",
            body=f"A solicitação de {wf_request.submitted_by_name} foi atribuída a você.{suffix}",
            template="workflow_task",
            category="task",
        ),
    ]


def _build_comment_added(wf_request, author_name, text):
    return [Message(
        recipient_ids=[wf_request.submitted_by_id],
        title=f"Novo comentário em {_label(wf_request)}",
        body=f"{author_name}: {text}",
    )]


def _build_action_requested(wf_request, recipient_ids, action):
    action_label = (action or {}).get("label") or "Ação"
    return [Message(
        recipient_ids=list(recipient_ids),
        title=f"{action_label}: {_label(wf_request)}",
        body=f"Sua ação é necessária na solicitação de {wf_request.submitted_by_name}.",
        template="workflow_task",
        category="action",
        severity="warning",
    )]


def _build_action_resolved(wf_request, responder_name, response):
    owner_ids, owner_emails = _owner(wf_request)
    return [Message(
        recipient_ids=owner_ids + [wf_request.assignee_id],
        title=f"Ação respondida em {_label(wf_request)}",
        body=f"{responder_name}: ação {RESPONSE_LABELS.get(response, response)}.",
        category="action",
        severity="error" if response == "rejected" else "success",
        extra_emails=owner_emails,
    )]


def notify_request_created(wf_request, stage_label, routing_rules=()):
    """Submitter, definition owner, and every matching routing-rule recipient."""
    return _dispatch("request_created", wf_request, _build_created, stage_label, list(routing_rules))


def notify_status_changed(wf_request, stage_label, note=None):
    return _dispatch("status_changed", wf_request, _build_status_changed, stage_label, note)


def notify_assigned(wf_request, assignee_name, note=None):
    return _dispatch("assigned", wf_request, _build_assigned, assignee_name, note)


def notify_comment_added(wf_request, author_name, text):
    return _dispatch("comment_added", wf_request, _build_comment_added, author_name, text)


def notify_action_requested(wf_request, recipient_ids, action):
    return _dispatch("action_requested", wf_request, _build_action_requested, recipient_ids, action)


def notify_action_resolved(wf_request, responder_name, response):
    return _dispatch("action_resolved", wf_request, _build_action_resolved, responder_name, response)
