"""
Company Portal
Workflow Request Blueprint.

Endpoints (all under /api/v1/workflow-requests, actor from ``X-User``):
    GET    /                              list (filters: owner, assignee, submitted_by, archived)
    POST   /                              submit (JSON or multipart)
    GET    /<key>                         detail with stage labels
    GET    /<key>/history                 audit trail (newest_first=1 to reverse)
    POST   /<key>/transition              {target_status, note?}
    POST   /<key>/assign                  {assignee_id, note?}
    POST   /<key>/comments                {text}
    POST   /<key>/archive
    GET    /<key>/actions                 current stage's action records
    POST   /<key>/actions                 {recipient_ids}
    POST   /<key>/actions/respond         {response, comment?} + optional "attachment" file
    POST   /mark-viewed                   {request_keys}
    GET    /my-tasks                      requests assigned to the actor
    GET    /my-tasks/has-new              {has_new}
    GET    /my-actions                    the actor's pending action records
"""

import logging

from flask import Blueprint, jsonify, request

from portal.core.exceptions import ValidationError
from portal.services import action_request_service, workflow_service
from portal.utils.errors import register_error_handlers
from portal.utils.helpers import collect_files, current_actor, parse_bool, read_payload

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow_bp", __name__, url_prefix="/api/v1/workflow-requests")
register_error_handlers(workflow_bp)


def _required(data, key):
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{key} is required", details={key: "required"})
    return value


# ═══════════════════════════════════════════════════════════════════════════
#  READ MODEL
# ═══════════════════════════════════════════════════════════════════════════

@workflow_bp.route("", methods=["GET"])
def list_requests():
    """List requests, newest submission first."""
    archived = (request.args.get("archived") or "").lower()
    items = workflow_service.list_requests(
        owner_email=request.args.get("owner"),
        assignee_id=request.args.get("assignee"),
        submitted_by=request.args.get("submitted_by"),
        include_archived=archived != "no",
        archived_only=archived == "only",
    )
    return jsonify({"items": items, "total": len(items)})


@workflow_bp.route("/<key>", methods=["GET"])
def get_request(key):
    wf_request = workflow_service.get_request(key)
    return jsonify(workflow_service.describe(wf_request))


@workflow_bp.route("/my-tasks", methods=["GET"])
def my_tasks():
    actor = current_actor()
    items = [r.to_dict(include_history=False) for r in workflow_service.list_assigned_tasks(actor.user_id)]
    return jsonify({"items": items, "total": len(items)})


@workflow_bp.route("/my-tasks/has-new", methods=["GET"])
def has_new_tasks():
    actor = current_actor()
    return jsonify({"has_new": workflow_service.has_new_assigned_tasks(actor.user_id)})


@workflow_bp.route("/my-actions", methods=["GET"])
def my_actions():
    actor = current_actor()
    items = action_request_service.pending_actions_for(actor.user_id)
    return jsonify({"items": items, "total": len(items)})


# ═══════════════════════════════════════════════════════════════════════════
#  LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════════

@workflow_bp.route("", methods=["POST"])
def submit_request():
    """Submit a new request. Multipart bodies carry ``form_data`` as JSON."""
    data = read_payload()
    definition = data.get("type") or data.get("definition")
    form_data = data.get("form_data") or {}
    if not isinstance(form_data, dict):
        raise ValidationError("form_data must be an object", details={"form_data": "invalid"})

    wf_request = workflow_service.submit(
        definition,
        request.headers.get("X-User"),
        form_data,
        files=collect_files(),
    )
    return jsonify(wf_request.to_dict()), 201


@workflow_bp.route("/<key>/transition", methods=["POST"])
def transition(key):
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    wf_request = workflow_service.transition(
        key, _required(data, "target_status"), actor.user_id, note=data.get("note"),
    )
    return jsonify(workflow_service.describe(wf_request))


@workflow_bp.route("/<key>/assign", methods=["POST"])
def assign(key):
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    wf_request, warning = workflow_service.assign(
        key, _required(data, "assignee_id"), actor.user_id, note=data.get("note"),
    )
    body = {"request": wf_request.to_dict(), "warning": warning}
    return jsonify(body)


@workflow_bp.route("/<key>/comments", methods=["POST"])
def add_comment(key):
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    wf_request = workflow_service.add_comment(key, actor.user_id, data.get("text"))
    return jsonify(wf_request.to_dict()), 201


@workflow_bp.route("/<key>/archive", methods=["POST"])
def archive(key):
    actor = current_actor()
    wf_request = workflow_service.archive(key, actor_id=actor.user_id)
    return jsonify(wf_request.to_dict(include_history=False))


@workflow_bp.route("/mark-viewed", methods=["POST"])
def mark_viewed():
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    keys = data.get("request_keys") or []
    if not isinstance(keys, list):
        raise ValidationError("request_keys must be a list", details={"request_keys": "invalid"})
    marked = workflow_service.mark_viewed(actor.user_id, keys)
    return jsonify({"marked": marked})


# ═══════════════════════════════════════════════════════════════════════════
#  ACTION REQUESTS
# ═══════════════════════════════════════════════════════════════════════════

@workflow_bp.route("/<key>/actions", methods=["GET"])
def list_actions(key):
    wf_request = workflow_service.get_request(key)
    items = [a.to_dict() for a in action_request_service.list_current_actions(wf_request)]
    return jsonify({"stage_id": wf_request.status, "items": items})


@workflow_bp.route("/<key>/actions", methods=["POST"])
def open_actions(key):
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    recipients = data.get("recipient_ids") or []
    if not isinstance(recipients, list):
        raise ValidationError("recipient_ids must be a list", details={"recipient_ids": "invalid"})
    result = action_request_service.open_action_request(key, recipients, actor.user_id)
    body = result.to_dict()
    if result.is_noop:
        body["message"] = "Todos os destinatários já possuem uma ação nesta etapa."
        return jsonify(body), 200
    return jsonify(body), 201


@workflow_bp.route("/<key>/actions/respond", methods=["POST"])
def respond(key):
    """Respond to the actor's pending action. Optional file field: ``attachment``."""
    actor = current_actor()
    data = read_payload()
    attachment = collect_files().get("attachment")
    record = action_request_service.respond(
        key,
        actor.user_id,
        _required(data, "response"),
        comment=data.get("comment"),
        attachment=attachment,
    )
    return jsonify(record.to_dict())


@workflow_bp.route("/<key>/history", methods=["GET"])
def history(key):
    wf_request = workflow_service.get_request(key)
    entries = [h.to_dict() for h in wf_request.history]
    if parse_bool(request.args.get("newest_first")):
        entries.reverse()
    return jsonify({"items": entries, "total": len(entries)})
