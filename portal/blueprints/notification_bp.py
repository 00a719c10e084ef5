"""
Company Portal
Notification Blueprint.

In-app notifications of the acting user (``X-User``):
    GET  /api/v1/notifications                 list (?unread_only=1&limit=&offset=)
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from portal.core.exceptions import NotFoundError
from portal.services.notification import NotificationService
from portal.utils.errors import register_error_handlers
from portal.utils.helpers import current_actor, parse_bool

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1/notifications")
register_error_handlers(notification_bp)


@notification_bp.route("", methods=["GET"])
def list_notifications():
    actor = current_actor()
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = request.args.get("offset", 0, type=int)
    items, total = NotificationService.list_for_recipient(
        actor.user_id,
        unread_only=parse_bool(request.args.get("unread_only")),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    actor = current_actor()
    return jsonify({"unread_count": NotificationService.unread_count(actor.user_id)})


@notification_bp.route("/<int:nid>/read", methods=["POST"])
def mark_read(nid):
    actor = current_actor()
    notif = NotificationService.mark_read(nid, recipient=actor.user_id)
    if notif is None:
        raise NotFoundError("Notification", nid)
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    actor = current_actor()
    count = NotificationService.mark_all_read(actor.user_id)
    return jsonify({"marked_read": count})
