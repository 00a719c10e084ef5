"""
Company Portal
Collaborator Directory Blueprint.

    GET  /api/v1/collaborators         list (?active=1)
    POST /api/v1/collaborators         create {user_id, name, email, area?}
"""

from flask import Blueprint, jsonify, request

from portal.services import collaborator_service
from portal.utils.errors import register_error_handlers
from portal.utils.helpers import parse_bool

collaborator_bp = Blueprint("collaborator_bp", __name__, url_prefix="/api/v1/collaborators")
register_error_handlers(collaborator_bp)


@collaborator_bp.route("", methods=["GET"])
def list_collaborators():
    items = collaborator_service.list_collaborators(active_only=parse_bool(request.args.get("active")))
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)})


@collaborator_bp.route("", methods=["POST"])
def create_collaborator():
    data = request.get_json(silent=True) or {}
    collab = collaborator_service.create_collaborator(data)
    return jsonify(collab.to_dict()), 201
