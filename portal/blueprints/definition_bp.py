"""
Company Portal
Workflow Definition Blueprint.

Admin endpoints for the definitions the workflow engine consumes:
    GET    /api/v1/workflow-definitions              list (?active=1, ?area_id=)
    POST   /api/v1/workflow-definitions              create
    POST   /api/v1/workflow-definitions/import       create from an exported JSON document
    GET    /api/v1/workflow-definitions/<id>         detail
    PUT    /api/v1/workflow-definitions/<id>         partial update
    DELETE /api/v1/workflow-definitions/<id>         delete (requests keep their type name)
"""

import json
import logging

from flask import Blueprint, jsonify, request

from portal.core.exceptions import ValidationError
from portal.services import definition_service
from portal.utils.errors import register_error_handlers
from portal.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

definition_bp = Blueprint("definition_bp", __name__, url_prefix="/api/v1/workflow-definitions")
register_error_handlers(definition_bp)


@definition_bp.route("", methods=["GET"])
def list_definitions():
    items = definition_service.list_definitions(
        active_only=parse_bool(request.args.get("active")),
        area_id=request.args.get("area_id"),
    )
    return jsonify({"items": [d.to_dict() for d in items], "total": len(items)})


@definition_bp.route("", methods=["POST"])
def create_definition():
    data = request.get_json(silent=True) or {}
    definition = definition_service.create_definition(data)
    return jsonify(definition.to_dict()), 201


@definition_bp.route("/import", methods=["POST"])
def import_definition():
    """Accept the document as a JSON body or as an uploaded ``file``."""
    upload = request.files.get("file")
    if upload:
        raw = upload.read().decode("utf-8-sig")
        if not raw.strip():
            raise ValidationError("The JSON file is empty", details={"file": "empty"})
        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError("The JSON file is malformed", details={"file": "invalid JSON"}) from None
    else:
        document = request.get_json(silent=True)
        if document is None:
            raise ValidationError("A JSON document is required", details={"body": "required"})
    definition = definition_service.import_definition(document)
    return jsonify(definition.to_dict()), 201


@definition_bp.route("/<int:definition_id>", methods=["GET"])
def get_definition(definition_id):
    return jsonify(definition_service.get_definition(definition_id).to_dict())


@definition_bp.route("/<int:definition_id>", methods=["PUT", "PATCH"])
def update_definition(definition_id):
    data = request.get_json(silent=True) or {}
    definition = definition_service.update_definition(definition_id, data)
    return jsonify(definition.to_dict())


@definition_bp.route("/<int:definition_id>", methods=["DELETE"])
def delete_definition(definition_id):
    definition_service.delete_definition(definition_id)
    return jsonify({"deleted": True, "id": definition_id})
