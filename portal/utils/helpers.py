"""Shared request helpers for the API blueprints.

current_actor:     X-User header → Collaborator (401 when unresolvable)
parse_bool:        query-string flags ("1", "true", "yes")
read_payload:      JSON body or multipart form, with ``form_data`` decoded
collect_files:     request.files → {field id: Attachment}
"""
import json
import logging

from flask import request

from portal.core.exceptions import ValidationError
from portal.services import collaborator_service
from portal.services.storage_service import Attachment

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-User"


def current_actor():
    """Resolve the acting collaborator from the ``X-User`` header (an email).

    Raises ``AuthResolutionError`` when the header is missing or unknown.
    """
    return collaborator_service.resolve_submitter(request.headers.get(ACTOR_HEADER))


def parse_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def read_payload():
    """Return the request body as a dict for JSON and multipart requests alike.

    Multipart requests carry structured values as JSON strings; the
    ``form_data`` and ``recipient_ids`` keys are decoded.
    """
    if request.is_json:
        return request.get_json(silent=True) or {}
    data = request.form.to_dict()
    for key in ("form_data", "recipient_ids"):
        raw = data.get(key)
        if raw is None or not isinstance(raw, str):
            continue
        try:
            data[key] = json.loads(raw) if raw.strip() else None
        except json.JSONDecodeError:
            raise ValidationError(f"'{key}' must be a JSON document", details={key: "invalid JSON"}) from None
    return data


def collect_files(skip=()):
    """Wrap uploaded files as ``Attachment`` objects keyed by form field name."""
    files = {}
    for name, storage in request.files.items():
        if name in skip or not storage or not storage.filename:
            continue
        files[name] = Attachment.from_file_storage(storage)
    return files
