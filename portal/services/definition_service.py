"""
Company Portal
Workflow definition service.

Definitions are administrator-authored data: ordered stages, form fields,
routing/SLA rules and a submit ACL. The engine treats them as read-only
configuration resolved by *name* at use-time; this module owns their CRUD,
payload validation, the JSON import path and the ``StageTable`` lookup used
for transition legality.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from portal.core.exceptions import ConfigurationError, ConflictError, NotFoundError, ValidationError
from portal.models import db
from portal.models.workflow import ACTION_TYPES, FIELD_TYPES, WorkflowDefinition
from portal.services.collaborator_service import validate_address

logger = logging.getLogger(__name__)

# camelCase keys accepted from the admin UI / exported JSON files
_KEY_ALIASES = {
    "ownerEmail": "owner_email",
    "areaId": "area_id",
    "routingRules": "routing_rules",
    "slaRules": "sla_rules",
    "allowedUserIds": "allowed_user_ids",
    "defaultSlaDays": "default_sla_days",
    "isActive": "is_active",
}

_ACTION_KEY_ALIASES = {
    "approverIds": "approver_ids",
    "commentRequired": "comment_required",
    "commentPlaceholder": "comment_placeholder",
    "attachmentRequired": "attachment_required",
    "attachmentPlaceholder": "attachment_placeholder",
}

_WRITABLE = (
    "name", "description", "area_id", "owner_email", "statuses", "fields",
    "routing_rules", "sla_rules", "allowed_user_ids", "default_sla_days", "is_active",
)


# ═════════════════════════════════════════════════════════════════════════════
# Stage lookup
# ═════════════════════════════════════════════════════════════════════════════


class StageTable:
    """Index over a definition's ordered ``statuses``.

    Stage ids are opaque strings; legality of a transition is purely
    positional (``index(target) > index(current)``). Rebuilt from the live
    definition on every use, never cached across requests.
    """

    def __init__(self, statuses):
        self._stages = [s for s in statuses or [] if isinstance(s, dict) and s.get("id")]
        self._index = {}
        for pos, stage in enumerate(self._stages):
            self._index.setdefault(stage["id"], pos)

    @classmethod
    def for_definition(cls, definition: WorkflowDefinition) -> "StageTable":
        table = cls(definition.statuses)
        if not table:
            raise ConfigurationError(
                f"Workflow definition '{definition.name}' has no stages",
                definition=definition.name,
            )
        return table

    def __len__(self):
        return len(self._stages)

    def __contains__(self, stage_id):
        return stage_id in self._index

    @property
    def initial(self) -> str:
        return self._stages[0]["id"]

    @property
    def ids(self) -> list[str]:
        return [s["id"] for s in self._stages]

    def index_of(self, stage_id: str) -> int | None:
        return self._index.get(stage_id)

    def stage(self, stage_id: str) -> dict | None:
        pos = self.index_of(stage_id)
        return None if pos is None else self._stages[pos]

    def next_after(self, stage_id: str) -> str | None:
        pos = self.index_of(stage_id)
        if pos is None or pos + 1 >= len(self._stages):
            return None
        return self._stages[pos + 1]["id"]

    def is_terminal(self, stage_id: str) -> bool:
        return stage_id in self._index and self.next_after(stage_id) is None

    def action_for(self, stage_id: str) -> dict | None:
        stage = self.stage(stage_id)
        action = stage.get("action") if stage else None
        if not isinstance(action, dict) or not action.get("type"):
            return None
        return {_ACTION_KEY_ALIASES.get(k, k): v for k, v in action.items()}

    def label_for(self, stage_id: str) -> str:
        stage = self.stage(stage_id)
        return (stage.get("label") or stage_id) if stage else stage_id


# ═════════════════════════════════════════════════════════════════════════════
# Rules
# ═════════════════════════════════════════════════════════════════════════════


def _text_equal(left, right) -> bool:
    if left is None or right is None:
        return False
    return str(left).strip().lower() == str(right).strip().lower()


def matching_routing_rules(definition: WorkflowDefinition, form_data: dict) -> list[dict]:
    """Routing rules whose ``form_data[field]`` equals ``value`` (case-insensitive)."""
    form_data = form_data or {}
    return [
        rule for rule in definition.routing_rules
        if rule.get("field") in form_data and _text_equal(form_data[rule["field"]], rule.get("value"))
    ]


def resolve_sla_days(definition: WorkflowDefinition, form_data: dict) -> int | None:
    """First matching SLA rule wins, else the definition's default."""
    form_data = form_data or {}
    for rule in definition.sla_rules:
        field = rule.get("field")
        if field in form_data and _text_equal(form_data[field], rule.get("value")):
            try:
                return int(rule["days"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Ignoring SLA rule with invalid days on '%s': %r", definition.name, rule)
    return definition.default_sla_days


def can_submit(definition: WorkflowDefinition, collaborator) -> bool:
    allowed = definition.allowed_user_ids or ["all"]
    return "all" in allowed or (collaborator is not None and collaborator.user_id in allowed)


# ═════════════════════════════════════════════════════════════════════════════
# Payload normalisation / validation
# ═════════════════════════════════════════════════════════════════════════════


def _normalise_keys(data: dict) -> dict:
    out = {}
    for key, value in (data or {}).items():
        out[_KEY_ALIASES.get(key, key)] = value
    return out


def _normalise_stage(stage: dict) -> dict:
    stage = dict(stage)
    action = stage.get("action")
    if isinstance(action, dict):
        stage["action"] = {_ACTION_KEY_ALIASES.get(k, k): v for k, v in action.items()}
    elif "action" in stage:
        stage.pop("action")
    return stage


def sanitize_definition_payload(data: dict) -> dict:
    """Clean up an imported definition document.

    - legacy ``slaDays`` becomes ``default_sla_days``
    - routing rules lacking ``field``/``value`` are dropped
    - SLA rules lacking ``field``/``value``/``days`` are dropped
    - missing ``allowed_user_ids`` becomes ``["all"]``
    """
    if not isinstance(data, dict):
        raise ValidationError("Definition document must be a JSON object")
    data = dict(data)
    legacy_sla = data.pop("slaDays", None)
    data = _normalise_keys(data)
    if legacy_sla and not data.get("default_sla_days"):
        data["default_sla_days"] = legacy_sla

    if isinstance(data.get("routing_rules"), list):
        data["routing_rules"] = [
            r for r in data["routing_rules"]
            if isinstance(r, dict) and r.get("field") and r.get("value")
        ]
    if isinstance(data.get("sla_rules"), list):
        data["sla_rules"] = [
            r for r in data["sla_rules"]
            if isinstance(r, dict) and r.get("field") and r.get("value") and r.get("days") is not None
        ]
    if not data.get("allowed_user_ids"):
        data["allowed_user_ids"] = ["all"]
    return data


def validate_definition_payload(data: dict, partial: bool = False) -> dict:
    """Return a cleaned copy of *data* or raise ``ValidationError``."""
    data = _normalise_keys(data)
    errors = {}

    if not partial or "name" in data:
        if not (data.get("name") or "").strip():
            errors["name"] = "required"
    if not partial or "owner_email" in data:
        owner = (data.get("owner_email") or "").strip()
        if not owner:
            errors["owner_email"] = "required"
        else:
            try:
                data["owner_email"] = validate_address(owner, field="owner_email")
            except ValidationError as exc:
                errors.update(exc.details)

    if not partial or "statuses" in data:
        statuses = data.get("statuses")
        if not isinstance(statuses, list) or not statuses:
            errors["statuses"] = "at least one stage is required"
        else:
            seen = set()
            for pos, stage in enumerate(statuses):
                if not isinstance(stage, dict) or not str(stage.get("id") or "").strip():
                    errors[f"statuses[{pos}].id"] = "required"
                    continue
                if stage["id"] in seen:
                    errors[f"statuses[{pos}].id"] = f"duplicate stage id '{stage['id']}'"
                seen.add(stage["id"])
                action = stage.get("action")
                if isinstance(action, dict) and action.get("type") not in ACTION_TYPES:
                    errors[f"statuses[{pos}].action.type"] = (
                        f"must be one of: {', '.join(ACTION_TYPES)}"
                    )
            if not errors:
                data["statuses"] = [_normalise_stage(s) for s in statuses]

    if "fields" in data:
        fields = data.get("fields") or []
        if not isinstance(fields, list):
            errors["fields"] = "must be a list"
        else:
            for pos, field in enumerate(fields):
                if not isinstance(field, dict) or not field.get("id"):
                    errors[f"fields[{pos}].id"] = "required"
                elif field.get("type") and field["type"] not in FIELD_TYPES:
                    errors[f"fields[{pos}].type"] = f"unknown field type '{field['type']}'"

    if data.get("default_sla_days") not in (None, ""):
        try:
            data["default_sla_days"] = int(data["default_sla_days"])
        except (TypeError, ValueError):
            errors["default_sla_days"] = "must be an integer"
    elif "default_sla_days" in data:
        data["default_sla_days"] = None

    if errors:
        raise ValidationError("Invalid workflow definition", details=errors)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def get_definition(definition_id: int) -> WorkflowDefinition:
    definition = db.session.get(WorkflowDefinition, definition_id)
    if definition is None:
        raise NotFoundError("WorkflowDefinition", definition_id)
    return definition


def get_by_name(name: str | None) -> WorkflowDefinition | None:
    if not name:
        return None
    return db.session.execute(
        select(WorkflowDefinition).where(WorkflowDefinition.name == name)
    ).scalar_one_or_none()


def require_by_name(name: str | None) -> WorkflowDefinition:
    """Resolve *name* or raise ``ConfigurationError``."""
    definition = get_by_name(name)
    if definition is None:
        raise ConfigurationError(f"Workflow definition '{name}' not found", definition=name)
    return definition


def list_definitions(active_only: bool = False, area_id: str | None = None) -> list[WorkflowDefinition]:
    stmt = select(WorkflowDefinition).order_by(WorkflowDefinition.name)
    if active_only:
        stmt = stmt.where(WorkflowDefinition.is_active.is_(True))
    if area_id:
        stmt = stmt.where(WorkflowDefinition.area_id == area_id)
    return list(db.session.execute(stmt).scalars())


def create_definition(data: dict) -> WorkflowDefinition:
    data = validate_definition_payload(data)
    name = data["name"].strip()
    if get_by_name(name) is not None:
        raise ConflictError("WorkflowDefinition", "name", name)

    definition = WorkflowDefinition(name=name)
    for key in _WRITABLE:
        if key != "name" and key in data:
            setattr(definition, key, data[key])
    db.session.add(definition)
    db.session.commit()
    logger.info("Workflow definition created: %s", name)
    return definition


def update_definition(definition_id: int, data: dict) -> WorkflowDefinition:
    definition = get_definition(definition_id)
    data = validate_definition_payload(data, partial=True)
    if "name" in data:
        new_name = data["name"].strip()
        clash = get_by_name(new_name)
        if clash is not None and clash.id != definition.id:
            raise ConflictError("WorkflowDefinition", "name", new_name)
        data["name"] = new_name
    for key in _WRITABLE:
        if key in data:
            setattr(definition, key, data[key])
    db.session.commit()
    logger.info("Workflow definition updated: %s", definition.name)
    return definition


def delete_definition(definition_id: int) -> None:
    """Delete a definition. Existing requests keep their ``type`` name."""
    definition = get_definition(definition_id)
    db.session.delete(definition)
    db.session.commit()
    logger.info("Workflow definition deleted: %s", definition.name)


def import_definition(document: dict) -> WorkflowDefinition:
    """Create a definition from an exported JSON document."""
    data = sanitize_definition_payload(document)
    if not data.get("area_id"):
        raise ValidationError(
            "Definition document predates areas: 'areaId' is required",
            details={"area_id": "required"},
        )
    return create_definition(data)
