"""
Company Portal
Tests: workflow definitions.

Covers:
    1. StageTable ordering, lookup and action normalisation
    2. Routing / SLA rule matching and the submit ACL
    3. Payload validation and import sanitisation
    4. CRUD conflicts and not-found handling
"""

import pytest

from portal.core.exceptions import ConfigurationError, ConflictError, NotFoundError, ValidationError
from portal.models import db
from portal.models.collaborator import Collaborator
from portal.models.workflow import WorkflowDefinition
from portal.services import definition_service
from portal.services.definition_service import StageTable


STATUSES = [
    {"id": "novo", "label": "Novo"},
    {"id": "analise", "label": "Análise",
     "action": {"type": "execution", "commentRequired": True, "attachmentRequired": False}},
    {"id": "fim"},
]


# ═══════════════════════════════════════════════════════════════════════════
#  STAGE TABLE
# ═══════════════════════════════════════════════════════════════════════════

class TestStageTable:
    def test_initial_and_order(self):
        stages = StageTable(STATUSES)
        assert stages.initial == "novo"
        assert stages.ids == ["novo", "analise", "fim"]
        assert stages.index_of("fim") == 2
        assert stages.index_of("missing") is None

    def test_next_and_terminal(self):
        stages = StageTable(STATUSES)
        assert stages.next_after("novo") == "analise"
        assert stages.next_after("fim") is None
        assert stages.is_terminal("fim") is True
        assert stages.is_terminal("novo") is False
        assert stages.is_terminal("missing") is False

    def test_label_falls_back_to_id(self):
        stages = StageTable(STATUSES)
        assert stages.label_for("analise") == "Análise"
        assert stages.label_for("fim") == "fim"

    def test_action_keys_are_snake_case(self):
        action = StageTable(STATUSES).action_for("analise")
        assert action["type"] == "execution"
        assert action["comment_required"] is True
        assert action["attachment_required"] is False

    def test_stage_without_action(self):
        assert StageTable(STATUSES).action_for("novo") is None

    def test_entries_without_id_are_ignored(self):
        stages = StageTable([{"label": "sem id"}, {"id": "a"}])
        assert stages.ids == ["a"]

    def test_empty_definition_is_a_configuration_error(self):
        definition = WorkflowDefinition(name="Vazio", owner_email="x@corp.com")
        definition.statuses = []
        with pytest.raises(ConfigurationError):
            StageTable.for_definition(definition)


# ═══════════════════════════════════════════════════════════════════════════
#  RULES
# ═══════════════════════════════════════════════════════════════════════════

class TestRules:
    def _definition(self, **kwargs):
        definition = WorkflowDefinition(name="Regras", owner_email="x@corp.com")
        definition.statuses = STATUSES
        for key, value in kwargs.items():
            setattr(definition, key, value)
        return definition

    def test_routing_match_is_case_insensitive(self):
        definition = self._definition(routing_rules=[
            {"field": "categoria", "value": "Viagem", "notify": ["a@corp.com"]},
            {"field": "categoria", "value": "Evento", "notify": ["b@corp.com"]},
        ])
        matched = definition_service.matching_routing_rules(definition, {"categoria": " viagem "})
        assert [r["notify"] for r in matched] == [["a@corp.com"]]

    def test_routing_ignores_missing_field(self):
        definition = self._definition(routing_rules=[{"field": "x", "value": "1", "notify": []}])
        assert definition_service.matching_routing_rules(definition, {}) == []

    def test_first_sla_rule_wins(self):
        definition = self._definition(
            default_sla_days=10,
            sla_rules=[
                {"field": "prioridade", "value": "alta", "days": 1},
                {"field": "prioridade", "value": "ALTA", "days": 3},
            ],
        )
        assert definition_service.resolve_sla_days(definition, {"prioridade": "Alta"}) == 1

    def test_sla_falls_back_to_default(self):
        definition = self._definition(default_sla_days=10, sla_rules=[])
        assert definition_service.resolve_sla_days(definition, {"prioridade": "baixa"}) == 10

    def test_can_submit(self):
        anyone = self._definition(allowed_user_ids=["all"])
        restricted = self._definition(allowed_user_ids=["COL-1"])
        member = Collaborator(user_id="COL-1", name="A", email="a@corp.com")
        outsider = Collaborator(user_id="COL-2", name="B", email="b@corp.com")
        assert definition_service.can_submit(anyone, outsider) is True
        assert definition_service.can_submit(restricted, member) is True
        assert definition_service.can_submit(restricted, outsider) is False


# ═══════════════════════════════════════════════════════════════════════════
#  VALIDATION & IMPORT
# ═══════════════════════════════════════════════════════════════════════════

class TestValidation:
    def test_missing_required_parts(self):
        with pytest.raises(ValidationError) as exc:
            definition_service.validate_definition_payload({"statuses": []})
        assert set(exc.value.details) >= {"name", "owner_email", "statuses"}

    def test_duplicate_stage_ids(self, definition_data):
        payload = {**definition_data, "statuses": [{"id": "a"}, {"id": "a"}]}
        with pytest.raises(ValidationError) as exc:
            definition_service.validate_definition_payload(payload)
        assert "statuses[1].id" in exc.value.details

    def test_unknown_action_type(self, definition_data):
        payload = {**definition_data, "statuses": [{"id": "a", "action": {"type": "vote"}}]}
        with pytest.raises(ValidationError) as exc:
            definition_service.validate_definition_payload(payload)
        assert "statuses[0].action.type" in exc.value.details

    def test_unknown_field_type(self, definition_data):
        payload = {**definition_data, "fields": [{"id": "x", "type": "colour"}]}
        with pytest.raises(ValidationError) as exc:
            definition_service.validate_definition_payload(payload)
        assert "fields[0].type" in exc.value.details

    def test_camel_case_keys_are_accepted(self):
        cleaned = definition_service.validate_definition_payload({
            "name": "X",
            "ownerEmail": "x@corp.com",
            "defaultSlaDays": "3",
            "statuses": [{"id": "a", "action": {"type": "approval", "approverIds": ["COL-1"]}}],
        })
        assert cleaned["owner_email"] == "x@corp.com"
        assert cleaned["default_sla_days"] == 3
        assert cleaned["statuses"][0]["action"]["approver_ids"] == ["COL-1"]

    def test_malformed_owner_email(self, definition_data):
        payload = {**definition_data, "owner_email": "garbage owner"}
        with pytest.raises(ValidationError) as exc:
            definition_service.validate_definition_payload(payload)
        assert set(exc.value.details) == {"owner_email"}

    def test_owner_email_is_lower_cased(self, definition_data):
        cleaned = definition_service.validate_definition_payload(
            {**definition_data, "owner_email": "  Owner@Corp.COM "}
        )
        assert cleaned["owner_email"] == "owner@corp.com"

    def test_partial_update_checks_owner_email(self):
        with pytest.raises(ValidationError) as exc:
            definition_service.validate_definition_payload({"owner_email": "no-at-sign"}, partial=True)
        assert "owner_email" in exc.value.details

    def test_partial_update_skips_absent_keys(self):
        cleaned = definition_service.validate_definition_payload({"description": "nova"}, partial=True)
        assert cleaned == {"description": "nova"}


class TestSanitize:
    def test_legacy_sla_days(self):
        data = definition_service.sanitize_definition_payload({"name": "X", "slaDays": 4})
        assert data["default_sla_days"] == 4
        assert "slaDays" not in data

    def test_incomplete_rules_are_dropped(self):
        data = definition_service.sanitize_definition_payload({
            "routingRules": [{"field": "a", "value": "1"}, {"field": "b"}, "junk"],
            "slaRules": [{"field": "a", "value": "1", "days": 2}, {"field": "a", "value": "1"}],
        })
        assert data["routing_rules"] == [{"field": "a", "value": "1"}]
        assert data["sla_rules"] == [{"field": "a", "value": "1", "days": 2}]

    def test_allowed_users_default_to_all(self):
        data = definition_service.sanitize_definition_payload({"name": "X"})
        assert data["allowed_user_ids"] == ["all"]

    def test_non_object_document(self):
        with pytest.raises(ValidationError):
            definition_service.sanitize_definition_payload(["not", "a", "dict"])


# ═══════════════════════════════════════════════════════════════════════════
#  CRUD
# ═══════════════════════════════════════════════════════════════════════════

class TestCrud:
    def test_create_and_lookup_by_name(self, make_definition):
        created = make_definition()
        assert definition_service.get_by_name(created.name).id == created.id
        assert created.statuses[2]["action"]["comment_required"] is True

    def test_duplicate_name_conflicts(self, make_definition):
        make_definition()
        with pytest.raises(ConflictError):
            make_definition()

    def test_require_by_name_unknown(self):
        with pytest.raises(ConfigurationError):
            definition_service.require_by_name("Nada")

    def test_get_unknown_id(self):
        with pytest.raises(NotFoundError):
            definition_service.get_definition(999)

    def test_update_and_rename(self, make_definition):
        created = make_definition()
        other = make_definition(name="Outra")
        updated = definition_service.update_definition(created.id, {"name": "Renomeada", "isActive": False})
        assert updated.name == "Renomeada"
        assert updated.is_active is False
        with pytest.raises(ConflictError):
            definition_service.update_definition(created.id, {"name": other.name})

    def test_list_filters(self, make_definition, definition_data):
        make_definition()
        make_definition(name="RH", area_id="rh", is_active=False)
        assert [d.name for d in definition_service.list_definitions(area_id="rh")] == ["RH"]
        assert [d.name for d in definition_service.list_definitions(active_only=True)] == [
            definition_data["name"],
        ]

    def test_delete(self, make_definition):
        created = make_definition()
        definition_service.delete_definition(created.id)
        assert db.session.get(WorkflowDefinition, created.id) is None

    def test_import_requires_area(self):
        document = {"name": "Antiga", "ownerEmail": "x@corp.com", "statuses": [{"id": "a"}]}
        with pytest.raises(ValidationError) as exc:
            definition_service.import_definition(document)
        assert exc.value.details == {"area_id": "required"}

    def test_import_sanitises_document(self):
        imported = definition_service.import_definition({
            "name": "Importada",
            "ownerEmail": "x@corp.com",
            "areaId": "ti",
            "slaDays": 7,
            "statuses": [{"id": "a"}, {"id": "b"}],
            "routingRules": [{"field": "f"}],
        })
        assert imported.area_id == "ti"
        assert imported.default_sla_days == 7
        assert imported.routing_rules == []
        assert imported.allowed_user_ids == ["all"]
