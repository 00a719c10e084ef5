"""
Company Portal
Tests: workflow request lifecycle.

Covers:
    1. Submit: numbering, initial stage, history seed, SLA, form data, uploads
    2. Transition: forward-only legality, strict mode, viewed_by reset
    3. Assign / comment / archive
    4. Authorization and definition-resolution failures
    5. Read model: ordering, filters, cache invalidation, has_new_assigned_tasks
"""

import logging
import os
import time

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from portal.core.exceptions import (
    AuthorizationError,
    AuthResolutionError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from portal.models import db
from portal.models.workflow import RequestViewer, WorkflowDefinition, WorkflowRequest
from portal.services import action_request_service, definition_service, sequence_service
from portal.services import cache_service, storage_service, workflow_service
from portal.services.storage_service import Attachment


SUBMITTER = "sub@corp.com"


def _submit(definition, **form):
    form.setdefault("item", "Notebook")
    return workflow_service.submit(definition.name, SUBMITTER, form)


def _history(key):
    return workflow_service.get_request(key).history


# ═══════════════════════════════════════════════════════════════════════════
#  SUBMIT
# ═══════════════════════════════════════════════════════════════════════════

class TestSubmit:
    def test_creates_request_at_initial_stage(self, definition):
        wf_request = _submit(definition)
        assert wf_request.request_id == "0001"
        assert wf_request.status == "aberto"
        assert wf_request.owner_email == "owner@corp.com"
        assert wf_request.submitted_by_id == "COL-SUB"
        assert wf_request.is_archived is False
        assert wf_request.assignee is None
        assert wf_request.viewed_by == set()

        history = _history(wf_request.id)
        assert len(history) == 1
        assert history[0].kind == "created"
        assert history[0].status == "aberto"
        assert history[0].notes == workflow_service.CREATED_NOTE
        assert history[0].user_id == "COL-SUB"

    def test_numbers_are_sequential(self, definition):
        ids = [_submit(definition).request_id for _ in range(3)]
        assert ids == ["0001", "0002", "0003"]

    def test_accepts_definition_object(self, definition):
        wf_request = workflow_service.submit(definition, SUBMITTER, {"item": "Mouse"})
        assert wf_request.type == definition.name

    def test_submitter_email_is_normalised(self, definition):
        wf_request = workflow_service.submit(definition.name, "  SUB@Corp.com ", {"item": "Mouse"})
        assert wf_request.submitted_by_id == "COL-SUB"

    def test_email_domain_alias(self, app, definition, monkeypatch):
        monkeypatch.setitem(app.config, "EMAIL_DOMAIN_ALIASES", "corp-old.com=corp.com")
        wf_request = workflow_service.submit(definition.name, "sub@corp-old.com", {"item": "Mouse"})
        assert wf_request.submitted_by_id == "COL-SUB"

    def test_sla_from_matching_rule(self, definition):
        urgent = _submit(definition, categoria="urgente")
        normal = _submit(definition, categoria="Normal")
        assert urgent.sla_days == 2
        assert normal.sla_days == 5
        assert urgent.to_dict()["due_at"] is not None

    def test_required_field_missing(self, definition):
        with pytest.raises(ValidationError) as exc:
            workflow_service.submit(definition.name, SUBMITTER, {"categoria": "Normal"})
        assert exc.value.details == {"item": "required"}
        assert db.session.query(WorkflowRequest).count() == 0

    def test_undeclared_keys_are_dropped(self, definition):
        wf_request = _submit(definition, extra="ignored")
        assert "extra" not in wf_request.form_data

    def test_definition_without_fields_keeps_raw_form(self, people, make_definition):
        bare = make_definition(name="Livre", fields=[])
        wf_request = workflow_service.submit(bare.name, SUBMITTER, {"qualquer": "coisa"})
        assert wf_request.form_data == {"qualquer": "coisa"}

    def test_duplicate_field_id_later_value_wins(self, people, make_definition, caplog):
        dup = make_definition(name="Duplicada", fields=[
            {"id": "valor", "type": "text"},
            {"id": "valor", "type": "file"},
        ])
        with caplog.at_level(logging.WARNING, logger="portal.services.workflow_service"):
            wf_request = workflow_service.submit(
                dup.name, SUBMITTER, {"valor": "texto"},
                files={"valor": Attachment("nota.pdf", b"%PDF")},
            )
        assert wf_request.form_data["valor"].startswith("/uploads/")
        assert "Duplicate field id 'valor'" in caplog.text

    def test_file_field_is_uploaded(self, definition):
        wf_request = workflow_service.submit(
            definition.name, SUBMITTER, {"item": "Notebook"},
            files={"comprovante": Attachment("nota fiscal.pdf", b"%PDF-1.4")},
        )
        url = wf_request.form_data["comprovante"]
        assert url.startswith(f"/uploads/{wf_request.id}/")
        assert url.endswith("nota_fiscal.pdf")

    def test_upload_failure_is_kept_inline(self, definition, monkeypatch):
        class _BrokenStorage:
            def save(self, attachment, folder):
                raise OSError("disk full")

        monkeypatch.setattr(storage_service, "get_storage", lambda: _BrokenStorage())
        wf_request = workflow_service.submit(
            definition.name, SUBMITTER, {"item": "Notebook"},
            files={"comprovante": Attachment("nota.pdf", b"%PDF")},
        )
        assert wf_request.form_data["comprovante"] == "Erro no upload: disk full"
        assert wf_request.status == "aberto"

    def test_upload_timeout_is_kept_inline(self, definition, monkeypatch):
        class _SlowStorage:
            def save(self, attachment, folder):
                time.sleep(0.5)

        monkeypatch.setattr(storage_service, "get_storage", lambda: _SlowStorage())
        wf_request = workflow_service.submit(
            definition.name, SUBMITTER, {"item": "Notebook"},
            files={"comprovante": Attachment("nota.pdf", b"%PDF")},
            upload_timeout=0.05,
        )
        assert wf_request.form_data["comprovante"].startswith("Erro no upload: timed out")

    def test_counter_failure_creates_nothing(self, definition, monkeypatch):
        def _boom(counter_key):
            raise OperationalError("UPDATE sequence_counters", {}, Exception("locked"))

        monkeypatch.setattr(sequence_service, "next_id", _boom)
        with pytest.raises(OperationalError):
            _submit(definition)
        assert db.session.query(WorkflowRequest).count() == 0

    def _record_uploads(self, monkeypatch):
        stored = []
        real_upload = storage_service.upload_with_timeout

        def _recording(*args, **kwargs):
            result = real_upload(*args, **kwargs)
            stored.append(result)
            return result

        monkeypatch.setattr(storage_service, "upload_with_timeout", _recording)
        return stored

    @staticmethod
    def _on_disk(stored_file):
        root = storage_service.get_storage().root
        return os.path.exists(os.path.join(root, stored_file.url[len("/uploads/"):]))

    def test_counter_failure_removes_stored_attachments(self, definition, monkeypatch, caplog):
        def _boom(counter_key):
            raise OperationalError("UPDATE sequence_counters", {}, Exception("locked"))

        stored = self._record_uploads(monkeypatch)
        monkeypatch.setattr(sequence_service, "next_id", _boom)
        with caplog.at_level(logging.INFO, logger="portal.services.storage_service"):
            with pytest.raises(OperationalError):
                workflow_service.submit(
                    definition.name, SUBMITTER, {"item": "Notebook"},
                    files={"comprovante": Attachment("nota.pdf", b"%PDF")},
                )
        assert len(stored) == 1
        assert not self._on_disk(stored[0])
        assert f"Removed orphaned attachment {stored[0].url}" in caplog.text

    def test_missing_field_removes_stored_attachments(self, definition, monkeypatch):
        stored = self._record_uploads(monkeypatch)
        with pytest.raises(ValidationError):
            workflow_service.submit(
                definition.name, SUBMITTER, {},
                files={"comprovante": Attachment("nota.pdf", b"%PDF")},
            )
        assert len(stored) == 1
        assert not self._on_disk(stored[0])
        assert db.session.query(WorkflowRequest).count() == 0

    def test_unknown_definition(self, people):
        with pytest.raises(ConfigurationError):
            workflow_service.submit("Inexistente", SUBMITTER, {})

    def test_inactive_definition(self, people, make_definition):
        inactive = make_definition(name="Pausada", is_active=False)
        with pytest.raises(ConfigurationError):
            workflow_service.submit(inactive.name, SUBMITTER, {"item": "x"})

    def test_definition_without_stages(self, people):
        empty = WorkflowDefinition(name="Vazia", owner_email="owner@corp.com")
        empty.statuses = []
        db.session.add(empty)
        db.session.commit()
        with pytest.raises(ConfigurationError):
            workflow_service.submit("Vazia", SUBMITTER, {})

    def test_unknown_submitter(self, definition):
        with pytest.raises(AuthResolutionError):
            workflow_service.submit(definition.name, "ghost@corp.com", {"item": "x"})

    def test_submit_acl(self, people, make_definition):
        restricted = make_definition(name="Restrita", allowed_user_ids=["COL-OTH"])
        with pytest.raises(AuthorizationError):
            workflow_service.submit(restricted.name, SUBMITTER, {"item": "x"})
        allowed = workflow_service.submit(restricted.name, "other@corp.com", {"item": "x"})
        assert allowed.submitted_by_id == "COL-OTH"


# ═══════════════════════════════════════════════════════════════════════════
#  TRANSITION
# ═══════════════════════════════════════════════════════════════════════════

class TestTransition:
    def test_owner_moves_forward(self, definition):
        wf_request = _submit(definition)
        moved = workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        assert moved.status == "aprovacao"

        history = _history(wf_request.id)
        assert len(history) == 2
        assert history[-1].kind == "transition"
        assert history[-1].status == "aprovacao"
        assert history[-1].notes == "Status alterado para 'Em aprovação'."

    def test_note_replaces_default_text(self, definition):
        wf_request = _submit(definition)
        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN", note="Orçamento ok")
        assert _history(wf_request.id)[-1].notes == "Orçamento ok"

    def test_lookup_by_display_number(self, definition):
        wf_request = _submit(definition)
        moved = workflow_service.transition(wf_request.request_id, "aprovacao", "COL-OWN")
        assert moved.id == wf_request.id

    def test_skipping_ahead_is_allowed(self, definition):
        wf_request = _submit(definition)
        moved = workflow_service.transition(wf_request.id, "concluido", "COL-OWN")
        assert moved.status == "concluido"

    def test_strict_mode_requires_next_stage(self, app, definition, monkeypatch):
        monkeypatch.setitem(app.config, "WORKFLOW_STRICT_NEXT_STAGE", True)
        wf_request = _submit(definition)
        with pytest.raises(ValidationError):
            workflow_service.transition(wf_request.id, "concluido", "COL-OWN")
        assert workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN").status == "aprovacao"

    def test_backward_and_same_stage_rejected(self, definition):
        wf_request = _submit(definition)
        workflow_service.transition(wf_request.id, "execucao", "COL-OWN")
        for target in ("aberto", "aprovacao", "execucao"):
            with pytest.raises(ValidationError):
                workflow_service.transition(wf_request.id, target, "COL-OWN")
        assert len(_history(wf_request.id)) == 2

    def test_unknown_stage_rejected(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(ValidationError) as exc:
            workflow_service.transition(wf_request.id, "arquivado", "COL-OWN")
        assert "target_status" in exc.value.details

    def test_outsider_cannot_transition(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(AuthorizationError):
            workflow_service.transition(wf_request.id, "aprovacao", "COL-OTH")
        assert workflow_service.get_request(wf_request.id).status == "aberto"

    def test_submitter_is_not_implicitly_allowed(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(AuthorizationError):
            workflow_service.transition(wf_request.id, "aprovacao", "COL-SUB")

    def test_assignee_can_transition(self, definition):
        wf_request = _submit(definition)
        workflow_service.assign(wf_request.id, "COL-APR", "COL-OWN")
        moved = workflow_service.transition(wf_request.id, "aprovacao", "COL-APR")
        assert moved.status == "aprovacao"

    def test_owner_matched_through_domain_alias(self, app, people, make_definition, monkeypatch):
        monkeypatch.setitem(app.config, "EMAIL_DOMAIN_ALIASES", "corp-old.com=corp.com")
        legacy = make_definition(name="Legada", owner_email="OWNER@corp-old.com")
        wf_request = workflow_service.submit(legacy.name, SUBMITTER, {"item": "x"})
        assert workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN").status == "aprovacao"

    def test_unknown_actor(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(AuthResolutionError):
            workflow_service.transition(wf_request.id, "aprovacao", "COL-404")

    def test_unknown_request(self, definition):
        with pytest.raises(NotFoundError):
            workflow_service.transition("9999", "aprovacao", "COL-OWN")

    def test_deleted_definition(self, definition):
        wf_request = _submit(definition)
        definition_service.delete_definition(definition.id)
        with pytest.raises(ConfigurationError):
            workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")

    def test_current_stage_removed_from_definition(self, definition):
        wf_request = _submit(definition)
        definition_service.update_definition(definition.id, {
            "statuses": [{"id": "triagem"}, {"id": "concluido"}],
        })
        with pytest.raises(ConfigurationError):
            workflow_service.transition(wf_request.id, "concluido", "COL-OWN")

    def test_transition_clears_viewed_by(self, definition):
        wf_request = _submit(definition)
        assert workflow_service.mark_viewed("COL-APR", [wf_request.id]) == 1
        assert workflow_service.get_request(wf_request.id).viewed_by == {"COL-APR"}
        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        assert workflow_service.get_request(wf_request.id).viewed_by == set()

    def test_guided_path_to_terminal(self, definition):
        wf_request = _submit(definition)
        seen = []
        target = workflow_service.next_stage(wf_request)
        while target:
            seen.append(target)
            moved = workflow_service.transition(wf_request.id, target, "COL-OWN")
            target = workflow_service.next_stage(moved)
        assert seen == ["aprovacao", "execucao", "concluido"]
        described = workflow_service.describe(workflow_service.get_request(wf_request.id))
        assert described["is_terminal"] is True
        assert described["status_label"] == "Concluído"
        assert len(described["history"]) == 4

    def test_concurrent_status_change_is_a_conflict(self, definition, monkeypatch):
        wf_request = _submit(definition)
        original = workflow_service.require_action_rights

        def _racing(req, actor):
            # Another writer moves the request after it was read
            db.session.execute(
                update(WorkflowRequest)
                .where(WorkflowRequest.id == req.id)
                .values(status="execucao")
                .execution_options(synchronize_session=False)
            )
            return original(req, actor)

        monkeypatch.setattr(workflow_service, "require_action_rights", _racing)
        with pytest.raises(ConflictError) as exc:
            workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        assert "no longer at 'aberto'" in str(exc.value)

        monkeypatch.undo()
        stored = workflow_service.get_request(wf_request.id)
        assert stored.status == "aberto"
        assert len(stored.history) == 1


# ═══════════════════════════════════════════════════════════════════════════
#  ASSIGN / COMMENT / ARCHIVE
# ═══════════════════════════════════════════════════════════════════════════

class TestAssign:
    def test_assign_sets_assignee_and_history(self, definition):
        wf_request = _submit(definition)
        assigned, warning = workflow_service.assign(wf_request.id, "COL-APR", "COL-OWN")
        assert warning is None
        assert assigned.assignee == {"id": "COL-APR", "name": "Alice Prado"}
        last = _history(wf_request.id)[-1]
        assert last.kind == "assignment"
        assert last.status == "aberto"
        assert last.notes == "Solicitação atribuída a Alice Prado."

    def test_reassigning_same_person_is_a_warning(self, definition):
        wf_request = _submit(definition)
        workflow_service.assign(wf_request.id, "COL-APR", "COL-OWN")
        _, warning = workflow_service.assign(wf_request.id, "COL-APR", "COL-OWN")
        assert warning == "A solicitação já está atribuída a Alice Prado."
        assert len(_history(wf_request.id)) == 2

    def test_unknown_assignee(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(ValidationError):
            workflow_service.assign(wf_request.id, "COL-404", "COL-OWN")

    def test_outsider_cannot_assign(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(AuthorizationError):
            workflow_service.assign(wf_request.id, "COL-OTH", "COL-OTH")


class TestComment:
    def test_comment_appends_history_only(self, definition):
        wf_request = _submit(definition)
        workflow_service.add_comment(wf_request.id, "COL-OWN", "  Aguardando cotação  ")
        reloaded = workflow_service.get_request(wf_request.id)
        assert reloaded.status == "aberto"
        assert reloaded.history[-1].kind == "comment"
        assert reloaded.history[-1].notes == "Aguardando cotação"

    def test_empty_comment(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(ValidationError):
            workflow_service.add_comment(wf_request.id, "COL-OWN", "   ")

    def test_outsider_cannot_comment(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(AuthorizationError):
            workflow_service.add_comment(wf_request.id, "COL-OTH", "oi")


class TestArchive:
    def test_archive_is_idempotent(self, definition):
        wf_request = _submit(definition)
        assert workflow_service.archive(wf_request.id, "COL-OWN").is_archived is True
        assert workflow_service.archive(wf_request.id, "COL-OWN").is_archived is True
        assert len(_history(wf_request.id)) == 1

    def test_archived_request_keeps_status(self, definition):
        wf_request = _submit(definition)
        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        archived = workflow_service.archive(wf_request.id)
        assert archived.status == "aprovacao"


# ═══════════════════════════════════════════════════════════════════════════
#  HISTORY INTEGRITY
# ═══════════════════════════════════════════════════════════════════════════

class TestHistory:
    def test_purchase_flow_history(self, definition):
        wf_request = _submit(definition)
        assert len(_history(wf_request.id)) == 1

        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        assert len(_history(wf_request.id)) == 2

        action_request_service.open_action_request(wf_request.id, ["COL-APR"], "COL-OWN")
        assert len(_history(wf_request.id)) == 3

        record = action_request_service.respond(wf_request.id, "COL-APR", "approved")
        assert record.status == "approved"

        history = _history(wf_request.id)
        assert [h.kind for h in history] == ["created", "transition", "action_requested", "action_response"]
        assert workflow_service.get_request(wf_request.id).status == "aprovacao"

    def test_history_is_chronological_prefix(self, definition):
        wf_request = _submit(definition)
        snapshots = [[h.to_dict() for h in _history(wf_request.id)]]
        workflow_service.add_comment(wf_request.id, "COL-OWN", "primeiro")
        snapshots.append([h.to_dict() for h in _history(wf_request.id)])
        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        snapshots.append([h.to_dict() for h in _history(wf_request.id)])

        for before, after in zip(snapshots, snapshots[1:]):
            assert after[:len(before)] == before
            assert len(after) == len(before) + 1
        stamps = [h["timestamp"] for h in snapshots[-1]]
        assert stamps == sorted(stamps)

    def test_failed_operations_leave_history_untouched(self, definition):
        wf_request = _submit(definition)
        for call in (
            lambda: workflow_service.transition(wf_request.id, "aberto", "COL-OWN"),
            lambda: workflow_service.add_comment(wf_request.id, "COL-OTH", "x"),
            lambda: workflow_service.assign(wf_request.id, "COL-404", "COL-OWN"),
        ):
            with pytest.raises((ValidationError, AuthorizationError)):
                call()
        assert len(_history(wf_request.id)) == 1


# ═══════════════════════════════════════════════════════════════════════════
#  READ MODEL
# ═══════════════════════════════════════════════════════════════════════════

class TestReadModel:
    def test_newest_submission_first(self, definition):
        for _ in range(3):
            _submit(definition)
        ids = [r["request_id"] for r in workflow_service.list_requests()]
        assert ids == ["0003", "0002", "0001"]

    def test_cache_invalidated_by_new_submission(self, definition):
        _submit(definition)
        assert len(workflow_service.list_requests()) == 1
        _submit(definition)
        assert len(workflow_service.list_requests()) == 2

    def test_cache_invalidated_by_transition(self, definition):
        wf_request = _submit(definition)
        assert workflow_service.list_requests()[0]["status"] == "aberto"
        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        assert workflow_service.list_requests()[0]["status"] == "aprovacao"

    def test_list_is_served_from_cache(self, definition):
        _submit(definition)
        workflow_service.list_requests()
        cached = cache_service.get_cached(cache_service.request_list_key(archived="yes"))
        assert [r["request_id"] for r in cached] == ["0001"]

    def test_rolled_back_write_keeps_cached_lists(self, definition):
        wf_request = _submit(definition)
        workflow_service.list_requests()
        db.session.get(WorkflowRequest, wf_request.id).is_archived = True
        db.session.flush()
        db.session.rollback()
        assert cache_service.get_cached(cache_service.request_list_key(archived="yes")) is not None

    def test_archive_filters(self, definition):
        kept = _submit(definition)
        gone = _submit(definition)
        workflow_service.archive(gone.id)
        active = workflow_service.list_requests(include_archived=False)
        archived = workflow_service.list_requests(archived_only=True)
        assert [r["id"] for r in active] == [kept.id]
        assert [r["id"] for r in archived] == [gone.id]
        assert len(workflow_service.list_requests()) == 2

    def test_owner_filter_normalises_email(self, definition):
        _submit(definition)
        assert len(workflow_service.list_requests(owner_email="OWNER@corp.com")) == 1
        assert workflow_service.list_requests(owner_email="else@corp.com") == []

    def test_assignee_and_submitter_filters(self, definition):
        first = _submit(definition)
        _submit(definition)
        workflow_service.assign(first.id, "COL-APR", "COL-OWN")
        assert [r["id"] for r in workflow_service.list_requests(assignee_id="COL-APR")] == [first.id]
        assert len(workflow_service.list_requests(submitted_by="COL-SUB")) == 2

    def test_has_new_assigned_tasks(self, definition):
        assert workflow_service.has_new_assigned_tasks("COL-APR") is False
        wf_request = _submit(definition)
        workflow_service.assign(wf_request.id, "COL-APR", "COL-OWN")
        assert workflow_service.has_new_assigned_tasks("COL-APR") is True

        workflow_service.mark_viewed("COL-APR", [wf_request.id])
        assert workflow_service.has_new_assigned_tasks("COL-APR") is False

    def test_has_new_ignores_later_stages_and_archived(self, definition):
        moved = _submit(definition)
        workflow_service.assign(moved.id, "COL-APR", "COL-OWN")
        workflow_service.transition(moved.id, "aprovacao", "COL-OWN")
        archived = _submit(definition)
        workflow_service.assign(archived.id, "COL-APR", "COL-OWN")
        workflow_service.archive(archived.id)
        assert workflow_service.has_new_assigned_tasks("COL-APR") is False

    def test_mark_viewed_only_at_initial_stage(self, definition):
        wf_request = _submit(definition)
        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        assert workflow_service.mark_viewed("COL-APR", [wf_request.id]) == 0
        assert workflow_service.get_request(wf_request.id).viewed_by == set()

    def test_mark_viewed_twice_counts_once(self, definition):
        wf_request = _submit(definition)
        assert workflow_service.mark_viewed("COL-APR", [wf_request.id, wf_request.id]) == 1
        assert workflow_service.mark_viewed("COL-APR", [wf_request.id]) == 0

    def test_mark_viewed_unknown_key_stages_nothing(self, definition):
        wf_request = _submit(definition)
        with pytest.raises(NotFoundError):
            workflow_service.mark_viewed("COL-APR", [wf_request.id, "chave-inexistente"])
        assert not db.session.new
        db.session.commit()
        assert db.session.query(RequestViewer).count() == 0
        assert "COL-APR" not in workflow_service.get_request(wf_request.id).viewed_by

    def test_describe_adds_stage_information(self, definition):
        wf_request = _submit(definition)
        workflow_service.transition(wf_request.id, "aprovacao", "COL-OWN")
        described = workflow_service.describe(workflow_service.get_request(wf_request.id))
        assert described["status_label"] == "Em aprovação"
        assert described["next_stage"] == "execucao"
        assert described["is_terminal"] is False
        assert described["current_action"]["type"] == "approval"
