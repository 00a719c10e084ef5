"""
Shared pytest fixtures for the Company Portal workflow test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - people: Owner / submitter / approver / outsider collaborators
    - definition_data: Default definition payload (deep copy)
    - make_definition: Factory for workflow definitions
    - definition: The default four-stage definition
"""

import copy

import pytest

from portal import create_app
from portal.models import db as _db
from portal.models.collaborator import Collaborator
from portal.services import cache_service, definition_service


OWNER_EMAIL = "owner@corp.com"
SUBMITTER_EMAIL = "sub@corp.com"

DEFAULT_DEFINITION = {
    "name": "Solicitação de Compra",
    "description": "Compra de material com aprovação e execução.",
    "area_id": "compras",
    "owner_email": OWNER_EMAIL,
    "default_sla_days": 5,
    "statuses": [
        {"id": "aberto", "label": "Aberto"},
        {"id": "aprovacao", "label": "Em aprovação",
         "action": {"type": "approval", "label": "Aprovar compra"}},
        {"id": "execucao", "label": "Execução",
         "action": {"type": "execution", "label": "Executar compra", "commentRequired": True}},
        {"id": "concluido", "label": "Concluído"},
    ],
    "fields": [
        {"id": "item", "label": "Item", "type": "text", "required": True},
        {"id": "categoria", "label": "Categoria", "type": "select"},
        {"id": "comprovante", "label": "Comprovante", "type": "file"},
    ],
    "routing_rules": [
        {"field": "categoria", "value": "Viagem", "notify": ["apr@corp.com"]},
    ],
    "sla_rules": [
        {"field": "categoria", "value": "Urgente", "days": 2},
    ],
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    upload_root = tmp_path_factory.mktemp("uploads")
    application = create_app("testing", {"UPLOAD_FOLDER": str(upload_root)})
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # Tables are recreated per test and keys are reused; cached request
        # lists and the storage backend must not leak between tests.
        cache_service.clear_all()
        app.extensions.pop("portal_storage", None)
        yield
        cache_service.clear_all()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def people():
    """Four collaborators keyed by role."""
    rows = {
        "owner": Collaborator(user_id="COL-OWN", name="Olga Owner", email=OWNER_EMAIL),
        "submitter": Collaborator(user_id="COL-SUB", name="Sergio Silva", email=SUBMITTER_EMAIL),
        "approver": Collaborator(user_id="COL-APR", name="Alice Prado", email="apr@corp.com"),
        "other": Collaborator(user_id="COL-OTH", name="Otto Reis", email="other@corp.com"),
    }
    _db.session.add_all(rows.values())
    _db.session.commit()
    return rows


@pytest.fixture()
def definition_data():
    """A fresh copy of the default definition payload."""
    return copy.deepcopy(DEFAULT_DEFINITION)


@pytest.fixture()
def make_definition():
    """Create a definition from the default template with *overrides* applied."""

    def _make(**overrides):
        data = {**DEFAULT_DEFINITION, **overrides}
        return definition_service.create_definition(data)

    return _make


@pytest.fixture()
def definition(people, make_definition):
    return make_definition()
