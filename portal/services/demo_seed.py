"""
Company Portal
Demo data seed.

Creates a handful of collaborators and two workflow definitions so a fresh
development database has something to click through. Safe to run twice:
existing rows (matched by user_id / definition name) are left alone.
"""

import logging

from portal.models import db
from portal.models.collaborator import Collaborator
from portal.models.workflow import WorkflowDefinition
from portal.services import definition_service

logger = logging.getLogger(__name__)

DEMO_COLLABORATORS = [
    {"user_id": "COL-001", "name": "Ana Souza", "email": "ana.souza@empresa.com.br", "area": "RH"},
    {"user_id": "COL-002", "name": "Bruno Lima", "email": "bruno.lima@empresa.com.br", "area": "Financeiro"},
    {"user_id": "COL-003", "name": "Carla Dias", "email": "carla.dias@empresa.com.br", "area": "TI"},
    {"user_id": "COL-004", "name": "Diego Alves", "email": "diego.alves@empresa.com.br", "area": "TI"},
]

DEMO_DEFINITIONS = [
    {
        "name": "Solicitação de Férias",
        "description": "Pedido de férias com aprovação do gestor.",
        "area_id": "rh",
        "owner_email": "ana.souza@empresa.com.br",
        "default_sla_days": 5,
        "statuses": [
            {"id": "em_analise", "label": "Em análise"},
            {"id": "aprovacao_gestor", "label": "Aprovação do gestor",
             "action": {"type": "approval", "label": "Aprovar férias"}},
            {"id": "concluido", "label": "Concluído"},
        ],
        "fields": [
            {"id": "periodo", "label": "Período", "type": "date-range", "required": True},
            {"id": "observacoes", "label": "Observações", "type": "textarea"},
        ],
        "sla_rules": [],
        "routing_rules": [],
    },
    {
        "name": "Reembolso de Despesas",
        "description": "Reembolso com comprovante e execução pelo financeiro.",
        "area_id": "financeiro",
        "owner_email": "bruno.lima@empresa.com.br",
        "default_sla_days": 10,
        "statuses": [
            {"id": "recebido", "label": "Recebido"},
            {"id": "pagamento", "label": "Pagamento",
             "action": {"type": "execution", "label": "Efetuar pagamento",
                        "comment_required": True, "attachment_required": True}},
            {"id": "pago", "label": "Pago"},
        ],
        "fields": [
            {"id": "valor", "label": "Valor", "type": "number", "required": True},
            {"id": "categoria", "label": "Categoria", "type": "select",
             "options": ["viagem", "alimentacao", "outros"]},
            {"id": "comprovante", "label": "Comprovante", "type": "file"},
        ],
        "sla_rules": [{"field": "categoria", "value": "viagem", "days": 3}],
        "routing_rules": [
            {"field": "categoria", "value": "viagem", "notify": ["carla.dias@empresa.com.br"]},
        ],
    },
]


def seed_demo_data():
    """Insert missing demo rows. Returns ``{"collaborators": n, "definitions": n}``."""
    created = {"collaborators": 0, "definitions": 0}

    for row in DEMO_COLLABORATORS:
        if Collaborator.query.filter_by(user_id=row["user_id"]).first() is None:
            db.session.add(Collaborator(**row))
            created["collaborators"] += 1
    db.session.commit()

    for row in DEMO_DEFINITIONS:
        if WorkflowDefinition.query.filter_by(name=row["name"]).first() is None:
            definition_service.create_definition(row)
            created["definitions"] += 1

    logger.info("Demo seed finished: %s", created)
    return created
