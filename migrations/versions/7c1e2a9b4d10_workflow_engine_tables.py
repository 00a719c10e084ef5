"""workflow_engine_tables

Create the collaborator directory, workflow definition/request tables,
the sequence counter and the notification/email log tables.

Revision ID: 7c1e2a9b4d10
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e2a9b4d10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "collaborators" not in existing_tables:
        op.create_table(
            "collaborators",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("area", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id"),
            sa.UniqueConstraint("email"),
        )

    if "workflow_definitions" not in existing_tables:
        op.create_table(
            "workflow_definitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("area_id", sa.String(length=64), nullable=True),
            sa.Column("owner_email", sa.String(length=200), nullable=False),
            sa.Column("statuses_json", sa.Text(), nullable=False, server_default="[]"),
            sa.Column("fields_json", sa.Text(), nullable=False, server_default="[]"),
            sa.Column("routing_rules_json", sa.Text(), nullable=False, server_default="[]"),
            sa.Column("sla_rules_json", sa.Text(), nullable=False, server_default="[]"),
            sa.Column("allowed_user_ids_json", sa.Text(), nullable=False, server_default='["all"]'),
            sa.Column("default_sla_days", sa.Integer(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )
        op.create_index("ix_workflow_definitions_area_id", "workflow_definitions", ["area_id"])

    if "workflow_requests" not in existing_tables:
        op.create_table(
            "workflow_requests",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("request_id", sa.String(length=20), nullable=False),
            sa.Column("type", sa.String(length=200), nullable=False),
            sa.Column("status", sa.String(length=100), nullable=False),
            sa.Column("owner_email", sa.String(length=200), nullable=False),
            sa.Column("submitted_by_id", sa.String(length=64), nullable=False),
            sa.Column("submitted_by_name", sa.String(length=200), nullable=False),
            sa.Column("submitted_by_email", sa.String(length=200), nullable=False),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("form_data_json", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("assignee_id", sa.String(length=64), nullable=True),
            sa.Column("assignee_name", sa.String(length=200), nullable=True),
            sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("sla_days", sa.Integer(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_id"),
        )
        op.create_index("ix_workflow_requests_type", "workflow_requests", ["type"])
        op.create_index("ix_workflow_requests_submitted_by_id", "workflow_requests", ["submitted_by_id"])
        op.create_index("idx_wfreq_owner_archived", "workflow_requests", ["owner_email", "is_archived"])
        op.create_index("idx_wfreq_assignee", "workflow_requests", ["assignee_id"])
        op.create_index("idx_wfreq_submitted_at", "workflow_requests", ["submitted_at"])

    if "workflow_history" not in existing_tables:
        op.create_table(
            "workflow_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_pk", sa.String(length=36), nullable=False),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.Column("status", sa.String(length=100), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("user_name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("kind", sa.String(length=30), nullable=False, server_default="comment"),
            sa.ForeignKeyConstraint(["request_pk"], ["workflow_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_wfhist_request_ts", "workflow_history", ["request_pk", "timestamp"])

    if "workflow_action_requests" not in existing_tables:
        op.create_table(
            "workflow_action_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_pk", sa.String(length=36), nullable=False),
            sa.Column("stage_id", sa.String(length=100), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("user_name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("requested_by", sa.String(length=64), nullable=True),
            sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("attachment_url", sa.String(length=500), nullable=True),
            sa.Column("attachment_name", sa.String(length=255), nullable=True),
            sa.ForeignKeyConstraint(["request_pk"], ["workflow_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_pk", "stage_id", "user_id", name="uq_action_request_stage_user"),
        )
        op.create_index("idx_action_user_status", "workflow_action_requests", ["user_id", "status"])

    if "workflow_request_viewers" not in existing_tables:
        op.create_table(
            "workflow_request_viewers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("request_pk", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["request_pk"], ["workflow_requests.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_pk", "user_id", name="uq_request_viewer"),
        )

    if "sequence_counters" not in existing_tables:
        op.create_table(
            "sequence_counters",
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("current_number", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("key"),
        )

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.String(length=36), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])
        op.create_index("ix_notifications_recipient_unread", "notifications", ["recipient", "is_read"])

    if "email_logs" not in existing_tables:
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("recipient_name", sa.String(length=150), nullable=True),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("template_name", sa.String(length=100), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("entity_id", sa.String(length=36), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])
        op.create_index("ix_email_logs_entity_id", "email_logs", ["entity_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "email_logs",
        "notifications",
        "sequence_counters",
        "workflow_request_viewers",
        "workflow_action_requests",
        "workflow_history",
        "workflow_requests",
        "workflow_definitions",
        "collaborators",
    ):
        if table in existing_tables:
            op.drop_table(table)
