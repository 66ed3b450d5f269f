"""initial_montage_workflow_schema

Create montages, checklist items/templates, history, notifications and
settings tables.

Revision ID: 5e1a7c20b9d4
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1a7c20b9d4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "montages" not in existing_tables:
        op.create_table(
            "montages",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("display_id", sa.String(length=30), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="lead"),
            sa.Column("client_name", sa.String(length=200), nullable=False),
            sa.Column("contact_phone", sa.String(length=50), nullable=True),
            sa.Column("contact_email", sa.String(length=200), nullable=True),
            sa.Column("installation_address", sa.Text(), nullable=True),
            sa.Column("installer_id", sa.String(length=100), nullable=True),
            sa.Column("measurement_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("scheduled_installation_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("material_details", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("display_id", name="uq_montages_display_id"),
        )
        op.create_index("ix_montages_status", "montages", ["status"])
        op.create_index("ix_montages_installer_id", "montages", ["installer_id"])

    if "montage_checklist_items" not in existing_tables:
        op.create_table(
            "montage_checklist_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("montage_id", sa.String(length=36), nullable=False),
            sa.Column("template_id", sa.String(length=100), nullable=False, server_default="custom"),
            sa.Column("label", sa.String(length=300), nullable=False),
            sa.Column("allow_attachment", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.Column("associated_stage", sa.String(length=50), nullable=True),
            sa.Column("assigned_role", sa.String(length=30), nullable=True),
            sa.Column("attachment_ref", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["montage_id"], ["montages.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("montage_id", "order_index", name="uq_checklist_item_order"),
        )
        op.create_index("ix_montage_checklist_items_montage_id", "montage_checklist_items", ["montage_id"])

    if "checklist_item_templates" not in existing_tables:
        op.create_table(
            "checklist_item_templates",
            sa.Column("id", sa.String(length=100), nullable=False),
            sa.Column("label", sa.String(length=300), nullable=False),
            sa.Column("allow_attachment", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("associated_stage", sa.String(length=50), nullable=False),
            sa.Column("assigned_role", sa.String(length=30), nullable=True),
            sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_checklist_item_templates_associated_stage",
                        "checklist_item_templates", ["associated_stage"])

    if "montage_events" not in existing_tables:
        op.create_table(
            "montage_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("montage_id", sa.String(length=36), nullable=False),
            sa.Column("event_type", sa.String(length=40), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("actor_id", sa.String(length=100), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["montage_id"], ["montages.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_montage_events_montage_id", "montage_events", ["montage_id"])
        op.create_index("ix_montage_events_created_at", "montage_events", ["created_at"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("montage_id", sa.String(length=36), nullable=True),
            sa.Column("recipient", sa.String(length=150), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("from_status", sa.String(length=50), nullable=True),
            sa.Column("to_status", sa.String(length=50), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["montage_id"], ["montages.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_montage_id", "notifications", ["montage_id"])
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])

    if "app_settings" not in existing_tables:
        op.create_table(
            "app_settings",
            sa.Column("key", sa.String(length=100), nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("key"),
        )

    if "automation_rule_settings" not in existing_tables:
        op.create_table(
            "automation_rule_settings",
            sa.Column("rule_id", sa.String(length=100), nullable=False),
            sa.Column("enabled", sa.Boolean(), nullable=False),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("rule_id"),
        )


def downgrade():
    for table in (
        "automation_rule_settings",
        "app_settings",
        "notifications",
        "montage_events",
        "checklist_item_templates",
        "montage_checklist_items",
        "montages",
    ):
        op.drop_table(table)
