"""store platform schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    store_plan = sa.Enum("woocommerce", "medusa", name="store_plan")
    store_status = sa.Enum("Provisioning", "Ready", "Failed", "Deleting", name="store_status")
    event_status = sa.Enum("started", "completed", "failed", name="event_status")

    op.create_table(
        "stores",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("slug", sa.String(length=40), nullable=False, unique=True),
        sa.Column("namespace", sa.String(length=60), nullable=False, unique=True),
        sa.Column("status", store_status, nullable=False),
        sa.Column("plan", store_plan, nullable=False),
        sa.Column("url", sa.String(length=255), nullable=True),
        sa.Column("admin_url", sa.String(length=255), nullable=True),
        sa.Column("admin_email", sa.String(length=255), nullable=False),
        sa.Column("admin_password", sa.String(length=128), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("provisioned_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_stores_status", "stores", ["status"])

    op.create_table(
        "provisioning_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Uuid(), sa.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step", sa.String(length=80), nullable=False),
        sa.Column("status", event_status, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_provisioning_events_store_id", "provisioning_events", ["store_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("action", sa.String(length=40), nullable=False),
        sa.Column("resource_type", sa.String(length=40), nullable=False),
        sa.Column("resource_id", sa.String(length=64), nullable=True),
        sa.Column("resource_name", sa.String(length=120), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])

    op.create_table(
        "rate_limit_buckets",
        sa.Column("key", sa.String(length=200), primary_key=True, nullable=False),
        sa.Column("hits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("window_started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("rate_limit_buckets")
    op.drop_index("ix_audit_log_created_at", table_name="audit_log")
    op.drop_index("ix_audit_log_action", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_provisioning_events_store_id", table_name="provisioning_events")
    op.drop_table("provisioning_events")
    op.drop_index("ix_stores_status", table_name="stores")
    op.drop_table("stores")

    bind = op.get_bind()
    sa.Enum(name="event_status").drop(bind, checkfirst=True)
    sa.Enum(name="store_status").drop(bind, checkfirst=True)
    sa.Enum(name="store_plan").drop(bind, checkfirst=True)
