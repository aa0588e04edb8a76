"""lifecycle schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


asset_event_kind = postgresql.ENUM("ASSIGNED", "UNASSIGNED", name="asset_event_kind", create_type=False)
subscription_event_kind = postgresql.ENUM(
    "ACTIVATED", "REACTIVATED", "REASSIGNED", "CANCELLED", name="subscription_event_kind", create_type=False
)
subscription_status = postgresql.ENUM("ACTIVE", "CANCELLED", name="subscription_status", create_type=False)
billing_cycle = postgresql.ENUM("ONE_TIME", "MONTHLY", "YEARLY", name="billing_cycle", create_type=False)


def upgrade() -> None:
    asset_event_kind.create(op.get_bind(), checkfirst=True)
    subscription_event_kind.create(op.get_bind(), checkfirst=True)
    subscription_status.create(op.get_bind(), checkfirst=True)
    billing_cycle.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_members_tenant_id", "members", ["tenant_id"])
    op.create_unique_constraint("uq_members_tenant_email", "members", ["tenant_id", "email"])

    op.create_table(
        "assets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("asset_tag", sa.String(length=64), nullable=False),
        sa.Column("model", sa.String(length=255), nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("price_currency", sa.String(length=3), nullable=True),
        sa.Column("assigned_member_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_assets_tenant_id", "assets", ["tenant_id"])
    op.create_index("ix_assets_tenant_assigned_member", "assets", ["tenant_id", "assigned_member_id"])
    op.create_unique_constraint("uq_assets_tenant_asset_tag", "assets", ["tenant_id", "asset_tag"])

    op.create_table(
        "asset_events",
        sa.Column("seq", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("asset_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("kind", asset_event_kind, nullable=False),
        sa.Column("member_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("prior_member_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("effective_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("performed_by", sa.String(length=320), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_asset_events_tenant_asset", "asset_events", ["tenant_id", "asset_id"])
    op.create_index("ix_asset_events_tenant_member", "asset_events", ["tenant_id", "member_id"])
    op.create_index("ix_asset_events_tenant_prior_member", "asset_events", ["tenant_id", "prior_member_id"])

    op.create_table(
        "subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("service_name", sa.String(length=255), nullable=False),
        sa.Column("billing_cycle", billing_cycle, nullable=False),
        sa.Column("cost_per_cycle", sa.Numeric(12, 2), nullable=False, server_default="0.00"),
        sa.Column("cost_currency", sa.String(length=3), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("renewal_date", sa.Date(), nullable=True),
        sa.Column("status", subscription_status, nullable=False),
        sa.Column("assigned_member_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("members.id"), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("cost_per_cycle >= 0", name="ck_subscriptions_cost_non_negative"),
    )
    op.create_index("ix_subscriptions_tenant_id", "subscriptions", ["tenant_id"])
    op.create_index(
        "ix_subscriptions_tenant_assigned_member", "subscriptions", ["tenant_id", "assigned_member_id"]
    )

    op.create_table(
        "subscription_events",
        sa.Column("seq", sa.BigInteger(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column(
            "subscription_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("subscriptions.id"),
            nullable=False,
        ),
        sa.Column("kind", subscription_event_kind, nullable=False),
        sa.Column("member_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("prior_member_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("effective_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("renewal_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("performed_by", sa.String(length=320), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_subscription_events_tenant_subscription", "subscription_events", ["tenant_id", "subscription_id"]
    )
    op.create_index("ix_subscription_events_tenant_member", "subscription_events", ["tenant_id", "member_id"])
    op.create_index(
        "ix_subscription_events_tenant_prior_member", "subscription_events", ["tenant_id", "prior_member_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_subscription_events_tenant_prior_member", table_name="subscription_events")
    op.drop_index("ix_subscription_events_tenant_member", table_name="subscription_events")
    op.drop_index("ix_subscription_events_tenant_subscription", table_name="subscription_events")
    op.drop_table("subscription_events")

    op.drop_index("ix_subscriptions_tenant_assigned_member", table_name="subscriptions")
    op.drop_index("ix_subscriptions_tenant_id", table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_index("ix_asset_events_tenant_prior_member", table_name="asset_events")
    op.drop_index("ix_asset_events_tenant_member", table_name="asset_events")
    op.drop_index("ix_asset_events_tenant_asset", table_name="asset_events")
    op.drop_table("asset_events")

    op.drop_constraint("uq_assets_tenant_asset_tag", "assets", type_="unique")
    op.drop_index("ix_assets_tenant_assigned_member", table_name="assets")
    op.drop_index("ix_assets_tenant_id", table_name="assets")
    op.drop_table("assets")

    op.drop_constraint("uq_members_tenant_email", "members", type_="unique")
    op.drop_index("ix_members_tenant_id", table_name="members")
    op.drop_table("members")

    op.drop_table("tenants")

    billing_cycle.drop(op.get_bind(), checkfirst=True)
    subscription_status.drop(op.get_bind(), checkfirst=True)
    subscription_event_kind.drop(op.get_bind(), checkfirst=True)
    asset_event_kind.drop(op.get_bind(), checkfirst=True)
