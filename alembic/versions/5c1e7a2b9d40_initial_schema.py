"""initial schema: quotes, contractor settings, pricing schemes, outbox

Revision ID: 5c1e7a2b9d40
Revises:
Create Date: 2026-10-18 10:12:41.204311

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5c1e7a2b9d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "contractor_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=100), nullable=False),
        sa.Column("company_name", sa.String(length=200), nullable=True),
        sa.Column("notification_email", sa.String(length=320), nullable=True),
        sa.Column("labor_markup_percent", sa.Float(), nullable=False, server_default="0"),
        sa.Column("material_markup_percent", sa.Float(), nullable=False, server_default="25"),
        sa.Column("overhead_percent", sa.Float(), nullable=False, server_default="0"),
        sa.Column("profit_margin_percent", sa.Float(), nullable=False, server_default="0"),
        sa.Column("tax_percent", sa.Float(), nullable=False, server_default="8.25"),
        sa.Column("deposit_percent", sa.Float(), nullable=False, server_default="50"),
        sa.Column("quote_validity_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("portal_duration_days", sa.Integer(), nullable=False, server_default="14"),
        sa.Column("portal_auto_lock", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("turnkey_interior_rate", sa.Float(), nullable=True),
        sa.Column("turnkey_exterior_rate", sa.Float(), nullable=True),
        sa.Column("hourly_rate", sa.Float(), nullable=True),
        sa.Column("crew_size", sa.Integer(), nullable=True),
        sa.Column("default_production_rate", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_contractor_settings_tenant_id", "contractor_settings", ["tenant_id"], unique=True
    )

    op.create_table(
        "pricing_schemes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pricing_schemes_tenant_id", "pricing_schemes", ["tenant_id"])

    op.create_table(
        "quotes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=100), nullable=False),
        sa.Column("quote_number", sa.String(length=32), nullable=False),
        sa.Column("client_id", sa.String(length=100), nullable=False),
        sa.Column("customer_name", sa.String(length=200), nullable=True),
        sa.Column("customer_email", sa.String(length=320), nullable=True),
        sa.Column("owner_email", sa.String(length=320), nullable=True),
        sa.Column("pricing_scheme_id", sa.Integer(), nullable=True),
        sa.Column("job_scope", sa.String(length=20), nullable=False, server_default="interior"),
        sa.Column("home_sqft", sa.Float(), nullable=True),
        sa.Column("home_condition", sa.String(length=20), nullable=True),
        sa.Column("include_materials", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("application_method", sa.String(length=20), nullable=False, server_default="roll"),
        sa.Column("coats", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("coverage", sa.Float(), nullable=True),
        sa.Column("waste_factor", sa.Float(), nullable=True),
        sa.Column("add_ons", sa.Float(), nullable=False, server_default="0"),
        sa.Column("areas", sa.JSON(), nullable=False),
        sa.Column("product_sets", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *[
            sa.Column(name, sa.Float(), nullable=False, server_default="0")
            for name in (
                "labor_total",
                "material_total",
                "labor_markup_amount",
                "material_markup_amount",
                "subtotal_before_overhead",
                "overhead_amount",
                "subtotal_before_profit",
                "profit_amount",
                "subtotal",
                "tax_amount",
                "base_total",
                "total",
                "deposit_amount",
                "balance_amount",
            )
        ],
        sa.Column("pricing_breakdown", sa.JSON(), nullable=True),
        sa.Column("pricing_source", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("selected_tier", sa.String(length=10), nullable=True),
        _ts("valid_until"),
        _ts("sent_at"),
        _ts("accepted_at"),
        _ts("declined_at"),
        sa.Column("decline_reason", sa.Text(), nullable=True),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("deposit_transaction_id", sa.String(length=255), nullable=True),
        _ts("deposit_verified_at"),
        _ts("portal_opened_at"),
        _ts("portal_closed_at"),
        sa.Column("portal_lock_reason", sa.String(length=30), nullable=True),
        _ts("selections_completed_at"),
        sa.Column("tier_change_request", sa.String(length=10), nullable=True),
        sa.Column("tier_change_reason", sa.Text(), nullable=True),
        _ts("tier_change_requested_at"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["pricing_scheme_id"], ["pricing_schemes.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "quote_number", name="uq_quotes_tenant_number"),
        sa.UniqueConstraint("deposit_transaction_id"),
    )
    op.create_index("ix_quotes_tenant_id", "quotes", ["tenant_id"])
    op.create_index("ix_quotes_client_id", "quotes", ["client_id"])
    op.create_index("ix_quotes_status", "quotes", ["status"])

    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=100), nullable=False),
        sa.Column("quote_id", sa.Integer(), nullable=True),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("recipient", sa.String(length=320), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=False,
        ),
        _ts("sent_at"),
        sa.ForeignKeyConstraint(["quote_id"], ["quotes.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_outbox_tenant_id", "notification_outbox", ["tenant_id"])
    op.create_index("ix_notification_outbox_quote_id", "notification_outbox", ["quote_id"])
    op.create_index("ix_notification_outbox_status", "notification_outbox", ["status"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("notification_outbox")
    op.drop_table("quotes")
    op.drop_table("pricing_schemes")
    op.drop_table("contractor_settings")
