"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


OVERLAP_CONSTRAINT_NAME = "ex_reservations_no_overlap"


def upgrade():
    op.create_table(
        "app_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("display_name", sa.String(length=160), nullable=True),
        sa.Column("calendar_override_mode", sa.String(length=16), nullable=False, server_default="default"),
        sa.Column("calendar_override_months", sa.Integer(), nullable=True),
        sa.Column("report_override_mode", sa.String(length=16), nullable=False, server_default="default"),
        sa.Column("report_override_months", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "calendar_override_mode IN ('default','unlimited','months')",
            name="ck_app_users_calendar_override_mode",
        ),
        sa.CheckConstraint(
            "report_override_mode IN ('default','unlimited','months')",
            name="ck_app_users_report_override_mode",
        ),
        sa.CheckConstraint(
            "(calendar_override_mode = 'months') = (calendar_override_months IS NOT NULL AND calendar_override_months > 0)",
            name="ck_app_users_calendar_override_months",
        ),
        sa.CheckConstraint(
            "(report_override_mode = 'months') = (report_override_months IS NOT NULL AND report_override_months > 0)",
            name="ck_app_users_report_override_months",
        ),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)

    op.create_table(
        "plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("calendar_months_limit", sa.Integer(), nullable=True),
        sa.Column("report_months_limit", sa.Integer(), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("plan_code", sa.String(length=50), nullable=False, server_default="free"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("current_period_end", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])

    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_properties_owner_user_id", "properties", ["owner_user_id"])

    op.create_table(
        "ical_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
        sa.Column("feed_url", sa.Text(), nullable=False),
        sa.Column("source_name", sa.String(length=20), nullable=False),
        sa.Column("source_label", sa.String(length=120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.Column("last_sync_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("last_error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ical_subscriptions_property_id", "ical_subscriptions", ["property_id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="confirmed"),
        sa.Column("source", sa.String(length=40), nullable=False, server_default="direct"),
        sa.Column(
            "subscription_id",
            sa.Integer(),
            sa.ForeignKey("ical_subscriptions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_uid", sa.String(length=255), nullable=True),
        sa.Column("guest_name", sa.String(length=200), nullable=True),
        sa.Column("summary", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("check_out > check_in", name="ck_reservations_dates"),
        sa.UniqueConstraint("subscription_id", "external_uid", name="uq_reservations_subscription_uid"),
    )
    op.create_index("ix_reservations_property_id", "reservations", ["property_id"])
    op.create_index("ix_reservations_subscription_id", "reservations", ["subscription_id"])
    op.create_index("ix_reservations_property_check_in", "reservations", ["property_id", "check_in"])

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            f"""
            ALTER TABLE reservations
              ADD CONSTRAINT {OVERLAP_CONSTRAINT_NAME}
              EXCLUDE USING gist (
                property_id WITH =,
                daterange(check_in, check_out, '[)') WITH &&
              )
              WHERE (status NOT IN ('cancelled', 'no_show'))
            """
        )

    op.create_table(
        "locked_dates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("property_id", "date", name="uq_locked_dates_property_date"),
    )
    op.create_index("ix_locked_dates_property_id", "locked_dates", ["property_id"])

    op.create_table(
        "sync_leases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "subscription_id",
            sa.Integer(),
            sa.ForeignKey("ical_subscriptions.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("owner", sa.String(length=80), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    for table in ("ical_feed_tokens", "calendar_share_tokens"):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
            sa.Column("token", sa.String(length=128), nullable=False, unique=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("revoked_at", sa.DateTime(), nullable=True),
        )
        op.create_index(f"ix_{table}_property_id", table, ["property_id"])
        # at most one active token per property
        op.create_index(
            f"uq_{table}_active_property",
            table,
            ["property_id"],
            unique=True,
            postgresql_where=sa.text("is_active"),
            sqlite_where=sa.text("is_active = 1"),
        )

    op.create_table(
        "cashflow_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entry_type", sa.String(length=20), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=False, server_default="other"),
        sa.Column("description", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column("reference_number", sa.String(length=80), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cashflow_entries_user_id", "cashflow_entries", ["user_id"])
    op.create_index("ix_cashflow_entries_property_id", "cashflow_entries", ["property_id"])
    op.create_index("ix_cashflow_entries_user_date", "cashflow_entries", ["user_id", "transaction_date"])


def downgrade():
    op.drop_table("cashflow_entries")
    op.drop_table("calendar_share_tokens")
    op.drop_table("ical_feed_tokens")
    op.drop_table("sync_leases")
    op.drop_table("locked_dates")
    op.drop_table("reservations")
    op.drop_table("ical_subscriptions")
    op.drop_table("properties")
    op.drop_table("subscriptions")
    op.drop_table("plans")
    op.drop_table("app_users")
