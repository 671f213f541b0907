"""DMS booking import: customers, vehicles, health checks, import runs, settings, usage

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), nullable=False)


def _org() -> sa.Column:
    return sa.Column("organization_id", sa.String(length=36), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP"))


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP"))


def upgrade() -> None:
    # ── Reference tables ──
    op.create_table(
        "check_templates",
        _id(),
        _org(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_check_templates_organization_id", "check_templates", ["organization_id"])

    op.create_table(
        "sites",
        _id(),
        _org(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sites_organization_id", "sites", ["organization_id"])

    # ── Customers / vehicles ──
    op.create_table(
        "customers",
        _id(),
        _org(),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("external_source", sa.String(length=50), nullable=True),
        sa.Column("title", sa.String(length=20), nullable=True),
        sa.Column("first_name", sa.String(length=255), nullable=False),
        sa.Column("last_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True, comment="Stored lower-case"),
        sa.Column("mobile", sa.String(length=50), nullable=True, comment="Stored without whitespace"),
        sa.Column("phone", sa.String(length=50), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "external_source", "external_id", name="uq_customers_external"),
    )
    op.create_index("ix_customers_organization_id", "customers", ["organization_id"])
    op.create_index("ix_customers_email", "customers", ["email"])
    op.create_index("ix_customers_mobile", "customers", ["mobile"])

    op.create_table(
        "vehicles",
        _id(),
        _org(),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("external_source", sa.String(length=50), nullable=True),
        sa.Column("registration", sa.String(length=20), nullable=False, comment="Upper-case, no whitespace"),
        sa.Column("vin", sa.String(length=32), nullable=True),
        sa.Column("make", sa.String(length=100), nullable=True),
        sa.Column("model", sa.String(length=100), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("color", sa.String(length=50), nullable=True),
        sa.Column("fuel_type", sa.String(length=50), nullable=True),
        sa.Column("mileage", sa.Integer(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "external_source", "external_id", name="uq_vehicles_external"),
    )
    op.create_index("ix_vehicles_organization_id", "vehicles", ["organization_id"])
    op.create_index("ix_vehicles_customer_id", "vehicles", ["customer_id"])
    op.create_index("ix_vehicles_registration", "vehicles", ["registration"])
    op.create_index("ix_vehicles_vin", "vehicles", ["vin"])

    # ── Import runs ──
    op.create_table(
        "dms_import_runs",
        _id(),
        _org(),
        sa.Column("site_id", sa.String(length=36), nullable=True),
        sa.Column("import_type", sa.String(length=20), nullable=False, server_default="manual"),
        sa.Column("import_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("booking_ids", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="running"),
        sa.Column("bookings_found", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("bookings_imported", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("bookings_skipped", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("bookings_failed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("customers_created", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("vehicles_created", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("health_checks_created", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("errors", sa.JSON(), nullable=True),
        sa.Column("triggered_by", sa.String(length=36), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dms_import_runs_organization_id", "dms_import_runs", ["organization_id"])
    op.create_index("ix_dms_import_runs_started_at", "dms_import_runs", ["started_at"])
    op.create_index("ix_dms_import_runs_org_date", "dms_import_runs", ["organization_id", "import_date"])
    op.create_index("ix_dms_import_runs_org_status", "dms_import_runs", ["organization_id", "status"])

    # ── Health checks ──
    op.create_table(
        "health_checks",
        _id(),
        _org(),
        sa.Column("site_id", sa.String(length=36), nullable=True),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("vehicle_id", sa.String(length=36), nullable=False),
        sa.Column("template_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="created"),
        sa.Column("mileage_in", sa.Integer(), nullable=True),
        sa.Column("promise_time", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("external_source", sa.String(length=50), nullable=True),
        sa.Column("import_batch_id", sa.String(length=36), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"]),
        sa.ForeignKeyConstraint(["template_id"], ["check_templates.id"]),
        sa.ForeignKeyConstraint(["import_batch_id"], ["dms_import_runs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "external_source", "external_id", name="uq_health_checks_external"),
    )
    op.create_index("ix_health_checks_organization_id", "health_checks", ["organization_id"])
    op.create_index("ix_health_checks_customer_id", "health_checks", ["customer_id"])
    op.create_index("ix_health_checks_vehicle_id", "health_checks", ["vehicle_id"])
    op.create_index("ix_health_checks_import_batch_id", "health_checks", ["import_batch_id"])

    # ── Settings / usage ──
    op.create_table(
        "organization_import_settings",
        _id(),
        _org(),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("provider", sa.String(length=50), nullable=False, server_default="gemini_osi"),
        sa.Column("api_url", sa.Text(), nullable=True),
        sa.Column("username_encrypted", sa.Text(), nullable=True),
        sa.Column("password_encrypted", sa.Text(), nullable=True),
        sa.Column("default_template_id", sa.String(length=36), nullable=True),
        sa.Column("service_type_filter", sa.JSON(), nullable=True),
        sa.Column("auto_import_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("import_schedule_hours", sa.JSON(), nullable=True),
        sa.Column("import_schedule_days", sa.JSON(), nullable=True, comment="Days of week, 0=Sunday"),
        sa.Column("last_import_at", sa.DateTime(), nullable=True),
        sa.Column("last_import_status", sa.String(length=20), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["default_template_id"], ["check_templates.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_organization_import_settings_organization_id",
        "organization_import_settings",
        ["organization_id"],
        unique=True,
    )

    op.create_table(
        "organization_usage",
        _id(),
        _org(),
        sa.Column("period_start", sa.Date(), nullable=False, comment="First day of the billing month"),
        sa.Column("dms_imports", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("dms_bookings_imported", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "period_start", name="uq_organization_usage_period"),
    )
    op.create_index("ix_organization_usage_organization_id", "organization_usage", ["organization_id"])


def downgrade() -> None:
    op.drop_index("ix_organization_usage_organization_id", table_name="organization_usage")
    op.drop_table("organization_usage")
    op.drop_index("ix_organization_import_settings_organization_id", table_name="organization_import_settings")
    op.drop_table("organization_import_settings")
    for name in (
        "ix_health_checks_import_batch_id",
        "ix_health_checks_vehicle_id",
        "ix_health_checks_customer_id",
        "ix_health_checks_organization_id",
    ):
        op.drop_index(name, table_name="health_checks")
    op.drop_table("health_checks")
    for name in (
        "ix_dms_import_runs_org_status",
        "ix_dms_import_runs_org_date",
        "ix_dms_import_runs_started_at",
        "ix_dms_import_runs_organization_id",
    ):
        op.drop_index(name, table_name="dms_import_runs")
    op.drop_table("dms_import_runs")
    for name in (
        "ix_vehicles_vin",
        "ix_vehicles_registration",
        "ix_vehicles_customer_id",
        "ix_vehicles_organization_id",
    ):
        op.drop_index(name, table_name="vehicles")
    op.drop_table("vehicles")
    for name in ("ix_customers_mobile", "ix_customers_email", "ix_customers_organization_id"):
        op.drop_index(name, table_name="customers")
    op.drop_table("customers")
    op.drop_index("ix_sites_organization_id", table_name="sites")
    op.drop_table("sites")
    op.drop_index("ix_check_templates_organization_id", table_name="check_templates")
    op.drop_table("check_templates")
