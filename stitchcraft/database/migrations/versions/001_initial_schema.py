"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-03-02 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)
MONEY = sa.Numeric(12, 2)


def _in(column: str, *values: str) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Upgrade database schema."""
    # Accounts
    op.create_table(
        "users",
        sa.Column("id", UUID, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("business_name", sa.String(length=255), nullable=True),
        sa.Column("profile_image", sa.String(length=512), nullable=True),
        sa.Column("region", sa.String(length=50), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notify_email", sa.Boolean(), nullable=False),
        sa.Column("notify_sms", sa.Boolean(), nullable=False),
        sa.Column("linked_client_id", UUID, nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            _in("role", "ADMIN", "TAILOR", "SEAMSTRESS", "WORKER", "CLIENT"),
            name="valid_user_role",
        ),
        sa.CheckConstraint(
            _in("status", "PENDING", "APPROVED", "ACTIVE", "SUSPENDED", "REJECTED"),
            name="valid_user_status",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=False)

    op.create_table(
        "sessions",
        sa.Column("id", UUID, nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        _timestamp("expires_at"),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index(op.f("ix_sessions_token"), "sessions", ["token"], unique=False)
    op.create_index(op.f("ix_sessions_user_id"), "sessions", ["user_id"], unique=False)

    # Tenancy
    op.create_table(
        "organizations",
        sa.Column("id", UUID, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("owner_id", UUID, nullable=False),
        sa.Column("region", sa.String(length=50), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index(
        op.f("ix_organizations_owner_id"), "organizations", ["owner_id"], unique=False
    )

    op.create_table(
        "organization_members",
        sa.Column("id", UUID, nullable=False),
        sa.Column("organization_id", UUID, nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint(
            _in("role", "MANAGER", "SENIOR", "WORKER", "APPRENTICE"), name="valid_worker_role"
        ),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
    )
    op.create_index(
        op.f("ix_organization_members_user_id"), "organization_members", ["user_id"], unique=False
    )

    # Clients
    op.create_table(
        "clients",
        sa.Column("id", UUID, nullable=False),
        sa.Column("tailor_id", UUID, nullable=False),
        sa.Column("organization_id", UUID, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("region", sa.String(length=50), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["tailor_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tailor_id", "phone", name="uq_client_tailor_phone"),
    )
    op.create_index(op.f("ix_clients_tailor_id"), "clients", ["tailor_id"], unique=False)
    op.create_index(
        op.f("ix_clients_organization_id"), "clients", ["organization_id"], unique=False
    )
    op.create_foreign_key(
        "fk_users_linked_client", "users", "clients", ["linked_client_id"], ["id"]
    )

    op.create_table(
        "client_measurements",
        sa.Column("id", UUID, nullable=False),
        sa.Column("client_id", UUID, nullable=False),
        sa.Column("values", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_client_measurements_client_id"),
        "client_measurements",
        ["client_id"],
        unique=False,
    )

    op.create_table(
        "client_tracking_tokens",
        sa.Column("id", UUID, nullable=False),
        sa.Column("client_id", UUID, nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamp("expires_at", nullable=True),
        _timestamp("last_used_at", nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index(
        op.f("ix_client_tracking_tokens_client_id"),
        "client_tracking_tokens",
        ["client_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_client_tracking_tokens_token"), "client_tracking_tokens", ["token"], unique=False
    )

    # Orders, invoices, payments
    op.create_table(
        "orders",
        sa.Column("id", UUID, nullable=False),
        sa.Column("order_number", sa.String(length=50), nullable=False),
        sa.Column("tailor_id", UUID, nullable=False),
        sa.Column("organization_id", UUID, nullable=False),
        sa.Column("client_id", UUID, nullable=False),
        sa.Column("garment_type", sa.String(length=30), nullable=False),
        sa.Column("garment_description", sa.Text(), nullable=True),
        sa.Column("style_notes", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("material_cost", MONEY, nullable=False),
        sa.Column("labor_cost", MONEY, nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("paid_amount", MONEY, nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("measurement_id", UUID, nullable=True),
        _timestamp("deadline", nullable=True),
        _timestamp("started_at", nullable=True),
        _timestamp("completed_at", nullable=True),
        _timestamp("delivered_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("paid_amount >= 0", name="non_negative_paid_amount"),
        sa.CheckConstraint("total_amount >= 0", name="non_negative_total_amount"),
        sa.CheckConstraint(
            _in(
                "status",
                "PENDING",
                "CONFIRMED",
                "IN_PROGRESS",
                "READY_FOR_FITTING",
                "FITTING_DONE",
                "COMPLETED",
                "DELIVERED",
                "CANCELLED",
            ),
            name="valid_order_status",
        ),
        sa.ForeignKeyConstraint(["tailor_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["measurement_id"], ["client_measurements.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_orders_org_status", "orders", ["organization_id", "status"], unique=False)
    for column in (
        "order_number", "tailor_id", "organization_id", "client_id", "status", "created_at"
    ):
        op.create_index(op.f(f"ix_orders_{column}"), "orders", [column], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", UUID, nullable=False),
        sa.Column("invoice_number", sa.String(length=50), nullable=False),
        sa.Column("tailor_id", UUID, nullable=False),
        sa.Column("organization_id", UUID, nullable=False),
        sa.Column("client_id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("vat_amount", MONEY, nullable=False),
        sa.Column("nhil_amount", MONEY, nullable=False),
        sa.Column("getfund_amount", MONEY, nullable=False),
        sa.Column("total_tax", MONEY, nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("paid_amount", MONEY, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("due_date", nullable=True),
        _timestamp("paid_at", nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            _in("status", "DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED"),
            name="valid_invoice_status",
        ),
        sa.ForeignKeyConstraint(["tailor_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("invoice_number", "tailor_id", "organization_id", "client_id"):
        op.create_index(op.f(f"ix_invoices_{column}"), "invoices", [column], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", UUID, nullable=False),
        sa.Column("payment_number", sa.String(length=50), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=False),
        sa.Column("tailor_id", UUID, nullable=False),
        sa.Column("organization_id", UUID, nullable=False),
        sa.Column("client_id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=False),
        sa.Column("invoice_id", UUID, nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("method", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("mobile_number", sa.String(length=20), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("paid_at"),
        _timestamp("created_at"),
        sa.CheckConstraint("amount > 0", name="positive_amount"),
        sa.CheckConstraint(
            _in(
                "method",
                "CASH",
                "MOBILE_MONEY_MTN",
                "MOBILE_MONEY_VODAFONE",
                "MOBILE_MONEY_AIRTELTIGO",
                "BANK_TRANSFER",
                "PAYSTACK",
            ),
            name="valid_payment_method",
        ),
        sa.CheckConstraint(_in("status", "COMPLETED"), name="valid_payment_status"),
        sa.ForeignKeyConstraint(["tailor_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_id"),
    )
    op.create_index(
        "idx_payments_org_paid_at", "payments", ["organization_id", "paid_at"], unique=False
    )
    for column in (
        "transaction_id",
        "tailor_id",
        "organization_id",
        "client_id",
        "order_id",
        "paid_at",
    ):
        op.create_index(op.f(f"ix_payments_{column}"), "payments", [column], unique=False)

    # Scheduling and feedback
    op.create_table(
        "appointments",
        sa.Column("id", UUID, nullable=False),
        sa.Column("tailor_id", UUID, nullable=False),
        sa.Column("organization_id", UUID, nullable=False),
        sa.Column("client_id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        _timestamp("start_time"),
        _timestamp("end_time"),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            _in("type", "CONSULTATION", "MEASUREMENT", "FITTING", "COLLECTION", "REPAIR"),
            name="valid_appointment_type",
        ),
        sa.CheckConstraint(
            _in("status", "SCHEDULED", "COMPLETED", "CANCELLED"),
            name="valid_appointment_status",
        ),
        sa.CheckConstraint("end_time > start_time", name="appointment_time_order"),
        sa.ForeignKeyConstraint(["tailor_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_appointments_organization_id"), "appointments", ["organization_id"], unique=False
    )
    op.create_index(
        op.f("ix_appointments_client_id"), "appointments", ["client_id"], unique=False
    )

    op.create_table(
        "order_ratings",
        sa.Column("id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("review", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="valid_rating"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )

    # Audit trail
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", UUID, nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("resource", sa.String(length=100), nullable=False),
        sa.Column("resource_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_logs_user_id"), "audit_logs", ["user_id"], unique=False)
    op.create_index(op.f("ix_audit_logs_created_at"), "audit_logs", ["created_at"], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("audit_logs")
    op.drop_table("order_ratings")
    op.drop_table("appointments")
    op.drop_table("payments")
    op.drop_table("invoices")
    op.drop_table("orders")
    op.drop_table("client_tracking_tokens")
    op.drop_table("client_measurements")
    op.drop_constraint("fk_users_linked_client", "users", type_="foreignkey")
    op.drop_table("clients")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("sessions")
    op.drop_table("users")
