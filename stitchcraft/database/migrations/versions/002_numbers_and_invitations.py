"""Unique document numbers per tailor; worker invitations

Revision ID: 002
Revises: 001
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)

NUMBER_CONSTRAINTS = (
    ("uq_order_tailor_number", "orders", "order_number"),
    ("uq_invoice_tailor_number", "invoices", "invoice_number"),
    ("uq_payment_tailor_number", "payments", "payment_number"),
)


def upgrade() -> None:
    """Upgrade database schema."""
    for name, table, column in NUMBER_CONSTRAINTS:
        op.create_unique_constraint(name, table, ["tailor_id", column])

    op.create_table(
        "invitations",
        sa.Column("id", UUID, nullable=False),
        sa.Column("organization_id", UUID, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("invited_by_id", UUID, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "role IN ('MANAGER', 'SENIOR', 'WORKER', 'APPRENTICE')",
            name="valid_invitation_role",
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'REVOKED')", name="valid_invitation_status"
        ),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invited_by_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_invitations_token"), "invitations", ["token"], unique=True)
    op.create_index(
        "ix_invitations_org_status", "invitations", ["organization_id", "status"], unique=False
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_invitations_org_status", table_name="invitations")
    op.drop_index(op.f("ix_invitations_token"), table_name="invitations")
    op.drop_table("invitations")

    for name, table, _ in reversed(NUMBER_CONSTRAINTS):
        op.drop_constraint(name, table, type_="unique")
