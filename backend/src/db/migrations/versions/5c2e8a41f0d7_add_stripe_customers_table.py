"""
Add stripe_customers table.

Revision ID: 5c2e8a41f0d7
Revises:
Create Date: 2026-10-16 10:42:08.512337
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e8a41f0d7"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "stripe_customers",
        sa.Column(
            "user_id",
            sa.String(length=255),
            nullable=False,
            comment="Stable local user identifier",
        ),
        sa.Column(
            "customer_id",
            sa.String(length=255),
            nullable=False,
            comment="Stripe customer id, e.g. 'cus_...'",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_index(
        op.f("ix_stripe_customers_customer_id"),
        "stripe_customers",
        ["customer_id"],
        unique=True,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_stripe_customers_customer_id"), table_name="stripe_customers")
    op.drop_table("stripe_customers")
