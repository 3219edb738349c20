"""estimates and estimate lines

Revision ID: b1l002
Revises: b1l001
Create Date: 2026-10-19 12:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b1l002"
down_revision = "b1l001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "estimates",
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("estimate_no", sa.String(length=64), nullable=False),
        sa.Column("estimate_date", sa.Date(), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("subtotal_cents", sa.BigInteger(), nullable=False),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False),
        sa.Column("tax_cents", sa.BigInteger(), nullable=False),
        sa.Column("total_cents", sa.BigInteger(), nullable=False),
        sa.Column("converted_invoice_id", sa.String(length=64), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("business_id", "id"),
    )
    op.create_index("ix_estimates_status", "estimates", ["status"], unique=False)
    op.create_index("ix_estimates_business_date", "estimates", ["business_id", "estimate_date"], unique=False)

    op.create_table(
        "estimate_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("estimate_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(
            ["business_id", "estimate_id"],
            ["estimates.business_id", "estimates.id"],
            name="fk_estimate_lines_estimate",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_estimate_lines_estimate", "estimate_lines", ["business_id", "estimate_id"], unique=False)


def downgrade():
    op.drop_index("ix_estimate_lines_estimate", table_name="estimate_lines")
    op.drop_table("estimate_lines")
    op.drop_index("ix_estimates_business_date", table_name="estimates")
    op.drop_index("ix_estimates_status", table_name="estimates")
    op.drop_table("estimates")
