"""Freeze priced cart lines on checkout sessions

Revision ID: 20261017_session_items
Revises: 20261017_initial
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_session_items"
down_revision = "20261017_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "checkout_session_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_checkout_session_items_quantity_positive"),
        sa.ForeignKeyConstraint(["session_id"], ["checkout_sessions.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "product_id", name="uq_checkout_session_items_session_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("checkout_session_items", schema=None) as batch_op:
        batch_op.create_index("ix_checkout_session_items_session_id", ["session_id"], unique=False)


def downgrade():
    with op.batch_alter_table("checkout_session_items", schema=None) as batch_op:
        batch_op.drop_index("ix_checkout_session_items_session_id")
    op.drop_table("checkout_session_items")
