"""cart engine schema

Revision ID: 3c7d1e9a2b40
Revises:
Create Date: 2026-10-18 10:00:00.000000
"""
from __future__ import annotations

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

from cart_engine.db.types import GUID

# revision identifiers, used by Alembic.
revision: str = "3c7d1e9a2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

cartstatus = sa.Enum("active", "abandoned", "converted", "expired", name="cartstatus")
abandonmentstage = sa.Enum("cart", "checkout", "payment", name="abandonmentstage")


def upgrade() -> None:
    # Catalog projection; owned upstream, mirrored here for reads.
    op.create_table(
        "products",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("vendor_id", GUID(), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=False),
        sa.Column("track_inventory", sa.Boolean(), nullable=False),
        sa.Column("allow_backorders", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_products_vendor_id", "products", ["vendor_id"], unique=False)

    op.create_table(
        "carts",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("session_id", sa.String(length=120), nullable=True),
        sa.Column("status", cartstatus, nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False),
        sa.Column("vendor_count", sa.Integer(), nullable=False),
        sa.Column("subtotal_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("shipping_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("coupon_code", sa.String(length=40), nullable=True),
        sa.Column("converted_order_id", GUID(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_carts_user_id_status", "carts", ["user_id", "status"], unique=False)
    op.create_index("ix_carts_session_id_status", "carts", ["session_id", "status"], unique=False)

    op.create_table(
        "cart_items",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("cart_id", GUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", GUID(), nullable=False),
        sa.Column("variant_id", GUID(), nullable=True),
        sa.Column("vendor_id", GUID(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("product_name", sa.String(length=200), nullable=False),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("stock_snapshot", sa.Integer(), nullable=True),
        sa.Column("is_saved_for_later", sa.Boolean(), nullable=False),
        sa.Column("is_gift", sa.Boolean(), nullable=False),
        sa.Column("gift_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["cart_id"], ["carts.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_cart_items_cart_id", "cart_items", ["cart_id"], unique=False)
    op.create_index("ix_cart_items_product_id", "cart_items", ["product_id"], unique=False)

    # No FK to carts: tracking survives merged and cleaned-up carts.
    op.create_table(
        "cart_abandonment_tracking",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("cart_id", GUID(), nullable=False),
        sa.Column("stage", abandonmentstage, nullable=False),
        sa.Column("last_page_visited", sa.String(length=500), nullable=True),
        sa.Column("abandoned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("emails_sent", sa.Integer(), nullable=False),
        sa.Column("recovery_clicks", sa.Integer(), nullable=False),
        sa.Column("last_email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_recovered", sa.Boolean(), nullable=False),
        sa.Column("recovered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recovered_order_id", GUID(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_cart_abandonment_tracking_cart_id", "cart_abandonment_tracking", ["cart_id"], unique=True
    )
    op.create_index(
        "ix_cart_abandonment_tracking_unrecovered",
        "cart_abandonment_tracking",
        ["is_recovered", "abandoned_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_cart_abandonment_tracking_unrecovered", table_name="cart_abandonment_tracking")
    op.drop_index("ix_cart_abandonment_tracking_cart_id", table_name="cart_abandonment_tracking")
    op.drop_table("cart_abandonment_tracking")

    op.drop_index("ix_cart_items_product_id", table_name="cart_items")
    op.drop_index("ix_cart_items_cart_id", table_name="cart_items")
    op.drop_table("cart_items")

    op.drop_index("ix_carts_session_id_status", table_name="carts")
    op.drop_index("ix_carts_user_id_status", table_name="carts")
    op.drop_table("carts")

    op.drop_index("ix_products_vendor_id", table_name="products")
    op.drop_table("products")

    bind = op.get_bind()
    abandonmentstage.drop(bind, checkfirst=True)
    cartstatus.drop(bind, checkfirst=True)
