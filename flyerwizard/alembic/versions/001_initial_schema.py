"""initial_schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-12 09:00:00.000000 UTC

Creates the catalogue, shopping list and wizard audit tables:
  - stores, flyers, products        (flyer offers the wizard suggests)
  - shopping_lists, shopping_list_items
  - offer_snapshots                 (immutable record of each wizard replacement)
  - user_store_preferences
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- stores table ---
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False, comment="Short stable identifier, e.g. 'iki' or 'maxima'"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    # --- flyers table ---
    op.create_table(
        "flyers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=False, comment="Last moment any offer in this flyer is honoured"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_flyers_store_id"), "flyers", ["store_id"], unique=False)
    op.create_index(op.f("ix_flyers_valid_to"), "flyers", ["valid_to"], unique=False)

    # --- products table ---
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("flyer_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("product_master_id", sa.Integer(), nullable=True, comment="Canonical product this offer was matched to, if any"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("brand", sa.String(length=100), nullable=True),
        sa.Column("current_price", sa.Float(), nullable=False),
        sa.Column("unit_type", sa.String(length=20), nullable=True, comment="Pricing unit: 'L', 'kg', 'vnt', ..."),
        sa.Column("unit_size", sa.String(length=50), nullable=True, comment="Raw package size text as printed, e.g. '1,5 l' or '500 g'"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["flyer_id"], ["flyers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_products_flyer_id"), "products", ["flyer_id"], unique=False)
    op.create_index(op.f("ix_products_store_id"), "products", ["store_id"], unique=False)
    op.create_index(op.f("ix_products_valid_to"), "products", ["valid_to"], unique=False)

    # --- shopping_lists table ---
    op.create_table(
        "shopping_lists",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false(), comment="True while a migration wizard session is active for this list"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_shopping_lists_user_id"), "shopping_lists", ["user_id"], unique=False)

    # --- shopping_list_items table ---
    op.create_table(
        "shopping_list_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shopping_list_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=True),
        sa.Column("origin", sa.String(length=20), nullable=False, comment="'flyer' (linked to an offer) or 'free_text'"),
        sa.Column("linked_product_id", sa.Integer(), nullable=True),
        sa.Column("product_master_id", sa.Integer(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("flyer_id", sa.Integer(), nullable=True),
        sa.Column("estimated_price", sa.Float(), nullable=True),
        sa.Column("availability_status", sa.String(length=20), nullable=False, server_default="unknown"),
        sa.Column("availability_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["shopping_list_id"], ["shopping_lists.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["linked_product_id"], ["products.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["flyer_id"], ["flyers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_shopping_list_items_shopping_list_id"), "shopping_list_items", ["shopping_list_id"], unique=False)

    # --- offer_snapshots table ---
    op.create_table(
        "offer_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shopping_list_item_id", sa.Integer(), nullable=False),
        sa.Column("flyer_product_id", sa.Integer(), nullable=True),
        sa.Column("product_master_id", sa.Integer(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("brand", sa.String(length=100), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("size_value", sa.Float(), nullable=True),
        sa.Column("size_unit", sa.String(length=20), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated", sa.Boolean(), nullable=False, server_default=sa.false(), comment="Always false for wizard snapshots — actual flyer prices only"),
        sa.Column("snapshot_reason", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["shopping_list_item_id"], ["shopping_list_items.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_offer_snapshots_shopping_list_item_id"), "offer_snapshots", ["shopping_list_item_id"], unique=False)
    op.create_index(op.f("ix_offer_snapshots_flyer_product_id"), "offer_snapshots", ["flyer_product_id"], unique=False)

    # --- user_store_preferences table ---
    op.create_table(
        "user_store_preferences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "store_id", name="uq_user_store_preference"),
    )
    op.create_index(op.f("ix_user_store_preferences_user_id"), "user_store_preferences", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_user_store_preferences_user_id"), table_name="user_store_preferences")
    op.drop_table("user_store_preferences")
    op.drop_index(op.f("ix_offer_snapshots_flyer_product_id"), table_name="offer_snapshots")
    op.drop_index(op.f("ix_offer_snapshots_shopping_list_item_id"), table_name="offer_snapshots")
    op.drop_table("offer_snapshots")
    op.drop_index(op.f("ix_shopping_list_items_shopping_list_id"), table_name="shopping_list_items")
    op.drop_table("shopping_list_items")
    op.drop_index(op.f("ix_shopping_lists_user_id"), table_name="shopping_lists")
    op.drop_table("shopping_lists")
    op.drop_index(op.f("ix_products_valid_to"), table_name="products")
    op.drop_index(op.f("ix_products_store_id"), table_name="products")
    op.drop_index(op.f("ix_products_flyer_id"), table_name="products")
    op.drop_table("products")
    op.drop_index(op.f("ix_flyers_valid_to"), table_name="flyers")
    op.drop_index(op.f("ix_flyers_store_id"), table_name="flyers")
    op.drop_table("flyers")
    op.drop_table("stores")
