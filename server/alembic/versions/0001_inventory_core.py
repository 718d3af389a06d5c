"""inventory core

Revision ID: 0001_inventory_core
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_inventory_core"
down_revision = None
branch_labels = None
depends_on = None


MOVEMENT_TYPES = (
    "stock_in",
    "stock_out",
    "transfer",
    "adjustment",
    "sale",
    "return",
    "damage",
    "expiration",
    "initial",
)
LEDGER_TYPES = (
    "stock_in",
    "stock_out",
    "transfer",
    "adjustment_damage",
    "sale",
    "return",
    "damage",
    "expiration",
)
SERIAL_STATUSES = ("in_stock", "reserved", "sold", "returned", "damaged", "expired", "in_transit")
ADJUSTMENT_TYPES = ("damage", "loss", "theft", "expiration", "count_variance", "manual_correction")


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "inventory_locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=50)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("organization_id", "code", name="uq_inventory_location_org_code"),
    )
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("sku", sa.String(length=100)),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("track_batches", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("track_serials", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_products_organization_id", "products", ["organization_id"])
    op.create_table(
        "product_variants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sku", sa.String(length=100)),
        sa.Column("name", sa.String(length=200)),
    )
    op.create_table(
        "stock_levels",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id")),
        sa.Column("variant_key", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id"), nullable=False),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_available", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reorder_point", sa.Integer()),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "product_id",
            "variant_key",
            "location_id",
            name="uq_stock_level_product_variant_location",
        ),
    )
    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id")),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id")),
        sa.Column("type", sa.Enum(*LEDGER_TYPES, name="inventory_transaction_type"), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("actor_id", sa.Integer()),
        sa.Column("order_item_id", sa.Integer()),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_inventory_transactions_product_date",
        "inventory_transactions",
        ["product_id", "transaction_date"],
    )
    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id")),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id")),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("inventory_transactions.id", ondelete="SET NULL"),
        ),
        sa.Column("from_location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id")),
        sa.Column("to_location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id")),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.Enum(*MOVEMENT_TYPES, name="inventory_movement_type"), nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("actor_id", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "stock_reservations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id")),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id")),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column(
            "reserved_for_type",
            sa.Enum("order", "transfer", "adjustment", name="reserved_for_type"),
            nullable=False,
        ),
        sa.Column("reserved_for_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "consumed", "expired", name="reservation_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("actor_id", sa.Integer()),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_stock_reservations_lookup",
        "stock_reservations",
        ["product_id", "location_id", "reserved_for_type", "reserved_for_id", "status"],
    )
    op.create_table(
        "inventory_batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id")),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id")),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id"), nullable=False),
        sa.Column("batch_number", sa.String(length=100), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("manufacturing_date", sa.Date()),
        sa.Column("expiration_date", sa.Date()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("product_id", "batch_number", name="uq_inventory_batch_product_number"),
    )
    op.create_table(
        "inventory_serial_numbers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id")),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("inventory_batches.id")),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id")),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id"), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*SERIAL_STATUSES, name="serial_number_status"),
            nullable=False,
            server_default="in_stock",
        ),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("organization_id", "serial_number", name="uq_serial_number_org"),
    )
    op.create_table(
        "inventory_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id")),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("product_variants.id")),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("inventory_locations.id"), nullable=False),
        sa.Column(
            "adjustment_type",
            sa.Enum(*ADJUSTMENT_TYPES, name="inventory_adjustment_type"),
            nullable=False,
        ),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("reason_code", sa.String(length=50)),
        sa.Column("description", sa.Text()),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("inventory_transactions.id", ondelete="SET NULL"),
        ),
        sa.Column("created_by_id", sa.Integer()),
        sa.Column("approved_by_id", sa.Integer()),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("inventory_adjustments")
    op.drop_table("inventory_serial_numbers")
    op.drop_table("inventory_batches")
    op.drop_index("ix_stock_reservations_lookup", table_name="stock_reservations")
    op.drop_table("stock_reservations")
    op.drop_table("inventory_movements")
    op.drop_index("ix_inventory_transactions_product_date", table_name="inventory_transactions")
    op.drop_table("inventory_transactions")
    op.drop_table("stock_levels")
    op.drop_table("product_variants")
    op.drop_index("ix_products_organization_id", table_name="products")
    op.drop_table("products")
    op.drop_table("inventory_locations")
    op.drop_table("organizations")
