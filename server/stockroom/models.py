from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship

from .db import Base
from .errors import LedgerImmutableError
from .movement_types import (
    ADJUSTMENT_TYPES,
    LEDGER_TYPES,
    MOVEMENT_TYPES,
    RESERVATION_STATUSES,
    RESERVED_FOR_TYPES,
    SERIAL_STATUSES,
)
from .utils.timestamps import utcnow


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    locations = relationship("InventoryLocation", back_populates="organization")
    products = relationship("Product", back_populates="organization")


class InventoryLocation(Base):
    __tablename__ = "inventory_locations"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    organization = relationship("Organization", back_populates="locations")

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_inventory_location_org_code"),
    )


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    name = Column(String(200), nullable=False)
    sku = Column(String(100), nullable=True)
    # Sum of quantity_available over every stock level of the product.
    stock_quantity = Column(Integer, nullable=False, default=0)
    track_batches = Column(Boolean, nullable=False, default=False)
    track_serials = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    organization = relationship("Organization", back_populates="products")
    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")
    stock_levels = relationship("StockLevel", back_populates="product")


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    sku = Column(String(100), nullable=True)
    name = Column(String(200), nullable=True)

    product = relationship("Product", back_populates="variants")


class StockLevel(Base):
    __tablename__ = "stock_levels"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    # 0 for the base product; lets the unique constraint cover rows without a variant.
    variant_key = Column(Integer, nullable=False, default=0)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False)
    quantity_on_hand = Column(Integer, nullable=False, default=0)
    quantity_reserved = Column(Integer, nullable=False, default=0)
    quantity_available = Column(Integer, nullable=False, default=0)
    reorder_point = Column(Integer, nullable=True)
    version = Column(Integer, nullable=False)
    last_updated = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    product = relationship("Product", back_populates="stock_levels")
    variant = relationship("ProductVariant")
    location = relationship("InventoryLocation")

    __table_args__ = (
        UniqueConstraint("product_id", "variant_key", "location_id", name="uq_stock_level_product_variant_location"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def needs_reorder(self) -> bool:
        return self.reorder_point is not None and (self.quantity_available or 0) <= self.reorder_point


class InventoryTransaction(Base):
    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True)
    type = Column(Enum(*LEDGER_TYPES, name="inventory_transaction_type"), nullable=False)
    quantity_change = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    actor_id = Column(Integer, nullable=True)
    order_item_id = Column(Integer, nullable=True)
    transaction_date = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    product = relationship("Product")
    variant = relationship("ProductVariant")


@event.listens_for(InventoryTransaction, "before_update")
def _prevent_transaction_update(mapper, connection, target):
    raise LedgerImmutableError(target.id, "update")


@event.listens_for(InventoryTransaction, "before_delete")
def _prevent_transaction_delete(mapper, connection, target):
    raise LedgerImmutableError(target.id, "delete")


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    transaction_id = Column(Integer, ForeignKey("inventory_transactions.id", ondelete="SET NULL"), nullable=True)
    from_location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True)
    to_location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    movement_type = Column(Enum(*MOVEMENT_TYPES, name="inventory_movement_type"), nullable=False)
    reason = Column(Text, nullable=True)
    actor_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    transaction = relationship("InventoryTransaction")
    from_location = relationship("InventoryLocation", foreign_keys=[from_location_id])
    to_location = relationship("InventoryLocation", foreign_keys=[to_location_id])


class StockReservation(Base):
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    reserved_for_type = Column(Enum(*RESERVED_FOR_TYPES, name="reserved_for_type"), nullable=False)
    reserved_for_id = Column(Integer, nullable=False)
    status = Column(Enum(*RESERVATION_STATUSES, name="reservation_status"), nullable=False, default="active")
    actor_id = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class InventoryBatch(Base):
    __tablename__ = "inventory_batches"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False)
    batch_number = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    quantity_used = Column(Integer, nullable=False, default=0)
    manufacturing_date = Column(Date, nullable=True)
    expiration_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    product = relationship("Product")
    location = relationship("InventoryLocation")
    serial_numbers = relationship("InventorySerialNumber", back_populates="batch")

    __table_args__ = (
        UniqueConstraint("product_id", "batch_number", name="uq_inventory_batch_product_number"),
    )

    @property
    def quantity_remaining(self) -> int:
        return (self.quantity or 0) - (self.quantity_used or 0)


class InventorySerialNumber(Base):
    __tablename__ = "inventory_serial_numbers"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    batch_id = Column(Integer, ForeignKey("inventory_batches.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False)
    serial_number = Column(String(100), nullable=False)
    status = Column(Enum(*SERIAL_STATUSES, name="serial_number_status"), nullable=False, default="in_stock")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    batch = relationship("InventoryBatch", back_populates="serial_numbers")

    __table_args__ = (
        UniqueConstraint("organization_id", "serial_number", name="uq_serial_number_org"),
    )


class InventoryAdjustment(Base):
    __tablename__ = "inventory_adjustments"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("inventory_locations.id"), nullable=False)
    adjustment_type = Column(Enum(*ADJUSTMENT_TYPES, name="inventory_adjustment_type"), nullable=False)
    quantity_before = Column(Integer, nullable=False)
    quantity_after = Column(Integer, nullable=False)
    quantity_change = Column(Integer, nullable=False)
    reason_code = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    transaction_id = Column(Integer, ForeignKey("inventory_transactions.id", ondelete="SET NULL"), nullable=True)
    created_by_id = Column(Integer, nullable=True)
    approved_by_id = Column(Integer, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
