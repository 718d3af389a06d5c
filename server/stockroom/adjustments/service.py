"""Recorded stock-count corrections.

An adjustment captures the counted quantity for one stock level and posts
the difference through the mutation engine as a single ``adjustment``
entry. Approval is bookkeeping only: the stock change is applied when the
adjustment is created.
"""

import logging

from sqlalchemy.orm import Session

from stockroom.errors import (
    DeleteBlockedError,
    InvalidAdjustmentTypeError,
    InvalidQuantityError,
    InvalidStateError,
    NotFoundError,
)
from stockroom.events import EventSink
from stockroom.inventory.service import StockMutation, lock_stock_level, mutate_stock
from stockroom.models import InventoryAdjustment, Product
from stockroom.movement_types import ADJUSTMENT_TYPES, MovementType
from stockroom.scope import CallerScope, ensure_in_scope
from stockroom.utils.timestamps import utcnow


logger = logging.getLogger(__name__)


def _get_adjustment(db: Session, adjustment_id: int) -> InventoryAdjustment:
    adjustment = (
        db.query(InventoryAdjustment).filter(InventoryAdjustment.id == adjustment_id).with_for_update().first()
    )
    if not adjustment:
        raise NotFoundError("InventoryAdjustment", adjustment_id)
    return adjustment


def create_adjustment(
    db: Session,
    *,
    scope: CallerScope,
    product_id: int,
    location_id: int,
    adjustment_type: str,
    quantity_after: int,
    variant_id: int | None = None,
    reason_code: str | None = None,
    description: str | None = None,
    sink: EventSink | None = None,
) -> InventoryAdjustment:
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise InvalidAdjustmentTypeError(adjustment_type)
    if quantity_after < 0:
        raise InvalidQuantityError("Counted quantity cannot be negative.", quantity_after=quantity_after)
    ensure_in_scope(db, scope, product_id=product_id, location_ids=(location_id,))

    stock_level = lock_stock_level(db, product_id, variant_id, location_id)
    if stock_level is None:
        raise NotFoundError("StockLevel", f"{product_id}/{variant_id}/{location_id}")
    quantity_before = stock_level.quantity_on_hand or 0
    quantity_change = quantity_after - quantity_before

    organization_id = db.query(Product.organization_id).filter(Product.id == product_id).scalar()
    adjustment = InventoryAdjustment(
        organization_id=organization_id,
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        adjustment_type=adjustment_type,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        quantity_change=quantity_change,
        reason_code=reason_code,
        description=description,
        created_by_id=scope.actor_id,
        created_at=utcnow(),
    )
    db.add(adjustment)

    result = mutate_stock(
        db,
        StockMutation(
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            quantity_change=quantity_change,
            movement_type=MovementType.ADJUSTMENT,
            reason=description or f"Inventory adjustment: {adjustment_type}",
            create_movement=True,
        ),
        scope=scope,
        sink=sink,
    )
    adjustment.transaction_id = result.transaction.id
    db.flush()

    logger.info(
        "Created %s adjustment for product_id=%s location_id=%s: %s -> %s",
        adjustment_type,
        product_id,
        location_id,
        quantity_before,
        quantity_after,
    )
    return adjustment


def approve_adjustment(db: Session, *, scope: CallerScope, adjustment_id: int) -> InventoryAdjustment:
    adjustment = _get_adjustment(db, adjustment_id)
    ensure_in_scope(db, scope, product_id=adjustment.product_id, location_ids=(adjustment.location_id,))
    if adjustment.approved_at is not None:
        raise InvalidStateError("Adjustment is already approved.", adjustment_id=adjustment.id)

    adjustment.approved_by_id = scope.actor_id
    adjustment.approved_at = utcnow()
    db.flush()
    logger.info("Approved adjustment %s by actor_id=%s", adjustment.id, scope.actor_id)
    return adjustment


def delete_adjustment(db: Session, *, scope: CallerScope, adjustment_id: int) -> None:
    adjustment = _get_adjustment(db, adjustment_id)
    ensure_in_scope(db, scope, product_id=adjustment.product_id, location_ids=(adjustment.location_id,))
    if adjustment.approved_at is not None:
        raise DeleteBlockedError("Cannot delete approved adjustments.", adjustment_id=adjustment.id)
    db.delete(adjustment)
    db.flush()


def get_adjustments(
    db: Session,
    *,
    organization_id: int | None = None,
    product_id: int | None = None,
    location_id: int | None = None,
    adjustment_type: str | None = None,
    approved: bool | None = None,
) -> list[InventoryAdjustment]:
    query = db.query(InventoryAdjustment)
    if organization_id is not None:
        query = query.filter(InventoryAdjustment.organization_id == organization_id)
    if product_id is not None:
        query = query.filter(InventoryAdjustment.product_id == product_id)
    if location_id is not None:
        query = query.filter(InventoryAdjustment.location_id == location_id)
    if adjustment_type is not None:
        query = query.filter(InventoryAdjustment.adjustment_type == adjustment_type)
    if approved is True:
        query = query.filter(InventoryAdjustment.approved_at.isnot(None))
    elif approved is False:
        query = query.filter(InventoryAdjustment.approved_at.is_(None))
    return query.order_by(InventoryAdjustment.created_at.desc(), InventoryAdjustment.id.desc()).all()
