"""Soft holds against available stock.

Reserving moves quantity from ``quantity_available`` into
``quantity_reserved`` on the locked stock level and never touches
``quantity_on_hand``. No ledger row is written: the StockReservation row
is the audit record. The later sale or transfer posts through
``mutate_stock`` with its own ledger entry.
"""

from datetime import datetime, timedelta
import logging

from sqlalchemy.orm import Session

from stockroom.config import settings
from stockroom.errors import InsufficientStockError, InvalidQuantityError
from stockroom.inventory.service import (
    ensure_variant,
    flush_stock_level,
    get_or_create_stock_level,
    lock_stock_level,
    sync_product_stock,
)
from stockroom.models import Product, StockLevel, StockReservation
from stockroom.movement_types import RESERVED_FOR_TYPES
from stockroom.scope import CallerScope, ScopeResolver, ensure_in_scope
from stockroom.utils.timestamps import utcnow


logger = logging.getLogger(__name__)


def _validate_reserved_for_type(reserved_for_type: str) -> None:
    if reserved_for_type not in RESERVED_FOR_TYPES:
        raise InvalidQuantityError(
            f"Unknown reservation target type: {reserved_for_type}",
            reserved_for_type=reserved_for_type,
        )


def _restore_reserved(stock_level: StockLevel, quantity: int) -> None:
    now = utcnow()
    stock_level.quantity_reserved = max(0, (stock_level.quantity_reserved or 0) - quantity)
    stock_level.quantity_available = (stock_level.quantity_available or 0) + quantity
    stock_level.last_updated = now
    stock_level.updated_at = now


def reserve_stock(
    db: Session,
    *,
    scope: CallerScope,
    product_id: int,
    location_id: int,
    quantity: int,
    reserved_for_type: str,
    reserved_for_id: int,
    variant_id: int | None = None,
    actor_id: int | None = None,
    resolver: ScopeResolver | None = None,
) -> StockReservation:
    if quantity <= 0:
        raise InvalidQuantityError("Reservation quantity must be greater than zero.", quantity=quantity)
    _validate_reserved_for_type(reserved_for_type)
    ensure_in_scope(db, scope, product_id=product_id, location_ids=(location_id,), resolver=resolver)
    ensure_variant(db, product_id, variant_id)

    stock_level = get_or_create_stock_level(db, product_id, variant_id, location_id)
    available = stock_level.quantity_available or 0
    if available < quantity:
        raise InsufficientStockError(
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            requested=quantity,
            available=available,
            message="Insufficient stock available for reservation.",
        )

    now = utcnow()
    organization_id = db.query(Product.organization_id).filter(Product.id == product_id).scalar()
    reservation = StockReservation(
        organization_id=organization_id,
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        quantity=quantity,
        reserved_for_type=reserved_for_type,
        reserved_for_id=reserved_for_id,
        status="active",
        actor_id=actor_id if actor_id is not None else scope.actor_id,
        expires_at=now + timedelta(days=settings.reservation_ttl_days),
        created_at=now,
        updated_at=now,
    )
    db.add(reservation)

    stock_level.quantity_reserved = (stock_level.quantity_reserved or 0) + quantity
    stock_level.quantity_available = available - quantity
    stock_level.last_updated = now
    stock_level.updated_at = now
    flush_stock_level(db, stock_level)
    sync_product_stock(db, product_id)

    logger.info(
        "Reserved stock: product_id=%s variant_id=%s location_id=%s qty=%s for %s#%s",
        product_id,
        variant_id,
        location_id,
        quantity,
        reserved_for_type,
        reserved_for_id,
    )
    return reservation


def release_reservation(
    db: Session,
    *,
    scope: CallerScope,
    product_id: int,
    location_id: int,
    reserved_for_type: str,
    reserved_for_id: int,
    variant_id: int | None = None,
    resolver: ScopeResolver | None = None,
) -> int:
    """Consume every active hold matching the filter; returns the quantity released."""
    _validate_reserved_for_type(reserved_for_type)
    ensure_in_scope(db, scope, product_id=product_id, location_ids=(location_id,), resolver=resolver)

    stock_level = lock_stock_level(db, product_id, variant_id, location_id)
    query = db.query(StockReservation).filter(
        StockReservation.product_id == product_id,
        StockReservation.location_id == location_id,
        StockReservation.reserved_for_type == reserved_for_type,
        StockReservation.reserved_for_id == reserved_for_id,
        StockReservation.status == "active",
    )
    if variant_id is None:
        query = query.filter(StockReservation.variant_id.is_(None))
    else:
        query = query.filter(StockReservation.variant_id == variant_id)
    reservations = query.with_for_update().all()
    if not reservations:
        return 0

    total_reserved = sum(row.quantity for row in reservations)
    now = utcnow()
    for row in reservations:
        row.status = "consumed"
        row.updated_at = now

    if stock_level:
        _restore_reserved(stock_level, total_reserved)
        flush_stock_level(db, stock_level)
        sync_product_stock(db, product_id)
    else:
        db.flush()

    logger.info(
        "Released reservations: product_id=%s variant_id=%s location_id=%s qty=%s for %s#%s",
        product_id,
        variant_id,
        location_id,
        total_reserved,
        reserved_for_type,
        reserved_for_id,
    )
    return total_reserved


def get_active_reservations(
    db: Session,
    product_id: int,
    variant_id: int | None = None,
    location_id: int | None = None,
) -> list[StockReservation]:
    query = db.query(StockReservation).filter(
        StockReservation.product_id == product_id,
        StockReservation.status == "active",
    )
    if variant_id is not None:
        query = query.filter(StockReservation.variant_id == variant_id)
    if location_id is not None:
        query = query.filter(StockReservation.location_id == location_id)
    return query.order_by(StockReservation.created_at, StockReservation.id).all()


def expire_reservations(db: Session, now: datetime | None = None) -> int:
    """Expire stale holds and hand their quantity back; returns how many holds expired."""
    now = now or utcnow()
    stale = (
        db.query(StockReservation)
        .filter(StockReservation.status == "active", StockReservation.expires_at < now)
        .order_by(StockReservation.product_id, StockReservation.location_id, StockReservation.id)
        .with_for_update()
        .all()
    )
    touched_products: set[int] = set()
    for reservation in stale:
        stock_level = lock_stock_level(db, reservation.product_id, reservation.variant_id, reservation.location_id)
        reservation.status = "expired"
        reservation.updated_at = now
        if stock_level:
            _restore_reserved(stock_level, reservation.quantity)
            flush_stock_level(db, stock_level)
        touched_products.add(reservation.product_id)

    for product_id in sorted(touched_products):
        sync_product_stock(db, product_id)
    db.flush()

    if stale:
        logger.info("Expired %s stock reservations", len(stale))
    return len(stale)
