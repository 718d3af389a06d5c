from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
import math
import time

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from stockroom.config import settings
from stockroom.errors import (
    DeleteBlockedError,
    DuplicateBatchNumberError,
    InsufficientStockError,
    InvalidDateRangeError,
    InvalidQuantityError,
    NotFoundError,
)
from stockroom.events import EventSink
from stockroom.inventory.service import StockMutation, ensure_variant, mutate_stock
from stockroom.models import InventoryBatch, InventorySerialNumber, Product
from stockroom.movement_types import MovementType
from stockroom.scope import CallerScope, ensure_in_scope
from stockroom.utils.timestamps import today, utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiringBatch:
    batch: InventoryBatch
    days_to_expiration: int


@dataclass(frozen=True)
class BatchPage:
    batches: list[InventoryBatch]
    total: int
    has_more: bool


@dataclass(frozen=True)
class BatchSummaryRow:
    product_id: int
    product_name: str | None
    total_batches: int
    total_quantity: int
    total_used: int

    @property
    def available_quantity(self) -> int:
        return self.total_quantity - self.total_used


def _get_batch(db: Session, batch_id: int, *, for_update: bool = False) -> InventoryBatch:
    query = db.query(InventoryBatch).filter(InventoryBatch.id == batch_id)
    if for_update:
        query = query.with_for_update()
    batch = query.first()
    if not batch:
        raise NotFoundError("InventoryBatch", batch_id)
    return batch


def _batch_number_exists(db: Session, product_id: int, batch_number: str) -> bool:
    return (
        db.query(InventoryBatch.id)
        .filter(InventoryBatch.product_id == product_id, InventoryBatch.batch_number == batch_number)
        .first()
        is not None
    )


def _transfer_batch_number(db: Session, source: InventoryBatch) -> str:
    base = f"{source.batch_number}-TRANSFER-{int(time.time() * 1000)}"
    candidate = base
    counter = 1
    while _batch_number_exists(db, source.product_id, candidate):
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def create_batch(
    db: Session,
    *,
    scope: CallerScope,
    product_id: int,
    location_id: int,
    batch_number: str,
    quantity: int,
    variant_id: int | None = None,
    manufacturing_date: date | None = None,
    expiration_date: date | None = None,
    sink: EventSink | None = None,
) -> InventoryBatch:
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise InvalidQuantityError("Batch number is required.")
    if quantity <= 0:
        raise InvalidQuantityError("Batch quantity must be greater than zero.", quantity=quantity)
    ensure_in_scope(db, scope, product_id=product_id, location_ids=(location_id,))
    ensure_variant(db, product_id, variant_id)

    if _batch_number_exists(db, product_id, batch_number):
        raise DuplicateBatchNumberError(product_id, batch_number)
    if manufacturing_date and expiration_date and expiration_date <= manufacturing_date:
        raise InvalidDateRangeError(manufacturing_date, expiration_date)

    now = utcnow()
    organization_id = db.query(Product.organization_id).filter(Product.id == product_id).scalar()
    batch = InventoryBatch(
        organization_id=organization_id,
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        batch_number=batch_number,
        quantity=quantity,
        quantity_used=0,
        manufacturing_date=manufacturing_date,
        expiration_date=expiration_date,
        created_at=now,
        updated_at=now,
    )
    db.add(batch)
    db.flush()

    mutate_stock(
        db,
        StockMutation(
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
            quantity_change=quantity,
            movement_type=MovementType.STOCK_IN,
            reason=f"Batch {batch_number} received",
            create_movement=True,
            validate_availability=False,
        ),
        scope=scope,
        sink=sink,
    )
    logger.info("Created batch %s for product_id=%s qty=%s", batch_number, product_id, quantity)
    return batch


def update_batch_quantity(
    db: Session,
    *,
    scope: CallerScope,
    batch_id: int,
    quantity_used: int,
    sink: EventSink | None = None,
) -> InventoryBatch:
    if quantity_used <= 0:
        raise InvalidQuantityError("Used quantity must be greater than zero.", quantity=quantity_used)
    batch = _get_batch(db, batch_id, for_update=True)
    ensure_in_scope(db, scope, product_id=batch.product_id, location_ids=(batch.location_id,))

    if (batch.quantity_used or 0) + quantity_used > (batch.quantity or 0):
        raise InsufficientStockError(
            product_id=batch.product_id,
            variant_id=batch.variant_id,
            location_id=batch.location_id,
            requested=quantity_used,
            available=batch.quantity_remaining,
            message="Cannot use more quantity than available in batch.",
        )

    batch.quantity_used = (batch.quantity_used or 0) + quantity_used
    batch.updated_at = utcnow()
    db.flush()

    mutate_stock(
        db,
        StockMutation(
            product_id=batch.product_id,
            variant_id=batch.variant_id,
            location_id=batch.location_id,
            quantity_change=-quantity_used,
            movement_type=MovementType.SALE,
            reason=f"Batch {batch.batch_number} quantity used",
            create_movement=True,
            validate_availability=True,
        ),
        scope=scope,
        sink=sink,
    )
    return batch


def transfer_batch(
    db: Session,
    *,
    scope: CallerScope,
    batch_id: int,
    to_location_id: int,
    quantity: int,
    sink: EventSink | None = None,
) -> InventoryBatch:
    if quantity <= 0:
        raise InvalidQuantityError("Transfer quantity must be greater than zero.", quantity=quantity)
    source = _get_batch(db, batch_id, for_update=True)
    ensure_in_scope(db, scope, product_id=source.product_id, location_ids=(source.location_id, to_location_id))

    if source.quantity_remaining < quantity:
        raise InsufficientStockError(
            product_id=source.product_id,
            variant_id=source.variant_id,
            location_id=source.location_id,
            requested=quantity,
            available=source.quantity_remaining,
            message="Insufficient quantity available for transfer.",
        )

    now = utcnow()
    destination = InventoryBatch(
        organization_id=source.organization_id,
        product_id=source.product_id,
        variant_id=source.variant_id,
        location_id=to_location_id,
        batch_number=_transfer_batch_number(db, source),
        quantity=quantity,
        quantity_used=0,
        manufacturing_date=source.manufacturing_date,
        expiration_date=source.expiration_date,
        created_at=now,
        updated_at=now,
    )
    db.add(destination)
    source.quantity = source.quantity - quantity
    source.updated_at = now
    db.flush()

    mutate_stock(
        db,
        StockMutation(
            product_id=source.product_id,
            variant_id=source.variant_id,
            location_id=source.location_id,
            quantity_change=-quantity,
            movement_type=MovementType.TRANSFER,
            reason=f"Batch {source.batch_number} transferred out",
            create_movement=True,
            validate_availability=True,
            from_location_id=source.location_id,
            to_location_id=to_location_id,
        ),
        scope=scope,
        sink=sink,
    )
    mutate_stock(
        db,
        StockMutation(
            product_id=source.product_id,
            variant_id=source.variant_id,
            location_id=to_location_id,
            quantity_change=quantity,
            movement_type=MovementType.TRANSFER,
            reason=f"Batch {source.batch_number} transferred in",
            create_movement=True,
            validate_availability=False,
            from_location_id=source.location_id,
            to_location_id=to_location_id,
        ),
        scope=scope,
        sink=sink,
    )
    logger.info(
        "Transferred %s units of batch %s to location_id=%s as %s",
        quantity,
        source.batch_number,
        to_location_id,
        destination.batch_number,
    )
    return destination


def delete_batch(db: Session, *, scope: CallerScope, batch_id: int) -> None:
    batch = _get_batch(db, batch_id, for_update=True)
    ensure_in_scope(db, scope, product_id=batch.product_id, location_ids=(batch.location_id,))
    serial_count = (
        db.query(func.count(InventorySerialNumber.id)).filter(InventorySerialNumber.batch_id == batch.id).scalar() or 0
    )
    if (batch.quantity or 0) > 0 or serial_count > 0:
        raise DeleteBlockedError(
            "Cannot delete batch with remaining quantity or serial numbers.",
            batch_id=batch.id,
            quantity=batch.quantity,
            serial_count=serial_count,
        )
    db.delete(batch)
    db.flush()


def get_batch_by_id(db: Session, batch_id: int) -> InventoryBatch:
    batch = (
        db.query(InventoryBatch)
        .options(selectinload(InventoryBatch.serial_numbers))
        .filter(InventoryBatch.id == batch_id)
        .first()
    )
    if not batch:
        raise NotFoundError("InventoryBatch", batch_id)
    return batch


def get_batches(
    db: Session,
    *,
    product_id: int | None = None,
    variant_id: int | None = None,
    location_id: int | None = None,
    batch_number: str | None = None,
    status: str | None = None,
    expiring_within_days: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> BatchPage:
    query = db.query(InventoryBatch)
    if product_id is not None:
        query = query.filter(InventoryBatch.product_id == product_id)
    if variant_id is not None:
        query = query.filter(InventoryBatch.variant_id == variant_id)
    if location_id is not None:
        query = query.filter(InventoryBatch.location_id == location_id)
    if batch_number:
        query = query.filter(InventoryBatch.batch_number.ilike(f"%{batch_number}%"))
    if status == "active":
        query = query.filter(InventoryBatch.quantity > 0)
    elif status == "depleted":
        query = query.filter(InventoryBatch.quantity <= 0)
    if expiring_within_days is not None:
        query = query.filter(InventoryBatch.expiration_date <= today() + timedelta(days=expiring_within_days))

    total = query.count()
    batches = (
        query.order_by(
            InventoryBatch.expiration_date.is_(None),
            InventoryBatch.expiration_date.asc(),
            InventoryBatch.created_at.desc(),
            InventoryBatch.id.desc(),
        )
        .offset(offset)
        .limit(limit)
        .all()
    )
    return BatchPage(batches=batches, total=total, has_more=offset + len(batches) < total)


def get_expiring_batches(db: Session, days_ahead: int | None = None) -> list[ExpiringBatch]:
    if days_ahead is None:
        days_ahead = settings.expiring_batch_days
    now = utcnow()
    start = now.date()
    horizon = start + timedelta(days=days_ahead)
    batches = (
        db.query(InventoryBatch)
        .filter(
            InventoryBatch.expiration_date.isnot(None),
            InventoryBatch.expiration_date >= start,
            InventoryBatch.expiration_date <= horizon,
            InventoryBatch.quantity > 0,
        )
        .order_by(InventoryBatch.expiration_date.asc(), InventoryBatch.id)
        .all()
    )
    results = []
    for batch in batches:
        expires_at = datetime.combine(batch.expiration_date, datetime.min.time())
        days = math.ceil((expires_at - now).total_seconds() / 86400)
        results.append(ExpiringBatch(batch=batch, days_to_expiration=max(0, days)))
    return results


def get_expired_batches(db: Session) -> list[InventoryBatch]:
    return (
        db.query(InventoryBatch)
        .filter(
            InventoryBatch.expiration_date.isnot(None),
            InventoryBatch.expiration_date < today(),
            InventoryBatch.quantity > 0,
        )
        .order_by(InventoryBatch.expiration_date.asc(), InventoryBatch.id)
        .all()
    )


def get_batch_summary(db: Session, product_id: int | None = None) -> list[BatchSummaryRow]:
    query = (
        db.query(
            InventoryBatch.product_id,
            Product.name,
            func.count(InventoryBatch.id),
            func.coalesce(func.sum(InventoryBatch.quantity), 0),
            func.coalesce(func.sum(InventoryBatch.quantity_used), 0),
        )
        .join(Product, Product.id == InventoryBatch.product_id)
        .filter(InventoryBatch.quantity > 0)
    )
    if product_id is not None:
        query = query.filter(InventoryBatch.product_id == product_id)
    rows = query.group_by(InventoryBatch.product_id, Product.name).order_by(InventoryBatch.product_id).all()
    return [
        BatchSummaryRow(
            product_id=row_product_id,
            product_name=name,
            total_batches=int(count or 0),
            total_quantity=int(total_quantity or 0),
            total_used=int(total_used or 0),
        )
        for row_product_id, name, count, total_quantity, total_used in rows
    ]
