import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from stockroom.errors import (
    DeleteBlockedError,
    DuplicateSerialNumberError,
    InvalidQuantityError,
    InvalidStateError,
    NotFoundError,
)
from stockroom.events import EventSink
from stockroom.inventory.service import StockMutation, mutate_stock
from stockroom.models import InventoryBatch, InventorySerialNumber, Product
from stockroom.movement_types import SERIAL_STATUSES, MovementType
from stockroom.scope import CallerScope, ensure_in_scope
from stockroom.utils.timestamps import utcnow


logger = logging.getLogger(__name__)

# Serial status -> (movement type, quantity change). Missing statuses leave stock untouched.
STATUS_STOCK_EFFECT: dict[str, tuple[MovementType, int]] = {
    "sold": (MovementType.SALE, -1),
    "returned": (MovementType.RETURN, 1),
    "damaged": (MovementType.DAMAGE, -1),
    "in_transit": (MovementType.STOCK_OUT, -1),
    "expired": (MovementType.EXPIRATION, -1),
}


def _get_serial(db: Session, serial_id: int, *, for_update: bool = False) -> InventorySerialNumber:
    query = db.query(InventorySerialNumber).filter(InventorySerialNumber.id == serial_id)
    if for_update:
        query = query.with_for_update()
    serial = query.first()
    if not serial:
        raise NotFoundError("InventorySerialNumber", serial_id)
    return serial


def create_serial_numbers_for_batch(
    db: Session,
    *,
    scope: CallerScope,
    batch_id: int,
    serial_numbers: list[str],
) -> list[InventorySerialNumber]:
    """Register serials against a batch that already received its quantity; stock is not touched."""
    batch = db.get(InventoryBatch, batch_id)
    if batch is None:
        raise NotFoundError("InventoryBatch", batch_id)
    ensure_in_scope(db, scope, product_id=batch.product_id, location_ids=(batch.location_id,))

    cleaned = list(dict.fromkeys(number.strip() for number in serial_numbers if number and number.strip()))
    if not cleaned:
        raise InvalidQuantityError("No valid serial numbers provided.", batch_id=batch_id)

    organization_id = batch.organization_id
    if organization_id is None:
        organization_id = db.query(Product.organization_id).filter(Product.id == batch.product_id).scalar()

    existing = (
        db.query(InventorySerialNumber.serial_number)
        .filter(
            InventorySerialNumber.organization_id == organization_id,
            InventorySerialNumber.serial_number.in_(cleaned),
        )
        .order_by(InventorySerialNumber.serial_number)
        .all()
    )
    if existing:
        raise DuplicateSerialNumberError([row.serial_number for row in existing])

    now = utcnow()
    created = []
    for number in cleaned:
        serial = InventorySerialNumber(
            organization_id=organization_id,
            batch_id=batch.id,
            product_id=batch.product_id,
            variant_id=batch.variant_id,
            location_id=batch.location_id,
            serial_number=number,
            status="in_stock",
            created_at=now,
            updated_at=now,
        )
        db.add(serial)
        created.append(serial)
    db.flush()

    logger.info("Created %s serial numbers for batch %s", len(created), batch.batch_number)
    return created


def get_serial_number_by_id(db: Session, serial_id: int) -> InventorySerialNumber:
    return _get_serial(db, serial_id)


def get_serial_numbers(
    db: Session,
    *,
    organization_id: int | None = None,
    product_id: int | None = None,
    variant_id: int | None = None,
    batch_id: int | None = None,
    location_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
) -> list[InventorySerialNumber]:
    query = db.query(InventorySerialNumber)
    if organization_id is not None:
        query = query.filter(InventorySerialNumber.organization_id == organization_id)
    if product_id is not None:
        query = query.filter(InventorySerialNumber.product_id == product_id)
    if variant_id is not None:
        query = query.filter(InventorySerialNumber.variant_id == variant_id)
    if batch_id is not None:
        query = query.filter(InventorySerialNumber.batch_id == batch_id)
    if location_id is not None:
        query = query.filter(InventorySerialNumber.location_id == location_id)
    if status is not None:
        query = query.filter(InventorySerialNumber.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.join(Product, Product.id == InventorySerialNumber.product_id).filter(
            or_(
                InventorySerialNumber.serial_number.ilike(pattern),
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
            )
        )
    return query.order_by(InventorySerialNumber.created_at.desc(), InventorySerialNumber.id.desc()).all()


def update_serial_number_status(
    db: Session,
    *,
    scope: CallerScope,
    serial_id: int,
    status: str,
    location_id: int | None = None,
    notes: str | None = None,
    order_item_id: int | None = None,
    sink: EventSink | None = None,
) -> InventorySerialNumber:
    if status not in SERIAL_STATUSES:
        raise InvalidStateError(f"Unknown serial number status: {status}", status=status)
    serial = _get_serial(db, serial_id, for_update=True)
    target_location_id = location_id or serial.location_id
    ensure_in_scope(
        db,
        scope,
        product_id=serial.product_id,
        location_ids=tuple(dict.fromkeys((serial.location_id, target_location_id))),
    )

    previous_status = serial.status
    serial.status = status
    serial.location_id = target_location_id
    if notes:
        serial.notes = notes
    serial.updated_at = utcnow()
    db.flush()

    effect = STATUS_STOCK_EFFECT.get(status)
    if effect:
        movement_type, quantity_change = effect
        reason = f"Serial number {serial.serial_number} status changed to {status}"
        if notes:
            reason = f"{reason}: {notes}"
        mutate_stock(
            db,
            StockMutation(
                product_id=serial.product_id,
                variant_id=serial.variant_id,
                location_id=target_location_id,
                quantity_change=quantity_change,
                movement_type=movement_type,
                reason=reason,
                order_item_id=order_item_id,
            ),
            scope=scope,
            sink=sink,
        )

    logger.info(
        "Serial number %s status %s -> %s at location_id=%s",
        serial.serial_number,
        previous_status,
        status,
        target_location_id,
    )
    return serial


def transfer_serial_number(
    db: Session,
    *,
    scope: CallerScope,
    serial_id: int,
    to_location_id: int,
    notes: str | None = None,
    sink: EventSink | None = None,
) -> InventorySerialNumber:
    serial = _get_serial(db, serial_id, for_update=True)
    if serial.location_id == to_location_id:
        raise InvalidStateError(
            "Serial number is already at the target location.",
            serial_id=serial.id,
            location_id=to_location_id,
        )
    from_location_id = serial.location_id
    ensure_in_scope(db, scope, product_id=serial.product_id, location_ids=(from_location_id, to_location_id))

    serial.location_id = to_location_id
    serial.status = "in_transit"
    serial.notes = notes
    serial.updated_at = utcnow()
    db.flush()

    suffix = f" - {notes}" if notes else ""
    for location_id, quantity_change, reason in (
        (from_location_id, -1, f"Transfer out: {serial.serial_number}{suffix}"),
        (to_location_id, 1, f"Transfer in: {serial.serial_number}{suffix}"),
    ):
        mutate_stock(
            db,
            StockMutation(
                product_id=serial.product_id,
                variant_id=serial.variant_id,
                location_id=location_id,
                quantity_change=quantity_change,
                movement_type=MovementType.TRANSFER,
                reason=reason,
                create_movement=True,
                from_location_id=from_location_id,
                to_location_id=to_location_id,
            ),
            scope=scope,
            sink=sink,
        )
    return serial


def mark_as_sold(
    db: Session,
    *,
    scope: CallerScope,
    serial_id: int,
    order_item_id: int | None = None,
    sink: EventSink | None = None,
) -> InventorySerialNumber:
    return update_serial_number_status(
        db, scope=scope, serial_id=serial_id, status="sold", order_item_id=order_item_id, sink=sink
    )


def mark_as_returned(
    db: Session,
    *,
    scope: CallerScope,
    serial_id: int,
    location_id: int | None = None,
    notes: str | None = None,
    sink: EventSink | None = None,
) -> InventorySerialNumber:
    return update_serial_number_status(
        db, scope=scope, serial_id=serial_id, status="returned", location_id=location_id, notes=notes, sink=sink
    )


def mark_as_damaged(
    db: Session,
    *,
    scope: CallerScope,
    serial_id: int,
    notes: str | None = None,
    sink: EventSink | None = None,
) -> InventorySerialNumber:
    return update_serial_number_status(db, scope=scope, serial_id=serial_id, status="damaged", notes=notes, sink=sink)


def get_available_serial_numbers(
    db: Session,
    product_id: int,
    location_id: int | None = None,
    variant_id: int | None = None,
) -> list[InventorySerialNumber]:
    query = db.query(InventorySerialNumber).filter(
        InventorySerialNumber.product_id == product_id,
        InventorySerialNumber.status == "in_stock",
    )
    if variant_id is not None:
        query = query.filter(InventorySerialNumber.variant_id == variant_id)
    if location_id is not None:
        query = query.filter(InventorySerialNumber.location_id == location_id)
    return query.order_by(InventorySerialNumber.created_at, InventorySerialNumber.id).all()


def delete_serial_number(
    db: Session,
    *,
    scope: CallerScope,
    serial_id: int,
    sink: EventSink | None = None,
) -> None:
    serial = _get_serial(db, serial_id, for_update=True)
    ensure_in_scope(db, scope, product_id=serial.product_id, location_ids=(serial.location_id,))
    if serial.status == "sold":
        raise DeleteBlockedError("Cannot delete sold serial numbers.", serial_id=serial.id)

    if serial.status == "in_stock":
        mutate_stock(
            db,
            StockMutation(
                product_id=serial.product_id,
                variant_id=serial.variant_id,
                location_id=serial.location_id,
                quantity_change=-1,
                movement_type=MovementType.STOCK_OUT,
                reason=f"Serial number {serial.serial_number} deleted",
            ),
            scope=scope,
            sink=sink,
        )

    logger.info("Deleted serial number %s (status=%s)", serial.serial_number, serial.status)
    db.delete(serial)
    db.flush()
