"""Stock mutation engine.

``mutate_stock`` is the only writer of stock quantities besides the
reservation service. Every call reads the row with ``SELECT ... FOR UPDATE``
inside the caller's transaction and writes it back with a version check.
Where the backend has no row locks, a write that loses the version check
re-reads the committed row and validates again once before giving up.
Nothing here commits; wrap calls in ``stockroom.db.atomic`` (or commit
yourself).
"""

from dataclasses import dataclass
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockroom.errors import (
    ConcurrentStockUpdateError,
    InsufficientStockError,
    InvalidMovementTypeError,
    InvalidQuantityError,
    NotFoundError,
)
from stockroom.events import STOCK_UPDATED, EventSink, StockChangedEvent, default_sink, enqueue_after_commit
from stockroom.models import InventoryLocation, InventoryMovement, InventoryTransaction, Product, ProductVariant, StockLevel
from stockroom.movement_types import (
    AVAILABILITY_RULE_BY_MOVEMENT,
    LEDGER_TYPE_BY_MOVEMENT,
    MOVEMENT_RECORD_TYPE,
    AvailabilityRule,
    MovementType,
)
from stockroom.scope import CallerScope, ScopeResolver, ensure_in_scope
from stockroom.transactions.service import record_transaction
from stockroom.utils.timestamps import utcnow


logger = logging.getLogger(__name__)

# One read-validate-write plus a single retry after a lost version check.
STOCK_WRITE_ATTEMPTS = 2


@dataclass(frozen=True)
class StockMutation:
    product_id: int
    location_id: int
    quantity_change: int
    movement_type: MovementType
    variant_id: int | None = None
    reason: str | None = None
    actor_id: int | None = None
    order_item_id: int | None = None
    create_movement: bool = False
    validate_availability: bool = False
    from_location_id: int | None = None
    to_location_id: int | None = None


@dataclass(frozen=True)
class StockUpdateResult:
    stock_level: StockLevel
    transaction: InventoryTransaction
    previous_available: int
    movement: InventoryMovement | None = None


def _stock_level_query(product_id: int, variant_id: int | None, location_id: int):
    return select(StockLevel).where(
        StockLevel.product_id == product_id,
        StockLevel.variant_key == (variant_id or 0),
        StockLevel.location_id == location_id,
    )


def lock_stock_level(db: Session, product_id: int, variant_id: int | None, location_id: int) -> StockLevel | None:
    return db.execute(
        _stock_level_query(product_id, variant_id, location_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def get_or_create_stock_level(
    db: Session,
    product_id: int,
    variant_id: int | None,
    location_id: int,
) -> StockLevel:
    stock_level = lock_stock_level(db, product_id, variant_id, location_id)
    if stock_level:
        return stock_level

    now = utcnow()
    stock_level = StockLevel(
        product_id=product_id,
        variant_id=variant_id,
        variant_key=variant_id or 0,
        location_id=location_id,
        quantity_on_hand=0,
        quantity_reserved=0,
        quantity_available=0,
        last_updated=now,
        created_at=now,
        updated_at=now,
    )
    db.add(stock_level)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConcurrentStockUpdateError(
            "Stock level was created concurrently; retry the operation.",
            product_id=product_id,
            variant_id=variant_id,
            location_id=location_id,
        ) from exc
    logger.debug(
        "Created stock level: product_id=%s variant_id=%s location_id=%s",
        product_id,
        variant_id,
        location_id,
    )
    return stock_level


def ensure_variant(db: Session, product_id: int, variant_id: int | None) -> None:
    if variant_id is None:
        return
    variant = db.get(ProductVariant, variant_id)
    if variant is None or variant.product_id != product_id:
        raise NotFoundError("ProductVariant", variant_id)


def compute_quantities(stock_level: StockLevel, movement_type: MovementType, quantity_change: int) -> tuple[int, int]:
    """Return the clamped (on_hand, available) pair after applying the change."""
    on_hand = stock_level.quantity_on_hand or 0
    reserved = stock_level.quantity_reserved or 0
    available = stock_level.quantity_available or 0

    new_on_hand = on_hand + quantity_change
    rule = AVAILABILITY_RULE_BY_MOVEMENT[movement_type]
    if rule is AvailabilityRule.RECONCILE:
        new_available = new_on_hand - reserved
    elif rule is AvailabilityRule.DEDUCT_AVAILABLE:
        # Point-of-sale deduction: consume from the sellable pool directly.
        new_available = available - abs(quantity_change)
    else:
        raise AssertionError(f"Unhandled availability rule {rule!r} for {movement_type!r}")

    return max(0, new_on_hand), max(0, new_available)


def sync_product_stock(db: Session, product_id: int) -> int:
    """Rewrite products.stock_quantity from a full scan of the product's stock levels."""
    db.flush()
    total = (
        db.query(func.coalesce(func.sum(StockLevel.quantity_available), 0))
        .filter(StockLevel.product_id == product_id)
        .scalar()
    )
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    product.stock_quantity = int(total or 0)
    return product.stock_quantity


def _stock_level_ids(stock_level: StockLevel) -> dict:
    return {
        "stock_level_id": stock_level.id,
        "product_id": stock_level.product_id,
        "variant_id": stock_level.variant_id,
        "location_id": stock_level.location_id,
    }


def flush_stock_level(db: Session, stock_level: StockLevel) -> None:
    # A failed flush expires the instance, so read the ids first.
    ids = _stock_level_ids(stock_level)
    try:
        db.flush()
    except StaleDataError as exc:
        raise ConcurrentStockUpdateError(
            "Stock level changed underneath this mutation; retry the operation.",
            **ids,
        ) from exc


def write_stock_quantities(
    db: Session,
    stock_level: StockLevel,
    *,
    quantity_on_hand: int,
    quantity_available: int,
) -> bool:
    """Version-checked write of on-hand and available.

    Returns False, leaving the session usable, when another transaction
    committed a newer version of the row since it was read.
    """
    now = utcnow()
    table = StockLevel.__table__
    result = db.execute(
        update(table)
        .where(table.c.id == stock_level.id, table.c.version == stock_level.version)
        .values(
            quantity_on_hand=quantity_on_hand,
            quantity_available=quantity_available,
            last_updated=now,
            updated_at=now,
            version=table.c.version + 1,
        )
    )
    if result.rowcount != 1:
        return False
    db.refresh(stock_level)
    return True


def _create_movement(
    db: Session,
    mutation: StockMutation,
    movement_type: MovementType,
    transaction: InventoryTransaction,
    actor_id: int | None,
) -> InventoryMovement:
    organization_id = db.query(Product.organization_id).filter(Product.id == mutation.product_id).scalar()
    movement = InventoryMovement(
        organization_id=organization_id,
        product_id=mutation.product_id,
        variant_id=mutation.variant_id,
        transaction_id=transaction.id,
        from_location_id=mutation.from_location_id,
        to_location_id=mutation.to_location_id or mutation.location_id,
        quantity=abs(mutation.quantity_change),
        movement_type=MOVEMENT_RECORD_TYPE[movement_type].value,
        reason=mutation.reason,
        actor_id=actor_id,
        created_at=utcnow(),
    )
    db.add(movement)
    return movement


def mutate_stock(
    db: Session,
    mutation: StockMutation,
    *,
    scope: CallerScope,
    sink: EventSink | None = None,
    resolver: ScopeResolver | None = None,
) -> StockUpdateResult:
    try:
        movement_type = MovementType(mutation.movement_type)
    except ValueError as exc:
        raise InvalidMovementTypeError(str(mutation.movement_type)) from exc
    actor_id = mutation.actor_id if mutation.actor_id is not None else scope.actor_id
    location_ids = tuple(
        location_id
        for location_id in (mutation.location_id, mutation.from_location_id, mutation.to_location_id)
        if location_id is not None
    )
    ensure_in_scope(
        db,
        scope,
        product_id=mutation.product_id,
        location_ids=tuple(dict.fromkeys(location_ids)),
        resolver=resolver,
    )
    ensure_variant(db, mutation.product_id, mutation.variant_id)

    for attempt in range(1, STOCK_WRITE_ATTEMPTS + 1):
        # Re-read on every attempt so validation always sees the latest committed row.
        stock_level = get_or_create_stock_level(db, mutation.product_id, mutation.variant_id, mutation.location_id)
        previous_available = stock_level.quantity_available or 0

        if (
            mutation.validate_availability
            and mutation.quantity_change < 0
            and previous_available < abs(mutation.quantity_change)
        ):
            raise InsufficientStockError(
                product_id=mutation.product_id,
                variant_id=mutation.variant_id,
                location_id=mutation.location_id,
                requested=abs(mutation.quantity_change),
                available=previous_available,
            )

        new_on_hand, new_available = compute_quantities(stock_level, movement_type, mutation.quantity_change)
        if write_stock_quantities(
            db,
            stock_level,
            quantity_on_hand=new_on_hand,
            quantity_available=new_available,
        ):
            break
        logger.warning(
            "Stock level %s changed concurrently (attempt %s of %s)",
            stock_level.id,
            attempt,
            STOCK_WRITE_ATTEMPTS,
        )
    else:
        raise ConcurrentStockUpdateError(
            "Stock level kept changing underneath this mutation; retry the operation.",
            product_id=mutation.product_id,
            variant_id=mutation.variant_id,
            location_id=mutation.location_id,
        )

    transaction = record_transaction(
        db,
        product_id=mutation.product_id,
        variant_id=mutation.variant_id,
        location_id=mutation.location_id,
        ledger_type=LEDGER_TYPE_BY_MOVEMENT[movement_type],
        quantity_change=mutation.quantity_change,
        reason=mutation.reason,
        actor_id=actor_id,
        order_item_id=mutation.order_item_id,
    )

    movement = None
    if mutation.create_movement:
        movement = _create_movement(db, mutation, movement_type, transaction, actor_id)

    sync_product_stock(db, mutation.product_id)
    db.flush()

    enqueue_after_commit(
        db,
        sink or default_sink,
        STOCK_UPDATED,
        StockChangedEvent(
            product_id=mutation.product_id,
            variant_id=mutation.variant_id,
            location_id=mutation.location_id,
            new_available_quantity=stock_level.quantity_available,
            transaction_id=transaction.id,
            movement_type=movement_type.value,
            actor_id=actor_id,
        ),
    )
    logger.info(
        "Stock mutated: product_id=%s variant_id=%s location_id=%s type=%s change=%s available=%s->%s",
        mutation.product_id,
        mutation.variant_id,
        mutation.location_id,
        movement_type.value,
        mutation.quantity_change,
        previous_available,
        stock_level.quantity_available,
    )
    return StockUpdateResult(
        stock_level=stock_level,
        transaction=transaction,
        previous_available=previous_available,
        movement=movement,
    )


def transfer_stock(
    db: Session,
    *,
    scope: CallerScope,
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    variant_id: int | None = None,
    reason: str | None = None,
    sink: EventSink | None = None,
) -> tuple[StockUpdateResult, StockUpdateResult]:
    if quantity <= 0:
        raise InvalidQuantityError("Transfer quantity must be greater than zero.", quantity=quantity)
    if from_location_id == to_location_id:
        raise InvalidQuantityError(
            "Source and destination locations must differ.",
            from_location_id=from_location_id,
            to_location_id=to_location_id,
        )

    outgoing = mutate_stock(
        db,
        StockMutation(
            product_id=product_id,
            variant_id=variant_id,
            location_id=from_location_id,
            quantity_change=-quantity,
            movement_type=MovementType.TRANSFER,
            reason=reason or f"Transfer to location {to_location_id}",
            create_movement=True,
            validate_availability=True,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
        ),
        scope=scope,
        sink=sink,
    )
    incoming = mutate_stock(
        db,
        StockMutation(
            product_id=product_id,
            variant_id=variant_id,
            location_id=to_location_id,
            quantity_change=quantity,
            movement_type=MovementType.TRANSFER,
            reason=reason or f"Transfer from location {from_location_id}",
            create_movement=True,
            validate_availability=False,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
        ),
        scope=scope,
        sink=sink,
    )
    return outgoing, incoming


def get_stock_levels(db: Session, product_id: int, variant_id: int | None = None) -> list[StockLevel]:
    query = db.query(StockLevel).filter(StockLevel.product_id == product_id)
    if variant_id is not None:
        query = query.filter(StockLevel.variant_id == variant_id)
    return query.order_by(StockLevel.location_id, StockLevel.variant_key).all()


def get_stock_level(db: Session, product_id: int, variant_id: int | None, location_id: int) -> StockLevel:
    stock_level = db.execute(_stock_level_query(product_id, variant_id, location_id)).scalar_one_or_none()
    if stock_level is None:
        raise NotFoundError("StockLevel", f"{product_id}/{variant_id}/{location_id}")
    return stock_level


def check_reorder_points(db: Session, product_id: int) -> list[StockLevel]:
    rows = (
        db.query(StockLevel)
        .filter(StockLevel.product_id == product_id, StockLevel.reorder_point.isnot(None))
        .order_by(StockLevel.location_id, StockLevel.variant_key)
        .all()
    )
    return [row for row in rows if row.needs_reorder]


def set_reorder_point(
    db: Session,
    *,
    scope: CallerScope,
    product_id: int,
    location_id: int,
    reorder_point: int | None,
    variant_id: int | None = None,
) -> StockLevel:
    if reorder_point is not None and reorder_point < 0:
        raise InvalidQuantityError("Reorder point cannot be negative.", reorder_point=reorder_point)
    ensure_in_scope(db, scope, product_id=product_id, location_ids=(location_id,))
    ensure_variant(db, product_id, variant_id)
    stock_level = get_or_create_stock_level(db, product_id, variant_id, location_id)
    stock_level.reorder_point = reorder_point
    flush_stock_level(db, stock_level)
    return stock_level


def initialize_stock_levels_for_product(db: Session, *, scope: CallerScope, product_id: int) -> list[StockLevel]:
    """Create an empty base stock level at every location of the product's organization."""
    ensure_in_scope(db, scope, product_id=product_id)
    organization_id = db.query(Product.organization_id).filter(Product.id == product_id).scalar()
    locations = (
        db.query(InventoryLocation)
        .filter(InventoryLocation.organization_id == organization_id)
        .order_by(InventoryLocation.id)
        .all()
    )
    return [get_or_create_stock_level(db, product_id, None, location.id) for location in locations]
