from dataclasses import dataclass
from datetime import datetime, timedelta
import logging

from sqlalchemy import delete, func
from sqlalchemy.orm import Session

from stockroom.config import settings
from stockroom.errors import InvalidTransactionTypeError, NotFoundError
from stockroom.models import InventoryTransaction, Product
from stockroom.movement_types import LEDGER_TYPE_BY_MOVEMENT, LedgerType, MovementType
from stockroom.utils.timestamps import utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionHistory:
    transactions: list[InventoryTransaction]
    total: int
    has_more: bool


@dataclass(frozen=True)
class TransactionSummaryRow:
    type: str
    total_quantity: int
    transaction_count: int


def to_ledger_type(value: str | MovementType | LedgerType) -> LedgerType:
    """Accept either vocabulary; caller-facing movement types are remapped."""
    if isinstance(value, LedgerType):
        return value
    if isinstance(value, MovementType):
        return LEDGER_TYPE_BY_MOVEMENT[value]
    if value in MovementType._value2member_map_:
        return LEDGER_TYPE_BY_MOVEMENT[MovementType(value)]
    if value not in LedgerType._value2member_map_:
        raise InvalidTransactionTypeError(str(value))
    return LedgerType(value)


def record_transaction(
    db: Session,
    *,
    product_id: int,
    ledger_type: LedgerType,
    quantity_change: int,
    variant_id: int | None = None,
    location_id: int | None = None,
    reason: str | None = None,
    actor_id: int | None = None,
    order_item_id: int | None = None,
    transaction_date: datetime | None = None,
) -> InventoryTransaction:
    now = utcnow()
    txn = InventoryTransaction(
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        type=ledger_type.value,
        quantity_change=quantity_change,
        reason=reason,
        actor_id=actor_id,
        order_item_id=order_item_id,
        transaction_date=transaction_date or now,
        created_at=now,
    )
    db.add(txn)
    db.flush()
    return txn


def _history_query(
    db: Session,
    product_id: int,
    *,
    variant_id: int | None = None,
    txn_type: str | None = None,
    actor_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    query = db.query(InventoryTransaction).filter(InventoryTransaction.product_id == product_id)
    if variant_id is not None:
        query = query.filter(InventoryTransaction.variant_id == variant_id)
    if txn_type is not None:
        query = query.filter(InventoryTransaction.type == to_ledger_type(txn_type).value)
    if actor_id is not None:
        query = query.filter(InventoryTransaction.actor_id == actor_id)
    if start_date is not None:
        query = query.filter(InventoryTransaction.transaction_date >= start_date)
    if end_date is not None:
        query = query.filter(InventoryTransaction.transaction_date <= end_date)
    return query


def get_transaction_history(
    db: Session,
    product_id: int,
    *,
    variant_id: int | None = None,
    txn_type: str | None = None,
    actor_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> TransactionHistory:
    limit = limit or settings.transaction_page_size
    query = _history_query(
        db,
        product_id,
        variant_id=variant_id,
        txn_type=txn_type,
        actor_id=actor_id,
        start_date=start_date,
        end_date=end_date,
    )
    total = query.count()
    transactions = (
        query.order_by(InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return TransactionHistory(
        transactions=transactions,
        total=total,
        has_more=offset + len(transactions) < total,
    )


def get_transaction_by_id(db: Session, transaction_id: int) -> InventoryTransaction:
    txn = db.get(InventoryTransaction, transaction_id)
    if txn is None:
        raise NotFoundError("InventoryTransaction", transaction_id)
    return txn


def get_transaction_summary(
    db: Session,
    *,
    product_id: int | None = None,
    variant_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[TransactionSummaryRow]:
    query = db.query(
        InventoryTransaction.type,
        func.coalesce(func.sum(InventoryTransaction.quantity_change), 0),
        func.count(InventoryTransaction.id),
    )
    if product_id is not None:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if variant_id is not None:
        query = query.filter(InventoryTransaction.variant_id == variant_id)
    if start_date is not None:
        query = query.filter(InventoryTransaction.transaction_date >= start_date)
    if end_date is not None:
        query = query.filter(InventoryTransaction.transaction_date <= end_date)

    rows = query.group_by(InventoryTransaction.type).order_by(InventoryTransaction.type).all()
    return [
        TransactionSummaryRow(type=txn_type, total_quantity=int(total or 0), transaction_count=int(count or 0))
        for txn_type, total, count in rows
    ]


def get_recent_transactions(db: Session, organization_id: int, limit: int = 20) -> list[InventoryTransaction]:
    return (
        db.query(InventoryTransaction)
        .join(Product, Product.id == InventoryTransaction.product_id)
        .filter(Product.organization_id == organization_id)
        .order_by(InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )


def purge_old_transactions(db: Session, days_to_keep: int | None = None) -> int:
    """Retention job: the only path that removes ledger rows."""
    if days_to_keep is None:
        days_to_keep = settings.transaction_retention_days
    cutoff = utcnow() - timedelta(days=days_to_keep)
    result = db.execute(
        delete(InventoryTransaction)
        .where(InventoryTransaction.transaction_date < cutoff)
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount or 0
    logger.info("Purged %s inventory transactions older than %s days (cutoff=%s)", deleted, days_to_keep, cutoff)
    return deleted
