from datetime import timedelta

import pytest

from stockroom.errors import InvalidTransactionTypeError, LedgerImmutableError, NotFoundError
from stockroom.inventory.service import StockMutation, mutate_stock
from stockroom.models import InventoryTransaction
from stockroom.movement_types import LedgerType
from stockroom.transactions.service import (
    get_recent_transactions,
    get_transaction_by_id,
    get_transaction_history,
    get_transaction_summary,
    purge_old_transactions,
    record_transaction,
    to_ledger_type,
)
from stockroom.utils.timestamps import utcnow


def post(db, scope, product, location, change, movement_type, actor_id=None):
    return mutate_stock(
        db,
        StockMutation(
            product_id=product.id,
            location_id=location.id,
            quantity_change=change,
            movement_type=movement_type,
            actor_id=actor_id,
        ),
        scope=scope,
    ).transaction


def test_history_is_newest_first_and_paginated(db, product, warehouse, scope):
    for change in (10, 5, 3):
        post(db, scope, product, warehouse, change, "stock_in")
    post(db, scope, product, warehouse, -2, "sale")

    first_page = get_transaction_history(db, product.id, limit=3)
    second_page = get_transaction_history(db, product.id, limit=3, offset=3)

    assert first_page.total == 4
    assert first_page.has_more is True
    assert [row.quantity_change for row in first_page.transactions] == [-2, 3, 5]
    assert [row.quantity_change for row in second_page.transactions] == [10]
    assert second_page.has_more is False


def test_history_filters_by_type_actor_and_date(db, product, warehouse, scope):
    post(db, scope, product, warehouse, 10, "stock_in", actor_id=1)
    post(db, scope, product, warehouse, -4, "adjustment", actor_id=2)
    post(db, scope, product, warehouse, -1, "sale", actor_id=2)

    by_type = get_transaction_history(db, product.id, txn_type="adjustment")
    by_actor = get_transaction_history(db, product.id, actor_id=2)
    future = get_transaction_history(db, product.id, start_date=utcnow() + timedelta(days=1))

    assert [row.type for row in by_type.transactions] == ["adjustment_damage"]
    assert by_actor.total == 2
    assert future.total == 0


def test_summary_groups_by_type(db, product, warehouse, scope):
    post(db, scope, product, warehouse, 10, "stock_in")
    post(db, scope, product, warehouse, 4, "initial")
    post(db, scope, product, warehouse, -3, "sale")
    post(db, scope, product, warehouse, -2, "sale")

    rows = get_transaction_summary(db, product_id=product.id)
    summary = {row.type: (row.total_quantity, row.transaction_count) for row in rows}

    assert summary == {"sale": (-5, 2), "stock_in": (14, 2)}


def test_ledger_rows_cannot_be_updated_or_deleted(db, product, warehouse, scope):
    txn = post(db, scope, product, warehouse, 10, "stock_in")
    db.commit()

    txn.quantity_change = 99
    with pytest.raises(LedgerImmutableError):
        db.flush()
    db.rollback()

    txn = db.query(InventoryTransaction).first()
    db.delete(txn)
    with pytest.raises(LedgerImmutableError):
        db.flush()


def test_purge_removes_only_rows_older_than_retention(db, product, warehouse):
    old = record_transaction(
        db,
        product_id=product.id,
        location_id=warehouse.id,
        ledger_type=LedgerType.STOCK_IN,
        quantity_change=5,
        transaction_date=utcnow() - timedelta(days=400),
    )
    recent = record_transaction(
        db,
        product_id=product.id,
        location_id=warehouse.id,
        ledger_type=LedgerType.SALE,
        quantity_change=-1,
    )
    old_id, recent_id = old.id, recent.id
    db.commit()

    deleted = purge_old_transactions(db)
    db.commit()

    assert deleted == 1
    remaining = [row.id for row in db.query(InventoryTransaction).all()]
    assert remaining == [recent_id]
    with pytest.raises(NotFoundError):
        get_transaction_by_id(db, old_id)


def test_purge_honours_custom_retention(db, product, warehouse):
    record_transaction(
        db,
        product_id=product.id,
        ledger_type=LedgerType.STOCK_IN,
        quantity_change=5,
        transaction_date=utcnow() - timedelta(days=10),
    )

    assert purge_old_transactions(db, days_to_keep=30) == 0
    assert purge_old_transactions(db, days_to_keep=5) == 1


def test_recent_transactions_are_scoped_to_organization(
    db, make_organization, make_product, product, warehouse, scope
):
    other_product = make_product(make_organization("Other Co"), name="Gadget")
    post(db, scope, product, warehouse, 10, "stock_in")
    record_transaction(db, product_id=other_product.id, ledger_type=LedgerType.STOCK_IN, quantity_change=1)

    rows = get_recent_transactions(db, product.organization_id)

    assert [row.product_id for row in rows] == [product.id]


def test_to_ledger_type_accepts_both_vocabularies():
    assert to_ledger_type("initial") is LedgerType.STOCK_IN
    assert to_ledger_type("adjustment_damage") is LedgerType.ADJUSTMENT_DAMAGE
    with pytest.raises(InvalidTransactionTypeError) as exc_info:
        to_ledger_type("teleport")
    assert exc_info.value.to_dict()["code"] == "INVALID_TRANSACTION_TYPE"
    assert exc_info.value.movement_type == "teleport"


def test_history_filter_with_unknown_type_is_a_typed_error(db, product):
    with pytest.raises(InvalidTransactionTypeError):
        get_transaction_history(db, product.id, txn_type="teleport")
