import logging
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockroom.db import Base, atomic
from stockroom.errors import ConcurrentStockUpdateError, InsufficientStockError
from stockroom.inventory import service
from stockroom.inventory.service import StockMutation, flush_stock_level, get_stock_level, mutate_stock
from stockroom.models import InventoryLocation, InventoryTransaction, Organization, Product
from stockroom.scope import CallerScope


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'stock.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture()
def seeded(session_factory):
    session = session_factory()
    organization = Organization(name="Acme Supply")
    session.add(organization)
    session.flush()
    location = InventoryLocation(organization_id=organization.id, name="Main Warehouse", is_active=True)
    product = Product(organization_id=organization.id, name="Widget", stock_quantity=0)
    session.add_all([location, product])
    session.flush()
    scope = CallerScope(actor_id=1, organization_id=organization.id)
    mutate_stock(
        session,
        StockMutation(product_id=product.id, location_id=location.id, quantity_change=10, movement_type="stock_in"),
        scope=scope,
    )
    session.commit()
    ids = (product.id, location.id, scope)
    session.close()
    return ids


def stock_out(product_id, location_id, quantity):
    return StockMutation(
        product_id=product_id,
        location_id=location_id,
        quantity_change=-quantity,
        movement_type="stock_out",
        validate_availability=True,
    )


def committed_state(session_factory, product_id, location_id):
    check = session_factory()
    try:
        available = get_stock_level(check, product_id, None, location_id).quantity_available
        reductions = check.query(InventoryTransaction).filter(InventoryTransaction.type == "stock_out").count()
        total = check.get(Product, product_id).stock_quantity
        return available, reductions, total
    finally:
        check.close()


def commit_after_first_read(monkeypatch, reader, commit_other):
    """Run ``commit_other`` right after ``reader`` reads the stock row, before it writes."""
    real_lock = service.lock_stock_level
    reads = []

    def lock_then_interleave(db, *args):
        stock_level = real_lock(db, *args)
        if db is reader:
            reads.append(stock_level.quantity_available)
            if len(reads) == 1:
                commit_other()
        return stock_level

    monkeypatch.setattr(service, "lock_stock_level", lock_then_interleave)
    return reads


def test_sequential_reduction_sees_committed_stock(session_factory, seeded):
    product_id, location_id, scope = seeded
    first, second = session_factory(), session_factory()

    assert get_stock_level(first, product_id, None, location_id).quantity_available == 10
    assert get_stock_level(second, product_id, None, location_id).quantity_available == 10

    with atomic(first):
        mutate_stock(first, stock_out(product_id, location_id, 8), scope=scope)

    with pytest.raises(InsufficientStockError) as exc_info:
        with atomic(second):
            mutate_stock(second, stock_out(product_id, location_id, 5), scope=scope)

    assert exc_info.value.available == 2
    assert committed_state(session_factory, product_id, location_id) == (2, 1, 2)
    first.close()
    second.close()


def test_reduction_that_read_before_a_competing_commit_is_revalidated(session_factory, seeded, monkeypatch):
    product_id, location_id, scope = seeded
    winner, loser = session_factory(), session_factory()

    def winner_commits():
        with atomic(winner):
            mutate_stock(winner, stock_out(product_id, location_id, 8), scope=scope)

    reads = commit_after_first_read(monkeypatch, loser, winner_commits)

    with pytest.raises(InsufficientStockError) as exc_info:
        with atomic(loser):
            mutate_stock(loser, stock_out(product_id, location_id, 5), scope=scope)

    # Both reductions validated against 10; the loser re-read the committed row.
    assert reads == [10, 2]
    assert exc_info.value.available == 2
    assert committed_state(session_factory, product_id, location_id) == (2, 1, 2)
    winner.close()
    loser.close()


def test_reduction_that_still_fits_succeeds_after_retry(session_factory, seeded, monkeypatch, caplog):
    product_id, location_id, scope = seeded
    winner, loser = session_factory(), session_factory()

    def winner_commits():
        with atomic(winner):
            mutate_stock(winner, stock_out(product_id, location_id, 3), scope=scope)

    reads = commit_after_first_read(monkeypatch, loser, winner_commits)

    with caplog.at_level(logging.WARNING, logger="stockroom.inventory.service"):
        with atomic(loser):
            result = mutate_stock(loser, stock_out(product_id, location_id, 5), scope=scope)

    assert reads == [10, 7]
    assert result.previous_available == 7
    assert "changed concurrently" in caplog.text
    assert committed_state(session_factory, product_id, location_id) == (2, 2, 2)
    winner.close()
    loser.close()


def test_concurrent_threads_let_exactly_one_reduction_commit(session_factory, seeded, monkeypatch):
    product_id, location_id, scope = seeded
    real_lock = service.lock_stock_level
    both_read = threading.Barrier(2, timeout=10)
    local = threading.local()

    def lock_then_wait(db, *args):
        stock_level = real_lock(db, *args)
        if not getattr(local, "waited", False):
            local.waited = True
            both_read.wait()
        return stock_level

    monkeypatch.setattr(service, "lock_stock_level", lock_then_wait)
    outcomes = []

    def reduce_stock():
        session = session_factory()
        try:
            with atomic(session):
                mutate_stock(session, stock_out(product_id, location_id, 6), scope=scope)
            outcomes.append("committed")
        except Exception as exc:
            outcomes.append(type(exc).__name__)
        finally:
            session.close()

    threads = [threading.Thread(target=reduce_stock) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["InsufficientStockError", "committed"]
    assert committed_state(session_factory, product_id, location_id) == (4, 1, 4)


def test_mutation_gives_up_with_typed_error_when_conflicts_persist(db, product, warehouse, scope, monkeypatch):
    mutate_stock(
        db,
        StockMutation(product_id=product.id, location_id=warehouse.id, quantity_change=10, movement_type="stock_in"),
        scope=scope,
    )
    monkeypatch.setattr(service, "write_stock_quantities", lambda *args, **kwargs: False)

    with pytest.raises(ConcurrentStockUpdateError) as exc_info:
        mutate_stock(db, stock_out(product.id, warehouse.id, 1), scope=scope)

    assert exc_info.value.to_dict()["location_id"] == warehouse.id
    assert db.query(InventoryTransaction).count() == 1


def test_stale_stock_level_write_is_rejected(session_factory, seeded):
    product_id, location_id, scope = seeded
    writer, stale = session_factory(), session_factory()
    stale_level = get_stock_level(stale, product_id, None, location_id)
    stale_id = stale_level.id

    with atomic(writer):
        mutate_stock(writer, stock_out(product_id, location_id, 3), scope=scope)

    stale_level.quantity_on_hand = 99
    with pytest.raises(ConcurrentStockUpdateError) as exc_info:
        flush_stock_level(stale, stale_level)
    stale.rollback()

    assert exc_info.value.to_dict()["stock_level_id"] == stale_id
    assert exc_info.value.to_dict()["product_id"] == product_id
    check = session_factory()
    stock_level = get_stock_level(check, product_id, None, location_id)
    assert (stock_level.quantity_on_hand, stock_level.quantity_available) == (7, 7)
    assert stock_level.version == 3
    for session in (writer, stale, check):
        session.close()
