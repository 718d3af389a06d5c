from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockroom.auth import get_caller_scope, http_error, organization_filter
from stockroom.db import atomic, get_db
from stockroom.errors import InventoryError, ScopeViolationError
from stockroom.scope import CallerScope, ensure_in_scope
from stockroom.transactions import schemas
from stockroom.transactions.service import (
    get_recent_transactions,
    get_transaction_by_id,
    get_transaction_history,
    get_transaction_summary,
    purge_old_transactions,
)


router = APIRouter(prefix="/api/inventory/transactions", tags=["inventory-transactions"])


@router.get("/products/{product_id}", response_model=schemas.TransactionHistoryResponse)
def product_transaction_history(
    product_id: int,
    variant_id: Optional[int] = None,
    txn_type: Optional[str] = Query(default=None, alias="type"),
    actor_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
        history = get_transaction_history(
            db,
            product_id,
            variant_id=variant_id,
            txn_type=txn_type,
            actor_id=actor_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )
    except InventoryError as exc:
        raise http_error(exc) from exc
    return schemas.TransactionHistoryResponse.model_validate(history)


@router.get("/summary", response_model=List[schemas.TransactionSummaryRowResponse])
def transaction_summary(
    product_id: int,
    variant_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    rows = get_transaction_summary(
        db,
        product_id=product_id,
        variant_id=variant_id,
        start_date=start_date,
        end_date=end_date,
    )
    return [schemas.TransactionSummaryRowResponse.model_validate(row) for row in rows]


@router.get("/recent", response_model=List[schemas.TransactionResponse])
def recent_transactions(
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    organization_id = organization_filter(scope)
    if organization_id is None:
        raise http_error(ScopeViolationError("Organization context is required.", actor_id=scope.actor_id))
    return get_recent_transactions(db, organization_id, limit=limit)


@router.get("/{transaction_id}", response_model=schemas.TransactionResponse)
def read_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        txn = get_transaction_by_id(db, transaction_id)
        ensure_in_scope(db, scope, product_id=txn.product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return txn


@router.post("/purge", response_model=schemas.PurgeResponse)
def purge_transactions(
    days_to_keep: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    if not scope.is_super_admin:
        raise http_error(ScopeViolationError("Only super admins can purge the ledger."))
    with atomic(db):
        deleted = purge_old_transactions(db, days_to_keep)
    return schemas.PurgeResponse(deleted=deleted)
