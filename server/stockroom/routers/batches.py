from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockroom.auth import get_caller_scope, http_error
from stockroom.batches import schemas
from stockroom.batches.service import (
    create_batch,
    delete_batch,
    get_batch_by_id,
    get_batch_summary,
    get_batches,
    get_expired_batches,
    get_expiring_batches,
    transfer_batch,
    update_batch_quantity,
)
from stockroom.db import atomic, get_db
from stockroom.errors import InventoryError
from stockroom.scope import CallerScope, ensure_in_scope


router = APIRouter(prefix="/api/inventory/batches", tags=["inventory-batches"])


@router.post("", response_model=schemas.BatchResponse, status_code=status.HTTP_201_CREATED)
def post_batch(
    payload: schemas.BatchCreate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            batch = create_batch(db, scope=scope, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return batch


@router.get("", response_model=schemas.BatchListResponse)
def list_batches(
    product_id: int,
    variant_id: Optional[int] = None,
    location_id: Optional[int] = None,
    batch_number: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status", pattern="^(active|depleted)$"),
    expiring_within_days: Optional[int] = Query(default=None, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    page = get_batches(
        db,
        product_id=product_id,
        variant_id=variant_id,
        location_id=location_id,
        batch_number=batch_number,
        status=status_filter,
        expiring_within_days=expiring_within_days,
        limit=limit,
        offset=offset,
    )
    return schemas.BatchListResponse.model_validate(page)


@router.get("/expiring", response_model=List[schemas.ExpiringBatchResponse])
def list_expiring_batches(
    days_ahead: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    rows = get_expiring_batches(db, days_ahead)
    if not scope.is_super_admin:
        rows = [row for row in rows if row.batch.organization_id == scope.organization_id]
    return [schemas.ExpiringBatchResponse.model_validate(row) for row in rows]


@router.get("/expired", response_model=List[schemas.BatchResponse])
def list_expired_batches(
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    rows = get_expired_batches(db)
    if scope.is_super_admin:
        return rows
    return [row for row in rows if row.organization_id == scope.organization_id]


@router.get("/summary", response_model=List[schemas.BatchSummaryResponse])
def batch_summary(
    product_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return [schemas.BatchSummaryResponse.model_validate(row) for row in get_batch_summary(db, product_id)]


@router.get("/{batch_id}", response_model=schemas.BatchResponse)
def read_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        batch = get_batch_by_id(db, batch_id)
        ensure_in_scope(db, scope, product_id=batch.product_id, location_ids=(batch.location_id,))
    except InventoryError as exc:
        raise http_error(exc) from exc
    return batch


@router.post("/{batch_id}/use", response_model=schemas.BatchResponse)
def use_batch_quantity(
    batch_id: int,
    payload: schemas.BatchUse,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            batch = update_batch_quantity(db, scope=scope, batch_id=batch_id, quantity_used=payload.quantity_used)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return batch


@router.post("/{batch_id}/transfer", response_model=schemas.BatchResponse, status_code=status.HTTP_201_CREATED)
def post_batch_transfer(
    batch_id: int,
    payload: schemas.BatchTransfer,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            destination = transfer_batch(
                db,
                scope=scope,
                batch_id=batch_id,
                to_location_id=payload.to_location_id,
                quantity=payload.quantity,
            )
    except InventoryError as exc:
        raise http_error(exc) from exc
    return destination


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            delete_batch(db, scope=scope, batch_id=batch_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
