from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockroom.auth import get_caller_scope, http_error, organization_filter
from stockroom.db import atomic, get_db
from stockroom.errors import InventoryError
from stockroom.scope import CallerScope, ensure_in_scope
from stockroom.serial_numbers import schemas
from stockroom.serial_numbers.service import (
    create_serial_numbers_for_batch,
    delete_serial_number,
    get_available_serial_numbers,
    get_serial_number_by_id,
    get_serial_numbers,
    mark_as_damaged,
    mark_as_returned,
    mark_as_sold,
    transfer_serial_number,
    update_serial_number_status,
)


router = APIRouter(prefix="/api/inventory/serial-numbers", tags=["inventory-serial-numbers"])


@router.post("", response_model=List[schemas.SerialNumberResponse], status_code=status.HTTP_201_CREATED)
def post_serial_numbers(
    payload: schemas.SerialNumbersCreate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            serials = create_serial_numbers_for_batch(
                db,
                scope=scope,
                batch_id=payload.batch_id,
                serial_numbers=payload.serial_numbers,
            )
    except InventoryError as exc:
        raise http_error(exc) from exc
    return serials


@router.get("", response_model=List[schemas.SerialNumberResponse])
def list_serial_numbers(
    product_id: Optional[int] = None,
    variant_id: Optional[int] = None,
    batch_id: Optional[int] = None,
    location_id: Optional[int] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    return get_serial_numbers(
        db,
        organization_id=organization_filter(scope),
        product_id=product_id,
        variant_id=variant_id,
        batch_id=batch_id,
        location_id=location_id,
        status=status_filter,
        search=search,
    )


@router.get("/available", response_model=List[schemas.SerialNumberResponse])
def list_available_serial_numbers(
    product_id: int,
    location_id: Optional[int] = None,
    variant_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return get_available_serial_numbers(db, product_id, location_id=location_id, variant_id=variant_id)


@router.get("/{serial_id}", response_model=schemas.SerialNumberResponse)
def read_serial_number(
    serial_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        serial = get_serial_number_by_id(db, serial_id)
        ensure_in_scope(db, scope, product_id=serial.product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return serial


@router.patch("/{serial_id}/status", response_model=schemas.SerialNumberResponse)
def patch_serial_number_status(
    serial_id: int,
    payload: schemas.SerialNumberStatusUpdate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            serial = update_serial_number_status(db, scope=scope, serial_id=serial_id, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return serial


@router.post("/{serial_id}/transfer", response_model=schemas.SerialNumberResponse)
def post_serial_number_transfer(
    serial_id: int,
    payload: schemas.SerialNumberTransfer,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            serial = transfer_serial_number(
                db,
                scope=scope,
                serial_id=serial_id,
                to_location_id=payload.to_location_id,
                notes=payload.notes,
            )
    except InventoryError as exc:
        raise http_error(exc) from exc
    return serial


@router.post("/{serial_id}/sold", response_model=schemas.SerialNumberResponse)
def post_serial_number_sold(
    serial_id: int,
    order_item_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            serial = mark_as_sold(db, scope=scope, serial_id=serial_id, order_item_id=order_item_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return serial


@router.post("/{serial_id}/returned", response_model=schemas.SerialNumberResponse)
def post_serial_number_returned(
    serial_id: int,
    location_id: Optional[int] = None,
    notes: Optional[str] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            serial = mark_as_returned(db, scope=scope, serial_id=serial_id, location_id=location_id, notes=notes)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return serial


@router.post("/{serial_id}/damaged", response_model=schemas.SerialNumberResponse)
def post_serial_number_damaged(
    serial_id: int,
    notes: Optional[str] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            serial = mark_as_damaged(db, scope=scope, serial_id=serial_id, notes=notes)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return serial


@router.delete("/{serial_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_serial_number(
    serial_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            delete_serial_number(db, scope=scope, serial_id=serial_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
