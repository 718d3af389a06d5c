from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockroom.adjustments.service import approve_adjustment, create_adjustment, delete_adjustment, get_adjustments
from stockroom.auth import get_caller_scope, http_error, organization_filter
from stockroom.db import atomic, get_db
from stockroom.errors import InventoryError, ScopeViolationError
from stockroom.inventory import schemas
from stockroom.inventory.service import (
    StockMutation,
    StockUpdateResult,
    check_reorder_points,
    get_stock_level,
    get_stock_levels,
    initialize_stock_levels_for_product,
    mutate_stock,
    set_reorder_point,
    transfer_stock,
)
from stockroom.reservations.service import (
    expire_reservations,
    get_active_reservations,
    release_reservation,
    reserve_stock,
)
from stockroom.scope import CallerScope, ensure_in_scope


router = APIRouter(prefix="/api/inventory", tags=["inventory"])


def _mutation_response(result: StockUpdateResult) -> schemas.StockMutationResponse:
    return schemas.StockMutationResponse(
        stock_level=schemas.StockLevelResponse.model_validate(result.stock_level),
        transaction_id=result.transaction.id,
        previous_available=result.previous_available,
        movement_id=result.movement.id if result.movement else None,
    )


@router.get("/products/{product_id}/stock-levels", response_model=List[schemas.StockLevelResponse])
def list_stock_levels(
    product_id: int,
    variant_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return get_stock_levels(db, product_id, variant_id)


@router.get("/products/{product_id}/stock-levels/{location_id}", response_model=schemas.StockLevelResponse)
def read_stock_level(
    product_id: int,
    location_id: int,
    variant_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id, location_ids=(location_id,))
        return get_stock_level(db, product_id, variant_id, location_id)
    except InventoryError as exc:
        raise http_error(exc) from exc


@router.post(
    "/products/{product_id}/stock-levels/initialize",
    response_model=List[schemas.StockLevelResponse],
    status_code=status.HTTP_201_CREATED,
)
def initialize_stock_levels(
    product_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            stock_levels = initialize_stock_levels_for_product(db, scope=scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return stock_levels


@router.get("/products/{product_id}/reorder-check", response_model=schemas.ReorderCheckResponse)
def reorder_check(
    product_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return schemas.ReorderCheckResponse(
        product_id=product_id,
        stock_levels=[schemas.StockLevelResponse.model_validate(row) for row in check_reorder_points(db, product_id)],
    )


@router.put("/reorder-points", response_model=schemas.StockLevelResponse)
def update_reorder_point(
    payload: schemas.ReorderPointUpdate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            stock_level = set_reorder_point(
                db,
                scope=scope,
                product_id=payload.product_id,
                location_id=payload.location_id,
                reorder_point=payload.reorder_point,
                variant_id=payload.variant_id,
            )
    except InventoryError as exc:
        raise http_error(exc) from exc
    return stock_level


@router.post("/mutations", response_model=schemas.StockMutationResponse, status_code=status.HTTP_201_CREATED)
def post_stock_mutation(
    payload: schemas.StockMutationCreate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            result = mutate_stock(db, StockMutation(**payload.model_dump()), scope=scope)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return _mutation_response(result)


@router.post("/transfers", response_model=schemas.StockTransferResponse, status_code=status.HTTP_201_CREATED)
def post_stock_transfer(
    payload: schemas.StockTransferCreate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            outgoing, incoming = transfer_stock(
                db,
                scope=scope,
                product_id=payload.product_id,
                variant_id=payload.variant_id,
                from_location_id=payload.from_location_id,
                to_location_id=payload.to_location_id,
                quantity=payload.quantity,
                reason=payload.reason,
            )
    except InventoryError as exc:
        raise http_error(exc) from exc
    return schemas.StockTransferResponse(
        outgoing=_mutation_response(outgoing),
        incoming=_mutation_response(incoming),
    )


@router.post("/reservations", response_model=schemas.ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: schemas.ReservationCreate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            reservation = reserve_stock(db, scope=scope, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return reservation


@router.post("/reservations/release", response_model=schemas.ReservationReleaseResponse)
def release_reservations(
    payload: schemas.ReservationRelease,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            released = release_reservation(db, scope=scope, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return schemas.ReservationReleaseResponse(released_quantity=released)


@router.post("/reservations/expire", response_model=schemas.ReservationExpiryResponse)
def expire_stale_reservations(
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    if not scope.is_super_admin:
        raise http_error(ScopeViolationError("Only super admins can run the reservation sweep."))
    with atomic(db):
        expired = expire_reservations(db)
    return schemas.ReservationExpiryResponse(expired=expired)


@router.get("/products/{product_id}/reservations", response_model=List[schemas.ReservationResponse])
def list_active_reservations(
    product_id: int,
    variant_id: Optional[int] = None,
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        ensure_in_scope(db, scope, product_id=product_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return get_active_reservations(db, product_id, variant_id=variant_id, location_id=location_id)


@router.post("/adjustments", response_model=schemas.AdjustmentResponse, status_code=status.HTTP_201_CREATED)
def post_adjustment(
    payload: schemas.AdjustmentCreate,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            adjustment = create_adjustment(db, scope=scope, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return adjustment


@router.get("/adjustments", response_model=List[schemas.AdjustmentResponse])
def list_adjustments(
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    adjustment_type: Optional[str] = None,
    approved: Optional[bool] = None,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    return get_adjustments(
        db,
        organization_id=organization_filter(scope),
        product_id=product_id,
        location_id=location_id,
        adjustment_type=adjustment_type,
        approved=approved,
    )


@router.post("/adjustments/{adjustment_id}/approve", response_model=schemas.AdjustmentResponse)
def approve(
    adjustment_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            adjustment = approve_adjustment(db, scope=scope, adjustment_id=adjustment_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return adjustment


@router.delete("/adjustments/{adjustment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_adjustment(
    adjustment_id: int,
    db: Session = Depends(get_db),
    scope: CallerScope = Depends(get_caller_scope),
):
    try:
        with atomic(db):
            delete_adjustment(db, scope=scope, adjustment_id=adjustment_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
