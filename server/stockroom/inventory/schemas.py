from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockroom.movement_types import MovementType


class StockLevelResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    location_id: int
    quantity_on_hand: int
    quantity_reserved: int
    quantity_available: int
    reorder_point: Optional[int] = None
    needs_reorder: bool = False
    last_updated: datetime

    model_config = ConfigDict(from_attributes=True)


class StockMutationCreate(BaseModel):
    product_id: int
    location_id: int
    quantity_change: int = Field(..., description="Signed delta applied to quantity on hand.")
    movement_type: MovementType
    variant_id: Optional[int] = None
    reason: Optional[str] = None
    order_item_id: Optional[int] = None
    create_movement: bool = False
    validate_availability: bool = False
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None


class StockMutationResponse(BaseModel):
    stock_level: StockLevelResponse
    transaction_id: int
    previous_available: int
    movement_id: Optional[int] = None


class StockTransferCreate(BaseModel):
    product_id: int
    from_location_id: int
    to_location_id: int
    quantity: int = Field(..., gt=0)
    variant_id: Optional[int] = None
    reason: Optional[str] = None


class StockTransferResponse(BaseModel):
    outgoing: StockMutationResponse
    incoming: StockMutationResponse


class ReorderPointUpdate(BaseModel):
    product_id: int
    location_id: int
    reorder_point: Optional[int] = Field(default=None, ge=0)
    variant_id: Optional[int] = None


class ReservationCreate(BaseModel):
    product_id: int
    location_id: int
    quantity: int = Field(..., gt=0)
    reserved_for_type: str
    reserved_for_id: int
    variant_id: Optional[int] = None


class ReservationRelease(BaseModel):
    product_id: int
    location_id: int
    reserved_for_type: str
    reserved_for_id: int
    variant_id: Optional[int] = None


class ReservationReleaseResponse(BaseModel):
    released_quantity: int


class ReservationExpiryResponse(BaseModel):
    expired: int


class ReservationResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    location_id: int
    quantity: int
    reserved_for_type: str
    reserved_for_id: int
    status: str
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdjustmentCreate(BaseModel):
    product_id: int
    location_id: int
    adjustment_type: str
    quantity_after: int = Field(..., ge=0)
    variant_id: Optional[int] = None
    reason_code: Optional[str] = None
    description: Optional[str] = None


class AdjustmentResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    location_id: int
    adjustment_type: str
    quantity_before: int
    quantity_after: int
    quantity_change: int
    reason_code: Optional[str] = None
    description: Optional[str] = None
    transaction_id: Optional[int] = None
    created_by_id: Optional[int] = None
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReorderCheckResponse(BaseModel):
    product_id: int
    stock_levels: List[StockLevelResponse]
