from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BatchCreate(BaseModel):
    product_id: int
    location_id: int
    batch_number: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., gt=0)
    variant_id: Optional[int] = None
    manufacturing_date: Optional[date] = None
    expiration_date: Optional[date] = None


class BatchUse(BaseModel):
    quantity_used: int = Field(..., gt=0)


class BatchTransfer(BaseModel):
    to_location_id: int
    quantity: int = Field(..., gt=0)


class BatchResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    location_id: int
    batch_number: str
    quantity: int
    quantity_used: int
    quantity_remaining: int
    manufacturing_date: Optional[date] = None
    expiration_date: Optional[date] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BatchListResponse(BaseModel):
    batches: List[BatchResponse]
    total: int
    has_more: bool

    model_config = ConfigDict(from_attributes=True)


class ExpiringBatchResponse(BaseModel):
    batch: BatchResponse
    days_to_expiration: int

    model_config = ConfigDict(from_attributes=True)


class BatchSummaryResponse(BaseModel):
    product_id: int
    product_name: Optional[str] = None
    total_batches: int
    total_quantity: int
    total_used: int
    available_quantity: int

    model_config = ConfigDict(from_attributes=True)
