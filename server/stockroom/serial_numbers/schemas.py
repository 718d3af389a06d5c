from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SerialNumbersCreate(BaseModel):
    batch_id: int
    serial_numbers: List[str] = Field(..., min_length=1)


class SerialNumberStatusUpdate(BaseModel):
    status: str
    location_id: Optional[int] = None
    notes: Optional[str] = None
    order_item_id: Optional[int] = None


class SerialNumberTransfer(BaseModel):
    to_location_id: int
    notes: Optional[str] = None


class SerialNumberResponse(BaseModel):
    id: int
    batch_id: Optional[int] = None
    product_id: int
    variant_id: Optional[int] = None
    location_id: int
    serial_number: str
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
