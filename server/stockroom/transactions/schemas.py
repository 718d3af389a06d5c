from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class TransactionResponse(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    location_id: Optional[int] = None
    type: str
    quantity_change: int
    reason: Optional[str] = None
    actor_id: Optional[int] = None
    order_item_id: Optional[int] = None
    transaction_date: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionHistoryResponse(BaseModel):
    transactions: List[TransactionResponse]
    total: int
    has_more: bool

    model_config = ConfigDict(from_attributes=True)


class TransactionSummaryRowResponse(BaseModel):
    type: str
    total_quantity: int
    transaction_count: int

    model_config = ConfigDict(from_attributes=True)


class PurgeResponse(BaseModel):
    deleted: int
