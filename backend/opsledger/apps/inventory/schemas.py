from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from . import models


class StockItemCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    uom: str = "EA"
    minimum_threshold: int = Field(default=1, ge=0)
    maximum_threshold: Optional[int] = Field(default=None, ge=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    initial_stock: int = Field(default=0, ge=0)
    payment_method: Optional[str] = None


class StockItemRead(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    uom: str
    minimum_threshold: int
    maximum_threshold: Optional[int] = None
    unit_price: Optional[Decimal] = None
    current_balance: int
    version: int
    stock_status: models.StockStatusEnum
    created_at: datetime

    class Config:
        from_attributes = True


class StockMovementCreate(BaseModel):
    kind: models.StockMovementKindEnum
    # Validated by the ledger so non-integer input maps to InvalidQuantity.
    quantity: Union[int, float, str]
    reason: str = Field(..., min_length=1, max_length=200)
    reason_code: Optional[str] = Field(default=None, max_length=64)
    reference_id: Optional[str] = Field(default=None, max_length=50)
    occurred_at: Optional[datetime] = None
    payment_method: Optional[str] = None


class StockMovementRead(BaseModel):
    id: int
    item_id: int
    sequence: int
    kind: models.StockMovementKindEnum
    requested_quantity: int
    quantity_delta: int
    previous_balance: int
    resulting_balance: int
    reason_code: Optional[str] = None
    reason: str
    reference_id: Optional[str] = None
    actor_id: Optional[str] = None
    occurred_at: datetime
    recorded_at: datetime
    was_clamped: bool

    class Config:
        from_attributes = True


class StockBalanceRead(BaseModel):
    item_id: int
    current_balance: int
    as_of: Optional[datetime] = None


class StockVerificationRead(BaseModel):
    item_id: int
    replayed_balance: int
    current_balance: int
    movement_count: int
    problems: List[str]

    @property
    def is_consistent(self) -> bool:
        return not self.problems


class InventoryStats(BaseModel):
    total_items: int
    low_stock_items: int
    out_of_stock_items: int
    total_units: int
    total_value: Decimal
