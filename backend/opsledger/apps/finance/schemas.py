from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from . import models


class PostingEntryCreate(BaseModel):
    direction: models.PostingDirectionEnum
    category: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0)
    occurred_at: datetime
    source_kind: models.SourceKindEnum
    source_id: str = Field(..., min_length=1, max_length=64)
    narrative: str = Field(..., min_length=1, max_length=255)
    payment_method: models.PaymentMethodEnum = models.PaymentMethodEnum.CASH
    reference: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = None


class PostingEntryRead(BaseModel):
    id: str
    direction: models.PostingDirectionEnum
    category: str
    amount: Decimal
    occurred_at: datetime
    source_kind: models.SourceKindEnum
    source_id: str
    narrative: str
    payment_method: models.PaymentMethodEnum
    reference: Optional[str] = None
    notes: Optional[str] = None
    actor_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PostingPage(BaseModel):
    items: List[PostingEntryRead]
    total: int
    page: int
    page_size: int


class CategoryTotal(BaseModel):
    category: str
    direction: models.PostingDirectionEnum
    total: Decimal
    count: int


class PeriodTotal(BaseModel):
    period: str
    inflow: Decimal
    outflow: Decimal
    net: Decimal


class FinanceSummary(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    total_inflow: Decimal
    total_outflow: Decimal
    net: Decimal
    entry_count: int
    by_category: Dict[str, Decimal]
