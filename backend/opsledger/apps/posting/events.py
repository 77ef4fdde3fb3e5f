"""
Domain events that may carry a financial consequence.

Each variant names its own source; the pair ``(SOURCE_KIND, source_id)`` is
what the finance ledger deduplicates on. Numeric fields are kept as received
so costing can reject malformed values instead of the caller guessing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Union

from opsledger.apps.finance.models import SourceKindEnum


@dataclass(frozen=True)
class FuelPurchased:
    SOURCE_KIND = SourceKindEnum.FUEL

    source_id: str
    equipment_label: str
    quantity: Any
    unit_price: Any
    occurred_at: datetime
    payment_method: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ToolPurchased:
    SOURCE_KIND = SourceKindEnum.TOOL

    source_id: str
    tool_name: str
    tool_code: Optional[str] = None
    price: Any = None
    occurred_at: Optional[datetime] = None
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class StockEntered:
    SOURCE_KIND = SourceKindEnum.PART

    source_id: str
    item_code: str
    item_name: str
    quantity: Any
    unit_price: Any = None
    reason: Optional[str] = None
    occurred_at: Optional[datetime] = None
    reference: Optional[str] = None
    initial: bool = False
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class RentalCreated:
    SOURCE_KIND = SourceKindEnum.RENTAL

    source_id: str
    equipment_label: str
    customer_name: str
    start_date: Union[date, datetime]
    end_date: Union[date, datetime]
    daily_rate: Any
    transport_cost: Any = None
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class ToolMaintained:
    SOURCE_KIND = SourceKindEnum.TOOL_MAINTENANCE

    source_id: str
    tool_name: str
    maintenance_type: str
    description: str
    cost: Any = None
    occurred_at: Optional[datetime] = None
    payment_method: Optional[str] = None


DomainEvent = Union[FuelPurchased, ToolPurchased, StockEntered, RentalCreated, ToolMaintained]
