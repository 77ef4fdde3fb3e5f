from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from opsledger.apps.finance.schemas import PostingEntryRead
from opsledger.apps.inventory.schemas import StockItemRead, StockMovementRead

from . import events
from .outcomes import PostingOutcome, PostingOutcomeEnum


class _EventIn(BaseModel):
    source_id: str = Field(..., min_length=1, max_length=64)
    payment_method: Optional[str] = None


class FuelPurchasedIn(_EventIn):
    type: Literal["fuel_purchased"]
    equipment_label: str
    # Amount fields stay loose; costing rejects malformed values as a FAILED outcome.
    quantity: Any
    unit_price: Any
    occurred_at: datetime
    notes: Optional[str] = None

    def to_event(self) -> events.FuelPurchased:
        return events.FuelPurchased(**self.model_dump(exclude={"type"}))


class ToolPurchasedIn(_EventIn):
    type: Literal["tool_purchased"]
    tool_name: str
    tool_code: Optional[str] = None
    price: Any = None
    occurred_at: Optional[datetime] = None

    def to_event(self) -> events.ToolPurchased:
        return events.ToolPurchased(**self.model_dump(exclude={"type"}))


class StockEnteredIn(_EventIn):
    type: Literal["stock_entered"]
    item_code: str
    item_name: str
    quantity: Any
    unit_price: Any = None
    reason: Optional[str] = None
    occurred_at: Optional[datetime] = None
    reference: Optional[str] = None
    initial: bool = False

    def to_event(self) -> events.StockEntered:
        return events.StockEntered(**self.model_dump(exclude={"type"}))


class RentalCreatedIn(_EventIn):
    type: Literal["rental_created"]
    equipment_label: str
    customer_name: str
    start_date: Union[datetime, date]
    end_date: Union[datetime, date]
    daily_rate: Any
    transport_cost: Any = None

    def to_event(self) -> events.RentalCreated:
        return events.RentalCreated(**self.model_dump(exclude={"type"}))


class ToolMaintainedIn(_EventIn):
    type: Literal["tool_maintained"]
    tool_name: str
    maintenance_type: str
    description: str = ""
    cost: Any = None
    occurred_at: Optional[datetime] = None

    def to_event(self) -> events.ToolMaintained:
        return events.ToolMaintained(**self.model_dump(exclude={"type"}))


DomainEventIn = Annotated[
    Union[FuelPurchasedIn, ToolPurchasedIn, StockEnteredIn, RentalCreatedIn, ToolMaintainedIn],
    Field(discriminator="type"),
]


class PostingEventSubmit(BaseModel):
    event: DomainEventIn


class PostingOutcomeRead(BaseModel):
    status: PostingOutcomeEnum
    reason: Optional[str] = None
    duplicate: bool = False
    entry: Optional[PostingEntryRead] = None

    @classmethod
    def from_outcome(cls, outcome: PostingOutcome) -> "PostingOutcomeRead":
        return cls(
            status=outcome.status,
            reason=outcome.reason,
            duplicate=outcome.duplicate,
            entry=PostingEntryRead.model_validate(outcome.entry) if outcome.entry is not None else None,
        )


class MovementWithPosting(BaseModel):
    movement: StockMovementRead
    posting: PostingOutcomeRead


class ItemRegistration(BaseModel):
    item: StockItemRead
    initial_movement: Optional[StockMovementRead] = None
    posting: PostingOutcomeRead


class ReconcileRequest(BaseModel):
    events: List[DomainEventIn]


class ReconcileResult(BaseModel):
    source_kind: str
    source_id: str
    outcome: PostingOutcomeRead
