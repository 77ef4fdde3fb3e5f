from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from opsledger.apps.finance import errors as finance_errors
from opsledger.apps.finance import models as finance_models
from opsledger.apps.finance import schemas as finance_schemas
from opsledger.apps.finance import services as finance_services

from . import costing, events
from .errors import DerivationError

logger = logging.getLogger(__name__)

NO_PRICE_AVAILABLE = "NO_PRICE_AVAILABLE"

INFLOW = finance_models.PostingDirectionEnum.INFLOW
OUTFLOW = finance_models.PostingDirectionEnum.OUTFLOW
CASH = finance_models.PaymentMethodEnum.CASH
TRANSFER = finance_models.PaymentMethodEnum.TRANSFER


@dataclass(frozen=True)
class PostingRule:
    direction: finance_models.PostingDirectionEnum
    category: str
    default_payment_method: finance_models.PaymentMethodEnum = CASH


RULES = {
    events.FuelPurchased: PostingRule(OUTFLOW, "Fuel"),
    events.ToolPurchased: PostingRule(OUTFLOW, "Tools Purchase"),
    events.StockEntered: PostingRule(OUTFLOW, "Parts Purchase"),
    events.RentalCreated: PostingRule(INFLOW, "Rentals", TRANSFER),
    events.ToolMaintained: PostingRule(OUTFLOW, "Tools Maintenance"),
}


class PostingStatusEnum(str, enum.Enum):
    POSTED = "POSTED"
    DUPLICATE = "DUPLICATE"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class PostingResult:
    status: PostingStatusEnum
    entry: Optional[finance_models.PostingEntry] = None
    reason: Optional[str] = None

    @classmethod
    def posted(cls, entry) -> "PostingResult":
        return cls(PostingStatusEnum.POSTED, entry=entry)

    @classmethod
    def duplicate(cls, entry) -> "PostingResult":
        return cls(PostingStatusEnum.DUPLICATE, entry=entry)

    @classmethod
    def skipped(cls, reason: str = NO_PRICE_AVAILABLE) -> "PostingResult":
        return cls(PostingStatusEnum.SKIPPED, reason=reason)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rule_for(event: events.DomainEvent) -> PostingRule:
    try:
        return RULES[type(event)]
    except KeyError:
        raise DerivationError(f"No posting rule for {type(event).__name__}.") from None


def _payment_method(value, rule: PostingRule) -> finance_models.PaymentMethodEnum:
    if value is None or (isinstance(value, str) and not value.strip()):
        return rule.default_payment_method
    try:
        return finance_models.PaymentMethodEnum(str(value).strip().upper())
    except ValueError:
        raise DerivationError(f"Unknown payment method {value!r}.") from None


def _fuel(event: events.FuelPurchased):
    amount = costing.fuel_cost(event.quantity, event.unit_price)
    narrative = f"Fuel for {event.equipment_label}: {event.quantity} x {event.unit_price}"
    notes = f"Recorded from fuel purchase. {event.notes or ''}".strip()
    return amount, event.occurred_at, narrative, None, notes


def _tool(event: events.ToolPurchased):
    amount = costing.tool_purchase_cost(event.price)
    label = f"{event.tool_name} ({event.tool_code})" if event.tool_code else event.tool_name
    narrative = f"Purchase of tool {label}"
    return amount, event.occurred_at, narrative, event.tool_code, f"Tool acquired: {event.tool_name}"


def _stock(event: events.StockEntered):
    amount = costing.stock_entry_cost(event.quantity, event.unit_price)
    verb = "Initial purchase" if event.initial else "Purchase"
    narrative = f"{verb} of {event.quantity} x {event.item_name} ({event.item_code})"
    notes = (
        f"Stock entry: {event.reason or 'n/a'}. "
        f"Quantity: {event.quantity}, unit price: {event.unit_price}"
    )
    return amount, event.occurred_at, narrative, event.reference, notes


def _rental(event: events.RentalCreated):
    amount = costing.rental_income(
        event.start_date, event.end_date, event.daily_rate, event.transport_cost
    )
    days = costing.rental_days(event.start_date, event.end_date)
    narrative = f"Rental of {event.equipment_label} to {event.customer_name}"
    notes = (
        f"Customer: {event.customer_name}. Equipment: {event.equipment_label}. "
        f"Period: {event.start_date} - {event.end_date}. Days: {days}. "
        f"Daily rate: {event.daily_rate}. Transport: {event.transport_cost or 0}."
    )
    occurred_at = costing.as_datetime(event.start_date, "start_date")
    return amount, occurred_at, narrative, None, notes


def _maintenance(event: events.ToolMaintained):
    amount = costing.maintenance_cost(event.cost)
    narrative = f"{event.maintenance_type} maintenance of {event.tool_name}"
    notes = f"Maintenance: {event.maintenance_type} for {event.tool_name}. {event.description}".strip()
    return amount, event.occurred_at, narrative, None, notes


_BUILDERS = {
    events.FuelPurchased: _fuel,
    events.ToolPurchased: _tool,
    events.StockEntered: _stock,
    events.RentalCreated: _rental,
    events.ToolMaintained: _maintenance,
}


def build_posting(event: events.DomainEvent) -> Optional[finance_schemas.PostingEntryCreate]:
    """
    Derive the posting an event should produce, or ``None`` when it has no price.

    Raises ``DerivationError`` for malformed event data.
    """
    rule = rule_for(event)
    amount, occurred_at, narrative, reference, notes = _BUILDERS[type(event)](event)
    if amount is None or amount <= Decimal("0"):
        return None
    return finance_schemas.PostingEntryCreate(
        direction=rule.direction,
        category=rule.category,
        amount=amount,
        occurred_at=occurred_at or _utcnow(),
        source_kind=type(event).SOURCE_KIND,
        source_id=str(event.source_id),
        narrative=narrative[:255],
        payment_method=_payment_method(event.payment_method, rule),
        reference=reference[:64] if reference else None,
        notes=notes,
    )


def post(
    db: Session,
    event: events.DomainEvent,
    *,
    actor_id: Optional[str] = None,
) -> PostingResult:
    data = build_posting(event)
    if data is None:
        logger.warning(
            "Event has no price; nothing posted",
            extra={"source_kind": type(event).SOURCE_KIND.value, "source_id": event.source_id},
        )
        return PostingResult.skipped(NO_PRICE_AVAILABLE)
    try:
        entry = finance_services.append(db, data=data, actor_id=actor_id)
    except finance_errors.DuplicatePosting as exc:
        return PostingResult.duplicate(exc.existing)
    logger.info(
        "Posted financial entry",
        extra={
            "source_kind": data.source_kind.value,
            "source_id": data.source_id,
            "amount": str(data.amount),
            "category": data.category,
        },
    )
    return PostingResult.posted(entry)
