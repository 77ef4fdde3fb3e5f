from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from opsledger.apps.finance import models as finance_models
from opsledger.apps.posting import events, rules
from opsledger.apps.posting.errors import DerivationError, InvalidAmount

FILLED_AT = datetime(2024, 5, 2, 7, 30, tzinfo=timezone.utc)


def _fuel(source_id: str = "fuel-1", **overrides) -> events.FuelPurchased:
    data = {
        "source_id": source_id,
        "equipment_label": "Truck ABC-123",
        "quantity": 10,
        "unit_price": 4.5,
        "occurred_at": FILLED_AT,
    }
    data.update(overrides)
    return events.FuelPurchased(**data)


def test_fuel_purchase_posts_an_outflow(db_session):
    result = rules.post(db_session, _fuel(), actor_id="driver-7")
    db_session.commit()

    assert result.status == rules.PostingStatusEnum.POSTED
    entry = result.entry
    assert entry.direction == finance_models.PostingDirectionEnum.OUTFLOW
    assert entry.category == "Fuel"
    assert entry.amount == Decimal("45.00")
    assert entry.source_kind == finance_models.SourceKindEnum.FUEL
    assert entry.source_id == "fuel-1"
    assert entry.payment_method == finance_models.PaymentMethodEnum.CASH
    assert "Truck ABC-123" in entry.narrative


def test_posting_the_same_event_twice_yields_one_entry(db_session):
    first = rules.post(db_session, _fuel(), actor_id=None)
    db_session.commit()
    second = rules.post(db_session, _fuel(), actor_id=None)

    assert second.status == rules.PostingStatusEnum.DUPLICATE
    assert second.entry.id == first.entry.id
    assert db_session.query(finance_models.PostingEntry).count() == 1


def test_malformed_fuel_quantity_raises_and_posts_nothing(db_session):
    with pytest.raises(InvalidAmount):
        rules.post(db_session, _fuel(quantity="abc"), actor_id=None)
    assert db_session.query(finance_models.PostingEntry).count() == 0


def test_tool_without_price_is_skipped(db_session):
    event = events.ToolPurchased(source_id="tool-1", tool_name="Torque wrench", price=None)

    result = rules.post(db_session, event, actor_id=None)

    assert result.status == rules.PostingStatusEnum.SKIPPED
    assert result.reason == rules.NO_PRICE_AVAILABLE
    assert db_session.query(finance_models.PostingEntry).count() == 0


def test_tool_purchase_category_and_reference(db_session):
    event = events.ToolPurchased(
        source_id="tool-2",
        tool_name="Torque wrench",
        tool_code="TW-9",
        price="250",
        payment_method="card",
    )

    entry = rules.post(db_session, event, actor_id=None).entry

    assert entry.category == "Tools Purchase"
    assert entry.reference == "TW-9"
    assert entry.payment_method == finance_models.PaymentMethodEnum.CARD
    assert entry.amount == Decimal("250.00")


def test_unknown_payment_method_is_a_derivation_error(db_session):
    event = events.ToolPurchased(source_id="tool-3", tool_name="Saw", price=10, payment_method="barter")
    with pytest.raises(DerivationError):
        rules.post(db_session, event, actor_id=None)


def test_rental_posts_inflow_on_start_date_with_transfer_default(db_session):
    event = events.RentalCreated(
        source_id="rental-1",
        equipment_label="Excavator EX-2",
        customer_name="Acme Works",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 3),
        daily_rate=100,
        transport_cost=50,
    )

    entry = rules.post(db_session, event, actor_id=None).entry
    db_session.commit()

    assert entry.direction == finance_models.PostingDirectionEnum.INFLOW
    assert entry.category == "Rentals"
    assert entry.amount == Decimal("350.00")
    assert entry.payment_method == finance_models.PaymentMethodEnum.TRANSFER
    assert entry.occurred_at.date() == date(2024, 1, 1)
    assert "Days: 3" in entry.notes


def test_free_rental_is_skipped(db_session):
    event = events.RentalCreated(
        source_id="rental-2",
        equipment_label="Loader",
        customer_name="Acme Works",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 2),
        daily_rate=0,
    )
    assert rules.post(db_session, event, actor_id=None).status == rules.PostingStatusEnum.SKIPPED


def test_stock_entry_posts_parts_purchase(db_session):
    event = events.StockEntered(
        source_id="3:1",
        item_code="BRK-7",
        item_name="Brake pad",
        quantity=12,
        unit_price=Decimal("3.50"),
        reason="Initial stock",
        initial=True,
    )

    entry = rules.post(db_session, event, actor_id=None).entry

    assert entry.category == "Parts Purchase"
    assert entry.source_kind == finance_models.SourceKindEnum.PART
    assert entry.amount == Decimal("42.00")
    assert entry.narrative.startswith("Initial purchase of 12 x Brake pad")


def test_stock_entry_without_unit_price_is_skipped(db_session):
    event = events.StockEntered(source_id="3:2", item_code="BRK-7", item_name="Brake pad", quantity=5)
    assert rules.post(db_session, event, actor_id=None).status == rules.PostingStatusEnum.SKIPPED


def test_tool_maintenance_posts_outflow(db_session):
    event = events.ToolMaintained(
        source_id="tool-1:maint-1",
        tool_name="Generator",
        maintenance_type="Preventive",
        description="Oil change",
        cost=75,
    )

    entry = rules.post(db_session, event, actor_id=None).entry

    assert entry.category == "Tools Maintenance"
    assert entry.source_kind == finance_models.SourceKindEnum.TOOL_MAINTENANCE
    assert entry.amount == Decimal("75.00")


def test_oversized_fuel_amount_is_a_derivation_error(db_session):
    with pytest.raises(DerivationError):
        rules.post(db_session, _fuel(quantity="1e30", unit_price=1), actor_id=None)
    db_session.rollback()
    assert db_session.query(finance_models.PostingEntry).count() == 0
