from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from opsledger.apps.posting import costing
from opsledger.apps.posting.errors import DerivationError, InvalidAmount


def test_fuel_cost_multiplies_quantity_and_price():
    assert costing.fuel_cost(10, 4.5) == 45.0
    assert costing.fuel_cost("10", "4.5") == Decimal("45.00")
    assert costing.fuel_cost(Decimal("3.333"), Decimal("1")) == Decimal("3.33")


def test_fuel_cost_rounds_half_up_to_cents():
    assert costing.fuel_cost("1", "0.125") == Decimal("0.13")


@pytest.mark.parametrize(
    "quantity, unit_price",
    [("abc", 4.5), (10, None), (0, 4.5), (-1, 4.5), (float("nan"), 1), (1, float("inf")), (True, 2)],
)
def test_fuel_cost_rejects_malformed_values(quantity, unit_price):
    with pytest.raises(InvalidAmount):
        costing.fuel_cost(quantity, unit_price)


def test_invalid_amount_is_a_derivation_error():
    assert issubclass(InvalidAmount, DerivationError)
    with pytest.raises(DerivationError) as exc_info:
        costing.fuel_cost("abc", 1)
    assert exc_info.value.status_code == 422


@pytest.mark.parametrize(
    "derive",
    [
        lambda: costing.fuel_cost("1e30", 1),
        lambda: costing.fuel_cost(10**10, 1),
        lambda: costing.tool_purchase_cost("1e40"),
        lambda: costing.maintenance_cost(Decimal("12345678901")),
        lambda: costing.stock_entry_cost(10**9, 100),
        lambda: costing.rental_income(date(2024, 1, 1), date(2024, 1, 3), "1e29"),
    ],
)
def test_amounts_beyond_the_ledger_range_are_invalid(derive):
    with pytest.raises(InvalidAmount):
        derive()


def test_largest_postable_amount_is_accepted():
    assert costing.fuel_cost("9999999999.99", 1) == Decimal("9999999999.99")


def test_tool_purchase_cost_without_price_has_nothing_to_post():
    assert costing.tool_purchase_cost(None) is None
    assert costing.tool_purchase_cost("") is None
    assert costing.tool_purchase_cost(0) is None
    assert costing.tool_purchase_cost(-5) is None
    assert costing.tool_purchase_cost("199.999") == Decimal("200.00")


def test_tool_purchase_cost_rejects_garbage():
    with pytest.raises(InvalidAmount):
        costing.tool_purchase_cost("cheap")


def test_maintenance_cost_matches_tool_purchase_rules():
    assert costing.maintenance_cost(None) is None
    assert costing.maintenance_cost(75) == Decimal("75.00")


def test_stock_entry_cost():
    assert costing.stock_entry_cost(12, Decimal("3.50")) == Decimal("42.00")
    assert costing.stock_entry_cost(12, None) is None
    assert costing.stock_entry_cost(12, 0) is None
    with pytest.raises(InvalidAmount):
        costing.stock_entry_cost("lots", 2)


def test_rental_days_is_inclusive():
    assert costing.rental_days(date(2024, 1, 1), date(2024, 1, 1)) == 1
    assert costing.rental_days(date(2024, 1, 1), date(2024, 1, 3)) == 3
    assert costing.rental_days(
        datetime(2024, 1, 1, 8, tzinfo=timezone.utc),
        datetime(2024, 1, 2, 9, tzinfo=timezone.utc),
    ) == 3


def test_rental_days_rejects_reversed_range():
    with pytest.raises(InvalidAmount):
        costing.rental_days(date(2024, 1, 3), date(2024, 1, 1))


def test_rental_income_adds_transport():
    income = costing.rental_income(date(2024, 1, 1), date(2024, 1, 3), 100, 50)
    assert income == Decimal("350.00")
    assert costing.rental_income("2024-01-01", "2024-01-03", "100") == Decimal("300.00")


def test_rental_income_rejects_negative_rate():
    with pytest.raises(InvalidAmount):
        costing.rental_income(date(2024, 1, 1), date(2024, 1, 3), -1)
