"""
Pure amount derivation for posting rules.

Every function returns a ``Decimal`` rounded half-up to cents, ``None`` when
the event simply has no price to post, or raises ``InvalidAmount`` when the
input is malformed.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from .errors import InvalidAmount

CENTS = Decimal("0.01")
# Numeric(12, 2) holds at most 9,999,999,999.99.
MAX_AMOUNT = Decimal("10000000000")
ONE_DAY = timedelta(days=1)


def money(value: Decimal) -> Decimal:
    try:
        amount = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmount(f"Amount {value} is too large to post.") from None
    if abs(amount) >= MAX_AMOUNT:
        raise InvalidAmount(f"Amount {amount} exceeds the largest postable amount.")
    return amount


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool) or _is_blank(value):
        raise InvalidAmount(f"{field} is required.")
    if isinstance(value, float):
        value = repr(value)
    try:
        number = Decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{field} must be a number, got {value!r}.") from None
    if not number.is_finite():
        raise InvalidAmount(f"{field} must be a finite number, got {value!r}.")
    return number


def _positive(value, field: str) -> Decimal:
    number = to_decimal(value, field)
    if number <= 0:
        raise InvalidAmount(f"{field} must be greater than zero.")
    return number


def _optional_price(value, field: str) -> Optional[Decimal]:
    if _is_blank(value):
        return None
    number = to_decimal(value, field)
    if number <= 0:
        return None
    return number


def fuel_cost(quantity, unit_price) -> Decimal:
    return money(_positive(quantity, "quantity") * _positive(unit_price, "unit_price"))


def tool_purchase_cost(price) -> Optional[Decimal]:
    number = _optional_price(price, "price")
    return money(number) if number is not None else None


def maintenance_cost(cost) -> Optional[Decimal]:
    number = _optional_price(cost, "cost")
    return money(number) if number is not None else None


def stock_entry_cost(quantity, unit_price) -> Optional[Decimal]:
    price = _optional_price(unit_price, "unit_price")
    if price is None:
        return None
    return money(_positive(quantity, "quantity") * price)


def as_datetime(value: Union[date, datetime], field: str) -> datetime:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError:
            raise InvalidAmount(f"{field} is not a valid date: {value!r}.") from None
    else:
        raise InvalidAmount(f"{field} is required.")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def rental_days(start, end) -> int:
    """Inclusive day count: a rental starting and ending the same day is one day."""
    start_at = as_datetime(start, "start_date")
    end_at = as_datetime(end, "end_date")
    if end_at < start_at:
        raise InvalidAmount("end_date cannot be before start_date.")
    return math.ceil((end_at - start_at) / ONE_DAY) + 1


def rental_income(start, end, daily_rate, transport_cost=None) -> Decimal:
    rate = to_decimal(daily_rate, "daily_rate")
    if rate < 0:
        raise InvalidAmount("daily_rate cannot be negative.")
    transport = Decimal("0")
    if not _is_blank(transport_cost):
        transport = to_decimal(transport_cost, "transport_cost")
        if transport < 0:
            raise InvalidAmount("transport_cost cannot be negative.")
    return money(rental_days(start, end) * rate + transport)
