from __future__ import annotations

import importlib
import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException

from opsledger.apps.finance import errors, models, schemas, services

finance_router = importlib.import_module("opsledger.apps.finance.router")

INFLOW = models.PostingDirectionEnum.INFLOW
OUTFLOW = models.PostingDirectionEnum.OUTFLOW


def _entry(
    source_id: str,
    *,
    amount: str = "10.00",
    direction=OUTFLOW,
    category: str = "Fuel",
    occurred_at: datetime = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc),
    source_kind=models.SourceKindEnum.FUEL,
) -> schemas.PostingEntryCreate:
    return schemas.PostingEntryCreate(
        direction=direction,
        category=category,
        amount=Decimal(amount),
        occurred_at=occurred_at,
        source_kind=source_kind,
        source_id=source_id,
        narrative=f"{category} {source_id}",
    )


def _append(db, data: schemas.PostingEntryCreate) -> models.PostingEntry:
    entry = services.append(db, data=data, actor_id="accountant")
    db.commit()
    return entry


def _seed(db):
    _append(db, _entry("f-1", amount="45.00", occurred_at=datetime(2024, 1, 10, tzinfo=timezone.utc)))
    _append(db, _entry("f-2", amount="5.50", occurred_at=datetime(2024, 2, 1, tzinfo=timezone.utc)))
    _append(
        db,
        _entry(
            "r-1",
            amount="350.00",
            direction=INFLOW,
            category="Rentals",
            source_kind=models.SourceKindEnum.RENTAL,
            occurred_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ),
    )
    _append(
        db,
        _entry(
            "t-1",
            amount="120.00",
            category="Tools Purchase",
            source_kind=models.SourceKindEnum.TOOL,
            occurred_at=datetime(2024, 2, 20, tzinfo=timezone.utc),
        ),
    )


def test_append_and_find_by_source(db_session):
    entry = _append(db_session, _entry("fuel-1", amount="45.004"))

    found = services.find_by_source(
        db_session, source_kind=models.SourceKindEnum.FUEL, source_id="fuel-1"
    )
    assert found.id == entry.id
    assert found.amount == Decimal("45.00")
    assert found.actor_id == "accountant"
    assert services.find_by_source(
        db_session, source_kind=models.SourceKindEnum.TOOL, source_id="fuel-1"
    ) is None


def test_duplicate_source_raises_with_existing_entry(db_session):
    original = _append(db_session, _entry("fuel-1"))

    with pytest.raises(errors.DuplicatePosting) as exc_info:
        services.append(db_session, data=_entry("fuel-1", amount="99.00"), actor_id=None)

    assert exc_info.value.status_code == 409
    assert exc_info.value.existing.id == original.id
    assert db_session.query(models.PostingEntry).count() == 1


def test_amount_must_be_positive():
    with pytest.raises(ValueError):
        _entry("fuel-0", amount="0")


def test_query_postings_orders_newest_first_and_filters(db_session):
    _seed(db_session)

    ids = [entry.source_id for entry in services.query_postings(db_session)]
    assert ids == ["t-1", "f-2", "f-1", "r-1"]

    february = services.query_postings(
        db_session,
        start=datetime(2024, 2, 1, tzinfo=timezone.utc),
        end=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )
    assert [entry.source_id for entry in february] == ["t-1", "f-2"]

    fuel = services.query_postings(db_session, category="Fuel")
    assert [entry.source_id for entry in fuel] == ["f-2", "f-1"]
    # Restartable: the same query can be iterated again.
    assert [entry.source_id for entry in fuel] == ["f-2", "f-1"]

    inflows = services.query_postings(db_session, direction=INFLOW).all()
    assert [entry.source_id for entry in inflows] == ["r-1"]


def test_sum_by_category(db_session):
    _seed(db_session)

    totals = {
        (row.direction, row.category): (row.total, row.count)
        for row in services.sum_by_category(db_session)
    }
    assert totals == {
        (INFLOW, "Rentals"): (Decimal("350.00"), 1),
        (OUTFLOW, "Tools Purchase"): (Decimal("120.00"), 1),
        (OUTFLOW, "Fuel"): (Decimal("50.50"), 2),
    }


def test_sum_by_period_month_buckets(db_session):
    _seed(db_session)

    rows = services.sum_by_period(db_session, bucket="month")

    assert [(row.period, row.inflow, row.outflow, row.net) for row in rows] == [
        ("2024-01", Decimal("350.00"), Decimal("45.00"), Decimal("305.00")),
        ("2024-02", Decimal("0"), Decimal("125.50"), Decimal("-125.50")),
    ]


def test_sum_by_period_rejects_unknown_bucket(db_session):
    with pytest.raises(ValueError):
        services.sum_by_period(db_session, bucket="fortnight")


def test_summary_totals(db_session):
    _seed(db_session)

    result = services.summary(db_session)

    assert result.total_inflow == Decimal("350.00")
    assert result.total_outflow == Decimal("170.50")
    assert result.net == Decimal("179.50")
    assert result.entry_count == 4
    assert result.by_category["Fuel"] == Decimal("50.50")


def test_resolve_period_presets():
    now = datetime(2024, 12, 18, 15, 30, tzinfo=timezone.utc)  # a Wednesday

    assert services.resolve_period("day", now) == (
        datetime(2024, 12, 18, tzinfo=timezone.utc),
        datetime(2024, 12, 19, tzinfo=timezone.utc),
    )
    assert services.resolve_period("week", now) == (
        datetime(2024, 12, 15, tzinfo=timezone.utc),
        datetime(2024, 12, 22, tzinfo=timezone.utc),
    )
    assert services.resolve_period("month", now) == (
        datetime(2024, 12, 1, tzinfo=timezone.utc),
        datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    assert services.resolve_period("year", now) == (
        datetime(2024, 1, 1, tzinfo=timezone.utc),
        datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    assert services.resolve_period(None, now) == services.resolve_period("month", now)


def test_list_categories(db_session):
    _seed(db_session)
    assert services.list_categories(db_session) == ["Fuel", "Rentals", "Tools Purchase"]
    assert services.list_categories(db_session, direction=INFLOW) == ["Rentals"]


def test_router_list_and_source_lookup(db_session):
    _seed(db_session)

    page = finance_router.list_postings(
        start=None,
        end=None,
        category=None,
        direction=None,
        source_kind=None,
        page=1,
        page_size=2,
        db=db_session,
    )
    assert page.total == 4
    assert [item.source_id for item in page.items] == ["t-1", "f-2"]

    found = finance_router.get_posting_for_source(
        source_kind=models.SourceKindEnum.RENTAL, source_id="r-1", db=db_session
    )
    assert found.amount == Decimal("350.00")

    with pytest.raises(HTTPException) as exc_info:
        finance_router.get_posting_for_source(
            source_kind=models.SourceKindEnum.RENTAL, source_id="missing", db=db_session
        )
    assert exc_info.value.status_code == 404


def test_concurrent_appends_for_one_source_store_one_entry(file_session_factory):
    workers = 4
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def worker():
        session = file_session_factory()
        try:
            barrier.wait()
            try:
                entry = services.append(session, data=_entry("fuel-race"), actor_id=None)
                session.commit()
                result = ("posted", entry.id)
            except errors.DuplicatePosting as exc:
                session.rollback()
                result = ("duplicate", exc.existing.id)
            with lock:
                outcomes.append(result)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    check = file_session_factory()
    try:
        stored = check.query(models.PostingEntry).all()
    finally:
        check.close()

    assert len(stored) == 1
    assert len(outcomes) == workers
    assert [kind for kind, _ in outcomes].count("posted") == 1
    assert {entry_id for _, entry_id in outcomes} == {stored[0].id}
