from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from opsledger.apps.audit import services as audit_services

from . import errors, models, schemas

logger = logging.getLogger(__name__)

PERIOD_PRESETS = ("day", "week", "month", "year")
BUCKETS = {"day": "%Y-%m-%d", "month": "%Y-%m", "year": "%Y"}


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def find_by_source(
    db: Session,
    *,
    source_kind: models.SourceKindEnum,
    source_id: str,
) -> Optional[models.PostingEntry]:
    return (
        db.query(models.PostingEntry)
        .filter(
            models.PostingEntry.source_kind == models.SourceKindEnum(source_kind),
            models.PostingEntry.source_id == str(source_id),
        )
        .first()
    )


def append(
    db: Session,
    *,
    data: schemas.PostingEntryCreate,
    actor_id: Optional[str] = None,
) -> models.PostingEntry:
    """
    Insert one posting, at most once per ``(source_kind, source_id)``.

    Raises ``DuplicatePosting`` carrying the stored entry when the source was
    already posted, including when a concurrent insert wins the unique
    constraint between our lookup and our flush. That path rolls the session
    back, so callers must not have other pending work in it.
    """
    existing = find_by_source(db, source_kind=data.source_kind, source_id=data.source_id)
    if existing:
        raise errors.DuplicatePosting(existing)

    entry = models.PostingEntry(
        direction=data.direction,
        category=data.category,
        amount=_money(data.amount),
        occurred_at=data.occurred_at,
        source_kind=data.source_kind,
        source_id=data.source_id,
        narrative=data.narrative,
        payment_method=data.payment_method,
        reference=data.reference,
        notes=data.notes,
        actor_id=actor_id,
    )
    db.add(entry)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        existing = find_by_source(db, source_kind=data.source_kind, source_id=data.source_id)
        if existing is None:
            raise
        logger.info(
            "Concurrent posting for source already stored",
            extra={"source_kind": data.source_kind.value, "source_id": data.source_id},
        )
        raise errors.DuplicatePosting(existing) from None

    audit_services.log_event(
        db,
        actor_id=actor_id,
        entity_type="PostingEntry",
        entity_id=entry.id,
        action="post",
        after={
            "direction": entry.direction.value,
            "category": entry.category,
            "amount": str(entry.amount),
        },
        metadata={"source_kind": entry.source_kind.value, "source_id": entry.source_id},
        critical=True,
    )
    return entry


def query_postings(
    db: Session,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    category: Optional[str] = None,
    direction: Optional[models.PostingDirectionEnum] = None,
    source_kind: Optional[models.SourceKindEnum] = None,
) -> Query:
    """Lazy query over postings, newest first. ``end`` is exclusive."""
    query = db.query(models.PostingEntry)
    if start is not None:
        query = query.filter(models.PostingEntry.occurred_at >= start)
    if end is not None:
        query = query.filter(models.PostingEntry.occurred_at < end)
    if category:
        query = query.filter(models.PostingEntry.category == category)
    if direction is not None:
        query = query.filter(models.PostingEntry.direction == models.PostingDirectionEnum(direction))
    if source_kind is not None:
        query = query.filter(models.PostingEntry.source_kind == models.SourceKindEnum(source_kind))
    return query.order_by(models.PostingEntry.occurred_at.desc(), models.PostingEntry.id.desc())


def list_postings(
    db: Session,
    *,
    page: int = 1,
    page_size: int = 50,
    **filters,
) -> Tuple[List[models.PostingEntry], int]:
    query = query_postings(db, **filters)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, total


def sum_by_category(
    db: Session,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    direction: Optional[models.PostingDirectionEnum] = None,
) -> List[schemas.CategoryTotal]:
    filtered = query_postings(db, start=start, end=end, direction=direction).order_by(None)
    rows = (
        filtered.with_entities(
            models.PostingEntry.category,
            models.PostingEntry.direction,
            func.sum(models.PostingEntry.amount),
            func.count(models.PostingEntry.id),
        )
        .group_by(models.PostingEntry.category, models.PostingEntry.direction)
        .all()
    )
    totals = [
        schemas.CategoryTotal(category=category, direction=row_direction, total=_money(total), count=count)
        for category, row_direction, total, count in rows
    ]
    totals.sort(key=lambda row: (row.direction.value, -row.total, row.category))
    return totals


def sum_by_period(
    db: Session,
    *,
    bucket: str = "month",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[schemas.PeriodTotal]:
    if bucket not in BUCKETS:
        raise ValueError(f"Unsupported bucket {bucket!r}; expected one of {sorted(BUCKETS)}")
    fmt = BUCKETS[bucket]

    buckets: Dict[str, Dict[str, Decimal]] = {}
    rows = query_postings(db, start=start, end=end).with_entities(
        models.PostingEntry.occurred_at,
        models.PostingEntry.direction,
        models.PostingEntry.amount,
    )
    for occurred_at, direction, amount in rows:
        key = occurred_at.strftime(fmt)
        totals = buckets.setdefault(key, {"inflow": Decimal("0"), "outflow": Decimal("0")})
        if direction == models.PostingDirectionEnum.INFLOW:
            totals["inflow"] += _money(amount)
        else:
            totals["outflow"] += _money(amount)

    return [
        schemas.PeriodTotal(
            period=key,
            inflow=totals["inflow"],
            outflow=totals["outflow"],
            net=totals["inflow"] - totals["outflow"],
        )
        for key, totals in sorted(buckets.items())
    ]


def summary(
    db: Session,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> schemas.FinanceSummary:
    inflow = Decimal("0")
    outflow = Decimal("0")
    count = 0
    by_category: Dict[str, Decimal] = OrderedDict()
    for row in sum_by_category(db, start=start, end=end):
        if row.direction == models.PostingDirectionEnum.INFLOW:
            inflow += row.total
        else:
            outflow += row.total
        by_category[row.category] = by_category.get(row.category, Decimal("0")) + row.total
        count += row.count
    return schemas.FinanceSummary(
        start=start,
        end=end,
        total_inflow=inflow,
        total_outflow=outflow,
        net=inflow - outflow,
        entry_count=count,
        by_category=by_category,
    )


def resolve_period(period: Optional[str], now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Turn a preset into a ``[start, end)`` window around ``now`` (UTC).

    Weeks start on Sunday. Unknown or missing presets fall back to ``month``.
    """
    now = now or datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "day":
        return today, today + timedelta(days=1)
    if period == "week":
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=7)
    if period == "year":
        start = today.replace(month=1, day=1)
        return start, start.replace(year=start.year + 1)
    start = today.replace(day=1)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)


def list_categories(
    db: Session,
    *,
    direction: Optional[models.PostingDirectionEnum] = None,
) -> List[str]:
    query = db.query(models.PostingEntry.category).distinct()
    if direction is not None:
        query = query.filter(models.PostingEntry.direction == models.PostingDirectionEnum(direction))
    return sorted(category for (category,) in query.all())
