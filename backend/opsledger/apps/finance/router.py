from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from opsledger.database import get_read_db

from . import models, schemas, services

router = APIRouter(
    prefix="/finance",
    tags=["finance"],
)


def _window(period: Optional[str], start: Optional[datetime], end: Optional[datetime]):
    if start or end:
        return start, end
    if period:
        return services.resolve_period(period)
    return None, None


@router.get("/postings", response_model=schemas.PostingPage)
def list_postings(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    category: Optional[str] = None,
    direction: Optional[models.PostingDirectionEnum] = None,
    source_kind: Optional[models.SourceKindEnum] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_read_db),
):
    items, total = services.list_postings(
        db,
        page=page,
        page_size=page_size,
        start=start,
        end=end,
        category=category,
        direction=direction,
        source_kind=source_kind,
    )
    return schemas.PostingPage(
        items=[schemas.PostingEntryRead.model_validate(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/postings/source/{source_kind}/{source_id}",
    response_model=schemas.PostingEntryRead,
)
def get_posting_for_source(
    source_kind: models.SourceKindEnum,
    source_id: str,
    db: Session = Depends(get_read_db),
):
    entry = services.find_by_source(db, source_kind=source_kind, source_id=source_id)
    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No posting for {source_kind.value} source {source_id}.",
        )
    return entry


@router.get("/summary", response_model=schemas.FinanceSummary)
def get_summary(
    period: Optional[str] = Query(None, pattern="^(day|week|month|year)$"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
):
    start, end = _window(period, start, end)
    return services.summary(db, start=start, end=end)


@router.get("/summary/by-category", response_model=List[schemas.CategoryTotal])
def get_summary_by_category(
    period: Optional[str] = Query(None, pattern="^(day|week|month|year)$"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    direction: Optional[models.PostingDirectionEnum] = None,
    db: Session = Depends(get_read_db),
):
    start, end = _window(period, start, end)
    return services.sum_by_category(db, start=start, end=end, direction=direction)


@router.get("/summary/by-period", response_model=List[schemas.PeriodTotal])
def get_summary_by_period(
    bucket: str = Query("month", pattern="^(day|month|year)$"),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
):
    return services.sum_by_period(db, bucket=bucket, start=start, end=end)


@router.get("/categories", response_model=List[str])
def get_categories(
    direction: Optional[models.PostingDirectionEnum] = None,
    db: Session = Depends(get_read_db),
):
    return services.list_categories(db, direction=direction)
