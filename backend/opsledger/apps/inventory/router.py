from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from opsledger.actors import get_actor_id
from opsledger.apps.posting import coordinator
from opsledger.apps.posting import schemas as posting_schemas
from opsledger.database import get_read_db, get_write_db

from . import schemas, services

router = APIRouter(
    prefix="/inventory",
    tags=["inventory"],
)


@router.post(
    "/items",
    response_model=posting_schemas.ItemRegistration,
    status_code=status.HTTP_201_CREATED,
)
def register_item(
    payload: schemas.StockItemCreate,
    db: Session = Depends(get_write_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    result = coordinator.register_item_with_posting(db, payload=payload, actor_id=actor_id)
    item, initial = result.primary
    db.refresh(item)
    return posting_schemas.ItemRegistration(
        item=schemas.StockItemRead.model_validate(item),
        initial_movement=schemas.StockMovementRead.model_validate(initial) if initial else None,
        posting=posting_schemas.PostingOutcomeRead.from_outcome(result.posting),
    )


@router.get("/items", response_model=List[schemas.StockItemRead])
def list_items(
    low_stock_only: bool = False,
    db: Session = Depends(get_read_db),
):
    return services.list_items(db, low_stock_only=low_stock_only)


@router.get("/items/{item_id}", response_model=schemas.StockItemRead)
def get_item(
    item_id: int,
    db: Session = Depends(get_read_db),
):
    return services.get_item(db, item_id=item_id)


@router.post(
    "/items/{item_id}/movements",
    response_model=posting_schemas.MovementWithPosting,
    status_code=status.HTTP_201_CREATED,
)
def create_movement(
    item_id: int,
    payload: schemas.StockMovementCreate,
    db: Session = Depends(get_write_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    result = coordinator.record_movement(
        db,
        item_id=item_id,
        kind=payload.kind,
        quantity=payload.quantity,
        reason=payload.reason,
        reference_id=payload.reference_id,
        reason_code=payload.reason_code,
        occurred_at=payload.occurred_at,
        actor_id=actor_id,
        payment_method=payload.payment_method,
    )
    return posting_schemas.MovementWithPosting(
        movement=schemas.StockMovementRead.model_validate(result.primary),
        posting=posting_schemas.PostingOutcomeRead.from_outcome(result.posting),
    )


@router.get("/items/{item_id}/movements", response_model=List[schemas.StockMovementRead])
def list_movements(
    item_id: int,
    since: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
):
    return services.history(db, item_id=item_id, since=since)


@router.get("/items/{item_id}/balance", response_model=schemas.StockBalanceRead)
def get_balance(
    item_id: int,
    as_of: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
):
    if as_of is not None:
        balance = services.balance_at(db, item_id=item_id, at=as_of)
    else:
        balance = services.current_balance(db, item_id=item_id)
    return schemas.StockBalanceRead(item_id=item_id, current_balance=balance, as_of=as_of)


@router.get("/items/{item_id}/verify", response_model=schemas.StockVerificationRead)
def verify_item(
    item_id: int,
    db: Session = Depends(get_read_db),
):
    return services.verify_item(db, item_id=item_id)


@router.get("/stats", response_model=schemas.InventoryStats)
def get_stats(db: Session = Depends(get_read_db)):
    return services.inventory_stats(db)
