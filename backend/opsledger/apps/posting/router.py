from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from opsledger.actors import get_actor_id
from opsledger.database import get_write_db

from . import coordinator, schemas

router = APIRouter(
    prefix="/postings",
    tags=["postings"],
)


@router.post("/events", response_model=schemas.PostingOutcomeRead)
def submit_event(
    payload: schemas.PostingEventSubmit,
    db: Session = Depends(get_write_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """
    Post the financial consequence of an event another module already committed.

    Posting failures come back in the body; the request itself still succeeds.
    """
    outcome = coordinator.replay(db, payload.event.to_event(), actor_id=actor_id)
    return schemas.PostingOutcomeRead.from_outcome(outcome)


@router.post("/reconcile", response_model=List[schemas.ReconcileResult])
def reconcile_events(
    payload: schemas.ReconcileRequest,
    db: Session = Depends(get_write_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    results = coordinator.reconcile(
        db, [item.to_event() for item in payload.events], actor_id=actor_id
    )
    return [
        schemas.ReconcileResult(
            source_kind=type(event).SOURCE_KIND.value,
            source_id=event.source_id,
            outcome=schemas.PostingOutcomeRead.from_outcome(outcome),
        )
        for event, outcome in results
    ]
