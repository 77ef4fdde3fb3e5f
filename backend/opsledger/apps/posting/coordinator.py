"""
Two-step coordination between the stock ledger and the finance ledger.

Step 1 commits the primary write on its own. Step 2 derives and appends the
posting in a fresh transaction; whatever goes wrong there is rolled back,
logged and reported as a FAILED outcome. The primary write is never undone
because of step 2, and a missed posting can be re-driven later with
``replay`` or ``reconcile`` since postings are idempotent per source.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy.orm import Session

from opsledger.apps.finance import services as finance_services
from opsledger.apps.inventory import models as inventory_models
from opsledger.apps.inventory import schemas as inventory_schemas
from opsledger.apps.inventory import services as inventory_services
from opsledger.utils.identifiers import movement_reference

from . import events, rules
from .errors import CoordinatorTimeout
from .outcomes import CoordinatedResult, PostingOutcome

logger = logging.getLogger(__name__)

_raw_timeout = os.getenv("POSTING_TIMEOUT_SEC")
DEFAULT_TIMEOUT_SEC: Optional[float] = float(_raw_timeout) if _raw_timeout else None

TIMEOUT_REASON = "Timeout"
NO_FINANCIAL_EVENT = "NO_FINANCIAL_EVENT"


def _deadline(timeout: Optional[float]) -> Optional[float]:
    if timeout is None:
        timeout = DEFAULT_TIMEOUT_SEC
    if timeout is None:
        return None
    return time.monotonic() + timeout


def _expired(deadline: Optional[float]) -> bool:
    return deadline is not None and time.monotonic() >= deadline


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, HTTPException):
        return str(exc.detail)
    return str(exc) or type(exc).__name__


def _source_of(event) -> dict:
    if event is None:
        return {}
    return {"source_kind": type(event).SOURCE_KIND.value, "source_id": event.source_id}


def _post_step(
    db: Session,
    build_event: Callable[[], Optional[events.DomainEvent]],
    *,
    actor_id: Optional[str],
    deadline: Optional[float],
) -> PostingOutcome:
    if _expired(deadline):
        logger.warning("Posting deadline passed before posting started")
        return PostingOutcome.failed(TIMEOUT_REASON)

    event = None
    try:
        event = build_event()
        if event is None:
            return PostingOutcome.skipped(NO_FINANCIAL_EVENT)
        result = rules.post(db, event, actor_id=actor_id)
        if _expired(deadline):
            db.rollback()
            logger.warning("Posting deadline passed; posting discarded", extra=_source_of(event))
            return PostingOutcome.failed(TIMEOUT_REASON)
        db.commit()
    except Exception as exc:
        db.rollback()
        reason = _failure_reason(exc)
        logger.warning(
            "Financial posting failed; primary operation kept",
            extra={**_source_of(event), "reason": reason, "error_type": type(exc).__name__},
        )
        return PostingOutcome.failed(reason)
    return PostingOutcome.from_result(result)


def run(
    db: Session,
    primary: Callable[[Session], Any],
    build_event: Callable[[Any], Optional[events.DomainEvent]],
    *,
    actor_id: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CoordinatedResult:
    """
    Commit ``primary(db)``, then post ``build_event(primary_result)``.

    Errors from the primary propagate after a rollback. Errors from the
    posting step never do; they come back as ``PostingOutcome.failed``.
    """
    deadline = _deadline(timeout)
    if _expired(deadline):
        raise CoordinatorTimeout()

    try:
        primary_result = primary(db)
        db.commit()
    except Exception:
        db.rollback()
        raise

    outcome = _post_step(
        db,
        lambda: build_event(primary_result),
        actor_id=actor_id,
        deadline=deadline,
    )
    return CoordinatedResult(primary=primary_result, posting=outcome)


def mirror(
    db: Session,
    primary_result: Any,
    event: Optional[events.DomainEvent],
    *,
    actor_id: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CoordinatedResult:
    """Step 2 only, for primaries another module has already committed."""
    outcome = _post_step(db, lambda: event, actor_id=actor_id, deadline=_deadline(timeout))
    return CoordinatedResult(primary=primary_result, posting=outcome)


def replay(
    db: Session,
    event: events.DomainEvent,
    *,
    actor_id: Optional[str] = None,
    timeout: Optional[float] = None,
) -> PostingOutcome:
    return _post_step(db, lambda: event, actor_id=actor_id, deadline=_deadline(timeout))


def reconcile(
    db: Session,
    pending: Iterable[events.DomainEvent],
    *,
    actor_id: Optional[str] = None,
) -> List[Tuple[events.DomainEvent, PostingOutcome]]:
    """Post every event whose source has no entry yet; already-posted sources are left alone."""
    results = []
    for event in pending:
        existing = finance_services.find_by_source(
            db, source_kind=type(event).SOURCE_KIND, source_id=str(event.source_id)
        )
        if existing is not None:
            continue
        results.append((event, replay(db, event, actor_id=actor_id)))
    return results


def stock_entered_event(
    item: inventory_models.StockItem,
    movement: inventory_models.StockMovement,
    *,
    initial: bool = False,
    payment_method: Optional[str] = None,
) -> events.StockEntered:
    return events.StockEntered(
        source_id=movement_reference(item.id, movement.sequence),
        item_code=item.code,
        item_name=item.name,
        quantity=movement.requested_quantity,
        unit_price=item.unit_price,
        reason=movement.reason,
        occurred_at=movement.occurred_at,
        reference=movement.reference_id,
        initial=initial,
        payment_method=payment_method,
    )


def record_movement(
    db: Session,
    *,
    item_id: int,
    kind: inventory_models.StockMovementKindEnum,
    quantity: object,
    reason: str,
    reference_id: Optional[str] = None,
    reason_code: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
    actor_id: Optional[str] = None,
    payment_method: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CoordinatedResult:
    """Apply any movement; INBOUND movements of priced items also post a parts purchase."""
    kind = inventory_models.StockMovementKindEnum(kind)

    def primary(session: Session) -> inventory_models.StockMovement:
        return inventory_services.apply_movement(
            session,
            item_id=item_id,
            kind=kind,
            quantity=quantity,
            reason=reason,
            reference_id=reference_id,
            actor_id=actor_id,
            reason_code=reason_code,
            occurred_at=occurred_at,
        )

    def build_event(movement: inventory_models.StockMovement):
        if kind != inventory_models.StockMovementKindEnum.INBOUND:
            return None
        item = inventory_services.get_item(db, item_id=item_id)
        return stock_entered_event(item, movement, payment_method=payment_method)

    return run(db, primary, build_event, actor_id=actor_id, timeout=timeout)


def receive_stock(db: Session, *, item_id: int, quantity: object, reason: str, **kwargs) -> CoordinatedResult:
    return record_movement(
        db,
        item_id=item_id,
        kind=inventory_models.StockMovementKindEnum.INBOUND,
        quantity=quantity,
        reason=reason,
        **kwargs,
    )


def register_item_with_posting(
    db: Session,
    *,
    payload: inventory_schemas.StockItemCreate,
    actor_id: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CoordinatedResult:
    """Register an item; its initial stock, when priced, posts as an initial parts purchase."""

    def primary(session: Session):
        return inventory_services.register_item(session, payload=payload, actor_id=actor_id)

    def build_event(registered):
        item, initial = registered
        if initial is None:
            return None
        return stock_entered_event(
            item, initial, initial=True, payment_method=payload.payment_method
        )

    return run(db, primary, build_event, actor_id=actor_id, timeout=timeout)
