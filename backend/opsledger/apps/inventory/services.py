from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from opsledger.apps.audit import services as audit_services

from . import errors, models, schemas

logger = logging.getLogger(__name__)

MAX_MOVEMENT_RETRIES = int(os.getenv("STOCK_LEDGER_MAX_RETRIES", "5"))
INITIAL_STOCK_REASON = "Initial stock"
INITIAL_STOCK_REASON_CODE = "INITIAL_STOCK"
# Quantities and balances are stored in 32-bit Integer columns.
MAX_QUANTITY = 2_147_483_647

_DECREASING_KINDS = {
    models.StockMovementKindEnum.OUTBOUND,
    models.StockMovementKindEnum.TRANSFER,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _load_item(db: Session, *, item_id: int) -> models.StockItem:
    # populate_existing: the balance must come from the database, never the identity map.
    item = (
        db.query(models.StockItem)
        .populate_existing()
        .filter(models.StockItem.id == item_id)
        .first()
    )
    if not item:
        raise errors.UnknownItem(f"Stock item {item_id} not found.")
    return item


def get_item(db: Session, *, item_id: int) -> models.StockItem:
    return _load_item(db, item_id=item_id)


def get_item_by_code(db: Session, *, code: str) -> Optional[models.StockItem]:
    return (
        db.query(models.StockItem)
        .filter(models.StockItem.code == _normalize_code(code))
        .first()
    )


def list_items(db: Session, *, low_stock_only: bool = False) -> List[models.StockItem]:
    query = db.query(models.StockItem)
    if low_stock_only:
        query = query.filter(models.StockItem.current_balance <= models.StockItem.minimum_threshold)
    return query.order_by(models.StockItem.code.asc()).all()


def _coerce_quantity(quantity: object) -> int:
    if isinstance(quantity, bool) or quantity is None:
        raise errors.InvalidQuantity("Quantity must be an integer.")
    if isinstance(quantity, int):
        return quantity
    if isinstance(quantity, str):
        try:
            quantity = Decimal(quantity.strip())
        except InvalidOperation:
            raise errors.InvalidQuantity(f"Quantity {quantity!r} is not a number.") from None
    if isinstance(quantity, (float, Decimal)):
        try:
            as_decimal = Decimal(str(quantity))
        except InvalidOperation:
            raise errors.InvalidQuantity(f"Quantity {quantity!r} is not a number.") from None
        if not as_decimal.is_finite() or as_decimal != as_decimal.to_integral_value():
            raise errors.InvalidQuantity(f"Quantity {quantity!r} must be a whole number.")
        return int(as_decimal)
    raise errors.InvalidQuantity(f"Quantity {quantity!r} is not a number.")


def validate_quantity(kind: models.StockMovementKindEnum, quantity: object) -> int:
    """
    Normalize the requested quantity for a movement kind.

    ADJUSTMENT takes an absolute target balance (zero allowed); every other
    kind takes a strictly positive amount.
    """
    value = _coerce_quantity(quantity)
    if value > MAX_QUANTITY:
        raise errors.InvalidQuantity(f"Quantity cannot exceed {MAX_QUANTITY}.")
    if kind == models.StockMovementKindEnum.ADJUSTMENT:
        if value < 0:
            raise errors.NegativeResultingBalance(
                f"Adjustment target {value} would leave a negative balance."
            )
        return value
    if value <= 0:
        raise errors.InvalidQuantity("Quantity must be a positive integer.")
    return value


def next_balance(
    kind: models.StockMovementKindEnum,
    previous_balance: int,
    quantity: int,
) -> Tuple[int, int]:
    """Return ``(effective_delta, resulting_balance)`` for a validated quantity."""
    if kind == models.StockMovementKindEnum.INBOUND:
        resulting = previous_balance + quantity
    elif kind in _DECREASING_KINDS:
        # Insufficient stock clamps at zero instead of failing.
        resulting = max(0, previous_balance - quantity)
    elif kind == models.StockMovementKindEnum.ADJUSTMENT:
        resulting = quantity
    else:
        raise errors.StockLedgerError(f"Unsupported movement kind {kind!r}.")
    if resulting > MAX_QUANTITY:
        raise errors.InvalidQuantity(
            f"Resulting balance {resulting} would exceed the largest storable balance."
        )
    return resulting - previous_balance, resulting


def _validate_text(reason: Optional[str], reference_id: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise errors.StockLedgerError("reason is required for stock movements.")
    if len(reason) > 200:
        raise errors.StockLedgerError("reason cannot be more than 200 characters.")
    if reference_id and len(reference_id) > 50:
        raise errors.StockLedgerError("reference_id cannot be more than 50 characters.")
    return reason


def apply_movement(
    db: Session,
    *,
    item_id: int,
    kind: models.StockMovementKindEnum,
    quantity: object,
    reason: str,
    reference_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    reason_code: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> models.StockMovement:
    kind = models.StockMovementKindEnum(kind)
    requested = validate_quantity(kind, quantity)
    reason = _validate_text(reason, reference_id)

    for attempt in range(1, MAX_MOVEMENT_RETRIES + 1):
        item = _load_item(db, item_id=item_id)
        previous = item.current_balance or 0
        seen_version = item.version or 0
        delta, resulting = next_balance(kind, previous, requested)

        swapped = db.execute(
            update(models.StockItem)
            .where(
                models.StockItem.id == item_id,
                models.StockItem.version == seen_version,
            )
            .values(current_balance=resulting, version=seen_version + 1)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount == 1:
            break
        logger.warning(
            "Stock item changed during movement; retrying",
            extra={"item_id": item_id, "attempt": attempt, "seen_version": seen_version},
        )
    else:
        raise errors.ConcurrentMovementConflict(
            f"Stock item {item_id} is being modified concurrently; try again."
        )

    set_committed_value(item, "current_balance", resulting)
    set_committed_value(item, "version", seen_version + 1)

    now = _utcnow()
    movement = models.StockMovement(
        item_id=item_id,
        sequence=seen_version + 1,
        kind=kind,
        requested_quantity=requested,
        quantity_delta=delta,
        previous_balance=previous,
        resulting_balance=resulting,
        reason_code=reason_code,
        reason=reason,
        reference_id=reference_id,
        actor_id=actor_id,
        occurred_at=occurred_at or now,
        recorded_at=now,
    )
    db.add(movement)
    db.flush()

    audit_services.log_event(
        db,
        actor_id=actor_id,
        entity_type="StockMovement",
        entity_id=str(movement.id),
        action=kind.value.lower(),
        before={"balance": previous},
        after={
            "balance": resulting,
            "quantity_delta": delta,
            "requested_quantity": requested,
            "sequence": movement.sequence,
        },
        metadata={"item_id": item_id, "item_code": item.code},
        critical=True,
    )
    if kind in _DECREASING_KINDS and -delta != requested:
        logger.info(
            "Outbound movement clamped at zero",
            extra={"item_id": item_id, "requested": requested, "effective_delta": delta},
        )
    return movement


def register_item(
    db: Session,
    *,
    payload: schemas.StockItemCreate,
    actor_id: Optional[str],
) -> Tuple[models.StockItem, Optional[models.StockMovement]]:
    """
    Create a stock item; a positive ``initial_stock`` becomes its first INBOUND movement.
    """
    code = _normalize_code(payload.code)
    if get_item_by_code(db, code=code):
        raise errors.DuplicateItem(f"Stock item code {code} already exists.")
    if (
        payload.maximum_threshold is not None
        and payload.maximum_threshold < payload.minimum_threshold
    ):
        raise errors.StockLedgerError("maximum_threshold cannot be below minimum_threshold.")

    item = models.StockItem(
        code=code,
        name=payload.name.strip(),
        description=payload.description,
        uom=payload.uom,
        minimum_threshold=payload.minimum_threshold,
        maximum_threshold=payload.maximum_threshold,
        unit_price=payload.unit_price,
        current_balance=0,
        version=0,
        created_by_actor_id=actor_id,
    )
    db.add(item)
    try:
        db.flush()
    except IntegrityError:
        # Another registration claimed the code between the lookup and the insert.
        db.rollback()
        if get_item_by_code(db, code=code) is None:
            raise
        raise errors.DuplicateItem(f"Stock item code {code} already exists.") from None
    audit_services.log_event(
        db,
        actor_id=actor_id,
        entity_type="StockItem",
        entity_id=str(item.id),
        action="register",
        after={"code": item.code, "name": item.name},
    )

    initial = None
    if payload.initial_stock > 0:
        initial = apply_movement(
            db,
            item_id=item.id,
            kind=models.StockMovementKindEnum.INBOUND,
            quantity=payload.initial_stock,
            reason=INITIAL_STOCK_REASON,
            reason_code=INITIAL_STOCK_REASON_CODE,
            actor_id=actor_id,
        )
    return item, initial


def _movement_query(db: Session, *, item_id: int):
    return db.query(models.StockMovement).filter(models.StockMovement.item_id == item_id)


def current_balance(db: Session, *, item_id: int) -> int:
    _load_item(db, item_id=item_id)
    last = (
        _movement_query(db, item_id=item_id)
        .order_by(models.StockMovement.sequence.desc())
        .first()
    )
    return last.resulting_balance if last else 0


def history(
    db: Session,
    *,
    item_id: int,
    since: Optional[datetime] = None,
) -> List[models.StockMovement]:
    _load_item(db, item_id=item_id)
    query = _movement_query(db, item_id=item_id)
    if since is not None:
        query = query.filter(models.StockMovement.recorded_at >= since)
    return query.order_by(models.StockMovement.sequence.asc()).all()


def balance_at(db: Session, *, item_id: int, at: datetime) -> int:
    _load_item(db, item_id=item_id)
    last = (
        _movement_query(db, item_id=item_id)
        .filter(models.StockMovement.recorded_at <= at)
        .order_by(models.StockMovement.sequence.desc())
        .first()
    )
    return last.resulting_balance if last else 0


def fold_movements(movements: Iterable[models.StockMovement]) -> int:
    balance = 0
    for movement in movements:
        balance += movement.quantity_delta
    return balance


def replay_balance(db: Session, *, item_id: int) -> int:
    return fold_movements(history(db, item_id=item_id))


def verify_item(db: Session, *, item_id: int) -> schemas.StockVerificationRead:
    item = _load_item(db, item_id=item_id)
    movements = history(db, item_id=item_id)

    problems: List[str] = []
    balance = 0
    expected_sequence = 1
    for movement in movements:
        label = f"movement #{movement.sequence}"
        if movement.sequence != expected_sequence:
            problems.append(f"{label}: expected sequence {expected_sequence}")
        if movement.previous_balance != balance:
            problems.append(
                f"{label}: previous_balance {movement.previous_balance} != prior resulting {balance}"
            )
        if movement.resulting_balance != movement.previous_balance + movement.quantity_delta:
            problems.append(f"{label}: resulting_balance does not equal previous + delta")
        if movement.resulting_balance < 0:
            problems.append(f"{label}: negative resulting_balance")
        balance = movement.resulting_balance
        expected_sequence = movement.sequence + 1

    replayed = fold_movements(movements)
    if replayed != balance:
        problems.append(f"delta fold {replayed} != last resulting_balance {balance}")
    if item.current_balance != balance:
        problems.append(f"cached balance {item.current_balance} != ledger balance {balance}")

    if problems:
        logger.warning(
            "Stock ledger inconsistency detected",
            extra={"item_id": item_id, "problems": problems},
        )
    return schemas.StockVerificationRead(
        item_id=item_id,
        replayed_balance=replayed,
        current_balance=item.current_balance,
        movement_count=len(movements),
        problems=problems,
    )


def inventory_stats(db: Session) -> schemas.InventoryStats:
    items = db.query(models.StockItem).all()
    total_value = Decimal("0")
    total_units = 0
    low_stock = 0
    out_of_stock = 0
    for item in items:
        balance = item.current_balance or 0
        total_units += balance
        if item.unit_price:
            total_value += Decimal(balance) * Decimal(item.unit_price)
        if balance == 0:
            out_of_stock += 1
        if item.has_low_stock:
            low_stock += 1
    return schemas.InventoryStats(
        total_items=len(items),
        low_stock_items=low_stock,
        out_of_stock_items=out_of_stock,
        total_units=total_units,
        total_value=total_value.quantize(Decimal("0.01")),
    )
