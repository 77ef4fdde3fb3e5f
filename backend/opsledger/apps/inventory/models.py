from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from opsledger.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockMovementKindEnum(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"


class StockStatusEnum(str, enum.Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    OVERSTOCK = "overstock"
    NORMAL = "normal"


class StockItem(Base):
    __tablename__ = "stock_items"
    __table_args__ = (
        UniqueConstraint("code", name="uq_stock_item_code"),
        CheckConstraint("current_balance >= 0", name="ck_stock_item_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    uom = Column(String(16), nullable=False, default="EA")
    minimum_threshold = Column(Integer, nullable=False, default=1)
    maximum_threshold = Column(Integer, nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=True)

    # Cache of the latest movement's resulting_balance, rewritten by every movement.
    current_balance = Column(Integer, nullable=False, default=0)
    # Count of applied movements; the compare-and-swap token for apply_movement.
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by_actor_id = Column(String(64), nullable=True)

    movements = relationship(
        "StockMovement",
        back_populates="item",
        lazy="noload",
        order_by="StockMovement.sequence",
    )

    @property
    def stock_status(self) -> StockStatusEnum:
        balance = self.current_balance or 0
        if balance == 0:
            return StockStatusEnum.OUT_OF_STOCK
        if balance <= (self.minimum_threshold or 0):
            return StockStatusEnum.LOW_STOCK
        if self.maximum_threshold and balance >= self.maximum_threshold:
            return StockStatusEnum.OVERSTOCK
        return StockStatusEnum.NORMAL

    @property
    def has_low_stock(self) -> bool:
        return (self.current_balance or 0) <= (self.minimum_threshold or 0)


class StockMovement(Base):
    """
    Immutable record of one quantity change.

    ``quantity_delta`` is the effective signed change, so
    ``resulting_balance == previous_balance + quantity_delta`` for every kind.
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        UniqueConstraint("item_id", "sequence", name="uq_stock_movement_sequence"),
        Index("ix_stock_movements_item_recorded", "item_id", "recorded_at"),
        CheckConstraint("resulting_balance >= 0", name="ck_stock_movement_resulting_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("stock_items.id", ondelete="RESTRICT"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    kind = Column(
        SAEnum(StockMovementKindEnum, name="stock_movement_kind_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    requested_quantity = Column(Integer, nullable=False)
    quantity_delta = Column(Integer, nullable=False)
    previous_balance = Column(Integer, nullable=False)
    resulting_balance = Column(Integer, nullable=False)

    reason_code = Column(String(64), nullable=True)
    reason = Column(String(200), nullable=False)
    reference_id = Column(String(50), nullable=True)

    actor_id = Column(String(64), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    item = relationship("StockItem", back_populates="movements", lazy="joined")

    @property
    def was_clamped(self) -> bool:
        if self.kind not in (StockMovementKindEnum.OUTBOUND, StockMovementKindEnum.TRANSFER):
            return False
        return -self.quantity_delta != self.requested_quantity
