from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from opsledger.database import Base
from opsledger.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PostingDirectionEnum(str, enum.Enum):
    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"


class SourceKindEnum(str, enum.Enum):
    FUEL = "FUEL"
    TOOL = "TOOL"
    PART = "PART"
    RENTAL = "RENTAL"
    TOOL_MAINTENANCE = "TOOL_MAINTENANCE"


class PaymentMethodEnum(str, enum.Enum):
    CASH = "CASH"
    TRANSFER = "TRANSFER"
    CARD = "CARD"
    CHECK = "CHECK"
    OTHER = "OTHER"


class PostingEntry(Base):
    """
    One financial consequence of one domain event.

    ``(source_kind, source_id)`` is the idempotency key: a source can be
    posted at most once, whoever gets there first.
    """

    __tablename__ = "finance_postings"
    __table_args__ = (
        UniqueConstraint("source_kind", "source_id", name="uq_finance_posting_source"),
        Index("ix_finance_postings_occurred_at", "occurred_at"),
        Index("ix_finance_postings_category_occurred", "category", "occurred_at"),
        CheckConstraint("amount > 0", name="ck_finance_posting_amount_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    direction = Column(
        SAEnum(PostingDirectionEnum, name="posting_direction_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    category = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    source_kind = Column(
        SAEnum(SourceKindEnum, name="posting_source_kind_enum", native_enum=False),
        nullable=False,
    )
    source_id = Column(String(64), nullable=False)

    narrative = Column(String(255), nullable=False)
    payment_method = Column(
        SAEnum(PaymentMethodEnum, name="payment_method_enum", native_enum=False),
        nullable=False,
        default=PaymentMethodEnum.CASH,
    )
    reference = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    actor_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
