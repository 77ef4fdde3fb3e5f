"""Create stock ledger, finance posting and audit tables.

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "a1c3e5f7b9d2"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    insp = inspect(bind)
    return bool(insp.has_table(table_name))


def upgrade() -> None:
    if not _table_exists("stock_items"):
        op.create_table(
            "stock_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("code", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("uom", sa.String(length=16), nullable=False, server_default="EA"),
            sa.Column("minimum_threshold", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("maximum_threshold", sa.Integer(), nullable=True),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=True),
            sa.Column("current_balance", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by_actor_id", sa.String(length=64), nullable=True),
            sa.UniqueConstraint("code", name="uq_stock_item_code"),
            sa.CheckConstraint("current_balance >= 0", name="ck_stock_item_balance_non_negative"),
        )
        op.create_index("ix_stock_items_id", "stock_items", ["id"])
        op.create_index("ix_stock_items_code", "stock_items", ["code"])

    if not _table_exists("stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "item_id",
                sa.Integer(),
                sa.ForeignKey("stock_items.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("kind", sa.String(length=10), nullable=False),
            sa.Column("requested_quantity", sa.Integer(), nullable=False),
            sa.Column("quantity_delta", sa.Integer(), nullable=False),
            sa.Column("previous_balance", sa.Integer(), nullable=False),
            sa.Column("resulting_balance", sa.Integer(), nullable=False),
            sa.Column("reason_code", sa.String(length=64), nullable=True),
            sa.Column("reason", sa.String(length=200), nullable=False),
            sa.Column("reference_id", sa.String(length=50), nullable=True),
            sa.Column("actor_id", sa.String(length=64), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("item_id", "sequence", name="uq_stock_movement_sequence"),
            sa.CheckConstraint("resulting_balance >= 0", name="ck_stock_movement_resulting_non_negative"),
        )
        op.create_index("ix_stock_movements_id", "stock_movements", ["id"])
        op.create_index("ix_stock_movements_item_id", "stock_movements", ["item_id"])
        op.create_index("ix_stock_movements_kind", "stock_movements", ["kind"])
        op.create_index("ix_stock_movements_item_recorded", "stock_movements", ["item_id", "recorded_at"])

    if not _table_exists("finance_postings"):
        op.create_table(
            "finance_postings",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("direction", sa.String(length=7), nullable=False),
            sa.Column("category", sa.String(length=64), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("source_kind", sa.String(length=16), nullable=False),
            sa.Column("source_id", sa.String(length=64), nullable=False),
            sa.Column("narrative", sa.String(length=255), nullable=False),
            sa.Column("payment_method", sa.String(length=8), nullable=False, server_default="CASH"),
            sa.Column("reference", sa.String(length=64), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("actor_id", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("source_kind", "source_id", name="uq_finance_posting_source"),
            sa.CheckConstraint("amount > 0", name="ck_finance_posting_amount_positive"),
        )
        op.create_index("ix_finance_postings_direction", "finance_postings", ["direction"])
        op.create_index("ix_finance_postings_occurred_at", "finance_postings", ["occurred_at"])
        op.create_index(
            "ix_finance_postings_category_occurred",
            "finance_postings",
            ["category", "occurred_at"],
        )

    if not _table_exists("audit_events"):
        op.create_table(
            "audit_events",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("entity_type", sa.String(length=64), nullable=False),
            sa.Column("entity_id", sa.String(length=64), nullable=False),
            sa.Column("action", sa.String(length=64), nullable=False),
            sa.Column("actor_id", sa.String(length=64), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("before", sa.JSON(), nullable=True),
            sa.Column("after", sa.JSON(), nullable=True),
            sa.Column("correlation_id", sa.String(length=64), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_audit_events_id", "audit_events", ["id"])
        for column in ("entity_type", "entity_id", "action", "actor_id", "occurred_at", "correlation_id"):
            op.create_index(f"ix_audit_events_{column}", "audit_events", [column])
        op.create_index("ix_audit_events_entity_lookup", "audit_events", ["entity_type", "entity_id"])
        op.create_index("ix_audit_events_time_desc", "audit_events", [sa.text("occurred_at DESC")])


def downgrade() -> None:
    for column in ("entity_type", "entity_id", "action", "actor_id", "occurred_at", "correlation_id"):
        op.drop_index(f"ix_audit_events_{column}", table_name="audit_events")
    for index_name in ("ix_audit_events_time_desc", "ix_audit_events_entity_lookup", "ix_audit_events_id"):
        op.drop_index(index_name, table_name="audit_events")
    op.drop_table("audit_events")

    for index_name in (
        "ix_finance_postings_category_occurred",
        "ix_finance_postings_occurred_at",
        "ix_finance_postings_direction",
    ):
        op.drop_index(index_name, table_name="finance_postings")
    op.drop_table("finance_postings")

    for index_name in (
        "ix_stock_movements_item_recorded",
        "ix_stock_movements_kind",
        "ix_stock_movements_item_id",
        "ix_stock_movements_id",
    ):
        op.drop_index(index_name, table_name="stock_movements")
    op.drop_table("stock_movements")

    op.drop_index("ix_stock_items_code", table_name="stock_items")
    op.drop_index("ix_stock_items_id", table_name="stock_items")
    op.drop_table("stock_items")
