"""purchasing schema: orders, items, inventory, ledger, delivery receipts

Revision ID: 3f1a9c2b7d10
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1a9c2b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PO_STATUS = sa.Enum(
    "draft", "pending_approval", "approved", "sent", "partial", "received", "cancelled", "on_hold",
    name="po_status",
)
DELIVERY_METHOD = sa.Enum("delivery", "pickup", name="delivery_method")
SENT_VIA = sa.Enum("email", "viber", "message", "other", name="sent_via")
TRANSACTION_TYPE = sa.Enum(
    "purchase_receive", "sale", "adjustment", "return", "transfer", "count",
    name="inventory_transaction_type",
)
RECEIPT_STATUS = sa.Enum("pending", "verified", "filed", "discrepancy", name="delivery_receipt_status")

ACTOR = sa.String(64)
MONEY = sa.Numeric(12, 2)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_suppliers_name", "suppliers", ["name"])

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(50), nullable=False, server_default="pcs"),
        sa.Column("cost_price", MONEY, nullable=False, server_default="0"),
        sa.Column("selling_price", MONEY, nullable=False, server_default="0"),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
    )

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("po_number", sa.String(50), nullable=False),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", PO_STATUS, nullable=False, server_default="draft"),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("expected_date", sa.Date()),
        sa.Column("received_date", sa.Date()),
        sa.Column("subtotal", MONEY, nullable=False, server_default="0"),
        sa.Column("tax_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("delivery_method", DELIVERY_METHOD, nullable=False, server_default="delivery"),
        sa.Column("sent_via", SENT_VIA),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("created_by", ACTOR, nullable=False),
        sa.Column("approved_by", ACTOR),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("approval_notes", sa.Text()),
        sa.Column("delivery_receipt_filed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("filed_by", ACTOR),
        sa.Column("filed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        sa.CheckConstraint(
            "total_amount = subtotal + tax_amount",
            name="ck_purchase_orders_total_is_subtotal_plus_tax",
        ),
    )
    op.create_index("ix_purchase_orders_supplier_id", "purchase_orders", ["supplier_id"])
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])
    op.create_index("ix_purchase_orders_order_date", "purchase_orders", ["order_date"])
    op.create_index("ix_purchase_orders_created_by", "purchase_orders", ["created_by"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", MONEY, nullable=False),
        sa.Column("total_cost", MONEY, nullable=False),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_purchase_order_items_qty_ordered_pos"),
        sa.CheckConstraint("quantity_received >= 0", name="ck_purchase_order_items_qty_received_nonneg"),
        sa.CheckConstraint("unit_cost > 0", name="ck_purchase_order_items_unit_cost_pos"),
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"])
    op.create_index("ix_purchase_order_items_product_id", "purchase_order_items", ["product_id"])

    op.create_table(
        "delivery_receipts",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("receipt_number", sa.String(100)),
        sa.Column("received_date", sa.Date(), nullable=False),
        sa.Column("received_by", ACTOR, nullable=False),
        sa.Column("items_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("discrepancy_notes", sa.Text()),
        sa.Column("status", RECEIPT_STATUS, nullable=False, server_default="pending"),
        sa.Column("filed_by", ACTOR),
        sa.Column("filed_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("ix_delivery_receipts_purchase_order_id", "delivery_receipts", ["purchase_order_id"])
    op.create_index("ix_delivery_receipts_status", "delivery_receipts", ["status"])
    op.create_index("ix_delivery_receipts_received_date", "delivery_receipts", ["received_date"])

    op.create_table(
        "inventory",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_on_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_count_date", sa.DateTime(timezone=True)),
        sa.Column("last_count_by", ACTOR),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("product_id", name="uq_inventory_product_id"),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_inventory_on_hand_nonneg"),
        sa.CheckConstraint("quantity_on_order >= 0", name="ck_inventory_on_order_nonneg"),
    )

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("transaction_type", TRANSACTION_TYPE, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(50)),
        sa.Column("reference_id", sa.String(64)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", ACTOR, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "quantity_after = quantity_before + quantity",
            name="ck_inventory_transactions_after_is_before_plus_qty",
        ),
    )
    op.create_index("ix_inventory_transactions_transaction_type", "inventory_transactions", ["transaction_type"])
    op.create_index(
        "ix_inventory_transactions_product_time",
        "inventory_transactions",
        ["product_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("inventory_transactions")
    op.drop_table("inventory")
    op.drop_table("delivery_receipts")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("products")
    op.drop_table("suppliers")

    bind = op.get_bind()
    for enum_type in (RECEIPT_STATUS, TRANSACTION_TYPE, SENT_VIA, DELIVERY_METHOD, PO_STATUS):
        enum_type.drop(bind, checkfirst=True)
