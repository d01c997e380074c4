from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.app.db.base import Base, BigIntPK
from backoffice.app.db.models.core_types import (
    POStatus,
    DeliveryMethod,
    SentVia,
    TransactionType,
    ReceiptStatus,
)

ACTOR_ID = String(64)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls, name: str) -> Enum:
    # persist the enum values ("return"), not the member names ("return_")
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


# ---------- COLLABORATOR DATA (read only here) ----------
class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_person: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    sku: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), default="pcs", nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    selling_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    reorder_level: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


# ---------- PURCHASING ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    po_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True)
    status: Mapped[POStatus] = mapped_column(_enum(POStatus, "po_status"), default=POStatus.draft, nullable=False, index=True)

    order_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    expected_date: Mapped[date | None] = mapped_column(Date)
    received_date: Mapped[date | None] = mapped_column(Date)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text)
    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        _enum(DeliveryMethod, "delivery_method"),
        default=DeliveryMethod.delivery,
        nullable=False,
    )
    sent_via: Mapped[SentVia | None] = mapped_column(_enum(SentVia, "sent_via"))
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_by: Mapped[str] = mapped_column(ACTOR_ID, nullable=False, index=True)
    approved_by: Mapped[str | None] = mapped_column(ACTOR_ID)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approval_notes: Mapped[str | None] = mapped_column(Text)

    delivery_receipt_filed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    filed_by: Mapped[str | None] = mapped_column(ACTOR_ID)
    filed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    supplier: Mapped[Supplier] = relationship()
    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )
    receipts: Mapped[list["DeliveryReceipt"]] = relationship(
        back_populates="purchase_order",
        order_by="DeliveryReceipt.id",
    )

    __table_args__ = (
        CheckConstraint("total_amount = subtotal + tax_amount", name="total_is_subtotal_plus_tax"),
    )


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    purchase_order: Mapped[PurchaseOrder] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity_ordered > 0", name="qty_ordered_pos"),
        CheckConstraint("quantity_received >= 0", name="qty_received_nonneg"),
        CheckConstraint("unit_cost > 0", name="unit_cost_pos"),
    )

    @property
    def quantity_outstanding(self) -> int:
        return max(0, self.quantity_ordered - self.quantity_received)


class DeliveryReceipt(Base):
    __tablename__ = "delivery_receipts"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    receipt_number: Mapped[str | None] = mapped_column(String(100))
    received_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    received_by: Mapped[str] = mapped_column(ACTOR_ID, nullable=False)
    items_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    discrepancy_notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ReceiptStatus] = mapped_column(
        _enum(ReceiptStatus, "delivery_receipt_status"),
        default=ReceiptStatus.pending,
        nullable=False,
        index=True,
    )
    filed_by: Mapped[str | None] = mapped_column(ACTOR_ID)
    filed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    purchase_order: Mapped[PurchaseOrder] = relationship(back_populates="receipts")


# ---------- INVENTORY ----------
class Inventory(Base):
    __tablename__ = "inventory"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), unique=True, nullable=False)

    quantity_on_hand: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_reserved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_on_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_count_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_count_by: Mapped[str | None] = mapped_column(ACTOR_ID)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity_on_hand >= 0", name="on_hand_nonneg"),
        CheckConstraint("quantity_on_order >= 0", name="on_order_nonneg"),
    )


class InventoryTransaction(Base):
    """Ledger entry. Rows are inserted, never updated or deleted."""

    __tablename__ = "inventory_transactions"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum(TransactionType, "inventory_transaction_type"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(50))
    reference_id: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str] = mapped_column(ACTOR_ID, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity_after = quantity_before + quantity", name="after_is_before_plus_qty"),
        Index("ix_inventory_transactions_product_time", "product_id", "created_at"),
    )
