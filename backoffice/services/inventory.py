from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import case, select, func, or_
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, selectinload

from backoffice.app.core.exceptions import NotFoundError, ValidationError
from backoffice.app.db.models.models_v1 import (
    Inventory,
    InventoryTransaction,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    utcnow,
)
from backoffice.app.db.models.core_types import OPEN_PO_STATUSES, TransactionType
from backoffice.app.db.session import unit_of_work

logger = logging.getLogger(__name__)


# ---------- Locking ----------
def lock_inventory_rows(db: Session, product_ids: Iterable[int]) -> dict[int, Inventory]:
    """
    Lock (SELECT ... FOR UPDATE) the inventory rows of the given products.

    Rows are locked in ascending product id so that two writers touching the
    same products cannot deadlock. Missing rows are created.
    """
    rows: dict[int, Inventory] = {}
    for pid in sorted({int(pid) for pid in product_ids if pid is not None}):
        rows[pid] = _get_or_create_inventory(db, pid)
    return rows


def _get_or_create_inventory(db: Session, product_id: int) -> Inventory:
    row = _select_for_update(db, product_id)
    if row:
        return row

    # a concurrent writer may create the row first: skip the duplicate, then lock whichever row won
    insert = postgresql_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
    db.execute(
        insert(Inventory)
        .values(
            product_id=product_id,
            quantity_on_hand=0,
            quantity_reserved=0,
            quantity_on_order=0,
            updated_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["product_id"])
    )
    return _select_for_update(db, product_id)


def _select_for_update(db: Session, product_id: int) -> Inventory | None:
    return (
        db.execute(
            select(Inventory)
            .where(Inventory.product_id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )


# ---------- Counter updates ----------
def change_on_order(row: Inventory, delta: int) -> None:
    """Add ``delta`` to quantity_on_order, never going below zero."""
    row.quantity_on_order = max(0, row.quantity_on_order + delta)
    row.updated_at = utcnow()


def post_on_hand_change(
    db: Session,
    row: Inventory,
    delta: int,
    *,
    transaction_type: TransactionType,
    actor_id: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    """
    Apply ``delta`` to quantity_on_hand and append the matching ledger entry.

    ``row`` must be locked by the caller. The ledger entry records the
    on-hand value read under that lock as quantity_before.
    """
    before = row.quantity_on_hand
    after = before + delta
    if after < 0:
        raise ValidationError(
            f"Cannot have negative inventory for product {row.product_id} (on hand {before}, change {delta})"
        )

    row.quantity_on_hand = after
    row.updated_at = utcnow()

    entry = InventoryTransaction(
        product_id=row.product_id,
        transaction_type=transaction_type,
        quantity=delta,
        quantity_before=before,
        quantity_after=after,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=actor_id,
    )
    db.add(entry)
    return entry


# ---------- Manual stock operations ----------
def adjust_inventory(db: Session, product_id: int, *, adjustment: int, actor_id: str, notes: str | None = None) -> Inventory:
    if not adjustment:
        raise ValidationError("Adjustment quantity is required")

    with unit_of_work(db):
        row = _select_for_update(db, product_id)
        if not row:
            raise NotFoundError("Inventory record not found")

        entry = post_on_hand_change(
            db,
            row,
            adjustment,
            transaction_type=TransactionType.adjustment,
            actor_id=actor_id,
            notes=notes,
        )
        row.last_count_date = utcnow()
        row.last_count_by = actor_id

    logger.info(
        "Inventory adjusted: product=%s change=%+d on_hand=%d->%d actor=%s",
        product_id, adjustment, entry.quantity_before, entry.quantity_after, actor_id,
    )
    return row


def count_inventory(
    db: Session,
    product_id: int,
    *,
    actual_count: int,
    actor_id: str,
    notes: str | None = None,
) -> Inventory:
    if actual_count is None or actual_count < 0:
        raise ValidationError("Valid actual count is required")

    with unit_of_work(db):
        row = _select_for_update(db, product_id)
        if not row:
            raise NotFoundError("Inventory record not found")

        entry = post_on_hand_change(
            db,
            row,
            actual_count - row.quantity_on_hand,
            transaction_type=TransactionType.count,
            actor_id=actor_id,
            notes=notes or "Physical inventory count",
        )
        row.last_count_date = utcnow()
        row.last_count_by = actor_id

    logger.info(
        "Inventory counted: product=%s on_hand=%d->%d actor=%s",
        product_id, entry.quantity_before, entry.quantity_after, actor_id,
    )
    return row


# ---------- Reconciliation ----------
def rebuild_qty_on_order(db: Session, *, product_ids: Iterable[int] | None = None) -> dict[int, int]:
    """
    Rebuild quantity_on_order from the open purchase orders.

    Business rule:
        quantity_on_order =
            SUM(max(0, quantity_ordered - quantity_received)) over items of
            orders that are neither received nor cancelled

    Deterministic and idempotent. The inventory rows are locked FOR UPDATE
    before the outstanding quantities are summed; every writer of
    quantity_on_order holds the same row locks until it commits, so the sum
    cannot miss a concurrent receive or cancel. The caller owns the
    transaction. Returns the rebuilt value per product.
    """
    if product_ids is None:
        product_ids = db.execute(select(Inventory.product_id)).scalars().all()

    wanted = {int(pid) for pid in product_ids if pid is not None}
    if not wanted:
        return {}
    product_ids = sorted(db.execute(select(Product.id).where(Product.id.in_(wanted))).scalars().all())
    if not product_ids:
        return {}

    rows = lock_inventory_rows(db, product_ids)

    outstanding_expr = PurchaseOrderItem.quantity_ordered - PurchaseOrderItem.quantity_received
    outstanding_rows = db.execute(
        select(
            PurchaseOrderItem.product_id,
            func.coalesce(
                func.sum(case((outstanding_expr > 0, outstanding_expr), else_=0)),
                0,
            ).label("outstanding_qty"),
        )
        .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderItem.purchase_order_id)
        .where(PurchaseOrder.status.in_(OPEN_PO_STATUSES))
        .where(PurchaseOrderItem.product_id.in_(product_ids))
        .group_by(PurchaseOrderItem.product_id)
    ).all()
    outstanding = {int(pid): int(qty) for pid, qty in outstanding_rows}

    rebuilt: dict[int, int] = {}
    for pid, row in rows.items():
        value = max(0, outstanding.get(pid, 0))
        if row.quantity_on_order != value:
            logger.warning(
                "quantity_on_order drift for product %s: projection=%d rebuilt=%d",
                pid, row.quantity_on_order, value,
            )
            row.quantity_on_order = value
            row.updated_at = utcnow()
        rebuilt[pid] = value
    return rebuilt


@dataclass
class LedgerCheck:
    product_id: int
    entries: int = 0
    quantity_on_hand: int | None = None
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def check_ledger(db: Session, product_id: int) -> LedgerCheck:
    """
    Replay a product's ledger in creation order.

    Each entry must satisfy after == before + quantity and start where the
    previous one ended; the last quantity_after must equal the projection.
    """
    result = LedgerCheck(product_id=product_id)

    row = db.execute(select(Inventory).where(Inventory.product_id == product_id)).scalar_one_or_none()
    if row is not None:
        result.quantity_on_hand = row.quantity_on_hand

    entries = (
        db.execute(
            select(InventoryTransaction)
            .where(InventoryTransaction.product_id == product_id)
            .order_by(InventoryTransaction.id.asc())
        )
        .scalars()
        .all()
    )
    result.entries = len(entries)

    previous_after: int | None = None
    for entry in entries:
        if entry.quantity_after != entry.quantity_before + entry.quantity:
            result.problems.append(
                f"entry {entry.id}: {entry.quantity_before} + {entry.quantity} != {entry.quantity_after}"
            )
        if previous_after is not None and entry.quantity_before != previous_after:
            result.problems.append(
                f"entry {entry.id}: starts at {entry.quantity_before}, previous entry ended at {previous_after}"
            )
        previous_after = entry.quantity_after

    if previous_after is not None and row is not None and previous_after != row.quantity_on_hand:
        result.problems.append(
            f"projection on hand {row.quantity_on_hand} != last ledger quantity_after {previous_after}"
        )
    return result


# ---------- Reads ----------
def get_inventory_row(db: Session, product_id: int) -> Inventory:
    row = db.execute(select(Inventory).where(Inventory.product_id == product_id)).scalar_one_or_none()
    if not row:
        raise NotFoundError("Inventory record not found")
    return row


def inventory_stats(db: Session) -> dict:
    active = Product.is_active.is_(True)
    joined = select(func.count()).select_from(Inventory).join(Product, Product.id == Inventory.product_id)

    total_products = db.execute(select(func.count()).select_from(Product).where(active)).scalar_one()
    low_stock = db.execute(
        joined.where(active).where(Inventory.quantity_on_hand <= Product.reorder_level)
    ).scalar_one()
    out_of_stock = db.execute(joined.where(active).where(Inventory.quantity_on_hand == 0)).scalar_one()
    total_value = db.execute(
        select(func.coalesce(func.sum(Inventory.quantity_on_hand * Product.cost_price), 0))
        .join(Product, Product.id == Inventory.product_id)
        .where(active)
    ).scalar_one()

    return {
        "total_products": int(total_products),
        "low_stock_items": int(low_stock),
        "out_of_stock": int(out_of_stock),
        "total_value": total_value,
    }


def list_inventory(
    db: Session,
    *,
    search: str | None = None,
    low_stock: bool = False,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Inventory], int]:
    stmt = (
        select(Inventory)
        .join(Product, Product.id == Inventory.product_id)
        .where(Product.is_active.is_(True))
    )
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if low_stock:
        stmt = stmt.where(Inventory.quantity_on_hand <= Product.reorder_level)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = (
        db.execute(
            stmt.options(selectinload(Inventory.product))
            .order_by(Product.name.asc(), Inventory.id.asc())
            .limit(limit)
            .offset((max(page, 1) - 1) * limit)
        )
        .scalars()
        .all()
    )
    return list(rows), int(total)


def list_transactions(
    db: Session,
    product_id: int,
    *,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[InventoryTransaction], int]:
    """Ledger entries of one product, newest first."""
    total = db.execute(
        select(func.count()).select_from(InventoryTransaction).where(InventoryTransaction.product_id == product_id)
    ).scalar_one()
    rows = (
        db.execute(
            select(InventoryTransaction)
            .where(InventoryTransaction.product_id == product_id)
            .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
            .limit(limit)
            .offset((max(page, 1) - 1) * limit)
        )
        .scalars()
        .all()
    )
    return list(rows), int(total)
