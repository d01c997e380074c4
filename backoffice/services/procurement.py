"""
Procurement service: the purchase order lifecycle.

Every mutating function here is one unit of work. It locks the order header
(SELECT ... FOR UPDATE), checks the requested transition against
``PO_TRANSITIONS`` before writing anything, then updates the order, its
items, the inventory projection and the ledger, and commits. Any failure
rolls the whole unit back.

Stock arithmetic lives in :mod:`backoffice.services.inventory`.
"""
from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session, selectinload

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from backoffice.app.db.models.models_v1 import (
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
    utcnow,
)
from backoffice.app.db.models.core_types import (
    EDITABLE_PO_STATUSES,
    DeliveryMethod,
    POStatus,
    SentVia,
    TransactionType,
)
from backoffice.app.db.session import unit_of_work
from backoffice.services.inventory import change_on_order, lock_inventory_rows, post_on_hand_change
from backoffice.services.numbering import insert_with_po_number
from backoffice.services.receipts import mark_receipts_filed, record_receipt

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

EDITABLE_HEADER_FIELDS = ("supplier_id", "order_date", "expected_date", "notes", "delivery_method")


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    unit_cost: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class ReceivedLine:
    item_id: int
    quantity: int


# ---------- Helpers ----------
def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _require_actor(actor_id: str | None) -> str:
    if not actor_id or not str(actor_id).strip():
        raise ValidationError("An actor id is required")
    return str(actor_id).strip()


def _validate_lines(items: Sequence[OrderLine] | None) -> list[OrderLine]:
    if not items:
        raise ValidationError("Supplier, order date, and items are required")

    lines = []
    for index, item in enumerate(items, start=1):
        if not item.product_id:
            raise ValidationError(f"Item {index}: product is required")
        if item.quantity is None or int(item.quantity) <= 0:
            raise ValidationError(f"Item {index}: quantity must be positive")
        if item.unit_cost is None or _money(item.unit_cost) <= ZERO:
            raise ValidationError(f"Item {index}: unit cost must be positive")
        lines.append(
            OrderLine(
                product_id=int(item.product_id),
                quantity=int(item.quantity),
                unit_cost=_money(item.unit_cost),
                notes=item.notes,
            )
        )
    return lines


def _ensure_supplier(db: Session, supplier_id: int) -> None:
    if not db.get(Supplier, supplier_id):
        raise ValidationError(f"Invalid supplier_id {supplier_id}")


def _ensure_products(db: Session, product_ids: Iterable[int]) -> None:
    wanted = set(product_ids)
    found = set(db.execute(select(Product.id).where(Product.id.in_(wanted))).scalars().all())
    missing = sorted(wanted - found)
    if missing:
        raise ValidationError(f"Invalid product_id {missing[0]}")


def _build_items(lines: Iterable[OrderLine]) -> list[PurchaseOrderItem]:
    return [
        PurchaseOrderItem(
            product_id=line.product_id,
            quantity_ordered=line.quantity,
            quantity_received=0,
            unit_cost=line.unit_cost,
            total_cost=_money(line.unit_cost * line.quantity),
            notes=line.notes,
        )
        for line in lines
    ]


def _set_totals(po: PurchaseOrder, lines: Iterable[OrderLine]) -> None:
    subtotal = sum((_money(line.unit_cost * line.quantity) for line in lines), ZERO)
    po.subtotal = subtotal
    po.tax_amount = ZERO
    po.total_amount = po.subtotal + po.tax_amount


def _append_note(existing: str | None, tag: str, note: str | None) -> str:
    entry = f"[{tag}] {note or ''}".rstrip()
    return f"{existing}\n{entry}" if existing else entry


def _lock_order(db: Session, po_id: int) -> PurchaseOrder:
    po = (
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if not po:
        raise NotFoundError("Purchase order not found")
    # reload the children under the header lock
    db.expire(po, ["items", "receipts"])
    return po


def _ensure_transition(po: PurchaseOrder, target: POStatus, message: str) -> None:
    if not po.status.can_transition_to(target):
        raise InvalidTransitionError(
            f"{message} (purchase order {po.po_number} is {po.status.value})",
            current_status=po.status.value,
        )


# ---------- Lifecycle ----------
def create_purchase_order(
    db: Session,
    *,
    actor_id: str,
    supplier_id: int | None,
    order_date: date | None,
    items: Sequence[OrderLine] | None,
    expected_date: date | None = None,
    notes: str | None = None,
    delivery_method: DeliveryMethod | None = None,
) -> PurchaseOrder:
    actor_id = _require_actor(actor_id)
    if not supplier_id or not order_date:
        raise ValidationError("Supplier, order date, and items are required")
    lines = _validate_lines(items)
    _ensure_supplier(db, supplier_id)
    _ensure_products(db, (line.product_id for line in lines))

    def insert(po_number: str) -> PurchaseOrder:
        with unit_of_work(db):
            po = PurchaseOrder(
                po_number=po_number,
                supplier_id=supplier_id,
                status=POStatus.draft,
                order_date=order_date,
                expected_date=expected_date,
                notes=notes,
                delivery_method=delivery_method or DeliveryMethod.delivery,
                delivery_receipt_filed=False,
                created_by=actor_id,
            )
            po.items = _build_items(lines)
            _set_totals(po, lines)
            db.add(po)
            # a number collision surfaces here, before any inventory row is touched
            db.flush()

            rows = lock_inventory_rows(db, (line.product_id for line in lines))
            for line in lines:
                change_on_order(rows[line.product_id], line.quantity)
        return po

    po = insert_with_po_number(db, insert)
    logger.info("PO %s created by %s (%d items, total %s)", po.po_number, actor_id, len(lines), po.total_amount)
    return po


def update_purchase_order(
    db: Session,
    po_id: int,
    *,
    actor_id: str,
    changes: Mapping[str, Any] | None = None,
    items: Sequence[OrderLine] | None = None,
) -> PurchaseOrder:
    """
    Edit an order that is still a draft or pending approval.

    ``changes`` holds only the header fields the caller supplied. When
    ``items`` is given the item set is replaced and its on-order quantities
    are moved from the old items to the new ones.
    """
    actor_id = _require_actor(actor_id)
    changes = dict(changes or {})
    unknown = set(changes) - set(EDITABLE_HEADER_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")
    for required in ("supplier_id", "order_date", "delivery_method"):
        if required in changes and not changes[required]:
            raise ValidationError(f"{required} cannot be empty")

    lines = _validate_lines(items) if items else None

    with unit_of_work(db):
        po = _lock_order(db, po_id)
        if po.status not in EDITABLE_PO_STATUSES:
            raise InvalidTransitionError(
                f"Can only edit purchase orders in draft or pending approval status "
                f"(purchase order {po.po_number} is {po.status.value})",
                current_status=po.status.value,
            )

        if "supplier_id" in changes:
            _ensure_supplier(db, changes["supplier_id"])
        if lines:
            _ensure_products(db, (line.product_id for line in lines))

        for field_name, value in changes.items():
            setattr(po, field_name, value)

        if lines:
            old_items = list(po.items)
            rows = lock_inventory_rows(
                db,
                {item.product_id for item in old_items} | {line.product_id for line in lines},
            )
            for item in old_items:
                change_on_order(rows[item.product_id], -item.quantity_outstanding)

            po.items.clear()
            db.flush()
            po.items.extend(_build_items(lines))
            for line in lines:
                change_on_order(rows[line.product_id], line.quantity)
            _set_totals(po, lines)

        po.updated_at = utcnow()

    logger.info(
        "PO %s edited by %s (fields: %s%s)",
        po.po_number, actor_id, ", ".join(sorted(changes)) or "-", ", items replaced" if lines else "",
    )
    return po


def submit_purchase_order(db: Session, po_id: int, *, actor_id: str) -> PurchaseOrder:
    actor_id = _require_actor(actor_id)
    with unit_of_work(db):
        po = _lock_order(db, po_id)
        _ensure_transition(po, POStatus.pending_approval, "Only draft purchase orders can be submitted for approval")
        po.status = POStatus.pending_approval
        po.updated_at = utcnow()

    logger.info("PO %s submitted for approval by %s", po.po_number, actor_id)
    return po


def approve_purchase_order(
    db: Session,
    po_id: int,
    *,
    actor_id: str,
    approval_notes: str | None = None,
) -> PurchaseOrder:
    actor_id = _require_actor(actor_id)
    with unit_of_work(db):
        po = _lock_order(db, po_id)
        _ensure_transition(po, POStatus.approved, "Only pending purchase orders can be approved")
        now = utcnow()
        po.status = POStatus.approved
        po.approved_by = actor_id
        po.approved_at = now
        po.approval_notes = approval_notes
        po.updated_at = now

    logger.info("PO %s approved by %s", po.po_number, actor_id)
    return po


def send_purchase_order(
    db: Session,
    po_id: int,
    *,
    actor_id: str,
    sent_via: SentVia | None = None,
) -> PurchaseOrder:
    actor_id = _require_actor(actor_id)
    with unit_of_work(db):
        po = _lock_order(db, po_id)
        _ensure_transition(po, POStatus.sent, "Only approved purchase orders can be sent")
        now = utcnow()
        po.status = POStatus.sent
        po.sent_via = sent_via or SentVia.email
        po.sent_at = now
        po.updated_at = now

    logger.info("PO %s sent via %s by %s", po.po_number, po.sent_via.value, actor_id)
    return po


def receive_items(
    db: Session,
    po_id: int,
    *,
    actor_id: str,
    lines: Sequence[ReceivedLine],
    receipt_number: str | None = None,
    discrepancy_notes: str | None = None,
    received_date: date | None = None,
) -> PurchaseOrder:
    """
    Book goods received against a sent or partially received order.

    Lines are applied in the order given. Each positive line moves stock from
    on-order to on-hand and appends one ``purchase_receive`` ledger entry.
    The order ends ``received`` once everything ordered has arrived,
    ``partial`` otherwise, and a pending delivery receipt records the event.
    """
    actor_id = _require_actor(actor_id)
    if not lines:
        raise ValidationError("At least one received item is required")

    with unit_of_work(db):
        po = _lock_order(db, po_id)
        _ensure_transition(po, POStatus.partial, "Can only receive items for sent or partial purchase orders")

        items_by_id = {item.id: item for item in po.items}
        incoming: dict[int, int] = {}
        for line in lines:
            if line.quantity is None or line.quantity < 0:
                raise ValidationError(f"Item {line.item_id}: received quantity cannot be negative")
            item = items_by_id.get(line.item_id)
            if item is None:
                raise NotFoundError(f"Item {line.item_id} not found on purchase order {po.po_number}")
            incoming[item.id] = incoming.get(item.id, 0) + line.quantity
            if not settings.allow_over_receipt and item.quantity_received + incoming[item.id] > item.quantity_ordered:
                raise ValidationError(
                    f"Item {item.id}: receiving {incoming[item.id]} would exceed the "
                    f"{item.quantity_outstanding} still outstanding"
                )
        if not any(line.quantity > 0 for line in lines):
            raise ValidationError("At least one received quantity must be positive")

        rows = lock_inventory_rows(db, (items_by_id[line.item_id].product_id for line in lines if line.quantity > 0))
        for line in lines:
            if line.quantity == 0:
                continue
            item = items_by_id[line.item_id]
            item.quantity_received += line.quantity
            item.updated_at = utcnow()

            row = rows[item.product_id]
            post_on_hand_change(
                db,
                row,
                line.quantity,
                transaction_type=TransactionType.purchase_receive,
                actor_id=actor_id,
                reference_type="purchase_order",
                reference_id=str(po.id),
                notes=f"Received from PO: {po.po_number}",
            )
            change_on_order(row, -line.quantity)

        total_ordered = sum(item.quantity_ordered for item in po.items)
        total_received = sum(item.quantity_received for item in po.items)
        po.status = POStatus.received if total_received >= total_ordered else POStatus.partial
        po.received_date = received_date or date.today()
        po.updated_at = utcnow()

        record_receipt(
            db,
            po,
            actor_id=actor_id,
            received_date=po.received_date,
            receipt_number=receipt_number,
            discrepancy_notes=discrepancy_notes,
        )

    logger.info(
        "PO %s received %d/%d units by %s, status %s",
        po.po_number, total_received, total_ordered, actor_id, po.status.value,
    )
    return po


def hold_purchase_order(db: Session, po_id: int, *, actor_id: str, notes: str | None = None) -> PurchaseOrder:
    actor_id = _require_actor(actor_id)
    with unit_of_work(db):
        po = _lock_order(db, po_id)
        _ensure_transition(po, POStatus.on_hold, "Cannot put a received or cancelled purchase order on hold")
        po.status = POStatus.on_hold
        po.notes = _append_note(po.notes, "ON HOLD", notes)
        po.updated_at = utcnow()

    logger.info("PO %s put on hold by %s", po.po_number, actor_id)
    return po


def cancel_purchase_order(db: Session, po_id: int, *, actor_id: str, notes: str | None = None) -> PurchaseOrder:
    """Cancel an order and release whatever it still had on order."""
    actor_id = _require_actor(actor_id)
    with unit_of_work(db):
        po = _lock_order(db, po_id)
        _ensure_transition(po, POStatus.cancelled, "Cannot cancel received or already cancelled purchase orders")

        outstanding = [item for item in po.items if item.quantity_outstanding > 0]
        rows = lock_inventory_rows(db, (item.product_id for item in outstanding))
        for item in outstanding:
            change_on_order(rows[item.product_id], -item.quantity_outstanding)

        po.status = POStatus.cancelled
        po.notes = _append_note(po.notes, "CANCELLED", notes)
        po.updated_at = utcnow()

    logger.info("PO %s cancelled by %s (%d items released)", po.po_number, actor_id, len(outstanding))
    return po


def file_delivery_receipt(db: Session, po_id: int, *, actor_id: str) -> PurchaseOrder:
    """
    Archive the delivery paperwork of an order.

    Filing twice changes nothing; receipts recorded after an earlier filing
    are filed on the next call.
    """
    actor_id = _require_actor(actor_id)
    with unit_of_work(db):
        po = _lock_order(db, po_id)
        if not po.receipts:
            raise InvalidTransitionError(
                f"Purchase order {po.po_number} has no delivery receipt to file",
                current_status=po.status.value,
            )

        now = utcnow()
        filed = mark_receipts_filed(db, po.id, actor_id=actor_id, filed_at=now)
        if filed or not po.delivery_receipt_filed:
            po.delivery_receipt_filed = True
            po.filed_by = actor_id
            po.filed_at = now
            po.updated_at = now

    if filed:
        logger.info("PO %s: %d delivery receipt(s) filed by %s", po.po_number, filed, actor_id)
    return po


# ---------- Reads ----------
def get_purchase_order(db: Session, po_id: int) -> PurchaseOrder:
    po = db.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.id == po_id)
        .options(
            selectinload(PurchaseOrder.items).selectinload(PurchaseOrderItem.product),
            selectinload(PurchaseOrder.receipts),
            selectinload(PurchaseOrder.supplier),
        )
    ).scalar_one_or_none()
    if not po:
        raise NotFoundError("Purchase order not found")
    return po


def list_purchase_orders(
    db: Session,
    *,
    status: POStatus | None = None,
    supplier_id: int | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    limit: int | None = None,
) -> tuple[list[PurchaseOrder], int]:
    stmt = select(PurchaseOrder).join(Supplier, Supplier.id == PurchaseOrder.supplier_id)
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(PurchaseOrder.po_number.ilike(pattern), Supplier.name.ilike(pattern)))
    if start_date is not None:
        stmt = stmt.where(PurchaseOrder.order_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(PurchaseOrder.order_date <= end_date)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

    limit = min(limit or settings.default_page_limit, settings.max_page_limit)
    page = max(page, 1)
    rows = (
        db.execute(
            stmt.options(selectinload(PurchaseOrder.items), selectinload(PurchaseOrder.supplier))
            .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        .scalars()
        .all()
    )
    return list(rows), int(total)


def purchase_order_stats(db: Session, *, today: date | None = None) -> dict:
    today = today or date.today()
    counts = dict(
        db.execute(select(PurchaseOrder.status, func.count()).group_by(PurchaseOrder.status)).all()
    )

    month_start = today.replace(day=1)
    month_end = today.replace(day=monthrange(today.year, today.month)[1])
    month_count, month_total = db.execute(
        select(func.count(), func.coalesce(func.sum(PurchaseOrder.total_amount), 0))
        .where(PurchaseOrder.order_date >= month_start)
        .where(PurchaseOrder.order_date <= month_end)
    ).one()

    return {
        "pending_approval": counts.get(POStatus.pending_approval, 0),
        "approved": counts.get(POStatus.approved, 0),
        "sent": counts.get(POStatus.sent, 0),
        "partial": counts.get(POStatus.partial, 0),
        "on_hold": counts.get(POStatus.on_hold, 0),
        "this_month": {
            "count": int(month_count),
            "total": _money(month_total),
        },
    }
