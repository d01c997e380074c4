from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.app.core.exceptions import InvalidTransitionError, NotFoundError
from backoffice.app.db.models.models_v1 import DeliveryReceipt, PurchaseOrder, utcnow
from backoffice.app.db.models.core_types import ReceiptStatus
from backoffice.app.db.session import unit_of_work

logger = logging.getLogger(__name__)

VERIFIABLE_RECEIPT_STATUSES = frozenset({ReceiptStatus.pending, ReceiptStatus.discrepancy})


def record_receipt(
    db: Session,
    po: PurchaseOrder,
    *,
    actor_id: str,
    received_date: date,
    receipt_number: str | None = None,
    discrepancy_notes: str | None = None,
) -> DeliveryReceipt:
    """Add a pending receipt for one receiving event. Part of the caller's transaction."""
    receipt = DeliveryReceipt(
        purchase_order_id=po.id,
        receipt_number=receipt_number,
        received_date=received_date,
        received_by=actor_id,
        items_verified=False,
        discrepancy_notes=discrepancy_notes,
        status=ReceiptStatus.pending,
    )
    db.add(receipt)
    return receipt


def mark_receipts_filed(db: Session, po_id: int, *, actor_id: str, filed_at: datetime) -> int:
    """File every receipt of an order that is not filed yet. Returns how many changed."""
    receipts = (
        db.execute(
            select(DeliveryReceipt)
            .where(DeliveryReceipt.purchase_order_id == po_id)
            .where(DeliveryReceipt.status != ReceiptStatus.filed)
            .with_for_update()
        )
        .scalars()
        .all()
    )
    for receipt in receipts:
        receipt.status = ReceiptStatus.filed
        receipt.filed_by = actor_id
        receipt.filed_at = filed_at
    return len(receipts)


def verify_receipt(
    db: Session,
    receipt_id: int,
    *,
    actor_id: str,
    discrepancy_notes: str | None = None,
) -> DeliveryReceipt:
    """
    Record the outcome of checking delivered goods against the receipt.

    Without discrepancy notes the receipt becomes ``verified``; with notes it
    becomes ``discrepancy``. Only pending receipts and receipts with a
    discrepancy can be checked; verified and filed ones stay as they are.
    """
    with unit_of_work(db):
        receipt = (
            db.execute(
                select(DeliveryReceipt)
                .where(DeliveryReceipt.id == receipt_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            .scalar_one_or_none()
        )
        if not receipt:
            raise NotFoundError("Delivery receipt not found")
        if receipt.status not in VERIFIABLE_RECEIPT_STATUSES:
            raise InvalidTransitionError(
                f"Cannot verify a delivery receipt that is already {receipt.status.value}",
                current_status=receipt.status.value,
            )

        if discrepancy_notes:
            receipt.status = ReceiptStatus.discrepancy
            receipt.items_verified = False
            receipt.discrepancy_notes = discrepancy_notes
        else:
            receipt.status = ReceiptStatus.verified
            receipt.items_verified = True
        receipt.updated_at = utcnow()

    logger.info("Delivery receipt %s marked %s by %s", receipt_id, receipt.status.value, actor_id)
    return receipt


def get_receipt(db: Session, receipt_id: int) -> DeliveryReceipt:
    receipt = db.get(DeliveryReceipt, receipt_id)
    if not receipt:
        raise NotFoundError("Delivery receipt not found")
    return receipt


def list_receipts(
    db: Session,
    *,
    purchase_order_id: int | None = None,
    status: ReceiptStatus | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[DeliveryReceipt], int]:
    stmt = select(DeliveryReceipt)
    if purchase_order_id is not None:
        stmt = stmt.where(DeliveryReceipt.purchase_order_id == purchase_order_id)
    if status is not None:
        stmt = stmt.where(DeliveryReceipt.status == status)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = (
        db.execute(
            stmt.order_by(DeliveryReceipt.received_date.desc(), DeliveryReceipt.id.desc())
            .limit(limit)
            .offset((max(page, 1) - 1) * limit)
        )
        .scalars()
        .all()
    )
    return list(rows), int(total)
