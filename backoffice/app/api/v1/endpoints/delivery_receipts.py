from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_actor_id, get_db
from backoffice.app.api.responses import ok, pagination
from backoffice.app.core.config import settings
from backoffice.app.db.models.core_types import ReceiptStatus
from backoffice.app.schemas.purchase_order import serialize_receipt
from backoffice.services import receipts

router = APIRouter(prefix="/delivery-receipts")


class VerifyIn(BaseModel):
    discrepancy_notes: str | None = None


@router.get("")
def list_delivery_receipts(
    purchase_order_id: int | None = None,
    status: ReceiptStatus | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_limit, ge=1, le=settings.max_page_limit),
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    rows, total = receipts.list_receipts(
        db, purchase_order_id=purchase_order_id, status=status, page=page, limit=limit
    )
    return ok(
        {
            "delivery_receipts": [serialize_receipt(r) for r in rows],
            "pagination": pagination(page, limit, total),
        }
    )


@router.get("/{receipt_id}")
def get_delivery_receipt(receipt_id: int, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    return ok(serialize_receipt(receipts.get_receipt(db, receipt_id)))


@router.post("/{receipt_id}/verify")
def verify_delivery_receipt(
    receipt_id: int,
    payload: VerifyIn | None = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    receipt = receipts.verify_receipt(
        db,
        receipt_id,
        actor_id=actor_id,
        discrepancy_notes=(payload or VerifyIn()).discrepancy_notes,
    )
    return ok(serialize_receipt(receipt))
