from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_actor_id, get_db
from backoffice.app.api.responses import ok, pagination
from backoffice.app.core.config import settings
from backoffice.app.db.models.core_types import DeliveryMethod, POStatus, SentVia
from backoffice.app.schemas.purchase_order import serialize_purchase_order
from backoffice.services import procurement
from backoffice.services.procurement import OrderLine, ReceivedLine

router = APIRouter(prefix="/purchase-orders")


class POItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_cost: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    notes: str | None = None


class POCreate(BaseModel):
    supplier_id: int
    order_date: date
    expected_date: date | None = None
    notes: str | None = None
    delivery_method: DeliveryMethod = DeliveryMethod.delivery
    items: list[POItemIn] = Field(min_length=1)


class POUpdate(BaseModel):
    supplier_id: int | None = None
    order_date: date | None = None
    expected_date: date | None = None
    notes: str | None = None
    delivery_method: DeliveryMethod | None = None
    items: list[POItemIn] | None = None


class ApproveIn(BaseModel):
    approval_notes: str | None = None


class SendIn(BaseModel):
    sent_via: SentVia = SentVia.email


class ReceiveLineIn(BaseModel):
    item_id: int
    quantity_received: int = Field(ge=0)


class ReceiveIn(BaseModel):
    items: list[ReceiveLineIn] = Field(min_length=1)
    receipt_number: str | None = Field(default=None, max_length=100)
    discrepancy_notes: str | None = None


class NoteIn(BaseModel):
    notes: str | None = None


def _lines(items: list[POItemIn] | None) -> list[OrderLine] | None:
    if items is None:
        return None
    return [
        OrderLine(product_id=i.product_id, quantity=i.quantity, unit_cost=i.unit_cost, notes=i.notes)
        for i in items
    ]


def _detail(db: Session, po_id: int) -> dict:
    return serialize_purchase_order(procurement.get_purchase_order(db, po_id), detail=True)


@router.get("")
def list_pos(
    status: POStatus | None = None,
    supplier_id: int | None = None,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_limit, ge=1, le=settings.max_page_limit),
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    rows, total = procurement.list_purchase_orders(
        db,
        status=status,
        supplier_id=supplier_id,
        search=search,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return ok(
        {
            "purchase_orders": [serialize_purchase_order(po) for po in rows],
            "pagination": pagination(page, limit, total),
        }
    )


@router.get("/stats")
def po_stats(db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    return ok(procurement.purchase_order_stats(db))


@router.get("/{po_id}")
def get_po(po_id: int, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    return ok(_detail(db, po_id))


@router.post("", status_code=201)
def create_po(payload: POCreate, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    po = procurement.create_purchase_order(
        db,
        actor_id=actor_id,
        supplier_id=payload.supplier_id,
        order_date=payload.order_date,
        expected_date=payload.expected_date,
        notes=payload.notes,
        delivery_method=payload.delivery_method,
        items=_lines(payload.items),
    )
    return ok(_detail(db, po.id))


@router.put("/{po_id}")
def update_po(
    po_id: int,
    payload: POUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    changes = payload.model_dump(exclude_unset=True, exclude={"items"})
    procurement.update_purchase_order(
        db,
        po_id,
        actor_id=actor_id,
        changes=changes,
        items=_lines(payload.items),
    )
    return ok(_detail(db, po_id))


@router.post("/{po_id}/submit")
def submit_po(po_id: int, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    procurement.submit_purchase_order(db, po_id, actor_id=actor_id)
    return ok(_detail(db, po_id), message="Purchase order submitted for approval")


@router.post("/{po_id}/approve")
def approve_po(
    po_id: int,
    payload: ApproveIn | None = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    payload = payload or ApproveIn()
    procurement.approve_purchase_order(db, po_id, actor_id=actor_id, approval_notes=payload.approval_notes)
    return ok(_detail(db, po_id), message="Purchase order approved")


@router.post("/{po_id}/send")
def send_po(
    po_id: int,
    payload: SendIn | None = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    payload = payload or SendIn()
    procurement.send_purchase_order(db, po_id, actor_id=actor_id, sent_via=payload.sent_via)
    return ok(_detail(db, po_id), message="Purchase order marked as sent")


@router.post("/{po_id}/receive")
def receive_po(
    po_id: int,
    payload: ReceiveIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    po = procurement.receive_items(
        db,
        po_id,
        actor_id=actor_id,
        lines=[ReceivedLine(item_id=ln.item_id, quantity=ln.quantity_received) for ln in payload.items],
        receipt_number=payload.receipt_number,
        discrepancy_notes=payload.discrepancy_notes,
    )
    return ok(_detail(db, po_id), message=f"Items received. Status: {po.status.value}")


@router.post("/{po_id}/hold")
def hold_po(
    po_id: int,
    payload: NoteIn | None = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    procurement.hold_purchase_order(db, po_id, actor_id=actor_id, notes=(payload or NoteIn()).notes)
    return ok(_detail(db, po_id), message="Purchase order put on hold")


@router.post("/{po_id}/cancel")
def cancel_po(
    po_id: int,
    payload: NoteIn | None = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    procurement.cancel_purchase_order(db, po_id, actor_id=actor_id, notes=(payload or NoteIn()).notes)
    return ok(_detail(db, po_id), message="Purchase order cancelled")


@router.post("/{po_id}/file")
def file_po_receipt(po_id: int, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    procurement.file_delivery_receipt(db, po_id, actor_id=actor_id)
    return ok(_detail(db, po_id), message="Delivery receipt filed")
