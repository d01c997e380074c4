from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_actor_id, get_db
from backoffice.app.api.responses import ok, pagination
from backoffice.app.core.config import settings
from backoffice.app.db.models.models_v1 import Inventory
from backoffice.app.db.session import unit_of_work
from backoffice.app.schemas.inventory import InventoryRead, InventoryTransactionRead
from backoffice.services import inventory as inventory_service

router = APIRouter(prefix="/inventory")

RECENT_TRANSACTIONS = 20


# ---------- Schemas ----------
class AdjustIn(BaseModel):
    adjustment: int
    notes: str | None = None


class CountIn(BaseModel):
    actual_count: int = Field(ge=0)
    notes: str | None = None


class RebuildIn(BaseModel):
    product_ids: list[int] | None = None


def _inventory_row(row: Inventory) -> dict:
    data = InventoryRead.model_validate(row).model_dump()
    product = row.product
    data.update(
        sku=product.sku,
        product_name=product.name,
        unit=product.unit,
        cost_price=float(product.cost_price),
        selling_price=float(product.selling_price),
        reorder_level=product.reorder_level,
    )
    return data


# ---------- Endpoints ----------
@router.get("")
def list_inventory(
    search: str | None = None,
    low_stock: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_limit, ge=1, le=settings.max_page_limit),
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """
    Inventory projection (READ ONLY)
    - quantity_on_order is maintained by purchase orders, never edited here
    """
    rows, total = inventory_service.list_inventory(db, search=search, low_stock=low_stock, page=page, limit=limit)
    return ok({"inventory": [_inventory_row(r) for r in rows], "pagination": pagination(page, limit, total)})


@router.get("/stats")
def inventory_stats(db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    stats = inventory_service.inventory_stats(db)
    stats["total_value"] = float(stats["total_value"])
    return ok(stats)


@router.post("/rebuild-on-order")
def rebuild_on_order(
    payload: RebuildIn | None = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    with unit_of_work(db):
        rebuilt = inventory_service.rebuild_qty_on_order(db, product_ids=(payload or RebuildIn()).product_ids)
    return ok({"quantity_on_order": {str(pid): qty for pid, qty in rebuilt.items()}})


@router.get("/{product_id}")
def get_inventory(product_id: int, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    row = inventory_service.get_inventory_row(db, product_id)
    recent, _ = inventory_service.list_transactions(db, product_id, page=1, limit=RECENT_TRANSACTIONS)
    data = _inventory_row(row)
    data["transactions"] = [InventoryTransactionRead.model_validate(t).model_dump() for t in recent]
    return ok(data)


@router.get("/{product_id}/transactions")
def list_transactions(
    product_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_limit, ge=1, le=settings.max_page_limit),
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    rows, total = inventory_service.list_transactions(db, product_id, page=page, limit=limit)
    return ok(
        {
            "transactions": [InventoryTransactionRead.model_validate(t).model_dump() for t in rows],
            "pagination": pagination(page, limit, total),
        }
    )


@router.get("/{product_id}/ledger-check")
def ledger_check(product_id: int, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    result = inventory_service.check_ledger(db, product_id)
    return ok(
        {
            "product_id": result.product_id,
            "ok": result.ok,
            "entries": result.entries,
            "quantity_on_hand": result.quantity_on_hand,
            "problems": result.problems,
        }
    )


@router.post("/{product_id}/adjust")
def adjust_inventory(
    product_id: int,
    payload: AdjustIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    inventory_service.adjust_inventory(
        db, product_id, adjustment=payload.adjustment, actor_id=actor_id, notes=payload.notes
    )
    return ok(_inventory_row(inventory_service.get_inventory_row(db, product_id)))


@router.post("/{product_id}/count")
def count_inventory(
    product_id: int,
    payload: CountIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    inventory_service.count_inventory(
        db, product_id, actual_count=payload.actual_count, actor_id=actor_id, notes=payload.notes
    )
    return ok(_inventory_row(inventory_service.get_inventory_row(db, product_id)))
