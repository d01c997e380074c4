from __future__ import annotations

from backoffice.app.db.models.models_v1 import DeliveryReceipt, PurchaseOrder, PurchaseOrderItem


def _money(value) -> float:
    return float(value) if value is not None else 0.0


def serialize_item(item: PurchaseOrderItem) -> dict:
    product = item.product
    return {
        "id": item.id,
        "product_id": item.product_id,
        "sku": product.sku if product else None,
        "product_name": product.name if product else None,
        "unit": product.unit if product else None,
        "quantity_ordered": item.quantity_ordered,
        "quantity_received": item.quantity_received,
        "unit_cost": _money(item.unit_cost),
        "total_cost": _money(item.total_cost),
        "notes": item.notes,
    }


def serialize_receipt(receipt: DeliveryReceipt) -> dict:
    return {
        "id": receipt.id,
        "purchase_order_id": receipt.purchase_order_id,
        "receipt_number": receipt.receipt_number,
        "received_date": receipt.received_date,
        "received_by": receipt.received_by,
        "items_verified": receipt.items_verified,
        "discrepancy_notes": receipt.discrepancy_notes,
        "status": receipt.status,
        "filed_by": receipt.filed_by,
        "filed_at": receipt.filed_at,
        "created_at": receipt.created_at,
    }


def serialize_purchase_order(po: PurchaseOrder, *, detail: bool = False) -> dict:
    data = {
        "id": po.id,
        "po_number": po.po_number,
        "supplier_id": po.supplier_id,
        "supplier_name": po.supplier.name if po.supplier else None,
        "status": po.status,
        "order_date": po.order_date,
        "expected_date": po.expected_date,
        "received_date": po.received_date,
        "subtotal": _money(po.subtotal),
        "tax_amount": _money(po.tax_amount),
        "total_amount": _money(po.total_amount),
        "notes": po.notes,
        "delivery_method": po.delivery_method,
        "sent_via": po.sent_via,
        "sent_at": po.sent_at,
        "created_by": po.created_by,
        "approved_by": po.approved_by,
        "approved_at": po.approved_at,
        "approval_notes": po.approval_notes,
        "delivery_receipt_filed": po.delivery_receipt_filed,
        "filed_by": po.filed_by,
        "filed_at": po.filed_at,
        "created_at": po.created_at,
        "updated_at": po.updated_at,
        "item_count": len(po.items),
    }
    if detail:
        data["supplier"] = (
            {
                "id": po.supplier.id,
                "name": po.supplier.name,
                "email": po.supplier.email,
                "phone": po.supplier.phone,
            }
            if po.supplier
            else None
        )
        data["items"] = [serialize_item(item) for item in po.items]
        data["receipts"] = [serialize_receipt(receipt) for receipt in po.receipts]
    return data
