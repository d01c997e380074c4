from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.db.session import SessionLocal
from backoffice.app.db.models.models_v1 import Inventory, Product, Supplier

logger = logging.getLogger(__name__)

DEFAULT_SUPPLIER = "Default Supplier"

DEFAULT_PRODUCTS = (
    # sku, name, unit, cost, selling, reorder level
    ("A", "Product A", "pcs", Decimal("10.00"), Decimal("15.00"), 10),
    ("B", "Product B", "box", Decimal("5.00"), Decimal("8.00"), 5),
)


def seed_master_data(db: Session) -> tuple[Supplier, dict[str, Product]]:
    """
    Idempotent: a supplier, a few products and one zeroed inventory row per
    product. Returns the supplier and the products by sku.
    """
    supplier = db.scalar(select(Supplier).where(Supplier.name == DEFAULT_SUPPLIER))
    if not supplier:
        supplier = Supplier(name=DEFAULT_SUPPLIER, email="orders@supplier.test", is_active=True)
        db.add(supplier)

    products: dict[str, Product] = {}
    for sku, name, unit, cost, selling, reorder_level in DEFAULT_PRODUCTS:
        product = db.scalar(select(Product).where(Product.sku == sku))
        if not product:
            product = Product(
                sku=sku,
                name=name,
                unit=unit,
                cost_price=cost,
                selling_price=selling,
                reorder_level=reorder_level,
                is_active=True,
            )
            db.add(product)
            db.flush()
        products[sku] = product

        if not db.scalar(select(Inventory).where(Inventory.product_id == product.id)):
            db.add(Inventory(product_id=product.id, quantity_on_hand=0, quantity_reserved=0, quantity_on_order=0))

    db.commit()
    return supplier, products


def run_seed():
    db = SessionLocal()
    try:
        supplier, products = seed_master_data(db)
        logger.info("Seed OK: supplier=%s products=%s", supplier.name, ", ".join(sorted(products)))
    finally:
        db.close()


if __name__ == "__main__":
    from backoffice.app.core.logging import setup_logging

    setup_logging()
    run_seed()
