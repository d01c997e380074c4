from fastapi import APIRouter

from backoffice.app.api.v1.endpoints.health import router as health_router
from backoffice.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from backoffice.app.api.v1.endpoints.delivery_receipts import router as delivery_receipts_router
from backoffice.app.api.v1.endpoints.inventory import router as inventory_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(delivery_receipts_router, tags=["delivery_receipts"])
router.include_router(inventory_router, tags=["inventory"])
