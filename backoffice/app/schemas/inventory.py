from datetime import datetime

from pydantic import BaseModel, ConfigDict

from backoffice.app.db.models.core_types import TransactionType


class InventoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    quantity_on_hand: int
    quantity_reserved: int
    quantity_on_order: int  # maintained by the purchasing engine, never written here
    last_count_date: datetime | None = None
    last_count_by: str | None = None
    updated_at: datetime


class InventoryTransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    transaction_type: TransactionType
    quantity: int
    quantity_before: int
    quantity_after: int
    reference_type: str | None = None
    reference_id: str | None = None
    notes: str | None = None
    created_by: str
    created_at: datetime
