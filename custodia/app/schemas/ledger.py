from datetime import datetime

from pydantic import BaseModel

from custodia.app.db.models.core_types import MovementKind


class LedgerEntryRead(BaseModel):
    id: int
    item_id: int
    kind: MovementKind
    quantity: int
    quantity_before: int
    quantity_after: int  # somente leitura, escrito só pelo livro
    manifest_id: int | None
    actor_id: int | None
    reason: str
    notes: str | None
    happened_at: datetime

    class Config:
        from_attributes = True


class ItemStockRead(BaseModel):
    item_id: int
    code: str
    quantity_on_hand: int
    cost_center_id: int | None
    consistent: bool
