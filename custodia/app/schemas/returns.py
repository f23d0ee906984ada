from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from custodia.app.db.models.core_types import ReconciliationStatus


class ReturnCandidateRead(BaseModel):
    line_id: int
    item_id: int
    quantity: int
    unit_value: Decimal | None
    serial_number: str | None
    asset_tag: str | None
    notes: str | None

    class Config:
        from_attributes = True


class ReconciliationRead(BaseModel):
    status: ReconciliationStatus
    total_lines: int
    returned_lines: int
    outstanding_lines: int
    returned_percent: float
    total_quantity: int
    returned_quantity: int
    has_pending_return: bool

    class Config:
        from_attributes = True


class SelectiveReturnCreate(BaseModel):
    line_ids: list[int] = Field(default_factory=list)
    notes: str | None = None


class SelectiveReturnCreated(BaseModel):
    id: int
    number: str


class UndoReturnOutcome(BaseModel):
    status: str
    line_id: int
